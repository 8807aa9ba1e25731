# spendlens/classifiers/base.py
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from spendlens.core.models import Transaction

DEFAULT_CATEGORY = "other"


class BaseClassifier(ABC):
    name: str = ""

    @abstractmethod
    def classify(self, transactions: Sequence[Transaction]) -> List[Optional[str]]:
        """
        Return one category per transaction, in order.
        None means the classifier has no opinion for that transaction.
        """
