# spendlens/classifiers/chain.py
from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from spendlens.classifiers.base import DEFAULT_CATEGORY, BaseClassifier
from spendlens.core.models import Transaction
from spendlens.exceptions import ClassifierError

logger = logging.getLogger(__name__)


class ClassifierChain:
    """
    Run classifiers in order. Each one only sees the transactions that are
    still undecided; the first non-None answer wins and whatever is left at
    the end gets ``default``.
    """

    def __init__(self, classifiers: Sequence[BaseClassifier], default: str = DEFAULT_CATEGORY):
        self.classifiers = list(classifiers)
        self.default = default

    @property
    def names(self) -> List[str]:
        return [c.name for c in self.classifiers]

    def classify(self, transactions: Sequence[Transaction]) -> List[str]:
        results: List[Optional[str]] = [None] * len(transactions)
        for classifier in self.classifiers:
            pending = [i for i, r in enumerate(results) if r is None]
            if not pending:
                break
            logger.info("Running %s classifier on %d transactions", classifier.name, len(pending))
            try:
                answers = classifier.classify([transactions[i] for i in pending])
            except ClassifierError as exc:
                if len(self.classifiers) == 1:
                    raise
                logger.warning("%s classifier unavailable, falling back: %s", classifier.name, exc)
                continue
            for i, answer in zip(pending, answers):
                if answer:
                    results[i] = answer
        return [r or self.default for r in results]


def categorize(transactions: Sequence[Transaction], chain: ClassifierChain) -> List[Transaction]:
    """Return copies of ``transactions`` with ``category`` assigned."""
    categories = chain.classify(transactions)
    return [tx.with_category(cat) for tx, cat in zip(transactions, categories)]
