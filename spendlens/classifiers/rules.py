# spendlens/classifiers/rules.py
from typing import Dict, List, Optional

from spendlens.classifiers.base import BaseClassifier
from spendlens.core.models import Transaction


def categorize(tx: Transaction, categories_map: Dict[str, List[str]]) -> Optional[str]:
    """First category whose keyword appears in the description or original category."""
    description = (tx.description or "").lower()
    original = (tx.original_category or "").lower()
    for cat, keywords in categories_map.items():
        for kw in keywords or []:
            kw = str(kw).lower()
            if not kw:
                continue
            if kw in description or kw in original:
                return cat
    return None


class RulesClassifier(BaseClassifier):
    name = "rules"

    def __init__(self, categories: Dict[str, List[str]]):
        self.categories = categories or {}

    def classify(self, transactions):
        return [categorize(tx, self.categories) for tx in transactions]
