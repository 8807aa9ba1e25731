# spendlens/classifiers/passthrough.py
from spendlens.classifiers.base import BaseClassifier


class PassThroughClassifier(BaseClassifier):
    """Use the category the bank export already carries."""

    name = "pass"

    def classify(self, transactions):
        return [tx.original_category or None for tx in transactions]
