# spendlens/evaluate.py
"""Compare classifiers against the bank's own categories."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import pandas as pd

from spendlens.classifiers import DEFAULT_CATEGORY, BaseClassifier
from spendlens.core.models import Transaction
from spendlens.exceptions import SpendLensError

logger = logging.getLogger(__name__)


@dataclass
class EvaluationResult:
    classifier: str
    correct: int = 0
    total: int = 0
    error: Optional[str] = None

    @property
    def accuracy(self) -> float:
        return self.correct / self.total * 100 if self.total else 0.0


def evaluate(
    transactions: Sequence[Transaction],
    classifiers: Sequence[BaseClassifier],
    sample_size: int = 100,
) -> List[EvaluationResult]:
    sample = list(transactions[:sample_size])
    truth = [tx.original_category or DEFAULT_CATEGORY for tx in sample]
    logger.info("Evaluating on %d transactions", len(sample))

    results = []
    for classifier in classifiers:
        try:
            predicted = classifier.classify(sample)
        except SpendLensError as exc:
            logger.error("%s classification failed: %s", classifier.name, exc)
            results.append(EvaluationResult(classifier.name, total=len(sample), error=str(exc)))
            continue
        correct = sum(1 for p, t in zip(predicted, truth) if (p or DEFAULT_CATEGORY) == t)
        result = EvaluationResult(classifier.name, correct=correct, total=len(sample))
        logger.info("  %s: %.2f%% (%d/%d)", classifier.name, result.accuracy, correct, len(sample))
        results.append(result)
    return results


def comparison_table(results: Sequence[EvaluationResult]) -> str:
    rows: List[Dict[str, object]] = [
        {
            "Classifier": r.classifier,
            "Accuracy": "failed" if r.error else f"{r.accuracy:.2f}%",
            "Correct": r.correct,
            "Total": r.total,
        }
        for r in results
    ]
    if not rows:
        return "No classifiers evaluated."
    return pd.DataFrame(rows).to_string(index=False)
