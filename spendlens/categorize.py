# spendlens/categorize.py
from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, List, Sequence

from spendlens.classifiers import DEFAULT_CATEGORY, build_chain, categorize
from spendlens.classifiers.knn import KNNClassifier, train_knn
from spendlens.classifiers.neural import train_neural
from spendlens.config import Settings, load_config
from spendlens.core.models import Transaction
from spendlens.storage import read_transactions, write_transactions

logger = logging.getLogger(__name__)


def run_categorize(
    settings: Settings,
    names: Sequence[str],
    embedder=None,
    client=None,
) -> List[Transaction]:
    """Categorize ``transactions.json`` into ``transactions_categorized.json``."""
    transactions = read_transactions(settings.transactions_path, required=True)
    config = load_config(settings.config_path)
    chain = build_chain(names, config, settings, embedder=embedder, client=client)
    logger.info("Categorizing %d transactions with: %s", len(transactions), " > ".join(chain.names))
    categorized = categorize(transactions, chain)
    write_transactions(settings.categorized_path, categorized)
    logger.info("Categorized %d transactions. Output to %s", len(categorized), settings.categorized_path)
    return categorized


def classify_knn_in_place(settings: Settings, embedder=None) -> List[Transaction]:
    """Re-classify the categorized file with the trained Embed+KNN model."""
    transactions = read_transactions(settings.categorized_path, required=True)
    logger.info("Classifying %d transactions using Embed+KNN classifier...", len(transactions))
    classifier = KNNClassifier(settings.knn_model_dir, embedder=embedder,
                               batch_size=settings.embed_batch_size)
    labels = classifier.classify(transactions)
    updated = [tx.with_category(label or DEFAULT_CATEGORY) for tx, label in zip(transactions, labels)]
    write_transactions(settings.categorized_path, updated)
    logger.info("Classification complete. Updated %s", settings.categorized_path)
    return updated


def run_train_knn(settings: Settings, k: int = 5, embedder=None):
    transactions = read_transactions(settings.categorized_path, required=True)
    return train_knn(transactions, settings.knn_model_dir, embedder=embedder, k=k,
                     batch_size=settings.embed_batch_size)


def run_train_neural(settings: Settings, epochs: int = 20, embedder=None):
    transactions = read_transactions(settings.categorized_path, required=True)
    return train_neural(transactions, settings.nn_model_dir, embedder=embedder, epochs=epochs,
                        embed_batch_size=settings.embed_batch_size)


def generate_categories(transactions: Sequence[Transaction]) -> Dict[str, List[str]]:
    """Map each assigned category to the sorted original categories it came from."""
    mapping: Dict[str, set] = defaultdict(set)
    for tx in transactions:
        mapping[tx.category or DEFAULT_CATEGORY].add(tx.original_category or DEFAULT_CATEGORY)
    return {cat: sorted(origs) for cat, origs in mapping.items()}
