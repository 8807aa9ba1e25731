# spendlens/classifiers/neural.py
"""
Feed-forward network over sentence embeddings.

The network has one hidden ReLU layer and a softmax output, trained with Adam
in mini-batches. It is saved as a pickled scikit-learn ``MLPClassifier``
(``model.pkl``) next to ``classes.json``, the output index -> category list.
"""
from __future__ import annotations

import json
import logging
import pickle
import warnings
from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np
from sklearn.exceptions import ConvergenceWarning
from sklearn.neural_network import MLPClassifier

from spendlens.classifiers.base import DEFAULT_CATEGORY, BaseClassifier
from spendlens.classifiers.embeddings import Embedder, SentenceEmbedder, embed_in_batches
from spendlens.core.models import Transaction
from spendlens.exceptions import ClassifierError

logger = logging.getLogger(__name__)

MODEL_FILE = "model.pkl"
CLASSES_FILE = "classes.json"


def train_neural(
    transactions: Sequence[Transaction],
    model_dir,
    embedder: Optional[Embedder] = None,
    epochs: int = 20,
    batch_size: int = 32,
    hidden_units: int = 128,
    learning_rate: float = 0.001,
    embed_batch_size: int = 512,
    random_state: Optional[int] = None,
) -> MLPClassifier:
    if not transactions:
        raise ClassifierError("No transactions to train on.")
    labels = [tx.category or DEFAULT_CATEGORY for tx in transactions]
    if len(set(labels)) < 2:
        raise ClassifierError("Need at least two distinct categories to train the classifier.")

    embedder = embedder or SentenceEmbedder()
    texts = [tx.description or "" for tx in transactions]
    logger.info("Embedding %d transactions...", len(texts))
    features = embed_in_batches(embedder, texts, embed_batch_size)

    model = MLPClassifier(
        hidden_layer_sizes=(hidden_units,),
        activation="relu",
        solver="adam",
        alpha=1e-4,
        batch_size=max(1, min(batch_size, len(texts))),
        learning_rate_init=learning_rate,
        max_iter=epochs,
        shuffle=True,
        random_state=random_state,
    )
    logger.info("Training classifier model (%d epochs)...", epochs)
    with warnings.catch_warnings():
        # a fixed epoch count rarely reaches sklearn's tolerance
        warnings.simplefilter("ignore", category=ConvergenceWarning)
        model.fit(features, labels)

    model_dir = Path(model_dir)
    model_dir.mkdir(parents=True, exist_ok=True)
    with (model_dir / MODEL_FILE).open("wb") as fp:
        pickle.dump(model, fp)
    with (model_dir / CLASSES_FILE).open("w", encoding="utf-8") as fp:
        json.dump([str(c) for c in model.classes_], fp, indent=2)
    logger.info("Trained model saved to %s", model_dir)
    return model


class NeuralClassifier(BaseClassifier):
    name = "nn"

    def __init__(self, model_dir, embedder: Optional[Embedder] = None, batch_size: int = 512):
        self.model_dir = Path(model_dir)
        self.embedder = embedder or SentenceEmbedder()
        self.batch_size = max(1, int(batch_size))
        self._model = None
        self._classes: List[str] = []

    def _load(self):
        if self._model is not None:
            return self._model
        classes_path = self.model_dir / CLASSES_FILE
        model_path = self.model_dir / MODEL_FILE
        if not classes_path.exists():
            raise ClassifierError(f"ML classifier classes.json not found at {classes_path}")
        if not model_path.exists():
            raise ClassifierError(f"ML classifier model not found at {model_path}")
        with classes_path.open("r", encoding="utf-8") as fp:
            self._classes = list(json.load(fp))
        with model_path.open("rb") as fp:
            self._model = pickle.load(fp)
        return self._model

    def classify(self, transactions):
        model = self._load()
        texts = [tx.description or "" for tx in transactions]
        preds: List[str] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start:start + self.batch_size]
            scores = model.predict_proba(embed_in_batches(self.embedder, batch, self.batch_size))
            for idx in np.argmax(scores, axis=1):
                preds.append(self._classes[idx] if idx < len(self._classes) else DEFAULT_CATEGORY)
        return preds
