# spendlens/classifiers/knn.py
"""
Embed+KNN classifier.

The model directory holds two files:

  meta.json       {"k": 5, "labels": [...], "dim": 384}
  embeddings.bin  len(labels) * dim little-endian float32 values, row-major

Prediction is a brute-force cosine search over every training vector followed
by a majority vote among the ``k`` nearest neighbours.
"""
from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np

from spendlens.classifiers.base import DEFAULT_CATEGORY, BaseClassifier
from spendlens.classifiers.embeddings import Embedder, SentenceEmbedder, embed_in_batches, l2_normalize
from spendlens.core.models import Transaction
from spendlens.exceptions import ClassifierError

logger = logging.getLogger(__name__)

META_FILE = "meta.json"
EMBEDDINGS_FILE = "embeddings.bin"
_FLOAT32_LE = np.dtype("<f4")


def majority_vote(labels: Sequence[str]) -> str:
    """Most common label; ties go to the label seen first (i.e. the nearest)."""
    if not labels:
        return DEFAULT_CATEGORY
    counts = Counter(labels)
    return counts.most_common(1)[0][0] or DEFAULT_CATEGORY


@dataclass
class KNNModel:
    k: int
    labels: List[str]
    embeddings: np.ndarray

    def __post_init__(self) -> None:
        self.embeddings = l2_normalize(self.embeddings) if len(self.labels) else self.embeddings

    @property
    def dim(self) -> int:
        return int(self.embeddings.shape[1]) if self.embeddings.ndim == 2 else 0

    @classmethod
    def load(cls, model_dir) -> "KNNModel":
        model_dir = Path(model_dir)
        meta_path = model_dir / META_FILE
        emb_path = model_dir / EMBEDDINGS_FILE
        if not meta_path.exists() or not emb_path.exists():
            raise ClassifierError(f"Embed+KNN model files not found in {model_dir}")
        with meta_path.open("r", encoding="utf-8") as fp:
            meta = json.load(fp)
        labels = list(meta.get("labels") or [])
        dim = meta.get("dim")
        if not dim:
            raise ClassifierError(f"Missing embedding dim in {meta_path}")
        flat = np.fromfile(emb_path, dtype=_FLOAT32_LE)
        expected = len(labels) * int(dim)
        if flat.size != expected:
            raise ClassifierError(
                f"Dimension mismatch between {META_FILE} and {EMBEDDINGS_FILE}: "
                f"expected {expected} values ({len(labels)} labels x {dim} dims), found {flat.size}. "
                "Re-run `spendlens train-knn` to regenerate the model files."
            )
        return cls(k=int(meta.get("k", 5)), labels=labels, embeddings=flat.reshape(len(labels), int(dim)))

    def save(self, model_dir) -> None:
        model_dir = Path(model_dir)
        model_dir.mkdir(parents=True, exist_ok=True)
        with (model_dir / META_FILE).open("w", encoding="utf-8") as fp:
            json.dump({"k": self.k, "labels": self.labels, "dim": self.dim}, fp, indent=2)
        self.embeddings.astype(_FLOAT32_LE).tofile(model_dir / EMBEDDINGS_FILE)

    def predict(self, vectors: np.ndarray) -> List[str]:
        queries = l2_normalize(vectors)
        if not self.labels:
            return [DEFAULT_CATEGORY] * len(queries)
        if queries.shape[1] != self.dim:
            raise ClassifierError(
                f"Query embeddings have {queries.shape[1]} dims but the KNN model expects {self.dim}"
            )
        sims = queries @ self.embeddings.T
        k = max(1, min(self.k, len(self.labels)))
        preds = []
        for row in sims:
            # stable sort keeps the training order between equal similarities
            nearest = np.argsort(-row, kind="stable")[:k]
            preds.append(majority_vote([self.labels[i] for i in nearest]))
        return preds


def train_knn(
    transactions: Sequence[Transaction],
    model_dir,
    embedder: Optional[Embedder] = None,
    k: int = 5,
    batch_size: int = 512,
) -> KNNModel:
    if not transactions:
        raise ClassifierError("No labeled transactions found to train on.")
    embedder = embedder or SentenceEmbedder()
    texts = [tx.description or "" for tx in transactions]
    labels = [tx.category or DEFAULT_CATEGORY for tx in transactions]
    logger.info("Embedding %d transactions in batches of %d...", len(texts), batch_size)
    vectors = embed_in_batches(embedder, texts, batch_size)
    model = KNNModel(k=k, labels=labels, embeddings=vectors)
    model.save(model_dir)
    logger.info("Embed+KNN model saved to %s", model_dir)
    return model


class KNNClassifier(BaseClassifier):
    name = "knn"

    def __init__(self, model_dir, embedder: Optional[Embedder] = None, batch_size: int = 512):
        self.model_dir = Path(model_dir)
        self.embedder = embedder or SentenceEmbedder()
        self.batch_size = max(1, int(batch_size))
        self._model: Optional[KNNModel] = None

    @property
    def model(self) -> KNNModel:
        if self._model is None:
            self._model = KNNModel.load(self.model_dir)
        return self._model

    def classify(self, transactions):
        model = self.model
        texts = [tx.description or "" for tx in transactions]
        logger.info(
            "Embedding & classifying %d txns in batches of %d...", len(texts), self.batch_size
        )
        preds: List[str] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start:start + self.batch_size]
            logger.debug("  batch %d-%d", start, start + len(batch) - 1)
            preds.extend(model.predict(embed_in_batches(self.embedder, batch, self.batch_size)))
        return [p or DEFAULT_CATEGORY for p in preds]
