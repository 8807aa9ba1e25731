# spendlens/classifiers/embeddings.py
from __future__ import annotations

import logging
import os
from typing import Dict, List, Optional, Protocol, Sequence

import numpy as np

from spendlens.classifiers.base import DEFAULT_CATEGORY, BaseClassifier

logger = logging.getLogger(__name__)

DEFAULT_EMBEDDING_MODEL = "sentence-transformers/all-MiniLM-L6-v2"


class Embedder(Protocol):
    def embed(self, texts: Sequence[str]) -> np.ndarray:
        """Return one row vector per text."""


class SentenceEmbedder:
    """Mean-pooled sentence embeddings from a sentence-transformers model."""

    def __init__(self, model_name: Optional[str] = None):
        self.model_name = model_name or os.environ.get(
            "SPENDLENS_EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL
        )
        self._model = None

    @property
    def model(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            logger.info("Loading embedding model %s...", self.model_name)
            self._model = SentenceTransformer(self.model_name)
        return self._model

    def embed(self, texts: Sequence[str]) -> np.ndarray:
        vectors = self.model.encode(list(texts), convert_to_numpy=True, show_progress_bar=False)
        return np.asarray(vectors, dtype=np.float32)


def l2_normalize(matrix: np.ndarray) -> np.ndarray:
    """Scale rows to unit length so cosine similarity becomes a dot product."""
    matrix = np.atleast_2d(np.asarray(matrix, dtype=np.float32))
    norms = np.sqrt((matrix * matrix).sum(axis=1, keepdims=True))
    return matrix / (norms + 1e-8)


def embed_in_batches(embedder: Embedder, texts: Sequence[str], batch_size: int = 512) -> np.ndarray:
    batch_size = max(1, int(batch_size))
    chunks = []
    for start in range(0, len(texts), batch_size):
        batch = list(texts[start:start + batch_size])
        logger.debug("  embedding batch %d-%d", start, start + len(batch) - 1)
        chunks.append(np.atleast_2d(np.asarray(embedder.embed(batch), dtype=np.float32)))
    if not chunks:
        return np.zeros((0, 0), dtype=np.float32)
    return np.vstack(chunks)


class EmbeddingClassifier(BaseClassifier):
    """Nearest category label in embedding space (no training data needed)."""

    name = "emb"

    def __init__(self, categories: Dict[str, List[str]], embedder: Optional[Embedder] = None,
                 batch_size: int = 512):
        self.labels = list(categories or {})
        self.embedder = embedder or SentenceEmbedder()
        self.batch_size = batch_size

    def classify(self, transactions):
        if not transactions:
            return []
        if not self.labels:
            return [DEFAULT_CATEGORY for _ in transactions]
        logger.info("Embedding %d category labels...", len(self.labels))
        label_vecs = np.atleast_2d(np.asarray(self.embedder.embed(self.labels), dtype=np.float32))
        logger.info("Embedding %d transactions...", len(transactions))
        texts = [tx.description or "" for tx in transactions]
        tx_vecs = embed_in_batches(self.embedder, texts, self.batch_size)
        scores = tx_vecs @ label_vecs.T
        best = scores.argmax(axis=1)
        return [self.labels[i] for i in best]
