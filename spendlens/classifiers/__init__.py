# spendlens/classifiers/__init__.py
from importlib import import_module
from typing import Dict, List, Optional, Sequence

from spendlens.classifiers.base import DEFAULT_CATEGORY, BaseClassifier
from spendlens.classifiers.chain import ClassifierChain, categorize
from spendlens.config import Settings
from spendlens.exceptions import ClassifierError

CLASSIFIERS = {
    "rules": "spendlens.classifiers.rules.RulesClassifier",
    "pass": "spendlens.classifiers.passthrough.PassThroughClassifier",
    "emb": "spendlens.classifiers.embeddings.EmbeddingClassifier",
    "knn": "spendlens.classifiers.knn.KNNClassifier",
    "nn": "spendlens.classifiers.neural.NeuralClassifier",
    "ai": "spendlens.classifiers.llm.LLMClassifier",
}


def select_classifier(
    rules: bool = False,
    passthrough: bool = False,
    embeddings: bool = False,
    ai: bool = False,
) -> str:
    """Precedence: rules > pass > emb > ai; pass when nothing is requested."""
    if rules:
        return "rules"
    if passthrough or not (embeddings or ai):
        return "pass"
    if embeddings:
        return "emb"
    return "ai"


def _load_class(name: str):
    try:
        path = CLASSIFIERS[name]
    except KeyError:
        raise ClassifierError(
            f"Unknown classifier '{name}' (choose from {', '.join(CLASSIFIERS)})"
        ) from None
    module_name, cls_name = path.rsplit(".", 1)
    return getattr(import_module(module_name), cls_name)


def build_classifier(
    name: str,
    config: Dict[str, object],
    settings: Settings,
    embedder=None,
    client=None,
) -> BaseClassifier:
    name = name.strip().lower()
    cls = _load_class(name)
    categories = config.get("categories") or {}
    if name == "rules":
        return cls(categories)
    if name == "pass":
        return cls()
    if name == "emb":
        return cls(categories, embedder=embedder, batch_size=settings.embed_batch_size)
    if name == "knn":
        return cls(settings.knn_model_dir, embedder=embedder, batch_size=settings.embed_batch_size)
    if name == "nn":
        return cls(settings.nn_model_dir, embedder=embedder, batch_size=settings.embed_batch_size)
    return cls(
        categories,
        client=client,
        concurrency=settings.ai_concurrency,
        openai_api_key=settings.openai_api_key,
        openai_model=settings.openai_model,
    )


def build_chain(
    names: Sequence[str],
    config: Dict[str, object],
    settings: Settings,
    embedder=None,
    client=None,
) -> ClassifierChain:
    names = [n for n in names if n and n.strip()] or ["pass"]
    if embedder is None and any(n.strip().lower() in ("emb", "knn", "nn") for n in names):
        from spendlens.classifiers.embeddings import SentenceEmbedder

        # one model load shared by every embedding-based classifier
        embedder = SentenceEmbedder()
    classifiers: List[BaseClassifier] = [
        build_classifier(n, config, settings, embedder=embedder, client=client) for n in names
    ]
    return ClassifierChain(classifiers)


__all__ = [
    "CLASSIFIERS",
    "DEFAULT_CATEGORY",
    "BaseClassifier",
    "ClassifierChain",
    "build_chain",
    "build_classifier",
    "categorize",
    "select_classifier",
]
