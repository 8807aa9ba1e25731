import json

import pytest

from spendlens.classifiers.neural import CLASSES_FILE, MODEL_FILE, NeuralClassifier, train_neural
from spendlens.exceptions import ClassifierError

from conftest import tx


def _labelled():
    rows = []
    for i in range(6):
        rows.append(tx("2024-01-01", -3.0, f"coffee {i}", category="Eating out"))
        rows.append(tx("2024-01-01", -20.0, f"tesco {i}", category="Groceries"))
        rows.append(tx("2024-01-01", -9.0, f"uber {i}", category="Transport"))
    return rows


def test_train_and_classify(tmp_path, embedder):
    model_dir = tmp_path / "nn"
    model = train_neural(
        _labelled(), model_dir, embedder=embedder, epochs=300, learning_rate=0.01, random_state=0
    )
    assert (model_dir / MODEL_FILE).exists()
    classes = json.loads((model_dir / CLASSES_FILE).read_text(encoding="utf-8"))
    assert classes == sorted(["Eating out", "Groceries", "Transport"])
    assert list(model.classes_) == classes

    classifier = NeuralClassifier(model_dir, embedder=embedder, batch_size=2)
    txs = [
        tx("2024-02-01", -1.0, "Coffee to go"),
        tx("2024-02-01", -1.0, "TESCO"),
        tx("2024-02-01", -1.0, "Uber"),
    ]
    assert classifier.classify(txs) == ["Eating out", "Groceries", "Transport"]


def test_train_needs_two_categories(tmp_path, embedder):
    with pytest.raises(ClassifierError):
        train_neural([], tmp_path / "nn", embedder=embedder)
    single = [tx("2024-01-01", -1.0, "coffee", category="Eating out")] * 3
    with pytest.raises(ClassifierError):
        train_neural(single, tmp_path / "nn", embedder=embedder)


def test_classify_without_model(tmp_path, embedder):
    classifier = NeuralClassifier(tmp_path / "missing", embedder=embedder)
    with pytest.raises(ClassifierError):
        classifier.classify([tx("2024-01-01", -1.0, "coffee")])
