from datetime import date

import numpy as np
import pytest

from spendlens.config import Settings, ensure_config_file
from spendlens.core.models import Transaction


class KeywordEmbedder:
    """Deterministic embedder: one dimension per keyword found in the text."""

    def __init__(self, keywords=("coffee", "tesco", "uber", "salary")):
        self.keywords = list(keywords)
        self.calls = 0

    def embed(self, texts):
        self.calls += 1
        rows = []
        for text in texts:
            lower = str(text).lower()
            rows.append([1.0 if k in lower else 0.0 for k in self.keywords] + [0.01])
        return np.asarray(rows, dtype=np.float32)


@pytest.fixture
def settings(tmp_path):
    s = Settings(
        data_dir=tmp_path / "data",
        import_dir=tmp_path / "import",
        month_coverage=0.0,
    )
    s.data_dir.mkdir(parents=True)
    s.import_dir.mkdir(parents=True)
    ensure_config_file(s.config_path)
    return s


@pytest.fixture
def embedder():
    return KeywordEmbedder()


def tx(day, amount, description, category=None, original_category="", notes=""):
    return Transaction(
        date=date.fromisoformat(day) if day else None,
        amount=amount,
        description=description,
        notes=notes,
        original_category=original_category,
        category=category,
    )
