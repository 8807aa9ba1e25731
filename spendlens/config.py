# spendlens/config.py
from __future__ import annotations

import copy
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from dotenv import load_dotenv

DEFAULT_CATEGORIES: Dict[str, List[str]] = {
    "Groceries": ["tesco", "sainsbury", "asda", "aldi", "lidl", "waitrose", "morrisons", "groceries"],
    "Eating out": ["restaurant", "cafe", "coffee", "pret", "deliveroo", "just eat", "uber eats", "eating out"],
    "Transport": ["tfl", "uber", "trainline", "fuel", "parking", "shell", "bp ", "transport"],
    "Bills": ["council tax", "water", "energy", "electric", "broadband", "mobile", "insurance", "bills"],
    "Rent & Mortgage": ["rent", "mortgage"],
    "Shopping": ["amazon", "ebay", "argos", "john lewis", "shopping"],
    "Entertainment": ["netflix", "spotify", "cinema", "steam", "entertainment"],
    "Health": ["pharmacy", "boots", "dentist", "gym", "health"],
    "Travel": ["airbnb", "hotel", "easyjet", "ryanair", "booking.com", "holiday"],
    "Income": ["salary", "payroll", "interest", "income"],
    "Transfers": ["transfer", "pot", "credit card payment"],
    "Savings": ["savings", "isa"],
}

DEFAULT_CATEGORY_GROUPS: Dict[str, List[str]] = {
    "Essentials": ["Groceries", "Transport", "Bills", "Rent & Mortgage", "Health"],
    "Lifestyle": ["Eating out", "Shopping", "Entertainment", "Travel"],
    "Internal": ["Transfers", "Savings", "Income"],
}

DEFAULT_CONFIG: Dict[str, object] = {
    "categories": DEFAULT_CATEGORIES,
    "budgets": {},
    "goals": {},
    "category_groups": DEFAULT_CATEGORY_GROUPS,
    "deductible_categories": [],
}

CONFIG_FILENAME = "config.yaml"

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if not value:
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return float(value)


@dataclass(frozen=True)
class Settings:
    """Runtime settings collected from the environment (and an optional .env)."""

    data_dir: Path = Path("data")
    import_dir: Path = Path("import")
    default_currency: str = "GBP"
    username: Optional[str] = None
    password: Optional[str] = None
    port: int = 3000
    month_coverage: float = 0.8
    ingest_format: Optional[str] = None
    start_month: Optional[str] = None
    end_month: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-3.5-turbo"
    ai_concurrency: int = 10
    embed_batch_size: int = 512
    classifier_flags: Dict[str, bool] = field(default_factory=dict)

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()
        return cls(
            data_dir=Path(os.environ.get("DATA_DIR") or "data").resolve(),
            import_dir=Path(os.environ.get("IMPORT_DIR") or "import").resolve(),
            default_currency=os.environ.get("DEFAULT_CURRENCY") or "GBP",
            username=os.environ.get("USERNAME") or None,
            password=os.environ.get("PASSWORD") or None,
            port=_env_int("PORT", 3000),
            month_coverage=_env_float("MONTH_COVERAGE", 0.8),
            ingest_format=os.environ.get("INGEST_FORMAT") or None,
            start_month=os.environ.get("START_MONTH") or None,
            end_month=os.environ.get("END_MONTH") or None,
            openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
            openai_model=os.environ.get("OPENAI_MODEL") or "gpt-3.5-turbo",
            ai_concurrency=_env_int("AI_CONCURRENCY", 10),
            embed_batch_size=_env_int("EMBED_BATCH_SIZE", 512),
            classifier_flags={
                "rules": _env_bool("USE_RULES"),
                "pass": _env_bool("USE_PASS"),
                "emb": _env_bool("USE_EMBEDDINGS"),
                "ai": _env_bool("USE_AI"),
            },
        )

    def with_data_dir(self, data_dir) -> "Settings":
        return replace(self, data_dir=Path(data_dir).resolve())

    @property
    def auth_enabled(self) -> bool:
        return bool(self.username and self.password)

    @property
    def config_path(self) -> Path:
        return self.data_dir / CONFIG_FILENAME

    @property
    def transactions_path(self) -> Path:
        return self.data_dir / "transactions.json"

    @property
    def categorized_path(self) -> Path:
        return self.data_dir / "transactions_categorized.json"

    @property
    def summary_path(self) -> Path:
        return self.data_dir / "summary.json"

    @property
    def knn_model_dir(self) -> Path:
        return self.data_dir / "tx-classifier-knn"

    @property
    def nn_model_dir(self) -> Path:
        return self.data_dir / "tx-classifier"


def _merge_defaults(current: Dict[str, object], defaults: Dict[str, object]) -> Dict[str, object]:
    """Add top-level keys missing from ``current``; user mappings are kept as-is."""
    merged = dict(current)
    for key, value in defaults.items():
        if key not in merged or merged[key] is None:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(path: Path) -> Dict[str, object]:
    path = Path(path)
    if not path.exists():
        return copy.deepcopy(DEFAULT_CONFIG)
    with path.open("r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp) or {}
    return _merge_defaults(data, DEFAULT_CONFIG)


def save_config(config: Dict[str, object], path: Path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fp:
        yaml.safe_dump(config, fp, sort_keys=False, allow_unicode=True)


def ensure_config_file(path: Path) -> Dict[str, object]:
    """Seed ``path`` with the default configuration when it does not exist."""
    path = Path(path)
    if path.exists():
        return load_config(path)
    config = copy.deepcopy(DEFAULT_CONFIG)
    save_config(config, path)
    return config


def load_default_categories(path: Path) -> Dict[str, object]:
    config = load_config(path)
    config["categories"] = copy.deepcopy(DEFAULT_CATEGORIES)
    save_config(config, path)
    return config


def add_category(path: Path, name: str, keywords: Optional[List[str]] = None) -> Dict[str, object]:
    config = load_config(path)
    categories: Dict[str, List[str]] = config.get("categories") or {}  # type: ignore[assignment]
    if name not in categories:
        categories[name] = list(keywords or [])
    config["categories"] = categories
    save_config(config, path)
    return config


def delete_category(path: Path, name: str) -> Dict[str, object]:
    config = load_config(path)
    categories: Dict[str, List[str]] = config.get("categories") or {}  # type: ignore[assignment]
    categories.pop(name, None)
    config["categories"] = categories
    save_config(config, path)
    return config


def rename_category(path: Path, old_name: str, new_name: str) -> Dict[str, object]:
    config = load_config(path)
    categories: Dict[str, List[str]] = config.get("categories") or {}  # type: ignore[assignment]
    if old_name in categories and new_name:
        # rebuild to keep the rule order stable
        categories = {
            (new_name if key == old_name else key): value for key, value in categories.items()
        }
    config["categories"] = categories
    save_config(config, path)
    return config


def set_categories(path: Path, categories: Dict[str, List[str]]) -> Dict[str, object]:
    config = load_config(path)
    config["categories"] = categories
    save_config(config, path)
    return config
