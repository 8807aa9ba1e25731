# spendlens/importers/base.py
import re
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Dict, Iterable, Iterator, List, Optional

from spendlens.core.models import Transaction

_CLEAN_AMOUNT = re.compile(r"[^\d\-\.]")


def parse_amount(raw) -> float:
    """Lenient amount parsing: anything unparseable counts as 0.0."""
    if raw is None:
        return 0.0
    text = str(raw).strip()
    negative = text.startswith("(") and text.endswith(")")
    cleaned = _CLEAN_AMOUNT.sub("", text)
    try:
        value = float(cleaned)
    except ValueError:
        return 0.0
    return -abs(value) if negative else value


def parse_date(raw, formats: Iterable[str] = ("%Y-%m-%d",)) -> Optional[date]:
    if raw is None:
        return None
    text = str(raw).strip()
    if not text:
        return None
    for fmt in formats:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def column_lookup(columns: Iterable[str]):
    """Return a case-insensitive ``find(name)`` over ``columns``."""
    cols: Dict[str, str] = {str(c).strip().lower(): c for c in columns}

    def find(*names: str) -> Optional[str]:
        for name in names:
            if name.lower() in cols:
                return cols[name.lower()]
        return None

    return find


class BaseImporter(ABC):
    name: str = ""
    default_classifier: str = "pass"

    @abstractmethod
    def detect(self, headers: List[str]) -> bool:
        """Return True when the first line of a file looks like this format."""

    @abstractmethod
    def load(self, file_path: str) -> Iterator[Transaction]:
        """
        Yield Transaction instances from file_path.
        Rows whose date cannot be parsed are yielded with date=None.
        """
