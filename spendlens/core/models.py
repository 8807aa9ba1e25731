# spendlens/core/models.py
from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from datetime import date
from typing import Optional


def _parse_iso_date(value) -> Optional[date]:
    if isinstance(value, date):
        return value
    if not value:
        return None
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


@dataclass
class Transaction:
    date: Optional[date]
    amount: float
    description: str
    notes: str = ""
    original_category: str = ""
    original_category_group: str = ""
    category: Optional[str] = None
    orig_id: Optional[str] = None

    @property
    def month(self) -> str:
        return self.date.strftime("%Y-%m") if self.date else ""

    @property
    def year(self) -> str:
        return self.date.strftime("%Y") if self.date else ""

    @property
    def is_expense(self) -> bool:
        return (self.amount or 0.0) < 0

    def dedupe_key(self) -> tuple:
        """Bank id when the export has one, else (date, amount, description)."""
        if self.orig_id:
            return ("orig_id", self.orig_id)
        return (self.date, self.amount, self.description)

    def with_category(self, category: Optional[str]) -> "Transaction":
        return replace(self, category=category)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["date"] = self.date.isoformat() if self.date else None
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Transaction":
        try:
            amount = float(data.get("amount") or 0.0)
        except (TypeError, ValueError):
            amount = 0.0
        return cls(
            date=_parse_iso_date(data.get("date")),
            amount=amount,
            description=data.get("description") or "",
            notes=data.get("notes") or "",
            original_category=data.get("original_category") or "",
            original_category_group=data.get("original_category_group") or "",
            category=data.get("category"),
            orig_id=data.get("orig_id"),
        )
