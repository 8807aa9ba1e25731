# spendlens/summary_service.py
from __future__ import annotations

import logging
from typing import List, Optional

from spendlens.config import Settings
from spendlens.core.models import Transaction
from spendlens.exceptions import DataNotFoundError
from spendlens.storage import read_json, read_transactions, write_transactions

logger = logging.getLogger(__name__)

_LIST_SECTIONS = ("yearly_summary", "monthly_overview", "monthly_spending", "daily_spending",
                  "categories_list")
_DICT_DEFAULTS = {
    "category_breakdown": {"per_month": {}},
    "trends": {"monthly_trends": [], "recurring_bills": [], "monthly_recurring_bills": {}},
    "merchant_insights": {
        "top_merchants": [],
        "transaction_counts": {},
        "usage_over_time": {},
        "usage_over_time_by_category": {},
    },
    "anomalies": {"outliers": [], "spikes": [], "duplicates": []},
}


def load_transactions(settings: Settings) -> List[Transaction]:
    return read_transactions(settings.categorized_path)


def save_transactions(settings: Settings, transactions: List[Transaction]) -> int:
    return write_transactions(settings.categorized_path, transactions)


def get_summary(settings: Settings, month: Optional[str] = None) -> dict:
    """Load ``summary.json``, normalized so every section is present."""
    summary = read_json(settings.summary_path, default=None)
    if not isinstance(summary, dict):
        summary = {}

    for key in _LIST_SECTIONS:
        if not isinstance(summary.get(key), list):
            summary[key] = []
    for key, default in _DICT_DEFAULTS.items():
        value = summary.get(key)
        if not isinstance(value, dict):
            summary[key] = {k: (list(v) if isinstance(v, list) else dict(v)) for k, v in default.items()}
        else:
            for sub, sub_default in default.items():
                value.setdefault(sub, type(sub_default)())

    if month:
        summary["monthly_overview"] = [i for i in summary["monthly_overview"] if i.get("month") == month]
        summary["daily_spending"] = [
            d for d in summary["daily_spending"] if str(d.get("date", "")).startswith(month)
        ]
        per_month = summary["category_breakdown"]["per_month"]
        summary["category_breakdown"]["per_month"] = (
            {month: per_month[month]} if month in per_month else {}
        )
        trends = summary["trends"]
        trends["monthly_trends"] = [t for t in trends["monthly_trends"] if t.get("month") == month]
        trends["recurring_bills"] = trends["monthly_recurring_bills"].get(month, [])
    return summary


def export_qif(settings: Settings) -> str:
    """All categorized transactions as a QIF bank register."""
    if not settings.categorized_path.exists():
        raise DataNotFoundError("No transaction data")
    transactions = [t for t in load_transactions(settings) if t.date is not None]
    transactions.sort(key=lambda t: t.date)
    lines = ["!Type:Bank"]
    for tx in transactions:
        lines.append("D" + tx.date.strftime("%m/%d/%Y"))
        lines.append(f"T{tx.amount:.2f}")
        lines.append("P" + (tx.description or ""))
        if tx.notes:
            lines.append("M" + tx.notes)
        lines.append("L" + (tx.category or ""))
        lines.append("^")
    return "\n".join(lines)
