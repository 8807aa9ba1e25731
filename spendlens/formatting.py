# spendlens/formatting.py
"""Display helpers shared by the CLI report and the web templates."""
from __future__ import annotations

import os
from typing import Dict, Iterable, List, Optional

CURRENCY_SYMBOLS = {
    "USD": "$",
    "GBP": "£",
    "EUR": "€",
    "JPY": "¥",
    "CAD": "CA$",
    "AUD": "A$",
    "INR": "₹",
}

MONTH_ABBR = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sept", "Oct", "Nov", "Dec"]


def get_currency(override: Optional[str] = None) -> str:
    if override:
        return override
    return os.environ.get("DEFAULT_CURRENCY") or "GBP"


def currency_symbol(currency: Optional[str] = None) -> str:
    code = get_currency(currency)
    return CURRENCY_SYMBOLS.get(code.upper(), code)


def fmt_amount(value, currency: Optional[str] = None) -> str:
    """``-1234.5`` -> ``-£1,234.50``."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        number = 0.0
    sign = "-" if number < 0 else ""
    return f"{sign}{currency_symbol(currency)}{abs(number):,.2f}"


def fmt_month_year(ym) -> str:
    """``2025-01`` -> ``Jan 2025``."""
    if not ym or not isinstance(ym, str):
        return ""
    parts = ym.split("-")
    if len(parts) != 2:
        return ym
    year, month = parts
    try:
        name = MONTH_ABBR[int(month) - 1]
    except (ValueError, IndexError):
        return ym
    return f"{name} {year}"


def make_year_nav(years: Iterable[str], current: str) -> Dict[str, Optional[str]]:
    ordered = sorted(years or [])
    prev_year = next_year = None
    if current in ordered:
        idx = ordered.index(current)
        prev_year = ordered[idx - 1] if idx > 0 else None
        next_year = ordered[idx + 1] if idx < len(ordered) - 1 else None
    return {"prev_year": prev_year, "next_year": next_year}


def make_month_nav(months: Iterable[str], year: str, month) -> Dict[str, Optional[str]]:
    key = f"{year}-{str(month).zfill(2)}"
    ordered = sorted(months or [])
    nav: Dict[str, Optional[str]] = {
        "prev_year": None, "prev_month": None, "next_year": None, "next_month": None,
    }
    if key in ordered:
        idx = ordered.index(key)
        if idx > 0:
            nav["prev_year"], nav["prev_month"] = ordered[idx - 1].split("-")
        if idx < len(ordered) - 1:
            nav["next_year"], nav["next_month"] = ordered[idx + 1].split("-")
    return nav


def _period(item) -> str:
    if isinstance(item, dict):
        return item.get("month") or item.get("date") or ""
    return getattr(item, "month", "") or ""


def filter_by_month(items, month: Optional[str]) -> List:
    if not items or not month:
        return []
    out = []
    for item in items:
        if isinstance(item, dict) and item.get("month"):
            if item["month"] == month:
                out.append(item)
        elif _period(item).startswith(month):
            out.append(item)
    return out


def filter_by_year(items, year: Optional[str]) -> List:
    if not items or not year:
        return []
    prefix = f"{year}-"
    return [item for item in items if _period(item).startswith(prefix)]
