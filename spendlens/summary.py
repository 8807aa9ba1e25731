# spendlens/summary.py
"""
Summary reports over categorized transactions.

Every generator is a pure function. Money values are rounded to two decimals
and expenses are reported as positive magnitudes.
"""
from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional, Sequence

import pandas as pd

from spendlens.config import Settings, load_config
from spendlens.core.models import Transaction
from spendlens.formatting import fmt_amount, get_currency
from spendlens.storage import read_transactions, write_json

logger = logging.getLogger(__name__)

OTHER_EXPENSES = "Other expenses"
DEFAULT_INTERNAL_CATEGORIES = ["Transfers", "Savings", "Income"]


def _r(value: float) -> float:
    return round(float(value), 2)


def _expense_category(tx: Transaction) -> str:
    return tx.category or OTHER_EXPENSES


def _mean_sd(values: Sequence[float]):
    """Mean and population standard deviation."""
    mean = sum(values) / len(values)
    sd = math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))
    return mean, sd


def monthly_data(transactions: Sequence[Transaction]) -> Dict[str, dict]:
    monthly: Dict[str, dict] = {}
    for tx in transactions:
        if tx.date is None:
            continue
        data = monthly.setdefault(tx.month, {"income": 0.0, "expenses": 0.0, "categories": {}})
        amount = tx.amount or 0.0
        if not tx.is_expense:
            data["income"] += amount
        else:
            expense = abs(amount)
            data["expenses"] += expense
            cat = _expense_category(tx)
            data["categories"][cat] = data["categories"].get(cat, 0.0) + expense
    return monthly


def monthly_overview(monthly: Dict[str, dict]) -> List[dict]:
    out = []
    for month in sorted(monthly, reverse=True):
        data = monthly[month]
        net = data["income"] - data["expenses"]
        rate = net / data["income"] * 100 if data["income"] else 0.0
        top = sorted(data["categories"].items(), key=lambda kv: kv[1], reverse=True)[:5]
        out.append({
            "month": month,
            "total_income": _r(data["income"]),
            "total_expenses": _r(data["expenses"]),
            "net_cash_flow": _r(net),
            "savings_rate": _r(rate),
            "top_categories": [{"category": c, "amount": _r(a)} for c, a in top],
        })
    return out


def monthly_spending(monthly: Dict[str, dict], category_groups: Optional[dict] = None) -> List[dict]:
    """Expenses per month, newest first, without the internal categories."""
    internal = (category_groups or {}).get("Internal") or DEFAULT_INTERNAL_CATEGORIES
    skip = set(internal)
    out = []
    for month in sorted(monthly, reverse=True):
        cats = monthly[month]["categories"]
        total = sum(amount for cat, amount in cats.items() if cat not in skip)
        out.append({"month": month, "spending": _r(total)})
    return out


def category_breakdown(monthly: Dict[str, dict], budgets: Optional[dict] = None) -> dict:
    budgets = budgets or {}
    months = sorted(monthly)
    per_month = {}
    for idx, month in enumerate(months):
        cats = monthly[month]["categories"]
        prev = monthly[months[idx - 1]]["categories"] if idx > 0 else {}
        entry = {
            "categories": {c: _r(a) for c, a in cats.items()},
            "change_vs_previous": {c: _r(a - prev.get(c, 0.0)) for c, a in cats.items()},
            "budget_vs_actual": {},
        }
        for cat, budget in budgets.items():
            actual = cats.get(cat, 0.0)
            entry["budget_vs_actual"][cat] = {
                "budget": budget,
                "actual": _r(actual),
                "variance": _r(actual - budget),
                "pct_used": _r(actual / budget * 100) if budget else None,
            }
        per_month[month] = entry
    return {"per_month": per_month}


def _bill_item(description: str, category: str, txs: List[Transaction]) -> dict:
    total = sum(abs(t.amount) for t in txs)
    return {
        "description": description,
        "category": category,
        "occurrences": len(txs),
        "total": _r(total),
        "avg_amount": _r(total / len(txs)),
    }


def trends(monthly: Dict[str, dict], transactions: Sequence[Transaction]) -> dict:
    months = sorted(monthly)
    monthly_trends = [
        {"month": m, "income": _r(monthly[m]["income"]), "expenses": _r(monthly[m]["expenses"])}
        for m in months
    ]

    groups: Dict[tuple, List[Transaction]] = {}
    by_month: Dict[str, Dict[tuple, List[Transaction]]] = {}
    for tx in transactions:
        if tx.is_expense:
            key = (tx.description, tx.category or "")
            groups.setdefault(key, []).append(tx)
            if tx.date is not None:
                by_month.setdefault(tx.month, {}).setdefault(key, []).append(tx)

    recurring = [_bill_item(d, c, txs) for (d, c), txs in groups.items() if len(txs) >= 3]

    monthly_recurring = {}
    for month in months:
        items = []
        for item in recurring:
            key = (item["description"], item["category"])
            txs = by_month.get(month, {}).get(key)
            if txs:
                items.append(_bill_item(item["description"], item["category"], txs))
        monthly_recurring[month] = items

    return {
        "monthly_trends": monthly_trends,
        "recurring_bills": recurring,
        "monthly_recurring_bills": monthly_recurring,
    }


def lifestyle_summary(monthly: Dict[str, dict], category_groups: Optional[dict] = None) -> Optional[List[dict]]:
    groups = category_groups or {}
    if not groups.get("Essentials") or not groups.get("Lifestyle"):
        return None
    out = []
    for month in sorted(monthly):
        data = monthly[month]
        essentials = sum(data["categories"].get(c, 0.0) for c in groups["Essentials"])
        lifestyle = sum(data["categories"].get(c, 0.0) for c in groups["Lifestyle"])
        income = data["income"]
        out.append({
            "month": month,
            "essentials": _r(essentials),
            "lifestyle": _r(lifestyle),
            "discretionary_pct": _r(lifestyle / income * 100) if income else None,
            "wants_vs_needs": {"wants": _r(lifestyle), "needs": _r(essentials)},
        })
    return out


def merchant_insights(transactions: Sequence[Transaction]) -> dict:
    spend: Dict[str, float] = {}
    counts: Dict[str, int] = {}
    usage: Dict[str, Dict[str, float]] = {}
    usage_by_cat: Dict[str, Dict[str, Dict[str, float]]] = {}
    for tx in transactions:
        if not tx.is_expense or tx.date is None:
            continue
        merchant = tx.description or "Unknown"
        amount = abs(tx.amount)
        spend[merchant] = spend.get(merchant, 0.0) + amount
        counts[merchant] = counts.get(merchant, 0) + 1
        months = usage.setdefault(merchant, {})
        months[tx.month] = _r(months.get(tx.month, 0.0) + amount)
        cats = usage_by_cat.setdefault(merchant, {}).setdefault(tx.month, {})
        cat = _expense_category(tx)
        cats[cat] = _r(cats.get(cat, 0.0) + amount)

    top = sorted(spend.items(), key=lambda kv: kv[1], reverse=True)[:5]
    return {
        "top_merchants": [{"merchant": m, "total": _r(t)} for m, t in top],
        "transaction_counts": counts,
        "usage_over_time": usage,
        "usage_over_time_by_category": usage_by_cat,
    }


def budget_adherence(monthly: Dict[str, dict], budgets: Optional[dict] = None) -> Optional[dict]:
    if not budgets:
        return None
    out = {}
    for month in sorted(monthly):
        cats = monthly[month]["categories"]
        out[month] = {}
        for cat, budget in budgets.items():
            actual = cats.get(cat, 0.0)
            out[month][cat] = {
                "budget": budget,
                "actual": _r(actual),
                "remaining": _r(budget - actual),
                "pct_used": _r(actual / budget * 100) if budget else None,
            }
    return out


def savings_goals(transactions: Sequence[Transaction], goals: Optional[dict] = None) -> Optional[dict]:
    if not goals:
        return None
    out = {}
    for name, goal in goals.items():
        category = (goal or {}).get("category")
        target = (goal or {}).get("target")
        relevant = [t for t in transactions if t.category == category]
        actual = sum(abs(t.amount) for t in relevant)
        contributions: Dict[str, float] = {}
        for t in relevant:
            if t.date is not None:
                contributions[t.month] = _r(contributions.get(t.month, 0.0) + abs(t.amount))
        out[name] = {
            "category": category,
            "target": target,
            "actual": _r(actual),
            "progress_pct": _r(actual / target * 100) if target else None,
            "monthly_contributions": contributions,
        }
    return out


def anomalies(transactions: Sequence[Transaction], monthly: Dict[str, dict]) -> dict:
    values: Dict[str, List[float]] = {}
    for tx in transactions:
        if tx.is_expense:
            values.setdefault(_expense_category(tx), []).append(abs(tx.amount))
    stats = {cat: _mean_sd(vals) for cat, vals in values.items()}

    outliers = []
    for tx in transactions:
        if not tx.is_expense:
            continue
        cat = _expense_category(tx)
        amount = abs(tx.amount)
        mean, sd = stats[cat]
        flagged = abs(amount - mean) > 2 * sd if sd > 0 else amount > mean
        if flagged:
            outliers.append({
                "date": tx.date.isoformat() if tx.date else None,
                "description": tx.description or "",
                "category": cat,
                "amount": _r(amount),
                "mean": _r(mean),
                "sd": _r(sd),
            })

    series: Dict[str, List[tuple]] = {}
    for month, data in monthly.items():
        for cat, amount in data["categories"].items():
            series.setdefault(cat, []).append((month, amount))
    spikes = []
    for cat, points in series.items():
        mean, sd = _mean_sd([amount for _, amount in points])
        for month, amount in points:
            if amount > mean + 2 * sd:
                spikes.append({
                    "category": cat,
                    "month": month,
                    "amount": _r(amount),
                    "mean": _r(mean),
                    "sd": _r(sd),
                })

    seen: Dict[tuple, int] = {}
    for tx in transactions:
        key = (tx.date.isoformat() if tx.date else None, tx.amount, tx.description)
        seen[key] = seen.get(key, 0) + 1
    duplicates = [
        {"date": d, "amount": a, "description": desc, "occurrences": n}
        for (d, a, desc), n in seen.items()
        if n > 1
    ]
    return {"outliers": outliers, "spikes": spikes, "duplicates": duplicates}


def yearly_summary(transactions: Sequence[Transaction], deductible_categories: Optional[list] = None) -> List[dict]:
    deductible = list(deductible_categories or [])
    years: Dict[str, dict] = {}
    for tx in transactions:
        if tx.date is None:
            continue
        data = years.setdefault(tx.year, {"income": 0.0, "expenses": 0.0, "categories": {}})
        if not tx.is_expense:
            data["income"] += tx.amount
        else:
            expense = abs(tx.amount)
            data["expenses"] += expense
            cat = _expense_category(tx)
            data["categories"][cat] = data["categories"].get(cat, 0.0) + expense

    out = []
    ordered = sorted(years)
    for idx, year in enumerate(ordered):
        data = years[year]
        net = data["income"] - data["expenses"]
        rate = net / data["income"] * 100 if data["income"] else 0.0
        changes = {"increased": [], "decreased": []}
        yoy = None
        if idx > 0:
            prev = years[ordered[idx - 1]]
            for cat, amount in data["categories"].items():
                diff = amount - prev["categories"].get(cat, 0.0)
                if diff > 0:
                    changes["increased"].append({"category": cat, "change": _r(diff)})
                elif diff < 0:
                    changes["decreased"].append({"category": cat, "change": _r(diff)})
            prev_net = prev["income"] - prev["expenses"]
            prev_rate = prev_net / prev["income"] * 100 if prev["income"] else 0.0
            yoy = {
                "income_diff": _r(data["income"] - prev["income"]),
                "expenses_diff": _r(data["expenses"] - prev["expenses"]),
                "net_diff": _r(net - prev_net),
                "savings_rate_diff": _r(rate - prev_rate),
            }
        deductible_total = (
            _r(sum(data["categories"].get(c, 0.0) for c in deductible)) if deductible else None
        )
        out.append({
            "year": year,
            "total_income": _r(data["income"]),
            "total_expenses": _r(data["expenses"]),
            "net_cash_flow": _r(net),
            "savings_rate": _r(rate),
            "category_changes": changes,
            "year_on_year_comparison": yoy,
            "tax_deductible_total": deductible_total,
        })
    return out


def daily_spending(transactions: Sequence[Transaction]) -> List[dict]:
    days: Dict[str, dict] = {}
    for tx in transactions:
        if not tx.is_expense or tx.date is None:
            continue
        day = days.setdefault(tx.date.isoformat(), {"total": 0.0, "categories": {}})
        amount = abs(tx.amount)
        day["total"] += amount
        cat = _expense_category(tx)
        day["categories"][cat] = day["categories"].get(cat, 0.0) + amount
    return [
        {
            "date": day,
            "spending": _r(days[day]["total"]),
            "by_category": [
                {"category": c, "amount": _r(a)} for c, a in days[day]["categories"].items()
            ],
        }
        for day in sorted(days)
    ]


def filter_by_month_range(
    transactions: Sequence[Transaction],
    start_month: Optional[str] = None,
    end_month: Optional[str] = None,
) -> List[Transaction]:
    """Keep transactions whose month is within the inclusive range."""
    out = list(transactions)
    if start_month:
        out = [t for t in out if t.date is not None and t.month >= start_month]
    if end_month:
        out = [t for t in out if t.date is not None and t.month <= end_month]
    return out


def generate_summary(
    transactions: Sequence[Transaction],
    config: Optional[dict] = None,
    start_month: Optional[str] = None,
    end_month: Optional[str] = None,
) -> dict:
    config = config or {}
    txs = filter_by_month_range(transactions, start_month, end_month)
    if start_month or end_month:
        logger.info(
            "Filtering transactions%s%s: %d records",
            f" from {start_month}" if start_month else "",
            f" to {end_month}" if end_month else "",
            len(txs),
        )
    budgets = config.get("budgets") or {}
    groups = config.get("category_groups") or {}
    monthly = monthly_data(txs)
    summary = {
        "monthly_overview": monthly_overview(monthly),
        "monthly_spending": monthly_spending(monthly, groups),
        "category_breakdown": category_breakdown(monthly, budgets),
        "trends": trends(monthly, txs),
        "lifestyle": lifestyle_summary(monthly, groups),
        "merchant_insights": merchant_insights(txs),
        "budget_adherence": budget_adherence(monthly, budgets),
        "savings_goals": savings_goals(txs, config.get("goals") or {}),
        "anomalies": anomalies(txs, monthly),
        "yearly_summary": yearly_summary(txs, config.get("deductible_categories") or []),
        "daily_spending": daily_spending(txs),
    }
    # dict.fromkeys keeps first-seen order
    summary["categories_list"] = list(dict.fromkeys(t.category for t in txs if t.category))
    return summary


def yearly_table(summary: dict, currency: Optional[str] = None) -> str:
    rows = [
        {
            "Year": y["year"],
            "Income": fmt_amount(y["total_income"], currency),
            "Expenses": fmt_amount(y["total_expenses"], currency),
            "Net": fmt_amount(y["net_cash_flow"], currency),
            "Savings %": f"{y['savings_rate']:.2f}",
        }
        for y in summary.get("yearly_summary") or []
    ]
    if not rows:
        return "No yearly data."
    return pd.DataFrame(rows).to_string(index=False)


def run_summary(
    settings: Settings,
    currency: Optional[str] = None,
    start_month: Optional[str] = None,
    end_month: Optional[str] = None,
) -> dict:
    """Summarize the categorized file into ``summary.json``."""
    transactions = read_transactions(settings.categorized_path, required=True)
    config = load_config(settings.config_path)
    summary = generate_summary(
        transactions,
        config,
        start_month=start_month or settings.start_month,
        end_month=end_month or settings.end_month,
    )
    write_json(settings.summary_path, summary)
    currency = get_currency(currency or settings.default_currency)
    logger.info("==== Yearly Summary ====\n%s", yearly_table(summary, currency))
    return summary
