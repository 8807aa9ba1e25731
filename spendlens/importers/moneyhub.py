# spendlens/importers/moneyhub.py
import pandas as pd

from spendlens.core.models import Transaction
from spendlens.importers.base import BaseImporter, column_lookup, parse_amount, parse_date

_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%Y/%m/%d")


class MoneyhubImporter(BaseImporter):
    """
    Loader for Moneyhub CSV exports.

    Expected headers (any case): DATE, DESCRIPTION, AMOUNT and optionally
    NOTES, CATEGORY, CATEGORY GROUP. Moneyhub already categorizes
    transactions, so its category is passed through by default.
    """
    name = "moneyhub"
    default_classifier = "pass"

    def detect(self, headers):
        ups = [str(h or "").strip().upper() for h in headers]
        return "DATE" in ups and "DESCRIPTION" in ups and "AMOUNT" in ups

    def load(self, file_path):
        df = pd.read_csv(
            file_path,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            encoding="utf-8-sig",
        )
        find = column_lookup(df.columns)
        date_col = find("date")
        amt_col = find("amount")
        desc_col = find("description")
        notes_col = find("notes")
        cat_col = find("category")
        group_col = find("category group", "categorygroup")

        for _, row in df.iterrows():
            raw_date = row[date_col] if date_col else ""
            yield Transaction(
                date=_parse_moneyhub_date(raw_date),
                amount=parse_amount(row[amt_col]) if amt_col else 0.0,
                description=str(row[desc_col]).strip() if desc_col else "",
                notes=str(row[notes_col]).strip() if notes_col else "",
                original_category=str(row[cat_col]).strip() if cat_col else "",
                original_category_group=str(row[group_col]).strip() if group_col else "",
            )


def _parse_moneyhub_date(raw):
    d = parse_date(str(raw).strip()[:10], _DATE_FORMATS)
    if d is not None or not str(raw).strip():
        return d
    parsed = pd.to_datetime(raw, errors="coerce", dayfirst=True)
    return None if pd.isna(parsed) else parsed.date()
