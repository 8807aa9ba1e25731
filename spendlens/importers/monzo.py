# spendlens/importers/monzo.py
import pandas as pd

from spendlens.core.models import Transaction
from spendlens.importers.base import BaseImporter, column_lookup, parse_amount, parse_date

_DATE_FORMATS = ("%Y/%m/%d", "%Y-%m-%d", "%d/%m/%Y")


class MonzoImporter(BaseImporter):
    """
    Loader for Monzo CSV exports.

    Detected by the ``account_id`` and ``local_amount`` columns. The ``date``
    column may carry a trailing time, which is dropped: rollups are per day.
    ``transaction_id`` is kept as the bank id used for de-duplication.
    """
    name = "monzo"
    default_classifier = "pass"

    def detect(self, headers):
        if not isinstance(headers, list):
            return False
        hs = [str(h or "").strip().lower() for h in headers]
        return "account_id" in hs and "local_amount" in hs

    def load(self, file_path):
        df = pd.read_csv(file_path, dtype=str, keep_default_na=False, encoding="utf-8-sig")
        find = column_lookup(df.columns)
        date_col = find("date")
        amt_col = find("amount")
        desc_col = find("description")
        merchant_col = find("merchant", "name")
        notes_col = find("notes")
        cat_col = find("category")
        id_col = find("transaction_id", "id")

        for _, row in df.iterrows():
            raw_date = str(row[date_col]).strip() if date_col else ""
            date_part = raw_date.split(" ")[0].split("T")[0]
            description = str(row[desc_col]).strip() if desc_col else ""
            if not description and merchant_col:
                description = str(row[merchant_col]).strip()
            orig_id = str(row[id_col]).strip() if id_col else ""
            yield Transaction(
                date=parse_date(date_part, _DATE_FORMATS),
                amount=parse_amount(row[amt_col]) if amt_col else 0.0,
                description=description,
                notes=str(row[notes_col]).strip() if notes_col else "",
                original_category=str(row[cat_col]).strip() if cat_col else "",
                orig_id=orig_id or None,
            )
