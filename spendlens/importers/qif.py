# spendlens/importers/qif.py
from pathlib import Path

from spendlens.core.models import Transaction
from spendlens.importers.base import BaseImporter, parse_amount, parse_date

_DATE_FORMATS = ("%m/%d/%Y", "%m/%d/%y", "%m-%d-%Y", "%Y-%m-%d", "%d/%m/%Y")


class QIFImporter(BaseImporter):
    """
    Loader for QIF (Quicken Interchange Format) files.

    Records are terminated by a line holding ``^``. Recognised codes:
      D date, T/U amount, P payee (description), M memo (notes), L category.
    Other codes are ignored.
    """
    name = "qif"
    default_classifier = "rules"

    def detect(self, headers):
        return (
            isinstance(headers, list)
            and len(headers) > 0
            and str(headers[0]).strip().startswith("!Type:")
        )

    def load(self, file_path):
        current = {}
        with Path(file_path).open("r", encoding="utf-8", errors="replace") as f:
            for raw in f:
                line = raw.strip()
                if not line or line.startswith("!"):
                    continue
                code, value = line[0], line[1:].strip()
                if code == "D":
                    current["date"] = parse_qif_date(value)
                elif code in ("T", "U"):
                    current["amount"] = parse_amount(value.replace(",", ""))
                elif code == "P":
                    current["description"] = value
                elif code == "M":
                    current["notes"] = value
                elif code == "L":
                    current["original_category"] = value
                elif code == "^":
                    yield Transaction(
                        date=current.get("date"),
                        amount=current.get("amount", 0.0),
                        description=current.get("description", ""),
                        notes=current.get("notes", ""),
                        original_category=current.get("original_category", ""),
                    )
                    current = {}


def parse_qif_date(value):
    # Quicken writes two-digit years after an apostrophe, e.g. 1/ 5'24
    text = value.replace("'", "/").replace(" ", "")
    return parse_date(text, _DATE_FORMATS)
