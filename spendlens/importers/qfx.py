# spendlens/importers/qfx.py
import html
import re
from pathlib import Path

from spendlens.core.models import Transaction
from spendlens.importers.base import BaseImporter, parse_amount, parse_date

_TOKEN = re.compile(r"<(/?)([A-Za-z0-9.]+)>([^<]*)")


class QFXImporter(BaseImporter):
    """
    Loader for QFX / OFX statements (both the SGML and the XML flavour).

    Every <STMTTRN> block becomes a transaction:
      DTPOSTED  -> date (YYYYMMDD, optional time and timezone ignored)
      TRNAMT    -> amount
      NAME      -> description
      MEMO      -> notes
      CATEGORY  -> original category
      FITID     -> bank id
    OFX files carry no usable category, so keyword rules are the default.
    """
    name = "qfx"
    default_classifier = "rules"

    def detect(self, headers):
        if not isinstance(headers, list) or not headers:
            return False
        first = str(headers[0]).strip()
        return first.startswith("<?xml") or first.startswith("<OFX") or first.startswith("OFXHEADER")

    def load(self, file_path):
        content = Path(file_path).read_text(encoding="utf-8", errors="replace")
        current = None
        for closing, tag, value in _TOKEN.findall(content):
            tag = tag.upper()
            value = html.unescape(value.strip())
            if tag == "STMTTRN":
                if closing:
                    if current is not None:
                        yield _build(current)
                    current = None
                else:
                    current = {}
                continue
            if current is None or closing:
                continue
            current[tag] = value
        # SGML files may omit the final closing tag
        if current:
            yield _build(current)


def _build(fields):
    raw_date = fields.get("DTPOSTED", "")[:8]
    return Transaction(
        date=parse_date(raw_date, ("%Y%m%d",)),
        amount=parse_amount(fields.get("TRNAMT")),
        description=fields.get("NAME", ""),
        notes=fields.get("MEMO", ""),
        original_category=fields.get("CATEGORY", ""),
        orig_id=fields.get("FITID") or None,
    )
