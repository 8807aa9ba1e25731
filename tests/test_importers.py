from datetime import date

import pytest

from spendlens.exceptions import ImporterError
from spendlens.importers import detect_importer, get_importer, list_importers, peek_headers
from spendlens.importers.base import parse_amount


MONEYHUB_CSV = (
    "DATE,DESCRIPTION,AMOUNT,NOTES,CATEGORY,CATEGORY GROUP\n"
    "2024-01-05,Tesco Stores,-23.40,weekly shop,Groceries,Bills\n"
    "05/01/2024,Salary,\"2,500.00\",,Income,Income\n"
    "not a date,Broken row,-1.00,,,\n"
)

MONZO_CSV = (
    "transaction_id,account_id,date,amount,local_amount,description,name,category,notes\n"
    "tx_1,acc_1,2024-02-01 08:15:00,-3.20,-3.20,,Pret A Manger,eating_out,\n"
    "tx_2,acc_1,2024-02-02T12:00:00Z,-12.00,-12.00,TFL Travel,TfL,transport,commute\n"
)

QFX_SGML = """OFXHEADER:100
DATA:OFXSGML
<OFX>
<BANKTRANLIST>
<STMTTRN>
<TRNTYPE>DEBIT
<DTPOSTED>20240310120000[0:GMT]
<TRNAMT>-45.10
<FITID>A1
<NAME>AMAZON UK
<MEMO>order 123
</STMTTRN>
<STMTTRN>
<TRNTYPE>CREDIT
<DTPOSTED>20240311
<TRNAMT>100.00
<FITID>A2
<NAME>REFUND
</BANKTRANLIST>
</OFX>
"""

QFX_XML = """<?xml version="1.0" encoding="UTF-8"?>
<?OFX OFXHEADER="200" VERSION="220"?>
<OFX>
  <BANKMSGSRSV1><STMTTRNRS><STMTRS>
    <BANKTRANLIST>
      <STMTTRN>
        <TRNTYPE>DEBIT</TRNTYPE>
        <DTPOSTED>20240402</DTPOSTED>
        <TRNAMT>-18.75</TRNAMT>
        <FITID>X1</FITID>
        <NAME>M&amp;S SIMPLY FOOD</NAME>
        <MEMO>meal deal &lt;card&gt;</MEMO>
      </STMTTRN>
    </BANKTRANLIST>
  </STMTRS></STMTTRNRS></BANKMSGSRSV1>
</OFX>
"""

QIF_TEXT = """!Type:Bank
D03/15/2024
T-9.99
PNetflix
MMonthly plan
LEntertainment
^
D3/16'24
U1,200.00
PPayroll
^
"""


def test_parse_amount_handles_symbols_and_parentheses():
    assert parse_amount("£1,234.50") == 1234.50
    assert parse_amount("(12.00)") == -12.0
    assert parse_amount("") == 0.0
    assert parse_amount(None) == 0.0
    assert parse_amount("n/a") == 0.0


def test_unknown_importer_raises():
    with pytest.raises(ImporterError):
        get_importer("barclays")


def test_list_importers_in_detection_order():
    assert [i.name for i in list_importers()] == ["monzo", "moneyhub", "qfx", "qif"]


def test_moneyhub_load(tmp_path):
    path = tmp_path / "moneyhub.csv"
    path.write_text(MONEYHUB_CSV, encoding="utf-8")

    importer = detect_importer(peek_headers(path))
    assert importer.name == "moneyhub"
    assert importer.default_classifier == "pass"

    rows = list(importer.load(str(path)))
    assert len(rows) == 3
    assert rows[0].date == date(2024, 1, 5)
    assert rows[0].amount == -23.40
    assert rows[0].notes == "weekly shop"
    assert rows[0].original_category == "Groceries"
    assert rows[0].original_category_group == "Bills"
    assert rows[1].date == date(2024, 1, 5)
    assert rows[1].amount == 2500.0
    assert rows[2].date is None


def test_monzo_load_drops_time_and_keeps_id(tmp_path):
    path = tmp_path / "monzo.csv"
    path.write_text(MONZO_CSV, encoding="utf-8")

    importer = detect_importer(peek_headers(path))
    assert importer.name == "monzo"

    rows = list(importer.load(str(path)))
    assert [r.date for r in rows] == [date(2024, 2, 1), date(2024, 2, 2)]
    assert rows[0].description == "Pret A Manger"
    assert rows[0].orig_id == "tx_1"
    assert rows[1].description == "TFL Travel"
    assert rows[1].original_category == "transport"


def test_qfx_load_sgml(tmp_path):
    path = tmp_path / "statement.qfx"
    path.write_text(QFX_SGML, encoding="utf-8")

    importer = detect_importer(peek_headers(path))
    assert importer.name == "qfx"
    assert importer.default_classifier == "rules"

    rows = list(importer.load(str(path)))
    assert len(rows) == 2
    assert rows[0].date == date(2024, 3, 10)
    assert rows[0].amount == -45.10
    assert rows[0].description == "AMAZON UK"
    assert rows[0].notes == "order 123"
    assert rows[0].orig_id == "A1"
    assert rows[1].amount == 100.0



def test_qfx_load_xml_decodes_escapes(tmp_path):
    path = tmp_path / "statement.ofx"
    path.write_text(QFX_XML, encoding="utf-8")

    importer = detect_importer(peek_headers(path))
    assert importer.name == "qfx"

    rows = list(importer.load(str(path)))
    assert len(rows) == 1
    assert rows[0].date == date(2024, 4, 2)
    assert rows[0].amount == -18.75
    assert rows[0].description == "M&S SIMPLY FOOD"
    assert rows[0].notes == "meal deal <card>"
    assert rows[0].orig_id == "X1"

def test_qif_load(tmp_path):
    path = tmp_path / "export.qif"
    path.write_text(QIF_TEXT, encoding="utf-8")

    importer = detect_importer(peek_headers(path))
    assert importer.name == "qif"

    rows = list(importer.load(str(path)))
    assert len(rows) == 2
    assert rows[0].date == date(2024, 3, 15)
    assert rows[0].amount == -9.99
    assert rows[0].description == "Netflix"
    assert rows[0].original_category == "Entertainment"
    assert rows[1].date == date(2024, 3, 16)
    assert rows[1].amount == 1200.0


def test_detect_unknown_headers():
    assert detect_importer(["foo", "bar"]) is None
