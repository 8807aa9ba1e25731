from datetime import date, timedelta

import pytest

from spendlens.core.models import Transaction
from spendlens.exceptions import DataNotFoundError
from spendlens.ingest import dedupe_transactions, merge_transactions, month_coverage, run_ingest
from spendlens.storage import read_transactions

from conftest import tx


def _every_day(year, month, days, amount=-1.0):
    start = date(year, month, 1)
    return [
        Transaction(date=start + timedelta(days=i), amount=amount, description=f"Shop {i}")
        for i in range(days)
    ]


def test_dedupe_prefers_bank_id():
    a = Transaction(date=date(2024, 1, 1), amount=-5.0, description="Cafe", orig_id="x1")
    b = Transaction(date=date(2024, 1, 2), amount=-7.0, description="Other", orig_id="x1")
    c = tx("2024-01-03", -2.0, "Bus")
    d = tx("2024-01-03", -2.0, "Bus")
    unique, duplicates = dedupe_transactions([a, b, c, d])
    assert unique == [a, c]
    assert duplicates == 2


def test_month_coverage_counts_distinct_days():
    txs = _every_day(2024, 2, 29) + _every_day(2024, 3, 10)
    coverage = month_coverage(txs)
    assert coverage["2024-02"] == 1.0
    assert coverage["2024-03"] == pytest.approx(10 / 31)


def test_merge_drops_invalid_dates_and_partial_months():
    existing = _every_day(2024, 1, 31)
    new = _every_day(2024, 2, 5) + [tx(None, -3.0, "No date")] + existing[:2]
    result = merge_transactions(existing, new, coverage_threshold=0.8)
    assert result.invalid_dates == 1
    assert result.duplicates == 2
    assert result.excluded_months == ["2024-02"]
    assert len(result.transactions) == 31
    assert {t.month for t in result.transactions} == {"2024-01"}


def test_run_ingest_merges_and_deletes_files(settings):
    (settings.import_dir / "moneyhub.csv").write_text(
        "DATE,DESCRIPTION,AMOUNT,CATEGORY\n"
        "2024-01-05,Tesco,-20.00,Groceries\n"
        "2024-01-06,Salary,1000.00,Income\n",
        encoding="utf-8",
    )
    (settings.import_dir / "notes.txt").write_text("hello", encoding="utf-8")

    result = run_ingest(settings)

    assert result.file_counts == {"moneyhub.csv": 2}
    assert result.importers_used == {"moneyhub.csv": "moneyhub"}
    assert result.default_classifiers == {"pass"}
    assert not (settings.import_dir / "moneyhub.csv").exists()
    assert (settings.import_dir / "notes.txt").exists()

    stored = read_transactions(settings.transactions_path)
    assert [t.description for t in stored] == ["Tesco", "Salary"]

    # re-importing the same rows does not duplicate them
    (settings.import_dir / "again.csv").write_text(
        "DATE,DESCRIPTION,AMOUNT\n2024-01-05,Tesco,-20.00\n", encoding="utf-8"
    )
    result = run_ingest(settings)
    assert result.duplicates == 1
    assert len(read_transactions(settings.transactions_path)) == 2


def test_run_ingest_missing_import_dir(settings, tmp_path):
    missing = settings.__class__(data_dir=settings.data_dir, import_dir=tmp_path / "nope")
    with pytest.raises(DataNotFoundError):
        run_ingest(missing)
