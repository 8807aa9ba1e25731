import dataclasses
import json
from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from spendlens import config as config_manager
from spendlens.core.models import Transaction
from spendlens.storage import read_transactions, write_transactions
from webapp.main import create_app
from webapp.runner import RunResult

from conftest import tx


def _seed():
    return [
        tx("2023-01-10", 1000.0, "Salary", category="Income"),
        tx("2023-01-12", -100.0, "Tesco", category="Groceries"),
        tx("2023-01-20", -10.0, "Netflix", category="Entertainment"),
        tx("2023-02-12", -50.0, "Tesco", category="Groceries"),
        tx("2023-02-20", -10.0, "Netflix", category="Entertainment"),
        tx("2024-01-15", -80.0, "Tesco", category="Groceries"),
    ]


@pytest.fixture
def client(settings):
    write_transactions(settings.categorized_path, _seed())
    return TestClient(create_app(settings))


def test_startup_generates_summary(settings, client):
    assert settings.summary_path.exists()


def test_years_pages(client):
    response = client.get("/years")
    assert response.status_code == 200
    assert "Annual Summaries" in response.text
    assert 'href="/years/2023"' in response.text

    response = client.get("/years/2023")
    assert response.status_code == 200
    assert "2023 Summary" in response.text
    assert "Jan 2023" in response.text
    assert 'href="/years/2024"' in response.text

    response = client.get("/years/2023/insights")
    assert response.status_code == 200
    assert "2023 Insights" in response.text
    assert "recurring-table" in response.text


def test_unknown_year_renders_empty_page(client):
    response = client.get("/years/1999")
    assert response.status_code == 200
    assert "No data for year 1999" in response.text


def test_month_pages(client):
    response = client.get("/years/2023/01")
    assert response.status_code == 200
    assert "Summary for Jan 2023" in response.text
    assert 'href="/years/2023/02"' in response.text
    assert "category-breakdown-table" in response.text

    response = client.get("/years/2023/1/insights")
    assert response.status_code == 200
    assert "Insights for Jan 2023" in response.text
    assert 'href="/years/2023/02/insights"' in response.text

    response = client.get("/years/2023/01/category/Groceries")
    assert response.status_code == 200
    assert "Tesco" in response.text
    assert "Netflix" not in response.text


def test_dashboard(client):
    response = client.get("/?year=2023")
    assert response.status_code == 200
    assert "2023 Dashboard" in response.text
    assert "dashboardChart" in response.text


def test_api_summary(client):
    payload = client.get("/api/summary").json()
    for key in ("yearly_summary", "monthly_overview", "monthly_spending", "category_breakdown",
                "trends", "merchant_insights", "anomalies", "daily_spending", "categories_list"):
        assert key in payload

    monthly = client.get("/api/summary", params={"month": "2023-02"}).json()
    assert [m["month"] for m in monthly["monthly_overview"]] == ["2023-02"]


def test_transactions_newest_first(client):
    response = client.get("/transactions")
    assert response.status_code == 200
    assert 'class="tx-table"' in response.text
    assert response.text.index("2024-01-15") < response.text.index("2023-01-10")
    assert response.text.count('name="selected"') == 6


def test_transactions_filters(client):
    text = client.get("/transactions", params={"category": "Groceries"}).text
    assert text.count('name="selected"') == 3
    assert "Netflix" not in text.split('class="tx-table"')[1]

    text = client.get("/transactions", params={"year": "2023", "amount_max": "-20"}).text
    assert text.count('name="selected"') == 2

    text = client.get("/transactions", params={"date_from": "2023-02-01", "date_to": "2023-12-31"}).text
    assert text.count('name="selected"') == 2

    text = client.get("/transactions", params={"month": "01"}).text
    assert text.count('name="selected"') == 4


def test_transactions_pagination(settings):
    start = date(2023, 1, 1)
    rows = [
        Transaction(date=start + timedelta(days=i), amount=-1.0, description=f"Shop {i}", category="Shopping")
        for i in range(60)
    ]
    write_transactions(settings.categorized_path, rows)
    client = TestClient(create_app(settings))

    first = client.get("/transactions").text
    assert first.count('name="selected"') == 50
    assert "Page 1 of 2" in first

    second = client.get("/transactions", params={"page": 2}).text
    assert second.count('name="selected"') == 10
    assert "Page 2 of 2" in second

    # out of range pages are clamped
    assert "Page 2 of 2" in client.get("/transactions", params={"page": 9}).text


def test_bulk_delete_and_set_category(settings, client):
    response = client.post(
        "/transactions/bulk",
        data={"selected": ["1", "3"], "action": "set_category", "category": "Food",
              "redirect": "/transactions?category=Food"},
        follow_redirects=False,
    )
    assert response.status_code == 303
    assert response.headers["location"] == "/transactions?category=Food"
    stored = read_transactions(settings.categorized_path)
    assert [t.category for t in stored if t.description == "Tesco"] == ["Food", "Food", "Groceries"]
    summary = json.loads(settings.summary_path.read_text(encoding="utf-8"))
    assert "Food" in summary["categories_list"]

    response = client.post(
        "/years/2023/01/transactions/bulk",
        data={"selected": ["0"], "action": "delete", "redirect": "//evil.example"},
        follow_redirects=False,
    )
    assert response.status_code == 303
    assert response.headers["location"] == "/years/2023/01/transactions"
    stored = read_transactions(settings.categorized_path)
    assert len(stored) == 5
    assert stored[0].description == "Tesco"


def test_month_transactions_page(client):
    response = client.get("/years/2023/01/transactions")
    assert response.status_code == 200
    assert response.text.count('name="selected"') == 3
    assert 'action="/years/2023/01/transactions/bulk"' in response.text


def test_export(settings, client):
    assert client.get("/manage/export", params={"format": "csv"}).status_code == 400
    response = client.get("/manage/export", params={"format": "qif"})
    assert response.status_code == 200
    assert response.text.startswith("!Type:Bank")
    assert "export.qif" in response.headers["content-disposition"]


def test_export_without_data(settings):
    client = TestClient(create_app(settings))
    response = client.get("/manage/export", params={"format": "qif"})
    assert response.status_code == 404
    assert "No transaction data" in response.text


def test_not_found_page(client):
    response = client.get("/no/such/page/here/at/all")
    assert response.status_code == 404
    assert "Not Found" in response.text


def test_basic_auth(settings):
    secured = dataclasses.replace(settings, username="alice", password="pw")
    client = TestClient(create_app(secured))

    response = client.get("/years")
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == 'Basic realm="Protected"'
    assert client.get("/years", auth=("alice", "wrong")).status_code == 401
    assert client.get("/years", auth=("alice", "pw")).status_code == 200
    assert client.get("/static/styles.css").status_code == 401
    assert client.get("/static/styles.css", auth=("alice", "pw")).status_code == 200


def test_static_files_open_without_auth(client):
    assert client.get("/static/charts.js").status_code == 200


def test_bulk_edits_run_in_threadpool(monkeypatch, settings, client):
    calls = []

    async def fake_threadpool(func, *args, **kwargs):
        calls.append(func.__name__)
        return func(*args, **kwargs)

    monkeypatch.setattr("webapp.main.run_in_threadpool", fake_threadpool)
    response = client.post(
        "/transactions/bulk",
        data={"selected": ["0"], "action": "set_category", "category": "Pay"},
        follow_redirects=False,
    )
    assert response.status_code == 303
    assert calls == ["apply_bulk"]
    assert read_transactions(settings.categorized_path)[0].category == "Pay"


def test_pages_are_gzipped(client):
    response = client.get("/transactions", headers={"Accept-Encoding": "gzip"})
    assert response.status_code == 200
    assert response.headers["content-encoding"] == "gzip"
    assert "All Transactions" in response.text


def test_server_error_page(monkeypatch, client):
    def broken(*args, **kwargs):
        raise RuntimeError("summary exploded")

    monkeypatch.setattr("webapp.main.get_summary", broken)
    response = TestClient(client.app, raise_server_exceptions=False).get("/api/summary")
    assert response.status_code == 500
    assert "Internal Server Error" in response.text
    assert "summary exploded" not in response.text


def test_manage_categories(settings, client):
    assert "Manage Data" in client.get("/manage").text

    response = client.post("/manage/categories/add", data={"name": "Pets", "keywords": "vet, pet shop"},
                           follow_redirects=False)
    assert response.status_code == 303
    categories = config_manager.load_config(settings.config_path)["categories"]
    assert categories["Pets"] == ["vet", "pet shop"]

    response = client.post("/manage/categories/add", data={"name": "Pets"}, follow_redirects=False)
    assert "error=" in response.headers["location"]

    client.post("/manage/categories/rename", data={"old_name": "Pets", "new_name": "Animals"})
    client.post("/manage/categories/delete", data={"name": "Groceries"})
    categories = config_manager.load_config(settings.config_path)["categories"]
    assert "Animals" in categories
    assert "Pets" not in categories
    assert "Groceries" not in categories

    response = client.post("/manage/load-default-categories", follow_redirects=False)
    assert response.headers["location"] == "/manage?msg=defaults_loaded"
    assert "Default categories loaded." in client.get(response.headers["location"]).text
    assert "Groceries" in config_manager.load_config(settings.config_path)["categories"]


def test_reset(settings, client):
    response = client.post("/manage/reset", follow_redirects=False)
    assert response.status_code == 303
    assert not settings.categorized_path.exists()
    assert settings.config_path.exists()


def test_upload_runs_pipeline(settings, client):
    calls = []

    def fake_run(classifier=None):
        calls.append(classifier)
        return RunResult(status="success", timestamp="now", stdout="Upload & processing complete",
                         stderr="", returncode=0)

    client.app.state.runner.run_pipeline = fake_run
    csv = b"DATE,DESCRIPTION,AMOUNT,CATEGORY\n2024-02-01,Tesco,-5.00,Groceries\n"
    response = client.post("/manage", files=[("files", ("moneyhub.csv", csv, "text/csv"))])

    assert response.status_code == 200
    assert "Processing complete" in response.text
    assert "moneyhub.csv (moneyhub)" in response.text
    assert calls == ["pass"]
    assert (settings.import_dir / "moneyhub.csv").read_bytes() == csv


def test_upload_requires_files(client):
    assert client.post("/manage").status_code == 400
