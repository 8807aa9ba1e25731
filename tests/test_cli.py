import json

from click.testing import CliRunner

from spendlens.cli import main as cli
from spendlens.storage import read_transactions

MONEYHUB_CSV = (
    "DATE,DESCRIPTION,AMOUNT,CATEGORY\n"
    "2024-01-05,Tesco,-20.00,Groceries\n"
    "2024-01-06,Salary,1000.00,Income\n"
    "2024-01-07,Mystery shop,-3.00,\n"
)


def _invoke(tmp_path, *args, env=None):
    runner = CliRunner()
    base_env = {"IMPORT_DIR": str(tmp_path / "import"), "MONTH_COVERAGE": "0"}
    base_env.update(env or {})
    return runner.invoke(cli, ["--data-dir", str(tmp_path / "data"), *args], env=base_env)


def _write_import(tmp_path):
    import_dir = tmp_path / "import"
    import_dir.mkdir(exist_ok=True)
    (import_dir / "moneyhub.csv").write_text(MONEYHUB_CSV, encoding="utf-8")


def test_ingest_categorize_summary(tmp_path):
    _write_import(tmp_path)

    result = _invoke(tmp_path, "ingest")
    assert result.exit_code == 0, result.output
    assert "Saved 3 transaction(s)" in result.output

    result = _invoke(tmp_path, "categorize", "--pass")
    assert result.exit_code == 0, result.output
    categorized = read_transactions(tmp_path / "data" / "transactions_categorized.json")
    assert [t.category for t in categorized] == ["Groceries", "Income", "other"]

    result = _invoke(tmp_path, "summary")
    assert result.exit_code == 0, result.output
    summary = json.loads((tmp_path / "data" / "summary.json").read_text(encoding="utf-8"))
    assert summary["yearly_summary"][0]["total_income"] == 1000.0


def test_categorize_with_rules_chain(tmp_path):
    _write_import(tmp_path)
    assert _invoke(tmp_path, "ingest").exit_code == 0

    result = _invoke(tmp_path, "categorize", "--chain", "rules,pass")
    assert result.exit_code == 0, result.output
    categorized = read_transactions(tmp_path / "data" / "transactions_categorized.json")
    # "salary" is an Income keyword in the default rules
    assert [t.category for t in categorized] == ["Groceries", "Income", "other"]


def test_run_uses_importer_default(tmp_path):
    _write_import(tmp_path)
    result = _invoke(tmp_path, "run")
    assert result.exit_code == 0, result.output
    assert "with pass" in result.output
    assert "Upload & processing complete" in result.output
    assert (tmp_path / "data" / "summary.json").exists()


def test_generate_categories(tmp_path):
    _write_import(tmp_path)
    assert _invoke(tmp_path, "run").exit_code == 0
    result = _invoke(tmp_path, "generate-categories")
    assert result.exit_code == 0, result.output
    assert "Generated 3 categories" in result.output


def test_missing_input_exits_with_error(tmp_path):
    result = _invoke(tmp_path, "categorize")
    assert result.exit_code == 1
    assert "Error: Input file not found" in result.output


def test_unknown_classifier_exits_with_error(tmp_path):
    _write_import(tmp_path)
    assert _invoke(tmp_path, "ingest").exit_code == 0
    result = _invoke(tmp_path, "categorize", "--chain", "magic")
    assert result.exit_code == 1
    assert "Unknown classifier" in result.output


def test_ai_without_key_exits_with_error(tmp_path):
    _write_import(tmp_path)
    assert _invoke(tmp_path, "ingest").exit_code == 0
    result = _invoke(tmp_path, "categorize", "--ai",
                     env={"OPENAI_API_KEY": None, "SPENDLENS_LLM_PROVIDER": None})
    assert result.exit_code == 1
    assert "OPENAI_API_KEY" in result.output


def test_evaluate_skips_ai_without_key(tmp_path):
    _write_import(tmp_path)
    assert _invoke(tmp_path, "ingest").exit_code == 0
    result = _invoke(tmp_path, "evaluate", "--classifiers", "rules,ai",
                     env={"OPENAI_API_KEY": None, "SPENDLENS_LLM_PROVIDER": None})
    assert result.exit_code == 0, result.output
    assert "Skipping AI-based" in result.output
    assert "Classifier Comparison" in result.output
    assert "rules" in result.output
