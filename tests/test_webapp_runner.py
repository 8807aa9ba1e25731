import sys
from types import SimpleNamespace

import pytest

from webapp.runner import PipelineRunner


def test_runner_invokes_pipeline(settings, monkeypatch):
    calls = {}

    def fake_run(cmd, capture_output, text, env):
        calls["cmd"] = cmd
        calls["env"] = env
        return SimpleNamespace(returncode=0, stdout="ok", stderr="")

    monkeypatch.setattr("webapp.runner.subprocess.run", fake_run)

    runner = PipelineRunner(settings)
    result = runner.run_pipeline("rules")

    assert calls["cmd"][:3] == [sys.executable, "-m", "spendlens"]
    assert calls["cmd"][-3:] == ["run", "--classifier", "rules"]
    assert calls["env"]["IMPORT_DIR"] == str(settings.import_dir)
    assert result.status == "success"
    assert (settings.data_dir / "last_run.json").exists()
    assert (settings.data_dir / "last_run.log").read_text(encoding="utf-8") == "ok"

    persisted_runner = PipelineRunner(settings)
    assert persisted_runner.last_result is not None
    assert persisted_runner.last_result.status == "success"
    assert persisted_runner.last_result.classifier == "rules"
    assert persisted_runner.status_payload()["running"] is False


def test_runner_reports_failure(settings, monkeypatch):
    monkeypatch.setattr(
        "webapp.runner.subprocess.run",
        lambda *a, **k: SimpleNamespace(returncode=1, stdout="", stderr="Error: boom"),
    )
    result = PipelineRunner(settings).run_pipeline()
    assert result.status == "failure"
    assert result.combined_output == "Error: boom"


def test_runner_rejects_parallel_runs(settings, monkeypatch):
    def fake_run(*args, **kwargs):
        return SimpleNamespace(returncode=0, stdout="done", stderr="")

    monkeypatch.setattr("webapp.runner.subprocess.run", fake_run)
    runner = PipelineRunner(settings)

    runner._lock.acquire()
    assert runner.is_running
    with pytest.raises(RuntimeError):
        runner.run_pipeline()
    runner._lock.release()
