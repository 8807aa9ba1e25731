from __future__ import annotations

import logging
import os
import subprocess
import sys
import threading
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from spendlens.config import Settings
from spendlens.storage import read_json, write_json

logger = logging.getLogger(__name__)

STATE_FILE = "last_run.json"
LOG_FILE = "last_run.log"


@dataclass
class RunResult:
    status: str
    timestamp: str
    stdout: str
    stderr: str
    returncode: int
    classifier: Optional[str] = None

    @property
    def combined_output(self) -> str:
        return f"{self.stdout}\n{self.stderr}".strip()

    @classmethod
    def from_completed(cls, completed, classifier: Optional[str] = None) -> "RunResult":
        return cls(
            status="success" if completed.returncode == 0 else "failure",
            timestamp=datetime.now(timezone.utc).isoformat(),
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            returncode=completed.returncode,
            classifier=classifier,
        )


class PipelineRunner:
    """Run ``spendlens run`` in a child process, one upload at a time.

    The outcome of the last run survives restarts in ``last_run.json`` inside
    the data directory, with the raw output beside it in ``last_run.log``.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.data_dir = Path(settings.data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.state_file = self.data_dir / STATE_FILE
        self.log_file = self.data_dir / LOG_FILE
        self._lock = threading.Lock()
        self._last_result = self._restore()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    @property
    def last_result(self) -> Optional[RunResult]:
        return self._last_result

    def _restore(self) -> Optional[RunResult]:
        state = read_json(self.state_file, default=None)
        if not isinstance(state, dict):
            return None
        try:
            return RunResult(**state)
        except TypeError:
            logger.warning("Ignoring unreadable %s", self.state_file)
            return None

    def _record(self, result: RunResult) -> None:
        self._last_result = result
        write_json(self.state_file, asdict(result))
        self.log_file.write_text(result.combined_output, encoding="utf-8")

    def command(self, classifier: Optional[str] = None) -> List[str]:
        args = [sys.executable, "-m", "spendlens", "--data-dir", str(self.data_dir), "run"]
        if classifier:
            args += ["--classifier", classifier]
        return args

    def run_pipeline(self, classifier: Optional[str] = None) -> RunResult:
        if not self._lock.acquire(blocking=False):
            raise RuntimeError("Pipeline run already in progress")
        try:
            args = self.command(classifier)
            env = {**os.environ, "IMPORT_DIR": str(self.settings.import_dir)}
            logger.info("Running %s", " ".join(args))
            completed = subprocess.run(args, capture_output=True, text=True, env=env)
            result = RunResult.from_completed(completed, classifier)
            if result.status == "failure":
                logger.warning("Pipeline exited with %d", result.returncode)
            self._record(result)
            return result
        finally:
            self._lock.release()

    def status_payload(self) -> Dict[str, object]:
        return {
            "running": self.is_running,
            "last_result": asdict(self._last_result) if self._last_result else None,
            "log_path": str(self.log_file),
        }
