# spendlens/storage.py
"""Flat JSON files under the data directory."""
from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable, List

from spendlens.core.models import Transaction
from spendlens.exceptions import DataNotFoundError

logger = logging.getLogger(__name__)


def read_json(path: Path, default=None):
    path = Path(path)
    if not path.exists():
        return default
    try:
        with path.open("r", encoding="utf-8") as fp:
            return json.load(fp)
    except json.JSONDecodeError:
        logger.warning("Ignoring unreadable JSON file %s", path)
        return default


def write_json(path: Path, payload) -> None:
    """Write ``payload`` to a temp file in the same directory, then rename it."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fp:
            json.dump(payload, fp, indent=2, ensure_ascii=False)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def read_transactions(path: Path, required: bool = False) -> List[Transaction]:
    path = Path(path)
    if not path.exists():
        if required:
            raise DataNotFoundError(f"Input file not found: {path}")
        return []
    rows = read_json(path, default=[]) or []
    return [Transaction.from_dict(row) for row in rows]


def write_transactions(path: Path, transactions: Iterable[Transaction]) -> int:
    rows = [tx.to_dict() for tx in transactions]
    write_json(path, rows)
    return len(rows)
