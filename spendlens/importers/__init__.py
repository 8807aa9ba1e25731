# spendlens/importers/__init__.py
from importlib import import_module
from pathlib import Path
from typing import List, Optional

from spendlens.exceptions import ImporterError
from spendlens.importers.base import BaseImporter

# detection order matters: the first importer that accepts the headers wins
IMPORTERS = {
    "monzo": "spendlens.importers.monzo.MonzoImporter",
    "moneyhub": "spendlens.importers.moneyhub.MoneyhubImporter",
    "qfx": "spendlens.importers.qfx.QFXImporter",
    "qif": "spendlens.importers.qif.QIFImporter",
}


def get_importer(name: str) -> BaseImporter:
    try:
        path = IMPORTERS[name.lower()]
    except KeyError:
        raise ImporterError(f"No importer named '{name}'") from None
    module_name, cls_name = path.rsplit(".", 1)
    mod = import_module(module_name)
    return getattr(mod, cls_name)()


def list_importers() -> List[BaseImporter]:
    return [get_importer(name) for name in IMPORTERS]


def peek_headers(file_path) -> List[str]:
    """Comma-split first line of a file."""
    with Path(file_path).open("r", encoding="utf-8-sig", errors="replace") as f:
        first = f.readline()
    return [h.strip() for h in first.rstrip("\r\n").split(",")]


def detect_importer(headers: List[str]) -> Optional[BaseImporter]:
    return next((imp for imp in list_importers() if imp.detect(headers)), None)
