# spendlens/ingest.py
from __future__ import annotations

import calendar
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple

from spendlens.config import Settings
from spendlens.core.models import Transaction
from spendlens.exceptions import DataNotFoundError, ImporterError
from spendlens.importers import detect_importer, get_importer, peek_headers
from spendlens.storage import read_transactions, write_transactions

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    transactions: List[Transaction] = field(default_factory=list)
    file_counts: Dict[str, int] = field(default_factory=dict)
    importers_used: Dict[str, str] = field(default_factory=dict)
    invalid_dates: int = 0
    duplicates: int = 0
    excluded_months: List[str] = field(default_factory=list)

    @property
    def default_classifiers(self) -> Set[str]:
        return {get_importer(name).default_classifier for name in self.importers_used.values()}


def dedupe_transactions(transactions: Iterable[Transaction]) -> Tuple[List[Transaction], int]:
    """
    Remove duplicates by bank id, falling back to (date, amount, description).
    The first occurrence wins.
    """
    seen = set()
    unique = []
    duplicates = 0
    for tx in transactions:
        key = tx.dedupe_key()
        if key in seen:
            duplicates += 1
            continue
        seen.add(key)
        unique.append(tx)
    return unique, duplicates


def month_coverage(transactions: Iterable[Transaction]) -> Dict[str, float]:
    """Fraction of calendar days with at least one transaction, per month."""
    days_by_month: Dict[str, Set[int]] = defaultdict(set)
    for tx in transactions:
        days_by_month[tx.month].add(tx.date.day)
    coverage = {}
    for ym, days in days_by_month.items():
        year, month = map(int, ym.split("-"))
        coverage[ym] = len(days) / calendar.monthrange(year, month)[1]
    return coverage


def merge_transactions(
    existing: Iterable[Transaction],
    new: Iterable[Transaction],
    coverage_threshold: float = 0.8,
) -> IngestResult:
    combined = list(existing) + list(new)
    logger.info("Total before QC: %d", len(combined))

    valid = [tx for tx in combined if tx.date is not None]
    invalid_dates = len(combined) - len(valid)

    unique, duplicates = dedupe_transactions(valid)

    coverage = month_coverage(unique)
    complete = {ym for ym, cov in coverage.items() if cov >= coverage_threshold}
    excluded = sorted(ym for ym in coverage if ym not in complete)
    if excluded:
        logger.info(
            "Excluding months with <%.0f%% coverage: %s",
            coverage_threshold * 100,
            ", ".join(excluded),
        )

    kept = [tx for tx in unique if tx.month in complete]
    return IngestResult(
        transactions=kept,
        invalid_dates=invalid_dates,
        duplicates=duplicates,
        excluded_months=excluded,
    )


def ingest_directory(
    import_dir: Path,
    format_override: Optional[str] = None,
    delete: bool = True,
) -> Tuple[List[Transaction], Dict[str, int], Dict[str, str]]:
    """Parse every file in ``import_dir`` with the matching importer."""
    import_dir = Path(import_dir)
    files = sorted(
        p for p in import_dir.iterdir() if p.is_file() and not p.name.startswith(".")
    )
    if not files:
        logger.warning("No files found in %s - skipping ingestion", import_dir)

    override = get_importer(format_override) if format_override else None

    parsed_all: List[Transaction] = []
    file_counts: Dict[str, int] = {}
    used: Dict[str, str] = {}
    for path in files:
        importer = override
        if importer is None:
            try:
                headers = peek_headers(path)
            except OSError as exc:
                logger.error("Error reading headers of %s: %s", path.name, exc)
                continue
            importer = detect_importer(headers)
            if importer is None:
                logger.warning('No importer detected for file "%s", skipping', path.name)
                continue

        try:
            parsed = list(importer.load(str(path)))
        except Exception as exc:
            logger.error('Error parsing %s with importer "%s": %s', path.name, importer.name, exc)
            continue

        file_counts[path.name] = len(parsed)
        used[path.name] = importer.name
        parsed_all.extend(parsed)
        logger.info('Processed %s: %d rows using "%s" importer', path.name, len(parsed), importer.name)

        if delete:
            try:
                path.unlink()
                logger.info("Deleted ingested file: %s", path.name)
            except OSError as exc:
                logger.warning("Failed to delete file %s: %s", path.name, exc)

    return parsed_all, file_counts, used


def run_ingest(settings: Settings, format_override: Optional[str] = None) -> IngestResult:
    import_dir = Path(settings.import_dir)
    if not import_dir.is_dir():
        raise DataNotFoundError(f"Import directory not found: {import_dir}")

    existing = read_transactions(settings.transactions_path)
    if existing:
        logger.info("Loaded %d existing transactions", len(existing))

    fmt = format_override or settings.ingest_format
    try:
        new, file_counts, used = ingest_directory(import_dir, format_override=fmt)
    except ImporterError:
        logger.error('No importer found for format "%s"', fmt)
        raise
    logger.info("New rows parsed: %d", len(new))

    result = merge_transactions(existing, new, settings.month_coverage)
    result.file_counts = file_counts
    result.importers_used = used

    logger.info("Ingestion summary:")
    for name, count in file_counts.items():
        logger.info("  %s: %d rows", name, count)
    if result.invalid_dates:
        logger.info("  Removed %d rows with invalid dates", result.invalid_dates)
    if result.duplicates:
        logger.info("  Removed %d duplicate transactions", result.duplicates)

    count = write_transactions(settings.transactions_path, result.transactions)
    logger.info("Saved %d transactions to %s", count, settings.transactions_path)
    return result
