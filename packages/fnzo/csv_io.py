"""CSV export/import of transactions.

CSV header (exact keys; ``Notes`` optional on import):
``Date, Type, Category, Amount, Notes``

Export writes one row per transaction with ``\\n`` line endings; notes are
always double-quoted with embedded quotes doubled. Import inserts valid rows
one at a time through the Transaction Service and reports skipped rows
instead of failing the batch.
"""

from __future__ import annotations

import csv
import re
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import Decimal, InvalidOperation
from typing import IO

from .errors import RemoteError, ValidationError
from .logging_setup import get_logger
from .models import Kind, Transaction, to_utc
from .transactions import TransactionService

_logger = get_logger("fnzo.csv_io")

HEADERS: tuple[str, ...] = ("Date", "Type", "Category", "Amount", "Notes")
REQUIRED_HEADERS: tuple[str, ...] = ("Date", "Type", "Category", "Amount")

_AMOUNT_JUNK_RE = re.compile(r"[^\d.\-]")
_NEEDS_QUOTES = (",", '"', "\n", "\r")


# ---------------------------
# Export
# ---------------------------


def _quote_always(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def _quote_minimal(value: str) -> str:
    if any(ch in value for ch in _NEEDS_QUOTES):
        return _quote_always(value)
    return value


def export_filename(product: str, today: date | None = None) -> str:
    """``{product}-expenses-{YYYY-MM-DD}.csv`` for ``today`` (UTC date by default)."""

    day = today or datetime.now(UTC).date()
    return f"{product}-expenses-{day.isoformat()}.csv"


def export_transactions(transactions: Iterable[Transaction], out: IO[str]) -> int:
    """Write ``transactions`` as CSV to ``out``; returns the number of rows."""

    out.write(",".join(HEADERS) + "\n")
    count = 0
    for tx in transactions:
        cells = [
            tx.date.astimezone(UTC).date().isoformat(),
            tx.kind.value,
            tx.category,
            format(tx.amount, "f"),
        ]
        out.write(",".join(_quote_minimal(c) for c in cells) + "," + _quote_always(tx.notes) + "\n")
        count += 1
    return count


# ---------------------------
# Import
# ---------------------------


@dataclass(frozen=True, slots=True)
class SkippedRow:
    line: int
    reason: str


@dataclass(slots=True)
class ImportResult:
    total: int = 0
    imported: int = 0
    skipped: int = 0
    new_categories: dict[Kind, list[str]] = field(default_factory=dict)
    skipped_rows: list[SkippedRow] = field(default_factory=list)

    def skip(self, line: int, reason: str) -> None:
        self.skipped += 1
        self.skipped_rows.append(SkippedRow(line, reason))


def parse_date(raw: str) -> datetime | None:
    """Parse ISO date/datetime, ``MM/DD/YYYY`` or ``YYYY/MM/DD``; ``None`` if none match."""

    s = raw.strip()
    if not s:
        return None
    try:
        return to_utc(s)
    except ValueError:
        pass
    for fmt in ("%m/%d/%Y", "%Y/%m/%d"):
        try:
            return datetime.strptime(s, fmt).replace(tzinfo=UTC)
        except ValueError:
            continue
    return None


def parse_amount(raw: str) -> Decimal | None:
    """Amount with currency symbols/grouping stripped; ``None`` unless numeric and > 0."""

    cleaned = _AMOUNT_JUNK_RE.sub("", raw)
    if not cleaned:
        return None
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    if not value.is_finite() or value <= 0:
        return None
    return value


def _parse_row(
    row: list[str], index: dict[str, int]
) -> tuple[Transaction | None, str | None]:
    if len(row) < len(REQUIRED_HEADERS):
        return None, "too few columns"

    def cell(name: str) -> str:
        i = index.get(name)
        if i is None or i >= len(row):
            return ""
        return row[i].strip()

    try:
        kind = Kind.parse(cell("Type"))
    except ValueError:
        return None, f"invalid type {cell('Type')!r}"
    category = cell("Category")
    if not category:
        return None, "empty category"
    amount = parse_amount(cell("Amount"))
    if amount is None:
        return None, f"invalid amount {cell('Amount')!r}"
    when = parse_date(cell("Date"))
    if when is None:
        return None, f"invalid date {cell('Date')!r}"
    return (
        Transaction(date=when, kind=kind, category=category, amount=amount, notes=cell("Notes")),
        None,
    )


def import_transactions(
    source: IO[str],
    service: TransactionService,
    *,
    row_delay: float = 0.1,
    sleep: Callable[[float], None] = time.sleep,
    on_progress: Callable[[int, int], None] | None = None,
) -> ImportResult:
    """Import CSV rows from ``source`` through ``service``.

    Raises ``ValidationError`` (before inserting anything) when a required
    header is missing. Remote errors on a row skip that row; authentication
    errors abort the import.
    """

    reader = csv.reader(source)
    header = next(reader, None)
    if header is None:
        raise ValidationError("CSV is empty; expected a header row")
    index = {name.strip(): i for i, name in enumerate(header)}
    missing = [h for h in REQUIRED_HEADERS if h not in index]
    if missing:
        raise ValidationError("CSV is missing required columns: " + ", ".join(missing))

    rows = [
        (reader.line_num, row) for row in reader if any(cell.strip() for cell in row)
    ]
    result = ImportResult(total=len(rows))
    known = service.all_category_names()
    new_names: dict[Kind, list[str]] = {k: [] for k in Kind}

    first = True
    for done, (line, row) in enumerate(rows, start=1):
        tx, reason = _parse_row(row, index)
        if tx is None:
            result.skip(line, reason or "invalid row")
        else:
            if not first:
                sleep(row_delay)
            first = False
            try:
                service.add_transaction(tx)
            except RemoteError as e:
                _logger.warning("csv_import:row_failed line=%d error=%s", line, e)
                result.skip(line, str(e))
            else:
                result.imported += 1
                if tx.category not in known[tx.kind] and tx.category not in new_names[tx.kind]:
                    new_names[tx.kind].append(tx.category)
        if on_progress is not None:
            on_progress(done, result.total)

    result.new_categories = {k: v for k, v in new_names.items() if v}
    service.update_category_roster(result.new_categories)
    _logger.info(
        "csv_import:done total=%d imported=%d skipped=%d new_categories=%d",
        result.total,
        result.imported,
        result.skipped,
        sum(len(v) for v in result.new_categories.values()),
    )
    return result


__all__ = [
    "HEADERS",
    "REQUIRED_HEADERS",
    "ImportResult",
    "SkippedRow",
    "export_filename",
    "export_transactions",
    "import_transactions",
    "parse_amount",
    "parse_date",
]
