"""Adapter for mapping a generic transaction CSV to classification requests.

CSV header (default column names, configurable):
Party, Amount, Date, Info, and optionally Direction

Direction rules:
- ``Direction`` present and one of ``debit``/``credit`` (case-insensitive):
  used as-is. ``debit`` means money was paid to the party.
- Otherwise a negative ``Amount`` means debit, anything else credit.
"""

from __future__ import annotations

import csv
import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from os import PathLike
from pathlib import Path

from ..models import ClassificationRequest


@dataclass(frozen=True, slots=True)
class CsvColumns:
    party: str = "Party"
    amount: str = "Amount"
    date: str = "Date"
    info: str = "Info"
    direction: str = "Direction"


def _clean_text(value: str | None) -> str:
    if value is None:
        return ""
    return re.sub(r"\s+", " ", value).strip()


def _is_debit(direction: str, amount: str) -> bool:
    d = direction.strip().lower()
    if d in ("debit", "dbit", "d"):
        return True
    if d in ("credit", "crdt", "c"):
        return False
    return amount.strip().startswith("-")


def to_requests(
    rows: Iterable[Mapping[str, str | None]], columns: CsvColumns = CsvColumns()
) -> Iterator[ClassificationRequest]:
    """Convert CSV rows to :class:`ClassificationRequest` objects, one per row.

    Rows with an empty party are kept; the engine resolves them to
    ``Uncategorized`` without learning anything.
    """

    for row in rows:
        amount = _clean_text(row.get(columns.amount))
        yield ClassificationRequest(
            party_name=_clean_text(row.get(columns.party)),
            is_debtor=_is_debit(_clean_text(row.get(columns.direction)), amount),
            amount=amount,
            date=_clean_text(row.get(columns.date)),
            info=_clean_text(row.get(columns.info)),
        )


def load_requests_from_csv(
    csv_path: str | PathLike[str], columns: CsvColumns = CsvColumns()
) -> list[ClassificationRequest]:
    """Read a CSV file and return its rows as classification requests.

    Raises ``csv.Error`` when the header row is missing or lacks the party
    column; ``OSError`` propagates for unreadable files.
    """

    p = Path(csv_path)
    with p.open(encoding="utf-8-sig", newline="") as f:
        reader = csv.DictReader(f)
        headers = set(reader.fieldnames or [])
        if not headers:
            raise csv.Error(f"CSV appears to have no header row: {csv_path}")
        if columns.party not in headers:
            raise csv.Error(f"CSV header mismatch. Missing column: {columns.party}")
        return list(to_requests(reader, columns))


__all__ = ["CsvColumns", "load_requests_from_csv", "to_requests"]
