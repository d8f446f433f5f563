from __future__ import annotations

import csv
from pathlib import Path

import pytest

from statement_categorizer.ingest.csv_rows import CsvColumns, load_requests_from_csv, to_requests
from statement_categorizer.models import ClassificationRequest


def test_negative_amount_means_debit(tmp_path: Path):
    p = tmp_path / "tx.csv"
    p.write_text(
        "Party,Amount,Date,Info\n"
        "Migros,-12.50,2025-01-03,Card payment\n"
        "Employer AG,5000.00,2025-01-25,Salary  January\n",
        encoding="utf-8",
    )

    requests = load_requests_from_csv(p)

    assert requests == [
        ClassificationRequest("Migros", True, "-12.50", "2025-01-03", "Card payment"),
        ClassificationRequest("Employer AG", False, "5000.00", "2025-01-25", "Salary January"),
    ]


def test_direction_column_wins_over_amount_sign():
    rows = [
        {"Party": "Landlord", "Amount": "1800", "Direction": "DEBIT"},
        {"Party": "Refund Shop", "Amount": "-20", "Direction": "credit"},
        {"Party": "Other", "Amount": "-5", "Direction": ""},
    ]

    assert [r.is_debtor for r in to_requests(rows)] == [True, False, True]


def test_custom_column_names():
    rows = [{"Counterparty": "  Coop  ", "Betrag": "-3.20", "Text": "Einkauf"}]
    columns = CsvColumns(party="Counterparty", amount="Betrag", info="Text")

    (req,) = to_requests(rows, columns)

    assert req.party_name == "Coop"
    assert req.is_debtor is True
    assert req.info == "Einkauf"
    assert req.date == ""


def test_missing_party_column_raises(tmp_path: Path):
    p = tmp_path / "tx.csv"
    p.write_text("Name,Amount\nMigros,-1\n", encoding="utf-8")

    with pytest.raises(csv.Error):
        load_requests_from_csv(p)


def test_empty_file_raises(tmp_path: Path):
    p = tmp_path / "tx.csv"
    p.write_text("", encoding="utf-8")

    with pytest.raises(csv.Error):
        load_requests_from_csv(p)
