from __future__ import annotations

import os
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

import statement_categorizer.ai as ai_mod
from statement_categorizer.cli import app
from tests.helpers.openai_stub import OpenAIStub, json_reply

runner = CliRunner()

CATALOG = """
categories:
  - name: Groceries
    keywords: [migros, coop]
  - name: Restaurants
    keywords: [pizzeria]
  - name: Travel
    keywords: []
"""


@pytest.fixture
def workdir() -> Path:
    cwd = Path.cwd()
    (cwd / "categories.yaml").write_text(CATALOG, encoding="utf-8")
    return cwd


def _tab_lines(output: str) -> list[str]:
    return [line for line in output.splitlines() if "\t" in line]


def test_categorize_keyword_hit_prints_category_and_saves(workdir: Path):
    result = runner.invoke(app, ["categorize", "--party", "MIGROS Zurich"])

    assert result.exit_code == 0, result.output
    assert result.stdout.strip().splitlines()[-1] == "Groceries"
    saved = yaml.safe_load((workdir / "database" / "creditors.yaml").read_text(encoding="utf-8"))
    assert saved == {"creditors": {"migros zurich": "Groceries"}}
    assert (workdir / "database" / "debitors.yaml").is_file()


def test_categorize_without_credential_degrades_to_uncategorized(workdir: Path):
    result = runner.invoke(app, ["categorize", "--party", "Acme Corp", "--debtor"])

    assert result.exit_code == 0, result.output
    assert result.stdout.strip().splitlines()[-1] == "Uncategorized"
    saved = yaml.safe_load((workdir / "database" / "debitors.yaml").read_text(encoding="utf-8"))
    assert saved == {"debitors": {"acme corp": "Uncategorized"}}


def test_categorize_uses_ai_when_credential_present(
    workdir: Path, monkeypatch: pytest.MonkeyPatch
):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.setenv("STATEMENT_CATEGORIZER_AI_REQUESTS_PER_MINUTE", "1000")
    stub = OpenAIStub(lambda tx, cats: json_reply("Travel"))
    monkeypatch.setattr(ai_mod, "OpenAI", stub)

    result = runner.invoke(
        app, ["categorize", "--party", "Swiss Air", "--debtor", "--amount", "-420.00"]
    )

    assert result.exit_code == 0, result.output
    assert result.stdout.strip().splitlines()[-1] == "Travel"
    assert len(stub.calls) == 1


def test_dotenv_credential_is_loaded(workdir: Path, monkeypatch: pytest.MonkeyPatch):
    (workdir / ".env").write_text("OPENAI_API_KEY=sk-from-dotenv\n", encoding="utf-8")
    stub = OpenAIStub(lambda tx, cats: json_reply("Travel"))
    monkeypatch.setattr(ai_mod, "OpenAI", stub)

    try:
        result = runner.invoke(app, ["categorize", "--party", "Swiss Air"])
    finally:
        # load_dotenv writes straight into os.environ.
        os.environ.pop("OPENAI_API_KEY", None)

    assert result.exit_code == 0, result.output
    assert stub.client_kwargs[0]["api_key"] == "sk-from-dotenv"


def test_categorize_csv_prints_rows_in_order_and_summary(workdir: Path):
    (workdir / "tx.csv").write_text(
        "Party,Amount,Date,Info\n"
        "Migros,-10.00,2025-01-01,\n"
        "Unknown Shop,-5.00,2025-01-02,\n"
        "Pizzeria Roma,-30.00,2025-01-03,dinner\n"
        "Migros,-8.00,2025-01-04,\n",
        encoding="utf-8",
    )

    result = runner.invoke(app, ["categorize-csv", "--csv-path", "tx.csv", "--concurrency", "2"])

    assert result.exit_code == 0, result.output
    assert _tab_lines(result.stdout) == [
        "Migros\tGroceries",
        "Unknown Shop\tUncategorized",
        "Pizzeria Roma\tRestaurants",
        "Migros\tGroceries",
    ]
    assert "Processed 4 transactions" in result.output
    saved = yaml.safe_load((workdir / "database" / "debitors.yaml").read_text(encoding="utf-8"))
    assert saved["debitors"]["unknown shop"] == "Uncategorized"


def test_categorize_csv_missing_file_exits_1(workdir: Path):
    result = runner.invoke(app, ["categorize-csv", "--csv-path", "nope.csv"])

    assert result.exit_code == 1
    assert "Error: File not found" in result.output


def test_malformed_mapping_file_exits_1(workdir: Path):
    (workdir / "creditors.yaml").write_text("creditors: {unclosed", encoding="utf-8")

    result = runner.invoke(app, ["categorize", "--party", "Migros"])

    assert result.exit_code == 1
    assert "Error:" in result.output


def test_list_categories_prints_catalog_in_order(workdir: Path):
    result = runner.invoke(app, ["list-categories"])

    assert result.exit_code == 0, result.output
    assert result.stdout.strip().splitlines()[-3:] == ["Groceries", "Restaurants", "Travel"]


def test_config_option_points_at_data_directory(workdir: Path, tmp_path: Path):
    data_dir = tmp_path / "data"
    cfg = tmp_path / "cfg.yaml"
    cfg.write_text(f"data:\n  directory: {data_dir}\n", encoding="utf-8")

    result = runner.invoke(app, ["--config", str(cfg), "categorize", "--party", "Coop"])

    assert result.exit_code == 0, result.output
    assert (data_dir / "creditors.yaml").is_file()


def test_unknown_log_format_is_a_usage_error(workdir: Path):
    result = runner.invoke(app, ["--log-format", "xml", "list-categories"])

    assert result.exit_code == 2
