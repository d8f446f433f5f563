from __future__ import annotations

import logging

import pytest

from statement_categorizer import prompting
from statement_categorizer.errors import ClassifierError
from statement_categorizer.models import (
    Category,
    CategorizationOutcome,
    CategorizationStats,
    ClassificationRequest,
    category_description,
)


def _outcome(name: str, error: Exception | None = None) -> CategorizationOutcome:
    return CategorizationOutcome(Category.named(name), "ai", error)


def test_stats_record_and_summary(caplog: pytest.LogCaptureFixture):
    stats = CategorizationStats()
    for o in (
        _outcome("Groceries"),
        _outcome("Travel"),
        _outcome("Uncategorized"),
        _outcome("Uncategorized", ClassifierError("boom")),
    ):
        stats.record(o)

    assert (stats.total, stats.successful, stats.uncategorized, stats.failed) == (4, 2, 1, 1)
    assert stats.success_rate == pytest.approx(50.0)

    with caplog.at_level(logging.INFO, logger="tests.stats"):
        stats.log_summary(logging.getLogger("tests.stats"), "statement.csv")
    assert "categorize:summary source=statement.csv total=4 successful=2" in caplog.text


def test_outcome_ok_flag():
    assert _outcome("Groceries").ok is True
    assert _outcome("Uncategorized", ClassifierError("x")).ok is False


def test_category_descriptions():
    assert category_description("Transportation").startswith("Public transit")
    assert category_description("Pets") == "Category for Pets"
    assert Category.named("Income").description == "Salary, wages, transfers, and other income"


def test_response_format_always_allows_uncategorized():
    fmt = prompting.build_response_format(["Groceries", " Groceries ", "", "Travel"])

    enum = fmt["schema"]["properties"]["category"]["enum"]
    assert enum == ["Groceries", "Travel", "Uncategorized"]
    assert fmt["schema"]["required"] == ["category", "rationale"]
    assert fmt["schema"]["additionalProperties"] is False


def test_user_content_lists_categories_and_embeds_transaction():
    content = prompting.build_user_content(
        ClassificationRequest(party_name="Migros", is_debtor=False, info="refund"),
        ["Groceries", "Travel"],
    )

    assert "- Groceries\n- Travel" in content
    assert '{"party": "Migros", "direction": "credit", "amount": null' in content
    assert content.index(prompting.BEGIN_MARKER) < content.index(prompting.END_MARKER)
