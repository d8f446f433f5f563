"""Data models and type aliases for ``statement_categorizer``.

Plain frozen dataclasses carry values through the engine; Pydantic models
validate anything that crosses a trust boundary (catalog files, mapping files,
model replies).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal, NamedTuple

from pydantic import BaseModel, ConfigDict, field_validator

UNCATEGORIZED: str = "Uncategorized"
"""Sentinel category used whenever no tier can resolve a party."""

# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------

_DESCRIPTIONS: dict[str, str] = {
    "Food & Dining": "Restaurants, groceries, and food delivery",
    "Groceries": "Supermarkets and food shops",
    "Restaurants": "Dining out, cafes, and fast food",
    "Transportation": "Public transit, taxis, ride-sharing, and car expenses",
    "Housing": "Rent, mortgage, utilities, and home maintenance",
    "Entertainment": "Movies, concerts, events, and recreational activities",
    "Shopping": "Retail purchases, clothing, and general shopping",
    "Health & Fitness": "Medical expenses, pharmacy, gym memberships",
    "Travel": "Flights, hotels, vacations, and travel expenses",
    "Bills & Utilities": "Regular bills, subscriptions, and services",
    "Education": "Tuition, books, courses, and educational expenses",
    "Business": "Business expenses, office supplies, professional services",
    "Gifts & Donations": "Charitable donations, gifts, and contributions",
    "Taxes & Fees": "Government taxes, fees, and related expenses",
    "Income": "Salary, wages, transfers, and other income",
    "Investments": "Stock, cryptocurrency, and investment transactions",
    "Transfers": "Transfers between accounts and to other people",
    "Cash Withdrawals": "ATM and counter cash withdrawals",
    UNCATEGORIZED: "Other uncategorized transactions",
}


def category_description(name: str) -> str:
    """Return the standard description for a category name."""

    return _DESCRIPTIONS.get(name, f"Category for {name}")


@dataclass(frozen=True, slots=True)
class CategoryDefinition:
    """A catalog entry: a category name and its matching keywords.

    Keywords are stored lower-cased and in declared order; the order matters
    for first-match-wins lookups.
    """

    name: str
    keywords: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class Category:
    """The category assigned to a transaction."""

    name: str
    description: str = ""

    @classmethod
    def named(cls, name: str) -> Category:
        return cls(name=name, description=category_description(name))


# ---------------------------------------------------------------------------
# Requests and outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ClassificationRequest:
    """The engine's view of a transaction.

    Attributes
    ----------
    party_name:
        Counterparty name as it appears on the statement.
    is_debtor:
        ``True`` when money is paid to the party (a debit for the account
        holder); ``False`` when money is received from it.
    amount, date, info:
        Advisory context, only forwarded to the AI tier. ``info`` also takes
        part in keyword matching.
    """

    party_name: str
    is_debtor: bool = False
    amount: str = ""
    date: str = ""
    info: str = ""


type ResolutionTier = Literal["mapping", "keyword", "ai", "fallback", "empty"]


class CategorizationOutcome(NamedTuple):
    """Result of :meth:`CategorizationEngine.categorize`.

    ``category`` is always usable. ``error`` is set only when the AI tier
    failed and the engine fell back to ``Uncategorized``.
    """

    category: Category
    tier: ResolutionTier
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(slots=True)
class CategorizationStats:
    """Counters for a categorization run."""

    total: int = 0
    successful: int = 0
    failed: int = 0
    uncategorized: int = 0

    def record(self, outcome: CategorizationOutcome) -> None:
        self.total += 1
        if outcome.error is not None:
            self.failed += 1
        elif outcome.category.name == UNCATEGORIZED:
            self.uncategorized += 1
        else:
            self.successful += 1

    @property
    def success_rate(self) -> float:
        """Share of successfully categorized transactions, as a percentage."""

        if self.total == 0:
            return 0.0
        return self.successful / self.total * 100.0

    def log_summary(self, logger: logging.Logger, source: str) -> None:
        logger.info(
            "categorize:summary source=%s total=%d successful=%d failed=%d "
            "uncategorized=%d success_rate=%.1f",
            source,
            self.total,
            self.successful,
            self.failed,
            self.uncategorized,
            self.success_rate,
        )


# ---------------------------------------------------------------------------
# DTOs for files and model replies
# ---------------------------------------------------------------------------


class CategoryRecord(BaseModel):
    """One ``{name, keywords}`` record of the catalog file."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    name: str
    keywords: list[str] = []

    @field_validator("name")
    @classmethod
    def _name_non_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("category name must be non-empty")
        return v

    @field_validator("keywords", mode="before")
    @classmethod
    def _normalize_keywords(cls, v: object) -> object:
        if v is None:
            return []
        if isinstance(v, list):
            # Blank keywords would match every text; drop them.
            return [str(k).strip().lower() for k in v if k is not None and str(k).strip()]
        return v


class CatalogFile(BaseModel):
    """Wrapped catalog file shape: ``{categories: [...]}``."""

    model_config = ConfigDict(extra="ignore")

    categories: list[CategoryRecord]


class AIDecision(BaseModel):
    """Structured reply requested from the model."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    category: str
    rationale: str = ""


__all__ = [
    "AIDecision",
    "CatalogFile",
    "Category",
    "CategorizationOutcome",
    "CategorizationStats",
    "CategoryDefinition",
    "CategoryRecord",
    "ClassificationRequest",
    "ResolutionTier",
    "UNCATEGORIZED",
    "category_description",
]
