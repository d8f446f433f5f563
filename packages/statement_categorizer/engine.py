"""The categorization engine: mapping, then keyword, then AI.

Public API:
    - :class:`CategorizationEngine`

Every party that misses the mapping tier is written back into the mapping
table for its direction once it is resolved, whether by keyword, by the AI
tier, or by falling back to ``Uncategorized`` after an AI failure. Later
requests for the same normalized party therefore never reach the catalog or
the AI tier again. Persistence only happens on an explicit save.
"""

from __future__ import annotations

import threading
from types import TracebackType
from typing import Self

from .ai import AIFallbackClassifier, OpenAIClassifier
from .catalog import CategoryCatalog
from .config import Settings
from .errors import ClassifierFailure, ClassifierUnavailableError
from .logging_setup import get_logger
from .mapping_store import PartyMappingStore
from .models import (
    UNCATEGORIZED,
    Category,
    CategorizationOutcome,
    ClassificationRequest,
    ResolutionTier,
)

_logger = get_logger("statement_categorizer.engine")


class CategorizationEngine:
    """Resolve party names to categories and learn from every resolution.

    Safe to share across threads. Mapping tables are guarded by their own
    reader/writer locks; the catalog is immutable; the AI call runs without
    holding any lock. Two threads missing on the same new party concurrently
    may both call the AI tier; the last upsert wins.
    """

    def __init__(
        self,
        catalog: CategoryCatalog,
        store: PartyMappingStore,
        classifier: AIFallbackClassifier | None = None,
        *,
        ai_timeout: float = 30.0,
    ) -> None:
        self.catalog = catalog
        self.store = store
        self.classifier = classifier
        self.ai_timeout = ai_timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> CategorizationEngine:
        """Build the catalog, load both mapping tables and wire the AI tier.

        Raises ``CatalogLoadError`` / ``MappingLoadError`` for malformed files.
        """

        catalog = CategoryCatalog.load(settings.categories_path())
        store = PartyMappingStore(
            settings.creditors_path(),
            settings.debitors_path(),
            substring_policy=settings.categorization.substring_policy,
            backup_enabled=settings.data.backup_enabled,
        )
        classifier: AIFallbackClassifier | None = None
        if settings.ai.enabled:
            classifier = OpenAIClassifier(
                api_key=settings.ai.api_key,
                model=settings.ai.model,
                timeout=settings.ai.timeout_seconds,
                requests_per_minute=settings.ai.requests_per_minute,
                max_attempts=settings.ai.max_attempts,
            )
        _logger.info(
            "engine:ready categories=%d creditors=%d debitors=%d ai=%s",
            len(catalog),
            len(store.creditors),
            len(store.debitors),
            "on" if classifier is not None else "off",
        )
        return cls(catalog, store, classifier, ai_timeout=settings.ai.timeout_seconds)

    # ---- categorization -----------------------------------------------------

    def categorize(
        self,
        request: ClassificationRequest,
        *,
        cancel: threading.Event | None = None,
    ) -> CategorizationOutcome:
        """Return the category for ``request``.

        Never raises for classifier problems: an AI failure yields
        ``Uncategorized`` with the error attached to the outcome, and that
        fallback is committed to the mapping table like any other resolution.
        """

        party = request.party_name.strip()
        if not party:
            return self._outcome(UNCATEGORIZED, "empty")

        table = self.store.table_for(request.is_debtor)

        mapped = table.lookup(party)
        if mapped is not None:
            _logger.debug(
                "categorize:mapping_hit party=%s table=%s category=%s", party, table.name, mapped
            )
            return self._outcome(mapped, "mapping")

        text = f"{request.party_name} {request.info}".strip().lower()
        keyword_category = self.catalog.match(text)
        if keyword_category is not None:
            table.upsert(party, keyword_category)
            _logger.info(
                "categorize:keyword_hit party=%s table=%s category=%s",
                party,
                table.name,
                keyword_category,
            )
            return self._outcome(keyword_category, "keyword")

        try:
            if self.classifier is None:
                raise ClassifierUnavailableError("AI classification is disabled")
            result = self.classifier.classify(
                request, self.catalog.names(), timeout=self.ai_timeout, cancel=cancel
            )
        except ClassifierFailure as e:
            table.upsert(party, UNCATEGORIZED)
            _logger.warning(
                "categorize:ai_fallback party=%s table=%s error=%s",
                party,
                table.name,
                e,
            )
            return self._outcome(UNCATEGORIZED, "fallback", error=e)

        name = self.catalog.canonical_name(result.category) or UNCATEGORIZED
        table.upsert(party, name)
        _logger.info("categorize:ai_hit party=%s table=%s category=%s", party, table.name, name)
        # A description only applies to the category the classifier named.
        description = result.description if name == result.category else ""
        return self._outcome(name, "ai", description=description)

    @staticmethod
    def _outcome(
        name: str,
        tier: ResolutionTier,
        *,
        error: Exception | None = None,
        description: str = "",
    ) -> CategorizationOutcome:
        category = Category(name, description) if description else Category.named(name)
        return CategorizationOutcome(category=category, tier=tier, error=error)

    # ---- mappings -----------------------------------------------------------

    def lookup_mapping(self, party_name: str, *, is_debtor: bool) -> str | None:
        return self.store.table_for(is_debtor).lookup(party_name)

    def set_mapping(self, party_name: str, category: str, *, is_debtor: bool) -> bool:
        """Manually map a party; returns whether the table changed.

        Raises ``ValueError`` for an empty party name or a category the catalog
        does not know.
        """

        canonical = self.catalog.canonical_name(category)
        if canonical is None:
            raise ValueError(f"Unknown category: {category!r}")
        return self.store.table_for(is_debtor).upsert(party_name, canonical)

    def categories(self) -> tuple[str, ...]:
        return self.catalog.names()

    # ---- persistence --------------------------------------------------------

    def save_creditor_mappings(self) -> bool:
        return self.store.creditors.save()

    def save_debitor_mappings(self) -> bool:
        return self.store.debitors.save()

    def save_all(self) -> bool:
        return self.store.save_all()

    def __enter__(self) -> Self:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.save_all()


__all__ = ["CategorizationEngine"]
