"""Category catalog: ordered category definitions with keyword matching.

The catalog file is YAML, either wrapped::

    categories:
      - name: Groceries
        keywords: [migros, coop]

or a bare list of the same records. Order is significant: :meth:`match`
returns the first category (in file order) that has any keyword contained in
the text, so catalog authors control precedence by ordering entries.
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Iterator, Sequence
from pathlib import Path

import yaml
from pydantic import TypeAdapter, ValidationError

from .errors import CatalogLoadError
from .logging_setup import get_logger
from .models import (
    UNCATEGORIZED,
    CatalogFile,
    CategoryDefinition,
    CategoryRecord,
    category_description,
)

_logger = get_logger("statement_categorizer.catalog")

_RECORD_LIST = TypeAdapter(list[CategoryRecord])

# Used when no catalog file exists. Kept small; real deployments ship a file.
_DEFAULT_CATALOG: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Groceries", ("migros", "coop", "denner", "aldi", "lidl", "supermarket")),
    ("Restaurants", ("restaurant", "pizzeria", "sushi", "kebab", "ramen", "cafe")),
    ("Transportation", ("sbb", "cff", "uber", "taxi", "parking")),
    ("Cash Withdrawals", ("atm", "withdrawal", "bancomat")),
    ("Bills & Utilities", ("insurance", "energie", "swisscom", "electricity")),
    ("Shopping", ("ikea", "amazon", "zalando", "manor", "interdiscount")),
    ("Transfers", ("transfer", "twint")),
    ("Income", ("salary", "salaire", "payroll")),
)


class CategoryCatalog:
    """Immutable ordered sequence of :class:`CategoryDefinition`."""

    __slots__ = ("_definitions", "_by_folded_name")

    def __init__(self, definitions: Iterable[CategoryDefinition]) -> None:
        defs: list[CategoryDefinition] = []
        seen: set[str] = set()
        for d in definitions:
            key = d.name.casefold()
            if key in seen:
                # First declaration wins; later duplicates could never match first anyway.
                _logger.warning("catalog:duplicate_category name=%s", d.name)
                continue
            seen.add(key)
            defs.append(d)
        self._definitions: tuple[CategoryDefinition, ...] = tuple(defs)
        self._by_folded_name = {d.name.casefold(): d for d in self._definitions}

    # ---- construction -------------------------------------------------------

    @classmethod
    def default(cls) -> CategoryCatalog:
        return cls(CategoryDefinition(name=n, keywords=kw) for n, kw in _DEFAULT_CATALOG)

    @classmethod
    def from_records(cls, records: Sequence[CategoryRecord]) -> CategoryCatalog:
        return cls(CategoryDefinition(name=r.name, keywords=tuple(r.keywords)) for r in records)

    @classmethod
    def load(cls, path: str | os.PathLike[str] | None) -> CategoryCatalog:
        """Load a catalog file; fall back to :meth:`default` when it is absent.

        Raises
        ------
        CatalogLoadError
            When the file exists but is not valid YAML or does not have the
            expected shape.
        """

        if path is None:
            _logger.info("catalog:default reason=no_file")
            return cls.default()
        p = Path(path)
        try:
            text = p.read_text(encoding="utf-8")
        except FileNotFoundError:
            _logger.info("catalog:default reason=missing path=%s", os.fspath(p))
            return cls.default()
        except (OSError, UnicodeDecodeError) as e:
            raise CatalogLoadError(f"Failed to read category catalog {p}: {e}") from e

        try:
            raw = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise CatalogLoadError(f"Malformed category catalog {p}: {e}") from e

        try:
            if isinstance(raw, dict):
                records = CatalogFile.model_validate(raw).categories
            elif isinstance(raw, list):
                records = _RECORD_LIST.validate_python(raw)
            elif raw is None:
                records = []
            else:
                raise CatalogLoadError(
                    f"Category catalog {p} must be a list of records or a 'categories' mapping"
                )
        except ValidationError as e:
            raise CatalogLoadError(f"Invalid category catalog {p}: {e}") from e

        catalog = cls.from_records(records)
        _logger.info("catalog:loaded path=%s categories=%d", os.fspath(p), len(catalog))
        return catalog

    # ---- queries ------------------------------------------------------------

    def match(self, text: str) -> str | None:
        """Return the first category having a keyword contained in ``text``."""

        haystack = text.lower()
        if not haystack:
            return None
        for definition in self._definitions:
            for keyword in definition.keywords:
                if keyword in haystack:
                    _logger.debug(
                        "catalog:match keyword=%s category=%s", keyword, definition.name
                    )
                    return definition.name
        return None

    def names(self) -> tuple[str, ...]:
        return tuple(d.name for d in self._definitions)

    def get(self, name: str) -> CategoryDefinition | None:
        """Case-insensitive lookup by category name."""

        return self._by_folded_name.get(name.strip().casefold())

    def canonical_name(self, name: str) -> str | None:
        """Return ``name`` with the catalog's casing, or ``None`` when unknown.

        ``Uncategorized`` is always known.
        """

        d = self.get(name)
        if d is not None:
            return d.name
        if name.strip().casefold() == UNCATEGORIZED.casefold():
            return UNCATEGORIZED
        return None

    def describe(self, name: str) -> str:
        return category_description(name)

    def __len__(self) -> int:
        return len(self._definitions)

    def __iter__(self) -> Iterator[CategoryDefinition]:
        return iter(self._definitions)

    def __repr__(self) -> str:
        return f"CategoryCatalog({len(self._definitions)} categories)"


__all__ = ["CategoryCatalog"]
