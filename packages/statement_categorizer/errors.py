"""Exception types raised by ``statement_categorizer``.

Configuration problems are ``ValueError`` subclasses and are fatal at load
time. Classifier failures are ``RuntimeError`` subclasses; the engine absorbs
them (degrading to ``Uncategorized``) and hands them back to the caller inside
the outcome instead of raising. Persistence failures propagate to whoever
asked for the save.
"""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Invalid settings or malformed configuration content."""


class CatalogLoadError(ConfigurationError):
    """The category catalog file exists but cannot be parsed or validated."""


class MappingLoadError(ConfigurationError):
    """A party mapping file exists but cannot be parsed or validated."""


class ClassifierFailure(RuntimeError):
    """Base class for failures of the AI fallback tier."""


class ClassifierUnavailableError(ClassifierFailure):
    """The AI tier is disabled or has no credential configured."""


class ClassifierError(ClassifierFailure):
    """The AI call failed: network error, timeout, HTTP error or unusable reply."""


class PersistenceError(RuntimeError):
    """Writing a mapping table to durable storage failed."""


__all__ = [
    "CatalogLoadError",
    "ClassifierError",
    "ClassifierFailure",
    "ClassifierUnavailableError",
    "ConfigurationError",
    "MappingLoadError",
    "PersistenceError",
]
