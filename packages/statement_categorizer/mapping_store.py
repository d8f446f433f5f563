"""Party → category mapping tables with durable YAML storage.

Two independent tables exist: ``creditors`` (parties money is received from)
and ``debitors`` (parties money is paid to). Keys are normalized party names
(see :func:`normalize_party_name`); values are category names.

On-disk shape (writers always emit the wrapped form)::

    creditors:
      acme corp: Income

A bare flat mapping ``{party: category}`` is accepted on read. Writes go to a
``.tmp`` sibling first and then ``os.replace`` into place, so readers never
observe a partially written file.

Concurrency: each table has one reader/writer lock. ``lookup`` reads;
``upsert`` writes; ``save`` snapshots under the read lock and takes the write
lock only to clear the dirty flag. Saves of one table are serialized.
"""

from __future__ import annotations

import contextlib
import os
import shutil
import threading
import time
import unicodedata
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import TypeAdapter, ValidationError

from .errors import MappingLoadError, PersistenceError
from .locks import ReadWriteLock
from .logging_setup import get_logger

type SubstringPolicy = Literal["longest", "insertion"]
"""How :meth:`MappingTable.lookup` picks among several substring matches.

- ``"longest"``: the longest stored key contained in the name wins; keys of
  equal length resolve to the one inserted first.
- ``"insertion"``: the first stored key (in insertion order) contained in the
  name wins.
"""

CREDITORS = "creditors"
DEBITORS = "debitors"

# Accepted top-level keys per table for the wrapped form; the first is written.
_TABLE_KEYS: dict[str, tuple[str, ...]] = {
    CREDITORS: (CREDITORS,),
    DEBITORS: (DEBITORS, "debtors"),
}

_BACKUP_TIMESTAMP = "%Y%m%d_%H%M%S"

_FLAT_MAPPING = TypeAdapter(dict[str, str])

_logger = get_logger("statement_categorizer.mapping_store")


def normalize_party_name(name: str) -> str:
    """Return the lookup key for a party name.

    NFKC-normalizes, trims, collapses internal whitespace and case-folds, so
    ``"STARBUCKS"`` and ``"  starbucks  "`` share one key.
    """

    s = unicodedata.normalize("NFKC", name).strip()
    return " ".join(s.split()).casefold()


class MappingTable:
    """One persisted ``normalized party name → category`` table."""

    def __init__(
        self,
        name: str,
        path: str | os.PathLike[str],
        *,
        substring_policy: SubstringPolicy = "longest",
        backup_enabled: bool = False,
        backup_dir: str | os.PathLike[str] | None = None,
    ) -> None:
        if name not in _TABLE_KEYS:
            raise ValueError(f"Unknown mapping table: {name!r}")
        if substring_policy not in ("longest", "insertion"):
            raise ValueError(f"Unknown substring policy: {substring_policy!r}")
        self.name = name
        self.path = Path(path)
        self.substring_policy: SubstringPolicy = substring_policy
        self.backup_enabled = backup_enabled
        self.backup_dir = Path(backup_dir) if backup_dir is not None else None

        self._entries: dict[str, str] = {}
        self._lock = ReadWriteLock()
        self._save_lock = threading.Lock()
        self._dirty = False
        # Bumped on every effective mutation; lets save() detect writes that
        # landed after its snapshot.
        self._version = 0

    # ---- reads --------------------------------------------------------------

    def lookup(self, party_name: str) -> str | None:
        """Return the category for ``party_name``, or ``None``.

        Exact key match first; otherwise a stored key contained in the name,
        chosen per :attr:`substring_policy`.
        """

        key = normalize_party_name(party_name)
        if not key:
            return None
        with self._lock.read():
            hit = self._entries.get(key)
            if hit is not None:
                return hit
            best: str | None = None
            for stored in self._entries:
                if not stored or stored not in key:
                    continue
                if self.substring_policy == "insertion":
                    best = stored
                    break
                if best is None or len(stored) > len(best):
                    best = stored
            if best is None:
                return None
            _logger.debug(
                "mapping:substring_hit table=%s name=%s key=%s", self.name, key, best
            )
            return self._entries[best]

    def snapshot(self) -> dict[str, str]:
        with self._lock.read():
            return dict(self._entries)

    @property
    def is_dirty(self) -> bool:
        with self._lock.read():
            return self._dirty

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._entries)

    def __contains__(self, party_name: object) -> bool:
        if not isinstance(party_name, str):
            return False
        key = normalize_party_name(party_name)
        with self._lock.read():
            return key in self._entries

    # ---- writes -------------------------------------------------------------

    def upsert(self, party_name: str, category: str) -> bool:
        """Store ``category`` for ``party_name``; return whether anything changed.

        Re-storing an identical value leaves the dirty flag untouched.
        """

        key = normalize_party_name(party_name)
        if not key:
            raise ValueError("party name must be non-empty after normalization")
        if not category or not category.strip():
            raise ValueError("category must be a non-empty string")
        category = category.strip()
        with self._lock.write():
            if self._entries.get(key) == category:
                return False
            self._entries[key] = category
            self._dirty = True
            self._version += 1
        _logger.debug("mapping:upsert table=%s key=%s category=%s", self.name, key, category)
        return True

    def save(self) -> bool:
        """Persist the table when dirty; return whether a write happened.

        Raises
        ------
        PersistenceError
            When writing or renaming fails. The dirty flag stays set.
        """

        with self._save_lock:
            with self._lock.read():
                if not self._dirty:
                    return False
                snapshot = dict(self._entries)
                version = self._version

            self._write(snapshot)

            with self._lock.write():
                if self._version == version:
                    self._dirty = False
        _logger.info(
            "mapping:saved table=%s entries=%d path=%s",
            self.name,
            len(snapshot),
            os.fspath(self.path),
        )
        return True

    def _write(self, snapshot: dict[str, str]) -> None:
        payload = {_TABLE_KEYS[self.name][0]: dict(sorted(snapshot.items()))}
        text = yaml.safe_dump(
            payload, allow_unicode=True, sort_keys=False, default_flow_style=False
        )
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            if self.backup_enabled:
                self._backup()
            tmp.write_text(text, encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            with contextlib.suppress(FileNotFoundError):
                tmp.unlink()
            _logger.error(
                "mapping:save_failed table=%s path=%s error=%s",
                self.name,
                os.fspath(self.path),
                e.__class__.__name__,
            )
            raise PersistenceError(
                f"Failed to save {self.name} mappings to {self.path}: {e}"
            ) from e

    def _backup(self) -> None:
        if not self.path.exists():
            return
        stamp = time.strftime(_BACKUP_TIMESTAMP)
        target_dir = self.backup_dir if self.backup_dir is not None else self.path.parent
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / f"{self.path.name}.{stamp}.backup"
        shutil.copy2(self.path, target)
        _logger.debug("mapping:backup table=%s path=%s", self.name, os.fspath(target))

    # ---- loading ------------------------------------------------------------

    def load(self) -> None:
        """Replace the in-memory table with the file contents.

        A missing file yields an empty table flagged dirty (it is created on
        the next save).

        Raises
        ------
        MappingLoadError
            When the file exists but is unreadable, not YAML, or not a
            ``str → str`` mapping in either accepted shape.
        """

        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            with self._lock.write():
                self._entries = {}
                self._dirty = True
                self._version += 1
            _logger.info(
                "mapping:missing table=%s path=%s; starting empty",
                self.name,
                os.fspath(self.path),
            )
            return
        except (OSError, UnicodeDecodeError) as e:
            raise MappingLoadError(f"Failed to read {self.name} mappings {self.path}: {e}") from e

        try:
            raw = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise MappingLoadError(f"Malformed {self.name} mappings {self.path}: {e}") from e

        flat = self._unwrap(raw)
        entries: dict[str, str] = {}
        changed = False
        for raw_key, value in flat.items():
            key = normalize_party_name(raw_key)
            cat = value.strip()
            if not key or not cat:
                changed = True
                continue
            if key != raw_key or key in entries or cat != value:
                changed = True
            entries[key] = cat

        with self._lock.write():
            self._entries = entries
            # Rewrite the file normalized on next save.
            self._dirty = changed
            self._version += 1
        _logger.info(
            "mapping:loaded table=%s entries=%d path=%s",
            self.name,
            len(entries),
            os.fspath(self.path),
        )

    def _unwrap(self, raw: Any) -> dict[str, str]:
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise MappingLoadError(
                f"{self.name} mappings {self.path} must be a mapping, got {type(raw).__name__}"
            )
        body: Any = raw
        for table_key in _TABLE_KEYS[self.name]:
            if table_key in raw and (raw[table_key] is None or isinstance(raw[table_key], dict)):
                body = raw[table_key] or {}
                break
        try:
            # YAML may produce int/float keys for names like "1234"; keep them as text.
            return _FLAT_MAPPING.validate_python({str(k): v for k, v in body.items()})
        except ValidationError as e:
            raise MappingLoadError(f"Invalid {self.name} mappings {self.path}: {e}") from e


class PartyMappingStore:
    """The creditor and debitor tables owned by one engine."""

    def __init__(
        self,
        creditors_path: str | os.PathLike[str],
        debitors_path: str | os.PathLike[str],
        *,
        substring_policy: SubstringPolicy = "longest",
        backup_enabled: bool = False,
        load: bool = True,
    ) -> None:
        self.creditors = MappingTable(
            CREDITORS,
            creditors_path,
            substring_policy=substring_policy,
            backup_enabled=backup_enabled,
        )
        self.debitors = MappingTable(
            DEBITORS,
            debitors_path,
            substring_policy=substring_policy,
            backup_enabled=backup_enabled,
        )
        if load:
            self.load()

    def table_for(self, is_debtor: bool) -> MappingTable:
        """Debitor table for parties money is paid to, creditor table otherwise."""

        return self.debitors if is_debtor else self.creditors

    def load(self) -> None:
        self.creditors.load()
        self.debitors.load()

    def save_all(self) -> bool:
        """Save both tables; return whether any write happened.

        Both saves are attempted even if the first fails; the first error is
        raised afterwards.
        """

        wrote = False
        first_error: PersistenceError | None = None
        for table in (self.creditors, self.debitors):
            try:
                wrote = table.save() or wrote
            except PersistenceError as e:
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error
        return wrote


__all__ = [
    "CREDITORS",
    "DEBITORS",
    "MappingTable",
    "PartyMappingStore",
    "SubstringPolicy",
    "normalize_party_name",
]
