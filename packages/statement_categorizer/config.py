"""Settings for ``statement_categorizer``.

Sources, lowest precedence first:

1. Defaults declared on the models below.
2. An optional YAML config file (explicit path, or ``config.yaml`` found in
   ``./.statement-categorizer/`` or the working directory).
3. Environment variables named ``STATEMENT_CATEGORIZER_<SECTION>_<FIELD>``,
   e.g. ``STATEMENT_CATEGORIZER_AI_TIMEOUT_SECONDS=10``.

The OpenAI credential is only ever read from ``OPENAI_API_KEY`` and is
excluded from serialization. Entrypoints load ``.env`` (python-dotenv) before
calling :func:`load_settings`.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigurationError
from .logging_setup import get_logger

ENV_PREFIX = "STATEMENT_CATEGORIZER_"
API_KEY_ENV = "OPENAI_API_KEY"
CONFIG_FILENAME = "config.yaml"
# Created on first save when a mapping file is not found anywhere.
DEFAULT_DATA_DIR = Path("database")

_logger = get_logger("statement_categorizer.config")


class AISettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    model: str = "gpt-5"
    timeout_seconds: float = Field(default=30.0, ge=1, le=300)
    requests_per_minute: int = Field(default=50, ge=1, le=1000)
    max_attempts: int = Field(default=3, ge=1, le=10)
    api_key: str | None = Field(default=None, exclude=True, repr=False)


class DataSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    directory: Path | None = None
    categories_file: str = "categories.yaml"
    creditors_file: str = "creditors.yaml"
    debitors_file: str = "debitors.yaml"
    backup_enabled: bool = True


class CategorizationSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    substring_policy: Literal["longest", "insertion"] = "longest"


class Settings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ai: AISettings = Field(default_factory=AISettings)
    data: DataSettings = Field(default_factory=DataSettings)
    categorization: CategorizationSettings = Field(default_factory=CategorizationSettings)

    def categories_path(self) -> Path | None:
        """Existing catalog file, or ``None`` to use the built-in catalog."""

        return resolve_config_file(self.data.categories_file, data_dir=self.data.directory)

    def creditors_path(self) -> Path:
        return mapping_file_path(self.data.creditors_file, data_dir=self.data.directory)

    def debitors_path(self) -> Path:
        return mapping_file_path(self.data.debitors_file, data_dir=self.data.directory)


# ---------------------------------------------------------------------------
# File location resolution
# ---------------------------------------------------------------------------


def _search_dirs(data_dir: Path | None) -> list[Path]:
    dirs: list[Path] = []
    if data_dir is not None:
        dirs.append(Path(data_dir).expanduser())
    dirs.extend([Path.cwd(), Path.cwd() / "config", Path.cwd() / "database"])
    dirs.append(Path.home() / ".config" / "statement-categorizer")
    return dirs


def resolve_config_file(filename: str | os.PathLike[str], *, data_dir: Path | None) -> Path | None:
    """Return the first existing location of ``filename``, or ``None``.

    Absolute paths are checked as-is. Relative names are searched in the data
    directory, the working directory, ``./config``, ``./database`` and
    ``~/.config/statement-categorizer``.
    """

    p = Path(filename).expanduser()
    if p.is_absolute():
        return p if p.is_file() else None
    for d in _search_dirs(data_dir):
        candidate = d / p
        if candidate.is_file():
            return candidate
    return None


def mapping_file_path(filename: str | os.PathLike[str], *, data_dir: Path | None) -> Path:
    """Return where a mapping file is read from and written to.

    An existing file wins; otherwise the file will be created under the data
    directory (``./database`` by default).
    """

    found = resolve_config_file(filename, data_dir=data_dir)
    if found is not None:
        return found
    p = Path(filename).expanduser()
    if p.is_absolute():
        return p
    base = Path(data_dir).expanduser() if data_dir is not None else Path.cwd() / DEFAULT_DATA_DIR
    return base / p


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _find_config_file() -> Path | None:
    candidates = (
        Path.cwd() / ".statement-categorizer" / CONFIG_FILENAME,
        Path.cwd() / CONFIG_FILENAME,
    )
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


def _read_yaml_mapping(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read config file {path}: {e}") from e
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping at top level")
    return raw


def _env_overrides(environ: Mapping[str, str]) -> dict[str, dict[str, str]]:
    """Collect ``STATEMENT_CATEGORIZER_<SECTION>_<FIELD>`` values by section."""

    out: dict[str, dict[str, str]] = {}
    for section, field_info in Settings.model_fields.items():
        section_model = field_info.annotation
        for name in section_model.model_fields:  # type: ignore[union-attr]
            if name == "api_key":
                continue
            value = environ.get(f"{ENV_PREFIX}{section.upper()}_{name.upper()}")
            if value is not None and value.strip():
                out.setdefault(section, {})[name] = value.strip()
    return out


def load_settings(
    config_path: str | os.PathLike[str] | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> Settings:
    """Build :class:`Settings` from defaults, the config file and the environment.

    Raises
    ------
    ConfigurationError
        When an explicitly given config file is missing, when the file is
        malformed, or when a value fails validation.
    """

    env = os.environ if environ is None else environ

    if config_path is not None:
        path: Path | None = Path(config_path).expanduser()
        if not path.is_file():
            raise ConfigurationError(f"Config file not found: {config_path}")
    else:
        path = _find_config_file()

    data: dict[str, Any] = _read_yaml_mapping(path) if path is not None else {}
    for section, values in _env_overrides(env).items():
        current = data.get(section)
        merged = dict(current) if isinstance(current, dict) else {}
        merged.update(values)
        data[section] = merged

    try:
        settings = Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    api_key = (env.get(API_KEY_ENV) or "").strip() or None
    settings.ai.api_key = api_key

    _logger.debug(
        "config:loaded file=%s ai_enabled=%s ai_model=%s credential=%s",
        os.fspath(path) if path is not None else None,
        settings.ai.enabled,
        settings.ai.model,
        "set" if api_key else "missing",
    )
    return settings


__all__ = [
    "AISettings",
    "API_KEY_ENV",
    "CategorizationSettings",
    "DataSettings",
    "Settings",
    "load_settings",
    "mapping_file_path",
    "resolve_config_file",
]
