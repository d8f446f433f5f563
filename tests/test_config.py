from __future__ import annotations

from pathlib import Path

import pytest

from statement_categorizer.config import (
    Settings,
    load_settings,
    mapping_file_path,
    resolve_config_file,
)
from statement_categorizer.errors import ConfigurationError


def test_defaults_without_file_or_env():
    settings = load_settings(environ={})

    assert settings == Settings()
    assert settings.ai.enabled is True
    assert settings.ai.timeout_seconds == 30
    assert settings.ai.api_key is None
    assert settings.categorization.substring_policy == "longest"
    assert settings.data.backup_enabled is True


def test_config_file_in_working_directory_is_picked_up():
    Path("config.yaml").write_text(
        "ai:\n  model: gpt-mini\n  requests_per_minute: 10\ncategorization:\n"
        "  substring_policy: insertion\n",
        encoding="utf-8",
    )

    settings = load_settings(environ={})

    assert settings.ai.model == "gpt-mini"
    assert settings.ai.requests_per_minute == 10
    assert settings.categorization.substring_policy == "insertion"


def test_environment_overrides_file(tmp_path: Path):
    cfg = tmp_path / "custom.yaml"
    cfg.write_text("ai:\n  timeout_seconds: 20\n  enabled: true\n", encoding="utf-8")

    settings = load_settings(
        cfg,
        environ={
            "STATEMENT_CATEGORIZER_AI_TIMEOUT_SECONDS": "12.5",
            "STATEMENT_CATEGORIZER_AI_ENABLED": "false",
            "STATEMENT_CATEGORIZER_DATA_DIRECTORY": str(tmp_path / "data"),
            "OPENAI_API_KEY": " sk-123 ",
        },
    )

    assert settings.ai.timeout_seconds == 12.5
    assert settings.ai.enabled is False
    assert settings.data.directory == tmp_path / "data"
    assert settings.ai.api_key == "sk-123"


def test_api_key_is_not_serialized():
    settings = load_settings(environ={"OPENAI_API_KEY": "sk-secret"})

    assert "api_key" not in settings.model_dump()["ai"]
    assert "sk-secret" not in repr(settings)


def test_api_key_cannot_come_from_prefixed_env():
    settings = load_settings(environ={"STATEMENT_CATEGORIZER_AI_API_KEY": "sk-nope"})

    assert settings.ai.api_key is None


@pytest.mark.parametrize(
    "environ",
    [
        {"STATEMENT_CATEGORIZER_AI_TIMEOUT_SECONDS": "0"},
        {"STATEMENT_CATEGORIZER_AI_REQUESTS_PER_MINUTE": "5000"},
        {"STATEMENT_CATEGORIZER_CATEGORIZATION_SUBSTRING_POLICY": "shortest"},
    ],
)
def test_out_of_range_values_raise_configuration_error(environ: dict[str, str]):
    with pytest.raises(ConfigurationError) as ei:
        load_settings(environ=environ)
    assert isinstance(ei.value, ValueError)


def test_unknown_keys_and_bad_files_raise(tmp_path: Path):
    unknown = tmp_path / "unknown.yaml"
    unknown.write_text("ai:\n  temperature: 2\n", encoding="utf-8")
    not_mapping = tmp_path / "list.yaml"
    not_mapping.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_settings(unknown, environ={})
    with pytest.raises(ConfigurationError):
        load_settings(not_mapping, environ={})
    with pytest.raises(ConfigurationError):
        load_settings(tmp_path / "missing.yaml", environ={})


def test_resolve_config_file_search_order(tmp_path: Path):
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    Path("database").mkdir()
    Path("database/categories.yaml").write_text("[]", encoding="utf-8")

    assert resolve_config_file("categories.yaml", data_dir=None) == (
        Path.cwd() / "database" / "categories.yaml"
    )

    Path("config").mkdir()
    Path("config/categories.yaml").write_text("[]", encoding="utf-8")
    assert resolve_config_file("categories.yaml", data_dir=None) == (
        Path.cwd() / "config" / "categories.yaml"
    )

    (data_dir / "categories.yaml").write_text("[]", encoding="utf-8")
    assert resolve_config_file("categories.yaml", data_dir=data_dir) == data_dir / "categories.yaml"

    assert resolve_config_file("absent.yaml", data_dir=data_dir) is None


def test_resolve_config_file_checks_user_config_dir():
    user_dir = Path.home() / ".config" / "statement-categorizer"
    user_dir.mkdir(parents=True)
    (user_dir / "creditors.yaml").write_text("{}", encoding="utf-8")

    assert resolve_config_file("creditors.yaml", data_dir=None) == user_dir / "creditors.yaml"


def test_mapping_file_path_defaults_to_database_dir(tmp_path: Path):
    assert mapping_file_path("creditors.yaml", data_dir=None) == (
        Path.cwd() / "database" / "creditors.yaml"
    )
    assert mapping_file_path("debitors.yaml", data_dir=tmp_path) == tmp_path / "debitors.yaml"

    existing = Path.cwd() / "debitors.yaml"
    existing.write_text("{}", encoding="utf-8")
    assert mapping_file_path("debitors.yaml", data_dir=None) == existing
