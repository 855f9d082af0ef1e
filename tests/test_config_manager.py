"""Unit tests for configuration management."""

from pathlib import Path

import pytest

from labelsort.config import (
    ConfigError,
    ConfigManager,
    LabelsortConfig,
    flatten_for_env,
    parse_env,
    resolve_with_precedence,
)


def _fresh_manager(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> ConfigManager:
    monkeypatch.setenv("HOME", str(tmp_path))
    return ConfigManager()


def test_ensure_exists_creates_default_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)

    path = manager.ensure_exists()

    assert path == tmp_path / ".labelsort" / "config.yaml"
    text = path.read_text(encoding="utf-8")
    assert "labelsort configuration file" in text
    assert "Last updated:" in text

    config = manager.load(include_env=False)
    assert isinstance(config, LabelsortConfig)
    assert config.matching.window_seconds == pytest.approx(180.0)
    assert config.naming.placeholder == "untitled"


def test_resolve_with_precedence_respects_order(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.save({"matching": {"window_seconds": 120, "min_score": 0.5}})

    env = {"LABELSORT__MATCHING__WINDOW_SECONDS": "90"}
    cli = {"matching.window_seconds": 60}

    config = manager.load(cli_overrides=cli, env_overrides=env)

    assert config.matching.window_seconds == pytest.approx(60)
    assert config.matching.min_score == pytest.approx(0.5)

    without_cli = manager.load(env_overrides=env)
    assert without_cli.matching.window_seconds == pytest.approx(90)

    file_only = manager.load(include_env=False)
    assert file_only.matching.window_seconds == pytest.approx(120)


def test_parse_env_ignores_unrelated_variables() -> None:
    overrides = parse_env(
        {
            "HOME": "/home/user",
            "LABELSORT__NAMING__PLACEHOLDER": "sample",
            "LABELSORT__MATCHING__MATCH_ON_EXTRACTION": "false",
        }
    )

    assert overrides == {
        "naming": {"placeholder": "sample"},
        "matching": {"match_on_extraction": False},
    }


def test_invalid_values_raise_config_error() -> None:
    with pytest.raises(ConfigError):
        resolve_with_precedence(
            defaults=LabelsortConfig(),
            file_overrides={"matching": {"inferred_confidence": 1.0}},
        )

    with pytest.raises(ConfigError):
        resolve_with_precedence(
            defaults=LabelsortConfig(),
            file_overrides={"matching": {"unknown_option": True}},
        )

    with pytest.raises(ConfigError):
        resolve_with_precedence(
            defaults=LabelsortConfig(),
            cli_overrides={"matching.proactive_strategy": "fuzzy"},
        )


def test_malformed_file_raises_config_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.config_path.parent.mkdir(parents=True, exist_ok=True)
    manager.config_path.write_text("matching: [unclosed", encoding="utf-8")

    with pytest.raises(ConfigError):
        manager.load(include_env=False)

    manager.config_path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        manager.load(include_env=False)


def test_flatten_for_env_uses_prefix() -> None:
    flat = flatten_for_env(LabelsortConfig())

    assert flat["LABELSORT__MATCHING__WINDOW_SECONDS"] == "180.0"
    assert flat["LABELSORT__NAMING__MAX_COUNTER"] == "1000"
    assert flat["LABELSORT__CODES__ENABLED_PATTERNS"] == "null"
