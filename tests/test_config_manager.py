"""Tests for TOML-backed analysis settings."""

import logging

import toml

from tsgraph_cli import config
from tsgraph_cli.config_manager import AnalysisSettings, load_full_config, load_settings, save_settings


def _write_config(text: str):
    config.CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    config.CONFIG_FILE.write_text(text, encoding="utf-8")


def test_defaults_without_config_file():
    settings = load_settings()
    assert settings == AnalysisSettings()
    assert settings.max_depth == 10
    assert settings.max_properties == 20
    assert settings.collapse_threshold == 10
    assert settings.max_nodes == 1000
    assert "node_modules" in settings.dependency_dirs


def test_values_loaded_from_toml():
    _write_config(
        "[simplifier]\n"
        "max_depth = 4\n"
        "max_properties = 8\n"
        "max_nodes = 200\n"
        'wrappers = [{ pattern = "Brand<[^>]+>", replace = "Brand" }]\n'
        "\n"
        "[graph]\n"
        'dependency_dirs = ["node_modules", "vendor"]\n'
        'ignore = ["dist/"]\n'
    )
    settings = load_settings()
    assert settings.max_depth == 4
    assert settings.max_properties == 8
    assert settings.collapse_threshold == 10
    assert settings.max_nodes == 200
    assert settings.wrapper_rules == (("Brand<[^>]+>", "Brand"),)
    assert settings.dependency_dirs == ("node_modules", "vendor")
    assert settings.extra_ignores == ("dist/",)


def test_invalid_values_fall_back_with_warning(caplog):
    _write_config(
        "[simplifier]\n"
        "max_depth = -1\n"
        'max_properties = "many"\n'
        "collapse_threshold = true\n"
        "[graph]\n"
        'ignore = "dist/"\n'
    )
    with caplog.at_level(logging.WARNING):
        settings = load_settings()

    assert settings == AnalysisSettings()
    assert "max_depth" in caplog.text
    assert "max_properties" in caplog.text
    assert "collapse_threshold" in caplog.text
    assert "[graph].ignore" in caplog.text


def test_malformed_wrapper_entries_are_skipped(caplog):
    _write_config(
        "[simplifier]\n"
        'wrappers = [{ pattern = "A<[^>]+>", replace = "A" }, { pattern = "B" }]\n'
    )
    with caplog.at_level(logging.WARNING):
        settings = load_settings()
    assert settings.wrapper_rules == (("A<[^>]+>", "A"),)
    assert "malformed wrapper rule" in caplog.text


def test_unparsable_file_is_ignored(caplog):
    _write_config("[simplifier\nmax_depth = ")
    with caplog.at_level(logging.WARNING):
        assert load_full_config() == {}
        assert load_settings() == AnalysisSettings()
    assert "Ignoring unreadable config file" in caplog.text


def test_save_round_trip_keeps_other_sections():
    _write_config('[editor]\ntheme = "dark"\n')
    updated = AnalysisSettings().with_overrides(max_depth=3, extra_ignores=("build/",))

    assert save_settings(updated)
    assert load_settings() == updated
    assert toml.load(config.CONFIG_FILE)["editor"] == {"theme": "dark"}


def test_with_overrides_skips_none():
    base = AnalysisSettings()
    assert base.with_overrides(max_depth=None) is base
    assert base.with_overrides(max_depth=2, max_properties=None).max_depth == 2


def test_to_dict_is_toml_friendly():
    data = AnalysisSettings().to_dict()
    assert isinstance(data["wrapper_rules"][0], list)
    assert isinstance(data["dependency_dirs"], list)
    assert data["extra_ignores"] == []
