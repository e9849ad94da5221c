"""Tests for config loading and per-run input resolution."""

import json

import pytest
from pydantic import ValidationError

from app.config import CONFIG_ENV_VAR, CONFIG_FILENAME, AuditDefaults, build_inputs, load_config


@pytest.fixture(autouse=True)
def no_config_override(monkeypatch):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)


class TestLoadConfig:
    def test_missing_file_uses_defaults(self, tmp_path):
        config = load_config(tmp_path)
        assert config.defaults.max_pages == 100
        assert config.defaults.coverage == "surface"

    def test_reads_defaults_from_file(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text(
            json.dumps({"config_version": 1, "defaults": {"max_pages": 25, "coverage": "full"}}),
            encoding="utf-8",
        )
        config = load_config(tmp_path)
        assert config.defaults.max_pages == 25
        assert config.defaults.coverage == "full"

    def test_invalid_file_is_ignored(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text("{not json", encoding="utf-8")
        assert load_config(tmp_path).defaults.max_pages == 100

    def test_invalid_values_are_ignored(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text(json.dumps({"defaults": {"max_pages": 0}}), encoding="utf-8")
        assert load_config(tmp_path).defaults.max_pages == 100

    def test_env_var_points_to_file(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.json"
        path.write_text(json.dumps({"defaults": {"crawl_depth": 1}}), encoding="utf-8")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
        assert load_config().defaults.crawl_depth == 1


class TestBuildInputs:
    def test_overrides_replace_defaults(self):
        inputs = build_inputs("https://example.com/", AuditDefaults(), max_pages=10, crawl_depth=None)
        assert inputs.max_pages == 10
        assert inputs.crawl_depth == 3

    def test_relative_focus_url_is_resolved(self):
        inputs = build_inputs(
            "https://example.com/",
            AuditDefaults(),
            focus_url="/services/seo",
            focus_keyword="  seo audit ",
        )
        assert inputs.focus.primary_url == "https://example.com/services/seo"
        assert inputs.focus.primary_keyword == "seo audit"

    def test_unknown_option_raises(self):
        with pytest.raises(ValueError, match="Unknown audit options"):
            build_inputs("https://example.com/", AuditDefaults(), max_page=10)

    def test_inputs_are_frozen(self):
        inputs = build_inputs("https://example.com/", AuditDefaults())
        with pytest.raises(ValidationError):
            inputs.max_pages = 5
