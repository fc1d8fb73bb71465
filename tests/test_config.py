"""Tests for YAML config loading and persistence."""

from __future__ import annotations

from src.config import load_config, save_config_values

YAML = """\
api:
  base_url: "http://backend:5000/api"
time:
  increment_unit: "milliseconds"   # minutes | seconds | milliseconds
  increment_amount: 250
  auto_advance: false
view:
  auto_zoom: true
  unknown_key: 1
"""


class TestLoadConfig:
    def test_defaults_without_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("COURSE_API_URL", raising=False)
        config = load_config(tmp_path / "missing.yaml")
        assert config.api.base_url == "http://localhost:5000/api"
        assert config.time.increment_amount == 1
        assert config.session.result_display_delay == 2.0

    def test_yaml_sections(self, tmp_path, monkeypatch):
        monkeypatch.delenv("COURSE_API_URL", raising=False)
        path = tmp_path / "config.yaml"
        path.write_text(YAML)
        config = load_config(path)
        assert config.api.base_url == "http://backend:5000/api"
        assert config.time.increment_unit == "milliseconds"
        assert config.time.increment_amount == 250
        assert config.time.auto_advance is False
        assert config.view.auto_zoom is True
        assert not hasattr(config.view, "unknown_key")

    def test_env_overrides(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text(YAML)
        monkeypatch.setenv("COURSE_API_URL", "http://override/api")
        monkeypatch.setenv("WEB_PORT", "9001")
        config = load_config(path)
        assert config.api.base_url == "http://override/api"
        assert config.web.port == 9001


class TestSaveConfigValues:
    def test_updates_values_and_keeps_comments(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(YAML)
        save_config_values({
            "increment_unit": "seconds",
            "increment_amount": 5,
            "auto_advance": True,
        }, path)
        text = path.read_text()
        assert 'increment_unit: "seconds"   # minutes | seconds | milliseconds' in text
        assert "increment_amount: 5\n" in text
        assert "auto_advance: true" in text

        config = load_config(path)
        assert config.time.increment_amount == 5

    def test_missing_file_is_ignored(self, tmp_path):
        save_config_values({"auto_zoom": True}, tmp_path / "nope.yaml")
        assert not (tmp_path / "nope.yaml").exists()
