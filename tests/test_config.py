"""
Tests for utils/config.py
"""

from __future__ import annotations

import pytest
import yaml

from utils.config import DEFAULT_CONFIG, load_settings
from utils.errors import UnknownEnvironment


class TestLoadSettings:
    def test_environments_and_fallbacks(self, settings):
        assert set(settings.environments) == {"DEV", "HOMOLOG", "PRODUCTION"}
        assert settings.environment("DEV").fallback.availability == 97.5
        assert settings.environment("HOMOLOG").fallback is None
        assert settings.environment("homolog").uri_env == ["TEST_MONGODB_URI_HOMOLOG"]

    def test_unknown_environment_raises(self, settings):
        with pytest.raises(UnknownEnvironment):
            settings.environment("STAGING")

    def test_mongo_uri_first_non_empty(self, settings, monkeypatch):
        monkeypatch.delenv("TEST_MONGODB_URI_PRODUCTION", raising=False)
        monkeypatch.setenv("TEST_MONGODB_URI", "mongodb://shared:27017")
        assert settings.environment("PRODUCTION").mongo_uri() == "mongodb://shared:27017"
        monkeypatch.setenv("TEST_MONGODB_URI_PRODUCTION", "mongodb://prod:27017")
        assert settings.environment("PRODUCTION").mongo_uri() == "mongodb://prod:27017"

    def test_overlap_policy_env_override(self, config_path, monkeypatch):
        monkeypatch.setenv("AVAILABILITY_OVERLAP_POLICY", "union")
        assert load_settings(config_path).overlap_policy == "union"

    def test_invalid_overlap_policy(self, config_path, monkeypatch):
        monkeypatch.setenv("AVAILABILITY_OVERLAP_POLICY", "max")
        with pytest.raises(ValueError):
            load_settings(config_path)

    def test_unconfigured_default_environment(self, config_path, monkeypatch):
        monkeypatch.setenv("MONITOR_DEFAULT_ENV", "QA")
        with pytest.raises(ValueError):
            load_settings(config_path)

    def test_no_environments(self, tmp_path):
        p = tmp_path / "empty.yaml"
        p.write_text(yaml.dump({"environments": {}}))
        with pytest.raises(ValueError):
            load_settings(p)


class TestDefaultConfig:
    """Integration test — uses the real config file in the repo."""

    def test_loads_repo_config(self, monkeypatch):
        monkeypatch.delenv("MONITOR_DEFAULT_ENV", raising=False)
        monkeypatch.delenv("AVAILABILITY_OVERLAP_POLICY", raising=False)
        settings = load_settings(DEFAULT_CONFIG)
        assert settings.default_environment == "PRODUCTION"
        assert settings.collection == "accidents"
        assert settings.overlap_policy == "sum"
        assert settings.services == ["CBA", "CBG", "CBC", "CBS", "FPS"]
        assert settings.environment("PRODUCTION").fallback.difference == -5.0
