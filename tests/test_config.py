"""Tests for engine configuration."""

import pytest
import json
import tempfile
from pathlib import Path

from crm_automation.core.config import RULES_FILE, EngineConfig, EngineConfigManager


@pytest.fixture
def temp_data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for var in [
        "CRM_AUTOMATION_DATA_DIR",
        "CRM_AUTOMATION_LOG_LEVEL",
        "CRM_AUTOMATION_WEBHOOK_TIMEOUT",
        "CRM_AUTOMATION_WEBHOOK_RETRIES",
        "CRM_AUTOMATION_IDLE_SCAN_MINUTES",
    ]:
        monkeypatch.delenv(var, raising=False)


class TestEngineConfigManager:
    """Tests for EngineConfigManager."""

    def test_defaults_without_file(self, temp_data_dir):
        manager = EngineConfigManager(temp_data_dir / "config.json")
        assert manager.config.webhook_retries == 3
        assert manager.config.log_level == "INFO"

    def test_save_and_reload(self, temp_data_dir):
        path = temp_data_dir / "config.json"
        manager = EngineConfigManager(path)
        manager.config.webhook_timeout = 2.5
        manager.set_data_dir(str(temp_data_dir / "state"))

        reloaded = EngineConfigManager(path)
        assert reloaded.config.webhook_timeout == 2.5
        assert reloaded.config.path_for(RULES_FILE) == temp_data_dir / "state" / "rules.json"

    def test_env_overrides_file(self, temp_data_dir, monkeypatch):
        path = temp_data_dir / "config.json"
        path.write_text(json.dumps({"webhook_retries": 5, "log_level": "WARNING"}))
        monkeypatch.setenv("CRM_AUTOMATION_WEBHOOK_RETRIES", "1")
        monkeypatch.setenv("CRM_AUTOMATION_IDLE_SCAN_MINUTES", "5")

        config = EngineConfigManager(path).config

        assert config.webhook_retries == 1
        assert config.idle_scan_minutes == 5
        assert config.log_level == "WARNING"

    def test_invalid_env_value_ignored(self, temp_data_dir, monkeypatch):
        monkeypatch.setenv("CRM_AUTOMATION_WEBHOOK_TIMEOUT", "soon")
        config = EngineConfigManager(temp_data_dir / "config.json").config
        assert config.webhook_timeout == EngineConfig().webhook_timeout

    def test_corrupt_file_falls_back_to_defaults(self, temp_data_dir):
        path = temp_data_dir / "config.json"
        path.write_text("{not json")
        assert EngineConfigManager(path).config.webhook_retries == 3
