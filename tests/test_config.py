"""
Unit tests for configuration loading and validation.

Tests defaults, overrides and strict rejection of invalid settings.
"""

import os
import tempfile

import pytest
import yaml

from killer_assistant.config.loader import (
    CONFIG_ENV_VAR,
    CaptureConfig,
    EngineConfig,
    GrantConfig,
    ServerConfig,
    default_settings,
    load_settings,
)
from killer_assistant.core.pricing import BilledAction


class TestConfigLoading:
    """Test configuration loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data, filename: str = "config.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return config_path

    def test_defaults_without_path(self, monkeypatch):
        """Test that no path and no env var yields defaults."""
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        settings = load_settings()

        assert settings == default_settings()
        assert settings.pricing.cost_of(BilledAction.COMPLETION) == 10
        assert settings.grants.starting_allowance == 5
        assert settings.grants.first_session_bonus == 10
        assert settings.capture.interval_seconds == 5.0
        assert settings.engine.chat_model == "gpt-4o"
        assert settings.server.require_auth is False

    def test_valid_config_loads_correctly(self):
        """Test that a valid configuration loads correctly."""
        config_path = self._write_config({
            "pricing": {"completion": 8},
            "grants": {"starting_allowance": 20, "first_session_bonus": 0},
            "capture": {"interval_seconds": 4, "record_seconds": 3.5, "min_segment_bytes": 500},
            "engine": {"chat_model": "gpt-4o-mini", "language": "bn", "max_tokens": 300},
            "server": {"db_path": "/tmp/ka.db", "port": 8080, "require_auth": True},
        })
        settings = load_settings(config_path)

        assert settings.pricing.cost_of(BilledAction.COMPLETION) == 8
        assert settings.pricing.cost_of(BilledAction.TRANSCRIPTION) == 2
        assert settings.grants.starting_allowance == 20
        assert settings.capture.interval_seconds == 4.0
        assert settings.capture.min_segment_bytes == 500
        assert settings.engine.chat_model == "gpt-4o-mini"
        assert settings.engine.max_tokens == 300
        assert settings.server.port == 8080
        assert settings.server.require_auth is True

    def test_env_var_path(self, monkeypatch):
        """Test the config path is read from the environment."""
        config_path = self._write_config({"server": {"port": 9000}})
        monkeypatch.setenv(CONFIG_ENV_VAR, config_path)
        assert load_settings().server.port == 9000

    def test_empty_file_yields_defaults(self):
        """Test an empty file is accepted."""
        config_path = os.path.join(self.temp_dir, "empty.yaml")
        open(config_path, 'w').close()
        assert load_settings(config_path) == default_settings()

    def test_missing_file(self):
        """Test missing config file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            load_settings(os.path.join(self.temp_dir, "nope.yaml"))

    def test_invalid_yaml(self):
        """Test invalid YAML raises YAMLError."""
        config_path = os.path.join(self.temp_dir, "bad.yaml")
        with open(config_path, 'w', encoding='utf-8') as f:
            f.write("pricing: [unclosed")
        with pytest.raises(yaml.YAMLError):
            load_settings(config_path)

    def test_unknown_top_level_key(self):
        """Test unknown sections are rejected."""
        config_path = self._write_config({"billing": {}})
        with pytest.raises(ValueError, match="Unknown configuration keys"):
            load_settings(config_path)

    def test_unknown_section_key(self):
        """Test unknown keys inside a section are rejected."""
        config_path = self._write_config({"server": {"prot": 80}})
        with pytest.raises(ValueError, match="Unknown keys in server"):
            load_settings(config_path)

    def test_unknown_pricing_action(self):
        """Test unknown billed actions are rejected."""
        config_path = self._write_config({"pricing": {"screenshot": 1}})
        with pytest.raises(ValueError, match="Unknown pricing action"):
            load_settings(config_path)

    def test_wrong_type(self):
        """Test values of the wrong type are rejected."""
        config_path = self._write_config({"server": {"port": "eighty"}})
        with pytest.raises(ValueError, match="must be of type int"):
            load_settings(config_path)

    def test_bool_is_not_an_int(self):
        """Test booleans are not accepted as counts."""
        config_path = self._write_config({"grants": {"starting_allowance": True}})
        with pytest.raises(ValueError, match="must be of type int"):
            load_settings(config_path)

    def test_section_must_be_dict(self):
        """Test sections must be mappings."""
        config_path = self._write_config({"capture": [1, 2]})
        with pytest.raises(ValueError, match="'capture' must be a dictionary"):
            load_settings(config_path)


class TestConfigValidation:
    """Test dataclass-level validation."""

    def test_record_must_fit_in_interval(self):
        with pytest.raises(ValueError, match="shorter than interval_seconds"):
            CaptureConfig(interval_seconds=4.0, record_seconds=4.0)

    def test_negative_grants(self):
        with pytest.raises(ValueError, match="starting_allowance"):
            GrantConfig(starting_allowance=-1)
        with pytest.raises(ValueError, match="first_session_bonus"):
            GrantConfig(first_session_bonus=-1)

    def test_engine_limits(self):
        with pytest.raises(ValueError, match="max_tokens"):
            EngineConfig(max_tokens=0)
        with pytest.raises(ValueError, match="temperature"):
            EngineConfig(temperature=3.0)

    def test_server_limits(self):
        with pytest.raises(ValueError, match="port"):
            ServerConfig(port=0)
        with pytest.raises(ValueError, match="log_level"):
            ServerConfig(log_level="LOUD")
