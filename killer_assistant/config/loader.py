"""
Configuration management and loading.

Handles the pricing table, allowance grants, capture timings, engine
parameters and server settings.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from killer_assistant.core.pricing import PRICING_TABLE, BilledAction, PricingTable

CONFIG_ENV_VAR = "KILLER_ASSISTANT_CONFIG"

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True)
class GrantConfig:
    """Allowance granted at account creation and on the first session."""
    starting_allowance: int = 5
    first_session_bonus: int = 10

    def __post_init__(self):
        """Validate grants are non-negative."""
        if self.starting_allowance < 0:
            raise ValueError("starting_allowance must be >= 0")
        if self.first_session_bonus < 0:
            raise ValueError("first_session_bonus must be >= 0")


@dataclass(frozen=True)
class CaptureConfig:
    """Timing of the recording cycles while a screen is shared."""
    interval_seconds: float = 5.0
    record_seconds: float = 4.0
    min_segment_bytes: int = 1000

    def __post_init__(self):
        """Validate the recording leaves a processing gap inside each interval."""
        if self.interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        if self.record_seconds <= 0:
            raise ValueError("record_seconds must be > 0")
        if self.record_seconds >= self.interval_seconds:
            raise ValueError("record_seconds must be shorter than interval_seconds")
        if self.min_segment_bytes < 0:
            raise ValueError("min_segment_bytes must be >= 0")


@dataclass(frozen=True)
class EngineConfig:
    """Speech-to-text and chat-completion engine parameters."""
    chat_model: str = "gpt-4o"
    transcription_model: str = "whisper-1"
    language: str = "bn"
    max_tokens: int = 500
    temperature: float = 0.7

    def __post_init__(self):
        """Validate engine parameters."""
        if not self.chat_model:
            raise ValueError("chat_model cannot be empty")
        if not self.transcription_model:
            raise ValueError("transcription_model cannot be empty")
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be > 0")
        if not 0 <= self.temperature <= 2:
            raise ValueError("temperature must be between 0 and 2")


@dataclass(frozen=True)
class ServerConfig:
    """HTTP backend settings."""
    db_path: str = "killer_assistant.db"
    host: str = "0.0.0.0"
    port: int = 3000
    require_auth: bool = False
    log_level: str = "INFO"

    def __post_init__(self):
        """Validate server settings."""
        if not 0 < self.port < 65536:
            raise ValueError("port must be between 1 and 65535")
        if self.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of: {sorted(_LOG_LEVELS)}")


@dataclass(frozen=True)
class Settings:
    """Complete application configuration."""
    pricing: PricingTable = PRICING_TABLE
    grants: GrantConfig = field(default_factory=GrantConfig)
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


def default_settings() -> Settings:
    """Settings used when no configuration file is given."""
    return Settings()


def load_settings(path: Optional[str] = None) -> Settings:
    """Load and validate settings from a YAML file.

    Every section is optional; omitted keys keep their defaults. Unknown
    keys are rejected so a typo never silently changes pricing.

    Args:
        path: Path to YAML configuration file. Falls back to the
            KILLER_ASSISTANT_CONFIG environment variable, then to defaults.

    Returns:
        Validated Settings object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    path = path or os.environ.get(CONFIG_ENV_VAR)
    if not path:
        return default_settings()

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return default_settings()
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_top_keys = {'pricing', 'grants', 'capture', 'engine', 'server'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    return Settings(
        pricing=_parse_pricing(_section(raw_config, 'pricing')),
        grants=GrantConfig(**_typed(
            _section(raw_config, 'grants'), 'grants',
            {'starting_allowance': int, 'first_session_bonus': int},
        )),
        capture=CaptureConfig(**_typed(
            _section(raw_config, 'capture'), 'capture',
            {'interval_seconds': float, 'record_seconds': float, 'min_segment_bytes': int},
        )),
        engine=EngineConfig(**_typed(
            _section(raw_config, 'engine'), 'engine',
            {'chat_model': str, 'transcription_model': str, 'language': str,
             'max_tokens': int, 'temperature': float},
        )),
        server=ServerConfig(**_typed(
            _section(raw_config, 'server'), 'server',
            {'db_path': str, 'host': str, 'port': int, 'require_auth': bool, 'log_level': str},
        )),
    )


def _section(raw_config: Dict, name: str) -> Dict:
    data = raw_config.get(name) or {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")
    return data


def _typed(data: Dict, path: str, schema: Dict[str, type]) -> Dict[str, Any]:
    """Check keys and value types of a section against its schema.

    Args:
        data: Section contents
        path: Section name for error messages
        schema: Allowed keys mapped to their expected type

    Returns:
        The section contents, with ints widened to floats where floats are expected

    Raises:
        ValueError: If a key is unknown or a value has the wrong type
    """
    unknown_keys = set(data.keys()) - set(schema)
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    values = {}
    for key, value in data.items():
        expected = schema[key]
        if expected is float and isinstance(value, int) and not isinstance(value, bool):
            value = float(value)
        if expected is int and isinstance(value, bool):
            raise ValueError(f"'{key}' in {path} must be of type int")
        if not isinstance(value, expected):
            raise ValueError(f"'{key}' in {path} must be of type {expected.__name__}")
        values[key] = value
    return values


def _parse_pricing(data: Dict) -> PricingTable:
    """Parse the pricing section, keeping default prices for omitted actions.

    Raises:
        ValueError: If an action is unknown or a price is not a positive integer
    """
    prices = dict(PRICING_TABLE.prices)
    for key, cost in data.items():
        try:
            action = BilledAction(key)
        except ValueError:
            valid_actions = [action.value for action in BilledAction]
            raise ValueError(f"Unknown pricing action '{key}', expected one of: {valid_actions}")
        prices[action] = cost
    return PricingTable(prices)
