"""
Configuration loader for dom_signals.

Pydantic models validate the analyzer settings; `load_settings` merges a
YAML configuration file with environment variables.

- Environment Overrides: any setting can be overridden by an environment
  variable prefixed with `DOM_SIGNALS_`, nested keys separated by `__`, e.g.
  `analyzer.average_cache_ttl_sec` becomes
  `DOM_SIGNALS_ANALYZER__AVERAGE_CACHE_TTL_SEC`.
- Clear Errors: validation failures are wrapped in `ConfigError`.

Every model has complete defaults, so `Settings()` is a valid configuration
and an analyzer works without any YAML file at all.
"""

import os
import json
from pathlib import Path
from typing import Any, Dict, List, Literal

import yaml
from loguru import logger
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_core import PydanticCustomError

# --- Custom Exceptions ---

class ConfigError(Exception):
    """Custom exception for configuration-related errors."""
    pass

# --- Pydantic Models for Configuration Sections ---

class AnalyzerSettings(BaseModel):
    """Knobs of the depth-of-market analyzer."""
    min_levels: int = Field(4, ge=1)
    confidence_per_level: float = Field(5.0, gt=0)
    max_confidence: float = Field(100.0, gt=0, le=100)
    thin_book_confidence: float = Field(10.0, ge=0, le=100)
    thin_volume_penalty: float = Field(0.5, gt=0, le=1)
    strong_level_multiplier: float = Field(2.0, gt=0)
    average_cache_ttl_sec: float = Field(60.0, ge=0)

class ThresholdRule(BaseModel):
    """Instrument class matched by case-insensitive substring."""
    instrument_class: Literal["crypto", "index", "fx"]
    keywords: List[str] = Field(..., min_length=1)
    threshold: float = Field(gt=0)

    @field_validator("keywords")
    def keywords_must_be_non_blank(cls, v):
        if any(not k.strip() for k in v):
            raise PydanticCustomError(
                "blank_keyword",
                "Threshold keywords must be non-empty strings: {keywords}",
                {"keywords": v},
            )
        return [k.strip().upper() for k in v]

def _default_threshold_rules() -> List[ThresholdRule]:
    # crypto must stay ahead of index
    return [
        ThresholdRule(instrument_class="crypto", keywords=["BTC", "ETH", "XRP"], threshold=10.0),
        ThresholdRule(instrument_class="index", keywords=["US30", "NAS100"], threshold=100.0),
    ]

class ThresholdSettings(BaseModel):
    """Minimum total book volume per instrument class."""
    rules: List[ThresholdRule] = Field(default_factory=_default_threshold_rules)
    default_threshold: float = Field(1000.0, gt=0)

class ServiceSettings(BaseModel):
    """Evaluation loop settings."""
    interval_s: float = Field(1.0, gt=0)
    sqlite_path: str = "dom_analysis.db"

class Settings(BaseModel):
    """Root settings object."""
    analyzer: AnalyzerSettings = AnalyzerSettings()
    thresholds: ThresholdSettings = ThresholdSettings()
    service: ServiceSettings = ServiceSettings()
    tick_size_overrides: Dict[str, float] = Field(default_factory=dict)

# --- Helper Functions ---

def _load_config_from_yaml(path: Path) -> Dict[str, Any]:
    """Loads the YAML configuration file."""
    if not path.is_file():
        raise ConfigError(f"Configuration file not found at: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML file at {path}: {e}") from e

def _get_env_overrides(prefix: str = "DOM_SIGNALS") -> Dict[str, Any]:
    """
    Parses environment variables and converts them into a nested dict.
    e.g., DOM_SIGNALS_SERVICE__INTERVAL_S becomes {'service': {'interval_s': ...}}
    """
    overrides: Dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(prefix + "_"):
            continue
        parts = key.removeprefix(prefix).strip("_").lower().split("__")

        # Attempt to parse values as JSON (lists, dicts, booleans, numbers)
        if (value.startswith('[') and value.endswith(']')) or \
           (value.startswith('{') and value.endswith('}')) or \
           value.lower() in ['true', 'false', 'null'] or \
           value.replace('.', '', 1).isdigit():
            try:
                parsed_value = json.loads(value)
            except (json.JSONDecodeError, AttributeError):
                parsed_value = value
        else:
            parsed_value = value

        d = overrides
        for part in parts[:-1]:
            d = d.setdefault(part, {})
        d[parts[-1]] = parsed_value
    return overrides

def _merge_configs(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merges the override dict into the base dict.
    Overwrites values, dictionaries, and lists.
    """
    for key, value in overrides.items():
        if isinstance(value, dict) and key in base and isinstance(base[key], dict):
            base[key] = _merge_configs(base[key], value)
        else:
            base[key] = value
    return base

# --- Public API ---

def load_settings(path: str = "settings.yaml") -> Settings:
    """
    Loads, validates, and returns the application settings.

    1. Loads the base configuration from the specified YAML file.
    2. Scans environment variables for overrides (prefixed with "DOM_SIGNALS_").
    3. Merges the environment overrides into the base configuration.
    4. Validates the final configuration against the `Settings` model.

    Raises:
        ConfigError: If the file is not found, cannot be parsed, or if
                     validation fails.
    """
    logger.info(f"Loading settings from '{path}'...")

    yaml_config = _load_config_from_yaml(Path(path))
    if yaml_config is None:
        yaml_config = {}
    if not isinstance(yaml_config, dict):
        raise ConfigError(f"YAML file '{path}' must contain a mapping at the top level.")

    final_config = _merge_configs(yaml_config, _get_env_overrides())

    try:
        settings = Settings.model_validate(final_config)
        logger.success("Settings loaded and validated successfully.")
        return settings
    except ValidationError as e:
        error_details = e.errors()
        error_msg = f"Configuration validation failed with {len(error_details)} error(s):\n"
        for error in error_details:
            loc = " -> ".join(map(str, error['loc'])) if error['loc'] else "root"
            error_msg += f"  - Location: {loc}\n    Message: {error['msg']}\n"

        logger.error(error_msg)
        raise ConfigError("Failed to validate settings.") from e
