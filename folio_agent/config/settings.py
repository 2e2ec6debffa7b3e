"""
Configuration loader — YAML file + environment variable overrides.
"""

from __future__ import annotations
import os
import yaml
from pathlib import Path
from typing import Any, Callable, Optional


DEFAULT_CONFIG_PATH = Path(__file__).parent / "default_config.yaml"

# env var → (config key, coercion)
ENV_MAPPINGS: dict[str, tuple[str, Callable[[str], Any]]] = {
    "FOLIO_LLM_PROVIDER": ("llm.provider", str),
    "FOLIO_LLM_MODEL": ("llm.model", str),
    "FOLIO_LLM_API_KEY": ("llm.api_key", str),
    "FOLIO_LLM_BASE_URL": ("llm.base_url", str),
    "FOLIO_LLM_TIMEOUT": ("llm.timeout", float),
    "FOLIO_AGENT_MAX_STEPS": ("agent.max_steps", int),
    "FOLIO_AGENT_MAX_TOOL_CALLS": ("agent.max_tool_calls_per_step", int),
    "FOLIO_AGENT_TEMPERATURE": ("agent.temperature", float),
}


class Config:
    """Configuration container with dot-access and env var support."""

    def __init__(self, data: dict):
        self._data = data

    def get(self, key: str, default: Any = None) -> Any:
        """Get a config value by dot-separated key path."""
        keys = key.split(".")
        value = self._data
        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default
            if value is None:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """Set a config value by dot-separated key path."""
        keys = key.split(".")
        d = self._data
        for k in keys[:-1]:
            d = d.setdefault(k, {})
        d[keys[-1]] = value

    @property
    def raw(self) -> dict:
        return self._data

    def __repr__(self) -> str:
        # api_key stays out of reprs and logs
        shown = dict(self._data)
        if isinstance(shown.get("llm"), dict) and shown["llm"].get("api_key"):
            shown["llm"] = {**shown["llm"], "api_key": "***"}
        return f"Config({shown})"


def load_config(config_path: Optional[str] = None) -> Config:
    """
    Load configuration from YAML file with env var overrides.

    Priority (highest to lowest):
    1. Environment variables (FOLIO_LLM_PROVIDER, etc., see ENV_MAPPINGS)
    2. User config file (if provided)
    3. Default config

    Raises:
        ValueError: a numeric environment override does not parse
    """
    with open(DEFAULT_CONFIG_PATH) as f:
        data = yaml.safe_load(f) or {}

    if config_path and Path(config_path).exists():
        with open(config_path) as f:
            user_data = yaml.safe_load(f) or {}
        data = _deep_merge(data, user_data)

    config = Config(data)
    for env_key, (config_key, coerce) in ENV_MAPPINGS.items():
        env_val = os.getenv(env_key)
        if env_val is None or env_val == "":
            continue
        try:
            config.set(config_key, coerce(env_val))
        except ValueError as e:
            raise ValueError(f"Invalid value for {env_key}: {env_val!r}") from e

    return config


def _deep_merge(base: dict, overlay: dict) -> dict:
    """Recursively merge overlay dict into base dict."""
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result
