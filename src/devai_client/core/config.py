"""Configuration management for the DevAI client (YAML + environment)."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ValidationError, field_validator

from .errors import ConfigurationError
from .retry import RetryPolicy

# Environment variable -> settings field
ENV_OVERRIDES = {
    "DEVAI_BACKEND_URL": "base_url",
    "DEVAI_API_TIMEOUT": "timeout_ms",
    "DEVAI_RETRY_ATTEMPTS": "retry_attempts",
    "DEVAI_RETRY_DELAY": "retry_delay_ms",
    "DEVAI_BACKOFF_MULTIPLIER": "backoff_multiplier",
}

DEFAULT_CONFIG_PATH = Path("devai_client.yaml")


class ClientSettings(BaseModel):
    """Client settings loaded from a YAML file and the environment."""

    # Backend
    base_url: str = "http://localhost:3001"
    timeout_ms: int = 30_000

    # Retry policy
    retry_attempts: int = 2
    retry_delay_ms: int = 1000
    backoff_multiplier: float = 2.0
    retry_jitter: float = 0.0

    # Connection monitor
    monitor_interval_s: float = 30.0

    # Extra headers sent with every request
    headers: Dict[str, str] = {}

    # Logging
    log_level: str = "INFO"
    log_dir: Optional[Path] = None

    @field_validator("base_url")
    @classmethod
    def _strip_base_url(cls, v: str) -> str:
        v = (v or "").strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be an http(s) URL, got {v!r}")
        return v.rstrip("/")

    @field_validator("timeout_ms")
    @classmethod
    def _positive_timeout(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("timeout_ms must be positive")
        return v

    @field_validator("monitor_interval_s")
    @classmethod
    def _positive_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("monitor_interval_s must be positive")
        return v

    @field_validator("log_level")
    @classmethod
    def _upper_log_level(cls, v: str) -> str:
        return v.upper()

    @field_validator("log_dir", mode="before")
    @classmethod
    def _coerce_path(cls, v):
        if v in (None, ""):
            return None
        return Path(v).expanduser() if not isinstance(v, Path) else v

    def model_post_init(self, __context) -> None:
        """Validate the retry settings by building the policy once."""
        self.retry_policy()

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_attempts,
            base_delay_ms=self.retry_delay_ms,
            backoff_multiplier=self.backoff_multiplier,
            jitter=self.retry_jitter,
        )


def _env_overrides(environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    environ = os.environ if environ is None else environ
    data: Dict[str, Any] = {}
    for var, field in ENV_OVERRIDES.items():
        value = environ.get(var)
        if value is not None and value.strip():
            data[field] = value.strip()
    return data


def load_settings(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Dict[str, str]] = None,
    **overrides: Any,
) -> ClientSettings:
    """
    Load ClientSettings.

    Precedence: explicit keyword overrides, then DEVAI_* environment
    variables, then the YAML file, then defaults. Without an explicit path
    the file is optional.
    """
    data: Dict[str, Any] = {}
    p = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    if p.exists():
        try:
            with open(p, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to load config from {p}: {e}")
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {p} must contain a mapping")
        # Allow top-level 'client' key or flat structure
        if isinstance(data.get("client"), dict):
            data = data["client"]
    elif config_path:
        raise ConfigurationError(f"Config file not found: {p}")

    data.update(_env_overrides(environ))
    data.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return ClientSettings(**data)
    except (ValidationError, ValueError) as e:
        raise ConfigurationError(f"Invalid client configuration: {e}")
