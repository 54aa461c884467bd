"""Client configuration.

Config discovery for ``load_config`` (first match wins):
  1. explicit *path* argument
  2. ``./msgstream.yaml``
  3. ``~/.config/msgstream/config.yaml``
  4. Built-in defaults

``ANTHROPIC_API_KEY`` / ``ANTHROPIC_BASE_URL`` fill in whatever the file
leaves unset.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from msgstream.errors import InvalidConfigurationError

_logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.anthropic.com"
DEFAULT_API_VERSION = "2023-06-01"
FILES_API_BETA = "files-api-2025-04-14"

API_KEY_ENV = "ANTHROPIC_API_KEY"
BASE_URL_ENV = "ANTHROPIC_BASE_URL"

TRANSPORTS = ("auto", "native", "curl")


# ---------------------------------------------------------------------------
# Config data structure
# ---------------------------------------------------------------------------

@dataclass
class ClientConfig:
    """Settings shared by every request a client makes."""

    api_key: str = ""
    base_url: str = DEFAULT_BASE_URL
    api_version: str = DEFAULT_API_VERSION
    beta_features: set[str] = field(default_factory=set)
    timeout: float = 600.0
    max_retries: int = 3
    custom_headers: dict[str, str] = field(default_factory=dict)
    transport: str = "auto"  # "auto" | "native" | "curl"
    curl_command: str = "curl"

    @classmethod
    def from_environment(cls, **overrides: Any) -> ClientConfig:
        """Build a config from ``ANTHROPIC_API_KEY`` / ``ANTHROPIC_BASE_URL``.

        Raises ``InvalidConfigurationError`` when no API key is set.
        """
        api_key = os.environ.get(API_KEY_ENV, "")
        if not api_key:
            raise InvalidConfigurationError(
                f"{API_KEY_ENV} environment variable not set"
            )
        kwargs: dict[str, Any] = {"api_key": api_key}
        base_url = os.environ.get(BASE_URL_ENV)
        if base_url:
            kwargs["base_url"] = base_url
        kwargs.update(overrides)
        config = cls(**kwargs)
        config.validate()
        return config

    def validate(self) -> None:
        if not self.api_key:
            raise InvalidConfigurationError("API key is empty")
        if not self.base_url:
            raise InvalidConfigurationError("Base URL is empty")
        if self.max_retries < 1:
            raise InvalidConfigurationError(
                f"max_retries must be at least 1, got {self.max_retries}"
            )
        if self.timeout <= 0:
            raise InvalidConfigurationError(
                f"timeout must be positive, got {self.timeout}"
            )
        if self.transport not in TRANSPORTS:
            raise InvalidConfigurationError(
                f"Unknown transport {self.transport!r} "
                f"(expected one of: {', '.join(TRANSPORTS)})"
            )

    def url(self, path: str) -> str:
        return self.base_url.rstrip("/") + path


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_SEARCH_PATHS = [
    Path("./msgstream.yaml"),
    Path.home() / ".config" / "msgstream" / "config.yaml",
]


def _parse_config(raw: dict[str, Any]) -> ClientConfig:
    defaults = ClientConfig()
    return ClientConfig(
        api_key=str(raw.get("api_key") or ""),
        base_url=str(raw.get("base_url") or ""),
        api_version=str(raw.get("api_version", defaults.api_version)),
        beta_features=set(raw.get("beta_features") or ()),
        timeout=float(raw.get("timeout", defaults.timeout)),
        max_retries=int(raw.get("max_retries", defaults.max_retries)),
        custom_headers={
            str(k): str(v) for k, v in (raw.get("custom_headers") or {}).items()
        },
        transport=str(raw.get("transport", defaults.transport)),
        curl_command=str(raw.get("curl_command", defaults.curl_command)),
    )


def load_config(path: str | Path | None = None) -> ClientConfig:
    """Load configuration from YAML.

    Parameters
    ----------
    path:
        Explicit config path.  If *None*, search default locations.

    Returns
    -------
    ClientConfig
        Validated config; raises ``InvalidConfigurationError`` if the result
        is unusable (for example no API key anywhere).
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            _logger.warning("Config file not found: %s, using defaults", path)
            config_path = None
    else:
        for candidate in _SEARCH_PATHS:
            if candidate.exists():
                config_path = candidate
                break

    raw: dict[str, Any] = {}
    if config_path is None:
        _logger.info("No config file found, using defaults")
    else:
        _logger.info("Loading config from %s", config_path)
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        if not isinstance(raw, dict):
            raise InvalidConfigurationError(
                f"{config_path}: expected a mapping at top level"
            )

    try:
        config = _parse_config(raw)
    except (TypeError, ValueError, AttributeError) as exc:
        raise InvalidConfigurationError(f"Invalid config value: {exc}") from exc

    if not config.api_key:
        config.api_key = os.environ.get(API_KEY_ENV, "")
    if not config.base_url:
        config.base_url = os.environ.get(BASE_URL_ENV) or DEFAULT_BASE_URL

    config.validate()
    return config
