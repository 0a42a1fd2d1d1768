"""Configuration for the Kipu gateway.

Reads config/kipu.ini if present, environment variables override.
Backend credentials stay out of version control.
"""

from __future__ import annotations

import configparser
import os
from dataclasses import dataclass
from pathlib import Path

_CONFIG_FILE = Path(__file__).resolve().parent.parent.parent / "config" / "kipu.ini"

_INI_FIELDS = {
    "backend": [
        ("url", "backend_url"),
        ("username", "backend_user"),
        ("password", "backend_password"),
        ("timeout", "request_timeout"),
    ],
    "gateway": [
        ("api_key", "api_key"),
        ("host", "host"),
        ("port", "port"),
    ],
}

_ENV_FIELDS = {
    "KIPU_BACKEND_URL": "backend_url",
    "KIPU_BACKEND_USER": "backend_user",
    "KIPU_BACKEND_PASSWORD": "backend_password",
    "KIPU_REQUEST_TIMEOUT": "request_timeout",
    "KIPU_API_KEY": "api_key",
    "KIPU_HOST": "host",
    "KIPU_PORT": "port",
}

_CONVERTERS = {"port": int, "request_timeout": float}


@dataclass(frozen=True)
class KipuConfig:
    """Gateway configuration. Immutable once loaded."""

    backend_url: str = "http://127.0.0.1:9200"
    backend_user: str = ""
    backend_password: str = ""
    request_timeout: float = 30.0
    api_key: str = ""
    host: str = "127.0.0.1"
    port: int = 8000


def _convert(config_key: str, raw: str):
    convert = _CONVERTERS.get(config_key)
    return convert(raw) if convert else raw


def load_config(config_path: Path | None = None) -> KipuConfig:
    """Load config from INI file, then override with environment variables."""
    path = config_path or _CONFIG_FILE
    kwargs: dict = {}

    if path.exists():
        parser = configparser.ConfigParser()
        parser.read(path)
        for section, fields in _INI_FIELDS.items():
            if not parser.has_section(section):
                continue
            for ini_key, config_key in fields:
                val = parser.get(section, ini_key, fallback=None)
                if val is not None:
                    kwargs[config_key] = _convert(config_key, val)

    for env_key, config_key in _ENV_FIELDS.items():
        val = os.getenv(env_key)
        if val is not None:
            kwargs[config_key] = _convert(config_key, val)

    return KipuConfig(**kwargs)
