"""Runtime settings for fetching QM workbooks and category configuration.

Settings come from three layers, later layers winning:

    1. defaults below
    2. an optional JSON config file (``load_settings(path=...)``)
    3. ``QM_INGEST_*`` environment variables
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional

from qm_ingest.errors import ConfigError

DEFAULT_TIMEOUT = 60.0
DEFAULT_MAX_REDIRECTS = 10
DEFAULT_MAX_DOWNLOAD_MB = 100
DEFAULT_CATEGORIES_TTL = 300.0

SUPPORTED_CONFIG_SUFFIXES = {".json"}

ENV_VARS = {
    "cookie": "QM_INGEST_COOKIE",
    "timeout": "QM_INGEST_TIMEOUT",
    "max_redirects": "QM_INGEST_MAX_REDIRECTS",
    "max_download_bytes": "QM_INGEST_MAX_DOWNLOAD_MB",
    "categories_url": "QM_INGEST_CATEGORIES_URL",
    "categories_ttl": "QM_INGEST_CATEGORIES_TTL",
}


@dataclass(frozen=True)
class IngestSettings:
    cookie: Optional[str] = None
    timeout: float = DEFAULT_TIMEOUT
    max_redirects: int = DEFAULT_MAX_REDIRECTS
    max_download_bytes: int = DEFAULT_MAX_DOWNLOAD_MB * 1024 * 1024
    categories_url: Optional[str] = None
    categories_ttl: float = DEFAULT_CATEGORIES_TTL

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            raise ConfigError(f"timeout must be positive, got {self.timeout}")
        if self.max_redirects < 0:
            raise ConfigError(f"max_redirects must not be negative, got {self.max_redirects}")
        if self.max_download_bytes <= 0:
            raise ConfigError("max_download_bytes must be positive")
        if self.categories_ttl < 0:
            raise ConfigError("categories_ttl must not be negative")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "IngestSettings":
        return cls().with_env(environ)

    def with_env(self, environ: Optional[Mapping[str, str]] = None) -> "IngestSettings":
        environ = os.environ if environ is None else environ
        overrides: dict[str, Any] = {}

        cookie = environ.get(ENV_VARS["cookie"])
        if cookie:
            overrides["cookie"] = cookie
        url = environ.get(ENV_VARS["categories_url"])
        if url:
            overrides["categories_url"] = url.rstrip("/")

        timeout = _env_number(environ, ENV_VARS["timeout"], float)
        if timeout is not None:
            overrides["timeout"] = timeout
        hops = _env_number(environ, ENV_VARS["max_redirects"], int)
        if hops is not None:
            overrides["max_redirects"] = hops
        size_mb = _env_number(environ, ENV_VARS["max_download_bytes"], int)
        if size_mb is not None:
            overrides["max_download_bytes"] = size_mb * 1024 * 1024
        ttl = _env_number(environ, ENV_VARS["categories_ttl"], float)
        if ttl is not None:
            overrides["categories_ttl"] = ttl

        return replace(self, **overrides) if overrides else self

    def request_headers(self, extra: Optional[Mapping[str, str]] = None) -> dict[str, str]:
        """Header map for source downloads; ``extra`` wins over the configured cookie."""
        headers: dict[str, str] = {}
        if self.cookie:
            headers["Cookie"] = self.cookie
        if extra:
            headers.update(extra)
        return headers


def _env_number(environ: Mapping[str, str], name: str, kind):
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return kind(raw.strip())
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc


def load_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config not found: {path}")
    if path.suffix.lower() not in SUPPORTED_CONFIG_SUFFIXES:
        raise ConfigError("Config must be a .json file")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:
        raise ConfigError(f"Could not read config: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError("Config root must be a JSON object.")

    known = {field.name for field in fields(IngestSettings)}
    unknown = sorted(set(payload) - known)
    if unknown:
        raise ConfigError(f"Unknown config keys: {unknown}")
    return payload


def load_settings(
    path: "str | Path | None" = None,
    environ: Optional[Mapping[str, str]] = None,
) -> IngestSettings:
    """Build settings from defaults, an optional JSON file and the environment."""
    settings = IngestSettings()
    if path is not None:
        payload = load_config_file(Path(path))
        try:
            settings = replace(settings, **payload)
        except TypeError as exc:
            raise ConfigError(f"Invalid config: {exc}") from exc
    return settings.with_env(environ)
