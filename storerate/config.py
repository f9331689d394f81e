"""Configuration management for the store rating service."""
from __future__ import annotations

import os
from dataclasses import dataclass, fields
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .database import resolve_database_path

_DEFAULT_SECRET = "development-secret-change-me"


def _env_flag(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    """Runtime settings; environment variables override the YAML file."""

    database_path: Path
    secret_key: str = _DEFAULT_SECRET
    algorithm: str = "HS256"
    token_ttl: timedelta = timedelta(days=7)
    frontend_url: str = "http://localhost:5173"
    admin_name: str = "System Administrator"
    admin_email: str = "admin@example.com"
    admin_password: str = "Password123!"
    debug: bool = False
    log_level: str = "INFO"
    rate_limits_enabled: bool = True

    @staticmethod
    def from_mapping(data: Mapping[str, Any], base_path: Path | None = None) -> "Settings":
        """Build settings from raw configuration values."""

        known = ({item.name for item in fields(Settings)} - {"token_ttl"}) | {"token_ttl_days"}
        unknown = set(data.keys()) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        raw_db = data.get("database_path")
        if raw_db:
            db_path = Path(str(raw_db)).expanduser()
            if not db_path.is_absolute() and base_path is not None:
                db_path = base_path / db_path
            database_path = db_path.resolve(strict=False)
        else:
            database_path = resolve_database_path(None)

        values: Dict[str, Any] = {"database_path": database_path}
        for key in ("secret_key", "algorithm", "frontend_url", "admin_name", "admin_email", "admin_password", "log_level"):
            if data.get(key) is not None:
                values[key] = str(data[key])
        for key in ("debug", "rate_limits_enabled"):
            if data.get(key) is not None:
                raw = data[key]
                values[key] = raw if isinstance(raw, bool) else _env_flag(str(raw))
        if data.get("token_ttl_days") is not None:
            values["token_ttl"] = timedelta(days=float(data["token_ttl_days"]))
        return Settings(**values)


_ENV_KEYS = {
    "STORERATE_DB_PATH": "database_path",
    "STORERATE_SECRET_KEY": "secret_key",
    "STORERATE_TOKEN_TTL_DAYS": "token_ttl_days",
    "STORERATE_FRONTEND_URL": "frontend_url",
    "STORERATE_ADMIN_NAME": "admin_name",
    "STORERATE_ADMIN_EMAIL": "admin_email",
    "STORERATE_ADMIN_PASSWORD": "admin_password",
    "STORERATE_DEBUG": "debug",
    "STORERATE_LOG_LEVEL": "log_level",
    "STORERATE_RATE_LIMITS": "rate_limits_enabled",
}


def load_settings(config_path: Optional[Path] = None) -> Settings:
    """Load settings from an optional YAML file and the environment."""

    if config_path is None and os.getenv("STORERATE_CONFIG"):
        config_path = Path(os.environ["STORERATE_CONFIG"]).expanduser()

    raw: Dict[str, Any] = {}
    base_path: Path | None = None
    if config_path is not None:
        with config_path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
        if not isinstance(loaded, dict):
            raise ValueError("Configuration file must contain a mapping at the top level")
        raw.update(loaded)
        base_path = config_path.resolve(strict=False).parent

    for env_name, key in _ENV_KEYS.items():
        value = os.getenv(env_name)
        if value is not None and value.strip():
            raw[key] = value.strip()

    if "database_path" in raw and os.getenv("STORERATE_DB_PATH"):
        # Paths from the environment are taken relative to the working directory.
        raw["database_path"] = str(resolve_database_path(os.environ["STORERATE_DB_PATH"]))

    return Settings.from_mapping(raw, base_path=base_path)


__all__ = ["Settings", "load_settings"]
