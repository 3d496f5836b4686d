"""Application configuration helpers."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)

ENV_FILE_CANDIDATES = (Path(".env"), Path(".env.local"))


class Settings(BaseModel):
    """Global application settings loaded from environment variables or .env files."""

    database_path: Path = Field(
        default=Path("./data/tripfolio.db"),
        description="SQLite database holding receipts, trips, categories and caches.",
    )
    blob_database_path: Path = Field(
        default=Path("./data/tripfolio_images.db"),
        description="Separate SQLite database holding receipt image payloads.",
    )
    api_token: Optional[str] = Field(
        default=None,
        description="Bearer token required for mutating endpoints.",
    )
    log_level: str = Field(default="INFO", description="Logging level (DEBUG/INFO/WARNING/ERROR)")
    log_format: str = Field(
        default="plain",
        description="Logging format (plain/json).",
    )
    log_requests: bool = Field(
        default=True,
        description="Emit request access logs when true.",
    )
    rates_base_url: str = Field(
        default="https://api.frankfurter.app",
        description="Historical exchange-rate API base URL.",
    )
    rate_floor_year: int = Field(
        default=1999,
        description="Earliest year the rate fallback walk may reach before giving up.",
    )
    rate_timeout_seconds: float = Field(
        default=10.0,
        description="HTTP timeout applied to each exchange-rate request.",
    )
    start_online: bool = Field(
        default=True,
        description="Initial connectivity assumed by the sync engine at start-up.",
    )

    model_config = ConfigDict(frozen=True)


def _coerce_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _strip_url(value: str) -> str:
    return value.rstrip("/")


# Environment variable -> (settings field, converter). Values a converter rejects
# with ValueError leave the default in place.
ENV_FIELDS: dict[str, tuple[str, Callable[[str], Any]]] = {
    "TRIPFOLIO_DATABASE_PATH": ("database_path", Path),
    "TRIPFOLIO_BLOB_DATABASE_PATH": ("blob_database_path", Path),
    "TRIPFOLIO_API_TOKEN": ("api_token", str),
    "TRIPFOLIO_LOG_LEVEL": ("log_level", str),
    "TRIPFOLIO_LOG_FORMAT": ("log_format", str),
    "TRIPFOLIO_LOG_REQUESTS": ("log_requests", _coerce_bool),
    "TRIPFOLIO_RATES_BASE_URL": ("rates_base_url", _strip_url),
    "TRIPFOLIO_RATE_FLOOR_YEAR": ("rate_floor_year", int),
    "TRIPFOLIO_RATE_TIMEOUT": ("rate_timeout_seconds", float),
    "TRIPFOLIO_START_ONLINE": ("start_online", _coerce_bool),
}


def _read_env_file(path: Path) -> dict[str, str]:
    """Parse ``KEY=value`` lines, tolerating ``export`` prefixes and quoted values."""

    if not path.is_file():
        return {}
    values: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        if line.startswith("export "):
            line = line[len("export "):]
        key, _, value = line.partition("=")
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
            value = value[1:-1]
        values[key.strip()] = value
    return values


def _load_from_env() -> dict[str, object]:
    """Collect settings overrides; process env wins over ``.env`` then ``.env.local``."""

    file_values: dict[str, str] = {}
    for candidate in ENV_FILE_CANDIDATES:
        file_values.update(_read_env_file(candidate))

    payload: dict[str, object] = {}
    for env_name, (field_name, convert) in ENV_FIELDS.items():
        raw = os.environ.get(env_name) or file_values.get(env_name)
        if not raw:
            continue
        try:
            payload[field_name] = convert(raw)
        except ValueError:
            logger.warning("Ignoring invalid %s=%r", env_name, raw)
    return payload


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return Settings(**_load_from_env())
