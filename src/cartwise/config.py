"""Application configuration helpers."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

ENV_FILE_CANDIDATES = (Path(".env"), Path(".env.local"))


class Settings(BaseModel):
    """Global application settings loaded from environment variables or .env files."""

    database_path: Path = Field(
        default=Path("./data/cartwise.db"),
        description="SQLite database location.",
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
    default_category: str = Field(
        default="Pantry",
        description="Category used when a shopping-only item is merged without one.",
    )
    default_store: str = Field(
        default="Unknown Store",
        description="Store recorded for catalog lines whose item has no price options.",
    )
    sync_catalog_prices: bool = Field(
        default=True,
        description="Write fulfilled prices back into the catalog when a trip completes.",
    )

    model_config = ConfigDict(frozen=True)


# Environment variable -> Settings field. pydantic coerces the raw strings.
ENV_FIELDS = {
    "CARTWISE_DATABASE_PATH": "database_path",
    "CARTWISE_API_TOKEN": "api_token",
    "CARTWISE_LOG_LEVEL": "log_level",
    "CARTWISE_LOG_FORMAT": "log_format",
    "CARTWISE_LOG_REQUESTS": "log_requests",
    "CARTWISE_DEFAULT_CATEGORY": "default_category",
    "CARTWISE_DEFAULT_STORE": "default_store",
    "CARTWISE_SYNC_CATALOG_PRICES": "sync_catalog_prices",
}


def _read_dotenv(path: Path) -> dict[str, str]:
    """Parse ``KEY=value`` lines; blank lines, comments and ``export`` prefixes are allowed."""

    if not path.is_file():
        return {}
    entries: dict[str, str] = {}
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if line.startswith("export "):
            line = line[len("export "):]
        key, sep, value = line.partition("=")
        if not sep or line.startswith("#"):
            continue
        entries[key.strip()] = value.strip().strip("'\"")
    return entries


def _collect_overrides() -> dict[str, str]:
    """Process environment first, then ``.env.local``, then ``.env``."""

    fallback: dict[str, str] = {}
    for candidate in ENV_FILE_CANDIDATES:
        fallback.update(_read_dotenv(candidate))

    overrides: dict[str, str] = {}
    for variable, field in ENV_FIELDS.items():
        value = os.environ.get(variable) or fallback.get(variable)
        if value:
            overrides[field] = value
    return overrides


@lru_cache
def get_settings() -> Settings:
    return Settings(**_collect_overrides())
