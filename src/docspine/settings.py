"""Connection and logging settings for docspine.

``OdmSettings`` carries everything needed to open a store session: the
ordered host seed list, database name and credentials.  Values come from
``DOCSPINE_*`` environment variables or a ``.env`` file, validated by
pydantic at construction time.

Examples:
    >>> from docspine.settings import OdmSettings
    >>> settings = OdmSettings(database_hosts=["db1:27017", "db2:27017"], database_name="app")
    >>> settings.client_kwargs()["host"]
    ['db1:27017', 'db2:27017']

Tags:
    settings, configuration, pydantic, environment, docspine
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# Initial dial timeout; there is no per-operation timeout after that.
DEFAULT_CONNECT_TIMEOUT_SECONDS = 3.0


class OdmSettings(BaseSettings):
    """docspine configuration.

    Fields
    ──────
    database_hosts           : Ordered host seed list (``host:port``)
    database_name            : Database holding every registered collection
    database_user            : Username; authentication is only sent when set
    database_password        : Password for ``database_user``
    connect_timeout_seconds  : Initial dial/server-selection timeout
    log_level                : Structlog log level
    log_format               : ``console`` or ``json``
    """

    model_config = SettingsConfigDict(
        env_prefix="DOCSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Store ────────────────────────────────────────────────────
    database_hosts: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["localhost:27017"])
    database_name: str = Field(default="docspine")
    database_user: str | None = Field(default=None)
    database_password: SecretStr | None = Field(default=None)
    connect_timeout_seconds: float = Field(default=DEFAULT_CONNECT_TIMEOUT_SECONDS, gt=0)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    @field_validator("database_hosts", mode="before")
    @classmethod
    def _split_hosts(cls, value: Any) -> Any:
        """Accept a comma separated string (``db1:27017,db2:27017``)."""
        if isinstance(value, str):
            return [host.strip() for host in value.split(",") if host.strip()]
        return value

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("console", "json"):
            raise ValueError(f"log_format must be 'console' or 'json', got {value!r}")
        return value

    # ── Derived ──────────────────────────────────────────────────

    @property
    def connect_timeout_ms(self) -> int:
        return int(self.connect_timeout_seconds * 1000)

    def client_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``pymongo.MongoClient``.

        Reads prefer the primary and fall back to secondaries, which keeps
        reads on one member until a write happens (monotonic behaviour).
        Datetimes are decoded timezone-aware to match ``utc_now()``.
        """
        kwargs: dict[str, Any] = {
            "host": list(self.database_hosts),
            "connectTimeoutMS": self.connect_timeout_ms,
            "serverSelectionTimeoutMS": self.connect_timeout_ms,
            "readPreference": "primaryPreferred",
            "tz_aware": True,
        }
        if self.database_user:
            kwargs["username"] = self.database_user
            if self.database_password is not None:
                kwargs["password"] = self.database_password.get_secret_value()
            kwargs["authSource"] = self.database_name
        return kwargs


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, OdmSettings] = {}


def get_settings(*, _force_reload: bool = False) -> OdmSettings:
    """Load, validate and cache an :class:`OdmSettings` instance."""
    if _force_reload or "default" not in _settings_cache:
        _settings_cache["default"] = OdmSettings()
    return _settings_cache["default"]


def clear_settings_cache() -> None:
    """Drop the cached settings (used by tests)."""
    _settings_cache.clear()


__all__ = [
    "DEFAULT_CONNECT_TIMEOUT_SECONDS",
    "OdmSettings",
    "get_settings",
    "clear_settings_cache",
]
