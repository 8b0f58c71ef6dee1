"""
Configuration for mutex factories.

A ``MutexConfig`` carries everything needed to open the dedicated
connection behind a factory. It can be built directly or resolved from the
environment the same way the ``withlock`` command does.

Example:
    >>> config = MutexConfig(url="postgres://app@db.internal/app")
    >>> config.url
    'postgresql+asyncpg://app@db.internal/app'
    >>>
    >>> config = MutexConfig.from_env()  # reads PG_CONNECTION_STRING
"""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from advisorylock.exceptions import ConfigurationError

CONNECTION_STRING_ENV = "PG_CONNECTION_STRING"
"""Environment variable consulted when no connection string is passed."""

_ASYNC_DRIVER = "postgresql+asyncpg"
_PLAIN_SCHEMES = ("postgres://", "postgresql://")


def normalize_url(url: str) -> str:
    """
    Rewrite plain PostgreSQL URLs to use the asyncpg driver.

    URLs that already name a driver (``postgresql+psycopg://...``) are
    returned unchanged.
    """
    for scheme in _PLAIN_SCHEMES:
        if url.startswith(scheme):
            return f"{_ASYNC_DRIVER}://{url[len(scheme):]}"
    return url


class MutexConfig(BaseModel):
    """
    Connection settings for a mutex factory.

    Attributes:
        url: SQLAlchemy connection URL, normalized to the asyncpg driver
        enable_tracing: Whether to create OpenTelemetry spans
        echo: Whether SQLAlchemy should log every statement
    """

    model_config = ConfigDict(frozen=True)

    url: str = Field(
        ...,
        min_length=1,
        description="Database connection URL",
    )
    enable_tracing: bool = Field(
        default=True,
        description="Create OpenTelemetry spans when OpenTelemetry is installed",
    )
    echo: bool = Field(
        default=False,
        description="Echo SQL statements through the sqlalchemy.engine logger",
    )

    @field_validator("url")
    @classmethod
    def _normalize_url(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("url must not be blank")
        value = normalize_url(value)
        try:
            make_url(value)
        except ArgumentError as e:
            raise ValueError(f"Could not parse connection URL: {e}") from e
        return value

    @property
    def masked_url(self) -> str:
        """Connection URL with the password hidden, for logs and errors."""
        return make_url(self.url).render_as_string(hide_password=True)

    @classmethod
    def from_env(
        cls,
        url: str | None = None,
        *,
        environ: Mapping[str, str] | None = None,
        **options: bool,
    ) -> MutexConfig:
        """
        Resolve a configuration from an explicit URL or the environment.

        The explicit ``url`` wins; otherwise ``PG_CONNECTION_STRING`` is read.

        Raises:
            ConfigurationError: If neither source provides a connection string
                or the one it provides is not a valid URL
        """
        env = os.environ if environ is None else environ
        resolved = (url or env.get(CONNECTION_STRING_ENV) or "").strip()
        if not resolved:
            raise ConfigurationError(
                f"{CONNECTION_STRING_ENV} not found and no connection string passed"
            )
        try:
            return cls(url=resolved, **options)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid connection string: {e}") from e


__all__ = [
    "CONNECTION_STRING_ENV",
    "MutexConfig",
    "normalize_url",
]
