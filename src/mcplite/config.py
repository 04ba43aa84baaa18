"""Configuration access through environment variables.

Every key is looked up as ``MCPLITE_<KEY>``, e.g. ``get("page_size")`` reads
``MCPLITE_PAGE_SIZE``. Typed settings are loaded into :class:`Settings`.
"""

import os
from typing import Mapping, Optional

from pydantic import Field, PositiveFloat, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "MCPLITE_"


def _env_name(key: str) -> str:
    return ENV_PREFIX + key.upper()


def get(key: str, environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """Get a configuration value by key.

    Args:
        key: Configuration key
        environ: Mapping to read from (defaults to ``os.environ``)

    Returns:
        Configuration value or None if not set or empty
    """
    environ = os.environ if environ is None else environ
    value = environ.get(_env_name(key))
    if value is None or not value.strip():
        return None
    return value.strip()


def require(key: str, environ: Optional[Mapping[str, str]] = None) -> str:
    """Get a required configuration value.

    Raises:
        ValueError: If key not found
    """
    value = get(key, environ)
    if value is None:
        raise ValueError(f"Required configuration key not found: {_env_name(key)}")
    return value


def get_with_default(key: str, default: str, environ: Optional[Mapping[str, str]] = None) -> str:
    """Get a configuration value with a default."""
    value = get(key, environ)
    return value if value is not None else default


class Settings(BaseSettings):
    """Runtime settings shared by hosts, providers and the CLI."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_ignore_empty=True,
        extra="ignore",
    )

    # Seconds to wait for a response; unset waits forever
    request_timeout: Optional[PositiveFloat] = None
    handshake_timeout: float = Field(default=10.0, gt=0)
    page_size: int = Field(default=50, ge=1)
    log_level: str = Field(default="WARNING")
    users_file: str = Field(default="users.json")

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.strip().upper()


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build :class:`Settings` from the environment.

    Args:
        environ: Mapping to read instead of the process environment

    Raises:
        ValueError: If a setting is malformed, naming its variable
    """
    try:
        if environ is None:
            return Settings()
        values = {key: get(key, environ) for key in Settings.model_fields}
        return Settings(**{key: value for key, value in values.items() if value is not None})
    except PydanticValidationError as e:
        error = e.errors()[0]
        name = _env_name(str(error["loc"][0])) if error["loc"] else ENV_PREFIX
        raise ValueError(f"{name}: {error['msg']}") from None
