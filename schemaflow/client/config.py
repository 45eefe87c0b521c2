"""Backend connection settings read from the environment."""

from __future__ import annotations

from typing import Self

from pydantic import Field as PydanticField
from pydantic_settings import BaseSettings, SettingsConfigDict


class BackendConfig(BaseSettings):
    """Where the schema backend lives and how long to wait for it.

    Reads ``SCHEMAFLOW_URL`` and ``SCHEMAFLOW_TIMEOUT`` by default.

    Attributes:
        url: Base URL of the backend service
        timeout: Per-request timeout in seconds
    """

    model_config = SettingsConfigDict(env_prefix="SCHEMAFLOW_", extra="ignore")

    url: str = PydanticField(
        default="http://localhost:3000",
        description="Base URL of the schema backend.",
    )
    timeout: float = PydanticField(
        default=30.0,
        gt=0,
        description="Per-request timeout in seconds.",
    )

    @classmethod
    def from_env(cls, prefix: str | None = None) -> Self:
        """Load settings, optionally with an extra environment prefix.

        ``BackendConfig.from_env(prefix="STAGING")`` reads
        ``STAGING_SCHEMAFLOW_URL`` and friends.
        """
        if not prefix:
            return cls()
        env_prefix = f"{prefix.upper()}_{cls.model_config.get('env_prefix', '')}"
        prefixed = type(
            f"{prefix.title()}{cls.__name__}",
            (cls,),
            {"model_config": SettingsConfigDict(**{**cls.model_config, "env_prefix": env_prefix})},
        )
        return prefixed()
