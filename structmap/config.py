"""Mapper Configuration: environment-driven settings via pydantic-settings.

Invariants:
    - Every setting has a default: the mapper works with no environment at all
    - get_settings() is cached (lru_cache): single instance per process
    - Explicit Mapper constructor arguments always win over settings

Design Decisions:
    - pydantic-settings over raw os.environ: validation, type coercion, .env file support
    - STRUCTMAP_ prefix keeps the mapper's knobs out of the host application's namespace
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from structmap.core.domain_types import (
    DEFAULT_MAX_DEPTH, DEFAULT_TAG_NAME, MAX_DEPTH_CEILING,
)


class Settings(BaseSettings):
    """Mapper settings from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="STRUCTMAP_", env_file=".env", case_sensitive=False, extra="ignore",
    )

    # Alias metadata key for dataclass field metadata / pydantic json_schema_extra
    tag_name: str = DEFAULT_TAG_NAME

    # Transfer limits
    max_depth: int = Field(default=DEFAULT_MAX_DEPTH, ge=1, le=MAX_DEPTH_CEILING)

    # Raise MappingFailedError when a call reports errors (partial result still written)
    strict: bool = False

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"

    @field_validator("log_format", mode="before")
    @classmethod
    def normalize_log_format(cls, v: str) -> str:
        """Anything that is not json falls back to human-readable text."""
        if isinstance(v, str) and v.strip().lower() == "json":
            return "json"
        return "text"


@lru_cache
def get_settings() -> Settings:
    return Settings()
