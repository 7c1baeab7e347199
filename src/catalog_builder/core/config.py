"""Configuration management.

Uses pydantic-settings for type-safe configuration from environment variables.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings.

    All settings can be overridden via environment variables.
    Prefix: CATALOG_BUILDER_
    """

    model_config = SettingsConfigDict(
        env_prefix="CATALOG_BUILDER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Exported configuration documents
    config_version: str = Field(
        default="1.0",
        description="Version string written into exported configuration documents",
    )

    # Cross-references
    default_id_field: str = Field(
        default="id",
        description="Record field holding the record identifier",
    )
    reference_delimiter: str = Field(
        default=",",
        description="Separator used when importing references from a record field",
    )
    default_chain_depth: int = Field(
        default=3,
        description="Default maximum depth for reference chain traversal",
    )
    max_chain_results: int = Field(
        default=1000,
        description="Hard cap on the number of chains emitted by one traversal",
    )

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")  # 'json' or 'console'


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
