"""Engine configuration settings."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GeneratorSettings(BaseSettings):
    """Defaults for SQL generation."""

    default_dialect: str = Field(
        default="mysql",
        description="Dialect used when none is requested: mysql or sqlserver",
    )
    pretty: bool = Field(
        default=True,
        description="Emit one clause per line with indentation",
    )

    model_config = SettingsConfigDict(
        env_prefix="QUERYLENS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


class ResolverSettings(BaseSettings):
    """Join path search bounds."""

    max_path_depth: int = Field(
        default=5,
        ge=1,
        le=12,
        description="Maximum hops explored when enumerating join paths",
    )
    best_path_depth: int = Field(
        default=3,
        ge=1,
        le=12,
        description="Maximum hops for the single best-path lookup",
    )

    model_config = SettingsConfigDict(
        env_prefix="QUERYLENS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


class AnalyzerSettings(BaseSettings):
    """Ceilings that keep the SQL text analyzer bounded."""

    max_sql_length: int = Field(
        default=200_000,
        ge=1,
        description="Inputs longer than this are not analyzed",
    )
    max_matches_per_pass: int = Field(
        default=5_000,
        ge=1,
        description="Maximum regex matches consumed by a single scan",
    )
    max_subquery_depth: int = Field(
        default=32,
        ge=0,
        description="Maximum nesting of subqueries that is followed",
    )

    model_config = SettingsConfigDict(
        env_prefix="QUERYLENS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_generator_settings() -> GeneratorSettings:
    """Get cached generator settings."""
    return GeneratorSettings()


@lru_cache
def get_resolver_settings() -> ResolverSettings:
    """Get cached resolver settings."""
    return ResolverSettings()


@lru_cache
def get_analyzer_settings() -> AnalyzerSettings:
    """Get cached analyzer settings."""
    return AnalyzerSettings()
