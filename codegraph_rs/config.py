"""
Centralized configuration for graph construction.

All thresholds and limits used while building a graph are defined here.

Usage:
    from codegraph_rs.config import GraphBuildConfig, get_settings

    # Use default config (environment overrides applied)
    config = get_settings().build

    # Override for specific use case
    custom_config = GraphBuildConfig(max_type_depth=8)
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GraphBuildConfig(BaseModel):
    """Configuration for graph construction."""

    # Type canonicalization
    max_type_depth: int = Field(default=32, ge=1, le=128)
    """Maximum nesting depth when decomposing a type expression (bounded by the interpreter stack)"""

    # Identity allocation
    max_id: int = Field(default=2**32 - 1, ge=1)
    """Largest identifier value issued per namespace"""

    # Parallelism
    parallel: bool = Field(default=True)
    """Traverse compilation units on a thread pool"""

    max_workers: int = Field(default=4, ge=1, le=64)
    """Worker threads for per-file traversal"""

    # Resolution
    crate_name: str = Field(default="crate", min_length=1)
    """Root segment of every qualified path"""

    resolve_prelude: bool = Field(default=True)
    """Resolve prelude names (Vec, Option, ...) as external types"""

    include_block_items: bool = Field(default=True)
    """Visit items declared inside function bodies"""


class ObservabilityConfig(BaseModel):
    """Logging configuration."""

    log_level: str = Field(default="INFO")
    """Logging level name"""

    log_format: str = Field(default="console", pattern="^(json|console)$")
    """Output renderer: json or console"""


class CodegraphSettings(BaseSettings):
    """
    Root settings for codegraph_rs.

    Can be configured via:
    - Environment variables (prefixed with CODEGRAPH_RS_)
    - Direct instantiation
    - .env file

    Examples:
        CODEGRAPH_RS_BUILD__MAX_TYPE_DEPTH=16
        CODEGRAPH_RS_OBSERVABILITY__LOG_FORMAT=json
    """

    build: GraphBuildConfig = Field(default_factory=GraphBuildConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="CODEGRAPH_RS_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> CodegraphSettings:
    """
    Get the global settings instance.

    The settings are cached. To reload, call get_settings.cache_clear() first.
    """
    return CodegraphSettings()
