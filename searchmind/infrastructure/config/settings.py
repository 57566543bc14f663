"""Configuration management for the SearchMind agent service."""

from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SEARCHMIND_",
        extra="ignore",
    )

    # Observability
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field("INFO")
    log_format: Literal["json", "console"] = Field("json")
    service_name: str = Field("searchmind-agent")
    langfuse_enabled: bool = Field(False, description="Trace routing and agent runs with Langfuse")

    # Models (provider:model strings)
    chat_model: str = Field("google_genai:gemini-1.5-pro")
    router_model: str = Field("google_genai:gemini-1.5-flash")
    embedding_model: str = Field("openai:text-embedding-3-small")
    embedding_dimensions: int = Field(1536, gt=0)
    max_tool_rounds: int = Field(5, ge=1)
    enable_search_grounding: bool = Field(False)

    # Retrieval
    memory_min_score: float = Field(0.5, ge=0.0, le=1.0)
    memory_context_limit: int = Field(5, ge=1)

    # Execution budgets (seconds)
    agent_timeout_seconds: float = Field(120.0, gt=0)
    turn_timeout_seconds: float = Field(300.0, gt=0)
    default_agent: str = Field("ANALYST")

    # Sleep cycle
    sleep_cycle_enabled: bool = Field(True)
    sleep_cycle_interval_hours: float = Field(6.0, gt=0)
    consolidation_batch_size: int = Field(50, ge=1)
    duplicate_similarity_threshold: float = Field(0.95, ge=0.0, le=1.0)
    promotion_success_threshold: float = Field(0.7, ge=0.0, le=1.0)
    promotion_min_actions: int = Field(3, ge=1)
    gc_max_age_days: int = Field(30, ge=1)
    gc_max_importance: float = Field(0.3, ge=0.0, le=1.0)
    gc_min_access_count: int = Field(2, ge=0)

    # Search Console
    gsc_access_token: Optional[str] = Field(None, description="Static OAuth access token for Search Console calls")
    gsc_max_attempts: int = Field(3, ge=1)

    # API
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    # Data sync
    sync_window_days: int = Field(3, ge=1)
    sync_lag_days: int = Field(3, ge=0)

    @property
    def sleep_cycle_interval_seconds(self) -> float:
        return self.sleep_cycle_interval_hours * 3600


@lru_cache(maxsize=1)
def get_settings(env_file: Optional[str] = None) -> Settings:
    """Return the process-wide settings instance"""
    if env_file:
        return Settings(_env_file=env_file)
    return Settings()
