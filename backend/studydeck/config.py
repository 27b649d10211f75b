"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # LLM API Keys
    anthropic_api_key: str = ""
    openai_api_key: str = ""

    # LLM Settings
    default_llm_provider: Literal["anthropic", "openai"] = "anthropic"
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_model: str = "gpt-4o"
    llm_max_tokens: int = 32000

    # Stream protocol (must match the generation prompt)
    slide_start_delimiter: str = "SLIDE_START_DELIMITER"
    slide_end_delimiter: str = "SLIDE_END_DELIMITER"
    presentation_complete_delimiter: str = "PRESENTATION_COMPLETE_DELIMITER"
    max_records_per_pass: int = 1000
    default_slide_count: str = "25-35"

    # Image search
    image_search_url: str = "https://fastapi-app-147317278405.us-central1.run.app/api/bulk_images"
    asset_max_retries: int = 3
    asset_retry_delay: float = 0.5
    asset_timeout: float = 30.0

    # Narration (Deepgram text-to-speech)
    deepgram_api_key: str = ""
    deepgram_api_url: str = "https://api.deepgram.com/v1/speak"
    deepgram_model: str = "aura-asteria-en"

    prefetch_assets: bool = True
    # Runs whose asset caches stay in memory; older ones are evicted
    max_cached_runs: int = 20

    # Server Settings
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = True
    log_level: str = "INFO"

    # Storage
    storage_path: str = "./storage"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
