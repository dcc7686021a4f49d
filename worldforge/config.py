from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import List, Optional

class Settings(BaseSettings):
    app_name: str = "WorldForge"
    # Default to a local postgres database if not set in env
    database_url: str = "postgresql+asyncpg://localhost/worldforge"

    # Model configuration - can be overridden via environment variables
    model_forge: str = "gemini-2.5-flash"  # Entity generation model
    forge_temperature: float = 0.9
    forge_max_output_tokens: int = 8192
    forge_timeout_seconds: float = 120.0

    # Resilient client retry settings
    resilient_max_retries: int = 5
    resilient_base_delay: int = 2  # seconds, used with exponential backoff

    # API key cooldown after exhaustion
    key_cooldown_seconds: int = 60

    # Discovery scanning
    scan_max_discoveries: int = 15  # free-text discoveries past this are flagged over_limit
    scan_context_chars: int = 50    # characters of surrounding text kept per discovery

    # Pipelines untouched for this long are evicted from the in-process registry
    pipeline_ttl_seconds: int = 3600

    # Logging
    log_file: Optional[str] = "worldforge.log"
    log_level: str = "INFO"

    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

@lru_cache
def get_settings():
    return Settings()
