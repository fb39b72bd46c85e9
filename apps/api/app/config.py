from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Core
    database_url: str = "sqlite:///./kana_insights.db"
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:5173,http://127.0.0.1:5173"

    # External model
    llm_provider: str = "gemini"  # gemini | ollama
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    ollama_base_url: str = "http://127.0.0.1:11434"
    ollama_model: str = "mistral:7b-instruct"
    llm_timeout_seconds: float = 120

    # Batching / rate limit (5 batches per minute)
    batch_size: int = 15
    batch_delay_seconds: float = 12.0
    rate_limit_backoff_seconds: float = 15.0
    rate_limit_max_retries: int = 3

    # Longest single CSV field accepted, in characters
    csv_field_size_limit: int = 1024 * 1024

    brand_name: str = "Kana Coffee"

    # Ignore extra env vars so `.env` can have more keys
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
    )

    @property
    def cors_origin_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

settings = Settings()
