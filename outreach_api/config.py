"""Application configuration."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,  # so BACKEND_API_URL works regardless of case
    )

    # External AI backend (read from .env)
    backend_api_url: str = "http://127.0.0.1:8000"
    request_timeout_seconds: float = 30.0

    # Retry policy for outbound calls
    retry_max_attempts: int = 3
    retry_delay_seconds: float = 1.0

    # Batch sends
    batch_inter_lead_delay_seconds: float = 0.5

    # Generation
    max_variants: int = 5
    default_model: str = "google/gemma-2-27b-it:free"
    business_specialization: str = "Life insurance for new families"
    default_insight: str = "recently searched for coverage options"

    # Analytics
    preview_history_size: int = 50

    # App
    cors_allow_origins: list[str] = ["*"]
    log_level: str = "INFO"

    @property
    def backend_base_url(self) -> str:
        return self.backend_api_url.rstrip("/")


settings = Settings()
