"""Configuration management for the innerself-ai reading service."""

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # OpenAI Configuration
    openai_api_key: Optional[str] = Field(default=None)
    openai_base_url: Optional[str] = Field(default=None)
    openai_model: str = Field(default="o4-mini")
    max_output_tokens: int = Field(default=500)
    generation_timeout_seconds: float = Field(default=60.0)

    # Pipeline behaviour
    output_strategy: Literal["free_text", "json_object", "json_schema"] = Field(default="json_object")
    failure_policy: Literal["fallback", "propagate"] = Field(default="fallback")
    enforce_prose_length: bool = Field(default=False)

    # Diagnostics
    preview_chars: int = Field(default=300)
    log_raw_response_chars: int = Field(default=4000)

    # Server
    service_name: str = Field(default="innerself-ai")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080)

    # Logging
    log_level: str = Field(default="INFO")


# Global settings instance
settings = Settings()
