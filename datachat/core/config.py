"""
Centralized configuration management.

All application configuration is loaded and validated here.
"""
import os
import logging
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)


class Settings(BaseModel):
    """Application settings with validation."""

    # Upload settings
    max_file_size_mb: int = Field(default=50, ge=1, le=1000, description="Maximum file size in MB")
    max_file_rows: int = Field(default=1000000, ge=1000, description="Maximum rows in uploaded file")
    max_file_columns: int = Field(default=1000, ge=10, description="Maximum columns in uploaded file")

    # Rate limiting
    rate_limit_per_minute: int = Field(default=10, ge=1, le=1000, description="Rate limit per minute per IP")

    # Request timeout
    request_timeout_seconds: int = Field(default=300, ge=1, le=3600, description="Request timeout in seconds")

    # CORS
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:3001",
        description="Comma-separated list of allowed CORS origins"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    # LLM provider
    groq_model: str = Field(default="llama-3.1-8b-instant", description="Model used when the caller sends none")
    llm_temperature: float = Field(default=0.0, ge=0.0, le=2.0, description="Sampling temperature")
    llm_max_tokens: int = Field(default=2500, ge=100, le=32000, description="Completion token budget")
    llm_timeout_seconds: float = Field(default=60.0, gt=0, le=600, description="Provider call timeout")
    llm_json_mode_models: str = Field(
        default="llama-3.1-8b-instant,llama-3.3-70b-versatile,openai/gpt-oss-20b,openai/gpt-oss-120b",
        description="Comma-separated models that accept the JSON response_format hint"
    )
    api_key_prefix: str = Field(default="gsk_", description="Expected API key prefix")
    api_key_min_length: int = Field(default=20, ge=1, description="Minimum API key length")

    # Sampling
    profile_sample_size: int = Field(default=500, ge=10, description="Rows inspected when profiling columns")
    full_dataset_prompt_rows: int = Field(default=2000, ge=10, description="Largest dataset sent to the LLM unsampled")
    representative_sample_size: int = Field(default=5000, ge=600, description="Target size of the stratified prompt sample")

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}, got '{v}'")
        return v.upper()

    @property
    def max_file_size_bytes(self) -> int:
        """Get max file size in bytes."""
        return self.max_file_size_mb * 1024 * 1024

    @property
    def allowed_origins_list(self) -> List[str]:
        """Get allowed origins as a list."""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @property
    def json_mode_models(self) -> List[str]:
        return [m.strip() for m in self.llm_json_mode_models.split(",") if m.strip()]

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables."""
        defaults = cls()
        return cls(
            max_file_size_mb=int(os.getenv("MAX_FILE_SIZE_MB", "50")),
            max_file_rows=int(os.getenv("MAX_FILE_ROWS", "1000000")),
            max_file_columns=int(os.getenv("MAX_FILE_COLUMNS", "1000")),
            rate_limit_per_minute=int(os.getenv("RATE_LIMIT_PER_MINUTE", "10")),
            request_timeout_seconds=int(os.getenv("REQUEST_TIMEOUT_SECONDS", "300")),
            allowed_origins=os.getenv("ALLOWED_ORIGINS", defaults.allowed_origins),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            groq_model=os.getenv("GROQ_MODEL", defaults.groq_model),
            llm_temperature=float(os.getenv("LLM_TEMPERATURE", "0.0")),
            llm_max_tokens=int(os.getenv("LLM_MAX_TOKENS", "2500")),
            llm_timeout_seconds=float(os.getenv("LLM_TIMEOUT_SECONDS", "60")),
            llm_json_mode_models=os.getenv("LLM_JSON_MODE_MODELS", defaults.llm_json_mode_models),
            api_key_prefix=os.getenv("API_KEY_PREFIX", defaults.api_key_prefix),
            api_key_min_length=int(os.getenv("API_KEY_MIN_LENGTH", "20")),
            profile_sample_size=int(os.getenv("PROFILE_SAMPLE_SIZE", "500")),
            full_dataset_prompt_rows=int(os.getenv("FULL_DATASET_PROMPT_ROWS", "2000")),
            representative_sample_size=int(os.getenv("REPRESENTATIVE_SAMPLE_SIZE", "5000")),
        )


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get application settings (singleton pattern)."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
        logger.info("Configuration loaded and validated successfully")
    return _settings


def reload_settings() -> Settings:
    """Reload settings (useful for testing)."""
    global _settings
    _settings = None
    return get_settings()
