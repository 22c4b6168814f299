"""Environment-driven configuration with Pydantic v2."""

from typing import List, Literal, Optional
from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Server Configuration
    host: str = Field(default="127.0.0.1", env="HOST")
    port: int = Field(default=8010, env="PORT", ge=1024, le=65535)
    debug: bool = Field(default=False, env="DEBUG")

    # Security
    cors_origins: List[str] = Field(default=["http://localhost:8081"], env="CORS_ORIGINS")

    # Durable storage (Supabase Storage)
    supabase_url: str = Field(default="http://localhost:54321", env="SUPABASE_URL")
    supabase_key: Optional[str] = Field(default=None, env="SUPABASE_KEY")
    meals_bucket: str = Field(default="Meals", env="MEALS_BUCKET")
    pantry_bucket: str = Field(default="pantryItems", env="PANTRY_BUCKET")

    # Generation backend
    backend_url: str = Field(default="http://localhost:8000", env="BACKEND_URL")
    backend_access_token: Optional[str] = Field(default=None, env="BACKEND_ACCESS_TOKEN")
    image_size: Literal["256x256", "512x512", "1024x1024"] = Field(default="1024x1024", env="IMAGE_SIZE")
    image_quality: Literal["standard", "hd"] = Field(default="standard", env="IMAGE_QUALITY")

    # Compression
    compress_max_dimension: int = Field(default=768, env="COMPRESS_MAX_DIMENSION", ge=64, le=4096)
    compress_jpeg_quality: int = Field(default=80, env="COMPRESS_JPEG_QUALITY", ge=10, le=95)
    scratch_dir: Optional[str] = Field(default=None, env="SCRATCH_DIR")

    # Upload retry
    upload_max_attempts: int = Field(default=3, env="UPLOAD_MAX_ATTEMPTS", ge=1, le=10)
    upload_base_delay: float = Field(default=1.0, env="UPLOAD_BASE_DELAY", ge=0.0, le=30.0)

    # Memory cache
    failure_cooldown_seconds: float = Field(default=600.0, env="FAILURE_COOLDOWN_SECONDS", ge=0.0)

    # Service Timeouts
    storage_timeout: float = Field(default=15.0, env="STORAGE_TIMEOUT", ge=1.0, le=120.0)
    generation_timeout: float = Field(default=90.0, env="GENERATION_TIMEOUT", ge=5.0, le=300.0)
    download_timeout: float = Field(default=30.0, env="DOWNLOAD_TIMEOUT", ge=1.0, le=120.0)

    # Logging
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    log_format: str = Field(default="json", env="LOG_FORMAT")
    log_file: Optional[str] = Field(default=None, env="LOG_FILE")

    @field_validator("supabase_url", "backend_url")
    @classmethod
    def strip_trailing_slash(cls, v):
        """Base URLs are joined with absolute paths."""
        return v.rstrip("/")

    @field_validator("scratch_dir")
    @classmethod
    def validate_scratch_dir(cls, v):
        """Ensure the scratch root exists when one is configured."""
        if v:
            Path(v).mkdir(parents=True, exist_ok=True)
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.debug

    model_config = {
        "env_file": "../.env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
        "env_nested_delimiter": "__",
    }
