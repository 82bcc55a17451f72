"""
Application Settings
===================

Still render settings and environment configuration using Pydantic Settings.
Supports development, testing, and production environments.
"""

from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path


class Settings(BaseSettings):
    """Main application settings with environment variable support."""

    # Application Configuration
    app_name: str = Field(default="Still Render Orchestrator", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(
        default="development", description="Environment: development, testing, production"
    )
    debug: bool = Field(default=False, description="Debug mode")

    # Output Configuration
    quiet: bool = Field(default=False, description="Suppress progress output")
    log_level: str = Field(default="INFO", description="Logging level")
    output_dir: Path = Field(
        default=Path("."), description="Base directory for relative output locations"
    )
    default_image_format: Optional[str] = Field(
        default=None, description="Project-level default still image format"
    )

    # Storage Configuration
    storage_path: Path = Field(default=Path("./storage"), description="Storage directory path")
    temp_path: Path = Field(default=Path("./tmp"), description="Temporary bundle directory")

    # Rendering Configuration
    jpeg_quality: int = Field(default=80, ge=0, le=100, description="Default JPEG quality")
    scale: float = Field(default=1.0, gt=0, le=16, description="Default device scale factor")

    # Browser Configuration
    playwright_headless: bool = Field(default=True, description="Run browser in headless mode")
    browser_timeout_ms: int = Field(
        default=30000, gt=0, description="Browser operation timeout in milliseconds"
    )
    browser_executable: Optional[str] = Field(
        default=None, description="Custom Chromium executable path"
    )

    # Server Configuration
    server_host: str = Field(default="127.0.0.1", description="Local asset server host")
    server_port: Optional[int] = Field(
        default=None, description="Local asset server port (ephemeral when unset)"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Validate environment value."""
        allowed = {"development", "testing", "production"}
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator("default_image_format")
    @classmethod
    def validate_default_image_format(cls, v: Optional[str]) -> Optional[str]:
        """Normalize the configured image format."""
        if v is None or not v.strip():
            return None
        v = v.strip().lower()
        if v == "jpg":
            return "jpeg"
        allowed = {"png", "jpeg", "webp", "pdf"}
        if v not in allowed:
            raise ValueError(f"Image format must be one of: {allowed}")
        return v

    @field_validator("storage_path", "temp_path")
    @classmethod
    def create_directories(cls, v: Path) -> Path:
        """Ensure directories exist."""
        v.mkdir(parents=True, exist_ok=True)
        return v

    @property
    def is_verbose(self) -> bool:
        """Verbose output is tied to the DEBUG log level."""
        return self.log_level == "DEBUG"

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, env_prefix="STILL_RENDER_"
    )


# Global settings instance - will be initialized when needed
settings = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global settings
    if settings is None:
        settings = Settings()
    return settings
