"""
Application Settings
===================

Main application settings and environment configuration using Pydantic Settings.
Supports development, testing, and production environments.
"""

from typing import Optional, List, Union
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import json
from pathlib import Path

ASSETS_DIR = Path(__file__).resolve().parent.parent / "assets"

# Old desktop Safari; the font host answers it with TrueType sources.
SAFARI_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; U; Intel Mac OS X 10_6_8; de-at) AppleWebKit/533.21.1 "
    "(KHTML, like Gecko) Version/5.0.5 Safari/533.21.1"
)


class Settings(BaseSettings):
    """Main application settings with environment variable support."""

    # Application Configuration
    app_name: str = Field(default="OG Image Render Service", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(
        default="development", description="Environment: development, testing, production"
    )
    debug: bool = Field(default=True, description="Debug mode")

    # Server Configuration
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")

    # Rendering Configuration
    default_width: int = Field(default=1200, gt=0, description="Default image width")
    default_height: int = Field(default=630, gt=0, description="Default image height")
    default_emoji_style: str = Field(default="twemoji", description="Default emoji style")

    # Base Font Configuration
    base_font_path: Path = Field(
        default=ASSETS_DIR / "noto-sans-v27-latin-regular.ttf",
        description="TrueType font used when no fonts are supplied",
    )
    base_font_name: str = Field(default="sans serif", description="Base font family name")
    base_font_weight: int = Field(default=700, ge=1, le=1000, description="Base font weight")
    fetch_base_font_on_startup: bool = Field(
        default=True, description="Download the base font at startup when it is missing"
    )

    # Dynamic Asset Configuration
    google_fonts_css_url: str = Field(
        default="https://fonts.googleapis.com/css2", description="Font stylesheet API"
    )
    google_fonts_user_agent: str = Field(
        default=SAFARI_USER_AGENT, description="User-Agent sent to the font stylesheet API"
    )
    emoji_failure_policy: str = Field(
        default="abort", description="What an unresolved emoji does: abort or degrade"
    )
    dedupe_inflight_assets: bool = Field(
        default=True, description="Share one fetch between concurrent identical asset requests"
    )

    # Security Configuration
    allowed_hosts: List[str] = Field(default=["*"], description="Allowed hosts for CORS")

    # Monitoring Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: Optional[Path] = Field(default=None, description="Optional rotating log file")

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

    @field_validator("emoji_failure_policy")
    @classmethod
    def validate_emoji_failure_policy(cls, v: str) -> str:
        """Validate emoji failure policy."""
        allowed = {"abort", "degrade"}
        if v.lower() not in allowed:
            raise ValueError(f"Emoji failure policy must be one of: {allowed}")
        return v.lower()

    @field_validator("allowed_hosts", mode="before")
    @classmethod
    def parse_allowed_hosts(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse allowed hosts from string or list."""
        if isinstance(v, str):
            # Handle JSON-like string: ["*"] or ["host1", "host2"]
            v = v.strip()
            if v.startswith("[") and v.endswith("]"):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    pass
            # Handle comma-separated string: "*" or "host1,host2"
            return [host.strip() for host in v.split(",") if host.strip()]
        return v

    @property
    def is_development(self) -> bool:
        """Whether responses should opt out of caching."""
        return self.environment == "development"

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, env_prefix="OG_IMAGE_"
    )


# Global settings instance - will be initialized when needed
settings = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global settings
    if settings is None:
        settings = Settings()
    return settings


def reload_settings() -> Settings:
    """Reload settings from environment."""
    global settings
    settings = Settings()
    return settings
