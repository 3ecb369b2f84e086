"""
Configuration settings for docoverlay.

Reads overrides from the project .env file and provides typed settings.
"""

from functools import lru_cache
from pathlib import Path
from typing import Dict

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from docoverlay.services.overlay.fonts import FontStyle


# Resolve paths
PACKAGE_DIR = Path(__file__).parent
PROJECT_ROOT = PACKAGE_DIR.parent
ENV_FILE = PROJECT_ROOT / ".env"


# Unicode-capable font family embedded when EMBED_UNICODE_FONT is on
DEFAULT_UNICODE_FONT_URLS = {
    "regular": "https://pdf-lib.js.org/assets/ubuntu/Ubuntu-R.ttf",
    "bold": "https://pdf-lib.js.org/assets/ubuntu/Ubuntu-B.ttf",
    "italic": "https://pdf-lib.js.org/assets/ubuntu/Ubuntu-I.ttf",
    "bold_italic": "https://pdf-lib.js.org/assets/ubuntu/Ubuntu-BI.ttf",
}


class Settings(BaseSettings):
    """Application settings loaded from the environment and .env file."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application settings
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")

    # Upload validation
    max_upload_size_mb: int = Field(
        default=50,
        alias="MAX_UPLOAD_SIZE_MB",
        description="Largest accepted source document"
    )

    # Preview rendering
    preview_render_scale: float = Field(
        default=1.5,
        alias="PREVIEW_RENDER_SCALE",
        description="Raster zoom for page previews, relative to 72 DPI"
    )
    docx_render_width: float = Field(
        default=794.0,
        alias="DOCX_RENDER_WIDTH",
        description="Page width used when converting DOCX input"
    )
    docx_render_height: float = Field(
        default=1123.0,
        alias="DOCX_RENDER_HEIGHT",
        description="Page height used when converting DOCX input"
    )

    # Text metrics and fonts
    text_metrics_mode: str = Field(
        default="shaped",
        alias="TEXT_METRICS_MODE",
        description="'shaped' measures with real fonts, 'heuristic' approximates"
    )
    embed_unicode_font: bool = Field(
        default=False,
        alias="EMBED_UNICODE_FONT",
        description="Embed one Unicode font instead of mapping to base-14 families"
    )
    unicode_font_regular_url: str = Field(
        default=DEFAULT_UNICODE_FONT_URLS["regular"], alias="UNICODE_FONT_REGULAR_URL"
    )
    unicode_font_bold_url: str = Field(
        default=DEFAULT_UNICODE_FONT_URLS["bold"], alias="UNICODE_FONT_BOLD_URL"
    )
    unicode_font_italic_url: str = Field(
        default=DEFAULT_UNICODE_FONT_URLS["italic"], alias="UNICODE_FONT_ITALIC_URL"
    )
    unicode_font_bold_italic_url: str = Field(
        default=DEFAULT_UNICODE_FONT_URLS["bold_italic"], alias="UNICODE_FONT_BOLD_ITALIC_URL"
    )

    # Session retention
    session_idle_ttl_seconds: float = Field(
        default=3600.0,
        alias="SESSION_IDLE_TTL_SECONDS",
        description="Sessions untouched for longer than this are dropped"
    )
    max_sessions: int = Field(
        default=100,
        alias="MAX_SESSIONS",
        description="Least recently used sessions are dropped beyond this count"
    )

    # Fetch timeouts
    font_fetch_timeout: float = Field(default=30.0, alias="FONT_FETCH_TIMEOUT")
    asset_fetch_timeout: float = Field(default=30.0, alias="ASSET_FETCH_TIMEOUT")

    @property
    def unicode_font_urls(self) -> Dict[FontStyle, str]:
        """Font download URL per face."""
        return {
            FontStyle.REGULAR: self.unicode_font_regular_url,
            FontStyle.BOLD: self.unicode_font_bold_url,
            FontStyle.ITALIC: self.unicode_font_italic_url,
            FontStyle.BOLD_ITALIC: self.unicode_font_bold_italic_url,
        }

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience accessors
settings = get_settings()
