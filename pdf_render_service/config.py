"""
PDF Render Service Configuration Module

Centralized configuration management with Pydantic validation.
All environment variables are validated at startup to catch misconfigurations early.
"""

import logging
import re
from functools import lru_cache
from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .html_helpers import PAGE_FORMATS, normalize_page_format, sanitize_filename

WAIT_UNTIL_POLICIES = ("commit", "domcontentloaded", "load", "networkidle")

DEFAULT_BLOCKED_URL_PATTERNS = ",".join([
    r"google-analytics\.com",
    r"googletagmanager\.com",
    r"doubleclick\.net",
    r"connect\.facebook\.net",
    r"static\.hotjar\.com",
    r"clarity\.ms",
])


class RenderSettings(BaseSettings):
    """
    PDF render service configuration with validation.

    All settings can be overridden via environment variables.
    Timeouts are in milliseconds, matching what Playwright expects.
    """

    # === Server ===
    host: str = Field(default="0.0.0.0", description="Listen address")
    port: int = Field(default=3000, ge=1, le=65535, description="Listen port")
    log_level: str = Field(default="INFO", description="Root log level")

    # === Concurrency & Limits ===
    pdf_concurrency: int = Field(
        default=2,
        ge=1,
        le=32,
        description="Maximum simultaneous renders (1-32)"
    )
    pdf_max_body_bytes: int = Field(
        default=25 * 1024 * 1024,
        ge=1024,
        description="Maximum request body size in bytes"
    )

    # === Timeouts (ms) ===
    pdf_nav_timeout: int = Field(default=30000, ge=100, description="Navigation timeout")
    pdf_content_timeout: int = Field(default=30000, ge=100, description="set_content timeout")
    pdf_protocol_timeout: int = Field(
        default=60000,
        ge=100,
        description="Default timeout for browser operations, including launch and PDF export"
    )
    pdf_render_timeout: int = Field(default=90000, ge=100, description="Overall per-render bound")
    pdf_font_timeout: int = Field(default=5000, ge=0, description="Font readiness wait")
    pdf_image_timeout: int = Field(default=10000, ge=0, description="Image decode wait")

    # === Rendering ===
    pdf_wait_until: str = Field(
        default="domcontentloaded",
        description="Readiness policy for set_content: commit, domcontentloaded, load, networkidle"
    )
    pdf_default_format: str = Field(default="A4", description="Fallback paper size")
    pdf_filename: str = Field(default="documento.pdf", description="Attachment filename")
    pdf_block_resource_types: str = Field(
        default="",
        description="Comma-separated Playwright resource types to abort (e.g. 'font,media')"
    )
    pdf_block_url_patterns: str = Field(
        default=DEFAULT_BLOCKED_URL_PATTERNS,
        description="Comma-separated regexes; matching sub-resource URLs are aborted"
    )

    # === Browser ===
    pdf_executable_path: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("PDF_EXECUTABLE_PATH", "PUPPETEER_EXECUTABLE_PATH", "CHROME_PATH"),
        description="Explicit Chromium executable (defaults to Playwright's bundled build)"
    )
    pdf_browser_args: str = Field(
        default="--no-sandbox,--disable-dev-shm-usage",
        description="Comma-separated extra Chromium launch arguments"
    )
    playwright_headless: bool = Field(default=True, description="Run Chromium headless")
    pdf_eager_launch: bool = Field(
        default=False,
        description="Launch the browser during startup instead of on first render"
    )

    # === CORS ===
    cors_origins: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins ('*' for any)"
    )
    cors_origin_regex: Optional[str] = Field(
        default=None,
        description="Regex matched against the Origin header"
    )

    model_config = SettingsConfigDict(
        env_prefix="",  # No prefix, use exact env var names
        case_sensitive=False,  # PDF_CONCURRENCY = pdf_concurrency
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a known logging level name."""
        v_upper = v.upper()
        if v_upper not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return v_upper

    @field_validator("pdf_wait_until")
    @classmethod
    def validate_wait_until(cls, v: str) -> str:
        """Validate readiness policy is one Playwright understands."""
        v_lower = v.lower()
        if v_lower not in WAIT_UNTIL_POLICIES:
            raise ValueError(f"pdf_wait_until must be one of: {', '.join(WAIT_UNTIL_POLICIES)}")
        return v_lower

    @field_validator("pdf_default_format")
    @classmethod
    def validate_default_format(cls, v: str) -> str:
        """Validate the fallback paper size."""
        page_format = normalize_page_format(v)
        if page_format is None:
            raise ValueError(f"pdf_default_format must be one of: {', '.join(PAGE_FORMATS)}")
        return page_format

    @field_validator("pdf_filename")
    @classmethod
    def validate_filename(cls, v: str) -> str:
        """Sanitize the attachment filename and force a .pdf extension."""
        return sanitize_filename(v)

    @field_validator("pdf_block_url_patterns")
    @classmethod
    def validate_url_patterns(cls, v: str) -> str:
        """Compile each pattern so a bad regex fails at startup, not per request."""
        for pattern in _split_csv(v):
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid URL pattern {pattern!r}: {e}")
        return v

    @field_validator("cors_origin_regex")
    @classmethod
    def validate_origin_regex(cls, v: Optional[str]) -> Optional[str]:
        """Empty string disables the origin pattern."""
        if not v:
            return None
        try:
            re.compile(v)
        except re.error as e:
            raise ValueError(f"Invalid CORS origin regex: {e}")
        return v

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins into a list."""
        return _split_csv(self.cors_origins)

    @property
    def block_resource_types_list(self) -> List[str]:
        """Parse blocked resource types into a lowercase list."""
        return [t.lower() for t in _split_csv(self.pdf_block_resource_types)]

    @property
    def block_url_patterns_list(self) -> List[str]:
        """Parse blocked URL patterns into a list."""
        return _split_csv(self.pdf_block_url_patterns)

    @property
    def browser_args_list(self) -> List[str]:
        """Parse Chromium launch arguments into a list."""
        return _split_csv(self.pdf_browser_args)


def _split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


@lru_cache()
def get_settings() -> RenderSettings:
    """
    Get cached settings instance.

    Settings are loaded once and cached for performance.
    Use this function to access configuration throughout the app.
    """
    return RenderSettings()


def validate_config_on_startup(settings: Optional[RenderSettings] = None) -> RenderSettings:
    """
    Validate configuration at application startup.

    Raises ValueError with details if config is invalid.
    Logs the effective configuration.
    """
    logger = logging.getLogger(__name__)

    if settings is None:
        try:
            settings = get_settings()
        except Exception as e:
            raise ValueError(f"Configuration validation failed: {e}")

    if settings.pdf_render_timeout < settings.pdf_content_timeout:
        logger.warning(
            "PDF_RENDER_TIMEOUT is shorter than PDF_CONTENT_TIMEOUT; "
            "the overall bound will fire first"
        )

    logger.info(f"Configuration loaded: port={settings.port}")
    logger.info(f"  pdf_concurrency={settings.pdf_concurrency}")
    logger.info(
        f"  timeouts: nav={settings.pdf_nav_timeout}ms content={settings.pdf_content_timeout}ms "
        f"protocol={settings.pdf_protocol_timeout}ms render={settings.pdf_render_timeout}ms"
    )
    logger.info(f"  wait_until={settings.pdf_wait_until} default_format={settings.pdf_default_format}")
    logger.info(f"  max_body_bytes={settings.pdf_max_body_bytes}")
    logger.info(f"  executable_path={settings.pdf_executable_path or '(bundled)'}")
    logger.info(f"  cors_origins={settings.cors_origins_list} cors_origin_regex={settings.cors_origin_regex}")

    return settings
