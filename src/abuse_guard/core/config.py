"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables or a local .env file.
"""

import json
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_list(raw: str) -> list[str]:
    """Parse a JSON list or a comma-separated string into a list of strings."""
    try:
        parsed = json.loads(raw)
        if isinstance(parsed, list):
            return [str(item).strip() for item in parsed if str(item).strip()]
    except json.JSONDecodeError:
        pass
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "abuse-guard"
    APP_ENV: str = "development"
    DEBUG: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Challenge-response verification (reCAPTCHA-compatible siteverify API)
    RECAPTCHA_SECRET_KEY: str | None = None
    RECAPTCHA_VERIFY_URL: str = "https://www.google.com/recaptcha/api/siteverify"
    RECAPTCHA_TIMEOUT_SECONDS: float = 5.0
    # Hostname reported by the provider's public test keys
    RECAPTCHA_TEST_HOSTNAME: str = "testkey.google.com"

    # Registration rate limiting
    RATE_LIMIT_MAX_ATTEMPTS: int = 3
    RATE_LIMIT_WINDOW_MINUTES: int = 15

    # Expired rate-limit record eviction
    JANITOR_INTERVAL_MINUTES: int = 5

    # Rule tables - stored as comma-separated strings (or JSON lists)
    DISPOSABLE_EMAIL_PATTERNS: str = r"^[a-z]+\d+@(tempmail|guerrillamail|10minutemail|mailinator)"
    KEYBOARD_WALK_PATTERNS: str = "qwerty,asdf,zxcv,123456,abcdef"
    BOT_USER_AGENT_PATTERNS: str = (
        "bot,crawler,spider,scraper,headless,phantom,selenium,webdriver,curl,wget,python,java"
    )

    @field_validator("RATE_LIMIT_MAX_ATTEMPTS", "RATE_LIMIT_WINDOW_MINUTES", "JANITOR_INTERVAL_MINUTES")
    @classmethod
    def validate_positive(cls, v: int, info) -> int:
        """Reject zero or negative limits and intervals."""
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive")
        return v

    @property
    def is_production(self) -> bool:
        """Whether the strict production policy applies."""
        return self.APP_ENV.strip().lower() == "production"

    @property
    def rate_limit_window_ms(self) -> int:
        return self.RATE_LIMIT_WINDOW_MINUTES * 60 * 1000

    @property
    def disposable_email_patterns_list(self) -> list[str]:
        """Get disposable email regexes as a list."""
        return _split_list(self.DISPOSABLE_EMAIL_PATTERNS)

    @property
    def keyboard_walk_patterns_list(self) -> list[str]:
        """Get keyboard-walk substrings as a list."""
        return _split_list(self.KEYBOARD_WALK_PATTERNS)

    @property
    def bot_user_agent_patterns_list(self) -> list[str]:
        """Get automation-tool user-agent substrings as a list."""
        return _split_list(self.BOT_USER_AGENT_PATTERNS)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
