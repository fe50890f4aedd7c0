"""
Settings Configuration

Centralized settings for the review core.
All values are loaded from environment variables (after .env is read).
"""
import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def get_bool_env(key: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ('true', '1', 'yes', 'on', 'enabled')


def get_int_env(key: str, default: int) -> int:
    """Get an integer value from environment variable."""
    raw = os.getenv(key)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Settings:
    """
    Settings for the application.

    To add a new setting:
    1. Add it here as a class property
    2. Load it from environment variable
    3. Read it through `settings`
    """

    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./conference_review.db")

    # Identity collaborator (bearer tokens are issued elsewhere)
    JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
    JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")

    # Mail collaborator
    EMAIL_NOTIFICATIONS_ENABLED: bool = get_bool_env('EMAIL_NOTIFICATIONS_ENABLED', True)
    SMTP_HOST: Optional[str] = os.getenv("SMTP_HOST") or None
    SMTP_PORT: int = get_int_env("SMTP_PORT", 587)
    SMTP_USER: Optional[str] = os.getenv("SMTP_USER") or None
    SMTP_PASSWORD: Optional[str] = os.getenv("SMTP_PASSWORD") or None
    SMTP_USE_STARTTLS: bool = get_bool_env('SMTP_USE_STARTTLS', True)
    SMTP_TIMEOUT_SECONDS: int = get_int_env("SMTP_TIMEOUT_SECONDS", 30)
    EMAIL_FROM: str = os.getenv("EMAIL_FROM", "noreply@conference.local")

    # Template variables
    PORTAL_NAME: str = os.getenv("PORTAL_NAME", "Research Symposium")
    FRONTEND_URL: str = os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/")

    def smtp_configured(self) -> bool:
        return bool(self.SMTP_HOST)

    def get_all(self) -> dict:
        """Get all non-secret settings as a dictionary."""
        return {
            'ENVIRONMENT': self.ENVIRONMENT,
            'DATABASE_URL': self.DATABASE_URL.split("@")[-1],
            'EMAIL_NOTIFICATIONS_ENABLED': self.EMAIL_NOTIFICATIONS_ENABLED,
            'SMTP_CONFIGURED': self.smtp_configured(),
            'PORTAL_NAME': self.PORTAL_NAME,
            'FRONTEND_URL': self.FRONTEND_URL,
        }


settings = Settings()
