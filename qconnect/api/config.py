"""
Environment-aware configuration.
Values come from the process environment (a local .env is read if present).
"""
import os
from dotenv import load_dotenv
from datetime import timedelta

load_dotenv()  # Read .env if present

DEV_JWT_SECRET = "dev-secret-change-me"


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str = "") -> list[str]:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


class BaseConfig:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")  # Set a strong key in production
    DEBUG = False
    TESTING = False
    APP_ENV = os.getenv("APP_ENV", "dev")
    API_PREFIX = os.getenv("API_PREFIX", "/api/v1")

    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///qconnect.db")
    SQL_ECHO = _env_bool("SQL_ECHO")

    # Access tokens: signed JWTs, short lived
    JWT_SECRET = os.getenv("JWT_SECRET", DEV_JWT_SECRET)
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_ISSUER = os.getenv("JWT_ISSUER", "qconnect")
    ACCESS_TOKEN_EXPIRES = timedelta(minutes=int(os.getenv("ACCESS_TOKEN_EXPIRES_MINUTES", "15")))
    # Refresh tokens: opaque, stored hashed, single use
    REFRESH_TOKEN_EXPIRES = timedelta(days=int(os.getenv("REFRESH_TOKEN_DAYS", "7")))

    ACCESS_COOKIE_NAME = "token"
    REFRESH_COOKIE_NAME = "refreshToken"
    COOKIE_SECURE = _env_bool("COOKIE_SECURE")
    COOKIE_SAMESITE = os.getenv("COOKIE_SAMESITE", "Strict")

    # CORS: explicit allow-list, comma-separated in env
    CORS_ORIGINS = _env_list("CORS_ORIGINS", "http://localhost:3000")
    ENABLE_HSTS = _env_bool("ENABLE_HSTS")
    CSP_DIRECTIVES = os.getenv(
        "CSP_DIRECTIVES",
        "default-src 'self'; script-src 'self'; img-src 'self' data:; style-src 'self' 'unsafe-inline';",
    )

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT = os.getenv("LOG_FORMAT", "text")


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")


class TestingConfig(BaseConfig):
    TESTING = True
    DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite:///qconnect-test.db")
    JWT_SECRET = "test-jwt-secret-not-for-production"
    CORS_ORIGINS = ["http://localhost:3000"]
    ENABLE_HSTS = False
    LOG_LEVEL = "WARNING"


class ProductionConfig(BaseConfig):
    DEBUG = False
    COOKIE_SECURE = _env_bool("COOKIE_SECURE", "true")
    ENABLE_HSTS = _env_bool("ENABLE_HSTS", "true")
    LOG_FORMAT = os.getenv("LOG_FORMAT", "json")


def get_config(name: str | None):
    """
    Select config class.
    - If name is provided, choose by name.
    - Else choose based on APP_ENV (dev/test/prod).
    """
    if name:
        name = name.lower()
    env = (name or os.getenv("APP_ENV", "dev")).lower()
    if env in ["prod", "production"]:
        return ProductionConfig
    if env in ["test", "testing"]:
        return TestingConfig
    return DevelopmentConfig


def check_config(config) -> None:
    """Refuse to boot a production app with development secrets."""
    if config.get("DEBUG") or config.get("TESTING"):
        return
    if config.get("JWT_SECRET") in (None, "", DEV_JWT_SECRET):
        raise RuntimeError("JWT_SECRET must be set to a strong value in production")
