"""
Environment-aware configuration.

Secrets, issuer and cookie names have no defaults: create_app() refuses to
start when any REQUIRED_SETTINGS entry is empty.
"""
import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()  # Read .env if present


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


REQUIRED_SETTINGS = (
    ("JWT_ISSUER", "JWT issuer"),
    ("JWT_ACCESS_TOKEN_SECRET", "JWT access token secret"),
    ("JWT_REFRESH_TOKEN_SECRET", "JWT refresh token secret"),
    ("JWT_ACCESS_TOKEN_COOKIE_NAME", "JWT access token cookie name"),
    ("JWT_REFRESH_TOKEN_COOKIE_NAME", "JWT refresh token cookie name"),
    ("JWT_COOKIE_DOMAIN", "JWT cookie domain"),
    ("CSRF_SECRET", "CSRF secret"),
    ("CSRF_COOKIE_NAME", "CSRF cookie name"),
    ("CSRF_COOKIE_DOMAIN", "CSRF cookie domain"),
)


class BaseConfig:
    DEBUG = False
    TESTING = False
    # CORS: in dev we usually allow '*', in prod supply a comma-separated list in env
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")
    APP_ENV = os.getenv("APP_ENV", "dev")
    APP_URL = os.getenv("APP_URL", "http://localhost:3000")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///vidshare.db")
    SQL_ECHO = _flag("SQL_ECHO")

    # JWT
    JWT_ISSUER = os.getenv("JWT_ISSUER")
    JWT_ACCESS_TOKEN_SECRET = os.getenv("JWT_ACCESS_TOKEN_SECRET")
    JWT_REFRESH_TOKEN_SECRET = os.getenv("JWT_REFRESH_TOKEN_SECRET")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(seconds=int(os.getenv("JWT_ACCESS_TOKEN_EXPIRES_SECONDS", "900")))
    JWT_REFRESH_TOKEN_EXPIRES = timedelta(seconds=int(os.getenv("JWT_REFRESH_TOKEN_EXPIRES_SECONDS", "86400")))
    # "cookies", "headers" or "cookies,headers"
    JWT_TOKEN_LOCATION = os.getenv("JWT_TOKEN_LOCATION", "cookies")
    JWT_ACCESS_TOKEN_COOKIE_NAME = os.getenv("JWT_ACCESS_TOKEN_COOKIE_NAME")
    JWT_REFRESH_TOKEN_COOKIE_NAME = os.getenv("JWT_REFRESH_TOKEN_COOKIE_NAME")
    JWT_COOKIE_DOMAIN = os.getenv("JWT_COOKIE_DOMAIN")
    JWT_COOKIE_SECURE = _flag("JWT_COOKIE_SECURE")

    # CSRF
    CSRF_SECRET = os.getenv("CSRF_SECRET")
    CSRF_COOKIE_NAME = os.getenv("CSRF_COOKIE_NAME")
    CSRF_COOKIE_DOMAIN = os.getenv("CSRF_COOKIE_DOMAIN")
    CSRF_COOKIE_SECURE = _flag("CSRF_COOKIE_SECURE")
    CSRF_HEADER_NAME = os.getenv("CSRF_HEADER_NAME", "X-CSRF-Token")

    # Password reset
    RESET_PASSWORD_TOKEN_EXPIRES = timedelta(seconds=int(os.getenv("RESET_PASSWORD_TOKEN_EXPIRES_SECONDS", "3600")))
    RESET_PASSWORD_COOLDOWN = timedelta(seconds=int(os.getenv("RESET_PASSWORD_COOLDOWN_SECONDS", "60")))

    # Mail
    MAIL_HOST = os.getenv("MAIL_HOST", "localhost")
    MAIL_PORT = int(os.getenv("MAIL_PORT", "587"))
    MAIL_USE_TLS = _flag("MAIL_USE_TLS")
    MAIL_USE_SSL = _flag("MAIL_USE_SSL")
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_FROM = os.getenv("MAIL_FROM")

    # Argon2id cost parameters (argon2-cffi defaults)
    ARGON2_TIME_COST = int(os.getenv("ARGON2_TIME_COST", "3"))
    ARGON2_MEMORY_COST = int(os.getenv("ARGON2_MEMORY_COST", "65536"))
    ARGON2_PARALLELISM = int(os.getenv("ARGON2_PARALLELISM", "4"))


class DevelopmentConfig(BaseConfig):
    DEBUG = True


class ProductionConfig(BaseConfig):
    DEBUG = False
    JWT_COOKIE_SECURE = _flag("JWT_COOKIE_SECURE", "true")
    CSRF_COOKIE_SECURE = _flag("CSRF_COOKIE_SECURE", "true")


class TestingConfig(BaseConfig):
    TESTING = True
    DATABASE_URL = "sqlite://"
    APP_URL = "http://app.test"
    JWT_ISSUER = "vidshare-test"
    JWT_ACCESS_TOKEN_SECRET = "test-access-secret"
    JWT_REFRESH_TOKEN_SECRET = "test-refresh-secret"
    JWT_TOKEN_LOCATION = "cookies,headers"
    JWT_ACCESS_TOKEN_COOKIE_NAME = "access_token"
    JWT_REFRESH_TOKEN_COOKIE_NAME = "refresh_token"
    JWT_COOKIE_DOMAIN = "localhost"
    JWT_COOKIE_SECURE = False
    CSRF_SECRET = "test-csrf-secret"
    CSRF_COOKIE_NAME = "csrf_secret"
    CSRF_COOKIE_DOMAIN = "localhost"
    CSRF_COOKIE_SECURE = False
    # Still Argon2id, just cheap
    ARGON2_TIME_COST = 1
    ARGON2_MEMORY_COST = 1024
    ARGON2_PARALLELISM = 1


def get_config(name: str | None):
    """
    Select config class.
    - If name is provided, choose by name.
    - Else choose based on APP_ENV (dev/prod/test).
    """
    if name:
        name = name.lower()
    env = (name or os.getenv("APP_ENV", "dev")).lower()
    if env in ["prod", "production"]:
        return ProductionConfig
    if env in ["test", "testing"]:
        return TestingConfig
    return DevelopmentConfig


def validate_config(config) -> None:
    """Abort startup when a required setting is missing."""
    for key, label in REQUIRED_SETTINGS:
        if not config.get(key):
            raise RuntimeError(f"Undefined {label}")
    if config["JWT_ACCESS_TOKEN_SECRET"] == config["JWT_REFRESH_TOKEN_SECRET"]:
        raise RuntimeError("JWT access and refresh token secrets must differ")
