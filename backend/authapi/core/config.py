"""Application settings with environment-based simple classes."""

from __future__ import annotations

import os
from collections.abc import Mapping
from datetime import timedelta
from typing import Final

from dotenv import load_dotenv

ENV_VAR: Final[str] = "APP_ENV"

# No-op when there is no .env file
load_dotenv()


TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "yes", "y", "on"})


def env_bool(name: str, default: bool = False) -> bool:
    """Read a boolean flag; unset means ``default``, anything outside :data:`TRUTHY` is ``False``."""
    raw = os.getenv(name)
    return default if raw is None else raw.strip().lower() in TRUTHY


def env_minutes(name: str, default: int) -> timedelta:
    """Read a duration expressed in whole minutes.

    :param name: Environment variable to inspect.
    :param default: Minutes used when the variable is unset or blank.
    :returns: Duration as :class:`datetime.timedelta`.
    :raises ValueError: If the value is not a positive integer.
    """
    raw = (os.getenv(name) or "").strip()
    minutes = int(raw) if raw else default
    if minutes <= 0:
        raise ValueError(f"{name} must be a positive number of minutes, got {minutes}")
    return timedelta(minutes=minutes)


class BaseConfig:
    """Base configuration shared across environments.

    Attributes
    ----------
    API_BASE_PREFIX: str
        Root path for registering API blueprints.
    SECRET_KEY: str
        Flask secret used for its own session signing (unused by the auth
        flow, kept for extensions that expect it).
    JWT_SECRET_KEY: str | None
        Signing key for access credentials. There is deliberately no default:
        :func:`authapi.factory.create_app` refuses to start without it.
    JWT_ACCESS_TOKEN_EXPIRES: timedelta
        Access credential lifetime (``ACCESS_TOKEN_EXPIRES_MINUTES``).
    REFRESH_TOKEN_EXPIRES: timedelta
        Refresh token lifetime (``REFRESH_TOKEN_EXPIRES_MINUTES``).
    ACCESS_COOKIE_NAME / REFRESH_COOKIE_NAME: str
        Cookie names carrying the two bearer secrets.
    AUTH_COOKIE_SECURE: bool
        Emit cookies with the ``Secure`` attribute.
    AUTH_COOKIE_SAMESITE: str
        ``SameSite`` attribute for both cookies.
    AUTH_COOKIE_PATH: str
        ``Path`` attribute for both cookies.
    JWT_TOKEN_LOCATION: list[str]
        Where :func:`~authapi.api.deps.require_auth` reads the access
        credential, in order.
    TOKEN_STORE_BACKEND: str
        ``"sql"`` (default) or ``"redis"``.
    REDIS_URL: str | None
        Connection URL, required when ``TOKEN_STORE_BACKEND == "redis"``.
    SQLALCHEMY_DATABASE_URI: str
        Database connection string consumed by SQLAlchemy.
    LOG_LEVEL: str
        Root logging verbosity (``INFO`` by default).
    CORS_ORIGINS: str
        Comma-separated list of allowed origins for CORS.

    Notes
    -----
    Values are primarily sourced from environment variables, enabling
    configuration without code changes.
    """

    API_BASE_PREFIX = "/api"
    APP_VERSION = os.getenv("APP_VERSION", "dev")

    # Secrets / security
    SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME")
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
    JWT_ALGORITHM = "HS256"

    # Token lifetimes (refresh must outlive access by a wide margin)
    JWT_ACCESS_TOKEN_EXPIRES = env_minutes("ACCESS_TOKEN_EXPIRES_MINUTES", 15)
    REFRESH_TOKEN_EXPIRES = env_minutes("REFRESH_TOKEN_EXPIRES_MINUTES", 7 * 24 * 60)

    # Cookie transport
    ACCESS_COOKIE_NAME = os.getenv("ACCESS_COOKIE_NAME", "access_token")
    REFRESH_COOKIE_NAME = os.getenv("REFRESH_COOKIE_NAME", "refresh_token")
    AUTH_COOKIE_SECURE = env_bool("AUTH_COOKIE_SECURE", True)
    AUTH_COOKIE_SAMESITE = os.getenv("AUTH_COOKIE_SAMESITE", "Lax")
    AUTH_COOKIE_PATH = os.getenv("AUTH_COOKIE_PATH", "/")

    # Access credential lookup: Authorization header, then the access cookie.
    # No double-submit CSRF token; cookies rely on SameSite.
    JWT_TOKEN_LOCATION = ["headers", "cookies"]
    JWT_HEADER_TYPE = "Bearer"
    JWT_ACCESS_COOKIE_NAME = ACCESS_COOKIE_NAME
    JWT_COOKIE_CSRF_PROTECT = False

    # Refresh token persistence
    TOKEN_STORE_BACKEND = os.getenv("TOKEN_STORE_BACKEND", "sql").strip().lower()
    REDIS_URL = os.getenv("REDIS_URL")

    # DB
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///./dev.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO", False)

    # Flask & JSON
    JSON_SORT_KEYS = False
    PROPAGATE_EXCEPTIONS = False

    # Logging, proxy & CORS
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000")
    USE_PROXYFIX = env_bool("USE_PROXYFIX", True)
    PROXYFIX_HOPS = int(os.getenv("PROXYFIX_HOPS", "1"))

    DEBUG = False
    TESTING = False


class DevelopmentConfig(BaseConfig):
    """Configuration tailored for local development.

    Plain HTTP on localhost cannot carry ``Secure`` cookies, so the flag
    defaults to off here; a throwaway signing key is provided when none is
    exported.
    """

    DEBUG = env_bool("FLASK_DEBUG", True)
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-only-jwt-secret-change-me")
    AUTH_COOKIE_SECURE = env_bool("AUTH_COOKIE_SECURE", False)
    CORS_MAX_AGE = 600  # 10 minutes


class TestingConfig(BaseConfig):
    """Configuration for automated test runs.

    Notes
    -----
    - Forces ``TESTING`` mode and disables debug logs.
    - Uses an in-memory SQLite database unless ``TEST_DATABASE_URL`` is set.
    - Propagates exceptions so pytest can surface tracebacks directly.
    """

    TESTING = True
    DEBUG = False
    JWT_SECRET_KEY = "testing-jwt-secret-with-enough-length-for-hs256"
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    AUTH_COOKIE_SECURE = False
    TOKEN_STORE_BACKEND = "sql"
    USE_PROXYFIX = False
    PROPAGATE_EXCEPTIONS = True


class ProductionConfig(BaseConfig):
    """Configuration defaults for production deployments.

    Notes
    -----
    ``JWT_SECRET_KEY`` must come from the environment; cookies are always
    marked ``Secure``.
    """

    DEBUG = False
    SQLALCHEMY_ECHO = False
    AUTH_COOKIE_SECURE = True
    PROPAGATE_EXCEPTIONS = False


CONFIG_MAP: Mapping[str, type[BaseConfig]] = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}


def get_config() -> type[BaseConfig]:
    """Pick the config class named by ``APP_ENV``; unknown or unset means development."""
    name = os.getenv(ENV_VAR, "development").strip().lower()
    return CONFIG_MAP.get(name, DevelopmentConfig)
