"""
Environment-aware configuration.
Secrets have no literal defaults: SECRET_KEY, JWT_ACCESS_SECRET and
JWT_REFRESH_SECRET must come from the environment (or .env), otherwise the
app refuses to start.
"""
import os
from dotenv import load_dotenv
from datetime import timedelta

from utils.exceptions import ConfigError

load_dotenv()  # Read .env if present

REQUIRED_SECRETS = ("SECRET_KEY", "JWT_ACCESS_SECRET", "JWT_REFRESH_SECRET")


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class BaseConfig:
    # Signs session cookies; also Flask's own secret
    SECRET_KEY = os.getenv("SECRET_KEY")
    DEBUG = False
    TESTING = False
    # CORS: comma-separated list of origins allowed to send credentials
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", os.getenv("FRONTEND_URL", "http://localhost:5173")).split(",")
    APP_ENV = os.getenv("APP_ENV", "dev")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///blog.db")
    SQL_ECHO = _bool_env("SQL_ECHO", False)

    # jwt configurations; one secret per token type
    JWT_ACCESS_SECRET = os.getenv("JWT_ACCESS_SECRET")
    JWT_REFRESH_SECRET = os.getenv("JWT_REFRESH_SECRET")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_ISSUER = os.getenv("JWT_ISSUER", "blog-api")
    ACCESS_TOKEN_EXPIRES = timedelta(seconds=int(os.getenv("ACCESS_TOKEN_EXPIRES_SECONDS", "900")))
    REFRESH_TOKEN_EXPIRES = timedelta(seconds=int(os.getenv("REFRESH_TOKEN_EXPIRES_SECONDS", "604800")))

    COOKIE_SECURE = _bool_env("COOKIE_SECURE", True)
    COOKIE_SAMESITE = os.getenv("COOKIE_SAMESITE", "Lax")


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    # plain http on localhost
    COOKIE_SECURE = _bool_env("COOKIE_SECURE", False)


class TestingConfig(BaseConfig):
    TESTING = True
    DATABASE_URL = "sqlite://"
    COOKIE_SECURE = False
    LOG_LEVEL = "WARNING"


class ProductionConfig(BaseConfig):
    DEBUG = False
    COOKIE_SECURE = True


def get_config(name: str | None):
    """
    Select config class.
    - If name is provided, choose by name.
    - Else choose based on APP_ENV (dev/test/prod).
    """
    env = (name or os.getenv("APP_ENV", "dev")).lower()
    if env in ["prod", "production"]:
        return ProductionConfig
    if env in ["test", "testing"]:
        return TestingConfig
    return DevelopmentConfig


def validate_config(config) -> None:
    """Fail fast on missing or unsafe secrets."""
    missing = [key for key in REQUIRED_SECRETS if not config.get(key)]
    if missing:
        raise ConfigError(f"Missing required configuration: {', '.join(missing)}")
    if config["JWT_ACCESS_SECRET"] == config["JWT_REFRESH_SECRET"]:
        raise ConfigError("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must differ")
    if config["ACCESS_TOKEN_EXPIRES"] >= config["REFRESH_TOKEN_EXPIRES"]:
        raise ConfigError("ACCESS_TOKEN_EXPIRES must be shorter than REFRESH_TOKEN_EXPIRES")
