import os
import secrets
import warnings

import redis
from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, ".env"))


def _int_list(value, default):
    """Parse a comma separated list of integers (e.g. "1,2,3,5")"""
    if not value:
        return default
    return [int(part.strip()) for part in value.split(",") if part.strip()]


class Config:
    _secret_key = os.environ.get("SECRET_KEY")

    if not _secret_key:
        _secret_key = secrets.token_urlsafe(32)
        warnings.warn(
            "SECRET_KEY not set! Using auto-generated key. "
            "Run 'python3 generate_secrets.py' to generate secure keys.",
            UserWarning,
        )

    SECRET_KEY = _secret_key

    # Shared token for the administrative API (result entry, bracket resolution)
    ADMIN_API_TOKEN = os.environ.get("ADMIN_API_TOKEN")

    # Database configuration - built from environment at initialization
    def __init__(self):
        """Initialize configuration with dynamic database URI"""
        self.SQLALCHEMY_DATABASE_URI = self._build_database_uri()

    def _build_database_uri(self):
        """Build database URI from environment variables"""
        database_url = os.environ.get("DATABASE_URL")

        if database_url:
            return database_url

        db_type = os.environ.get("DB_TYPE", "sqlite")

        if db_type.lower() == "postgresql":
            db_host = os.environ.get("DB_HOST") or "localhost"
            db_port = os.environ.get("DB_PORT") or "5432"
            db_name = os.environ.get("DB_NAME") or "liga_typerow_db"
            db_user = os.environ.get("DB_USER") or "typerow"
            db_password = os.environ.get("DB_PASSWORD") or "typerow_password"

            return f"postgresql+psycopg://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"
        else:
            # Default to SQLite for development
            return "sqlite:///" + os.path.join(basedir, "liga_typerow.db")

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Match scoring defaults (per-match values are stored on the match)
    DEFAULT_POINTS_FOR_EXACT = int(os.environ.get("DEFAULT_POINTS_FOR_EXACT") or 3)
    DEFAULT_POINTS_FOR_WINNER = int(os.environ.get("DEFAULT_POINTS_FOR_WINNER") or 1)

    # Knockout bracket weights: quarter, semi, final, champion
    KO_ROUND_POINTS = _int_list(os.environ.get("KO_ROUND_POINTS"), [1, 2, 3, 5])

    # Top scorer scoring: exact pick plus optional "within top N" credit
    SCORER_EXACT_POINTS = int(os.environ.get("SCORER_EXACT_POINTS") or 5)
    SCORER_TOP_N = int(os.environ.get("SCORER_TOP_N") or 0)  # 0 disables top N credit
    SCORER_TOP_N_POINTS = int(os.environ.get("SCORER_TOP_N_POINTS") or 0)

    # Betting locks (ISO 8601, interpreted in TIMEZONE when naive; unset means open)
    KO_LOCK_DEADLINE = os.environ.get("KO_LOCK_DEADLINE")
    SCORER_LOCK_DEADLINE = os.environ.get(
        "SCORER_LOCK_DEADLINE", os.environ.get("KO_LOCK_DEADLINE")
    )
    TIMEZONE = os.environ.get("TIMEZONE", "Europe/Warsaw")

    # Caching configuration
    CACHE_TYPE = os.environ.get("CACHE_TYPE", "RedisCache")
    CACHE_DEFAULT_TIMEOUT = int(
        os.environ.get("CACHE_DEFAULT_TIMEOUT", 300)
    )  # 5 minutes
    CACHE_REDIS_URL = os.environ.get("CACHE_REDIS_URL", "redis://localhost:6379/0")
    CACHE_KEY_PREFIX = "liga_typerow:"

    # Scheduler configuration
    SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "True").lower() == "true"
    SETTLEMENT_SWEEP_SECONDS = int(os.environ.get("SETTLEMENT_SWEEP_SECONDS") or 120)

    # Logging configuration
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_TO_CONSOLE = os.environ.get("LOG_TO_CONSOLE", "True").lower() == "true"
    LOG_TO_FILE = os.environ.get("LOG_TO_FILE", "True").lower() == "true"
    LOG_DIR = os.environ.get("LOG_DIR", "logs")

    # Environment detection
    FLASK_ENV = os.environ.get("FLASK_ENV", "development")
    DEBUG = FLASK_ENV == "development"
    TESTING = False


class DevelopmentConfig(Config):
    """Development configuration with helpful defaults"""

    DEBUG = True
    SQLALCHEMY_ECHO = os.environ.get("SQLALCHEMY_ECHO", "False").lower() == "true"

    def __init__(self):
        super().__init__()
        # Fallback to SimpleCache if Redis isn't available in development
        try:
            redis_client = redis.Redis.from_url(self.CACHE_REDIS_URL)
            redis_client.ping()
        except redis.exceptions.ConnectionError:
            self.CACHE_TYPE = "SimpleCache"
            warnings.warn(
                "Redis not available, falling back to SimpleCache for development.",
                UserWarning,
            )


class ProductionConfig(Config):
    """Production configuration with security focus"""

    DEBUG = False

    def __init__(self):
        super().__init__()

        if not os.environ.get("SECRET_KEY"):
            warnings.warn(
                "PRODUCTION WARNING: SECRET_KEY not explicitly set!",
                UserWarning,
            )
        if not os.environ.get("ADMIN_API_TOKEN"):
            warnings.warn(
                "PRODUCTION WARNING: ADMIN_API_TOKEN not set, admin API is disabled!",
                UserWarning,
            )


class TestingConfig(Config):
    """Testing configuration"""

    TESTING = True
    DEBUG = False
    ADMIN_API_TOKEN = "test-admin-token"
    KO_LOCK_DEADLINE = "2024-06-29T18:00:00"
    SCORER_LOCK_DEADLINE = "2024-06-29T18:00:00"
    CACHE_TYPE = "NullCache"
    SCHEDULER_ENABLED = False
    LOG_TO_CONSOLE = False
    LOG_TO_FILE = False

    def _build_database_uri(self):
        return "sqlite:///:memory:"


# Configuration mapping
config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig,
}
