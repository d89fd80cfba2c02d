import os
import warnings

import redis
from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(__file__))
load_dotenv(os.path.join(basedir, ".env"))


class Config:
    # Shared secret for the cron/admin trigger endpoints
    CRON_SECRET = os.environ.get("CRON_SECRET")

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
            db_name = os.environ.get("DB_NAME") or "pickpool_db"
            db_user = os.environ.get("DB_USER") or "pickpool"
            db_password = os.environ.get("DB_PASSWORD") or "pickpool"

            return f"postgresql+psycopg://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"
        else:
            # Default to SQLite for development
            return "sqlite:///" + os.path.join(basedir, "pickpool.db")

    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Results provider configuration
    NFL_API_BASE_URL = (
        os.environ.get("NFL_API_BASE_URL")
        or "https://site.api.espn.com/apis/site/v2/sports/football/nfl"
    )
    # Scoreboard dates are requested as calendar days in this timezone
    SCOREBOARD_TIMEZONE = os.environ.get("SCOREBOARD_TIMEZONE", "America/New_York")

    # Retry/backoff at the gateway boundary: 1s, 2s, 4s capped at 5s
    GATEWAY_MAX_RETRIES = int(os.environ.get("GATEWAY_MAX_RETRIES") or 3)
    GATEWAY_BASE_DELAY = float(os.environ.get("GATEWAY_BASE_DELAY") or 1.0)
    GATEWAY_MAX_DELAY = float(os.environ.get("GATEWAY_MAX_DELAY") or 5.0)
    GATEWAY_MIN_REQUEST_INTERVAL = float(
        os.environ.get("GATEWAY_MIN_REQUEST_INTERVAL") or 0.5
    )
    GATEWAY_TIMEOUT = float(os.environ.get("GATEWAY_TIMEOUT") or 30)

    # Scoring engine settings
    RECAP_INTER_WEEK_DELAY = float(os.environ.get("RECAP_INTER_WEEK_DELAY") or 2.0)
    DRAW_POLICY = os.environ.get("DRAW_POLICY", "no_winner")  # or "away_wins"
    FAVORITE_PARTICIPANT_ID = os.environ.get(
        "FAVORITE_PARTICIPANT_ID", "favorite-bot"
    )
    FAVORITE_PARTICIPANT_NAME = os.environ.get("FAVORITE_PARTICIPANT_NAME", "Phil")

    # Caching configuration
    CACHE_TYPE = os.environ.get("CACHE_TYPE", "RedisCache")
    CACHE_DEFAULT_TIMEOUT = int(
        os.environ.get("CACHE_DEFAULT_TIMEOUT", 300)
    )  # 5 minutes
    CACHE_REDIS_URL = os.environ.get("CACHE_REDIS_URL", "redis://localhost:6379/0")
    CACHE_KEY_PREFIX = "pickpool:"

    # Rate limiting for the trigger endpoints
    RATELIMIT_STORAGE_URI = os.environ.get("RATELIMIT_STORAGE_URI", "memory://")
    TRIGGER_RATE_LIMIT = os.environ.get("TRIGGER_RATE_LIMIT", "30 per hour")

    # Scheduler configuration
    SCHEDULER_ENABLED = os.environ.get("SCHEDULER_ENABLED", "True").lower() == "true"

    # Logging configuration
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_TO_CONSOLE = os.environ.get("LOG_TO_CONSOLE", "True").lower() == "true"
    LOG_TO_FILE = os.environ.get("LOG_TO_FILE", "True").lower() == "true"
    LOG_DIR = os.environ.get("LOG_DIR", "logs")
    SLOW_OPERATION_THRESHOLD = float(os.environ.get("SLOW_OPERATION_THRESHOLD", "30.0"))

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

        if not os.environ.get("CRON_SECRET"):
            warnings.warn(
                "PRODUCTION WARNING: CRON_SECRET not set! "
                "Recap trigger endpoints are unauthenticated.",
                UserWarning,
            )


class TestingConfig(Config):
    """Testing configuration"""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    CACHE_TYPE = "SimpleCache"
    SCHEDULER_ENABLED = False
    LOG_TO_FILE = False
    LOG_TO_CONSOLE = False
    CRON_SECRET = "test-secret"
    RECAP_INTER_WEEK_DELAY = 0.0
    GATEWAY_BASE_DELAY = 0.0
    GATEWAY_MIN_REQUEST_INTERVAL = 0.0
    RATELIMIT_ENABLED = False

    def _build_database_uri(self):
        return "sqlite:///:memory:"


# Configuration mapping
config = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
    "default": DevelopmentConfig,
}
