import os


def _env_flag(name, default=""):
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


class Config:
    """Base configuration. Shared across all environments."""

    # --- Required ---
    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Handle DATABASE_URL: some PaaS providers (Railway, Heroku) use
    # "postgres://" which SQLAlchemy 1.4+ doesn't accept.
    _db_url = os.environ.get("DATABASE_URL", "")
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url or None

    # --- Browser clients ---
    CORS_ORIGIN = os.environ.get("CORS_ORIGIN", "http://localhost:5173")

    # --- Export workflow (external webhook that builds the CSV + email) ---
    EXPORT_WEBHOOK_URL = os.environ.get("EXPORT_WEBHOOK_URL")
    EXPORT_TIMEOUT = int(os.environ.get("EXPORT_TIMEOUT", 30))

    # --- Real-time channel ---
    # Per-subscriber buffer. A subscriber that falls this far behind
    # misses events and has to re-fetch.
    EVENT_QUEUE_SIZE = int(os.environ.get("EVENT_QUEUE_SIZE", 256))
    EVENT_STREAM_HEARTBEAT = float(os.environ.get("EVENT_STREAM_HEARTBEAT", 15))

    # --- Ordering engine ---
    # Off: a cross-column move only re-indexes the destination column and
    # the source column keeps its gap until its next move.
    REINDEX_SOURCE_COLUMN = _env_flag("REINDEX_SOURCE_COLUMN")
    # Hold a process-local lock per (board, column) for the duration of a move.
    SERIALIZE_COLUMN_MOVES = _env_flag("SERIALIZE_COLUMN_MOVES", "true")

    # --- SQLAlchemy ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = [
            "SECRET_KEY",
            "DATABASE_URL",
        ]
        missing = [v for v in required if not os.environ.get(v)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = Config.SQLALCHEMY_DATABASE_URI or "sqlite:///kanban.db"


class TestConfig(Config):
    """Testing — in-memory SQLite, no rate limits, no outbound webhook."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key-not-for-production"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    EXPORT_WEBHOOK_URL = "http://export.test/webhook"
    CORS_ORIGIN = "http://localhost:5173"
    EVENT_QUEUE_SIZE = 64
    EVENT_STREAM_HEARTBEAT = 0.05
    REINDEX_SOURCE_COLUMN = False  # override per-test as needed
    SERIALIZE_COLUMN_MOVES = True
    RATELIMIT_ENABLED = False  # disable rate limiting in tests
    SERVER_NAME = "localhost"

    @staticmethod
    def validate():
        """Skip validation in test mode — everything is hardcoded."""
        pass


class ProdConfig(Config):
    """Production."""

    DEBUG = False


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
