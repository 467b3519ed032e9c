import os
from pathlib import Path

cwd = Path(__file__).parent

DB_PATH = Path(os.getenv("KIDVID_DB_PATH", cwd / ".database" / "database.db"))

# Account whose folders are published as global playlists. Empty disables the feature.
MASTER_USER_ID = os.getenv("MASTER_USER_ID", "")

LOGGER_CONFIG = Path(os.getenv("LOGGER_CONFIG", cwd / "logger_config.yaml"))

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")
SYNC_INTERVAL_SECONDS = int(os.getenv("SYNC_INTERVAL_SECONDS", "3600"))

RESOLVER_TIMEOUT_SECONDS = int(os.getenv("RESOLVER_TIMEOUT_SECONDS", "10"))
