from celery import Celery

import config

celery = Celery(
    "kidvid_worker",
    broker=config.CELERY_BROKER_URL,
    backend=config.CELERY_RESULT_BACKEND,
    include=["tasks"],
)

celery.conf.task_routes = {
    "tasks.sync_subscriber_library": {"queue": "sync"},
    "tasks.sync_all_subscribers": {"queue": "sync"},
}

celery.conf.beat_schedule = {
    "resync-global-playlists": {
        "task": "tasks.sync_all_subscribers",
        "schedule": float(config.SYNC_INTERVAL_SECONDS),
    },
}
