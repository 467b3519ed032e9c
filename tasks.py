import asyncio
import logging

import config
from celery_app import celery
from database import open_db
from global_sync import sync_all_subscriptions

logger = logging.getLogger(__name__)


async def _sync_subscriber(user_id: str) -> int:
    async with open_db(config.DB_PATH) as db:
        return await sync_all_subscriptions(db, user_id, config.MASTER_USER_ID)


async def _list_subscribers() -> list[str]:
    async with open_db(config.DB_PATH) as db:
        cur = await db.execute(
            "SELECT DISTINCT user_id FROM global_subscription WHERE user_id != ?",
            (config.MASTER_USER_ID,),
        )
        return [row["user_id"] for row in await cur.fetchall()]


@celery.task(bind=True, max_retries=3)
def sync_subscriber_library(self, user_id: str):
    """Pull new master videos into every global playlist the user subscribes to"""
    try:
        created = asyncio.run(_sync_subscriber(user_id))
        return {"status": "success", "user_id": user_id, "created": created}
    except Exception as e:
        logger.warning(f"Sync for {user_id} failed, retrying: {e}")
        raise self.retry(exc=e, countdown=10)


@celery.task
def sync_all_subscribers():
    if not config.MASTER_USER_ID:
        logger.info("MASTER_USER_ID not set, skipping global playlist resync")
        return {"status": "skipped", "queued": 0}

    subscribers = asyncio.run(_list_subscribers())
    for user_id in subscribers:
        sync_subscriber_library.delay(user_id)
    return {"status": "success", "queued": len(subscribers)}
