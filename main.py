from fastapi import FastAPI, HTTPException, Depends, Header
from fastapi.responses import RedirectResponse
from contextlib import asynccontextmanager
from typing import List
import asyncio
import aiosqlite
import yaml
import logging
import logging.config

import config
from catalog import create_video, delete_video, list_kid_videos, list_videos, update_video
from database import ensure_db_dir, init_db, now_iso, open_db
from errors import ServiceError
from feedback import create_feedback
from global_sync import (
	cleanup_master_once,
	list_global_folders,
	list_global_videos,
	list_subscriptions,
	subscribe,
	sync_all_subscriptions,
	sync_subscription,
	unsubscribe,
)
from helpers import is_tiktok_short_url, resolve_tiktok_short_url
from identity import (
	cleanup_duplicate_kids,
	create_folder,
	create_kid,
	delete_folder,
	delete_kid,
	get_kid_by_id,
	list_folders,
	list_kids,
	update_folder,
	update_kid,
)
from progress import clear_parent_badge, kid_badge_count, mark_watched, parent_badge_count, save_position
from schemas import (
	BadgeCount,
	Feedback,
	FeedbackCreate,
	Folder,
	FolderCreate,
	GlobalFolder,
	GlobalSubscription,
	Kid,
	KidCreate,
	KidUpdate,
	MasterFolderRequest,
	PositionRequest,
	ResolveUrlRequest,
	SubscribeRequest,
	Video,
	VideoCreate,
	VideoUpdate,
	WatchedRequest,
)


def init_logger() -> logging.Logger:
	try:
		with open(config.LOGGER_CONFIG, "r") as f:
			logger_config = yaml.safe_load(f)
		logging.config.dictConfig(logger_config)
		logger = logging.getLogger("dev")
		logger.debug("Logger configured")
		return logger
	except Exception as e:
		logging.basicConfig(level=logging.INFO)
		logger = logging.getLogger(__name__)
		logger.error(f"Logger initialization failed: {e}")
		return logger


async def get_db():
	async with open_db(config.DB_PATH) as db:
		yield db


async def get_user_id(x_user_id: str = Header("")) -> str:
	# Identity is resolved by the auth layer in front of this service
	if not x_user_id.strip():
		raise HTTPException(status_code=401, detail="No user ID found in session")
	return x_user_id.strip()


def http_error(e: ServiceError) -> HTTPException:
	if e.status_code >= 500:
		app.state.logger.error(f"{type(e).__name__}: {e.message}")
	return HTTPException(status_code=e.status_code, detail=e.message)


@asynccontextmanager
async def lifespan(app: FastAPI):
	app.state.logger = init_logger()
	logger = app.state.logger

	ensure_db_dir(config.DB_PATH)
	async with open_db(config.DB_PATH) as db:
		await init_db(db)
		logger.info("Database ready")

		for table in ("kid", "folder", "video", "global_subscription"):
			cur = await db.execute(f"SELECT COUNT(*) FROM {table}")
			row_count = (await cur.fetchone())[0]
			logger.info(f"{table} table row count: {row_count}")

	if config.MASTER_USER_ID:
		logger.info(f"Global playlists published by {config.MASTER_USER_ID}")
	else:
		logger.warning("MASTER_USER_ID not set, global playlists disabled")

	yield
	logger.info("Application shutdown")


app = FastAPI(
	title="Kid Video Server",
	version="0.1",
	description="Curated video library for kids with progress tracking and global playlists",
	lifespan=lifespan,
)


@app.get("/")
async def docs():
	return RedirectResponse(url="/docs", status_code=307)


@app.get("/api/health")
async def health():
	return {"ok": True, "time": now_iso()}


@app.post("/api/resolve-tiktok-url")
async def resolve_tiktok_url(body: ResolveUrlRequest, user_id: str = Depends(get_user_id)):
	logger = app.state.logger
	if not is_tiktok_short_url(body.url):
		raise HTTPException(status_code=400, detail="Not a TikTok short URL")
	try:
		resolved = await asyncio.to_thread(resolve_tiktok_short_url, body.url)
		return {"resolvedUrl": resolved}
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error resolving TikTok URL")
		raise HTTPException(status_code=500, detail="Failed to resolve TikTok URL")


# ---------------------------
# Kids
# ---------------------------

@app.get("/api/kids", response_model=List[Kid])
async def get_kids(user_id: str = Depends(get_user_id), db: aiosqlite.Connection = Depends(get_db)):
	logger = app.state.logger
	try:
		return await list_kids(db, user_id)
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error fetching kids")
		raise HTTPException(status_code=500, detail="Failed to fetch kids")


@app.post("/api/kids", response_model=Kid, status_code=201)
async def add_kid(
	body: KidCreate,
	user_id: str = Depends(get_user_id),
	db: aiosqlite.Connection = Depends(get_db),
):
	logger = app.state.logger
	try:
		return await create_kid(db, user_id, body.name, body.avatar)
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error creating kid")
		raise HTTPException(status_code=500, detail="Failed to create kid")


@app.post("/api/kids/cleanup-duplicates")
async def cleanup_kids(user_id: str = Depends(get_user_id), db: aiosqlite.Connection = Depends(get_db)):
	logger = app.state.logger
	try:
		return {"removed": await cleanup_duplicate_kids(db, user_id)}
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error cleaning up duplicate kids")
		raise HTTPException(status_code=500, detail="Failed to clean up duplicates")


@app.patch("/api/kids/{kid_id}", response_model=Kid)
async def rename_kid(
	kid_id: str,
	body: KidUpdate,
	user_id: str = Depends(get_user_id),
	db: aiosqlite.Connection = Depends(get_db),
):
	logger = app.state.logger
	try:
		return await update_kid(db, kid_id, user_id, name=body.name, avatar=body.avatar)
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error updating kid")
		raise HTTPException(status_code=500, detail="Failed to update kid")


@app.delete("/api/kids/{kid_id}", status_code=204)
async def remove_kid(kid_id: str, user_id: str = Depends(get_user_id), db: aiosqlite.Connection = Depends(get_db)):
	logger = app.state.logger
	try:
		await delete_kid(db, kid_id, user_id)
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error deleting kid")
		raise HTTPException(status_code=500, detail="Failed to delete kid")


# ---------------------------
# Folders
# ---------------------------

@app.get("/api/folders", response_model=List[Folder])
async def get_folders(user_id: str = Depends(get_user_id), db: aiosqlite.Connection = Depends(get_db)):
	logger = app.state.logger
	try:
		return await list_folders(db, user_id)
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error fetching folders")
		raise HTTPException(status_code=500, detail="Failed to fetch folders")


@app.post("/api/folders", response_model=Folder, status_code=201)
async def add_folder(
	body: FolderCreate,
	user_id: str = Depends(get_user_id),
	db: aiosqlite.Connection = Depends(get_db),
):
	logger = app.state.logger
	try:
		return await create_folder(db, user_id, body.name)
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error creating folder")
		raise HTTPException(status_code=500, detail="Failed to create folder")


@app.patch("/api/folders/{folder_id}", response_model=Folder)
async def rename_folder(
	folder_id: str,
	body: FolderCreate,
	user_id: str = Depends(get_user_id),
	db: aiosqlite.Connection = Depends(get_db),
):
	logger = app.state.logger
	try:
		return await update_folder(db, folder_id, user_id, body.name)
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error updating folder")
		raise HTTPException(status_code=500, detail="Failed to update folder")


@app.delete("/api/folders/{folder_id}", status_code=204)
async def remove_folder(
	folder_id: str,
	user_id: str = Depends(get_user_id),
	db: aiosqlite.Connection = Depends(get_db),
):
	logger = app.state.logger
	try:
		await delete_folder(db, folder_id, user_id)
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error deleting folder")
		raise HTTPException(status_code=500, detail="Failed to delete folder")


# ---------------------------
# Videos
# ---------------------------

@app.get("/api/videos", response_model=List[Video])
async def get_videos(user_id: str = Depends(get_user_id), db: aiosqlite.Connection = Depends(get_db)):
	logger = app.state.logger
	master = config.MASTER_USER_ID
	try:
		if master and user_id == master:
			if await cleanup_master_once(db, user_id):
				logger.info(f"Removed subscriber-side global data from master account {user_id}")
		elif master:
			await sync_all_subscriptions(db, user_id, master)
		return await list_videos(db, user_id)
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error fetching videos")
		raise HTTPException(status_code=500, detail="Failed to fetch videos")


@app.post("/api/videos", response_model=Video, status_code=201)
async def add_video(
	body: VideoCreate,
	user_id: str = Depends(get_user_id),
	db: aiosqlite.Connection = Depends(get_db),
):
	logger = app.state.logger
	try:
		return await create_video(db, user_id, body.url, body.kidIds, body.folderId, body.priority)
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error creating video")
		raise HTTPException(status_code=500, detail="Failed to create video")


@app.patch("/api/videos/{video_id}", response_model=Video)
async def edit_video(
	video_id: str,
	body: VideoUpdate,
	user_id: str = Depends(get_user_id),
	db: aiosqlite.Connection = Depends(get_db),
):
	logger = app.state.logger
	try:
		return await update_video(db, video_id, user_id, body.model_dump(exclude_unset=True))
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error updating video")
		raise HTTPException(status_code=500, detail="Failed to update video")


@app.delete("/api/videos/{video_id}", status_code=204)
async def remove_video(
	video_id: str,
	user_id: str = Depends(get_user_id),
	db: aiosqlite.Connection = Depends(get_db),
):
	logger = app.state.logger
	try:
		await delete_video(db, video_id, user_id)
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error deleting video")
		raise HTTPException(status_code=500, detail="Failed to delete video")


@app.post("/api/videos/{video_id}/watched/{kid_id}", response_model=Video)
async def video_watched(
	video_id: str,
	kid_id: str,
	body: WatchedRequest,
	user_id: str = Depends(get_user_id),
	db: aiosqlite.Connection = Depends(get_db),
):
	logger = app.state.logger
	try:
		return await mark_watched(db, video_id, kid_id, user_id, body.voiceRecording.model_dump(exclude_none=True))
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error marking video watched")
		raise HTTPException(status_code=500, detail="Failed to mark video as watched")


@app.post("/api/videos/{video_id}/position/{kid_id}")
async def video_position(
	video_id: str,
	kid_id: str,
	body: PositionRequest,
	user_id: str = Depends(get_user_id),
	db: aiosqlite.Connection = Depends(get_db),
):
	logger = app.state.logger
	try:
		return await save_position(db, video_id, kid_id, user_id, body.position, body.duration)
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error saving position")
		raise HTTPException(status_code=500, detail="Failed to save position")


# ---------------------------
# Kid-facing routes, authorized by the kid id itself
# ---------------------------

@app.get("/api/public/kid/{kid_id}", response_model=Kid)
async def public_kid(kid_id: str, db: aiosqlite.Connection = Depends(get_db)):
	logger = app.state.logger
	try:
		return await get_kid_by_id(db, kid_id)
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error fetching kid")
		raise HTTPException(status_code=500, detail="Failed to fetch kid")


@app.get("/api/public/kid/{kid_id}/videos", response_model=List[Video])
async def public_kid_videos(kid_id: str, db: aiosqlite.Connection = Depends(get_db)):
	logger = app.state.logger
	try:
		return await list_kid_videos(db, kid_id)
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error fetching kid videos")
		raise HTTPException(status_code=500, detail="Failed to fetch videos")


@app.get("/api/public/kid/{kid_id}/folders", response_model=List[Folder])
async def public_kid_folders(kid_id: str, db: aiosqlite.Connection = Depends(get_db)):
	logger = app.state.logger
	try:
		kid = await get_kid_by_id(db, kid_id)
		return await list_folders(db, kid["userId"])
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error fetching kid folders")
		raise HTTPException(status_code=500, detail="Failed to fetch folders")


@app.post("/api/public/kid/{kid_id}/videos/{video_id}/watched", response_model=Video)
async def public_video_watched(
	kid_id: str,
	video_id: str,
	body: WatchedRequest,
	db: aiosqlite.Connection = Depends(get_db),
):
	logger = app.state.logger
	try:
		kid = await get_kid_by_id(db, kid_id)
		return await mark_watched(
			db, video_id, kid_id, kid["userId"], body.voiceRecording.model_dump(exclude_none=True)
		)
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error marking video watched")
		raise HTTPException(status_code=500, detail="Failed to mark video as watched")


@app.post("/api/public/kid/{kid_id}/videos/{video_id}/position")
async def public_video_position(
	kid_id: str,
	video_id: str,
	body: PositionRequest,
	db: aiosqlite.Connection = Depends(get_db),
):
	logger = app.state.logger
	try:
		kid = await get_kid_by_id(db, kid_id)
		return await save_position(db, video_id, kid_id, kid["userId"], body.position, body.duration)
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error saving position")
		raise HTTPException(status_code=500, detail="Failed to save position")


@app.get("/api/public/kid/{kid_id}/badge", response_model=BadgeCount)
async def public_kid_badge(kid_id: str, db: aiosqlite.Connection = Depends(get_db)):
	logger = app.state.logger
	try:
		kid = await get_kid_by_id(db, kid_id)
		return {"count": await kid_badge_count(db, kid_id, kid["userId"])}
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error getting kid badge")
		raise HTTPException(status_code=500, detail="Failed to get badge count")


# ---------------------------
# Badges
# ---------------------------

@app.get("/api/badge/parent", response_model=BadgeCount)
async def parent_badge(user_id: str = Depends(get_user_id), db: aiosqlite.Connection = Depends(get_db)):
	logger = app.state.logger
	try:
		return {"count": await parent_badge_count(db, user_id)}
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error getting parent badge")
		raise HTTPException(status_code=500, detail="Failed to get badge count")


@app.post("/api/badge/parent/clear")
async def clear_badge(user_id: str = Depends(get_user_id), db: aiosqlite.Connection = Depends(get_db)):
	logger = app.state.logger
	try:
		cleared = await clear_parent_badge(db, user_id)
		return {"success": True, "cleared": cleared}
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error clearing parent badge")
		raise HTTPException(status_code=500, detail="Failed to clear badge")


@app.get("/api/badge/kid/{kid_id}", response_model=BadgeCount)
async def kid_badge(kid_id: str, user_id: str = Depends(get_user_id), db: aiosqlite.Connection = Depends(get_db)):
	logger = app.state.logger
	try:
		return {"count": await kid_badge_count(db, kid_id, user_id)}
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error getting kid badge")
		raise HTTPException(status_code=500, detail="Failed to get badge count")


# ---------------------------
# Global playlists
# ---------------------------

@app.get("/api/global/is-master")
async def is_master(user_id: str = Depends(get_user_id)):
	return {"isMaster": bool(config.MASTER_USER_ID) and user_id == config.MASTER_USER_ID}


@app.get("/api/global/playlists", response_model=List[GlobalFolder])
async def global_playlists(user_id: str = Depends(get_user_id), db: aiosqlite.Connection = Depends(get_db)):
	logger = app.state.logger
	try:
		return await list_global_folders(db, config.MASTER_USER_ID)
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error getting global playlists")
		raise HTTPException(status_code=500, detail="Failed to get global playlists")


@app.get("/api/global/playlists/{folder_id}/videos", response_model=List[Video])
async def global_playlist_videos(
	folder_id: str,
	user_id: str = Depends(get_user_id),
	db: aiosqlite.Connection = Depends(get_db),
):
	logger = app.state.logger
	if not config.MASTER_USER_ID:
		return []
	try:
		return await list_global_videos(db, config.MASTER_USER_ID, folder_id)
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error getting global playlist videos")
		raise HTTPException(status_code=500, detail="Failed to get global playlist videos")


@app.get("/api/global/subscriptions", response_model=List[GlobalSubscription])
async def get_subscriptions(user_id: str = Depends(get_user_id), db: aiosqlite.Connection = Depends(get_db)):
	logger = app.state.logger
	try:
		return await list_subscriptions(db, user_id)
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error getting subscriptions")
		raise HTTPException(status_code=500, detail="Failed to get subscriptions")


@app.post("/api/global/subscribe", response_model=GlobalSubscription, status_code=201)
async def subscribe_playlist(
	body: SubscribeRequest,
	user_id: str = Depends(get_user_id),
	db: aiosqlite.Connection = Depends(get_db),
):
	logger = app.state.logger
	try:
		return await subscribe(db, user_id, body.masterFolderId, body.kidIds, config.MASTER_USER_ID)
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error subscribing")
		raise HTTPException(status_code=500, detail="Failed to subscribe")


@app.post("/api/global/unsubscribe")
async def unsubscribe_playlist(
	body: MasterFolderRequest,
	user_id: str = Depends(get_user_id),
	db: aiosqlite.Connection = Depends(get_db),
):
	logger = app.state.logger
	try:
		await unsubscribe(db, user_id, body.masterFolderId)
		return {"success": True}
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error unsubscribing")
		raise HTTPException(status_code=500, detail="Failed to unsubscribe")


@app.post("/api/global/sync")
async def sync_playlist(
	body: MasterFolderRequest,
	user_id: str = Depends(get_user_id),
	db: aiosqlite.Connection = Depends(get_db),
):
	logger = app.state.logger
	try:
		created = await sync_subscription(db, user_id, body.masterFolderId, config.MASTER_USER_ID)
		return {"success": True, "created": created}
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error syncing subscription")
		raise HTTPException(status_code=500, detail="Failed to sync")


# ---------------------------
# Feedback
# ---------------------------

@app.post("/api/feedback", response_model=Feedback, status_code=201)
async def add_feedback(
	body: FeedbackCreate,
	user_id: str = Depends(get_user_id),
	db: aiosqlite.Connection = Depends(get_db),
):
	logger = app.state.logger
	try:
		return await create_feedback(db, user_id, body.type, body.content)
	except ServiceError as e:
		raise http_error(e)
	except Exception:
		logger.exception("Error creating feedback")
		raise HTTPException(status_code=500, detail="Failed to submit feedback")


if __name__ == "__main__":
	import os
	import uvicorn
	port = int(os.getenv("PORT", 8000))
	uvicorn.run(app, host="0.0.0.0", port=port)
