# Video records: creation with per-owner dedup, assignment fan-out, updates, deletion
import json
import logging

import aiosqlite

from database import fetch_kids, fetch_videos, new_id, transaction, video_from_row
from errors import ConflictError, NotFoundError, ValidationError
from helpers import get_video_info
from identity import get_kid_by_id, get_user_folder
from schemas import VIDEO_PRIORITY_DEFAULT, VIDEO_PRIORITY_MAX, VIDEO_PRIORITY_MIN

logger = logging.getLogger(__name__)


def clamp_priority(value) -> int:
	if value is None:
		return VIDEO_PRIORITY_DEFAULT
	try:
		value = int(value)
	except (TypeError, ValueError):
		raise ValidationError("Priority must be a number")
	return max(VIDEO_PRIORITY_MIN, min(VIDEO_PRIORITY_MAX, value))


def resolve_target_kids(kids: list[dict], kid_ids: list[str] | None) -> list[str]:
	"""Explicit ids are intersected with the owner's kids; empty or None means every kid."""
	if kid_ids:
		wanted = set(kid_ids)
		return [k["id"] for k in kids if k["id"] in wanted]
	return [k["id"] for k in kids]


async def list_videos(db: aiosqlite.Connection, user_id: str) -> list[dict]:
	return await fetch_videos(db, user_id)


async def get_video(db: aiosqlite.Connection, video_id: str, user_id: str) -> dict:
	cur = await db.execute("SELECT * FROM video WHERE id = ? AND user_id = ?", (video_id, user_id))
	row = await cur.fetchone()
	if not row:
		raise NotFoundError("Video not found")
	return video_from_row(row)


async def list_kid_videos(db: aiosqlite.Connection, kid_id: str) -> list[dict]:
	kid = await get_kid_by_id(db, kid_id)
	return [v for v in await fetch_videos(db, kid["userId"]) if v["assigned"].get(kid_id)]


async def insert_video(
	db: aiosqlite.Connection,
	user_id: str,
	url: str,
	platform: str,
	platform_video_id: str,
	folder_id: str | None,
	priority: int,
	kid_ids: list[str],
	id_suffix: str = "",
) -> dict:
	video = {
		"id": new_id("vid", id_suffix),
		"url": url,
		"platformVideoId": platform_video_id,
		"platform": platform,
		"folderId": folder_id,
		"priority": priority,
		"assigned": {kid_id: True for kid_id in kid_ids},
		"progress": {kid_id: {"watched": False} for kid_id in kid_ids},
		"totalViews": 0,
	}
	try:
		await db.execute(
			"""
			INSERT INTO video (id, user_id, url, platform_video_id, platform, folder_id,
				priority, assigned, progress, total_views)
			VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 0)
			""",
			(
				video["id"],
				user_id,
				url,
				platform_video_id,
				platform,
				folder_id,
				priority,
				json.dumps(video["assigned"]),
				json.dumps(video["progress"]),
			),
		)
	except aiosqlite.IntegrityError:
		raise ConflictError("This video has already been added to your library.")
	return video


async def find_video_by_platform_id(
	db: aiosqlite.Connection, user_id: str, platform: str, platform_video_id: str
) -> dict | None:
	cur = await db.execute(
		"SELECT * FROM video WHERE user_id = ? AND platform = ? AND platform_video_id = ?",
		(user_id, platform, platform_video_id),
	)
	row = await cur.fetchone()
	return video_from_row(row) if row else None


async def create_video(
	db: aiosqlite.Connection,
	user_id: str,
	url: str,
	kid_ids: list[str] | None = None,
	folder_id: str | None = None,
	priority: int | None = None,
) -> dict:
	info = get_video_info(url)
	if not info:
		raise ValidationError("Invalid video URL. Please paste a valid YouTube or TikTok link.")
	priority = clamp_priority(priority)

	async with transaction(db):
		if folder_id:
			await get_user_folder(db, folder_id, user_id)
		if await find_video_by_platform_id(db, user_id, info["platform"], info["videoId"]):
			raise ConflictError("This video has already been added to your library.")

		targets = resolve_target_kids(await fetch_kids(db, user_id), kid_ids)
		video = await insert_video(
			db,
			user_id,
			url.strip(),
			info["platform"],
			info["videoId"],
			folder_id or None,
			priority,
			targets,
		)

	logger.info(f"Added {info['platform']} video {info['videoId']} for {user_id} ({len(targets)} kids)")
	return video


async def update_video(db: aiosqlite.Connection, video_id: str, user_id: str, updates: dict) -> dict:
	"""Partial update of priority and/or folderId; keys absent from updates are left alone."""
	async with transaction(db):
		video = await get_video(db, video_id, user_id)

		if "priority" in updates and updates["priority"] is not None:
			video["priority"] = clamp_priority(updates["priority"])
		if "folderId" in updates:
			folder_id = updates["folderId"] or None
			if folder_id:
				await get_user_folder(db, folder_id, user_id)
			video["folderId"] = folder_id

		await db.execute(
			"UPDATE video SET priority = ?, folder_id = ? WHERE id = ? AND user_id = ?",
			(video["priority"], video["folderId"], video_id, user_id),
		)
	return video


async def delete_video(db: aiosqlite.Connection, video_id: str, user_id: str) -> None:
	async with transaction(db):
		cur = await db.execute("DELETE FROM video WHERE id = ? AND user_id = ?", (video_id, user_id))
		if cur.rowcount == 0:
			raise NotFoundError("Video not found")
