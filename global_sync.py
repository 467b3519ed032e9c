"""
Global playlists: one-way replication of the master account's folders into
subscriber libraries.

A subscriber's copy of master folder F lives in its own shadow folder named
"__global_F". Sync only ever adds videos to that folder; it never copies
progress, view counts or recordings from the master. This module is the only
place where one account's records are read on behalf of another.
"""
import json
import logging

import aiosqlite

from catalog import insert_video, resolve_target_kids
from database import (
	fetch_kids,
	fetch_videos,
	folder_from_row,
	new_id,
	now_iso,
	subscription_from_row,
	transaction,
)
from errors import NotFoundError, ValidationError
from schemas import SHADOW_FOLDER_PREFIX

logger = logging.getLogger(__name__)

CLEANUP_FLAG = "global_cleanup"


def shadow_folder_name(master_folder_id: str) -> str:
	return f"{SHADOW_FOLDER_PREFIX}{master_folder_id}"


def is_shadow_folder(name: str) -> bool:
	return name.startswith(SHADOW_FOLDER_PREFIX)


def _require_master(master_user_id: str) -> None:
	if not master_user_id:
		raise ValidationError("No master account configured")


async def _get_master_folder(db: aiosqlite.Connection, master_user_id: str, folder_id: str) -> dict:
	cur = await db.execute(
		"SELECT * FROM folder WHERE id = ? AND user_id = ?", (folder_id, master_user_id)
	)
	row = await cur.fetchone()
	if not row or is_shadow_folder(row["name"]):
		raise NotFoundError("Playlist not found")
	return folder_from_row(row)


async def _get_subscription(db: aiosqlite.Connection, user_id: str, master_folder_id: str):
	cur = await db.execute(
		"SELECT * FROM global_subscription WHERE user_id = ? AND master_folder_id = ?",
		(user_id, master_folder_id),
	)
	row = await cur.fetchone()
	return subscription_from_row(row) if row else None


async def _find_shadow_folder(db: aiosqlite.Connection, user_id: str, master_folder_id: str):
	cur = await db.execute(
		"SELECT * FROM folder WHERE user_id = ? AND name = ?",
		(user_id, shadow_folder_name(master_folder_id)),
	)
	row = await cur.fetchone()
	return folder_from_row(row) if row else None


async def _delete_folder_with_videos(db: aiosqlite.Connection, user_id: str, folder_id: str) -> int:
	cur = await db.execute(
		"DELETE FROM video WHERE user_id = ? AND folder_id = ?", (user_id, folder_id)
	)
	await db.execute("DELETE FROM folder WHERE id = ? AND user_id = ?", (folder_id, user_id))
	return cur.rowcount


# ---------------------------
# Master side (read only)
# ---------------------------

async def list_global_folders(db: aiosqlite.Connection, master_user_id: str) -> list[dict]:
	"""The master's own folders, each with its video count. Shadow folders are left out."""
	if not master_user_id:
		return []

	cur = await db.execute(
		"SELECT * FROM folder WHERE user_id = ? ORDER BY rowid", (master_user_id,)
	)
	folders = [folder_from_row(r) for r in await cur.fetchall() if not is_shadow_folder(r["name"])]
	if not folders:
		return []

	cur = await db.execute(
		"""
		SELECT folder_id, COUNT(*) AS video_count FROM video
		WHERE user_id = ? AND folder_id IS NOT NULL
		GROUP BY folder_id
		""",
		(master_user_id,),
	)
	counts = {r["folder_id"]: r["video_count"] for r in await cur.fetchall()}
	return [{**f, "videoCount": counts.get(f["id"], 0)} for f in folders]


async def list_global_videos(db: aiosqlite.Connection, master_user_id: str, folder_id: str) -> list[dict]:
	_require_master(master_user_id)
	await _get_master_folder(db, master_user_id, folder_id)
	return await fetch_videos(db, master_user_id, folder_id)


# ---------------------------
# Subscriber side
# ---------------------------

async def list_subscriptions(db: aiosqlite.Connection, user_id: str) -> list[dict]:
	cur = await db.execute(
		"SELECT * FROM global_subscription WHERE user_id = ? ORDER BY created_at", (user_id,)
	)
	return [subscription_from_row(r) for r in await cur.fetchall()]


async def subscribe(
	db: aiosqlite.Connection,
	user_id: str,
	master_folder_id: str,
	kid_ids: list[str],
	master_user_id: str,
) -> dict:
	"""Creates or updates the subscription for (user, master folder) and syncs it."""
	_require_master(master_user_id)
	if user_id == master_user_id:
		raise ValidationError("You already own these playlists")
	kid_ids = list(kid_ids or [])

	async with transaction(db):
		await _get_master_folder(db, master_user_id, master_folder_id)

		subscription = await _get_subscription(db, user_id, master_folder_id)
		if subscription:
			await db.execute(
				"UPDATE global_subscription SET kid_ids = ? WHERE id = ?",
				(json.dumps(kid_ids), subscription["id"]),
			)
			subscription["kidIds"] = kid_ids
		else:
			subscription = {
				"id": new_id("gsub"),
				"userId": user_id,
				"masterFolderId": master_folder_id,
				"kidIds": kid_ids,
				"createdAt": now_iso(),
			}
			await db.execute(
				"""
				INSERT INTO global_subscription (id, user_id, master_folder_id, kid_ids, created_at)
				VALUES (?, ?, ?, ?, ?)
				""",
				(subscription["id"], user_id, master_folder_id, json.dumps(kid_ids), subscription["createdAt"]),
			)

		await sync_subscription(db, user_id, master_folder_id, master_user_id)

	logger.info(f"{user_id} subscribed to global playlist {master_folder_id}")
	return subscription


async def unsubscribe(db: aiosqlite.Connection, user_id: str, master_folder_id: str) -> None:
	"""Deletes the shadow folder, every video in it, and the subscription."""
	async with transaction(db):
		subscription = await _get_subscription(db, user_id, master_folder_id)
		if not subscription:
			raise NotFoundError("Subscription not found")

		removed = 0
		shadow = await _find_shadow_folder(db, user_id, master_folder_id)
		if shadow:
			removed = await _delete_folder_with_videos(db, user_id, shadow["id"])
		await db.execute("DELETE FROM global_subscription WHERE id = ?", (subscription["id"],))

	logger.info(f"{user_id} unsubscribed from {master_folder_id}, removed {removed} videos")


async def sync_subscription(
	db: aiosqlite.Connection, user_id: str, master_folder_id: str, master_user_id: str
) -> int:
	"""
	Copies master videos missing from the subscriber's shadow folder. Safe to
	re-run: videos already present (by platform and id, anywhere in the
	subscriber's library) are skipped. Returns the number of videos created.
	"""
	_require_master(master_user_id)

	async with transaction(db):
		subscription = await _get_subscription(db, user_id, master_folder_id)
		if not subscription:
			raise NotFoundError("Subscription not found")
		await _get_master_folder(db, master_user_id, master_folder_id)

		targets = resolve_target_kids(await fetch_kids(db, user_id), subscription["kidIds"])

		shadow = await _find_shadow_folder(db, user_id, master_folder_id)
		if not shadow:
			shadow = {"id": new_id("folder"), "name": shadow_folder_name(master_folder_id)}
			await db.execute(
				"INSERT INTO folder (id, user_id, name) VALUES (?, ?, ?)",
				(shadow["id"], user_id, shadow["name"]),
			)

		present = {(v["platform"], v["platformVideoId"]) for v in await fetch_videos(db, user_id)}
		created = 0
		for master_video in await fetch_videos(db, master_user_id, master_folder_id):
			key = (master_video["platform"], master_video["platformVideoId"])
			if key in present:
				continue
			await insert_video(
				db,
				user_id,
				master_video["url"],
				master_video["platform"],
				master_video["platformVideoId"],
				shadow["id"],
				master_video["priority"],
				targets,
				id_suffix="_g",
			)
			present.add(key)
			created += 1

	if created:
		logger.info(f"Synced {created} videos from {master_folder_id} into {user_id}")
	return created


async def sync_all_subscriptions(db: aiosqlite.Connection, user_id: str, master_user_id: str) -> int:
	_require_master(master_user_id)
	created = 0
	for subscription in await list_subscriptions(db, user_id):
		try:
			created += await sync_subscription(db, user_id, subscription["masterFolderId"], master_user_id)
		except NotFoundError:
			logger.warning(
				f"Skipping sync of {subscription['masterFolderId']} for {user_id}: master folder is gone"
			)
	return created


async def cleanup_global_data(db: aiosqlite.Connection, user_id: str) -> None:
	"""Removes every shadow folder (with its videos) and every subscription of an account."""
	async with transaction(db):
		cur = await db.execute("SELECT * FROM folder WHERE user_id = ?", (user_id,))
		removed = 0
		for row in await cur.fetchall():
			if is_shadow_folder(row["name"]):
				removed += await _delete_folder_with_videos(db, user_id, row["id"])
		await db.execute("DELETE FROM global_subscription WHERE user_id = ?", (user_id,))
	logger.info(f"Cleaned global data for {user_id}, removed {removed} videos")


async def cleanup_master_once(db: aiosqlite.Connection, master_user_id: str) -> bool:
	"""
	Runs cleanup_global_data for the master account unless it already ran,
	tracked by a persisted account flag. Returns True when cleanup ran.
	"""
	async with transaction(db):
		cur = await db.execute(
			"SELECT 1 FROM account_flag WHERE user_id = ? AND name = ?", (master_user_id, CLEANUP_FLAG)
		)
		if await cur.fetchone():
			return False
		await cleanup_global_data(db, master_user_id)
		await db.execute(
			"INSERT INTO account_flag (user_id, name, set_at) VALUES (?, ?, ?)",
			(master_user_id, CLEANUP_FLAG, now_iso()),
		)
	return True
