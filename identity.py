"""
Kids and folders, scoped by owning account.

Creating or deleting a kid touches every video of the owner: a new kid is
assigned to the whole existing library, a deleted kid is removed from every
video's assignment and progress maps.
"""
import logging

import aiosqlite

from database import (
	fetch_kids,
	fetch_videos,
	folder_from_row,
	kid_from_row,
	new_id,
	transaction,
	write_video_maps,
)
from errors import ConflictError, NotFoundError, ValidationError
from schemas import AVATARS, MAX_KIDS, SHADOW_FOLDER_PREFIX

logger = logging.getLogger(__name__)


def _name_key(name: str) -> str:
	return name.strip().lower()


def _clean_name(name, what: str = "Name") -> str:
	if not isinstance(name, str) or not name.strip():
		raise ValidationError(f"{what} is required")
	return name.strip()


def _check_avatar(avatar: str) -> str:
	if avatar not in AVATARS:
		raise ValidationError(f"Unknown avatar '{avatar}'")
	return avatar


def _check_duplicate_name(kids: list[dict], name: str, exclude_id: str | None = None) -> None:
	key = _name_key(name)
	for kid in kids:
		if kid["id"] != exclude_id and _name_key(kid["name"]) == key:
			raise ConflictError(f'A kid named "{name}" already exists')


# ---------------------------
# Kids
# ---------------------------

async def list_kids(db: aiosqlite.Connection, user_id: str) -> list[dict]:
	return await fetch_kids(db, user_id)


async def get_kid(db: aiosqlite.Connection, kid_id: str, user_id: str) -> dict:
	cur = await db.execute("SELECT * FROM kid WHERE id = ? AND user_id = ?", (kid_id, user_id))
	row = await cur.fetchone()
	if not row:
		raise NotFoundError("Kid not found")
	return kid_from_row(row)


async def get_kid_by_id(db: aiosqlite.Connection, kid_id: str) -> dict:
	"""Looks a kid up by id alone; the result carries the owner as userId."""
	cur = await db.execute("SELECT * FROM kid WHERE id = ?", (kid_id,))
	row = await cur.fetchone()
	if not row:
		raise NotFoundError("Kid not found")
	return {**kid_from_row(row), "userId": row["user_id"]}


async def create_kid(db: aiosqlite.Connection, user_id: str, name: str, avatar: str = "child") -> dict:
	name = _clean_name(name)
	avatar = _check_avatar(avatar)

	async with transaction(db):
		kids = await fetch_kids(db, user_id)
		if len(kids) >= MAX_KIDS:
			raise ConflictError(f"Maximum {MAX_KIDS} kids allowed")
		_check_duplicate_name(kids, name)

		kid = {"id": new_id("kid"), "name": name, "avatar": avatar}
		await db.execute(
			"INSERT INTO kid (id, user_id, name, avatar) VALUES (?, ?, ?, ?)",
			(kid["id"], user_id, name, avatar),
		)

		# New kids start with the whole existing library, unwatched
		videos = await fetch_videos(db, user_id)
		for video in videos:
			video["assigned"][kid["id"]] = True
			video["progress"][kid["id"]] = {"watched": False}
			await write_video_maps(db, video, user_id)

	logger.info(f"Created kid {kid['id']} for {user_id}, assigned {len(videos)} videos")
	return kid


async def update_kid(
	db: aiosqlite.Connection,
	kid_id: str,
	user_id: str,
	name: str | None = None,
	avatar: str | None = None,
) -> dict:
	async with transaction(db):
		kid = await get_kid(db, kid_id, user_id)
		if name is not None:
			name = _clean_name(name)
			_check_duplicate_name(await fetch_kids(db, user_id), name, exclude_id=kid_id)
			kid["name"] = name
		if avatar is not None:
			kid["avatar"] = _check_avatar(avatar)

		await db.execute(
			"UPDATE kid SET name = ?, avatar = ? WHERE id = ? AND user_id = ?",
			(kid["name"], kid["avatar"], kid_id, user_id),
		)
	return kid


async def delete_kid(db: aiosqlite.Connection, kid_id: str, user_id: str) -> None:
	async with transaction(db):
		await get_kid(db, kid_id, user_id)
		await db.execute("DELETE FROM kid WHERE id = ? AND user_id = ?", (kid_id, user_id))

		touched = 0
		for video in await fetch_videos(db, user_id):
			if kid_id in video["assigned"] or kid_id in video["progress"]:
				video["assigned"].pop(kid_id, None)
				video["progress"].pop(kid_id, None)
				await write_video_maps(db, video, user_id)
				touched += 1

	logger.info(f"Deleted kid {kid_id} of {user_id}, cleaned {touched} videos")


async def cleanup_duplicate_kids(db: aiosqlite.Connection, user_id: str) -> int:
	"""
	Merges kids sharing a name (case-insensitive, trimmed) into the one with the
	smallest id and deletes the others. Assignment is OR'd into the keeper;
	a duplicate's progress replaces the keeper's only if the keeper has not
	watched the video. The merge is computed over all videos before any write.
	Returns the number of kids removed.
	"""
	async with transaction(db):
		groups: dict[str, list[dict]] = {}
		for kid in await fetch_kids(db, user_id):
			groups.setdefault(_name_key(kid["name"]), []).append(kid)

		duplicates = {k: g for k, g in groups.items() if len(g) > 1}
		if not duplicates:
			return 0

		videos = await fetch_videos(db, user_id)
		changed = set()
		delete_ids = []

		for group in duplicates.values():
			group.sort(key=lambda k: k["id"])
			keeper_id = group[0]["id"]
			for dup in group[1:]:
				dup_id = dup["id"]
				delete_ids.append(dup_id)
				for video in videos:
					if dup_id in video["assigned"]:
						if video["assigned"].pop(dup_id):
							video["assigned"][keeper_id] = True
						changed.add(video["id"])
					if dup_id in video["progress"]:
						dup_progress = video["progress"].pop(dup_id)
						if not video["progress"].get(keeper_id, {}).get("watched"):
							video["progress"][keeper_id] = dup_progress
						changed.add(video["id"])

		for video in videos:
			if video["id"] in changed:
				await write_video_maps(db, video, user_id)
		for dup_id in delete_ids:
			await db.execute("DELETE FROM kid WHERE id = ? AND user_id = ?", (dup_id, user_id))

	logger.info(f"Merged {len(delete_ids)} duplicate kids for {user_id}")
	return len(delete_ids)


# ---------------------------
# Folders
# ---------------------------

def _check_folder_name(name) -> str:
	name = _clean_name(name, "Folder name")
	if name.startswith(SHADOW_FOLDER_PREFIX):
		raise ValidationError(f"Folder names may not start with '{SHADOW_FOLDER_PREFIX}'")
	return name


async def list_folders(db: aiosqlite.Connection, user_id: str) -> list[dict]:
	cur = await db.execute("SELECT * FROM folder WHERE user_id = ? ORDER BY rowid", (user_id,))
	return [folder_from_row(r) for r in await cur.fetchall()]


async def get_folder(db: aiosqlite.Connection, folder_id: str, user_id: str) -> dict:
	cur = await db.execute("SELECT * FROM folder WHERE id = ? AND user_id = ?", (folder_id, user_id))
	row = await cur.fetchone()
	if not row:
		raise NotFoundError("Folder not found")
	return folder_from_row(row)


async def get_user_folder(db: aiosqlite.Connection, folder_id: str, user_id: str) -> dict:
	folder = await get_folder(db, folder_id, user_id)
	if folder["name"].startswith(SHADOW_FOLDER_PREFIX):
		raise ValidationError("This folder is managed by a global playlist")
	return folder


async def create_folder(db: aiosqlite.Connection, user_id: str, name: str) -> dict:
	folder = {"id": new_id("folder"), "name": _check_folder_name(name)}
	async with transaction(db):
		await db.execute(
			"INSERT INTO folder (id, user_id, name) VALUES (?, ?, ?)",
			(folder["id"], user_id, folder["name"]),
		)
	return folder


async def update_folder(db: aiosqlite.Connection, folder_id: str, user_id: str, name: str) -> dict:
	name = _check_folder_name(name)
	async with transaction(db):
		folder = await get_user_folder(db, folder_id, user_id)
		await db.execute(
			"UPDATE folder SET name = ? WHERE id = ? AND user_id = ?", (name, folder_id, user_id)
		)
	folder["name"] = name
	return folder


async def delete_folder(db: aiosqlite.Connection, folder_id: str, user_id: str) -> None:
	"""Moves the folder's videos out of it (folderId = null), then deletes it."""
	async with transaction(db):
		await get_user_folder(db, folder_id, user_id)
		cur = await db.execute(
			"UPDATE video SET folder_id = NULL WHERE folder_id = ? AND user_id = ?",
			(folder_id, user_id),
		)
		moved = cur.rowcount
		await db.execute("DELETE FROM folder WHERE id = ? AND user_id = ?", (folder_id, user_id))
	logger.info(f"Deleted folder {folder_id} of {user_id}, {moved} videos unfiled")
