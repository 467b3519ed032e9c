"""
SQLite storage for kids, folders, videos, global playlist subscriptions and feedback.

Every record carries the owning account in user_id. A video keeps its per-kid
assignment and progress as JSON objects keyed by kid id; a missing key means
the kid is not assigned.
"""
import json
import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from errors import InternalError
from schemas import VIDEO_PRIORITY_DEFAULT

logger = logging.getLogger(__name__)

SCHEMA = [
	"""
	CREATE TABLE IF NOT EXISTS kid (
		id TEXT PRIMARY KEY,
		user_id TEXT NOT NULL,
		name TEXT NOT NULL,
		avatar TEXT NOT NULL
	)
	""",
	"CREATE INDEX IF NOT EXISTS idx_kid_user ON kid(user_id)",
	"""
	CREATE TABLE IF NOT EXISTS folder (
		id TEXT PRIMARY KEY,
		user_id TEXT NOT NULL,
		name TEXT NOT NULL
	)
	""",
	"CREATE INDEX IF NOT EXISTS idx_folder_user_name ON folder(user_id, name)",
	"""
	CREATE TABLE IF NOT EXISTS video (
		id TEXT PRIMARY KEY,
		user_id TEXT NOT NULL,
		url TEXT NOT NULL,
		platform_video_id TEXT NOT NULL,
		platform TEXT NOT NULL DEFAULT 'youtube',
		folder_id TEXT,
		priority INTEGER NOT NULL DEFAULT 5,
		assigned TEXT NOT NULL DEFAULT '{}',
		progress TEXT NOT NULL DEFAULT '{}',
		total_views INTEGER NOT NULL DEFAULT 0
	)
	""",
	"""
	CREATE UNIQUE INDEX IF NOT EXISTS idx_video_owner_platform_id
	ON video(user_id, platform, platform_video_id)
	""",
	"CREATE INDEX IF NOT EXISTS idx_video_user_folder ON video(user_id, folder_id)",
	"""
	CREATE TABLE IF NOT EXISTS global_subscription (
		id TEXT PRIMARY KEY,
		user_id TEXT NOT NULL,
		master_folder_id TEXT NOT NULL,
		kid_ids TEXT NOT NULL DEFAULT '[]',
		created_at TEXT NOT NULL
	)
	""",
	"""
	CREATE UNIQUE INDEX IF NOT EXISTS idx_subscription_user_folder
	ON global_subscription(user_id, master_folder_id)
	""",
	"""
	CREATE TABLE IF NOT EXISTS feedback (
		id TEXT PRIMARY KEY,
		user_id TEXT NOT NULL,
		type TEXT NOT NULL,
		content TEXT,
		created_at TEXT NOT NULL
	)
	""",
	"""
	CREATE TABLE IF NOT EXISTS account_flag (
		user_id TEXT NOT NULL,
		name TEXT NOT NULL,
		set_at TEXT NOT NULL,
		PRIMARY KEY (user_id, name)
	)
	""",
]


async def connect(db_path) -> aiosqlite.Connection:
	# isolation_level=None: transactions are opened explicitly by transaction()
	db = await aiosqlite.connect(db_path, isolation_level=None)
	db.row_factory = aiosqlite.Row
	await db.execute("PRAGMA foreign_keys = ON")
	return db


@asynccontextmanager
async def open_db(db_path):
	db = await connect(db_path)
	try:
		yield db
	finally:
		await db.close()


async def init_db(db: aiosqlite.Connection) -> None:
	for statement in SCHEMA:
		await db.execute(statement)


def ensure_db_dir(db_path) -> None:
	Path(db_path).parent.mkdir(parents=True, exist_ok=True)


@asynccontextmanager
async def transaction(db: aiosqlite.Connection):
	"""
	Runs the block inside BEGIN IMMEDIATE ... COMMIT, rolling back on any error.
	A block entered while a transaction is already open joins it.
	Storage errors surface as InternalError.
	"""
	if db.in_transaction:
		yield db
		return

	try:
		await db.execute("BEGIN IMMEDIATE")
	except aiosqlite.Error as e:
		raise InternalError(f"Could not start transaction: {e}") from e

	try:
		yield db
	except aiosqlite.Error as e:
		await db.rollback()
		logger.error(f"Transaction rolled back: {e}")
		raise InternalError(f"Storage failure: {e}") from e
	except BaseException:
		await db.rollback()
		raise
	else:
		await db.commit()


def new_id(prefix: str, suffix: str = "") -> str:
	return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}{suffix}"


def now_iso(now: datetime | None = None) -> str:
	return (now or datetime.now(timezone.utc)).isoformat()


def kid_from_row(row) -> dict:
	return {"id": row["id"], "name": row["name"], "avatar": row["avatar"]}


def folder_from_row(row) -> dict:
	return {"id": row["id"], "name": row["name"]}


def video_from_row(row) -> dict:
	return {
		"id": row["id"],
		"url": row["url"],
		"platformVideoId": row["platform_video_id"],
		"platform": row["platform"] or "youtube",
		"folderId": row["folder_id"],
		"priority": row["priority"] if row["priority"] is not None else VIDEO_PRIORITY_DEFAULT,
		"assigned": json.loads(row["assigned"] or "{}"),
		"progress": json.loads(row["progress"] or "{}"),
		"totalViews": row["total_views"] or 0,
	}


def subscription_from_row(row) -> dict:
	return {
		"id": row["id"],
		"userId": row["user_id"],
		"masterFolderId": row["master_folder_id"],
		"kidIds": json.loads(row["kid_ids"] or "[]"),
		"createdAt": row["created_at"],
	}


async def fetch_videos(db: aiosqlite.Connection, user_id: str, folder_id: str | None = None) -> list[dict]:
	if folder_id is None:
		cur = await db.execute("SELECT * FROM video WHERE user_id = ?", (user_id,))
	else:
		cur = await db.execute(
			"SELECT * FROM video WHERE user_id = ? AND folder_id = ?", (user_id, folder_id)
		)
	return [video_from_row(r) for r in await cur.fetchall()]


async def fetch_kids(db: aiosqlite.Connection, user_id: str) -> list[dict]:
	cur = await db.execute("SELECT * FROM kid WHERE user_id = ? ORDER BY rowid", (user_id,))
	return [kid_from_row(r) for r in await cur.fetchall()]


async def write_video_maps(db: aiosqlite.Connection, video: dict, user_id: str) -> None:
	"""Persists assigned, progress and totalViews of a video as one UPDATE."""
	await db.execute(
		"UPDATE video SET assigned = ?, progress = ?, total_views = ? WHERE id = ? AND user_id = ?",
		(
			json.dumps(video["assigned"]),
			json.dumps(video["progress"]),
			video["totalViews"],
			video["id"],
			user_id,
		),
	)
