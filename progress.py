"""
Per-kid progress on a video.

A (video, kid) pair goes NotWatched -> Watched once and never back. A watched
kid may complete the video again; every completion appends a voice recording
and re-opens the parent review badge, but only the first one counts toward the
video's view cap.
"""
import logging
from datetime import datetime, timezone

import aiosqlite

from catalog import get_video
from database import fetch_videos, now_iso, transaction, write_video_maps
from errors import ConflictError, ValidationError
from identity import get_kid
from schemas import MAX_VIDEO_VIEWS

logger = logging.getLogger(__name__)

# Position jumps at or above this many seconds are seeks, not playback
MAX_PLAYBACK_INCREMENT = 30


def _is_number(value) -> bool:
	return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_recording(recording: dict) -> dict:
	if not isinstance(recording, dict):
		raise ValidationError("A voice recording is required to complete the video")
	recorded_at = recording.get("recordedAt")
	duration = recording.get("duration")
	if not isinstance(recorded_at, str) or not recorded_at:
		raise ValidationError("A voice recording needs a recordedAt timestamp")
	if not _is_number(duration) or duration <= 0:
		raise ValidationError("A valid voice recording with duration > 0 is required to complete the video")

	clean = {"recordedAt": recorded_at, "duration": duration}
	if recording.get("audioData"):
		clean["audioData"] = recording["audioData"]
	return clean


async def mark_watched(
	db: aiosqlite.Connection,
	video_id: str,
	kid_id: str,
	user_id: str,
	recording: dict,
	now: datetime | None = None,
) -> dict:
	recording = _check_recording(recording)

	async with transaction(db):
		video = await get_video(db, video_id, user_id)
		await get_kid(db, kid_id, user_id)

		entry = dict(video["progress"].get(kid_id) or {})
		first_completion = not entry.get("watched")

		if first_completion and video["totalViews"] >= MAX_VIDEO_VIEWS:
			raise ConflictError(f"This video has reached the maximum number of views ({MAX_VIDEO_VIEWS})")

		recordings = list(entry.get("voiceRecordings") or [])
		legacy = entry.pop("voiceRecording", None)
		if legacy and not recordings:
			recordings.append(legacy)
		recordings.append(recording)

		entry["watched"] = True
		entry["watchedAt"] = entry.get("watchedAt") or now_iso(now)
		entry["voiceRecordings"] = recordings
		entry["parentReviewed"] = False
		video["progress"][kid_id] = entry

		if first_completion:
			video["totalViews"] += 1

		await write_video_maps(db, video, user_id)

	logger.info(
		f"Kid {kid_id} completed video {video_id} "
		f"({'first' if first_completion else 'repeat'}, {len(recordings)} recordings, {video['totalViews']} views)"
	)
	return video


async def save_position(
	db: aiosqlite.Connection,
	video_id: str,
	kid_id: str,
	user_id: str,
	position,
	duration=None,
	now: datetime | None = None,
) -> dict:
	"""
	Records the playback position. Only forward moves shorter than
	MAX_PLAYBACK_INCREMENT seconds count toward today's watch time.
	Returns the kid's updated progress entry.
	"""
	if not _is_number(position) or position < 0:
		raise ValidationError("Position must be a non-negative number of seconds")

	async with transaction(db):
		video = await get_video(db, video_id, user_id)
		await get_kid(db, kid_id, user_id)

		entry = dict(video["progress"].get(kid_id) or {"watched": False})
		increment = max(0, position - (entry.get("lastPosition") or 0))
		if 0 < increment < MAX_PLAYBACK_INCREMENT:
			today = (now or datetime.now(timezone.utc)).date().isoformat()
			daily = dict(entry.get("dailyWatchTime") or {})
			daily[today] = daily.get(today, 0) + increment
			entry["dailyWatchTime"] = daily

		entry["lastPosition"] = position
		if _is_number(duration) and duration > 0:
			entry["videoDuration"] = duration

		video["progress"][kid_id] = entry
		await write_video_maps(db, video, user_id)
	return entry


async def kid_badge_count(db: aiosqlite.Connection, kid_id: str, user_id: str) -> int:
	"""Videos assigned to the kid that it has not watched yet."""
	await get_kid(db, kid_id, user_id)
	count = 0
	for video in await fetch_videos(db, user_id):
		if video["assigned"].get(kid_id) and not (video["progress"].get(kid_id) or {}).get("watched"):
			count += 1
	return count


def _awaiting_review(entry: dict) -> bool:
	return bool(entry and entry.get("watched")) and entry.get("parentReviewed") is False


async def parent_badge_count(db: aiosqlite.Connection, user_id: str) -> int:
	return sum(
		1
		for video in await fetch_videos(db, user_id)
		for entry in video["progress"].values()
		if _awaiting_review(entry)
	)


async def clear_parent_badge(db: aiosqlite.Connection, user_id: str) -> int:
	cleared = 0
	async with transaction(db):
		for video in await fetch_videos(db, user_id):
			changed = False
			for entry in video["progress"].values():
				if _awaiting_review(entry):
					entry["parentReviewed"] = True
					changed = True
					cleared += 1
			if changed:
				await write_video_maps(db, video, user_id)
	return cleared
