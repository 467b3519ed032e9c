import aiosqlite

from database import new_id, now_iso, transaction
from errors import ValidationError
from schemas import FEEDBACK_TYPES


async def create_feedback(db: aiosqlite.Connection, user_id: str, type: str, content: str) -> dict:
	"""Stores a feedback entry. Entries are never updated or deleted."""
	if type not in FEEDBACK_TYPES:
		raise ValidationError(f"Feedback type must be one of {', '.join(FEEDBACK_TYPES)}")
	if not isinstance(content, str) or not content.strip():
		raise ValidationError("Feedback content is required")

	feedback = {
		"id": new_id("fb"),
		"userId": user_id,
		"type": type,
		"content": content,
		"createdAt": now_iso(),
	}
	async with transaction(db):
		await db.execute(
			"INSERT INTO feedback (id, user_id, type, content, created_at) VALUES (?, ?, ?, ?, ?)",
			(feedback["id"], user_id, type, content, feedback["createdAt"]),
		)
	return feedback
