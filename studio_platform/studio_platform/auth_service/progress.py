"""
Per-user video progress: style -> level -> completed video ids.
"""
from dataclasses import dataclass, field
from typing import Dict, List
import logging

from sqlalchemy import func
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from .errors import ValidationError
from .models import ProgressEntry, User

logger = logging.getLogger(__name__)

Progress = Dict[str, Dict[str, List[str]]]


@dataclass
class TrackResult:
    updated: bool
    total_for_level: int
    progress: Progress = field(default_factory=dict)


def _normalize(value: str, field_name: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationError(f"Missing required field: {field_name}")
    return cleaned


def _insert_if_absent(db: Session, values: dict) -> bool:
    """
    Add one entry with INSERT ... ON CONFLICT DO NOTHING.

    Returns True when a row was written. The unique constraint on
    (user_id, style, level, item_id) makes this safe against concurrent
    requests for the same user.
    """
    dialect = db.get_bind().dialect.name
    insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
    stmt = insert(ProgressEntry).values(**values).on_conflict_do_nothing(
        index_elements=["user_id", "style", "level", "item_id"]
    )
    result = db.execute(stmt)
    return result.rowcount == 1


def progress_for(user_id: int, db: Session) -> Progress:
    entries = (
        db.query(ProgressEntry.style, ProgressEntry.level, ProgressEntry.item_id)
        .filter(ProgressEntry.user_id == user_id)
        .order_by(ProgressEntry.id)
        .all()
    )
    progress: Progress = {}
    for style, level, item_id in entries:
        progress.setdefault(style, {}).setdefault(level, []).append(item_id)
    return progress


class ProgressTracker:

    def track(self, user: User, style: str, level: str, item_id: str, db: Session) -> TrackResult:
        style_key = _normalize(style, "dance_style")
        level_key = _normalize(level, "level")
        item_key = _normalize(item_id, "video_id")
        user_id = user.id

        updated = _insert_if_absent(
            db,
            {"user_id": user_id, "style": style_key, "level": level_key, "item_id": item_key},
        )
        db.commit()

        if updated:
            logger.info(
                "Progress tracked: user_id=%s style=%s level=%s video=%s",
                user_id, style_key, level_key, item_key
            )

        total = (
            db.query(func.count(ProgressEntry.id))
            .filter(
                ProgressEntry.user_id == user_id,
                ProgressEntry.style == style_key,
                ProgressEntry.level == level_key,
            )
            .scalar()
        )
        return TrackResult(updated=updated, total_for_level=total, progress=progress_for(user_id, db))
