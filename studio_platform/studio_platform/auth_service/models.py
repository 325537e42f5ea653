from sqlalchemy import (
    Column, Integer, String, Boolean, ForeignKey, DateTime, Date, Text, Index, JSON, UniqueConstraint,
)
from datetime import datetime, timezone
from .db import Base
import uuid

# Sentinel stored for social-login-only accounts; never a valid passlib hash
UNUSABLE_PASSWORD = "!social-login"


def utc_now() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=False)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)

    # Registration profile
    phone = Column(String)
    gender = Column(String)
    street_address1 = Column(String)
    street_address2 = Column(String)
    city = Column(String)
    region = Column(String)
    zip_code = Column(String)
    country = Column(String)
    dance_type = Column(String)
    start_date = Column(Date)
    start_time = Column(String)
    comments = Column(Text)
    is_paid = Column(Boolean, default=False, nullable=False)

    # Password reset (present only while a request is outstanding)
    reset_token_hash = Column(String, nullable=True, index=True)
    reset_token_expires = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class ProgressEntry(Base):
    """One completed video for a user under a (style, level) pair."""
    __tablename__ = "progress_entries"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    style = Column(String, nullable=False)
    level = Column(String, nullable=False)
    item_id = Column(String, nullable=False)
    completed_at = Column(DateTime, default=utc_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "style", "level", "item_id", name="uq_progress_entry"),
        Index("ix_progress_entries_user_style_level", "user_id", "style", "level"),
    )


class AuthEvent(Base):
    __tablename__ = "auth_events"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    email = Column(String, nullable=False)
    event_type = Column(String, nullable=False)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    timestamp = Column(DateTime, default=utc_now, nullable=False)
    event_metadata = Column(JSON, nullable=True)

    __table_args__ = (
        Index('ix_auth_events_user_id', 'user_id'),
        Index('ix_auth_events_timestamp', 'timestamp'),
        Index('ix_auth_events_event_type', 'event_type'),
    )
