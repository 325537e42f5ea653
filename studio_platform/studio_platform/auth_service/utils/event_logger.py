"""
Event logger utility for authentication events.
"""
from fastapi import Request
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
import sys
import logging
import os

from ..config import Settings
from ..models import AuthEvent, User, utc_now

logger = logging.getLogger(__name__)


ALLOWED_EVENT_TYPES = {
    "registration",
    "login_success",
    "login_failure",
    "password_reset_request",
    "password_reset",
    "social_login",
}


def configure_logging(settings: Settings) -> None:
    """Send logs to stdout and, when the directory is writable, LOG_DIR/auth_events.log."""
    handlers = [logging.StreamHandler(sys.stdout)]

    # Try to add file handler, but continue without it if directory creation fails
    try:
        os.makedirs(settings.LOG_DIR, exist_ok=True)
        handlers.append(logging.FileHandler(os.path.join(settings.LOG_DIR, "auth_events.log")))
    except (OSError, PermissionError) as e:
        print(f"WARNING: Could not set up file logging: {e}", file=sys.stderr)

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=handlers
    )


def client_ip(request: Request):
    ip_address = None
    if request.client:
        ip_address = request.client.host

    # Check for X-Forwarded-For header (proxy/load balancer scenarios)
    if not ip_address and request.headers.get("x-forwarded-for"):
        # X-Forwarded-For can contain multiple IPs, take the first one
        ip_address = request.headers.get("x-forwarded-for").split(",")[0].strip()
    return ip_address


def log_auth_event(
    event_type: str,
    user: User,
    request: Request,
    db: Session,
    metadata: dict = None
) -> None:
    """
    Log an authentication event to the database.

    Args:
        event_type: One of ALLOWED_EVENT_TYPES
        user: User object from database
        request: FastAPI Request object
        db: Database session
        metadata: Optional dictionary of additional context

    Raises:
        ValueError: If event_type is invalid
    """
    if event_type not in ALLOWED_EVENT_TYPES:
        raise ValueError(
            f"Invalid event_type '{event_type}'. Must be one of: {', '.join(sorted(ALLOWED_EVENT_TYPES))}"
        )

    ip_address = client_ip(request)
    user_agent = request.headers.get("user-agent")

    try:
        auth_event = AuthEvent(
            user_id=user.id,
            email=user.email,
            event_type=event_type,
            ip_address=ip_address,
            user_agent=user_agent,
            timestamp=utc_now(),
            event_metadata=metadata or {}
        )

        db.add(auth_event)
        db.commit()

        logger.info(
            "AUTH %s user_id=%s email=%s ip=%s",
            event_type, user.id, user.email, ip_address
        )

    except SQLAlchemyError as e:
        # Audit logging must not break the auth flow
        logger.warning(
            "Failed to log auth event - user_id=%s, event_type=%s, error=%s",
            user.id, event_type, e
        )
        db.rollback()
