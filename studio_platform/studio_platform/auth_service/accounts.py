"""
Account operations behind the public auth routes.

Registration, login, the forgot/reset password flow and social login. Every
store failure is rolled back, logged, and surfaced as ``InternalError`` so no
partially written user survives a failed request.
"""
from typing import Callable, Tuple
import logging

from fastapi import Request
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .auth import PasswordHasher, ResetTokenGenerator, TokenIssuer
from .errors import Conflict, InternalError, Unauthorized, ValidationError
from .models import UNUSABLE_PASSWORD, User
from .schemas import SocialIdentity, UserCreate
from .utils.email_service import EmailService
from .utils.event_logger import log_auth_event

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password."


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class AccountService:
    def __init__(
        self,
        hasher: PasswordHasher,
        issuer: TokenIssuer,
        reset_tokens: ResetTokenGenerator,
        email_service: EmailService,
        build_reset_link: Callable[[str], str],
    ):
        self._hasher = hasher
        self._issuer = issuer
        self._reset_tokens = reset_tokens
        self._email_service = email_service
        self._build_reset_link = build_reset_link

    def register(self, payload: UserCreate, request: Request, db: Session) -> Tuple[User, str]:
        email = normalize_email(payload.email)
        if not email:
            raise ValidationError("Missing required field: email")

        if db.query(User).filter(User.email == email).first():
            raise Conflict()

        fields = payload.model_dump(exclude={"email", "password"})
        user = User(**fields, email=email, password_hash=self._hasher.hash(payload.password))
        try:
            db.add(user)
            db.commit()
            db.refresh(user)
        except IntegrityError as exc:
            # Lost a race with another registration for the same email
            db.rollback()
            raise Conflict() from exc
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Register error for %s", email)
            raise InternalError("Server error during registration.") from exc

        log_auth_event("registration", user, request, db)
        return user, self._issuer.issue(user.id)

    def login(self, email: str, password: str, request: Request, db: Session) -> Tuple[User, str]:
        user = db.query(User).filter(User.email == normalize_email(email)).first()
        if not user:
            self._hasher.verify(password, None)
            raise Unauthorized(INVALID_CREDENTIALS)

        if not self._hasher.verify(password, user.password_hash):
            log_auth_event("login_failure", user, request, db)
            raise Unauthorized(INVALID_CREDENTIALS)

        log_auth_event("login_success", user, request, db)
        return user, self._issuer.issue(user.id)

    def request_password_reset(self, email: str, request: Request, db: Session) -> None:
        """Email a reset link if the account exists. Callers always answer with the same message."""
        user = db.query(User).filter(User.email == normalize_email(email)).first()
        if not user:
            logger.info("Password reset requested for unknown email")
            return

        try:
            raw_secret = self._reset_tokens.issue_for(user, db)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Forgot password error for user_id=%s", user.id)
            raise InternalError("Server error during password reset request.") from exc

        log_auth_event("password_reset_request", user, request, db)

        if not self._email_service.send_password_reset(user.email, self._build_reset_link(raw_secret)):
            logger.error("Failed to send reset email for user_id=%s", user.id)

    def reset_password(self, raw_secret: str, new_password: str, request: Request, db: Session) -> None:
        user = self._reset_tokens.resolve(raw_secret, db)
        try:
            self._reset_tokens.consume(user, self._hasher.hash(new_password), db)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Reset password error for user_id=%s", user.id)
            raise InternalError("Server error during password reset.") from exc

        log_auth_event("password_reset", user, request, db)

    def social_login(self, identity: SocialIdentity, request: Request, db: Session) -> Tuple[User, str]:
        """Reuse the account for ``identity.email`` or create a social-only one."""
        email = normalize_email(identity.email)
        if not email:
            raise ValidationError("Missing required field: email")

        user = db.query(User).filter(User.email == email).first()
        created = False
        if not user:
            user = User(
                email=email,
                first_name=identity.given_name or "Google",
                last_name=identity.family_name or "User",
                password_hash=UNUSABLE_PASSWORD,
                is_paid=True,
            )
            try:
                db.add(user)
                db.commit()
                db.refresh(user)
                created = True
            except IntegrityError:
                db.rollback()
                user = db.query(User).filter(User.email == email).first()
                if not user:
                    raise InternalError("Server error during social login.")
            except SQLAlchemyError as exc:
                db.rollback()
                logger.exception("Social login error for %s", email)
                raise InternalError("Server error during social login.") from exc

        log_auth_event("social_login", user, request, db, metadata={"created": created})
        return user, self._issuer.issue(user.id)
