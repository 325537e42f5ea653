from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Union
import hashlib
import logging
import secrets

import jwt
from passlib.context import CryptContext
from sqlalchemy.orm import Session, defer

from .config import Settings
from .errors import NotFoundOrExpired, TokenExpiredError, TokenInvalidError
from .models import UNUSABLE_PASSWORD, User, utc_now

logger = logging.getLogger(__name__)


class PasswordHasher:
    """Salted, adaptive password hashing backed by passlib."""

    def __init__(self, settings: Settings):
        # Use pbkdf2_sha256 to avoid external bcrypt backend issues in some environments
        self._context = CryptContext(
            schemes=["pbkdf2_sha256"],
            deprecated="auto",
            pbkdf2_sha256__rounds=settings.PASSWORD_HASH_ROUNDS,
        )
        self._dummy_hash = self._context.hash(secrets.token_hex(16))

    def hash(self, plaintext: str) -> str:
        return self._context.hash(plaintext)

    def verify(self, plaintext: str, hashed: Optional[str]) -> bool:
        if not plaintext or not hashed or hashed == UNUSABLE_PASSWORD:
            # Same cost as checking a wrong password
            self._context.verify(plaintext or "", self._dummy_hash)
            return False
        try:
            return self._context.verify(plaintext, hashed)
        except (ValueError, TypeError):
            # Unrecognised or corrupted hash
            return False


class TokenIssuer:
    """Signs and verifies the bearer tokens handed out on login."""

    def __init__(self, settings: Settings):
        self._secret = settings.SECRET_KEY
        self._algorithm = settings.ALGORITHM
        self._lifetime = timedelta(days=settings.ACCESS_TOKEN_EXPIRE_DAYS)

    def issue(self, user_id: int, now: Optional[datetime] = None) -> str:
        issued_at = now or datetime.now(timezone.utc)
        payload = {"sub": str(user_id), "iat": issued_at, "exp": issued_at + self._lifetime}
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> int:
        """
        Return the user id carried by ``token``.

        Raises:
            TokenExpiredError: signature is valid but ``exp`` has passed
            TokenInvalidError: anything else (tampered, malformed, wrong key)
        """
        try:
            data = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise TokenExpiredError("token expired") from exc
        except jwt.InvalidTokenError as exc:
            raise TokenInvalidError(str(exc)) from exc

        try:
            return int(data["sub"])
        except (TypeError, ValueError) as exc:
            raise TokenInvalidError("token subject is not a user id") from exc


@dataclass(frozen=True)
class ResetSecret:
    raw: str
    digest: str
    expires_at: datetime


class ResetTokenGenerator:
    """
    Single-use password reset secrets.

    Only the SHA-256 digest of a secret is stored on the user; the raw value
    travels to the user by email and comes back as a path parameter.
    """

    def __init__(self, settings: Settings):
        self._lifetime = timedelta(minutes=settings.RESET_TOKEN_EXPIRE_MINUTES)

    @staticmethod
    def digest(raw: str) -> str:
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    def generate(self, now: Optional[datetime] = None) -> ResetSecret:
        raw = secrets.token_urlsafe(32)
        return ResetSecret(
            raw=raw,
            digest=self.digest(raw),
            expires_at=(now or utc_now()) + self._lifetime,
        )

    def issue_for(self, user: User, db: Session, now: Optional[datetime] = None) -> str:
        """Store a fresh secret on ``user`` (replacing any earlier one) and return the raw value."""
        secret = self.generate(now)
        user.reset_token_hash = secret.digest
        user.reset_token_expires = secret.expires_at
        db.add(user)
        db.commit()
        return secret.raw

    def resolve(self, raw: str, db: Session, now: Optional[datetime] = None) -> User:
        if not raw:
            raise NotFoundOrExpired()
        current = now or utc_now()
        user = (
            db.query(User)
            .filter(
                User.reset_token_hash == self.digest(raw),
                User.reset_token_expires > current,
            )
            .first()
        )
        if not user:
            raise NotFoundOrExpired()
        return user

    def consume(self, user: User, new_password_hash: str, db: Session) -> None:
        """Set the new password and clear the reset fields, once."""
        if user.reset_token_hash is None:
            raise NotFoundOrExpired()
        updated = (
            db.query(User)
            .filter(User.id == user.id, User.reset_token_hash == user.reset_token_hash)
            .update(
                {
                    User.password_hash: new_password_hash,
                    User.reset_token_hash: None,
                    User.reset_token_expires: None,
                },
                synchronize_session="fetch",
            )
        )
        db.commit()
        if not updated:
            # Another request consumed the same secret first
            raise NotFoundOrExpired()


@dataclass(frozen=True)
class Verified:
    user: User


@dataclass(frozen=True)
class Rejected:
    reason: str


AuthResult = Union[Verified, Rejected]


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    token = authorization.split(" ", 1)[1].strip()
    return token or None


class AuthGate:
    """Resolves the Authorization header of a request to a user."""

    def __init__(self, issuer: TokenIssuer):
        self._issuer = issuer

    def authenticate(self, authorization: Optional[str], db: Session) -> AuthResult:
        token = bearer_token(authorization)
        if token is None:
            return Rejected("no token")

        try:
            user_id = self._issuer.verify(token)
        except TokenExpiredError:
            logger.info("Rejected expired access token")
            return Rejected("token failed or expired")
        except TokenInvalidError as exc:
            logger.warning("Rejected invalid access token: %s", exc)
            return Rejected("token failed or expired")

        user = (
            db.query(User)
            .options(defer(User.password_hash, raiseload=True))
            .filter(User.id == user_id)
            .first()
        )
        if not user:
            logger.warning("Valid token for missing user_id=%s", user_id)
            return Rejected("user not found")
        return Verified(user)
