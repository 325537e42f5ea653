from fastapi import FastAPI, Depends, HTTPException, status, Header, Request
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session
from contextlib import asynccontextmanager
from typing import Optional

from .config import get_settings
from .db import get_db, init_db
from .auth import AuthGate, PasswordHasher, Rejected, ResetTokenGenerator, TokenIssuer, Verified
from .accounts import AccountService
from .errors import AuthServiceError, Unauthorized
from .progress import ProgressTracker, progress_for
from .schemas import (
    UserCreate,
    UserLogin,
    AuthResponse,
    LoginResponse,
    MessageResponse,
    ForgotPasswordRequest,
    ResetPasswordRequest,
    TrackProgressRequest,
    TrackProgressResponse,
    ProgressResponse,
    ProfileResponse,
    SocialIdentity,
)
from .utils.email_service import EmailService
from .utils.event_logger import configure_logging


settings = get_settings()

token_issuer = TokenIssuer(settings)
auth_gate = AuthGate(token_issuer)
progress_tracker = ProgressTracker()


def build_reset_link(raw_secret: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}{settings.RESET_PATH}?token={raw_secret}"


account_service = AccountService(
    hasher=PasswordHasher(settings),
    issuer=token_issuer,
    reset_tokens=ResetTokenGenerator(settings),
    email_service=EmailService(settings),
    build_reset_link=build_reset_link,
)

FORGOT_PASSWORD_MESSAGE = "If that email is registered, a password reset link has been sent."


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Configure logging and create tables on startup"""
    configure_logging(settings)
    init_db()
    yield


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AuthServiceError)
async def auth_service_error_handler(_request: Request, exc: AuthServiceError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message}, headers=exc.headers)


def get_account_service() -> AccountService:
    return account_service


def require_user(
    db: Session = Depends(get_db),
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> Verified:
    result = auth_gate.authenticate(authorization, db)
    if isinstance(result, Rejected):
        raise Unauthorized(f"Not authorized, {result.reason}")
    return result


def get_social_identity() -> SocialIdentity:
    """OAuth provider adapter; deployments override this dependency."""
    raise HTTPException(status_code=status.HTTP_501_NOT_IMPLEMENTED, detail="Social login provider not configured")


@app.get("/health")
def health():
    return {"status": "ok"}


@app.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(
    payload: UserCreate,
    request: Request,
    db: Session = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
):
    user, token = accounts.register(payload, request, db)
    return AuthResponse(id=user.id, name=user.full_name, email=user.email, access_token=token)


@app.post("/login", response_model=LoginResponse)
def login(
    credentials: UserLogin,
    request: Request,
    db: Session = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
):
    user, token = accounts.login(credentials.email, credentials.password, request, db)
    return LoginResponse(
        id=user.id,
        name=user.full_name,
        email=user.email,
        access_token=token,
        progress=progress_for(user.id, db),
    )


# ---------------- Password Reset Flow ----------------

@app.post("/forgotpassword", response_model=MessageResponse)
def forgot_password(
    payload: ForgotPasswordRequest,
    request: Request,
    db: Session = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
):
    # Same answer whether or not the account exists
    accounts.request_password_reset(payload.email, request, db)
    return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)


@app.post("/resetpassword/{secret}", response_model=MessageResponse)
def reset_password(
    secret: str,
    payload: ResetPasswordRequest,
    request: Request,
    db: Session = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
):
    accounts.reset_password(secret, payload.password, request, db)
    return MessageResponse(message="Password reset successful. You can now log in.")


# ---------------- Social Login ----------------

@app.get("/google/callback")
def google_callback(
    request: Request,
    identity: SocialIdentity = Depends(get_social_identity),
    db: Session = Depends(get_db),
    accounts: AccountService = Depends(get_account_service),
):
    _user, token = accounts.social_login(identity, request, db)
    return RedirectResponse(f"{settings.SOCIAL_LOGIN_REDIRECT_URL}?token={token}", status_code=status.HTTP_303_SEE_OTHER)


# ---------------- Progress & Profile (authenticated) ----------------

@app.post("/trackprogress", response_model=TrackProgressResponse)
def track_progress(payload: TrackProgressRequest, auth: Verified = Depends(require_user), db: Session = Depends(get_db)):
    result = progress_tracker.track(auth.user, payload.dance_style, payload.level, payload.video_id, db)
    return TrackProgressResponse(
        message="Progress updated successfully." if result.updated else "Video already tracked. No update needed.",
        updated=result.updated,
        updated_videos_count=result.total_for_level,
        progress=result.progress,
    )


@app.get("/profile", response_model=ProfileResponse)
def get_profile(auth: Verified = Depends(require_user), db: Session = Depends(get_db)):
    user = auth.user
    return ProfileResponse(
        id=user.id,
        first_name=user.first_name,
        last_name=user.last_name,
        email=user.email,
        dance_type=user.dance_type,
        start_date=user.start_date,
        is_paid=user.is_paid,
        progress=progress_for(user.id, db),
    )


@app.get("/progress", response_model=ProgressResponse)
def get_progress(auth: Verified = Depends(require_user), db: Session = Depends(get_db)):
    return ProgressResponse(progress=progress_for(auth.user.id, db))
