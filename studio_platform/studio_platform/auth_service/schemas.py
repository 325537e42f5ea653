from datetime import date
from pydantic import BaseModel, Field

from typing import Dict, List, Optional

ProgressMap = Dict[str, Dict[str, List[str]]]


class UserCreate(BaseModel):
    first_name: str
    last_name: str
    email: str
    phone: str
    gender: Optional[str] = None
    street_address1: str
    street_address2: Optional[str] = None
    city: str
    region: str
    zip_code: str
    country: str
    dance_type: str
    start_date: date
    start_time: str
    comments: Optional[str] = None
    password: str = Field(..., min_length=1)

class UserLogin(BaseModel):
    email: str
    password: str

class AuthResponse(BaseModel):
    id: int
    name: str
    email: str
    access_token: str
    token_type: str = "bearer"


class LoginResponse(AuthResponse):
    progress: ProgressMap = Field(default_factory=dict)


class MessageResponse(BaseModel):
    message: str


# Password reset
class ForgotPasswordRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    password: str = Field(..., min_length=1)


# Progress
class TrackProgressRequest(BaseModel):
    dance_style: str
    level: str
    video_id: str


class TrackProgressResponse(BaseModel):
    message: str
    updated: bool
    updated_videos_count: int
    progress: ProgressMap


class ProgressResponse(BaseModel):
    progress: ProgressMap
    message: str = "Progress data fetched successfully"


class ProfileResponse(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: str
    dance_type: Optional[str] = None
    start_date: Optional[date] = None
    is_paid: bool
    progress: ProgressMap


# Social login
class SocialIdentity(BaseModel):
    """Identity handed over by the OAuth provider after it verified the user."""
    email: str
    given_name: Optional[str] = None
    family_name: Optional[str] = None
