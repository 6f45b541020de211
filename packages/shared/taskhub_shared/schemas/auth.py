"""Authentication schemas and the refresh wire contract."""

from __future__ import annotations

import uuid
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, ConfigDict

# Cookie names shared by the server (writer of the refresh cookie) and the
# client credential store.
ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"

# Messages the client's refresh protocol branches on.
TOKEN_EXPIRED_MESSAGE = "jwt expired"
TOKEN_MISSING_MESSAGE = "jwt must be provided"


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    name: Optional[str] = Field(None, max_length=100)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class UserProfile(BaseModel):
    id: uuid.UUID
    email: str
    name: Optional[str] = None

    model_config = {"from_attributes": True}


class AuthResponse(BaseModel):
    """Returned by register, login and refresh. The refresh token travels only as a cookie."""

    model_config = ConfigDict(populate_by_name=True)

    user: UserProfile
    access_token: str = Field(..., alias="accessToken")
