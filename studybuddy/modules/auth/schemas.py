from pydantic import BaseModel, EmailStr
from typing import Optional


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    email: str


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    full_name: Optional[str] = None


class RegisterResponse(BaseModel):
    user_id: str
    email: str
    message: str


class SessionUser(BaseModel):
    """Read-only projection of the identity provider's user."""
    id: str
    email: str = ""


class ConfirmationResult(BaseModel):
    status: str  # invalid | already_confirmed | expired | confirmed
    user_id: Optional[str] = None
