"""Authentication and session schemas with validation."""

from pydantic import BaseModel, EmailStr, Field, validator
from typing import Optional


class Token(BaseModel):
    """JWT token response model."""
    access_token: str
    token_type: str = "bearer"
    expires_in: Optional[int] = None


class TokenData(BaseModel):
    """JWT token payload data."""
    user_id: Optional[str] = None
    session_id: Optional[str] = None


class Identity(BaseModel):
    """The signed-in identity every receipt operation is partitioned by."""
    id: str
    email: EmailStr


class UserLogin(BaseModel):
    """User login request with validation."""
    email: EmailStr = Field(..., description="User's email address")
    password: str = Field(
        ...,
        min_length=1,
        max_length=128,
        description="User's password"
    )

    @validator('email')
    def validate_email_format(cls, v):
        """Normalize email to lowercase."""
        email = str(v).lower().strip()

        if len(email) > 254:  # RFC 5321 limit
            raise ValueError("Email address too long")

        return email


class AuthResult(BaseModel):
    """Authentication operation result."""
    success: bool
    token: Optional[Token] = None
    identity: Optional[Identity] = None
    session_id: Optional[str] = None
    error_code: Optional[str] = None
    message: Optional[str] = None


class RegistrationResult(BaseModel):
    """User registration operation result."""
    success: bool
    user_id: Optional[str] = None
    error_code: Optional[str] = None
    message: Optional[str] = None
