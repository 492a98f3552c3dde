"""
Pydantic models for Auth system request/response validation.

Defines schemas for sign-up, login, tokens, sessions and auth methods.
"""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, EmailStr

from aang.auth.types import AuthMethodType, VerificationType


class SignupRole(str, Enum):
    """Roles an account may pick for itself."""
    CLIENT = "Client"
    DRIVER = "Driver"


class SignupRequest(BaseModel):
    """Request body for credentials sign-up."""
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    role: SignupRole = Field(default=SignupRole.CLIENT, description="Client | Driver")
    fullName: Optional[str] = Field(None, max_length=100)


class LoginRequest(BaseModel):
    """Request body for email + password login."""
    email: EmailStr
    password: str = Field(..., min_length=1)


class SocialSignInRequest(BaseModel):
    """Request body for Google sign-in."""
    idToken: str = Field(..., min_length=1, description="Google ID token from the client")
    provider: AuthMethodType = Field(default=AuthMethodType.GOOGLE, description="Only Google is supported")
    role: SignupRole = Field(default=SignupRole.CLIENT, description="Role for a newly created account")


class RefreshRequest(BaseModel):
    """Request body for token refresh."""
    refreshToken: Optional[str] = None


class TokenRequest(BaseModel):
    """Request body for issuing a verification code to the caller."""
    email: EmailStr
    type: VerificationType = Field(..., description="EmailVerification | PasswordReset | PinVerification")


class VerifyEmailRequest(BaseModel):
    """Request body for consuming an email verification code."""
    token: str = Field(..., min_length=4, max_length=10)


class ForgotPasswordRequest(BaseModel):
    """Request body for a password reset code."""
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    """Request body for resetting a password with an emailed code."""
    email: EmailStr
    token: str = Field(..., min_length=4, max_length=10)
    newPassword: str = Field(..., min_length=8, max_length=128)


class ChangePasswordRequest(BaseModel):
    """Request body for changing the password while signed in."""
    currentPassword: str = Field(..., min_length=1)
    newPassword: str = Field(..., min_length=8, max_length=128)
    refreshToken: Optional[str] = Field(None, description="Refresh token to keep signed in")


class RevokeAllSessionsRequest(BaseModel):
    """Optional body for revoking all other sessions."""
    refreshToken: Optional[str] = Field(None, description="Refresh token to keep signed in")


class LinkAuthMethodRequest(BaseModel):
    """Request body for linking an auth method."""
    type: AuthMethodType
    idToken: Optional[str] = Field(None, description="Required for Google")
    password: Optional[str] = Field(None, description="Required for Credentials")


class UnlinkAuthMethodRequest(BaseModel):
    """Request body for unlinking an auth method."""
    type: AuthMethodType
