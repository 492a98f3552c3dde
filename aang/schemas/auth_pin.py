"""
Pydantic models for AuthPin endpoints.

Format rules for the PIN itself are applied by the AuthPin service so the
error codes stay consistent. Schemas only bound lengths.
"""

from typing import Optional
from pydantic import BaseModel, Field, EmailStr


class SetPinRequest(BaseModel):
    pin: str = Field(..., max_length=6)
    confirmPin: str = Field(..., max_length=6)


class VerifyPinRequest(BaseModel):
    pin: str = Field(..., max_length=6)
    operation: str = Field(..., min_length=1, max_length=64, description="Operation being authorized")


class UpdatePinRequest(BaseModel):
    """Request body for changing the PIN with the current one."""
    currentPin: str = Field(..., max_length=6)
    newPin: str = Field(..., max_length=6)
    confirmNewPin: str = Field(..., max_length=6)
    token: Optional[str] = Field(None, pattern=r"^[A-Za-z0-9]{6}$", description="Accepted but not consumed")


class PinResetRequest(BaseModel):
    email: EmailStr


class ResetPinRequest(BaseModel):
    """Request body for resetting the PIN with an emailed code."""
    email: EmailStr
    token: str = Field(..., min_length=4, max_length=10)
    newPin: str = Field(..., max_length=6)
    confirmPin: str = Field(..., max_length=6)


class TogglePinRequest(BaseModel):
    enabled: bool
    pin: Optional[str] = Field(None, max_length=6, description="Required to enable")


class RemovePinRequest(BaseModel):
    """Either the PIN or the account password authorizes removal."""
    pin: Optional[str] = Field(None, max_length=6)
    password: Optional[str] = None
