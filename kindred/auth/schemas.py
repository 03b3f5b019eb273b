from datetime import datetime
from typing import Literal, Optional

from pydantic import EmailStr, Field, field_validator, model_validator

from kindred.core.schemas import CamelModel

Language = Literal["he", "en"]
TextSize = Literal["normal", "large", "extra-large"]

# bcrypt only looks at the first 72 bytes and current releases reject longer input
MAX_PASSWORD_BYTES = 72

# Profile fields a PATCH may set to null; flags and enums always keep a value
CLEARABLE_FIELDS = {
    "display_name",
    "phone_number",
    "emergency_contact_name",
    "emergency_contact_phone",
}


# Input schemas
class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    display_name: Optional[str] = None
    phone_number: Optional[str] = None
    preferred_language: Language = "he"

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
        return value


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class UpdatePreferencesRequest(CamelModel):
    display_name: Optional[str] = None
    phone_number: Optional[str] = None
    preferred_language: Optional[Language] = None
    text_size_preference: Optional[TextSize] = None
    high_contrast_mode: Optional[bool] = None
    voice_guidance_enabled: Optional[bool] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None

    @model_validator(mode="after")
    def only_free_text_may_be_cleared(self):
        for name in self.model_fields_set - CLEARABLE_FIELDS:
            if getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


# Output schemas
class UserOut(CamelModel):
    """Public view of a user. The password hash is deliberately absent."""

    id: int
    email: str
    display_name: Optional[str] = None
    phone_number: Optional[str] = None
    preferred_language: str
    text_size_preference: str
    high_contrast_mode: bool
    voice_guidance_enabled: bool
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    onboarding_completed: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SubscriptionOut(CamelModel):
    plan: str
    status: str
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None


class AuthResponse(CamelModel):
    user: UserOut
    token: str
    expires_at: datetime


class UserResponse(CamelModel):
    user: UserOut


class MeResponse(CamelModel):
    user: UserOut
    subscription: SubscriptionOut


class LogoutResponse(CamelModel):
    success: bool
    revoked: Optional[int] = None


class SubscriptionStatusResponse(CamelModel):
    is_premium: bool
    plan: str
    status: str
    current_period_end: Optional[datetime] = None
