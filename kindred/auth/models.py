from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func

from kindred.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    email = Column(String, unique=True, index=True, nullable=False)

    # bcrypt hash; never serialized
    password_hash = Column(String, nullable=False)

    display_name = Column(String, nullable=True)
    phone_number = Column(String, nullable=True)

    # Accessibility preferences for the mobile app
    preferred_language = Column(String, default="he", nullable=False)  # "he" | "en"
    text_size_preference = Column(String, default="large", nullable=False)  # "normal" | "large" | "extra-large"
    high_contrast_mode = Column(Boolean, default=False, nullable=False)
    voice_guidance_enabled = Column(Boolean, default=True, nullable=False)

    emergency_contact_name = Column(String, nullable=True)
    emergency_contact_phone = Column(String, nullable=True)

    onboarding_completed = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())


class AuthSession(Base):
    """
    Bearer-token credential. Many per user; a token is only ever returned
    to the client at login/registration.
    """

    __tablename__ = "sessions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    token = Column(String(64), unique=True, index=True, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)

    # "free" | "premium"
    plan = Column(String, default="free", nullable=False)
    # "active" | "cancelled" | "expired"
    status = Column(String, default="active", nullable=False)

    current_period_start = Column(DateTime(timezone=True), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())
