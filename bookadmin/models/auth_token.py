"""ORM model for single-use account tokens (password reset, account setup, email verification)."""

from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String

from bookadmin.models.base import Base, new_id, utcnow


class TokenPurpose(str, Enum):
    PASSWORD_RESET = "password_reset"
    ACCOUNT_SETUP = "account_setup"
    EMAIL_VERIFICATION = "email_verification"


class AuthenticationToken(Base):
    """Emailed, time-limited token; usable once, and only the newest per (user, purpose)."""

    __tablename__ = "authentication_tokens"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    token = Column(String(128), nullable=False, unique=True, index=True)
    purpose = Column(String(32), nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    is_used = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
