"""ORM model for user accounts."""

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String

from bookadmin.models.base import Base, new_id, utcnow


class Account(Base):
    """
    A person who can sign in.

    password_hash is NULL for accounts pre-created by a company owner and not yet claimed.
    role and company_id are the legacy single-role columns kept during the move to
    users_role; once role assignments exist they are not the source of truth.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=True)
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    phone = Column(String(50), nullable=True)
    preferences = Column(JSON, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_verified = Column(Boolean, nullable=False, default=False)
    role = Column(Integer, nullable=True)
    company_id = Column(String(36), nullable=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()
