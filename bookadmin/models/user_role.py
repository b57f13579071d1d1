"""ORM model for per-user, per-company role assignments (users_role)."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)

from bookadmin.models.base import Base, new_id, utcnow

USER_ROLE_TABLE = "users_role"


class UserRoleAssignment(Base):
    """
    One elevated role held by a user, globally (company_id NULL, system admins only)
    or within one company. USER (3) is implicit and never stored.
    """

    __tablename__ = USER_ROLE_TABLE
    __table_args__ = (
        CheckConstraint("role IN (0, 1, 2)", name="ck_users_role_elevated"),
        Index("ix_users_role_user_company_role", "user_id", "company_id", "role"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role = Column(Integer, nullable=False)
    company_id = Column(String(36), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=utcnow)
