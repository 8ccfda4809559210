"""
User and Role Models
====================

Accounts are never physically deleted; ``is_active`` turns them off.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, String, UniqueConstraint, false
from sqlalchemy.orm import Mapped, mapped_column, relationship

from s2s_api.models.base import Base, TimestampMixin, UUIDMixin


DEFAULT_ROLE = "user"


class User(Base, UUIDMixin, TimestampMixin):
    """
    User model.

    Attributes:
        email: Unique email address, stored lowercased
        password_hash: Bcrypt hash of the password
        full_name: Display name
        organization: Free-form affiliation
        is_active: Whether the user can log in and use API keys
        email_verified: Whether the address was confirmed by link
        verification_token: SHA-256 digest of the pending verification token
        reset_token: SHA-256 digest of the pending password reset token
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
        doc="User email address (unique, lowercased)",
    )
    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Bcrypt-hashed password",
    )
    full_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    organization: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        doc="Whether user account is active",
    )
    last_login_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    email_verified: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        server_default=false(),
        nullable=False,
    )
    # Only digests are stored; the plaintext goes out by email
    verification_token: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    verification_token_expires: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reset_token: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    reset_token_expires: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    roles: Mapped[List["UserRole"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def role_names(self) -> list[str]:
        return sorted(r.role for r in self.roles)

    def __repr__(self) -> str:
        return f"<User {self.email}>"


class UserRole(Base):
    """Role string held by a user (e.g. ``user``, ``admin``)."""

    __tablename__ = "user_roles"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[str] = mapped_column(String(50), nullable=False, default=DEFAULT_ROLE)

    user: Mapped[User] = relationship(back_populates="roles")

    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
    )
