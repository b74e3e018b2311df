"""
FilingDesk - User Model

Staff members of the practice. The engine only reads users (to validate
assignees and to capture actor names); account management belongs to the
auth collaborator.
"""

from enum import Enum

from sqlalchemy import Boolean, String, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from filingdesk.models.base import BaseModel


class UserRole(str, Enum):
    """Practice roles."""
    STAFF = "staff"
    MANAGER = "manager"
    PARTNER = "partner"
    ADMIN = "admin"


class User(BaseModel):
    """Practice staff member who can be assigned workflows."""

    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole),
        default=UserRole.STAFF,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
