"""
FilingDesk - Client Model

Clients of the practice with their default and per-service assignees.
"""

import uuid
from datetime import date
from enum import Enum
from typing import Optional

from sqlalchemy import Date, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from filingdesk.models.base import BaseModel


class ServiceType(str, Enum):
    """Services the practice provides; each has its own assignee override."""
    VAT = "vat"
    LTD_ACCOUNTS = "ltd_accounts"
    NON_LTD_ACCOUNTS = "non_ltd_accounts"


# Column holding the per-service assignee override on Client
SERVICE_ASSIGNEE_COLUMNS = {
    ServiceType.VAT: "vat_assigned_user_id",
    ServiceType.LTD_ACCOUNTS: "ltd_assigned_user_id",
    ServiceType.NON_LTD_ACCOUNTS: "non_ltd_assigned_user_id",
}


class Client(BaseModel):
    """
    A client company or individual.

    ``assigned_user_id`` is the general default; the per-service columns
    override it for one service only.
    """

    __tablename__ = "clients"

    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    client_code: Mapped[Optional[str]] = mapped_column(String(50), unique=True, nullable=True)

    # Companies House data
    company_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    incorporation_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    last_confirmation_statement_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    accounting_reference_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
        comment="Last accounts made up to",
    )

    # Assignment
    assigned_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    vat_assigned_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    ltd_assigned_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    non_ltd_assigned_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    def service_assignee_id(self, service_type: ServiceType) -> Optional[uuid.UUID]:
        return getattr(self, SERVICE_ASSIGNEE_COLUMNS[service_type])

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, name={self.company_name})>"
