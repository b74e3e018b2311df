"""
FilingDesk - Filing Period Models

Filing periods (a VAT quarter or an accounting year) and the statutory
deadlines they generate, including manual overrides.
"""

import uuid
from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    CheckConstraint, Date, DateTime, ForeignKey, String, UniqueConstraint, Uuid,
    Enum as SQLEnum,
)
from sqlalchemy.orm import Mapped, mapped_column

from filingdesk.models.base import BaseModel
from filingdesk.models.workflow import WorkflowType


class Obligation(str, Enum):
    """Statutory obligations a filing period can generate."""
    VAT_RETURN = "vat_return"
    ANNUAL_ACCOUNTS = "annual_accounts"
    CORPORATION_TAX_PAYMENT = "corporation_tax_payment"
    CT600_RETURN = "ct600_return"
    CONFIRMATION_STATEMENT = "confirmation_statement"
    SELF_ASSESSMENT = "self_assessment"


class DeadlineSource(str, Enum):
    """Whether a due date is calculated or entered by staff."""
    AUTO = "auto"
    MANUAL = "manual"


class DeadlineStatus(str, Enum):
    """Display signal for a due date relative to today."""
    OVERDUE = "overdue"
    DUE_SOON = "due_soon"
    UPCOMING = "upcoming"
    PENDING = "pending"


class FilingPeriod(BaseModel):
    """
    Statutory window for one client and workflow type.

    ``quarter_group`` is the VAT stagger label (``1_4_7_10`` etc.) and is
    only set for VAT quarters.
    """

    __tablename__ = "filing_periods"
    __table_args__ = (
        CheckConstraint("period_start < period_end", name="period_bounds"),
    )

    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    workflow_type: Mapped[WorkflowType] = mapped_column(
        SQLEnum(WorkflowType),
        nullable=False,
    )
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    quarter_group: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    @property
    def label(self) -> str:
        return f"{self.period_start.isoformat()} to {self.period_end.isoformat()}"

    def __repr__(self) -> str:
        return f"<FilingPeriod(id={self.id}, type={self.workflow_type}, {self.label})>"


class FilingDeadline(BaseModel):
    """
    Due date of one obligation of a filing period.

    ``computed_date`` is always the calculator's answer (None when it cannot
    be determined yet). ``manual_date`` wins while ``source`` is MANUAL.
    """

    __tablename__ = "filing_deadlines"
    __table_args__ = (
        UniqueConstraint("filing_period_id", "obligation"),
    )

    filing_period_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("filing_periods.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    obligation: Mapped[Obligation] = mapped_column(SQLEnum(Obligation), nullable=False)

    computed_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    manual_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    source: Mapped[DeadlineSource] = mapped_column(
        SQLEnum(DeadlineSource),
        default=DeadlineSource.AUTO,
        nullable=False,
    )

    # Override audit
    overridden_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    overridden_by_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    overridden_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def effective_date(self) -> Optional[date]:
        if self.source == DeadlineSource.MANUAL:
            return self.manual_date
        return self.computed_date

    def __repr__(self) -> str:
        return (
            f"<FilingDeadline(period={self.filing_period_id}, {self.obligation}, "
            f"{self.effective_date}, {self.source})>"
        )
