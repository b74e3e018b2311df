"""
FilingDesk - Workflow Models

Workflow records (one per filing period) and their append-only stage
history.

History rows are immutable once flushed: ORM listeners refuse updates and
deletes so the audit trail cannot be rewritten through the session.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import (
    Boolean, DateTime, ForeignKey, Integer, JSON, String, Text, UniqueConstraint, Uuid,
    Enum as SQLEnum, event,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from filingdesk.models.base import BaseModel
from filingdesk.models.user import UserRole
from filingdesk.utils.error_handling import HistoryImmutableException


class WorkflowType(str, Enum):
    """Kinds of compliance workflow."""
    VAT_QUARTER = "vat_quarter"
    LTD_ACCOUNTS = "ltd_accounts"
    NON_LTD_ACCOUNTS = "non_ltd_accounts"


class WorkflowStage(str, Enum):
    """
    Every stage identifier used by any workflow type.

    Which stages belong to which type, and in what order, is defined by
    the stage registry. ``CLIENT_SELF_FILING`` is the terminal marker of
    the self-filing exit and is not part of any ordered list.
    """
    WAITING_FOR_YEAR_END = "waiting_for_year_end"
    PAPERWORK_PENDING_CHASE = "paperwork_pending_chase"
    PAPERWORK_CHASED = "paperwork_chased"
    PAPERWORK_RECEIVED = "paperwork_received"
    WORK_IN_PROGRESS = "work_in_progress"
    QUERIES_PENDING = "queries_pending"
    REVIEW_PENDING_MANAGER = "review_pending_manager"
    DISCUSS_WITH_MANAGER = "discuss_with_manager"
    REVIEWED_BY_MANAGER = "reviewed_by_manager"
    REVIEW_PENDING_PARTNER = "review_pending_partner"
    REVIEW_BY_PARTNER = "review_by_partner"
    REVIEWED_BY_PARTNER = "reviewed_by_partner"
    EMAILED_TO_PARTNER = "emailed_to_partner"
    EMAILED_TO_CLIENT = "emailed_to_client"
    CLIENT_APPROVED = "client_approved"
    REVIEW_DONE_HELLO_SIGN = "review_done_hello_sign"
    SENT_TO_CLIENT_HELLO_SIGN = "sent_to_client_hello_sign"
    APPROVED_BY_CLIENT = "approved_by_client"
    SUBMISSION_APPROVED_PARTNER = "submission_approved_partner"
    FILED_TO_COMPANIES_HOUSE = "filed_to_companies_house"
    FILED_TO_HMRC = "filed_to_hmrc"
    CLIENT_SELF_FILING = "client_self_filing"


class HistoryEntryKind(str, Enum):
    """How a history entry came about."""
    CREATED = "created"
    TRANSITION = "transition"
    AUTO_STAGE = "auto_stage"
    SELF_FILING = "self_filing"


class WorkflowRecord(BaseModel):
    """
    Operational state of one filing period.

    ``milestones`` maps a milestone key to ``{"at", "actor_id",
    "actor_name"}`` for the first entry into each stage. Always assign a
    new dict; in-place mutation is not tracked.

    ``version`` is the optimistic concurrency counter; a flush against a
    stale version raises ``StaleDataError``.
    """

    __tablename__ = "workflow_records"

    filing_period_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("filing_periods.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    workflow_type: Mapped[WorkflowType] = mapped_column(
        SQLEnum(WorkflowType),
        nullable=False,
        index=True,
    )

    # State
    current_stage: Mapped[WorkflowStage] = mapped_column(
        SQLEnum(WorkflowStage),
        nullable=False,
    )
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    milestones: Mapped[Dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        default=dict,
        nullable=False,
    )

    # Assignment
    assigned_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<WorkflowRecord(id={self.id}, type={self.workflow_type}, "
            f"stage={self.current_stage}, completed={self.is_completed})>"
        )


class WorkflowHistoryEntry(BaseModel):
    """
    One append-only row per successful stage change (including creation).

    The actor's name and role are captured at write time so the trail stays
    accurate if the user is later renamed or deactivated.
    """

    __tablename__ = "workflow_history"
    __table_args__ = (
        UniqueConstraint("workflow_record_id", "sequence"),
    )

    workflow_record_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("workflow_records.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    from_stage: Mapped[Optional[WorkflowStage]] = mapped_column(
        SQLEnum(WorkflowStage),
        nullable=True,
    )
    to_stage: Mapped[WorkflowStage] = mapped_column(
        SQLEnum(WorkflowStage),
        nullable=False,
    )
    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Actor
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    actor_name: Mapped[str] = mapped_column(String(255), nullable=False)
    actor_role: Mapped[Optional[UserRole]] = mapped_column(SQLEnum(UserRole), nullable=True)

    days_in_previous_stage: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    entry_kind: Mapped[HistoryEntryKind] = mapped_column(
        SQLEnum(HistoryEntryKind),
        default=HistoryEntryKind.TRANSITION,
        nullable=False,
    )
    is_backward: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<WorkflowHistoryEntry(record={self.workflow_record_id}, seq={self.sequence}, "
            f"{self.from_stage} -> {self.to_stage})>"
        )


# ===========================================
# APPEND-ONLY GUARD
# ===========================================

@event.listens_for(WorkflowHistoryEntry, "before_update")
def _refuse_history_update(mapper, connection, target):
    raise HistoryImmutableException(target.id, "update")


@event.listens_for(WorkflowHistoryEntry, "before_delete")
def _refuse_history_delete(mapper, connection, target):
    raise HistoryImmutableException(target.id, "delete")
