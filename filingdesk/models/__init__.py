"""
FilingDesk - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from filingdesk.models.base import BaseModel, TimestampMixin
from filingdesk.models.user import User, UserRole
from filingdesk.models.client import Client, ServiceType, SERVICE_ASSIGNEE_COLUMNS
from filingdesk.models.workflow import (
    WorkflowType,
    WorkflowStage,
    HistoryEntryKind,
    WorkflowRecord,
    WorkflowHistoryEntry,
)
from filingdesk.models.filing import (
    Obligation,
    DeadlineSource,
    DeadlineStatus,
    FilingPeriod,
    FilingDeadline,
)

__all__ = [
    # Base
    "BaseModel",
    "TimestampMixin",
    # People
    "User",
    "UserRole",
    "Client",
    "ServiceType",
    "SERVICE_ASSIGNEE_COLUMNS",
    # Workflow
    "WorkflowType",
    "WorkflowStage",
    "HistoryEntryKind",
    "WorkflowRecord",
    "WorkflowHistoryEntry",
    # Filing
    "Obligation",
    "DeadlineSource",
    "DeadlineStatus",
    "FilingPeriod",
    "FilingDeadline",
]
