"""
FilingDesk - Services Package

Business logic services.
"""

from filingdesk.services.history_log import HistoryLog
from filingdesk.services.transition_engine import TransitionEngine
from filingdesk.services.assignment_service import AssignmentService, effective_assignee
from filingdesk.services.deadline_service import DeadlineService
from filingdesk.services.workflow_analytics import WorkflowAnalytics
from filingdesk.services.workflow_engine import WorkflowEngine

__all__ = [
    "HistoryLog",
    "TransitionEngine",
    "AssignmentService",
    "effective_assignee",
    "DeadlineService",
    "WorkflowAnalytics",
    "WorkflowEngine",
]
