"""
FilingDesk - Stage Registry

Single source of truth for the ordered stage list of every workflow type,
the human labels, the milestone key stamped on first entry to each stage,
and which stages staff may select directly.

The registry is built once at import time and never mutated, so it can be
shared freely between concurrent callers. Looking up a stage that does not
belong to a workflow type is a programming error and raises immediately.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from filingdesk.models.workflow import WorkflowStage, WorkflowType

REGISTRY_VERSION = 1

SELF_FILING_MILESTONE = "client_self_filing"


@dataclass(frozen=True)
class StageDefinition:
    """Immutable description of one stage within a workflow type."""

    stage: WorkflowStage
    display_name: str
    milestone_key: str
    selectable: bool = True
    position: int = 0


# ===========================================
# LABELS AND MILESTONE KEYS
# ===========================================

STAGE_LABELS: Mapping[WorkflowStage, str] = MappingProxyType({
    WorkflowStage.WAITING_FOR_YEAR_END: "Waiting for Year End",
    WorkflowStage.PAPERWORK_PENDING_CHASE: "Pending to Chase Paperwork",
    WorkflowStage.PAPERWORK_CHASED: "Paperwork Chased",
    WorkflowStage.PAPERWORK_RECEIVED: "Paperwork Received",
    WorkflowStage.WORK_IN_PROGRESS: "Work in Progress",
    WorkflowStage.QUERIES_PENDING: "Queries Pending",
    WorkflowStage.REVIEW_PENDING_MANAGER: "Review Pending by Manager",
    WorkflowStage.DISCUSS_WITH_MANAGER: "To Discuss with Manager",
    WorkflowStage.REVIEWED_BY_MANAGER: "Reviewed by Manager",
    WorkflowStage.REVIEW_PENDING_PARTNER: "Review Pending by Partner",
    WorkflowStage.REVIEW_BY_PARTNER: "To Review by Partner",
    WorkflowStage.REVIEWED_BY_PARTNER: "Reviewed by Partner",
    WorkflowStage.EMAILED_TO_PARTNER: "Emailed to Partner",
    WorkflowStage.EMAILED_TO_CLIENT: "Emailed to Client",
    WorkflowStage.CLIENT_APPROVED: "Client Approved",
    WorkflowStage.REVIEW_DONE_HELLO_SIGN: "Review Done - Hello Sign to Client",
    WorkflowStage.SENT_TO_CLIENT_HELLO_SIGN: "Sent to Client on Hello Sign",
    WorkflowStage.APPROVED_BY_CLIENT: "Approved by Client",
    WorkflowStage.SUBMISSION_APPROVED_PARTNER: "Submission Approved by Partner",
    WorkflowStage.FILED_TO_COMPANIES_HOUSE: "Filed to Companies House",
    WorkflowStage.FILED_TO_HMRC: "Filed to HMRC",
    WorkflowStage.CLIENT_SELF_FILING: "Client Self-Filing",
})

MILESTONE_KEYS: Mapping[WorkflowStage, str] = MappingProxyType({
    WorkflowStage.WAITING_FOR_YEAR_END: "year_end_waiting",
    WorkflowStage.PAPERWORK_PENDING_CHASE: "chase_started",
    WorkflowStage.PAPERWORK_CHASED: "paperwork_chased",
    WorkflowStage.PAPERWORK_RECEIVED: "paperwork_received",
    WorkflowStage.WORK_IN_PROGRESS: "work_started",
    WorkflowStage.QUERIES_PENDING: "queries_raised",
    WorkflowStage.REVIEW_PENDING_MANAGER: "manager_review_requested",
    WorkflowStage.DISCUSS_WITH_MANAGER: "manager_discussion",
    WorkflowStage.REVIEWED_BY_MANAGER: "manager_reviewed",
    WorkflowStage.REVIEW_PENDING_PARTNER: "partner_review_requested",
    WorkflowStage.REVIEW_BY_PARTNER: "partner_review",
    WorkflowStage.REVIEWED_BY_PARTNER: "partner_reviewed",
    WorkflowStage.EMAILED_TO_PARTNER: "emailed_to_partner",
    WorkflowStage.EMAILED_TO_CLIENT: "emailed_to_client",
    WorkflowStage.CLIENT_APPROVED: "client_approved",
    WorkflowStage.REVIEW_DONE_HELLO_SIGN: "review_completed",
    WorkflowStage.SENT_TO_CLIENT_HELLO_SIGN: "sent_to_client",
    WorkflowStage.APPROVED_BY_CLIENT: "client_approved",
    WorkflowStage.SUBMISSION_APPROVED_PARTNER: "partner_approved",
    WorkflowStage.FILED_TO_COMPANIES_HOUSE: "filed_to_companies_house",
    WorkflowStage.FILED_TO_HMRC: "filed_to_hmrc",
    WorkflowStage.CLIENT_SELF_FILING: SELF_FILING_MILESTONE,
})

# Reached only through complete_review(), never by free selection
AUTO_SET_STAGES = frozenset({
    WorkflowStage.REVIEWED_BY_MANAGER,
    WorkflowStage.REVIEWED_BY_PARTNER,
})

REVIEW_COMPLETIONS: Mapping[WorkflowStage, WorkflowStage] = MappingProxyType({
    WorkflowStage.REVIEW_PENDING_MANAGER: WorkflowStage.REVIEWED_BY_MANAGER,
    WorkflowStage.DISCUSS_WITH_MANAGER: WorkflowStage.REVIEWED_BY_MANAGER,
    WorkflowStage.REVIEW_PENDING_PARTNER: WorkflowStage.REVIEWED_BY_PARTNER,
    WorkflowStage.REVIEW_BY_PARTNER: WorkflowStage.REVIEWED_BY_PARTNER,
})


# ===========================================
# ORDERED STAGE LISTS
# ===========================================

_VAT_ORDER = (
    WorkflowStage.PAPERWORK_PENDING_CHASE,
    WorkflowStage.PAPERWORK_CHASED,
    WorkflowStage.PAPERWORK_RECEIVED,
    WorkflowStage.WORK_IN_PROGRESS,
    WorkflowStage.QUERIES_PENDING,
    WorkflowStage.REVIEW_PENDING_MANAGER,
    WorkflowStage.REVIEWED_BY_MANAGER,
    WorkflowStage.REVIEW_PENDING_PARTNER,
    WorkflowStage.REVIEWED_BY_PARTNER,
    WorkflowStage.EMAILED_TO_PARTNER,
    WorkflowStage.EMAILED_TO_CLIENT,
    WorkflowStage.CLIENT_APPROVED,
    WorkflowStage.FILED_TO_HMRC,
)

_LTD_ORDER = (
    WorkflowStage.WAITING_FOR_YEAR_END,
    WorkflowStage.PAPERWORK_PENDING_CHASE,
    WorkflowStage.PAPERWORK_CHASED,
    WorkflowStage.PAPERWORK_RECEIVED,
    WorkflowStage.WORK_IN_PROGRESS,
    WorkflowStage.DISCUSS_WITH_MANAGER,
    WorkflowStage.REVIEWED_BY_MANAGER,
    WorkflowStage.REVIEW_BY_PARTNER,
    WorkflowStage.REVIEWED_BY_PARTNER,
    WorkflowStage.REVIEW_DONE_HELLO_SIGN,
    WorkflowStage.SENT_TO_CLIENT_HELLO_SIGN,
    WorkflowStage.APPROVED_BY_CLIENT,
    WorkflowStage.SUBMISSION_APPROVED_PARTNER,
    WorkflowStage.FILED_TO_COMPANIES_HOUSE,
    WorkflowStage.FILED_TO_HMRC,
)

# Sole traders and partnerships: no year-end wait, nothing to Companies House
_NON_LTD_ORDER = tuple(
    stage for stage in _LTD_ORDER
    if stage not in (WorkflowStage.WAITING_FOR_YEAR_END, WorkflowStage.FILED_TO_COMPANIES_HOUSE)
)


def _build(order: Tuple[WorkflowStage, ...]) -> Tuple[StageDefinition, ...]:
    return tuple(
        StageDefinition(
            stage=stage,
            display_name=STAGE_LABELS[stage],
            milestone_key=MILESTONE_KEYS[stage],
            selectable=stage not in AUTO_SET_STAGES,
            position=position,
        )
        for position, stage in enumerate(order)
    )


REGISTRY: Mapping[WorkflowType, Tuple[StageDefinition, ...]] = MappingProxyType({
    WorkflowType.VAT_QUARTER: _build(_VAT_ORDER),
    WorkflowType.LTD_ACCOUNTS: _build(_LTD_ORDER),
    WorkflowType.NON_LTD_ACCOUNTS: _build(_NON_LTD_ORDER),
})

_POSITIONS: Mapping[WorkflowType, Dict[WorkflowStage, int]] = MappingProxyType({
    workflow_type: {definition.stage: definition.position for definition in definitions}
    for workflow_type, definitions in REGISTRY.items()
})


# ===========================================
# LOOKUPS
# ===========================================

def definitions_for(workflow_type: WorkflowType) -> Tuple[StageDefinition, ...]:
    return REGISTRY[workflow_type]


def stages_for(workflow_type: WorkflowType) -> Tuple[WorkflowStage, ...]:
    """Ordered stage identifiers of a workflow type."""
    return tuple(definition.stage for definition in REGISTRY[workflow_type])


def display_name(stage: WorkflowStage) -> str:
    return STAGE_LABELS[stage]


def milestone_key(stage: WorkflowStage) -> str:
    return MILESTONE_KEYS[stage]


def contains(workflow_type: WorkflowType, stage: WorkflowStage) -> bool:
    return stage in _POSITIONS[workflow_type]


def index_of(workflow_type: WorkflowType, stage: WorkflowStage) -> int:
    """
    Position of a stage in its workflow type's ordered list.

    Raises:
        ValueError: the stage is not part of this workflow type
    """
    positions = _POSITIONS[workflow_type]
    if stage not in positions:
        raise ValueError(f"{stage} is not a stage of {workflow_type}")
    return positions[stage]


def is_past_stage(workflow_type: WorkflowType, a: WorkflowStage, b: WorkflowStage) -> bool:
    """True when stage ``a`` comes after stage ``b``."""
    return index_of(workflow_type, a) > index_of(workflow_type, b)


def is_selectable(workflow_type: WorkflowType, stage: WorkflowStage) -> bool:
    """Whether staff may move a record of this type straight to ``stage``."""
    return contains(workflow_type, stage) and stage not in AUTO_SET_STAGES


def selectable_stages(workflow_type: WorkflowType) -> Tuple[WorkflowStage, ...]:
    return tuple(d.stage for d in REGISTRY[workflow_type] if d.selectable)


def first_stage(workflow_type: WorkflowType) -> WorkflowStage:
    return REGISTRY[workflow_type][0].stage


def final_stage(workflow_type: WorkflowType) -> WorkflowStage:
    """Ordinary terminal stage (the last in the ordered list)."""
    return REGISTRY[workflow_type][-1].stage


def terminal_stages(workflow_type: WorkflowType) -> Tuple[WorkflowStage, ...]:
    return (final_stage(workflow_type), WorkflowStage.CLIENT_SELF_FILING)


def is_terminal(workflow_type: WorkflowType, stage: WorkflowStage) -> bool:
    return stage in terminal_stages(workflow_type)


def stages_after(workflow_type: WorkflowType, stage: WorkflowStage) -> Tuple[WorkflowStage, ...]:
    return stages_for(workflow_type)[index_of(workflow_type, stage) + 1:]


def auto_stage_after(workflow_type: WorkflowType, stage: WorkflowStage) -> Optional[WorkflowStage]:
    """The automatic "reviewed" stage reached by completing a review at ``stage``."""
    target = REVIEW_COMPLETIONS.get(stage)
    if target is None or not contains(workflow_type, stage) or not contains(workflow_type, target):
        return None
    return target
