"""
FilingDesk - Stage Registry Tests

Tests for the ordered stage lists, labels, selectability and ordering.
"""

import pytest

from filingdesk.models import WorkflowStage, WorkflowType
from filingdesk.services import stage_registry


# =============================================================================
# ORDERED LISTS
# =============================================================================

class TestStageLists:
    """Stage lists per workflow type."""

    def test_vat_stages_in_order(self):
        stages = stage_registry.stages_for(WorkflowType.VAT_QUARTER)
        assert stages[0] == WorkflowStage.PAPERWORK_PENDING_CHASE
        assert stages[-1] == WorkflowStage.FILED_TO_HMRC
        assert len(stages) == 13
        assert stages.index(WorkflowStage.REVIEW_PENDING_MANAGER) < stages.index(WorkflowStage.REVIEWED_BY_MANAGER)

    def test_ltd_starts_waiting_for_year_end(self):
        stages = stage_registry.stages_for(WorkflowType.LTD_ACCOUNTS)
        assert stage_registry.first_stage(WorkflowType.LTD_ACCOUNTS) == WorkflowStage.WAITING_FOR_YEAR_END
        assert WorkflowStage.FILED_TO_COMPANIES_HOUSE in stages
        assert len(stages) == 15

    def test_non_ltd_has_no_companies_house_stages(self):
        stages = stage_registry.stages_for(WorkflowType.NON_LTD_ACCOUNTS)
        assert WorkflowStage.WAITING_FOR_YEAR_END not in stages
        assert WorkflowStage.FILED_TO_COMPANIES_HOUSE not in stages
        assert stages[0] == WorkflowStage.PAPERWORK_PENDING_CHASE
        assert len(stages) == 13

    def test_self_filing_marker_not_in_any_list(self):
        for workflow_type in WorkflowType:
            assert WorkflowStage.CLIENT_SELF_FILING not in stage_registry.stages_for(workflow_type)

    def test_milestone_keys_unique_within_type(self):
        for workflow_type in WorkflowType:
            keys = [d.milestone_key for d in stage_registry.definitions_for(workflow_type)]
            assert len(keys) == len(set(keys))

    def test_registry_is_read_only(self):
        with pytest.raises(TypeError):
            stage_registry.REGISTRY[WorkflowType.VAT_QUARTER] = ()

        definition = stage_registry.definitions_for(WorkflowType.VAT_QUARTER)[0]
        with pytest.raises(AttributeError):
            definition.display_name = "Renamed"


# =============================================================================
# LOOKUPS
# =============================================================================

class TestLookups:
    """Labels, positions and selectability."""

    def test_display_name(self):
        assert stage_registry.display_name(WorkflowStage.FILED_TO_HMRC) == "Filed to HMRC"
        assert stage_registry.display_name(WorkflowStage.PAPERWORK_PENDING_CHASE) == "Pending to Chase Paperwork"

    def test_index_and_is_past_stage(self):
        vat = WorkflowType.VAT_QUARTER
        assert stage_registry.index_of(vat, WorkflowStage.PAPERWORK_PENDING_CHASE) == 0
        assert stage_registry.index_of(vat, WorkflowStage.FILED_TO_HMRC) == 12
        assert stage_registry.is_past_stage(vat, WorkflowStage.WORK_IN_PROGRESS, WorkflowStage.PAPERWORK_RECEIVED)
        assert not stage_registry.is_past_stage(vat, WorkflowStage.PAPERWORK_RECEIVED, WorkflowStage.WORK_IN_PROGRESS)

    def test_index_of_foreign_stage_fails_fast(self):
        with pytest.raises(ValueError):
            stage_registry.index_of(WorkflowType.VAT_QUARTER, WorkflowStage.FILED_TO_COMPANIES_HOUSE)

    def test_unknown_workflow_type_fails_fast(self):
        with pytest.raises(KeyError):
            stage_registry.stages_for("payroll")

    def test_auto_set_stages_not_selectable(self):
        vat = WorkflowType.VAT_QUARTER
        assert not stage_registry.is_selectable(vat, WorkflowStage.REVIEWED_BY_MANAGER)
        assert not stage_registry.is_selectable(vat, WorkflowStage.REVIEWED_BY_PARTNER)
        assert not stage_registry.is_selectable(vat, WorkflowStage.CLIENT_SELF_FILING)
        assert stage_registry.is_selectable(vat, WorkflowStage.WORK_IN_PROGRESS)

    def test_selectable_stages_excludes_auto_stages(self):
        selectable = stage_registry.selectable_stages(WorkflowType.LTD_ACCOUNTS)
        assert WorkflowStage.REVIEWED_BY_MANAGER not in selectable
        assert len(selectable) == 13

    def test_terminal_stages(self):
        for workflow_type in WorkflowType:
            assert stage_registry.is_terminal(workflow_type, WorkflowStage.FILED_TO_HMRC)
            assert stage_registry.is_terminal(workflow_type, WorkflowStage.CLIENT_SELF_FILING)
            assert not stage_registry.is_terminal(workflow_type, stage_registry.first_stage(workflow_type))

    def test_auto_stage_after_review_pending(self):
        assert stage_registry.auto_stage_after(
            WorkflowType.VAT_QUARTER, WorkflowStage.REVIEW_PENDING_PARTNER
        ) == WorkflowStage.REVIEWED_BY_PARTNER
        assert stage_registry.auto_stage_after(
            WorkflowType.LTD_ACCOUNTS, WorkflowStage.DISCUSS_WITH_MANAGER
        ) == WorkflowStage.REVIEWED_BY_MANAGER

    def test_auto_stage_after_other_stage_is_none(self):
        assert stage_registry.auto_stage_after(
            WorkflowType.VAT_QUARTER, WorkflowStage.WORK_IN_PROGRESS
        ) is None
        # DISCUSS_WITH_MANAGER is not a VAT stage
        assert stage_registry.auto_stage_after(
            WorkflowType.VAT_QUARTER, WorkflowStage.DISCUSS_WITH_MANAGER
        ) is None
