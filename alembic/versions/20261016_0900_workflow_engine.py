"""Create compliance workflow tables

Revision ID: 20261016_0900_workflow_engine
Revises:
Create Date: 2026-10-16 09:00:00.000000

This migration creates the workflow engine schema:
- users, clients: staff and clients with per-service assignees
- filing_periods, filing_deadlines: statutory windows and their due dates
- workflow_records: stage state per filing period (optimistic version)
- workflow_history: append-only audit trail of stage changes
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = '20261016_0900_workflow_engine'
down_revision = None
branch_labels = None
depends_on = None


WORKFLOW_TYPES = ('VAT_QUARTER', 'LTD_ACCOUNTS', 'NON_LTD_ACCOUNTS')

WORKFLOW_STAGES = (
    'WAITING_FOR_YEAR_END', 'PAPERWORK_PENDING_CHASE', 'PAPERWORK_CHASED',
    'PAPERWORK_RECEIVED', 'WORK_IN_PROGRESS', 'QUERIES_PENDING',
    'REVIEW_PENDING_MANAGER', 'DISCUSS_WITH_MANAGER', 'REVIEWED_BY_MANAGER',
    'REVIEW_PENDING_PARTNER', 'REVIEW_BY_PARTNER', 'REVIEWED_BY_PARTNER',
    'EMAILED_TO_PARTNER', 'EMAILED_TO_CLIENT', 'CLIENT_APPROVED',
    'REVIEW_DONE_HELLO_SIGN', 'SENT_TO_CLIENT_HELLO_SIGN', 'APPROVED_BY_CLIENT',
    'SUBMISSION_APPROVED_PARTNER', 'FILED_TO_COMPANIES_HOUSE', 'FILED_TO_HMRC',
    'CLIENT_SELF_FILING',
)

OBLIGATIONS = (
    'VAT_RETURN', 'ANNUAL_ACCOUNTS', 'CORPORATION_TAX_PAYMENT',
    'CT600_RETURN', 'CONFIRMATION_STATEMENT', 'SELF_ASSESSMENT',
)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    """Create workflow engine tables."""

    user_role = postgresql.ENUM('STAFF', 'MANAGER', 'PARTNER', 'ADMIN', name='userrole', create_type=False)
    workflow_type = postgresql.ENUM(*WORKFLOW_TYPES, name='workflowtype', create_type=False)
    workflow_stage = postgresql.ENUM(*WORKFLOW_STAGES, name='workflowstage', create_type=False)
    entry_kind = postgresql.ENUM('CREATED', 'TRANSITION', 'AUTO_STAGE', 'SELF_FILING', name='historyentrykind', create_type=False)
    obligation = postgresql.ENUM(*OBLIGATIONS, name='obligation', create_type=False)
    deadline_source = postgresql.ENUM('AUTO', 'MANUAL', name='deadlinesource', create_type=False)

    bind = op.get_bind()
    for enum_type in (user_role, workflow_type, workflow_stage, entry_kind, obligation, deadline_source):
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('role', user_role, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
        sa.UniqueConstraint('email', name='uq_users_email'),
    )
    op.create_index('ix_users_email', 'users', ['email'])

    op.create_table(
        'clients',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('company_name', sa.String(255), nullable=False),
        sa.Column('client_code', sa.String(50), nullable=True),
        sa.Column('company_number', sa.String(20), nullable=True),
        sa.Column('incorporation_date', sa.Date(), nullable=True),
        sa.Column('last_confirmation_statement_date', sa.Date(), nullable=True),
        sa.Column('accounting_reference_date', sa.Date(), nullable=True, comment='Last accounts made up to'),
        sa.Column('assigned_user_id', sa.Uuid(), nullable=True),
        sa.Column('vat_assigned_user_id', sa.Uuid(), nullable=True),
        sa.Column('ltd_assigned_user_id', sa.Uuid(), nullable=True),
        sa.Column('non_ltd_assigned_user_id', sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_clients'),
        sa.UniqueConstraint('client_code', name='uq_clients_client_code'),
        sa.ForeignKeyConstraint(['assigned_user_id'], ['users.id'], name='fk_clients_assigned_user_id_users', ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['vat_assigned_user_id'], ['users.id'], name='fk_clients_vat_assigned_user_id_users', ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['ltd_assigned_user_id'], ['users.id'], name='fk_clients_ltd_assigned_user_id_users', ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['non_ltd_assigned_user_id'], ['users.id'], name='fk_clients_non_ltd_assigned_user_id_users', ondelete='SET NULL'),
    )

    op.create_table(
        'filing_periods',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('client_id', sa.Uuid(), nullable=False),
        sa.Column('workflow_type', workflow_type, nullable=False),
        sa.Column('period_start', sa.Date(), nullable=False),
        sa.Column('period_end', sa.Date(), nullable=False),
        sa.Column('quarter_group', sa.String(20), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_filing_periods'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], name='fk_filing_periods_client_id_clients', ondelete='CASCADE'),
        sa.CheckConstraint('period_start < period_end', name='ck_filing_periods_period_bounds'),
    )
    op.create_index('ix_filing_periods_client_id', 'filing_periods', ['client_id'])

    op.create_table(
        'filing_deadlines',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('filing_period_id', sa.Uuid(), nullable=False),
        sa.Column('obligation', obligation, nullable=False),
        sa.Column('computed_date', sa.Date(), nullable=True),
        sa.Column('manual_date', sa.Date(), nullable=True),
        sa.Column('source', deadline_source, nullable=False),
        sa.Column('overridden_by_id', sa.Uuid(), nullable=True),
        sa.Column('overridden_by_name', sa.String(255), nullable=True),
        sa.Column('overridden_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_filing_deadlines'),
        sa.ForeignKeyConstraint(['filing_period_id'], ['filing_periods.id'], name='fk_filing_deadlines_filing_period_id_filing_periods', ondelete='CASCADE'),
        sa.UniqueConstraint('filing_period_id', 'obligation', name='uq_filing_deadlines_filing_period_id'),
    )
    op.create_index('ix_filing_deadlines_filing_period_id', 'filing_deadlines', ['filing_period_id'])

    op.create_table(
        'workflow_records',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('filing_period_id', sa.Uuid(), nullable=False),
        sa.Column('workflow_type', workflow_type, nullable=False),
        sa.Column('current_stage', workflow_stage, nullable=False),
        sa.Column('is_completed', sa.Boolean(), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('milestones', postgresql.JSONB(), nullable=False),
        sa.Column('assigned_user_id', sa.Uuid(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_workflow_records'),
        sa.UniqueConstraint('filing_period_id', name='uq_workflow_records_filing_period_id'),
        sa.ForeignKeyConstraint(['filing_period_id'], ['filing_periods.id'], name='fk_workflow_records_filing_period_id_filing_periods', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['assigned_user_id'], ['users.id'], name='fk_workflow_records_assigned_user_id_users', ondelete='SET NULL'),
    )
    op.create_index('ix_workflow_records_workflow_type', 'workflow_records', ['workflow_type'])
    op.create_index('ix_workflow_records_assigned_user_id', 'workflow_records', ['assigned_user_id'])

    op.create_table(
        'workflow_history',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('workflow_record_id', sa.Uuid(), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('from_stage', workflow_stage, nullable=True),
        sa.Column('to_stage', workflow_stage, nullable=False),
        sa.Column('changed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('actor_id', sa.Uuid(), nullable=True),
        sa.Column('actor_name', sa.String(255), nullable=False),
        sa.Column('actor_role', user_role, nullable=True),
        sa.Column('days_in_previous_stage', sa.Integer(), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('entry_kind', entry_kind, nullable=False),
        sa.Column('is_backward', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_workflow_history'),
        sa.ForeignKeyConstraint(['workflow_record_id'], ['workflow_records.id'], name='fk_workflow_history_workflow_record_id_workflow_records', ondelete='CASCADE'),
        sa.UniqueConstraint('workflow_record_id', 'sequence', name='uq_workflow_history_workflow_record_id'),
    )
    op.create_index('ix_workflow_history_workflow_record_id', 'workflow_history', ['workflow_record_id'])


def downgrade() -> None:
    """Drop workflow engine tables."""
    op.drop_table('workflow_history')
    op.drop_table('workflow_records')
    op.drop_table('filing_deadlines')
    op.drop_table('filing_periods')
    op.drop_table('clients')
    op.drop_table('users')

    bind = op.get_bind()
    for name in ('deadlinesource', 'obligation', 'historyentrykind', 'workflowstage', 'workflowtype', 'userrole'):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
