"""Create approval chain tables

Revision ID: 0001_approval_chain
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '0001_approval_chain'
down_revision = None
branch_labels = None
depends_on = None


ENUMS = {
    'chainstatus': ('DRAFT', 'ACTIVE', 'ARCHIVED'),
    'triggercondition': (
        'WHEN_APPROVED',
        'WHEN_REJECTED',
        'WHEN_COMPLETED',
        'WHEN_FLAGGED',
        'WHEN_CLARIFICATION_REQUESTED',
    ),
    'initiatortype': ('SPECIFIC_ROLE', 'LAST_APPROVER'),
    'requeststatus': (
        'DRAFT',
        'SUBMITTED',
        'IN_REVIEW',
        'NEEDS_REVISION',
        'APPROVED',
        'REJECTED',
        'CANCELLED',
    ),
    'stepstatus': (
        'WAITING',
        'PENDING',
        'APPROVED',
        'REQUESTED_CLARIFICATION',
        'REQUESTED_REVISION',
    ),
    'historyaction': (
        'SUBMIT',
        'APPROVE',
        'REJECT',
        'SEND_BACK',
        'REQUEST_CLARIFICATION',
        'RESOLVE_CLARIFICATION',
        'ASK_PREVIOUS_SECTION',
        'CANCEL',
        'RESUBMIT',
        'COMMENT',
    ),
    'clarificationscope': ('CURRENT_SECTION_APPROVERS', 'PREVIOUS_SECTION_PARTICIPANTS'),
}


def _enum(name):
    # Types are created once up front; columns only reference them
    values = ENUMS[name]
    return sa.Enum(*values, name=name).with_variant(
        postgresql.ENUM(*values, name=name, create_type=False), 'postgresql'
    )


def _guid():
    return sa.String(36).with_variant(postgresql.UUID(as_uuid=False), 'postgresql')


def _json():
    return sa.Text().with_variant(postgresql.JSONB(), 'postgresql')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    if bind.dialect.name == 'postgresql':
        for name, values in ENUMS.items():
            postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    op.create_table('workflow_chains',
        sa.Column('id', _guid(), nullable=False),
        sa.Column('business_unit_id', _guid(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('is_latest', sa.Boolean(), nullable=False),
        sa.Column('status', _enum('chainstatus'), nullable=False),
        sa.Column('parent_chain_id', _guid(), nullable=True),
        sa.Column('created_by', _guid(), nullable=True),
        sa.Column('updated_by', _guid(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['parent_chain_id'], ['workflow_chains.id']),
        sa.UniqueConstraint('parent_chain_id', name='uq_workflow_chain_parent'),
    )
    op.create_index('ix_workflow_chains_business_unit_id', 'workflow_chains', ['business_unit_id'])
    op.create_index('ix_workflow_chains_bu_name', 'workflow_chains', ['business_unit_id', 'name'])

    op.create_table('workflow_sections',
        sa.Column('id', _guid(), nullable=False),
        sa.Column('chain_id', _guid(), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('form_template_id', _guid(), nullable=True),
        sa.Column('initiator_type', _enum('initiatortype'), nullable=False),
        sa.Column('initiator_role_ids', _json(), nullable=False),
        sa.Column('trigger_condition', _enum('triggercondition'), nullable=False),
        sa.Column('auto_trigger', sa.Boolean(), nullable=False),
        sa.Column('auto_submit', sa.Boolean(), nullable=False),
        sa.Column('target_template_id', _guid(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['chain_id'], ['workflow_chains.id']),
        sa.UniqueConstraint('chain_id', 'order', name='uq_workflow_section_order'),
    )

    op.create_table('workflow_section_steps',
        sa.Column('id', _guid(), nullable=False),
        sa.Column('section_id', _guid(), nullable=False),
        sa.Column('step_number', sa.Integer(), nullable=False),
        sa.Column('approver_role_id', sa.String(64), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['section_id'], ['workflow_sections.id']),
        sa.UniqueConstraint('section_id', 'step_number', name='uq_section_step_number'),
    )

    op.create_table('requests',
        sa.Column('id', _guid(), nullable=False),
        sa.Column('workflow_chain_id', _guid(), nullable=False),
        sa.Column('current_section_order', sa.Integer(), nullable=False),
        sa.Column('form_template_id', _guid(), nullable=True),
        sa.Column('business_unit_id', _guid(), nullable=False),
        sa.Column('organization_id', _guid(), nullable=True),
        sa.Column('initiator_id', _guid(), nullable=True),
        sa.Column('initiator_role_ids', _json(), nullable=True),
        sa.Column('status', _enum('requeststatus'), nullable=False),
        sa.Column('data', _json(), nullable=False),
        sa.Column('parent_request_id', _guid(), nullable=True),
        sa.Column('root_request_id', _guid(), nullable=True),
        sa.Column('skip_reason', sa.Text(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['workflow_chain_id'], ['workflow_chains.id']),
        sa.ForeignKeyConstraint(['parent_request_id'], ['requests.id']),
        sa.UniqueConstraint('parent_request_id', name='uq_request_parent'),
    )
    op.create_index('ix_requests_business_unit_id', 'requests', ['business_unit_id'])
    op.create_index('ix_requests_initiator_id', 'requests', ['initiator_id'])
    op.create_index('ix_requests_root_request_id', 'requests', ['root_request_id'])

    op.create_table('request_approval_steps',
        sa.Column('id', _guid(), nullable=False),
        sa.Column('request_id', _guid(), nullable=False),
        sa.Column('step_number', sa.Integer(), nullable=False),
        sa.Column('approver_role_id', sa.String(64), nullable=False),
        sa.Column('approver_id', _guid(), nullable=True),
        sa.Column('status', _enum('stepstatus'), nullable=False),
        sa.Column('actioned_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['request_id'], ['requests.id']),
        sa.UniqueConstraint('request_id', 'step_number', name='uq_request_step_number'),
    )

    op.create_table('request_history',
        sa.Column('id', _guid(), nullable=False),
        sa.Column('request_id', _guid(), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('actor_id', _guid(), nullable=False),
        sa.Column('action', _enum('historyaction'), nullable=False),
        sa.Column('comments', sa.Text(), nullable=True),
        sa.Column('from_status', _enum('requeststatus'), nullable=True),
        sa.Column('to_status', _enum('requeststatus'), nullable=True),
        sa.Column('from_step_number', sa.Integer(), nullable=True),
        sa.Column('to_step_number', sa.Integer(), nullable=True),
        sa.Column('metadata', _json(), nullable=True),
        sa.Column('scope', _enum('clarificationscope'), nullable=True),
        sa.Column('addressed_to', _json(), nullable=True),
        sa.Column('target_request_id', _guid(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('resolver_id', _guid(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['request_id'], ['requests.id']),
        sa.UniqueConstraint('request_id', 'sequence', name='uq_request_history_sequence'),
    )
    op.create_index(
        'ix_request_history_request_created', 'request_history', ['request_id', 'created_at']
    )

    op.create_table('user_role_assignments',
        sa.Column('id', _guid(), nullable=False),
        sa.Column('user_id', _guid(), nullable=False),
        sa.Column('business_unit_id', _guid(), nullable=False),
        sa.Column('role_id', sa.String(64), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'business_unit_id', 'role_id', name='uq_user_bu_role'),
    )
    op.create_index('ix_user_role_assignments_user_id', 'user_role_assignments', ['user_id'])
    op.create_index(
        'ix_user_role_assignments_business_unit_id', 'user_role_assignments', ['business_unit_id']
    )


def downgrade() -> None:
    op.drop_table('user_role_assignments')
    op.drop_table('request_history')
    op.drop_table('request_approval_steps')
    op.drop_table('requests')
    op.drop_table('workflow_section_steps')
    op.drop_table('workflow_sections')
    op.drop_table('workflow_chains')

    bind = op.get_bind()
    if bind.dialect.name == 'postgresql':
        for name, values in ENUMS.items():
            postgresql.ENUM(*values, name=name).drop(bind, checkfirst=True)
