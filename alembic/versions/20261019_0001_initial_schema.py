"""Initial schema - escrow release and audit lifecycle

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Users table
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), unique=True, nullable=False, index=True),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('role', sa.String(50), nullable=False, default='contributor'),
        sa.Column('status', sa.String(50), nullable=False, default='active'),
        sa.Column('capabilities', sa.JSON(), nullable=False),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('specializations', sa.JSON(), nullable=False),
        sa.Column('certifications', sa.JSON(), nullable=False),
        sa.Column('max_concurrent_audits', sa.Integer(), nullable=True),
        sa.Column('hourly_rate', sa.Integer(), nullable=True),
        sa.Column('min_hourly_rate', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Projects table
    op.create_table(
        'projects',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('category', sa.String(50), nullable=False, default='general'),
        sa.Column('status', sa.String(50), nullable=False, default='draft'),
        sa.Column('creator_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('collaborator_ids', sa.JSON(), nullable=False),
        sa.Column('funding_raised', sa.Integer(), nullable=False, default=0),
        sa.Column('funding_goal', sa.Integer(), nullable=False, default=0),
        sa.Column('currency', sa.String(3), nullable=False, default='EUR'),
        sa.Column('payout_account_id', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Milestones table
    op.create_table(
        'milestones',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('project_id', sa.Uuid(), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, default=0),
        sa.Column('status', sa.String(50), nullable=False, default='pending'),
        sa.Column('funding_percentage', sa.Float(), nullable=False),
        sa.Column('audit_required', sa.Boolean(), nullable=False, default=True),
        sa.Column('audit_status', sa.String(50), nullable=False, default='pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Contributions table (escrow state lives here)
    op.create_table(
        'contributions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('project_id', sa.Uuid(), sa.ForeignKey('projects.id'), nullable=False, index=True),
        sa.Column('contributor_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('status', sa.String(50), nullable=False, default='confirmed'),
        sa.Column('anonymous', sa.Boolean(), nullable=False, default=False),
        sa.Column('gross_amount', sa.Integer(), nullable=False),
        sa.Column('net_amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, default='EUR'),
        sa.Column('escrow_held', sa.Boolean(), nullable=False, default=True, index=True),
        sa.Column('escrow_held_amount', sa.Integer(), nullable=False, default=0),
        sa.Column('escrow_fully_released_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('escrow_release_reason', sa.String(50), nullable=True),
        sa.Column('escrow_released_by', sa.Uuid(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, default=1),
        sa.Column('release_claim_token', sa.String(64), nullable=True),
        sa.Column('release_claimed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Release schedule entries table
    op.create_table(
        'release_schedule_entries',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('contribution_id', sa.Uuid(), sa.ForeignKey('contributions.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('milestone_id', sa.Uuid(), nullable=True, index=True),
        sa.Column('position', sa.Integer(), nullable=False, default=0),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('release_condition', sa.String(50), nullable=False, default='milestone_completion'),
        sa.Column('released', sa.Boolean(), nullable=False, default=False),
        sa.Column('released_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('transfer_id', sa.String(255), nullable=True),
        sa.Column('released_by', sa.Uuid(), nullable=True),
    )

    # Escrow release ledger (append-only)
    op.create_table(
        'escrow_releases',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('contribution_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('project_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('release_type', sa.String(50), nullable=False),
        sa.Column('milestone_id', sa.Uuid(), nullable=True),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('transfer_id', sa.String(255), nullable=False, unique=True),
        sa.Column('contributor_id', sa.Uuid(), nullable=False),
        sa.Column('creator_id', sa.Uuid(), nullable=False),
        sa.Column('released_by', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_escrow_releases_project_milestone', 'escrow_releases', ['project_id', 'milestone_id'])

    # Audits table
    op.create_table(
        'audits',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('project_id', sa.Uuid(), sa.ForeignKey('projects.id'), nullable=False, index=True),
        sa.Column('milestone_id', sa.Uuid(), sa.ForeignKey('milestones.id'), nullable=True),
        sa.Column('project_creator_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('project_category', sa.String(50), nullable=False),
        sa.Column('auditor_id', sa.Uuid(), sa.ForeignKey('users.id'), nullable=False, index=True),
        sa.Column('status', sa.String(50), nullable=False, default='assigned', index=True),
        sa.Column('specializations', sa.JSON(), nullable=False),
        sa.Column('priority', sa.String(20), nullable=False, default='medium'),
        sa.Column('estimated_hours', sa.Integer(), nullable=False),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('deadline', sa.DateTime(timezone=True), nullable=False),
        sa.Column('estimated_completion', sa.DateTime(timezone=True), nullable=True),
        sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('compensation_amount', sa.Integer(), nullable=False),
        sa.Column('compensation_currency', sa.String(3), nullable=False, default='EUR'),
        sa.Column('compensation_terms', sa.String(50), nullable=False, default='payment_on_completion'),
        sa.Column('compensation_status', sa.String(20), nullable=False, default='pending'),
        sa.Column('criteria', sa.JSON(), nullable=False),
        sa.Column('required_documents', sa.JSON(), nullable=False),
        sa.Column('assigned_by', sa.Uuid(), nullable=False),
        sa.Column('assignment_notes', sa.Text(), nullable=True),
        sa.Column('acceptance_note', sa.Text(), nullable=True),
        sa.Column('proposed_timeline', sa.JSON(), nullable=False),
        sa.Column('requested_resources', sa.JSON(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, default=1),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Audit workspaces table
    op.create_table(
        'audit_workspaces',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('audit_id', sa.Uuid(), sa.ForeignKey('audits.id'), nullable=False, unique=True),
        sa.Column('project_id', sa.Uuid(), nullable=False),
        sa.Column('auditor_id', sa.Uuid(), nullable=False),
        sa.Column('documents', sa.JSON(), nullable=False),
        sa.Column('milestone_reviews', sa.JSON(), nullable=False),
        sa.Column('checklist', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Event logs table (append-only)
    op.create_table(
        'event_logs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('event_type', sa.String(100), nullable=False, index=True),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.Uuid(), nullable=False, index=True),
        sa.Column('user_id', sa.Uuid(), nullable=True, index=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('request_id', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
    )
    op.create_index('ix_event_logs_entity', 'event_logs', ['entity_type', 'entity_id'])
    op.create_index('ix_event_logs_type_time', 'event_logs', ['event_type', 'created_at'])


def downgrade() -> None:
    op.drop_table('event_logs')
    op.drop_table('audit_workspaces')
    op.drop_table('audits')
    op.drop_table('escrow_releases')
    op.drop_table('release_schedule_entries')
    op.drop_table('contributions')
    op.drop_table('milestones')
    op.drop_table('projects')
    op.drop_table('users')
