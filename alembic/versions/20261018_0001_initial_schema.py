"""Initial schema - principals, roles, grants, assignments, delegations, audit

Revision ID: 0001
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

LIVE = sa.text('deleted_at IS NULL')


def upgrade() -> None:
    # Principals (mirrored from the identity provider)
    op.create_table(
        'principals',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), unique=True, nullable=False, index=True),
        sa.Column('display_name', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, default=True),
        sa.Column('deleted_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    )

    # Roles
    op.create_table(
        'roles',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('tag', sa.String(50), nullable=False, index=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_system', sa.Boolean(), nullable=False, default=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, default=True),
        sa.Column('deleted_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('uq_roles_name_live', 'roles', ['name'], unique=True,
                    postgresql_where=LIVE, sqlite_where=LIVE)
    op.create_index('uq_roles_tag_live', 'roles', ['tag'], unique=True,
                    postgresql_where=LIVE, sqlite_where=LIVE)

    # Permissions
    op.create_table(
        'permissions',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(150), nullable=False),
        sa.Column('resource', sa.String(100), nullable=False),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_system', sa.Boolean(), nullable=False, default=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, default=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('uq_permissions_name_live', 'permissions', ['name'], unique=True,
                    postgresql_where=LIVE, sqlite_where=LIVE)
    op.create_index('uq_permissions_resource_action_live', 'permissions',
                    ['resource', 'action'], unique=True,
                    postgresql_where=LIVE, sqlite_where=LIVE)

    # Role grants
    op.create_table(
        'role_grants',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('role_id', sa.Uuid(), sa.ForeignKey('roles.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('permission_id', sa.Uuid(),
                  sa.ForeignKey('permissions.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('granted_by', sa.Uuid(), sa.ForeignKey('principals.id', ondelete='SET NULL'),
                  nullable=True),
        sa.Column('granted_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, default=True),
        sa.Column('deleted_by', sa.Uuid(), nullable=True),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('uq_role_grants_live', 'role_grants', ['role_id', 'permission_id'],
                    unique=True, postgresql_where=LIVE, sqlite_where=LIVE)

    # Role assignments
    op.create_table(
        'role_assignments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('principal_id', sa.Uuid(),
                  sa.ForeignKey('principals.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('role_id', sa.Uuid(), sa.ForeignKey('roles.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('assigned_by', sa.Uuid(),
                  sa.ForeignKey('principals.id', ondelete='SET NULL'), nullable=True),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('scope', sa.String(100), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, default='active', index=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, default=True),
        sa.Column('deleted_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('uq_role_assignments_live', 'role_assignments',
                    ['principal_id', 'role_id'], unique=True,
                    postgresql_where=LIVE, sqlite_where=LIVE)
    op.create_index('ix_role_assignments_expiry', 'role_assignments',
                    ['is_active', 'expires_at'])

    # Delegations
    op.create_table(
        'role_delegations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('delegator_id', sa.Uuid(),
                  sa.ForeignKey('principals.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('delegate_id', sa.Uuid(),
                  sa.ForeignKey('principals.id', ondelete='CASCADE'),
                  nullable=False, index=True),
        sa.Column('role_tags', sa.JSON(), nullable=False),
        sa.Column('scope', sa.String(100), nullable=True),
        sa.Column('ends_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, default=True),
        sa.Column('revoked_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    )

    # Scheduled tasks (role expirations)
    op.create_table(
        'scheduled_tasks',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('task_type', sa.String(50), nullable=False),
        sa.Column('execute_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('processed', sa.Boolean(), nullable=False, default=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('outcome', sa.String(50), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_scheduled_tasks_due', 'scheduled_tasks', ['processed', 'execute_at'])

    # Audit records (append-only)
    op.create_table(
        'audit_records',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('entity_name', sa.String(100), nullable=False),
        sa.Column('record_id', sa.Uuid(), nullable=False),
        sa.Column('action', sa.String(50), nullable=False, index=True),
        sa.Column('before_state', sa.JSON(), nullable=True),
        sa.Column('after_state', sa.JSON(), nullable=True),
        sa.Column('actor_id', sa.Uuid(), nullable=True, index=True),
        sa.Column('subject_id', sa.Uuid(), nullable=True, index=True),
        sa.Column('context', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, index=True),
    )
    op.create_index('ix_audit_records_entity', 'audit_records', ['entity_name', 'record_id'])
    op.create_index('ix_audit_records_subject_time', 'audit_records',
                    ['subject_id', 'created_at'])

    # Activity feed
    op.create_table(
        'activity_records',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('principal_id', sa.Uuid(), nullable=False),
        sa.Column('activity_type', sa.String(50), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_activity_records_principal_time', 'activity_records',
                    ['principal_id', 'created_at'])

    # Audit failure channel
    op.create_table(
        'error_logs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('severity', sa.String(20), nullable=False),
        sa.Column('component', sa.String(100), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('details', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, index=True),
    )


def downgrade() -> None:
    op.drop_table('error_logs')
    op.drop_table('activity_records')
    op.drop_table('audit_records')
    op.drop_table('scheduled_tasks')
    op.drop_table('role_delegations')
    op.drop_table('role_assignments')
    op.drop_table('role_grants')
    op.drop_table('permissions')
    op.drop_table('roles')
    op.drop_table('principals')
