"""organizations, profiles, properties, maintenance requests, approval and invite codes, timeline

Revision ID: 0001_initial_schema
Revises: 
Create Date: 2025-10-02
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None

def _updated_at():
    return sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'))

def upgrade():
    op.create_table('organizations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False, unique=True),
        sa.Column('is_active', sa.Boolean(), nullable=True, server_default=sa.text('1')),
        _updated_at(),
    )

    op.create_table('user_profiles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=128), nullable=False, unique=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=True),
        sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=True),
        sa.Column('phone', sa.String(length=32)),
        sa.Column('is_active', sa.Boolean(), nullable=True, server_default=sa.text('1')),
        _updated_at(),
    )
    op.create_index('ix_user_profiles_email', 'user_profiles', ['email'])
    op.create_index('ix_user_profiles_role', 'user_profiles', ['role'])
    op.create_index('ix_user_profiles_organization_id', 'user_profiles', ['organization_id'])

    op.create_table('properties',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('building_name', sa.String(length=128), nullable=False),
        sa.Column('unit_number', sa.String(length=32), nullable=False),
        sa.Column('tenant_id', sa.Integer(), sa.ForeignKey('user_profiles.id'), nullable=True),
        sa.Column('owner_id', sa.Integer(), sa.ForeignKey('user_profiles.id'), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True, server_default=sa.text('1')),
        _updated_at(),
        sa.UniqueConstraint('organization_id', 'building_name', 'unit_number', name='uq_property_unit'),
    )
    for col in ('organization_id', 'tenant_id', 'owner_id'):
        op.create_index(f'ix_properties_{col}', 'properties', [col])

    op.create_table('maintenance_requests',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('request_number', sa.String(length=32), nullable=False, unique=True),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('category', sa.String(length=32), nullable=False),
        sa.Column('priority', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('property_id', sa.Integer(), sa.ForeignKey('properties.id'), nullable=False),
        sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('assigned_technician_id', sa.Integer(), sa.ForeignKey('user_profiles.id'), nullable=True),
        sa.Column('supervisor_id', sa.Integer(), sa.ForeignKey('user_profiles.id'), nullable=True),
        sa.Column('preferred_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('preferred_time_slot', sa.String(length=32), nullable=True),
        sa.Column('scheduling_notes', sa.Text(), nullable=True),
        sa.Column('is_customer_approved', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('cancel_reason', sa.String(length=255), nullable=True),
        sa.Column('actual_completion_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_maintenance_requests_request_number', 'maintenance_requests', ['request_number'])
    for col in ('status', 'property_id', 'organization_id', 'assigned_technician_id'):
        op.create_index(f'ix_maintenance_requests_{col}', 'maintenance_requests', [col])

    op.create_table('approval_codes',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('request_id', sa.Integer(), sa.ForeignKey('maintenance_requests.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('code', sa.String(length=6), nullable=False),
        sa.Column('issued_by', sa.Integer(), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('consumed', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('consumed_by', sa.Integer(), sa.ForeignKey('user_profiles.id'), nullable=True),
        sa.Column('consumed_at', sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table('invite_codes',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=16), nullable=False, unique=True),
        sa.Column('organization_id', sa.Integer(), sa.ForeignKey('organizations.id'), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('used_by', sa.Integer(), sa.ForeignKey('user_profiles.id'), nullable=True),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_invite_codes_code', 'invite_codes', ['code'])
    op.create_index('ix_invite_codes_organization_id', 'invite_codes', ['organization_id'])

    op.create_table('request_timeline',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('request_id', sa.Integer(), sa.ForeignKey('maintenance_requests.id', ondelete='CASCADE'), nullable=False),
        sa.Column('actor_user_id', sa.Integer(), sa.ForeignKey('user_profiles.id'), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('old_status', sa.String(length=32), nullable=True),
        sa.Column('new_status', sa.String(length=32), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    for col in ('request_id', 'actor_user_id', 'action'):
        op.create_index(f'ix_request_timeline_{col}', 'request_timeline', [col])


def downgrade():
    for table in ('request_timeline', 'invite_codes', 'approval_codes', 'maintenance_requests',
                  'properties', 'user_profiles', 'organizations'):
        op.drop_table(table)
