"""initial portal tables

Revision ID: 0001_initial_portal
Revises: 
Create Date: 2026-10-19
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_initial_portal'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps(with_updated=True):
    cols = [sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now())]
    if with_updated:
        cols.append(sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()))
    return cols


def upgrade():
    # shops first: profiles.shop_id references it, owner_id is a plain column
    op.create_table('shops',
        sa.Column('id', sa.String(length=32), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('region', sa.String(length=64), nullable=False),
        sa.Column('district', sa.String(length=64), nullable=False),
        sa.Column('employee_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('services', sa.JSON(), nullable=True),
        sa.Column('unique_identifier', sa.String(length=32), nullable=False, unique=True),
        sa.Column('owner_id', sa.Integer(), nullable=True),
        sa.Column('business_phone', sa.String(length=32)),
        sa.Column('full_address', sa.String(length=255)),
        *_timestamps()
    )
    op.create_index('ix_shops_owner_id', 'shops', ['owner_id'])

    op.create_table('profiles',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=True),
        sa.Column('email', sa.String(length=128), nullable=False, unique=True),
        sa.Column('phone', sa.String(length=32)),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='mechanic'),
        sa.Column('shop_id', sa.String(length=32), sa.ForeignKey('shops.id', ondelete='SET NULL'), nullable=True),
        sa.Column('approved', sa.Boolean(), server_default=sa.text('0')),
        sa.Column('locale', sa.String(length=8), server_default='en'),
        *_timestamps()
    )
    op.create_index('ix_profiles_email', 'profiles', ['email'])
    op.create_index('ix_profiles_role', 'profiles', ['role'])
    op.create_index('ix_profiles_shop_id', 'profiles', ['shop_id'])

    op.create_table('shop_invitations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('shop_id', sa.String(length=32), sa.ForeignKey('shops.id', ondelete='CASCADE'), nullable=False),
        sa.Column('invited_by', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=128), nullable=False),
        sa.Column('phone', sa.String(length=32)),
        sa.Column('invitation_code', sa.String(length=32), nullable=False, unique=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(with_updated=False)
    )
    op.create_index('ix_shop_invitations_shop_id', 'shop_invitations', ['shop_id'])
    op.create_index('ix_shop_invitations_invitation_code', 'shop_invitations', ['invitation_code'])

    op.create_table('jobs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('job_id', sa.String(length=32), nullable=False, unique=True),
        sa.Column('shop_id', sa.String(length=32), sa.ForeignKey('shops.id', ondelete='SET NULL'), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('customer', sa.JSON(), nullable=False),
        sa.Column('motorcycle', sa.JSON(), nullable=False),
        sa.Column('service_type', sa.String(length=80), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('tracking_code', sa.String(length=8), nullable=True, unique=True),
        sa.Column('notes', sa.JSON(), nullable=True),
        sa.Column('photos', sa.JSON(), nullable=True),
        sa.Column('date_created', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('date_completed', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_jobs_job_id', 'jobs', ['job_id'])
    op.create_index('ix_jobs_shop_id', 'jobs', ['shop_id'])
    op.create_index('ix_jobs_status', 'jobs', ['status'])

    op.create_table('messages',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('sender_id', sa.Integer(), nullable=True),
        sa.Column('recipient_id', sa.Integer(), nullable=True),
        sa.Column('subject', sa.String(length=255), nullable=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        *_timestamps()
    )
    op.create_index('ix_messages_sender_id', 'messages', ['sender_id'])
    op.create_index('ix_messages_recipient_id', 'messages', ['recipient_id'])
    op.create_index('ix_messages_is_read', 'messages', ['is_read'])

    op.create_table('support_tickets',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('creator_id', sa.Integer(), nullable=True),
        sa.Column('assigned_to', sa.Integer(), nullable=True),
        sa.Column('priority', sa.String(length=16), nullable=False, server_default='medium'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='open'),
        *_timestamps()
    )
    op.create_index('ix_support_tickets_creator_id', 'support_tickets', ['creator_id'])
    op.create_index('ix_support_tickets_assigned_to', 'support_tickets', ['assigned_to'])
    op.create_index('ix_support_tickets_status', 'support_tickets', ['status'])

    op.create_table('ticket_messages',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('ticket_id', sa.Integer(), sa.ForeignKey('support_tickets.id', ondelete='CASCADE'), nullable=False),
        sa.Column('sender_id', sa.Integer(), nullable=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('is_from_support', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        *_timestamps(with_updated=False)
    )
    op.create_index('ix_ticket_messages_ticket_id', 'ticket_messages', ['ticket_id'])

    op.create_table('notifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('reference_id', sa.String(length=64), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        *_timestamps(with_updated=False)
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])

    op.create_table('external_job_tracking',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('request_id', sa.String(length=64)),
        sa.Column('source_app', sa.String(length=64), nullable=False),
        sa.Column('endpoint', sa.String(length=128), nullable=False),
        sa.Column('http_method', sa.String(length=8), nullable=False, server_default='POST'),
        sa.Column('request_payload', sa.JSON(), nullable=True),
        sa.Column('response_status', sa.Integer(), nullable=True),
        sa.Column('response_payload', sa.JSON(), nullable=True),
        sa.Column('error_message', sa.String(length=255), nullable=True),
        sa.Column('job_id', sa.String(length=32), nullable=True),
        *_timestamps(with_updated=False)
    )
    op.create_index('ix_external_job_tracking_request_id', 'external_job_tracking', ['request_id'])

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('actor_user_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity', sa.String(length=64), nullable=True),
        sa.Column('entity_id', sa.String(length=64), nullable=True),
        sa.Column('role_snapshot', sa.JSON(), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        *_timestamps(with_updated=False)
    )
    op.create_index('ix_audit_logs_actor_user_id', 'audit_logs', ['actor_user_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])


def downgrade():
    for table in ('audit_logs', 'external_job_tracking', 'notifications', 'ticket_messages', 'support_tickets',
                  'messages', 'jobs', 'shop_invitations', 'profiles', 'shops'):
        op.drop_table(table)
