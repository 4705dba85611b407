"""Baseline migration - routing tables

Revision ID: 0001_routing_baseline
Revises:
Create Date: 2026-10-18

Creates contacts, teams, agents, memberships, conversations, messages,
dedup records, deals and routing alerts.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_routing_baseline'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at() -> sa.Column:
    return sa.Column(
        'created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        'updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
    )


def upgrade() -> None:
    """Create routing tables."""

    # ==========================================================================
    # Contacts, Teams & Agents
    # ==========================================================================
    op.create_table(
        'contacts',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        _created_at(),
    )

    op.create_table(
        'teams',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('category', sa.String(50), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('color', sa.String(20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('max_capacity', sa.Integer(), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False),
        sa.Column('auto_assign', sa.Boolean(), nullable=False),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint('category', name='uq_team_category'),
    )

    op.create_table(
        'agents',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('is_online', sa.Boolean(), nullable=False),
        sa.Column('active_conversations', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('lifetime_assignments', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('last_assigned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('counter_version', sa.Integer(), server_default=sa.text('1'), nullable=False),
        _created_at(),
        sa.UniqueConstraint('email', name='uq_agent_email'),
    )

    op.create_table(
        'team_members',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('team_id', sa.Uuid(), sa.ForeignKey('teams.id', ondelete='CASCADE'), nullable=False),
        sa.Column('agent_id', sa.Uuid(), sa.ForeignKey('agents.id', ondelete='CASCADE'), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        _created_at(),
        sa.UniqueConstraint('team_id', 'agent_id', name='uq_team_member'),
    )
    op.create_index('idx_team_members_agent', 'team_members', ['agent_id'])

    # ==========================================================================
    # Conversations & Messages
    # ==========================================================================
    op.create_table(
        'conversations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('contact_id', sa.Uuid(), sa.ForeignKey('contacts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('channel', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('assigned_team_id', sa.Uuid(), sa.ForeignKey('teams.id', ondelete='SET NULL'), nullable=True),
        sa.Column('team_category', sa.String(50), nullable=True),
        sa.Column('assigned_agent_id', sa.Uuid(), sa.ForeignKey('agents.id', ondelete='SET NULL'), nullable=True),
        sa.Column('assignment_method', sa.String(30), nullable=True),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_message_at', sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index(
        'idx_conversations_contact_channel', 'conversations', ['contact_id', 'channel', 'status']
    )
    op.create_index(
        'idx_conversations_agent_status', 'conversations', ['assigned_agent_id', 'status']
    )

    op.create_table(
        'messages',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('conversation_id', sa.Uuid(), sa.ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('kind', sa.String(20), nullable=False),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('provider_message_id', sa.String(255), nullable=True),
        sa.Column('media_url', sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index(
        'idx_messages_conversation_created', 'messages', ['conversation_id', 'created_at']
    )

    op.create_table(
        'dedup_records',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('conversation_id', sa.Uuid(), sa.ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('key_type', sa.String(30), nullable=False),
        sa.Column('key_digest', sa.String(64), nullable=False),
        sa.Column('key_value', sa.Text(), nullable=False),
        sa.Column('message_id', sa.Uuid(), sa.ForeignKey('messages.id', ondelete='CASCADE'), nullable=False),
        _created_at(),
        sa.UniqueConstraint(
            'conversation_id', 'key_type', 'key_digest', name='uq_dedup_conversation_key'
        ),
    )

    # ==========================================================================
    # Deals
    # ==========================================================================
    op.create_table(
        'deals',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('contact_id', sa.Uuid(), sa.ForeignKey('contacts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('team_category', sa.String(50), nullable=False),
        sa.Column('funnel_id', sa.String(64), nullable=False),
        sa.Column('stage_id', sa.String(50), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('assigned_agent_id', sa.Uuid(), sa.ForeignKey('agents.id', ondelete='SET NULL'), nullable=True),
        _created_at(),
        _updated_at(),
    )
    # One open deal per contact and category
    op.create_index(
        'uq_deals_open_contact_category',
        'deals',
        ['contact_id', 'team_category'],
        unique=True,
        postgresql_where=sa.text("status = 'open'"),
        sqlite_where=sa.text("status = 'open'"),
    )
    op.create_index('idx_deals_category_stage', 'deals', ['team_category', 'stage_id'])

    # ==========================================================================
    # Routing Alerts
    # ==========================================================================
    op.create_table(
        'routing_alerts',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('dedupe_key', sa.String(64), nullable=False),
        sa.Column('scope_key', sa.String(255), nullable=True),
        sa.Column('alert_type', sa.String(50), nullable=False),
        sa.Column('severity', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('occurrence_count', sa.Integer(), nullable=False),
        sa.Column('first_seen_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('dedupe_key', name='uq_routing_alerts_dedupe'),
    )
    op.create_index('ix_routing_alerts_status', 'routing_alerts', ['status', 'severity'])


def downgrade() -> None:
    """Drop routing tables."""
    op.drop_table('routing_alerts')
    op.drop_table('deals')
    op.drop_table('dedup_records')
    op.drop_table('messages')
    op.drop_table('conversations')
    op.drop_table('team_members')
    op.drop_table('agents')
    op.drop_table('teams')
    op.drop_table('contacts')
