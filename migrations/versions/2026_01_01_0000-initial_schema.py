"""Initial schema

Revision ID: 001_initial
Revises:
Create Date: 2026-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """
    Create initial database schema:
    - links: handle -> destination mapping with lifetime counters
    - visit_events: append-only visit log
    - seen_visitors: first-visit existence records, unique per (link, visitor)
    """
    op.create_table(
        'links',
        sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
        sa.Column('token', sa.String(length=16), nullable=False),
        sa.Column('alias', sa.String(length=64), nullable=True),
        sa.Column('destination', sa.Text(), nullable=False),
        sa.Column('owner_id', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('password_protected', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('password_hash', sa.String(length=255), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('click_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('unique_visitor_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_accessed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('unique_visitor_count >= 0 AND click_count >= unique_visitor_count', name='ck_links_counters'),
    )
    op.create_index('ix_links_token', 'links', ['token'], unique=True)
    op.create_index('ix_links_alias', 'links', ['alias'], unique=True)
    op.create_index('ix_links_owner_id', 'links', ['owner_id'])
    op.create_index('ix_links_created_at', 'links', ['created_at'])
    op.create_index('ix_links_expires_at', 'links', ['expires_at'])
    op.create_index('ix_links_active', 'links', ['active'])

    op.create_table(
        'visit_events',
        sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
        sa.Column('link_id', sa.Integer(), nullable=False),
        sa.Column('visitor_key', sa.String(length=32), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=500), nullable=True),
        sa.Column('browser_name', sa.String(length=50), nullable=True),
        sa.Column('browser_version', sa.String(length=50), nullable=True),
        sa.Column('os_name', sa.String(length=50), nullable=True),
        sa.Column('os_version', sa.String(length=50), nullable=True),
        sa.Column('device_type', sa.String(length=20), nullable=True),
        sa.Column('country', sa.String(length=64), nullable=True),
        sa.Column('region', sa.String(length=64), nullable=True),
        sa.Column('city', sa.String(length=128), nullable=True),
        sa.Column('time_zone', sa.String(length=64), nullable=True),
        sa.Column('referrer', sa.Text(), nullable=True),
        sa.Column('is_unique_for_link', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_visit_events_link_id', 'visit_events', ['link_id'])
    op.create_index('ix_visit_events_timestamp', 'visit_events', ['timestamp'])
    op.create_index('ix_visit_events_link_id_timestamp', 'visit_events', ['link_id', 'timestamp'])

    op.create_table(
        'seen_visitors',
        sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
        sa.Column('link_id', sa.Integer(), nullable=False),
        sa.Column('visitor_key', sa.String(length=32), nullable=False),
        sa.Column('first_seen_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('link_id', 'visitor_key', name='uq_seen_visitors_link_visitor'),
    )


def downgrade() -> None:
    op.drop_table('seen_visitors')

    op.drop_index('ix_visit_events_link_id_timestamp', table_name='visit_events')
    op.drop_index('ix_visit_events_timestamp', table_name='visit_events')
    op.drop_index('ix_visit_events_link_id', table_name='visit_events')
    op.drop_table('visit_events')

    for column in ('active', 'expires_at', 'created_at', 'owner_id', 'alias', 'token'):
        op.drop_index(f'ix_links_{column}', table_name='links')
    op.drop_table('links')
