"""Initial Home Central schema

Revision ID: 0001
Revises:
Create Date: 2026-01-05 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Accounts
    op.create_table(
        'users',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('email', sa.String(255), unique=True, nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('image', sa.String(1024), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('current_project_id', sa.String(32), nullable=True),
        sa.Column('onboarding_completed_at', sa.DateTime(), nullable=True),
        sa.Column('last_login_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'sessions',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('user_id', sa.String(32), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('token_hash', sa.String(255), nullable=False, unique=True, index=True),
        sa.Column('csrf_token', sa.String(64), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'admin_allowlist',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('email', sa.String(255), unique=True, nullable=False, index=True),
        sa.Column('role', sa.String(16), nullable=False, server_default='EDITOR'),
        sa.Column('added_by_id', sa.String(32), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'early_access_allowlist',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('email', sa.String(255), unique=True, nullable=False, index=True),
        sa.Column('note', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('user_id', sa.String(32), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('event_type', sa.String(64), nullable=False, index=True),
        sa.Column('ip', sa.String(64), nullable=True),
        sa.Column('user_agent', sa.String(512), nullable=True),
        sa.Column('path', sa.String(512), nullable=True),
        sa.Column('method', sa.String(16), nullable=True),
        sa.Column('data_json', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True, index=True),
    )

    # Projects and tools
    op.create_table(
        'projects',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('user_id', sa.String(32), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('status', sa.String(16), nullable=False, server_default='ACTIVE'),
        sa.Column('current_stage', sa.String(32), nullable=True),
        sa.Column('active_tool_keys', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'project_members',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('project_id', sa.String(32), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('user_id', sa.String(32), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('role', sa.String(16), nullable=False, server_default='MEMBER'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('project_id', 'user_id', name='uq_project_members_project_user'),
    )

    op.create_table(
        'project_tool_access',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('project_id', sa.String(32), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('tool_key', sa.String(64), nullable=False),
        sa.Column('user_id', sa.String(32), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('level', sa.String(8), nullable=False, server_default='VIEW'),
        sa.Column('granted_by_id', sa.String(32), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('project_id', 'tool_key', 'user_id', name='uq_project_tool_access'),
    )

    op.create_table(
        'project_invites',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('token', sa.String(128), unique=True, nullable=False, index=True),
        sa.Column('project_id', sa.String(32), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('tool_key', sa.String(64), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('level', sa.String(8), nullable=False, server_default='EDIT'),
        sa.Column('status', sa.String(16), nullable=False, server_default='PENDING'),
        sa.Column('invited_by_id', sa.String(32), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('accepted_by_id', sa.String(32), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('accepted_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index(
        'ix_project_invites_lookup', 'project_invites', ['project_id', 'tool_key', 'email', 'status']
    )

    op.create_table(
        'tool_instances',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('project_id', sa.String(32), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('tool_key', sa.String(64), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('revision', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_by_id', sa.String(32), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('project_id', 'tool_key', name='uq_tool_instances_project_tool'),
    )

    op.create_table(
        'tool_share_tokens',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('token', sa.String(128), unique=True, nullable=False, index=True),
        sa.Column('project_id', sa.String(32), sa.ForeignKey('projects.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('tool_key', sa.String(64), nullable=False),
        sa.Column('created_by_id', sa.String(32), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('settings', sa.JSON(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('revoked_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )

    # CMS
    op.create_table(
        'collections',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('slug', sa.String(255), unique=True, nullable=False, index=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('hero_image_url', sa.String(1024), nullable=True),
        sa.Column('layout', sa.String(16), nullable=False, server_default='TILES'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'content',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('slug', sa.String(255), unique=True, nullable=False, index=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('content_type', sa.String(16), nullable=False, server_default='GUIDE'),
        sa.Column('status', sa.String(16), nullable=False, server_default='DRAFT', index=True),
        sa.Column('dek', sa.Text(), nullable=True),
        sa.Column('body_md', sa.Text(), nullable=False),
        sa.Column('author_name', sa.String(255), nullable=True),
        sa.Column('publish_at', sa.DateTime(), nullable=True),
        sa.Column('published_at', sa.DateTime(), nullable=True),
        sa.Column('meta_title', sa.String(255), nullable=True),
        sa.Column('meta_description', sa.Text(), nullable=True),
        sa.Column('canonical_url', sa.String(1024), nullable=True),
        sa.Column('og_image_url', sa.String(1024), nullable=True),
        sa.Column('geo_scope', sa.String(32), nullable=True),
        sa.Column('geo_place', sa.String(255), nullable=True),
        sa.Column('robots_no_index', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            'primary_collection_id',
            sa.String(32),
            sa.ForeignKey('collections.id', ondelete='SET NULL'),
            nullable=True,
        ),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'tags',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('slug', sa.String(255), unique=True, nullable=False, index=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('is_primary', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'content_tags',
        sa.Column('content_id', sa.String(32), sa.ForeignKey('content.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('tag_id', sa.String(32), sa.ForeignKey('tags.id', ondelete='CASCADE'), primary_key=True),
    )

    op.create_table(
        'collection_items',
        sa.Column('collection_id', sa.String(32), sa.ForeignKey('collections.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('content_id', sa.String(32), sa.ForeignKey('content.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='0'),
    )

    op.create_table(
        'content_relations',
        sa.Column('from_content_id', sa.String(32), sa.ForeignKey('content.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('to_content_id', sa.String(32), sa.ForeignKey('content.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('priority', sa.Integer(), nullable=False, server_default='0'),
    )

    op.create_table(
        'content_feedback',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('content_id', sa.String(32), sa.ForeignKey('content.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('user_id', sa.String(32), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('anon_id', sa.String(64), nullable=True),
        sa.Column('vote', sa.String(8), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('content_id', 'user_id', name='uq_content_feedback_user'),
        sa.UniqueConstraint('content_id', 'anon_id', name='uq_content_feedback_anon'),
    )

    op.create_table(
        'content_private_feedback',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('content_id', sa.String(32), sa.ForeignKey('content.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('user_id', sa.String(32), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('anon_id', sa.String(64), nullable=True),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('vote_context', sa.String(8), nullable=True),
        sa.Column('ip_hash', sa.String(64), nullable=True, index=True),
        sa.Column('user_agent', sa.String(512), nullable=True),
        sa.Column('page_url', sa.String(1024), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True, index=True),
    )

    op.create_table(
        'idea_packs',
        sa.Column('id', sa.String(32), primary_key=True),
        sa.Column('pack_id', sa.String(128), unique=True, nullable=False, index=True),
        sa.Column('label', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('author', sa.String(255), nullable=True),
        sa.Column('room_types', sa.JSON(), nullable=False),
        sa.Column('decisions', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(16), nullable=False, server_default='DRAFT'),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'site_settings',
        sa.Column('key', sa.String(128), primary_key=True),
        sa.Column('value', sa.Text(), nullable=False, server_default=''),
        sa.Column('updated_by_id', sa.String(32), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )


def downgrade() -> None:
    for table in (
        'site_settings',
        'idea_packs',
        'content_private_feedback',
        'content_feedback',
        'content_relations',
        'collection_items',
        'content_tags',
        'tags',
        'content',
        'collections',
        'tool_share_tokens',
        'tool_instances',
    ):
        op.drop_table(table)
    op.drop_index('ix_project_invites_lookup', table_name='project_invites')
    for table in (
        'project_invites',
        'project_tool_access',
        'project_members',
        'projects',
        'audit_logs',
        'early_access_allowlist',
        'admin_allowlist',
        'sessions',
        'users',
    ):
        op.drop_table(table)
