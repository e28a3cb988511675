"""0001: Moderation, soft delete and audit tables

Revision ID: 0001_moderation_audit_pipeline
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '0001_moderation_audit_pipeline'
down_revision = None
branch_labels = None
depends_on = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def _content_table(name: str, *columns: sa.Column) -> None:
    op.create_table(
        name,
        sa.Column('id', sa.String(36), primary_key=True),
        *columns,
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('updated_at', sa.DateTime, nullable=False),
        sa.Column('deleted_at', sa.DateTime, nullable=True),
    )


def upgrade() -> None:
    # 用户与会话
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('username', sa.String(100), nullable=False),
        sa.Column('email', sa.String(200), nullable=True, unique=True),
        sa.Column('display_name', sa.String(200), nullable=True),
        sa.Column('role', sa.String(50), nullable=False),
        sa.Column('is_active', sa.Boolean, nullable=False),
        sa.Column('session_invalidated_at', sa.DateTime, nullable=True),
        sa.Column('deletion_scheduled_at', sa.DateTime, nullable=True),
        sa.Column('deletion_reason', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('updated_at', sa.DateTime, nullable=False),
        sa.Column('deleted_at', sa.DateTime, nullable=True),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)

    op.create_table(
        'user_sessions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('token', sa.String(255), nullable=False, unique=True),
        sa.Column('revoked', sa.Boolean, nullable=False),
        sa.Column('expires_at', sa.DateTime, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False),
    )
    op.create_index('ix_user_sessions_user_id', 'user_sessions', ['user_id'])

    # 内容实体
    _content_table(
        'articles',
        sa.Column('slug', sa.String(200), nullable=False),
        sa.Column('title', sa.String(300), nullable=False),
        sa.Column('body', sa.Text, nullable=True),
        sa.Column('author_id', sa.String(36), nullable=True),
    )
    op.create_index('ix_articles_slug', 'articles', ['slug'], unique=True)
    op.create_index('ix_articles_author_id', 'articles', ['author_id'])

    _content_table(
        'blog_posts',
        sa.Column('title', sa.String(300), nullable=False),
        sa.Column('body', sa.Text, nullable=True),
        sa.Column('author_id', sa.String(36), nullable=True),
    )
    op.create_index('ix_blog_posts_author_id', 'blog_posts', ['author_id'])

    _content_table(
        'places',
        sa.Column('name', sa.String(300), nullable=False),
        sa.Column('address', sa.String(500), nullable=True),
        sa.Column('owner_id', sa.String(36), nullable=True),
    )
    op.create_index('ix_places_owner_id', 'places', ['owner_id'])

    _content_table(
        'products',
        sa.Column('name', sa.String(300), nullable=False),
        sa.Column('brand', sa.String(200), nullable=True),
        sa.Column('owner_id', sa.String(36), nullable=True),
    )
    op.create_index('ix_products_owner_id', 'products', ['owner_id'])

    # 编辑请求
    op.create_table(
        'edit_requests',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('content_type', sa.String(50), nullable=False, index=True),
        sa.Column('content_id', sa.String(255), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False, index=True),
        sa.Column('status', sa.String(20), nullable=False, index=True),
        sa.Column('priority', sa.String(20), nullable=False),
        sa.Column('changes', JSON_TYPE, nullable=False),
        sa.Column('reason', sa.Text, nullable=True),
        sa.Column('reviewed_by', sa.String(255), nullable=True),
        sa.Column('reviewed_at', sa.DateTime, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('updated_at', sa.DateTime, nullable=False),
    )

    # 审核
    op.create_table(
        'moderation_action_logs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('action', sa.String(50), nullable=False, index=True),
        sa.Column('content_type', sa.String(50), nullable=False),
        sa.Column('content_id', sa.String(255), nullable=False),
        sa.Column('performed_by', sa.String(255), nullable=False, index=True),
        sa.Column('reason', sa.Text, nullable=True),
        sa.Column('metadata', JSON_TYPE, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, index=True),
    )
    op.create_index(
        'ix_moderation_action_logs_content',
        'moderation_action_logs',
        ['content_type', 'content_id'],
    )

    op.create_table(
        'soft_delete_audits',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('content_type', sa.String(50), nullable=False),
        sa.Column('content_id', sa.String(255), nullable=False),
        sa.Column('deleted_by', sa.String(255), nullable=False),
        sa.Column('reason', sa.Text, nullable=True),
        sa.Column('metadata', JSON_TYPE, nullable=True),
        sa.Column('deleted_at', sa.DateTime, nullable=False),
        sa.Column('restored_at', sa.DateTime, nullable=True),
        sa.Column('restored_by', sa.String(255), nullable=True),
    )
    op.create_index(
        'ix_soft_delete_audits_content',
        'soft_delete_audits',
        ['content_type', 'content_id'],
    )

    op.create_table(
        'moderation_queue',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('content_type', sa.String(50), nullable=False, index=True),
        sa.Column('content_id', sa.String(255), nullable=False),
        sa.Column('priority', sa.String(20), nullable=False, index=True),
        sa.Column('status', sa.String(20), nullable=False, index=True),
        sa.Column('reason', sa.Text, nullable=True),
        sa.Column('reported_by', sa.String(255), nullable=True),
        sa.Column('assigned_to', sa.String(255), nullable=True),
        sa.Column('justification', sa.Text, nullable=True),
        sa.Column('reviewed_by', sa.String(255), nullable=True),
        sa.Column('reviewed_at', sa.DateTime, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('updated_at', sa.DateTime, nullable=False),
    )

    # 审计日志
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('actor_id', sa.String(255), nullable=False, index=True),
        sa.Column('action', sa.String(100), nullable=False, index=True),
        sa.Column('target_type', sa.String(100), nullable=False, index=True),
        sa.Column('target_id', sa.String(255), nullable=False, index=True),
        sa.Column('reason', sa.Text, nullable=True),
        sa.Column('metadata', JSON_TYPE, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, index=True),
    )

    op.create_table(
        'audit_queue',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('actor_id', sa.String(255), nullable=False),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('target_type', sa.String(100), nullable=False),
        sa.Column('target_id', sa.String(255), nullable=False),
        sa.Column('reason', sa.Text, nullable=True),
        sa.Column('metadata', JSON_TYPE, nullable=True),
        sa.Column('created_at', sa.DateTime, nullable=False, index=True),
        sa.Column('attempts', sa.Integer, nullable=False, server_default='0', index=True),
        sa.Column('last_attempt', sa.DateTime, nullable=True),
        sa.Column('claim_token', sa.String(36), nullable=True, index=True),
        sa.Column('claimed_at', sa.DateTime, nullable=True),
    )

    op.create_table(
        'audit_dead_letters',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('queue_entry_id', sa.String(36), nullable=False, index=True),
        sa.Column('actor_id', sa.String(255), nullable=False),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('target_type', sa.String(100), nullable=False),
        sa.Column('target_id', sa.String(255), nullable=False),
        sa.Column('reason', sa.Text, nullable=True),
        sa.Column('metadata', JSON_TYPE, nullable=True),
        sa.Column('attempts', sa.Integer, nullable=False),
        sa.Column('last_attempt', sa.DateTime, nullable=True),
        sa.Column('queued_at', sa.DateTime, nullable=False),
        sa.Column('failed_at', sa.DateTime, nullable=False, index=True),
    )


def downgrade() -> None:
    op.drop_table('audit_dead_letters')
    op.drop_table('audit_queue')
    op.drop_table('audit_logs')
    op.drop_table('moderation_queue')
    op.drop_index('ix_soft_delete_audits_content', table_name='soft_delete_audits')
    op.drop_table('soft_delete_audits')
    op.drop_index('ix_moderation_action_logs_content', table_name='moderation_action_logs')
    op.drop_table('moderation_action_logs')
    op.drop_table('edit_requests')
    for table in ('products', 'places', 'blog_posts', 'articles'):
        op.drop_table(table)
    op.drop_table('user_sessions')
    op.drop_table('users')
