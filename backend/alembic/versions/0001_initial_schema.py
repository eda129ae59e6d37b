"""Initial schema

Revision ID: 0001
Revises:
Create Date: 2026-01-05 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Create users table
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('username', sa.String(50), nullable=False, unique=True),
        sa.Column('email', sa.String(100), nullable=False, unique=True),
        sa.Column('full_name', sa.String(200), nullable=True),
        sa.Column('hashed_password', sa.String(128), nullable=False),
        sa.Column('is_active', sa.Boolean(), default=True),
        sa.Column('role', sa.String(20), default='user'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )
    op.create_index('ix_users_username', 'users', ['username'])
    op.create_index('ix_users_email', 'users', ['email'])

    # Create projects table
    op.create_table(
        'projects',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ),
    )
    op.create_index('ix_projects_owner_id', 'projects', ['owner_id'])

    # Create guest_identities table
    op.create_table(
        'guest_identities',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(320), nullable=False),
        sa.Column('name', sa.String(200), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    )
    op.create_index('ix_guest_identities_email', 'guest_identities', ['email'], unique=True)

    # Create arts table
    op.create_table(
        'arts',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(300), nullable=False),
        sa.Column('kind', sa.String(100), nullable=False),
        sa.Column('project_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('author_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('current_version_number', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('current_status', sa.String(20), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ),
        sa.ForeignKeyConstraint(['author_id'], ['users.id'], ),
    )
    op.create_index('ix_arts_project_id', 'arts', ['project_id'])
    op.create_index('ix_arts_author_id', 'arts', ['author_id'])

    # Create art_versions table
    op.create_table(
        'art_versions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('art_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('version_number', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('source_file_ref', sa.String(1000), nullable=False),
        sa.Column('preview_file_ref', sa.String(1000), nullable=True),
        sa.Column('created_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['art_id'], ['arts.id'], ),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], ),
        sa.UniqueConstraint('art_id', 'version_number', name='uq_art_versions_art_number'),
    )
    op.create_index('ix_art_versions_art_id', 'art_versions', ['art_id'])

    # Create art_files table
    op.create_table(
        'art_files',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('art_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('art_version_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('version_number', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(20), nullable=False),
        sa.Column('path', sa.String(1000), nullable=False, unique=True),
        sa.Column('mime', sa.String(200), nullable=False),
        sa.Column('size_bytes', sa.Integer(), nullable=False),
        sa.Column('width', sa.Integer(), nullable=True),
        sa.Column('height', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['art_id'], ['arts.id'], ),
        sa.ForeignKeyConstraint(['art_version_id'], ['art_versions.id'], ),
    )
    op.create_index('ix_art_files_art_id', 'art_files', ['art_id'])
    op.create_index('ix_art_files_art_version_id', 'art_files', ['art_version_id'])

    # Create approval_requests table
    op.create_table(
        'approval_requests',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('art_version_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('rule', sa.String(10), nullable=False),
        sa.Column('required_approver_ids', postgresql.JSON, nullable=False),
        sa.Column('opened_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('opened_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['art_version_id'], ['art_versions.id'], ),
        sa.ForeignKeyConstraint(['opened_by'], ['users.id'], ),
    )
    op.create_index('ix_approval_requests_art_version_id', 'approval_requests', ['art_version_id'])
    op.create_index(
        'uq_approval_requests_open_version',
        'approval_requests',
        ['art_version_id'],
        unique=True,
        postgresql_where=sa.text('closed_at IS NULL'),
    )

    # Create approval_decisions table
    op.create_table(
        'approval_decisions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('approval_request_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('approver_ref', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('approver_kind', sa.String(10), nullable=False),
        sa.Column('decision', sa.String(10), nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('decided_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['approval_request_id'], ['approval_requests.id'], ),
        sa.UniqueConstraint('approval_request_id', 'approver_ref', name='uq_approval_decisions_request_approver'),
    )
    op.create_index('ix_approval_decisions_approval_request_id', 'approval_decisions', ['approval_request_id'])

    # Create approval_overrides table
    op.create_table(
        'approval_overrides',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('art_version_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('approval_request_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('acting_principal_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('previous_status', sa.String(20), nullable=False),
        sa.Column('reason', sa.String(1000), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['art_version_id'], ['art_versions.id'], ),
        sa.ForeignKeyConstraint(['approval_request_id'], ['approval_requests.id'], ),
        sa.ForeignKeyConstraint(['acting_principal_id'], ['users.id'], ),
    )
    op.create_index('ix_approval_overrides_art_version_id', 'approval_overrides', ['art_version_id'])

    # Create feedback_items table
    op.create_table(
        'feedback_items',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('art_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('art_version_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('author_ref', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('author_kind', sa.String(10), nullable=False),
        sa.Column('kind', sa.String(10), nullable=False),
        sa.Column('content', sa.Text(), nullable=True),
        sa.Column('audio_ref', sa.String(1000), nullable=True),
        sa.Column('rel_x', sa.Float(), nullable=True),
        sa.Column('rel_y', sa.Float(), nullable=True),
        sa.Column('abs_x', sa.Float(), nullable=True),
        sa.Column('abs_y', sa.Float(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['art_id'], ['arts.id'], ),
        sa.ForeignKeyConstraint(['art_version_id'], ['art_versions.id'], ),
    )
    op.create_index('ix_feedback_items_art_id', 'feedback_items', ['art_id'])
    op.create_index('ix_feedback_items_art_version_id', 'feedback_items', ['art_version_id'])
    op.create_index('ix_feedback_items_created_at', 'feedback_items', ['created_at'])

    # Create feedback_replies table
    op.create_table(
        'feedback_replies',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('feedback_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('author_ref', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('author_kind', sa.String(10), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['feedback_id'], ['feedback_items.id'], ),
    )
    op.create_index('ix_feedback_replies_feedback_id', 'feedback_replies', ['feedback_id'])

    # Create shared_links table
    op.create_table(
        'shared_links',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('token', sa.String(128), nullable=False),
        sa.Column('subject_type', sa.String(20), nullable=False),
        sa.Column('subject_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('read_only', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('can_comment', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('can_download', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], ),
    )
    op.create_index('ix_shared_links_token', 'shared_links', ['token'], unique=True)
    op.create_index('ix_shared_links_subject_id', 'shared_links', ['subject_id'])


def downgrade() -> None:
    op.drop_table('shared_links')
    op.drop_table('feedback_replies')
    op.drop_table('feedback_items')
    op.drop_table('approval_overrides')
    op.drop_table('approval_decisions')
    op.drop_table('approval_requests')
    op.drop_table('art_files')
    op.drop_table('art_versions')
    op.drop_table('arts')
    op.drop_table('guest_identities')
    op.drop_table('projects')
    op.drop_table('users')
