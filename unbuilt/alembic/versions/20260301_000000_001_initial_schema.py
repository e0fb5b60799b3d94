"""Initial schema: accounts, searches, action plans, conversations and resources

Revision ID: 001
Revises:
Create Date: 2026-03-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Enum columns store member names
PLAN_STATUS = sa.Enum('ACTIVE', 'COMPLETED', 'ARCHIVED', name='planstatus')
TASK_STATUS = sa.Enum('NOT_STARTED', 'IN_PROGRESS', 'COMPLETED', 'SKIPPED', name='taskstatus')
HISTORY_ACTION = sa.Enum('CREATED', 'UPDATED', 'COMPLETED', 'SKIPPED', 'DELETED', 'REORDERED', name='historyaction')
MESSAGE_ROLE = sa.Enum('USER', 'ASSISTANT', name='messagerole')
CONTRIBUTION_STATUS = sa.Enum('PENDING', 'APPROVED', 'REJECTED', name='contributionstatus')


def _uuid():
    return postgresql.UUID(as_uuid=True)


def _json():
    return postgresql.JSON(astext_type=sa.Text())


def upgrade() -> None:
    # Create users table
    op.create_table('users',
        sa.Column('id', _uuid(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('plan', sa.String(length=50), nullable=False),
        sa.Column('search_count', sa.Integer(), nullable=False),
        sa.Column('export_count', sa.Integer(), nullable=False),
        sa.Column('last_reset_date', sa.DateTime(), nullable=True),
        sa.Column('failed_login_attempts', sa.Integer(), nullable=False),
        sa.Column('last_failed_login', sa.DateTime(), nullable=True),
        sa.Column('account_locked', sa.Boolean(), nullable=False),
        sa.Column('lockout_expires', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('is_admin', sa.Boolean(), nullable=False),
        sa.Column('preferences', _json(), nullable=True),
        sa.Column('last_login', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )

    # Create searches table
    op.create_table('searches',
        sa.Column('id', _uuid(), nullable=False),
        sa.Column('user_id', _uuid(), nullable=False),
        sa.Column('query', sa.Text(), nullable=False),
        sa.Column('filters', _json(), nullable=True),
        sa.Column('results_count', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_searches_user_id', 'searches', ['user_id'], unique=False)
    op.create_index('ix_searches_created_at', 'searches', ['created_at'], unique=False)

    # Create search_results table
    op.create_table('search_results',
        sa.Column('id', _uuid(), nullable=False),
        sa.Column('search_id', _uuid(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('category', sa.String(length=100), nullable=False),
        sa.Column('feasibility', sa.String(length=20), nullable=False),
        sa.Column('market_potential', sa.String(length=20), nullable=False),
        sa.Column('innovation_score', sa.Integer(), nullable=False),
        sa.Column('market_size', sa.String(length=100), nullable=False),
        sa.Column('gap_reason', sa.Text(), nullable=False),
        sa.Column('is_saved', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['search_id'], ['searches.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_search_results_search_id', 'search_results', ['search_id'], unique=False)

    # Create plan_templates table
    op.create_table('plan_templates',
        sa.Column('id', _uuid(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=50), nullable=False),
        sa.Column('icon', sa.String(length=50), nullable=True),
        sa.Column('phases', _json(), nullable=True),
        sa.Column('is_default', sa.Boolean(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name')
    )

    # Create action_plans table
    op.create_table('action_plans',
        sa.Column('id', _uuid(), nullable=False),
        sa.Column('search_id', _uuid(), nullable=False),
        sa.Column('user_id', _uuid(), nullable=False),
        sa.Column('template_id', _uuid(), nullable=True),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', PLAN_STATUS, nullable=False),
        sa.Column('original_plan', _json(), nullable=False),
        sa.Column('customizations', _json(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['search_id'], ['searches.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['template_id'], ['plan_templates.id'], ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_action_plans_user_id', 'action_plans', ['user_id'], unique=False)
    op.create_index('ix_action_plans_search_id', 'action_plans', ['search_id'], unique=False)
    op.create_index('ix_action_plans_status', 'action_plans', ['status'], unique=False)

    # Create plan_phases table
    op.create_table('plan_phases',
        sa.Column('id', _uuid(), nullable=False),
        sa.Column('plan_id', _uuid(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('order', sa.Integer(), nullable=False),
        sa.Column('estimated_duration', sa.String(length=50), nullable=True),
        sa.Column('is_custom', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['plan_id'], ['action_plans.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('plan_id', 'order', name='uq_plan_phases_plan_order')
    )
    op.create_index('ix_plan_phases_plan_id', 'plan_phases', ['plan_id'], unique=False)

    # Create plan_tasks table
    op.create_table('plan_tasks',
        sa.Column('id', _uuid(), nullable=False),
        sa.Column('phase_id', _uuid(), nullable=False),
        sa.Column('plan_id', _uuid(), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('estimated_time', sa.String(length=50), nullable=True),
        sa.Column('resources', _json(), nullable=True),
        sa.Column('order', sa.Integer(), nullable=False),
        sa.Column('status', TASK_STATUS, nullable=False),
        sa.Column('is_custom', sa.Boolean(), nullable=False),
        sa.Column('assignee_id', _uuid(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('completed_by', _uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['phase_id'], ['plan_phases.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['plan_id'], ['action_plans.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['assignee_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['completed_by'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('phase_id', 'order', name='uq_plan_tasks_phase_order')
    )
    op.create_index('ix_plan_tasks_plan_id', 'plan_tasks', ['plan_id'], unique=False)
    op.create_index('ix_plan_tasks_status', 'plan_tasks', ['status'], unique=False)
    op.create_index('ix_plan_tasks_assignee_id', 'plan_tasks', ['assignee_id'], unique=False)

    # Create task_dependencies table
    op.create_table('task_dependencies',
        sa.Column('id', _uuid(), nullable=False),
        sa.Column('task_id', _uuid(), nullable=False),
        sa.Column('prerequisite_task_id', _uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['task_id'], ['plan_tasks.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['prerequisite_task_id'], ['plan_tasks.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('task_id', 'prerequisite_task_id', name='uq_task_dependencies_pair'),
        sa.CheckConstraint('task_id != prerequisite_task_id', name='ck_task_dependencies_no_self')
    )
    op.create_index('ix_task_dependencies_task_id', 'task_dependencies', ['task_id'], unique=False)
    op.create_index('ix_task_dependencies_prerequisite', 'task_dependencies', ['prerequisite_task_id'], unique=False)

    # Create task_history table
    op.create_table('task_history',
        sa.Column('id', _uuid(), nullable=False),
        sa.Column('task_id', _uuid(), nullable=False),
        sa.Column('user_id', _uuid(), nullable=False),
        sa.Column('action', HISTORY_ACTION, nullable=False),
        sa.Column('previous_state', _json(), nullable=True),
        sa.Column('new_state', _json(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['task_id'], ['plan_tasks.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_task_history_task_id', 'task_history', ['task_id'], unique=False)
    op.create_index('ix_task_history_timestamp', 'task_history', ['timestamp'], unique=False)

    # Create progress_snapshots table
    op.create_table('progress_snapshots',
        sa.Column('id', _uuid(), nullable=False),
        sa.Column('plan_id', _uuid(), nullable=False),
        sa.Column('total_tasks', sa.Integer(), nullable=False),
        sa.Column('completed_tasks', sa.Integer(), nullable=False),
        sa.Column('in_progress_tasks', sa.Integer(), nullable=False),
        sa.Column('skipped_tasks', sa.Integer(), nullable=False),
        sa.Column('completion_percentage', sa.Integer(), nullable=False),
        sa.Column('average_task_time', sa.Float(), nullable=True),
        sa.Column('velocity', sa.Float(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['plan_id'], ['action_plans.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_progress_snapshots_plan_timestamp', 'progress_snapshots', ['plan_id', 'timestamp'], unique=False)

    # Create conversations table
    op.create_table('conversations',
        sa.Column('id', _uuid(), nullable=False),
        sa.Column('analysis_id', _uuid(), nullable=False),
        sa.Column('user_id', _uuid(), nullable=False),
        sa.Column('message_count', sa.Integer(), nullable=False),
        sa.Column('total_tokens', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['analysis_id'], ['searches.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('analysis_id', 'user_id', name='uq_conversations_analysis_user')
    )

    # Create conversation_messages table
    op.create_table('conversation_messages',
        sa.Column('id', _uuid(), nullable=False),
        sa.Column('conversation_id', _uuid(), nullable=False),
        sa.Column('role', MESSAGE_ROLE, nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('message_metadata', _json(), nullable=True),
        sa.Column('rating', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_conversation_messages_conversation_id', 'conversation_messages', ['conversation_id'], unique=False)

    # Create suggested_questions table
    op.create_table('suggested_questions',
        sa.Column('id', _uuid(), nullable=False),
        sa.Column('conversation_id', _uuid(), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('category', sa.String(length=50), nullable=False),
        sa.Column('priority', sa.Integer(), nullable=False),
        sa.Column('used', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['conversation_id'], ['conversations.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )

    # Create resource_categories table
    op.create_table('resource_categories',
        sa.Column('id', _uuid(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('slug', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('icon', sa.String(length=50), nullable=True),
        sa.Column('display_order', sa.Integer(), nullable=False),
        sa.Column('parent_id', _uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['parent_id'], ['resource_categories.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sa.UniqueConstraint('slug')
    )

    # Create resource_tags table
    op.create_table('resource_tags',
        sa.Column('id', _uuid(), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('slug', sa.String(length=50), nullable=False),
        sa.Column('usage_count', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sa.UniqueConstraint('slug')
    )

    # Create resources table
    op.create_table('resources',
        sa.Column('id', _uuid(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('resource_type', sa.String(length=50), nullable=False),
        sa.Column('category_id', _uuid(), nullable=True),
        sa.Column('phase_relevance', _json(), nullable=True),
        sa.Column('idea_types', _json(), nullable=True),
        sa.Column('difficulty_level', sa.String(length=20), nullable=True),
        sa.Column('estimated_time_minutes', sa.Integer(), nullable=True),
        sa.Column('is_premium', sa.Boolean(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('average_rating', sa.Integer(), nullable=False),
        sa.Column('rating_count', sa.Integer(), nullable=False),
        sa.Column('view_count', sa.Integer(), nullable=False),
        sa.Column('bookmark_count', sa.Integer(), nullable=False),
        sa.Column('resource_metadata', _json(), nullable=True),
        sa.Column('created_by', _uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['category_id'], ['resource_categories.id'], ),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_resources_category_id', 'resources', ['category_id'], unique=False)
    op.create_index('ix_resources_is_active', 'resources', ['is_active'], unique=False)
    op.create_index('ix_resources_average_rating', 'resources', ['average_rating'], unique=False)

    # Create resource_tag_mappings table
    op.create_table('resource_tag_mappings',
        sa.Column('resource_id', _uuid(), nullable=False),
        sa.Column('tag_id', _uuid(), nullable=False),
        sa.ForeignKeyConstraint(['resource_id'], ['resources.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['tag_id'], ['resource_tags.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('resource_id', 'tag_id')
    )

    # Create user_bookmarks table
    op.create_table('user_bookmarks',
        sa.Column('id', _uuid(), nullable=False),
        sa.Column('user_id', _uuid(), nullable=False),
        sa.Column('resource_id', _uuid(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('custom_tags', _json(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['resource_id'], ['resources.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'resource_id', name='uq_user_bookmarks_user_resource')
    )

    # Create resource_ratings table
    op.create_table('resource_ratings',
        sa.Column('id', _uuid(), nullable=False),
        sa.Column('user_id', _uuid(), nullable=False),
        sa.Column('resource_id', _uuid(), nullable=False),
        sa.Column('rating', sa.Integer(), nullable=False),
        sa.Column('review', sa.Text(), nullable=True),
        sa.Column('is_helpful_count', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['resource_id'], ['resources.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'resource_id', name='uq_resource_ratings_user_resource'),
        sa.CheckConstraint('rating >= 1 AND rating <= 5', name='ck_resource_ratings_range')
    )

    # Create resource_contributions table
    op.create_table('resource_contributions',
        sa.Column('id', _uuid(), nullable=False),
        sa.Column('user_id', _uuid(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('suggested_category_id', _uuid(), nullable=True),
        sa.Column('suggested_tags', _json(), nullable=True),
        sa.Column('status', CONTRIBUTION_STATUS, nullable=False),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('reviewed_by', _uuid(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['suggested_category_id'], ['resource_categories.id'], ),
        sa.ForeignKeyConstraint(['reviewed_by'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_resource_contributions_status', 'resource_contributions', ['status'], unique=False)

    # Create resource_access_history table
    op.create_table('resource_access_history',
        sa.Column('id', _uuid(), nullable=False),
        sa.Column('user_id', _uuid(), nullable=False),
        sa.Column('resource_id', _uuid(), nullable=False),
        sa.Column('analysis_id', _uuid(), nullable=True),
        sa.Column('access_type', sa.String(length=20), nullable=False),
        sa.Column('accessed_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['resource_id'], ['resources.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['analysis_id'], ['searches.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_resource_access_user_resource', 'resource_access_history', ['user_id', 'resource_id'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_resource_access_user_resource', table_name='resource_access_history')
    op.drop_table('resource_access_history')
    op.drop_index('ix_resource_contributions_status', table_name='resource_contributions')
    op.drop_table('resource_contributions')
    op.drop_table('resource_ratings')
    op.drop_table('user_bookmarks')
    op.drop_table('resource_tag_mappings')
    op.drop_index('ix_resources_average_rating', table_name='resources')
    op.drop_index('ix_resources_is_active', table_name='resources')
    op.drop_index('ix_resources_category_id', table_name='resources')
    op.drop_table('resources')
    op.drop_table('resource_tags')
    op.drop_table('resource_categories')
    op.drop_table('suggested_questions')
    op.drop_index('ix_conversation_messages_conversation_id', table_name='conversation_messages')
    op.drop_table('conversation_messages')
    op.drop_table('conversations')
    op.drop_index('ix_progress_snapshots_plan_timestamp', table_name='progress_snapshots')
    op.drop_table('progress_snapshots')
    op.drop_index('ix_task_history_timestamp', table_name='task_history')
    op.drop_index('ix_task_history_task_id', table_name='task_history')
    op.drop_table('task_history')
    op.drop_index('ix_task_dependencies_prerequisite', table_name='task_dependencies')
    op.drop_index('ix_task_dependencies_task_id', table_name='task_dependencies')
    op.drop_table('task_dependencies')
    op.drop_index('ix_plan_tasks_assignee_id', table_name='plan_tasks')
    op.drop_index('ix_plan_tasks_status', table_name='plan_tasks')
    op.drop_index('ix_plan_tasks_plan_id', table_name='plan_tasks')
    op.drop_table('plan_tasks')
    op.drop_index('ix_plan_phases_plan_id', table_name='plan_phases')
    op.drop_table('plan_phases')
    op.drop_index('ix_action_plans_status', table_name='action_plans')
    op.drop_index('ix_action_plans_search_id', table_name='action_plans')
    op.drop_index('ix_action_plans_user_id', table_name='action_plans')
    op.drop_table('action_plans')
    op.drop_table('plan_templates')
    op.drop_index('ix_search_results_search_id', table_name='search_results')
    op.drop_table('search_results')
    op.drop_index('ix_searches_created_at', table_name='searches')
    op.drop_index('ix_searches_user_id', table_name='searches')
    op.drop_table('searches')
    op.drop_table('users')

    # Drop enums
    op.execute('DROP TYPE IF EXISTS planstatus')
    op.execute('DROP TYPE IF EXISTS taskstatus')
    op.execute('DROP TYPE IF EXISTS historyaction')
    op.execute('DROP TYPE IF EXISTS messagerole')
    op.execute('DROP TYPE IF EXISTS contributionstatus')
