"""Create search analytics and learning tables

Revision ID: 001_search_analytics
Revises:
Create Date: 2026-10-16 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_search_analytics'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create search session, result, feedback and preference tables"""

    op.create_table('search_sessions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('conversation_id', sa.String(length=255), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('search_query', sa.Text(), nullable=False),
        sa.Column('content_sources', sa.JSON(), nullable=False),
        sa.Column('search_filters', sa.JSON(), nullable=True),
        sa.Column('results_count', sa.Integer(), nullable=True),
        sa.Column('results_accepted', sa.Integer(), nullable=True),
        sa.Column('results_rejected', sa.Integer(), nullable=True),
        sa.Column('search_success', sa.Boolean(), nullable=True),
        sa.Column('processing_time_ms', sa.Integer(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_search_sessions_conversation_id'), 'search_sessions', ['conversation_id'], unique=False)
    op.create_index(op.f('ix_search_sessions_user_id'), 'search_sessions', ['user_id'], unique=False)
    op.create_index('ix_search_sessions_created_at', 'search_sessions', ['created_at'], unique=False)
    op.create_index('ix_search_sessions_user_created', 'search_sessions', ['user_id', 'created_at'], unique=False)

    op.create_table('search_results',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('search_session_id', sa.String(length=36), nullable=False),
        sa.Column('result_key', sa.String(length=64), nullable=False),
        sa.Column('result_title', sa.Text(), nullable=False),
        sa.Column('result_authors', sa.JSON(), nullable=False),
        sa.Column('result_journal', sa.Text(), nullable=True),
        sa.Column('result_year', sa.Integer(), nullable=True),
        sa.Column('result_doi', sa.String(length=255), nullable=True),
        sa.Column('result_url', sa.Text(), nullable=True),
        sa.Column('result_topics', sa.JSON(), nullable=False),
        sa.Column('relevance_score', sa.Float(), nullable=True),
        sa.Column('confidence_score', sa.Float(), nullable=True),
        sa.Column('quality_score', sa.Float(), nullable=True),
        sa.Column('citation_count', sa.Integer(), nullable=True),
        sa.Column('user_action', sa.String(length=20), nullable=False),
        sa.Column('user_feedback_rating', sa.Integer(), nullable=True),
        sa.Column('user_feedback_comments', sa.Text(), nullable=True),
        sa.Column('added_to_library', sa.Boolean(), nullable=True),
        sa.Column('added_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.CheckConstraint(
            "user_action IN ('none', 'viewed', 'added', 'rejected', 'bookmarked', 'ignored')",
            name='ck_search_results_user_action'
        ),
        sa.CheckConstraint(
            'user_feedback_rating IS NULL OR (user_feedback_rating >= 1 AND user_feedback_rating <= 5)',
            name='ck_search_results_rating'
        ),
        sa.ForeignKeyConstraint(['search_session_id'], ['search_sessions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_search_results_search_session_id'), 'search_results', ['search_session_id'], unique=False)
    op.create_index(op.f('ix_search_results_result_key'), 'search_results', ['result_key'], unique=False)
    op.create_index('ix_search_results_session_key', 'search_results', ['search_session_id', 'result_key'], unique=False)

    op.create_table('user_feedback_learning',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('search_session_id', sa.String(length=36), nullable=True),
        sa.Column('result_id', sa.String(length=64), nullable=False),
        sa.Column('is_relevant', sa.Boolean(), nullable=False),
        sa.Column('quality_rating', sa.Integer(), nullable=False),
        sa.Column('comments', sa.Text(), nullable=True),
        sa.Column('result_title', sa.Text(), nullable=False),
        sa.Column('result_authors', sa.JSON(), nullable=False),
        sa.Column('result_journal', sa.Text(), nullable=True),
        sa.Column('result_year', sa.Integer(), nullable=True),
        sa.Column('citation_count', sa.Integer(), nullable=True),
        sa.Column('result_topics', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.CheckConstraint('quality_rating >= 1 AND quality_rating <= 5', name='ck_feedback_quality_rating'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_user_feedback_learning_user_id'), 'user_feedback_learning', ['user_id'], unique=False)
    op.create_index(op.f('ix_user_feedback_learning_search_session_id'), 'user_feedback_learning', ['search_session_id'], unique=False)
    op.create_index('ix_feedback_user_created', 'user_feedback_learning', ['user_id', 'created_at'], unique=False)

    op.create_table('user_preference_patterns',
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('preferred_authors', sa.JSON(), nullable=False),
        sa.Column('preferred_journals', sa.JSON(), nullable=False),
        sa.Column('preferred_year_range', sa.JSON(), nullable=False),
        sa.Column('preferred_citation_range', sa.JSON(), nullable=False),
        sa.Column('topic_preferences', sa.JSON(), nullable=False),
        sa.Column('quality_threshold', sa.Float(), nullable=True),
        sa.Column('relevance_threshold', sa.Float(), nullable=True),
        sa.Column('rejection_patterns', sa.JSON(), nullable=False),
        sa.Column('last_updated', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.CheckConstraint('quality_threshold >= 0 AND quality_threshold <= 1', name='ck_patterns_quality'),
        sa.CheckConstraint('relevance_threshold >= 0 AND relevance_threshold <= 1', name='ck_patterns_relevance'),
        sa.PrimaryKeyConstraint('user_id')
    )


def downgrade() -> None:
    """Drop all analytics tables"""
    op.drop_table('user_preference_patterns')
    op.drop_index('ix_feedback_user_created', table_name='user_feedback_learning')
    op.drop_index(op.f('ix_user_feedback_learning_search_session_id'), table_name='user_feedback_learning')
    op.drop_index(op.f('ix_user_feedback_learning_user_id'), table_name='user_feedback_learning')
    op.drop_table('user_feedback_learning')
    op.drop_index('ix_search_results_session_key', table_name='search_results')
    op.drop_index(op.f('ix_search_results_result_key'), table_name='search_results')
    op.drop_index(op.f('ix_search_results_search_session_id'), table_name='search_results')
    op.drop_table('search_results')
    op.drop_index('ix_search_sessions_user_created', table_name='search_sessions')
    op.drop_index('ix_search_sessions_user_id', table_name='search_sessions')
    op.drop_index('ix_search_sessions_created_at', table_name='search_sessions')
    op.drop_index(op.f('ix_search_sessions_conversation_id'), table_name='search_sessions')
    op.drop_table('search_sessions')
