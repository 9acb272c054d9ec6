"""Add per-session search feedback

Revision ID: 002_search_feedback
Revises: 001_search_analytics
Create Date: 2026-10-16 01:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '002_search_feedback'
down_revision = '001_search_analytics'
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create the search_feedback table"""

    op.create_table('search_feedback',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('search_session_id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('overall_satisfaction', sa.Integer(), nullable=False),
        sa.Column('relevance_rating', sa.Integer(), nullable=False),
        sa.Column('quality_rating', sa.Integer(), nullable=False),
        sa.Column('ease_of_use_rating', sa.Integer(), nullable=False),
        sa.Column('would_recommend', sa.Boolean(), nullable=False),
        sa.Column('feedback_comments', sa.Text(), nullable=True),
        sa.Column('improvement_suggestions', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.CheckConstraint(
            'overall_satisfaction BETWEEN 1 AND 5 AND relevance_rating BETWEEN 1 AND 5 '
            'AND quality_rating BETWEEN 1 AND 5 AND ease_of_use_rating BETWEEN 1 AND 5',
            name='ck_search_feedback_ratings'
        ),
        sa.ForeignKeyConstraint(['search_session_id'], ['search_sessions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_search_feedback_search_session_id'), 'search_feedback', ['search_session_id'], unique=False)
    op.create_index(op.f('ix_search_feedback_user_id'), 'search_feedback', ['user_id'], unique=False)
    op.create_index('ix_search_feedback_user_created', 'search_feedback', ['user_id', 'created_at'], unique=False)


def downgrade() -> None:
    """Drop the search_feedback table"""
    op.drop_index('ix_search_feedback_user_created', table_name='search_feedback')
    op.drop_index(op.f('ix_search_feedback_user_id'), table_name='search_feedback')
    op.drop_index(op.f('ix_search_feedback_search_session_id'), table_name='search_feedback')
    op.drop_table('search_feedback')
