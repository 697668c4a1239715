"""url_audit_sessions and url_audit_results

Revision ID: 001
Revises: 
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

audit_mode = sa.Enum('batch', 'domain', name='url_audit_mode')
audit_status = sa.Enum(
    'pending', 'discovering', 'testing', 'scoring', 'completed', 'failed',
    name='url_audit_status',
)


def upgrade() -> None:
    """Upgrade schema."""
    # Create url_audit_sessions table
    op.create_table(
        'url_audit_sessions',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('mode', audit_mode, nullable=False),
        sa.Column('domain', sa.String(255), nullable=True),
        sa.Column('status', audit_status, nullable=False),
        sa.Column('total_urls', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('completed_urls', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('completed_urls >= 0', name='ck_url_audit_sessions_completed_non_negative'),
        sa.CheckConstraint('completed_urls <= total_urls', name='ck_url_audit_sessions_completed_le_total'),
    )
    op.create_index(op.f('ix_url_audit_sessions_id'), 'url_audit_sessions', ['id'], unique=False)
    op.create_index(op.f('ix_url_audit_sessions_domain'), 'url_audit_sessions', ['domain'], unique=False)
    op.create_index(op.f('ix_url_audit_sessions_status'), 'url_audit_sessions', ['status'], unique=False)

    # Create url_audit_results table
    op.create_table(
        'url_audit_results',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('session_id', sa.String(36), nullable=False),
        sa.Column('rank', sa.Integer(), nullable=False),
        sa.Column('url', sa.Text(), nullable=False),
        sa.Column('final_url', sa.Text(), nullable=False),
        sa.Column('http_status', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('accessible', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('blocked_reason', sa.Text(), nullable=True),
        sa.Column('content_type', sa.String(255), nullable=True),
        sa.Column('js_required', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('response_time_ms', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('redirect_chain', sa.JSON(), nullable=False),
        sa.Column('bot_signals', sa.JSON(), nullable=False),
        sa.Column('score_total', sa.Integer(), nullable=False),
        sa.Column('score_breakdown', sa.JSON(), nullable=False),
        sa.Column('recommendation', sa.String(32), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['session_id'], ['url_audit_sessions.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_url_audit_results_id'), 'url_audit_results', ['id'], unique=False)
    op.create_index(op.f('ix_url_audit_results_session_id'), 'url_audit_results', ['session_id'], unique=False)
    op.create_index(op.f('ix_url_audit_results_score_total'), 'url_audit_results', ['score_total'], unique=False)
    op.create_index(op.f('ix_url_audit_results_recommendation'), 'url_audit_results', ['recommendation'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_url_audit_results_recommendation'), table_name='url_audit_results')
    op.drop_index(op.f('ix_url_audit_results_score_total'), table_name='url_audit_results')
    op.drop_index(op.f('ix_url_audit_results_session_id'), table_name='url_audit_results')
    op.drop_index(op.f('ix_url_audit_results_id'), table_name='url_audit_results')
    op.drop_table('url_audit_results')

    op.drop_index(op.f('ix_url_audit_sessions_status'), table_name='url_audit_sessions')
    op.drop_index(op.f('ix_url_audit_sessions_domain'), table_name='url_audit_sessions')
    op.drop_index(op.f('ix_url_audit_sessions_id'), table_name='url_audit_sessions')
    op.drop_table('url_audit_sessions')

    audit_status.drop(op.get_bind(), checkfirst=True)
    audit_mode.drop(op.get_bind(), checkfirst=True)
