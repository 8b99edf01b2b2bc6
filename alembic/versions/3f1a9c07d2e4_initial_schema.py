"""Initial schema: prospects, daily_limits, activity_log

Revision ID: 3f1a9c07d2e4
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c07d2e4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('prospects',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('username', sa.Text(), nullable=False),
        sa.Column('github_id', sa.BigInteger(), nullable=True),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('repos', sa.JSON(), nullable=False),
        sa.Column('discovered_via', sa.Text(), nullable=True),
        sa.Column('score', sa.Integer(), nullable=True),
        sa.Column('tier', sa.Text(), nullable=True),
        sa.Column('outreach_status', sa.Text(), nullable=False),
        sa.Column('target_repo', sa.Text(), nullable=True),
        sa.Column('pr_url', sa.Text(), nullable=True),
        sa.Column('pr_number', sa.Integer(), nullable=True),
        sa.Column('pr_opened_at', sa.DateTime(), nullable=True),
        sa.Column('stacks_address', sa.Text(), nullable=True),
        sa.Column('address_valid', sa.Boolean(), nullable=False),
        sa.Column('verified_at', sa.DateTime(), nullable=True),
        sa.Column('payout_status', sa.Text(), nullable=False),
        sa.Column('payout_txid', sa.Text(), nullable=True),
        sa.Column('payout_amount_sats', sa.BigInteger(), nullable=True),
        sa.Column('payout_sent_at', sa.DateTime(), nullable=True),
        sa.Column('payout_block_height', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username', name='uq_prospect_username'),
    )
    op.create_index('ix_prospects_tier', 'prospects', ['tier'])
    op.create_index('ix_prospects_outreach_status', 'prospects', ['outreach_status'])
    op.create_index('ix_prospects_payout_status', 'prospects', ['payout_status'])
    op.create_index('ix_prospects_stacks_address', 'prospects', ['stacks_address'])

    op.create_table('daily_limits',
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('prs_opened', sa.Integer(), nullable=False),
        sa.Column('payouts_sent', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('date'),
    )

    op.create_table('activity_log',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('action', sa.Text(), nullable=False),
        sa.Column('prospect_id', sa.Integer(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['prospect_id'], ['prospects.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_activity_log_action', 'activity_log', ['action'])
    op.create_index('ix_activity_log_prospect_id', 'activity_log', ['prospect_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_activity_log_prospect_id', table_name='activity_log')
    op.drop_index('ix_activity_log_action', table_name='activity_log')
    op.drop_table('activity_log')
    op.drop_table('daily_limits')
    op.drop_index('ix_prospects_stacks_address', table_name='prospects')
    op.drop_index('ix_prospects_payout_status', table_name='prospects')
    op.drop_index('ix_prospects_outreach_status', table_name='prospects')
    op.drop_index('ix_prospects_tier', table_name='prospects')
    op.drop_table('prospects')
