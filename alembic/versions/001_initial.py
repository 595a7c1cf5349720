"""sentinels and activities

Revision ID: 001_initial
Revises:
Create Date: 2026-10-16 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'sentinels',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('wallet_address', sa.String(42), nullable=False),
        sa.Column('threshold', sa.Numeric(24, 8), nullable=False),
        sa.Column('condition', sa.String(10), nullable=False),  # above, below
        sa.Column('payment_method', sa.String(10)),  # usdc, usdt; null uses the default
        sa.Column('network', sa.String(10), nullable=False),  # testnet, mainnet
        sa.Column('notification_target', sa.Text),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_sentinels_user_id', 'sentinels', ['user_id'])

    # Append-only ledger, one row per completed check cycle
    op.create_table(
        'activities',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'sentinel_id',
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey('sentinels.id', ondelete='CASCADE'),
            nullable=False,
        ),
        sa.Column('user_id', sa.String(64), nullable=False),
        sa.Column('price', sa.Numeric(24, 8)),
        sa.Column('cost', sa.Numeric(24, 6), nullable=False, server_default='0'),
        sa.Column('settlement_time_ms', sa.Integer),
        sa.Column('payment_method', sa.String(10), nullable=False),
        sa.Column('transaction_reference', sa.String(66)),
        sa.Column('triggered', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('status', sa.String(10), nullable=False),  # success, failed
        sa.Column('error_message', sa.Text),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_activities_sentinel_id', 'activities', ['sentinel_id'])
    op.create_index('ix_activities_created_at', 'activities', ['created_at'])


def downgrade() -> None:
    op.drop_index('ix_activities_created_at', table_name='activities')
    op.drop_index('ix_activities_sentinel_id', table_name='activities')
    op.drop_table('activities')
    op.drop_index('ix_sentinels_user_id', table_name='sentinels')
    op.drop_table('sentinels')
