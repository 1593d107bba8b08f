"""create_ledger_schema

Revision ID: 2026_10_12_101500
Revises:
Create Date: 2026-10-12 10:15:03.412907

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '2026_10_12_101500'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("CREATE SCHEMA IF NOT EXISTS ledger")

    op.create_table(
        'tokens',
        sa.Column('address', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('symbol', sa.Text(), nullable=False),
        sa.Column('creator', sa.Text(), nullable=False),
        sa.Column('total_supply', sa.Numeric(78, 0), nullable=False),
        sa.Column('reserve_ratio', sa.BigInteger(), nullable=False),
        sa.Column('metadata_uri', sa.Text(), server_default='', nullable=False),
        sa.Column('metadata_cache', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('logo_url', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('social_links', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('creation_block', sa.BigInteger(), nullable=True),
        sa.Column('creation_tx_hash', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('trading_enabled', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('current_price', sa.Float(), server_default=sa.text('0'), nullable=False),
        sa.Column('market_cap', sa.Float(), server_default=sa.text('0'), nullable=False),
        sa.Column('current_supply', sa.Numeric(78, 0), server_default=sa.text('0'), nullable=False),
        sa.Column('reserve_balance', sa.Numeric(78, 0), server_default=sa.text('0'), nullable=False),
        sa.Column('holder_count', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('volume_24h', sa.Float(), server_default=sa.text('0'), nullable=False),
        sa.Column('price_change_24h', sa.Float(), server_default=sa.text('0'), nullable=False),
        sa.Column('metrics_updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('inserted_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('address', name=op.f('pk_tokens')),
        schema='ledger',
    )
    op.create_index('ix_tokens_creator', 'tokens', ['creator'], unique=False, schema='ledger')
    op.create_index('ix_tokens_metrics_updated_at', 'tokens', ['metrics_updated_at'], unique=False, schema='ledger')
    op.create_index('ix_tokens_created_at', 'tokens', ['created_at'], unique=False, schema='ledger')

    op.create_table(
        'transactions',
        sa.Column('hash', sa.Text(), nullable=False),
        sa.Column('user_address', sa.Text(), nullable=False),
        sa.Column('token_address', sa.Text(), nullable=False),
        sa.Column('type', sa.Text(), nullable=False),
        sa.Column('amount_in', sa.Numeric(78, 0), nullable=False),
        sa.Column('amount_out', sa.Numeric(78, 0), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('block_number', sa.BigInteger(), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.Text(), server_default='SUCCESS', nullable=False),
        sa.CheckConstraint("type IN ('CREATE', 'BUY', 'SELL')", name=op.f('ck_transactions_type')),
        sa.ForeignKeyConstraint(
            ['token_address'],
            ['ledger.tokens.address'],
            name=op.f('fk_transactions_token_address_tokens'),
        ),
        sa.PrimaryKeyConstraint('hash', name=op.f('pk_transactions')),
        schema='ledger',
    )
    op.create_index(
        'ix_transactions_token_time', 'transactions', ['token_address', 'timestamp'], unique=False, schema='ledger'
    )
    op.create_index(
        'ix_transactions_user_token_time',
        'transactions',
        ['user_address', 'token_address', 'timestamp'],
        unique=False,
        schema='ledger',
    )
    op.create_index('ix_transactions_block_number', 'transactions', ['block_number'], unique=False, schema='ledger')

    op.create_table(
        'holders',
        sa.Column('token_address', sa.Text(), nullable=False),
        sa.Column('holder_address', sa.Text(), nullable=False),
        sa.Column('balance', sa.Numeric(78, 0), nullable=False),
        sa.Column('first_acquired_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('last_updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(
            ['token_address'],
            ['ledger.tokens.address'],
            name=op.f('fk_holders_token_address_tokens'),
        ),
        sa.PrimaryKeyConstraint('token_address', 'holder_address', name=op.f('pk_holders')),
        schema='ledger',
    )
    op.create_index('ix_holders_holder', 'holders', ['holder_address'], unique=False, schema='ledger')

    op.create_table(
        'user_portfolios',
        sa.Column('user_address', sa.Text(), nullable=False),
        sa.Column('token_address', sa.Text(), nullable=False),
        sa.Column('balance', sa.Numeric(78, 0), nullable=False),
        sa.Column('average_price', sa.Float(), nullable=False),
        sa.Column('total_invested', sa.Float(), nullable=False),
        sa.Column('realized_pnl', sa.Float(), nullable=False),
        sa.Column('unrealized_pnl', sa.Float(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(
            ['token_address'],
            ['ledger.tokens.address'],
            name=op.f('fk_user_portfolios_token_address_tokens'),
        ),
        sa.PrimaryKeyConstraint('user_address', 'token_address', name=op.f('pk_user_portfolios')),
        schema='ledger',
    )

    op.create_table(
        'content_cache',
        sa.Column('content_hash', sa.Text(), nullable=False),
        sa.Column('content_type', sa.Text(), nullable=False),
        sa.Column('data', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('url', sa.Text(), nullable=True),
        sa.Column('pinned', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('last_accessed_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('content_hash', name=op.f('pk_content_cache')),
        schema='ledger',
    )


def downgrade() -> None:
    op.drop_table('content_cache', schema='ledger')
    op.drop_table('user_portfolios', schema='ledger')
    op.drop_index('ix_holders_holder', table_name='holders', schema='ledger')
    op.drop_table('holders', schema='ledger')
    op.drop_index('ix_transactions_block_number', table_name='transactions', schema='ledger')
    op.drop_index('ix_transactions_user_token_time', table_name='transactions', schema='ledger')
    op.drop_index('ix_transactions_token_time', table_name='transactions', schema='ledger')
    op.drop_table('transactions', schema='ledger')
    op.drop_index('ix_tokens_created_at', table_name='tokens', schema='ledger')
    op.drop_index('ix_tokens_metrics_updated_at', table_name='tokens', schema='ledger')
    op.drop_index('ix_tokens_creator', table_name='tokens', schema='ledger')
    op.drop_table('tokens', schema='ledger')
    op.execute("DROP SCHEMA IF EXISTS ledger")
