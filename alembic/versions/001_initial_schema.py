"""Initial schema: wallets, recent tokens, transactions.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Encrypted wallet, one per namespace
    op.create_table(
        'wallets',
        sa.Column('namespace', sa.String(64), nullable=False),
        sa.Column('address', sa.String(42), nullable=False),
        sa.Column('ciphertext', sa.Text(), nullable=False),
        sa.Column('salt', sa.String(64), nullable=False),
        sa.Column('kdf_iterations', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('namespace')
    )

    # Recently used tokens
    op.create_table(
        'recent_tokens',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('namespace', sa.String(64), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('address', sa.String(42), nullable=False),
        sa.Column('symbol', sa.String(32), nullable=False),
        sa.Column('name', sa.String(128), nullable=True),
        sa.Column('decimals', sa.Integer(), nullable=True),
        sa.Column('logo_url', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_recent_tokens_namespace', 'recent_tokens', ['namespace'])
    op.create_index(
        'ix_recent_tokens_namespace_address', 'recent_tokens', ['namespace', 'address'], unique=True
    )

    # Submitted transactions
    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('namespace', sa.String(64), nullable=False),
        sa.Column('hash', sa.String(66), nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('direction', sa.String(16), nullable=False),
        sa.Column('amount', sa.String(96), nullable=False),
        sa.Column('token_symbol', sa.String(32), nullable=False),
        sa.Column('token_address', sa.String(42), nullable=False),
        sa.Column('sender', sa.String(42), nullable=False),
        sa.Column('recipient', sa.String(42), nullable=False),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_transactions_namespace', 'transactions', ['namespace'])
    op.create_index(
        'ix_transactions_namespace_hash', 'transactions', ['namespace', 'hash'], unique=True
    )


def downgrade() -> None:
    op.drop_index('ix_transactions_namespace_hash', table_name='transactions')
    op.drop_index('ix_transactions_namespace', table_name='transactions')
    op.drop_table('transactions')
    op.drop_index('ix_recent_tokens_namespace_address', table_name='recent_tokens')
    op.drop_index('ix_recent_tokens_namespace', table_name='recent_tokens')
    op.drop_table('recent_tokens')
    op.drop_table('wallets')
