"""init

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000

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
    # Create subscription_plans table
    op.create_table(
        'subscription_plans',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('price', sa.Numeric(18, 2), nullable=False),
        sa.Column('interval', sa.String(20)),  # daily, weekly, monthly, quarterly, yearly
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime),
    )

    # Create user_subscriptions table
    op.create_table(
        'user_subscriptions',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer, nullable=False, index=True),
        sa.Column('plan_id', sa.Integer, sa.ForeignKey('subscription_plans.id'), nullable=False),
        sa.Column('status', sa.String(20)),  # active, cancelled, expired
        sa.Column('start_date', sa.DateTime),
        sa.Column('end_date', sa.DateTime, nullable=False),
        sa.Column('cancelled_at', sa.DateTime),
        sa.Column('created_at', sa.DateTime),
        sa.Column('updated_at', sa.DateTime),
        sa.UniqueConstraint('user_id', 'plan_id', name='uq_user_subscriptions_user_plan'),
    )

    # Create crypto_wallets table
    op.create_table(
        'crypto_wallets',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer, nullable=False, index=True),
        sa.Column('chain', sa.String(20), nullable=False),
        sa.Column('wallet_address', sa.String(128), nullable=False, unique=True),
        sa.Column('public_key', sa.Text, nullable=False),
        sa.Column('private_key', sa.Text, nullable=False),
        sa.Column('seed_phrase', sa.Text),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('balance', sa.Numeric(28, 8), nullable=False, server_default='0'),
        sa.Column('last_checked', sa.DateTime),
        sa.Column('created_at', sa.DateTime),
        sa.Column('updated_at', sa.DateTime),
    )

    # Create crypto_transactions table
    op.create_table(
        'crypto_transactions',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer, nullable=False, index=True),
        sa.Column('wallet_id', sa.Integer, sa.ForeignKey('crypto_wallets.id'), nullable=False),
        sa.Column('subscription_id', sa.Integer, sa.ForeignKey('user_subscriptions.id')),
        sa.Column('chain', sa.String(20), nullable=False),
        sa.Column('transaction_hash', sa.String(128), nullable=False, unique=True),
        sa.Column('sender_address', sa.String(128)),
        sa.Column('recipient_address', sa.String(128), nullable=False),
        sa.Column('amount', sa.Numeric(28, 8), nullable=False),
        sa.Column('amount_usd', sa.Numeric(18, 2)),
        sa.Column('fee_amount', sa.Numeric(28, 8)),
        sa.Column('status', sa.String(20)),  # pending, confirmed, failed
        sa.Column('confirmations', sa.Integer, nullable=False, server_default='0'),
        sa.Column('block_height', sa.Integer),
        sa.Column('block_time', sa.DateTime),
        sa.Column('raw_data', sa.JSON),
        sa.Column('created_at', sa.DateTime),
        sa.Column('updated_at', sa.DateTime),
    )

    # Create payments table
    op.create_table(
        'payments',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer, nullable=False, index=True),
        sa.Column('plan_id', sa.Integer, sa.ForeignKey('subscription_plans.id'), nullable=False),
        sa.Column('subscription_id', sa.Integer, sa.ForeignKey('user_subscriptions.id')),
        sa.Column('amount', sa.Numeric(18, 2), nullable=False),
        sa.Column('currency', sa.String(10)),
        sa.Column('status', sa.String(20)),  # pending, completed, expired, failed
        sa.Column('payment_method', sa.String(30), nullable=False),
        sa.Column('chain', sa.String(20), nullable=False),
        sa.Column('reference_id', sa.String(64), nullable=False, unique=True),
        sa.Column('amount_crypto', sa.Numeric(28, 8), nullable=False),
        sa.Column('wallet_address', sa.String(128), nullable=False),
        sa.Column('gateway_metadata', sa.JSON),
        sa.Column('gateway_response', sa.JSON),
        sa.Column('transaction_hash', sa.String(128), unique=True),
        sa.Column('created_at', sa.DateTime),
        sa.Column('expires_at', sa.DateTime, nullable=False),
        sa.Column('completed_at', sa.DateTime),
    )

    # Create crypto_exchange_rates table
    op.create_table(
        'crypto_exchange_rates',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('chain', sa.String(20), nullable=False, unique=True),
        sa.Column('rate_usd', sa.Numeric(28, 8), nullable=False),
        sa.Column('source', sa.String(50)),
        sa.Column('last_updated', sa.DateTime),
    )


def downgrade() -> None:
    op.drop_table('crypto_exchange_rates')
    op.drop_table('payments')
    op.drop_table('crypto_transactions')
    op.drop_table('crypto_wallets')
    op.drop_table('user_subscriptions')
    op.drop_table('subscription_plans')
