"""Initial schema - products, users, offers, purchases, payouts, vouchers

Revision ID: 001_initial_schema
Revises:
Create Date: 2025-01-14

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

UUID = postgresql.UUID(as_uuid=False)
MONEY = sa.Numeric(10, 2)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('user_id', UUID, primary_key=True),
        sa.Column('email', sa.String(), nullable=True),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('business_name', sa.String(), nullable=True),
        sa.Column('stripe_account_id', sa.String(), nullable=True, unique=True),
        sa.Column('stripe_account_status', sa.String(20), server_default='not_connected', nullable=False),
        sa.Column('stripe_onboarding_complete', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('stripe_payouts_enabled', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('stripe_details_submitted', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('stripe_connected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint(
            "stripe_account_status IN ('not_connected', 'pending', 'active', 'restricted')",
            name='ck_users_stripe_account_status',
        ),
    )

    op.create_table(
        'products',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('user_id', UUID, nullable=False),
        *_timestamps(),
        sa.Column('display_name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('primary_image_url', sa.String(), nullable=True),
        sa.Column('price', MONEY, nullable=False),
        sa.Column('shipping_available', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('shipping_cost', MONEY, nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('listing_status', sa.String(20), server_default='active', nullable=False),
        sa.Column('sold_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_products_user_id', 'products', ['user_id'])
    op.create_index('ix_products_listing_status', 'products', ['listing_status'])

    op.create_table(
        'offers',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('product_id', UUID, sa.ForeignKey('products.id'), nullable=False),
        sa.Column('buyer_id', UUID, nullable=False),
        sa.Column('seller_id', UUID, nullable=False),
        sa.Column('original_price', MONEY, nullable=False),
        sa.Column('offer_amount', MONEY, nullable=False),
        sa.Column('offer_percentage', sa.Numeric(5, 2), nullable=True),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), server_default='pending', nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('accepted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('countered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payment_status', sa.String(20), nullable=True),
        sa.Column('payment_deadline', sa.DateTime(timezone=True), nullable=True),
        sa.Column('stripe_session_id', sa.String(), nullable=True),
        sa.Column('purchase_id', UUID, nullable=True),
        *_timestamps(),
        sa.CheckConstraint('offer_amount > 0', name='ck_offers_amount_positive'),
        sa.CheckConstraint('offer_amount < original_price', name='ck_offers_amount_below_price'),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected', 'countered', 'expired', 'cancelled')",
            name='ck_offers_status',
        ),
    )
    op.create_index('ix_offers_product_id', 'offers', ['product_id'])
    op.create_index('ix_offers_buyer_id', 'offers', ['buyer_id'])
    op.create_index('ix_offers_seller_id', 'offers', ['seller_id'])
    op.create_index('ix_offers_product_status', 'offers', ['product_id', 'status'])

    op.create_table(
        'offer_history',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('offer_id', UUID, sa.ForeignKey('offers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('action_type', sa.String(20), nullable=False),
        sa.Column('actor_id', UUID, nullable=True),
        sa.Column('previous_amount', MONEY, nullable=True),
        sa.Column('new_amount', MONEY, nullable=True),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    )
    op.create_index('ix_offer_history_offer_id', 'offer_history', ['offer_id'])

    op.create_table(
        'purchases',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('order_number', sa.String(32), nullable=False, unique=True),
        *_timestamps(),
        sa.Column('buyer_id', UUID, nullable=False),
        sa.Column('seller_id', UUID, nullable=False),
        sa.Column('product_id', UUID, sa.ForeignKey('products.id'), nullable=False),
        sa.Column('offer_id', UUID, sa.ForeignKey('offers.id'), nullable=True),
        sa.Column('voucher_id', UUID, nullable=True),
        sa.Column('item_price', MONEY, nullable=False),
        sa.Column('original_price', MONEY, nullable=True),
        sa.Column('shipping_cost', MONEY, nullable=False, server_default='0'),
        sa.Column('buyer_fee', MONEY, nullable=False, server_default='0'),
        sa.Column('voucher_discount', MONEY, nullable=False, server_default='0'),
        sa.Column('total_amount', MONEY, nullable=False),
        sa.Column('platform_fee', MONEY, nullable=True),
        sa.Column('seller_payout_amount', MONEY, nullable=True),
        sa.Column('delivery_method', sa.String(32), nullable=True),
        sa.Column('delivery_description', sa.String(), nullable=True),
        sa.Column('shipping_address', postgresql.JSONB(), nullable=True),
        sa.Column('buyer_email', sa.String(), nullable=True),
        sa.Column('buyer_phone', sa.String(), nullable=True),
        sa.Column('stripe_session_id', sa.String(), nullable=False, unique=True),
        sa.Column('stripe_payment_intent_id', sa.String(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('payment_status', sa.String(20), nullable=False),
        sa.Column('payment_method', sa.String(20), nullable=True),
        sa.Column('payment_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('funds_status', sa.String(20), server_default='held', nullable=False),
        sa.Column('funds_release_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('buyer_confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payout_status', sa.String(20), server_default='pending', nullable=False),
        sa.Column('payout_triggered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('stripe_transfer_id', sa.String(), nullable=True),
        sa.CheckConstraint(
            "funds_status IN ('held', 'released', 'auto_released', 'disputed', 'refunded')",
            name='ck_purchases_funds_status',
        ),
    )
    op.create_index('ix_purchases_buyer_id', 'purchases', ['buyer_id'])
    op.create_index('ix_purchases_seller_id', 'purchases', ['seller_id'])
    op.create_index('ix_purchases_product_id', 'purchases', ['product_id'])
    op.create_index('ix_purchases_funds_release', 'purchases', ['funds_status', 'funds_release_at'])

    op.create_table(
        'seller_payouts',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('seller_id', UUID, nullable=False),
        sa.Column('purchase_id', UUID, sa.ForeignKey('purchases.id'), nullable=False),
        sa.Column('stripe_transfer_id', sa.String(), nullable=False, unique=True),
        sa.Column('stripe_account_id', sa.String(), nullable=False),
        sa.Column('gross_amount', MONEY, nullable=False),
        sa.Column('platform_fee', MONEY, nullable=False),
        sa.Column('net_amount', MONEY, nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('initiated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_seller_payouts_seller_id', 'seller_payouts', ['seller_id'])
    op.create_index('ix_seller_payouts_purchase_id', 'seller_payouts', ['purchase_id'])

    op.create_table(
        'vouchers',
        sa.Column('id', UUID, primary_key=True),
        sa.Column('user_id', UUID, nullable=False),
        sa.Column('voucher_type', sa.String(32), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('min_purchase_cents', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), server_default='active', nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('used_on_purchase_id', UUID, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint(
            "status IN ('active', 'used', 'expired', 'cancelled')",
            name='ck_vouchers_status',
        ),
    )
    op.create_index('ix_vouchers_user_id', 'vouchers', ['user_id'])
    op.create_index('ix_vouchers_user_status', 'vouchers', ['user_id', 'status'])

    op.create_table(
        'activity_log',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.String(100), nullable=False),
        sa.Column('source', sa.String(50), nullable=True),
        sa.Column('details', postgresql.JSONB(), nullable=True),
        sa.Column('user_id', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    )
    for column in ('action', 'entity_type', 'entity_id', 'source', 'created_at'):
        op.create_index(f'ix_activity_log_{column}', 'activity_log', [column])


def downgrade() -> None:
    op.drop_table('activity_log')
    op.drop_table('vouchers')
    op.drop_table('seller_payouts')
    op.drop_table('purchases')
    op.drop_table('offer_history')
    op.drop_table('offers')
    op.drop_table('products')
    op.drop_table('users')
