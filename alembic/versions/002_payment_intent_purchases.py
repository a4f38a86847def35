"""Purchases from embedded checkout - payment intent id unique, session id optional

Revision ID: 002_payment_intent_purchases
Revises: 001_initial_schema
Create Date: 2025-02-03

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '002_payment_intent_purchases'
down_revision: Union[str, None] = '001_initial_schema'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.alter_column('purchases', 'stripe_session_id', existing_type=sa.String(), nullable=True)
    op.create_unique_constraint(
        'uq_purchases_stripe_payment_intent_id', 'purchases', ['stripe_payment_intent_id']
    )


def downgrade() -> None:
    op.drop_constraint('uq_purchases_stripe_payment_intent_id', 'purchases', type_='unique')
    op.alter_column('purchases', 'stripe_session_id', existing_type=sa.String(), nullable=False)
