# app/models/purchase.py

import uuid

from sqlalchemy import Column, String, Numeric, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.sql import func

from ..database import Base
from app.core.enums import FundsStatus, PayoutStatus


class Purchase(Base):
    """
    One buyer/seller/product transaction, created from a completed checkout.

    Created either from a Checkout session (stripe_session_id) or from an
    embedded-checkout PaymentIntent (stripe_payment_intent_id only). Both ids
    are unique, so a redelivered webhook cannot create a second row.
    funds_status moves held -> released/auto_released before the seller can
    be paid; stripe_transfer_id is set once the transfer succeeds.
    """

    __tablename__ = "purchases"

    id = Column(UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid.uuid4()))
    order_number = Column(String(32), nullable=False, unique=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    buyer_id = Column(UUID(as_uuid=False), nullable=False, index=True)
    seller_id = Column(UUID(as_uuid=False), nullable=False, index=True)
    product_id = Column(UUID(as_uuid=False), ForeignKey("products.id"), nullable=False, index=True)
    offer_id = Column(UUID(as_uuid=False), ForeignKey("offers.id"), nullable=True)
    voucher_id = Column(UUID(as_uuid=False), nullable=True)

    # Money, in major units (AUD)
    item_price = Column(Numeric(10, 2), nullable=False)
    original_price = Column(Numeric(10, 2), nullable=True)
    shipping_cost = Column(Numeric(10, 2), nullable=False, default=0)
    buyer_fee = Column(Numeric(10, 2), nullable=False, default=0)
    voucher_discount = Column(Numeric(10, 2), nullable=False, default=0)
    total_amount = Column(Numeric(10, 2), nullable=False)
    platform_fee = Column(Numeric(10, 2), nullable=True)
    seller_payout_amount = Column(Numeric(10, 2), nullable=True)

    delivery_method = Column(String(32), nullable=True)
    delivery_description = Column(String, nullable=True)
    shipping_address = Column(JSONB, nullable=True)
    buyer_email = Column(String, nullable=True)
    buyer_phone = Column(String, nullable=True)

    # Payment
    stripe_session_id = Column(String, nullable=True, unique=True)
    stripe_payment_intent_id = Column(String, nullable=True, unique=True)
    status = Column(String(20), nullable=False)
    payment_status = Column(String(20), nullable=False)
    payment_method = Column(String(20), nullable=True)
    payment_date = Column(DateTime(timezone=True), nullable=True)

    # Escrow
    funds_status = Column(String(20), nullable=False, default=FundsStatus.HELD.value, server_default=FundsStatus.HELD.value)
    funds_release_at = Column(DateTime(timezone=True), nullable=True)
    buyer_confirmed_at = Column(DateTime(timezone=True), nullable=True)

    # Payout
    payout_status = Column(String(20), nullable=False, default=PayoutStatus.PENDING.value, server_default=PayoutStatus.PENDING.value)
    payout_triggered_at = Column(DateTime(timezone=True), nullable=True)
    stripe_transfer_id = Column(String, nullable=True)

    __table_args__ = (
        Index("ix_purchases_funds_release", "funds_status", "funds_release_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Purchase {self.order_number} product={self.product_id} "
            f"funds={self.funds_status} payout={self.payout_status}>"
        )
