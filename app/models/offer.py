# app/models/offer.py

import uuid

from sqlalchemy import Column, String, Numeric, DateTime, ForeignKey, Text, Index, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base
from app.core.enums import OfferStatus


class Offer(Base):
    """
    A buyer's proposed price for a product.

    Seller actions (accept, reject, counter) only apply while the offer is
    pending or countered and has not passed expires_at. Once accepted the
    buyer has until payment_deadline to pay through an offer checkout.
    """

    __tablename__ = "offers"

    id = Column(UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid.uuid4()))
    product_id = Column(UUID(as_uuid=False), ForeignKey("products.id"), nullable=False, index=True)
    buyer_id = Column(UUID(as_uuid=False), nullable=False, index=True)
    seller_id = Column(UUID(as_uuid=False), nullable=False, index=True)

    original_price = Column(Numeric(10, 2), nullable=False)
    offer_amount = Column(Numeric(10, 2), nullable=False)
    offer_percentage = Column(Numeric(5, 2), nullable=True)
    message = Column(Text, nullable=True)

    status = Column(String(20), nullable=False, default=OfferStatus.PENDING.value, server_default=OfferStatus.PENDING.value)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    countered_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    # Payment of an accepted offer
    payment_status = Column(String(20), nullable=True)
    payment_deadline = Column(DateTime(timezone=True), nullable=True)
    stripe_session_id = Column(String, nullable=True)
    purchase_id = Column(UUID(as_uuid=False), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    history = relationship("OfferHistory", back_populates="offer", order_by="OfferHistory.created_at")

    __table_args__ = (
        CheckConstraint("offer_amount > 0", name="ck_offers_amount_positive"),
        CheckConstraint("offer_amount < original_price", name="ck_offers_amount_below_price"),
        Index("ix_offers_product_status", "product_id", "status"),
    )

    def is_expired(self, now) -> bool:
        return self.expires_at is not None and self.expires_at < now

    def __repr__(self) -> str:
        return f"<Offer {self.id} product={self.product_id} amount={self.offer_amount} status={self.status}>"


class OfferHistory(Base):
    """Append-only record of every action taken on an offer."""

    __tablename__ = "offer_history"

    id = Column(UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid.uuid4()))
    offer_id = Column(UUID(as_uuid=False), ForeignKey("offers.id", ondelete="CASCADE"), nullable=False, index=True)
    action_type = Column(String(20), nullable=False)  # created, countered, accepted, rejected, cancelled, expired
    actor_id = Column(UUID(as_uuid=False), nullable=True)
    previous_amount = Column(Numeric(10, 2), nullable=True)
    new_amount = Column(Numeric(10, 2), nullable=True)
    message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    offer = relationship("Offer", back_populates="history")

    def __repr__(self) -> str:
        return f"<OfferHistory {self.offer_id} {self.action_type}>"
