# app/models/seller_payout.py

import uuid

from sqlalchemy import Column, String, Numeric, DateTime, ForeignKey, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from ..database import Base
from app.core.enums import PayoutStatus


class SellerPayout(Base):
    """Append-only ledger: one row per completed transfer to a seller."""

    __tablename__ = "seller_payouts"

    id = Column(UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid.uuid4()))
    seller_id = Column(UUID(as_uuid=False), nullable=False, index=True)
    purchase_id = Column(UUID(as_uuid=False), ForeignKey("purchases.id"), nullable=False, index=True)

    stripe_transfer_id = Column(String, nullable=False, unique=True)
    stripe_account_id = Column(String, nullable=False)

    gross_amount = Column(Numeric(10, 2), nullable=False)
    platform_fee = Column(Numeric(10, 2), nullable=False)
    net_amount = Column(Numeric(10, 2), nullable=False)

    status = Column(String(20), nullable=False, default=PayoutStatus.COMPLETED.value)
    failure_reason = Column(Text, nullable=True)

    initiated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<SellerPayout {self.stripe_transfer_id} purchase={self.purchase_id} net={self.net_amount}>"
