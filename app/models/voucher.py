# app/models/voucher.py

import uuid

from sqlalchemy import Column, String, Integer, DateTime, Text, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from ..database import Base
from app.core.enums import VoucherStatus


class Voucher(Base):
    """A stored discount credit, redeemable once against a qualifying purchase."""

    __tablename__ = "vouchers"

    id = Column(UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(UUID(as_uuid=False), nullable=False, index=True)
    voucher_type = Column(String(32), nullable=False, default="first_upload_promo")

    # Minor units (cents)
    amount_cents = Column(Integer, nullable=False, default=1000)
    min_purchase_cents = Column(Integer, nullable=False, default=3000)

    status = Column(String(20), nullable=False, default=VoucherStatus.ACTIVE.value, server_default=VoucherStatus.ACTIVE.value)
    description = Column(Text, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    used_at = Column(DateTime(timezone=True), nullable=True)
    used_on_purchase_id = Column(UUID(as_uuid=False), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_vouchers_user_status", "user_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<Voucher {self.id} {self.amount_cents}c status={self.status}>"
