"""
Marketplace product listing.

Only the columns the purchase and offer flows read or write are mapped here;
the listing editor, image pipeline and POS sync own the rest of the row.
"""

import uuid

from sqlalchemy import Column, String, Boolean, Numeric, Text, DateTime, Index, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from ..database import Base
from app.core.enums import ListingStatus


class Product(Base):
    __tablename__ = "products"

    id = Column(UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(UUID(as_uuid=False), nullable=False, index=True)  # seller

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    display_name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    primary_image_url = Column(String, nullable=True)

    price = Column(Numeric(10, 2), nullable=False)
    shipping_available = Column(Boolean, nullable=False, server_default=text("false"), default=False)
    shipping_cost = Column(Numeric(10, 2), nullable=True)

    is_active = Column(Boolean, nullable=False, server_default=text("true"), default=True)
    listing_status = Column(String(20), nullable=False, server_default=ListingStatus.ACTIVE.value, default=ListingStatus.ACTIVE.value)
    sold_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_products_listing_status", "listing_status"),
    )

    @property
    def is_sold(self) -> bool:
        return self.sold_at is not None or self.listing_status == ListingStatus.SOLD.value

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.display_name!r} status={self.listing_status}>"
