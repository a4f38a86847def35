# app/models/activity_log.py
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from sqlalchemy.dialects.postgresql import JSONB
from app.database import Base

class ActivityLog(Base):
    """
    Records significant marketplace events for auditing and support.

    This includes:
    - Purchases created from checkout webhooks and products marked sold
    - Escrow releases and seller payouts
    - Offer transitions
    - Connect account status changes
    """
    __tablename__ = "activity_log"

    id = Column(Integer, primary_key=True)
    action = Column(String(50), nullable=False, index=True)  # 'purchase', 'sold', 'payout', 'release', 'offer_accepted'...
    entity_type = Column(String(50), nullable=False, index=True)  # 'purchase', 'product', 'offer', 'user'
    entity_id = Column(String(100), nullable=False, index=True)
    source = Column(String(50), nullable=True, index=True)  # 'stripe_webhook', 'scheduler', 'api', 'cli'

    details = Column(JSONB, nullable=True)

    # Auth provider user id, no foreign key
    user_id = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<ActivityLog {self.action} {self.entity_type} {self.entity_id}>"
