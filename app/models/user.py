# app/models/user.py
from sqlalchemy import Column, String, Boolean, DateTime, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from app.database import Base
from app.core.enums import ConnectStatus


class User(Base):
    """
    Marketplace user profile.

    The id is the subject of the hosted auth provider's token. The stripe_*
    columns cache the state of the seller's Connect account and are refreshed
    by the status poll and the account.updated webhook.
    """
    __tablename__ = "users"

    user_id = Column(UUID(as_uuid=False), primary_key=True)
    email = Column(String, nullable=True)
    name = Column(String, nullable=True)
    business_name = Column(String, nullable=True)

    stripe_account_id = Column(String, nullable=True, unique=True)
    stripe_account_status = Column(
        String(20),
        nullable=False,
        server_default=ConnectStatus.NOT_CONNECTED.value,
        default=ConnectStatus.NOT_CONNECTED.value,
    )
    stripe_onboarding_complete = Column(Boolean, nullable=False, server_default=text("false"), default=False)
    stripe_payouts_enabled = Column(Boolean, nullable=False, server_default=text("false"), default=False)
    stripe_details_submitted = Column(Boolean, nullable=False, server_default=text("false"), default=False)
    stripe_connected_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    @property
    def display_name(self) -> str:
        return self.business_name or self.name or ""

    def __repr__(self):
        return f"<User {self.user_id} stripe={self.stripe_account_status}>"
