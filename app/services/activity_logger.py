# app/services/activity_logger.py
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Any, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.activity_log import ActivityLog

logger = logging.getLogger(__name__)

class ActivityLogger:
    """
    Audit trail for marketplace money movements and offer transitions.

    Entries are flushed with the caller's transaction, so they commit or roll
    back together with the change they describe.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log_activity(
        self,
        action: str,
        entity_type: str,
        entity_id: str,
        source: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None
    ) -> Optional[ActivityLog]:
        """
        Args:
            action: purchase, release, payout, offer_accepted, connect_account_created...
            entity_type: purchase, product, offer or user
            entity_id: The ID of the affected entity
            source: stripe_webhook, scheduler, cron, api, admin or cli
            details: Optional JSON-serialisable details
            user_id: Auth provider id of the acting user, if any

        Returns:
            The ActivityLog row, or None if it could not be written
        """
        try:
            entry = ActivityLog(
                action=action,
                entity_type=entity_type,
                entity_id=str(entity_id),
                source=source,
                details=details,
                user_id=user_id,
                created_at=datetime.now(timezone.utc)
            )
            self.db.add(entry)
            await self.db.flush()

            logger.debug(f"Activity logged: {action} {entity_type} {entity_id} (source: {source or 'N/A'})")
            return entry

        except Exception as e:
            # Audit entries must not interrupt the main flow
            logger.error(f"Error logging {action} for {entity_type} {entity_id}: {str(e)}")
            return None

    async def log_purchase(self, purchase, product_marked_sold: bool) -> Optional[ActivityLog]:
        """Record a purchase created from a completed checkout"""
        return await self.log_activity(
            action="purchase",
            entity_type="purchase",
            entity_id=purchase.id,
            source="stripe_webhook",
            details={
                "order_number": purchase.order_number,
                "product_id": purchase.product_id,
                "offer_id": purchase.offer_id,
                "total_amount": str(purchase.total_amount),
                "funds_release_at": purchase.funds_release_at.isoformat() if purchase.funds_release_at else None,
                "product_marked_sold": product_marked_sold,
            },
            user_id=purchase.buyer_id,
        )

    async def log_payout(
        self,
        purchase,
        transfer_id: str,
        amount: Decimal,
        account_id: str,
        source: str,
    ) -> Optional[ActivityLog]:
        """Record a completed transfer to a seller"""
        return await self.log_activity(
            action="payout",
            entity_type="purchase",
            entity_id=purchase.id,
            source=source,
            details={
                "order_number": purchase.order_number,
                "transfer_id": transfer_id,
                "amount": str(amount),
                "account": account_id,
            },
        )
