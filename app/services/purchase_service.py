# app/services/purchase_service.py
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import FundsStatus
from app.core.exceptions import PayoutError, PermissionDeniedError, PurchaseNotFoundError, ValidationError
from app.models.purchase import Purchase
from app.services.activity_logger import ActivityLogger
from app.services.payout_service import PayoutService
from app.services.stripe.client import StripeClient

logger = logging.getLogger(__name__)


class PurchaseService:
    def __init__(self, db: AsyncSession, stripe_client: StripeClient):
        self.db = db
        self.stripe = stripe_client
        self.activity_logger = ActivityLogger(db)

    async def list_purchases(
        self,
        user_id: str,
        role: str = "buyer",
        status: Optional[str] = None,
    ) -> List[Purchase]:
        """Purchases the user bought (role=buyer) or sold (role=seller), newest first"""
        column = Purchase.seller_id if role == "seller" else Purchase.buyer_id
        query = select(Purchase).where(column == user_id)
        if status:
            query = query.where(Purchase.status == status)
        result = await self.db.execute(query.order_by(Purchase.created_at.desc()))
        return list(result.scalars().all())

    async def confirm_receipt(self, user_id: str, purchase_id: str) -> Dict[str, Any]:
        """
        Buyer confirms the item arrived: release the funds now rather than
        at the end of the hold, then try to pay the seller.

        A payout failure does not undo the release; the error is returned
        and the payout can be retried.
        """
        purchase = await self.db.get(Purchase, purchase_id)
        if purchase is None:
            raise PurchaseNotFoundError("Purchase not found")
        if purchase.buyer_id != user_id:
            raise PermissionDeniedError("Only the buyer can confirm receipt")
        if purchase.funds_status != FundsStatus.HELD.value:
            raise ValidationError(f"Funds are not held (funds_status is: {purchase.funds_status})")

        purchase.funds_status = FundsStatus.RELEASED.value
        purchase.buyer_confirmed_at = datetime.now(timezone.utc)
        await self.activity_logger.log_activity(
            action="release",
            entity_type="purchase",
            entity_id=purchase.id,
            source="api",
            details={"funds_status": FundsStatus.RELEASED.value, "reason": "buyer_confirmed"},
            user_id=user_id,
        )
        await self.db.commit()
        logger.info(f"Buyer confirmed receipt for {purchase.order_number}")

        response: Dict[str, Any] = {"success": True, "purchase_id": purchase.id, "funds_status": purchase.funds_status}
        try:
            payout = await PayoutService(self.db, self.stripe).trigger_payout(purchase.id, source="buyer_confirmation")
            response["payout"] = {"transfer_id": payout["transfer_id"], "amount": payout["amount"]}
        except PayoutError as e:
            logger.warning(f"Payout after confirmation failed for {purchase.order_number}: {e.message}")
            response["payout"] = {"error": e.message}
        except Exception as e:
            logger.exception(f"Unexpected payout error after confirmation for {purchase.order_number}: {e}")
            await self.db.rollback()
            response["payout"] = {"error": "Payout could not be started"}
        return response
