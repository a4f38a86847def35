# app/services/escrow_service.py
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import FundsStatus
from app.core.exceptions import PayoutError
from app.models.purchase import Purchase
from app.services.activity_logger import ActivityLogger
from app.services.payout_service import PayoutService
from app.services.stripe.client import StripeClient

logger = logging.getLogger(__name__)


class EscrowService:
    """
    Releases held funds once their escrow window has passed and pays the
    seller. Run by the scheduler, the cron endpoint and the CLI.
    """

    def __init__(self, db: AsyncSession, stripe_client: StripeClient):
        self.db = db
        self.payout_service = PayoutService(db, stripe_client)
        self.activity_logger = ActivityLogger(db)

    async def _due_purchase_ids(self, now: datetime) -> List[str]:
        result = await self.db.execute(
            select(Purchase.id)
            .where(
                Purchase.funds_status == FundsStatus.HELD.value,
                Purchase.funds_release_at <= now,
            )
            .order_by(Purchase.funds_release_at)
        )
        return list(result.scalars().all())

    async def _claim(self, purchase_id: str) -> bool:
        """held -> auto_released, unless something else moved it first"""
        result = await self.db.execute(
            update(Purchase)
            .where(Purchase.id == purchase_id, Purchase.funds_status == FundsStatus.HELD.value)
            .values(funds_status=FundsStatus.AUTO_RELEASED.value)
        )
        return result.rowcount == 1

    async def release_due_funds(self, now: Optional[datetime] = None, source: str = "scheduler") -> Dict[str, Any]:
        """
        Auto-release every held purchase past its release time and trigger
        its payout. Failures are collected per purchase, not raised, so one
        bad row never stops the rest of the sweep.
        """
        now = now or datetime.now(timezone.utc)
        purchase_ids = await self._due_purchase_ids(now)
        logger.info(f"Release sweep found {len(purchase_ids)} purchases past their hold")

        released = 0
        paid_out = 0
        errors: List[Dict[str, Any]] = []

        for purchase_id in purchase_ids:
            try:
                if not await self._claim(purchase_id):
                    logger.info(f"Purchase {purchase_id} was no longer held; skipping")
                    continue
                await self.activity_logger.log_activity(
                    action="release",
                    entity_type="purchase",
                    entity_id=purchase_id,
                    source=source,
                    details={"funds_status": FundsStatus.AUTO_RELEASED.value},
                )
                await self.db.commit()
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(f"Failed to release purchase {purchase_id}: {e}")
                errors.append({"purchase_id": purchase_id, "error": f"Release failed: {e}"})
                continue
            released += 1

            try:
                await self.payout_service.trigger_payout(purchase_id, source=source)
                paid_out += 1
            except PayoutError as e:
                logger.error(f"Payout failed for released purchase {purchase_id}: {e.message}")
                errors.append({"purchase_id": purchase_id, "error": e.message})
            except Exception as e:
                # Released but unpaid; the payout can be retried from the CLI or admin route
                logger.exception(f"Unexpected payout error for released purchase {purchase_id}: {e}")
                await self.db.rollback()
                errors.append({"purchase_id": purchase_id, "error": str(e) or type(e).__name__})

        logger.info(f"Release sweep complete: released={released} paid_out={paid_out} failed={len(errors)}")
        return {
            "success": True,
            "released": released,
            "paid_out": paid_out,
            "failed": len(errors),
            "errors": errors,
        }
