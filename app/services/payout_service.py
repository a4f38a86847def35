"""
Seller payout trigger.

Moves a purchase's net proceeds from the platform balance to the seller's
Connect account once escrow has released the funds. Nothing is written
unless the transfer succeeds; the SellerPayout ledger row is appended in the
same commit as the transfer id on the purchase.

Two concurrent calls for the same purchase can both pass the transfer-id
check before either commits. Callers are the admin route, the CLI and the
release sweep, which run one at a time.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.enums import FundsStatus, PayoutStatus
from app.core.exceptions import PayoutError, StripeAPIError
from app.models.purchase import Purchase
from app.models.seller_payout import SellerPayout
from app.models.user import User
from app.services import pricing
from app.services.activity_logger import ActivityLogger
from app.services.stripe.client import StripeClient

logger = logging.getLogger(__name__)


class PayoutLog:
    """Timestamped step log returned to the caller alongside the result."""

    def __init__(self):
        self.lines: List[str] = []

    def add(self, message: str) -> None:
        self.lines.append(f"{datetime.now(timezone.utc).isoformat()} - {message}")
        logger.info(message)


class PayoutService:
    def __init__(self, db: AsyncSession, stripe_client: StripeClient):
        self.db = db
        self.stripe = stripe_client
        self.settings = get_settings()
        self.activity_logger = ActivityLogger(db)

    async def _log_balance(self, log: PayoutLog) -> None:
        try:
            balance = await self.stripe.retrieve_balance()
            available = StripeClient.available_balance(balance, self.settings.STRIPE_CURRENCY)
            log.add(f"Platform available balance: {available}")
        except StripeAPIError as e:
            log.add(f"Balance check failed (continuing): {e.message}")

    async def trigger_payout(self, purchase_id: str, source: str = "api") -> Dict[str, Any]:
        """
        Transfer the seller's net amount for one purchase.

        Returns:
            {success, transfer_id, amount, logs}

        Raises:
            PayoutError: with status 400 (already paid, funds not released,
                no seller account), 404 (unknown purchase) or 500 (Stripe
                rejected the transfer). The step log travels on the error.
        """
        log = PayoutLog()
        log.add(f"Payout requested for purchase {purchase_id} ({source})")

        if not purchase_id:
            raise PayoutError("purchaseId is required", 400, log.lines)

        purchase = await self.db.get(Purchase, purchase_id)
        if purchase is None:
            raise PayoutError("Purchase not found", 404, log.lines)
        log.add(
            f"Found purchase {purchase.order_number}: total={purchase.total_amount} "
            f"funds_status={purchase.funds_status} payout_status={purchase.payout_status}"
        )

        if purchase.stripe_transfer_id:
            log.add(f"Already paid out with transfer {purchase.stripe_transfer_id}")
            raise PayoutError(
                "Already paid out", 400, log.lines,
                extra={"transfer_id": purchase.stripe_transfer_id},
            )

        if purchase.funds_status not in FundsStatus.releasable():
            raise PayoutError(f"Cannot payout - funds_status is: {purchase.funds_status}", 400, log.lines)

        seller = await self.db.get(User, purchase.seller_id)
        account_id = seller.stripe_account_id if seller is not None else None
        if not account_id:
            log.add(f"Seller {purchase.seller_id} has no Connect account")
            raise PayoutError("Seller has no Stripe account", 400, log.lines)
        log.add(f"Seller Connect account: {account_id}")

        amount = pricing.calculate_payout_amount(purchase.seller_payout_amount, purchase.total_amount)
        amount_cents = pricing.to_minor_units(amount)
        log.add(f"Payout amount: {amount} ({amount_cents} cents)")

        await self._log_balance(log)

        try:
            transfer = await self.stripe.create_transfer(
                amount=amount_cents,
                currency=self.settings.STRIPE_CURRENCY,
                destination=account_id,
                transfer_group=purchase.order_number,
                metadata={
                    "purchase_id": str(purchase.id),
                    "order_number": purchase.order_number,
                    "platform": self.settings.PLATFORM_NAME,
                },
            )
        except StripeAPIError as e:
            log.add(f"Transfer failed: {e.error_type} {e.message}")
            raise PayoutError("Stripe transfer failed", 500, log.lines, extra={"stripe_error": e.to_dict()})

        log.add(f"Transfer created: {transfer.id}")
        now = datetime.now(timezone.utc)
        platform_fee = (
            pricing.round_money(purchase.platform_fee)
            if purchase.platform_fee is not None
            else pricing.calculate_platform_fee(purchase.total_amount)
        )

        try:
            purchase.stripe_transfer_id = transfer.id
            purchase.payout_triggered_at = now
            purchase.payout_status = PayoutStatus.COMPLETED.value
            self.db.add(SellerPayout(
                seller_id=purchase.seller_id,
                purchase_id=purchase.id,
                stripe_transfer_id=transfer.id,
                stripe_account_id=account_id,
                gross_amount=purchase.total_amount,
                platform_fee=platform_fee,
                net_amount=amount,
                status=PayoutStatus.COMPLETED.value,
                initiated_at=now,
                completed_at=now,
            ))
            await self.activity_logger.log_payout(purchase, transfer.id, amount, account_id, source)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.critical(f"Transfer {transfer.id} for {purchase.order_number} succeeded but was not recorded: {e}")
            log.add(f"Failed to record transfer {transfer.id}: {e}")
            raise PayoutError(
                "Transfer succeeded but could not be recorded", 500, log.lines,
                extra={"transfer_id": transfer.id},
            )

        log.add("Payout recorded")
        return {
            "success": True,
            "transfer_id": transfer.id,
            "amount": float(amount),
            "logs": log.lines,
        }
