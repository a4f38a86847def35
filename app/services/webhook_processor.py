"""
Processes verified Stripe webhook events.

checkout.session.completed (hosted Checkout) and payment_intent.succeeded
(embedded checkout) are the only events that create data: each turns the
checkout metadata into a Purchase with funds held in escrow and marks the
product sold. Stripe redelivers events, so both handlers are idempotent on
the Stripe id they key on: a pre-insert lookup catches ordinary redeliveries
and the unique constraints on purchases.stripe_session_id and
purchases.stripe_payment_intent_id catch two deliveries racing each other.
The purchase insert and the mark-sold update commit together.

Signature verification happens in the route before anything here runs.
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import (
    CheckoutFlow,
    FundsStatus,
    ListingStatus,
    OfferPaymentStatus,
    OfferStatus,
    PaymentStatus,
    PayoutStatus,
    PurchaseStatus,
    VoucherStatus,
)
from app.models.offer import Offer
from app.models.product import Product
from app.models.purchase import Purchase
from app.models.voucher import Voucher
from app.services import pricing
from app.services.activity_logger import ActivityLogger
from app.services.connect_service import ConnectService
from app.services.stripe.client import StripeClient

logger = logging.getLogger(__name__)


def _metadata_amount(metadata: Dict[str, Any], key: str) -> Optional[Decimal]:
    value = metadata.get(key)
    if value in (None, ""):
        return None
    return pricing.round_money(value)


def extract_shipping_address(session: Any) -> Optional[Dict[str, Any]]:
    """Flatten the shipping/customer details Checkout collected into one dict"""
    collected = session.get("collected_information") or {}
    details = session.get("shipping_details") or collected.get("shipping_details") or {}
    customer = session.get("customer_details") or {}
    address = details.get("address") or customer.get("address")
    if not address:
        return None
    return {
        "name": details.get("name") or customer.get("name"),
        "line1": address.get("line1"),
        "line2": address.get("line2"),
        "city": address.get("city"),
        "state": address.get("state"),
        "postal_code": address.get("postal_code"),
        "country": address.get("country"),
        "phone": customer.get("phone"),
    }


class StripeWebhookProcessor:
    def __init__(self, db: AsyncSession, stripe_client: Optional[StripeClient] = None):
        self.db = db
        self.stripe = stripe_client
        self.activity_logger = ActivityLogger(db)

    async def process_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        Dispatch one verified event.

        Exceptions propagate so the route can answer 500 and Stripe retries.
        """
        event_type = event["type"]
        data_object = event["data"]["object"]
        logger.info(f"Processing Stripe event {event.get('id')} ({event_type})")

        if event_type == "checkout.session.completed":
            return await self.handle_checkout_completed(data_object)
        if event_type == "checkout.session.expired":
            logger.info(f"Checkout session {data_object.get('id')} expired; product stays available")
            return {"status": "ignored", "reason": "session_expired"}
        if event_type == "payment_intent.succeeded":
            return await self.handle_payment_intent_succeeded(data_object)
        if event_type == "payment_intent.payment_failed":
            return await self.handle_payment_failed(data_object)
        if event_type == "account.updated":
            updated = await ConnectService(self.db, self.stripe).handle_account_updated(data_object)
            return {"status": "updated" if updated else "ignored"}
        if event_type == "account.application.deauthorized":
            # The seller disconnected the platform; payouts to the account will fail until they reconnect
            logger.warning(f"Connect account {event.get('account')} deauthorized application {data_object.get('id')}")
            return {"status": "ignored", "reason": "account_deauthorized"}

        logger.info(f"Unhandled Stripe event type: {event_type}")
        return {"status": "ignored", "reason": "unhandled_event"}

    async def _find_purchase(self, column, stripe_id: str) -> Optional[Purchase]:
        result = await self.db.execute(select(Purchase).where(column == stripe_id))
        return result.scalar_one_or_none()

    async def _mark_product_sold(self, product_id: str, sold_at: datetime) -> bool:
        """
        Flip the product to sold only if nobody has yet.

        Returns True if this call marked it.
        """
        result = await self.db.execute(
            update(Product)
            .where(Product.id == product_id, Product.sold_at.is_(None))
            .values(sold_at=sold_at, is_active=False, listing_status=ListingStatus.SOLD.value)
        )
        return result.rowcount == 1

    def _build_purchase(
        self,
        metadata: Dict[str, Any],
        now: datetime,
        amount_minor: Optional[int] = None,
        **stripe_fields: Any,
    ) -> Purchase:
        """
        Purchase from checkout metadata. stripe_fields carries what the
        paying object adds: ids, shipping address and buyer contact.
        """
        item_price = _metadata_amount(metadata, "item_price") or Decimal("0.00")
        total = _metadata_amount(metadata, "total_amount")
        if total is None and amount_minor is not None:
            total = pricing.round_money(Decimal(amount_minor) / 100)

        return Purchase(
            id=str(uuid.uuid4()),
            order_number=pricing.generate_order_number(now),
            created_at=now,
            buyer_id=metadata["buyer_id"],
            seller_id=metadata["seller_id"],
            product_id=metadata["product_id"],
            offer_id=metadata.get("offer_id") or None,
            voucher_id=metadata.get("voucher_id") or None,
            item_price=item_price,
            original_price=_metadata_amount(metadata, "original_price"),
            shipping_cost=_metadata_amount(metadata, "delivery_cost") or Decimal("0.00"),
            buyer_fee=_metadata_amount(metadata, "buyer_fee") or Decimal("0.00"),
            voucher_discount=_metadata_amount(metadata, "voucher_discount") or Decimal("0.00"),
            total_amount=total if total is not None else item_price,
            platform_fee=_metadata_amount(metadata, "platform_fee"),
            seller_payout_amount=_metadata_amount(metadata, "seller_payout"),
            delivery_method=metadata.get("delivery_method"),
            delivery_description=metadata.get("delivery_description"),
            status=PurchaseStatus.PAID.value,
            payment_status=PaymentStatus.PAID.value,
            payment_method="stripe",
            payment_date=now,
            funds_status=FundsStatus.HELD.value,
            funds_release_at=pricing.escrow_release_time(now),
            payout_status=PayoutStatus.PENDING.value,
            **stripe_fields,
        )

    async def _check_product(self, product_id: str, reference: str) -> Optional[Dict[str, Any]]:
        """None if the product can still be sold, else the ignore result"""
        product = await self.db.get(Product, product_id)
        if product is None:
            logger.error(f"{reference} references missing product {product_id}")
            return {"status": "ignored", "reason": "product_not_found"}
        if product.sold_at is not None:
            # Paid for something already sold; needs a manual refund
            logger.error(f"Product {product_id} was already sold before {reference} completed")
            return {"status": "ignored", "reason": "already_sold"}
        return None

    async def _record_purchase(self, purchase: Purchase, reference: str) -> Dict[str, Any]:
        """
        Insert the purchase, mark the product sold and settle any offer or
        voucher, all in one commit. A unique-key clash means another delivery
        got there first.
        """
        self.db.add(purchase)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            logger.info(f"{reference} was processed concurrently; skipping")
            return {"status": "duplicate"}

        marked = await self._mark_product_sold(purchase.product_id, purchase.created_at)
        if not marked:
            logger.error(f"Product {purchase.product_id} was marked sold by another purchase during {purchase.order_number}")

        if purchase.offer_id:
            await self._settle_offer(purchase, purchase.created_at)
        if purchase.voucher_id:
            await self._redeem_voucher(purchase, purchase.created_at)

        await self.activity_logger.log_purchase(purchase, product_marked_sold=marked)
        await self.db.commit()

        logger.info(
            f"Created purchase {purchase.order_number} for product {purchase.product_id} from {reference}; "
            f"funds held until {purchase.funds_release_at.isoformat()}"
        )
        return {
            "status": "created",
            "purchase_id": purchase.id,
            "order_number": purchase.order_number,
            "product_marked_sold": marked,
        }

    async def handle_checkout_completed(self, session: Dict[str, Any]) -> Dict[str, Any]:
        session_id = session["id"]
        metadata = dict(session.get("metadata") or {})

        product_id = metadata.get("product_id")
        if not product_id or not metadata.get("buyer_id") or not metadata.get("seller_id"):
            logger.error(f"Checkout session {session_id} is missing purchase metadata: {metadata}")
            return {"status": "ignored", "reason": "missing_metadata"}

        existing = await self._find_purchase(Purchase.stripe_session_id, session_id)
        if existing is not None:
            logger.info(f"Checkout session {session_id} already processed as {existing.order_number}")
            return {"status": "duplicate", "purchase_id": existing.id}

        reference = f"checkout session {session_id}"
        rejected = await self._check_product(product_id, reference)
        if rejected is not None:
            return rejected

        customer = session.get("customer_details") or {}
        purchase = self._build_purchase(
            metadata,
            datetime.now(timezone.utc),
            amount_minor=session.get("amount_total"),
            stripe_session_id=session_id,
            stripe_payment_intent_id=session.get("payment_intent"),
            shipping_address=extract_shipping_address(session),
            buyer_email=customer.get("email") or session.get("customer_email"),
            buyer_phone=customer.get("phone"),
        )
        return await self._record_purchase(purchase, reference)

    async def handle_payment_intent_succeeded(self, intent: Dict[str, Any]) -> Dict[str, Any]:
        """
        Embedded checkout. Intents behind a hosted Checkout session carry the
        same metadata but are recorded by checkout.session.completed, so only
        intents tagged as embedded are turned into purchases here.
        """
        intent_id = intent["id"]
        metadata = dict(intent.get("metadata") or {})

        if metadata.get("checkout_flow") != CheckoutFlow.PAYMENT_INTENT.value:
            logger.info(f"Payment intent {intent_id} belongs to a Checkout session; nothing to do")
            return {"status": "ignored", "reason": "checkout_session_payment"}

        product_id = metadata.get("product_id")
        if not product_id or not metadata.get("buyer_id") or not metadata.get("seller_id"):
            logger.error(f"Payment intent {intent_id} is missing purchase metadata: {metadata}")
            return {"status": "ignored", "reason": "missing_metadata"}

        existing = await self._find_purchase(Purchase.stripe_payment_intent_id, intent_id)
        if existing is not None:
            logger.info(f"Payment intent {intent_id} already processed as {existing.order_number}")
            return {"status": "duplicate", "purchase_id": existing.id}

        reference = f"payment intent {intent_id}"
        rejected = await self._check_product(product_id, reference)
        if rejected is not None:
            return rejected

        shipping = intent.get("shipping") or {}
        purchase = self._build_purchase(
            metadata,
            datetime.now(timezone.utc),
            amount_minor=intent.get("amount_received") or intent.get("amount"),
            stripe_payment_intent_id=intent_id,
            shipping_address=extract_shipping_address({"shipping_details": shipping}),
            buyer_email=intent.get("receipt_email"),
            buyer_phone=shipping.get("phone"),
        )
        return await self._record_purchase(purchase, reference)

    async def _settle_offer(self, purchase: Purchase, now: datetime) -> None:
        """Mark the paid offer and close out the other open offers on the product"""
        try:
            async with self.db.begin_nested():
                await self.db.execute(
                    update(Offer)
                    .where(Offer.id == purchase.offer_id)
                    .values(payment_status=OfferPaymentStatus.PAID.value, purchase_id=purchase.id)
                )
                await self.db.execute(
                    update(Offer)
                    .where(
                        Offer.product_id == purchase.product_id,
                        Offer.id != purchase.offer_id,
                        Offer.status.in_(OfferStatus.open_states()),
                    )
                    .values(status=OfferStatus.REJECTED.value, rejected_at=now)
                )
        except SQLAlchemyError as e:
            logger.error(f"Failed to update offer {purchase.offer_id} for {purchase.order_number}: {e}")

    async def _redeem_voucher(self, purchase: Purchase, now: datetime) -> None:
        try:
            async with self.db.begin_nested():
                await self.db.execute(
                    update(Voucher)
                    .where(Voucher.id == purchase.voucher_id, Voucher.status == VoucherStatus.ACTIVE.value)
                    .values(status=VoucherStatus.USED.value, used_at=now, used_on_purchase_id=purchase.id)
                )
        except SQLAlchemyError as e:
            logger.error(f"Failed to mark voucher {purchase.voucher_id} used for {purchase.order_number}: {e}")

    async def handle_payment_failed(self, payment_intent: Any) -> Dict[str, Any]:
        metadata = payment_intent.get("metadata") or {}
        offer_id = metadata.get("offer_id")
        error = payment_intent.get("last_payment_error") or {}
        logger.warning(f"Payment {payment_intent.get('id')} failed: {error.get('message')}")
        if not offer_id:
            return {"status": "ignored", "reason": "not_offer_payment"}

        await self.db.execute(
            update(Offer)
            .where(Offer.id == offer_id)
            .values(payment_status=OfferPaymentStatus.FAILED.value)
        )
        await self.db.commit()
        return {"status": "updated", "offer_id": offer_id}
