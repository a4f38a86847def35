"""
Offer negotiation between buyers and sellers.

    pending ──accept──> accepted ──(offer checkout)──> paid
       │  └──reject──> rejected
       │  └──counter─> countered ──accept/reject/counter──> ...
       │  └──cancel──> cancelled (buyer)
       └──(expiry sweep)──> expired

Seller actions need the offer to be pending or countered and unexpired.
Accepting reserves the product (listing_status 'pending') and rejects every
other open offer on it in the same transaction.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.enums import ListingStatus, OfferAction, OfferPaymentStatus, OfferStatus
from app.core.exceptions import (
    OfferNotFoundError,
    PermissionDeniedError,
    ProductNotFoundError,
    ValidationError,
)
from app.models.offer import Offer, OfferHistory
from app.models.product import Product
from app.services import pricing
from app.services.activity_logger import ActivityLogger

logger = logging.getLogger(__name__)


class OfferService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.activity_logger = ActivityLogger(db)

    async def _get_offer(self, offer_id: str) -> Offer:
        offer = await self.db.get(Offer, offer_id)
        if offer is None:
            raise OfferNotFoundError("Offer not found")
        return offer

    def _record(
        self,
        offer: Offer,
        action: OfferAction,
        actor_id: Optional[str],
        previous_amount: Optional[Decimal] = None,
        new_amount: Optional[Decimal] = None,
        message: Optional[str] = None,
    ) -> None:
        self.db.add(OfferHistory(
            offer_id=offer.id,
            action_type=action.value,
            actor_id=actor_id,
            previous_amount=previous_amount,
            new_amount=new_amount,
            message=message,
        ))

    @staticmethod
    def _check_seller_action(offer: Offer, user_id: str, action: str, now: datetime) -> None:
        if offer.seller_id != user_id:
            raise PermissionDeniedError(f"Only the seller can {action} this offer")
        if offer.status not in OfferStatus.open_states():
            raise ValidationError(f"Cannot {action} offer with status: {offer.status}")
        if offer.is_expired(now):
            raise ValidationError("This offer has expired")

    async def create_offer(
        self,
        buyer_id: str,
        product_id: str,
        offer_amount,
        message: Optional[str] = None,
    ) -> Offer:
        """
        Raises:
            ValidationError: non-positive amount, own product, product not
                open for offers, or amount not below the asking price
            ProductNotFoundError
        """
        amount = pricing.round_money(offer_amount)
        if amount <= 0:
            raise ValidationError("Offer amount must be greater than zero")

        product = await self.db.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError("Product not found")
        if product.user_id == buyer_id:
            raise ValidationError("You cannot make an offer on your own product")
        if product.listing_status != ListingStatus.ACTIVE.value or not product.is_active:
            raise ValidationError("This product is not available for offers")

        price = pricing.round_money(product.price)
        if amount >= price:
            raise ValidationError("Offer amount must be less than the product price")

        now = datetime.now(timezone.utc)
        offer = Offer(
            id=str(uuid.uuid4()),
            product_id=product.id,
            buyer_id=buyer_id,
            seller_id=product.user_id,
            original_price=price,
            offer_amount=amount,
            offer_percentage=pricing.calculate_offer_percentage(amount, price),
            message=message,
            status=OfferStatus.PENDING.value,
            expires_at=now + timedelta(days=pricing.OFFER_EXPIRY_DAYS),
        )
        self.db.add(offer)
        self._record(offer, OfferAction.CREATED, buyer_id, new_amount=amount, message=message)
        await self.db.commit()

        logger.info(f"Offer {offer.id} of {amount} on product {product.id} ({offer.offer_percentage}%)")
        return offer

    async def list_offers(
        self,
        user_id: str,
        role: Optional[str] = None,
        statuses: Optional[List[str]] = None,
        product_id: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        """Offers the user made (buyer), received (seller) or both, with per-status counts"""
        if role == "buyer":
            party = Offer.buyer_id == user_id
        elif role == "seller":
            party = Offer.seller_id == user_id
        else:
            party = or_(Offer.buyer_id == user_id, Offer.seller_id == user_id)

        query = select(Offer).where(party)
        if statuses:
            query = query.where(Offer.status.in_(statuses))
        if product_id:
            query = query.where(Offer.product_id == product_id)

        total = await self.db.scalar(select(func.count()).select_from(query.subquery()))
        result = await self.db.execute(
            query.order_by(Offer.created_at.desc()).offset((page - 1) * limit).limit(limit)
        )
        offers = list(result.scalars().all())

        stats_result = await self.db.execute(
            select(Offer.status, func.count()).where(party).group_by(Offer.status)
        )
        stats = {status.value: 0 for status in OfferStatus}
        for status, count in stats_result.all():
            stats[status] = count
        stats["total"] = sum(stats.values())

        return {
            "offers": offers,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total or 0,
                "total_pages": ((total or 0) + limit - 1) // limit,
            },
            "stats": stats,
        }

    async def _mark_product_pending(self, product_id: str) -> None:
        await self.db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(listing_status=ListingStatus.PENDING.value)
        )

    async def _reject_sibling_offers(self, offer: Offer, now: datetime) -> int:
        result = await self.db.execute(
            update(Offer)
            .where(
                Offer.product_id == offer.product_id,
                Offer.id != offer.id,
                Offer.status.in_(OfferStatus.open_states()),
            )
            .values(status=OfferStatus.REJECTED.value, rejected_at=now)
        )
        return result.rowcount

    async def accept_offer(self, user_id: str, offer_id: str) -> Offer:
        offer = await self._get_offer(offer_id)
        now = datetime.now(timezone.utc)
        self._check_seller_action(offer, user_id, "accept", now)

        offer.status = OfferStatus.ACCEPTED.value
        offer.accepted_at = now
        offer.payment_status = OfferPaymentStatus.PENDING.value
        offer.payment_deadline = now + timedelta(hours=pricing.OFFER_PAYMENT_WINDOW_HOURS)
        self._record(offer, OfferAction.ACCEPTED, user_id, new_amount=offer.offer_amount)

        await self._mark_product_pending(offer.product_id)
        rejected = await self._reject_sibling_offers(offer, now)

        await self.activity_logger.log_activity(
            action="offer_accepted",
            entity_type="offer",
            entity_id=offer.id,
            source="api",
            details={"product_id": offer.product_id, "amount": str(offer.offer_amount), "rejected_others": rejected},
            user_id=user_id,
        )
        await self.db.commit()

        logger.info(f"Offer {offer.id} accepted; product {offer.product_id} reserved, {rejected} other offers rejected")
        return offer

    async def reject_offer(self, user_id: str, offer_id: str, reason: Optional[str] = None) -> Offer:
        offer = await self._get_offer(offer_id)
        now = datetime.now(timezone.utc)
        self._check_seller_action(offer, user_id, "reject", now)

        offer.status = OfferStatus.REJECTED.value
        offer.rejected_at = now
        self._record(offer, OfferAction.REJECTED, user_id, message=reason)
        await self.db.commit()
        return offer

    async def counter_offer(
        self,
        user_id: str,
        offer_id: str,
        new_amount,
        message: Optional[str] = None,
    ) -> Offer:
        """
        Seller proposes a new price between the buyer's offer and the asking
        price. Resets the expiry window.
        """
        offer = await self._get_offer(offer_id)
        now = datetime.now(timezone.utc)
        self._check_seller_action(offer, user_id, "counter", now)

        amount = pricing.round_money(new_amount)
        if amount >= pricing.round_money(offer.original_price):
            raise ValidationError("Counter offer must be less than the original price")
        if amount <= pricing.round_money(offer.offer_amount):
            raise ValidationError("Counter offer must be higher than the current offer")

        previous = offer.offer_amount
        offer.offer_amount = amount
        offer.offer_percentage = pricing.calculate_offer_percentage(amount, offer.original_price)
        offer.status = OfferStatus.COUNTERED.value
        offer.countered_at = now
        offer.expires_at = now + timedelta(days=pricing.OFFER_EXPIRY_DAYS)
        if message:
            offer.message = message
        self._record(offer, OfferAction.COUNTERED, user_id, previous_amount=previous, new_amount=amount, message=message)
        await self.db.commit()
        return offer

    async def cancel_offer(self, user_id: str, offer_id: str) -> Offer:
        offer = await self._get_offer(offer_id)
        if offer.buyer_id != user_id:
            raise PermissionDeniedError("Only the buyer can cancel this offer")
        if offer.status not in OfferStatus.open_states():
            raise ValidationError(f"Cannot cancel offer with status: {offer.status}")

        offer.status = OfferStatus.CANCELLED.value
        offer.cancelled_at = datetime.now(timezone.utc)
        self._record(offer, OfferAction.CANCELLED, user_id)
        await self.db.commit()
        return offer

    async def expire_stale_offers(self, now: Optional[datetime] = None) -> int:
        """Mark open offers past expires_at as expired. Returns how many."""
        now = now or datetime.now(timezone.utc)
        result = await self.db.execute(
            update(Offer)
            .where(Offer.status.in_(OfferStatus.open_states()), Offer.expires_at <= now)
            .values(status=OfferStatus.EXPIRED.value)
            .returning(Offer.id)
        )
        expired_ids = list(result.scalars().all())
        for offer_id in expired_ids:
            self.db.add(OfferHistory(offer_id=offer_id, action_type=OfferAction.EXPIRED.value))
        await self.db.commit()

        logger.info(f"Expired {len(expired_ids)} offers")
        return len(expired_ids)
