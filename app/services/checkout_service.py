# app/services/checkout_service.py
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.enums import CheckoutFlow, DeliveryMethod, OfferPaymentStatus, OfferStatus, VoucherStatus
from app.core.exceptions import (
    OfferNotFoundError,
    PermissionDeniedError,
    ProductNotFoundError,
    ValidationError,
)
from app.core.security import AuthenticatedUser
from app.models.offer import Offer
from app.models.product import Product
from app.models.voucher import Voucher
from app.services import pricing
from app.services.stripe.client import StripeClient

logger = logging.getLogger(__name__)


class CheckoutService:
    """
    Builds Stripe Checkout sessions and embedded-checkout PaymentIntents
    for marketplace purchases.

    Nothing is written for a product checkout: the purchase row only appears
    when the checkout.session.completed or payment_intent.succeeded webhook
    arrives, carrying back the metadata set here.
    """

    def __init__(self, db: AsyncSession, stripe_client: StripeClient):
        self.db = db
        self.stripe = stripe_client
        self.settings = get_settings()

    async def _get_product(self, product_id: str) -> Product:
        product = await self.db.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError("Product not found")
        return product

    @staticmethod
    def _validate_purchasable(product: Product, buyer_id: str) -> None:
        if not product.is_active:
            raise ValidationError("This product is no longer available")
        if product.is_sold:
            raise ValidationError("This product has already been sold")
        if product.user_id == buyer_id:
            raise ValidationError("You cannot purchase your own product")

    async def _active_vouchers(self, user_id: str) -> List[Voucher]:
        result = await self.db.execute(
            select(Voucher).where(
                Voucher.user_id == user_id,
                Voucher.status == VoucherStatus.ACTIVE.value,
            )
        )
        return list(result.scalars().all())

    def _quote(self, product: Product, delivery_method: str) -> pricing.DeliveryQuote:
        try:
            return pricing.quote_delivery(
                delivery_method,
                shipping_available=bool(product.shipping_available),
                shipping_cost=product.shipping_cost,
            )
        except ValueError as e:
            raise ValidationError(str(e))

    def build_line_items(
        self,
        product: Product,
        item_amount: Decimal,
        quote: pricing.DeliveryQuote,
        buyer_fee: Decimal,
        voucher_discount: Decimal = Decimal("0.00"),
    ) -> List[Dict[str, Any]]:
        """
        Item (net of any voucher), then delivery and service fee when non-zero.
        """
        currency = self.settings.STRIPE_CURRENCY

        product_data: Dict[str, Any] = {"name": product.display_name}
        description = (product.description or "").strip()
        if voucher_discount > 0:
            description = f"Voucher applied: -${voucher_discount}. {description}".strip()
        if description:
            product_data["description"] = description[:500]
        if product.primary_image_url:
            product_data["images"] = [product.primary_image_url]

        items = [{
            "price_data": {
                "currency": currency,
                "product_data": product_data,
                "unit_amount": pricing.to_minor_units(max(item_amount - voucher_discount, Decimal("0.00"))),
            },
            "quantity": 1,
        }]

        if quote.cost > 0:
            items.append({
                "price_data": {
                    "currency": currency,
                    "product_data": {"name": f"Delivery: {quote.description}"},
                    "unit_amount": pricing.to_minor_units(quote.cost),
                },
                "quantity": 1,
            })

        if buyer_fee > 0:
            items.append({
                "price_data": {
                    "currency": currency,
                    "product_data": {
                        "name": "Service Fee",
                        "description": "Buyer protection and secure payment processing",
                    },
                    "unit_amount": pricing.to_minor_units(buyer_fee),
                },
                "quantity": 1,
            })

        return items

    @staticmethod
    def _purchase_metadata(
        buyer: AuthenticatedUser,
        product: Product,
        item_price: Decimal,
        quote: pricing.DeliveryQuote,
        flow: CheckoutFlow,
        voucher: Optional[Voucher] = None,
    ) -> Dict[str, str]:
        """
        Everything the webhook needs to build the Purchase, as Stripe
        metadata strings. The amounts are fixed here, not recomputed later.
        """
        buyer_fee = pricing.calculate_buyer_fee(item_price)
        discount = pricing.voucher_discount(voucher, item_price)
        total = pricing.round_money(item_price + quote.cost + buyer_fee - discount)

        metadata = {
            "checkout_flow": flow.value,
            "product_id": str(product.id),
            "buyer_id": buyer.id,
            "seller_id": str(product.user_id),
            "item_price": str(pricing.round_money(item_price)),
            "delivery_method": quote.method,
            "delivery_cost": str(quote.cost),
            "delivery_description": quote.description,
            "buyer_fee": str(buyer_fee),
            "total_amount": str(total),
            "platform_fee": str(pricing.calculate_platform_fee(item_price)),
            "seller_payout": str(pricing.calculate_seller_payout(item_price)),
        }
        if voucher is not None:
            metadata["voucher_id"] = str(voucher.id)
            metadata["voucher_discount"] = str(discount)
        return metadata

    async def _create_session(
        self,
        buyer: AuthenticatedUser,
        product: Product,
        item_price: Decimal,
        quote: pricing.DeliveryQuote,
        voucher: Optional[Voucher] = None,
        extra_metadata: Optional[Dict[str, str]] = None,
        cancel_path: Optional[str] = None,
    ) -> Any:
        metadata = self._purchase_metadata(
            buyer, product, item_price, quote, CheckoutFlow.CHECKOUT_SESSION, voucher=voucher
        )
        if extra_metadata:
            metadata.update(extra_metadata)
        buyer_fee = Decimal(metadata["buyer_fee"])
        discount = pricing.voucher_discount(voucher, item_price)
        total = metadata["total_amount"]

        expires_at = datetime.now(timezone.utc) + timedelta(minutes=pricing.CHECKOUT_SESSION_TTL_MINUTES)
        params: Dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": self.build_line_items(product, item_price, quote, buyer_fee, discount),
            "metadata": metadata,
            "payment_intent_data": {"metadata": metadata},
            "success_url": f"{self.settings.APP_URL}/marketplace/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{self.settings.APP_URL}{cancel_path or f'/marketplace/checkout/cancel?product_id={product.id}'}",
            "phone_number_collection": {"enabled": True},
            "expires_at": int(expires_at.timestamp()),
        }
        if buyer.email:
            params["customer_email"] = buyer.email
        if quote.method != DeliveryMethod.PICKUP.value:
            params["shipping_address_collection"] = {
                "allowed_countries": self.settings.CHECKOUT_ALLOWED_COUNTRIES,
            }

        logger.info(
            f"Creating checkout for product {product.id} buyer {buyer.id}: "
            f"item={item_price} delivery={quote.cost} fee={buyer_fee} discount={discount} total={total}"
        )
        return await self.stripe.create_checkout_session(**params)

    async def create_product_checkout(
        self,
        buyer: AuthenticatedUser,
        product_id: str,
        delivery_method: str,
    ) -> Dict[str, Any]:
        """
        Start a checkout for a listed product at its asking price.

        Applies the buyer's best qualifying voucher, if any.

        Returns:
            {sessionId, url, voucher?}

        Raises:
            ProductNotFoundError: product does not exist
            ValidationError: inactive, sold, own product or bad delivery method
            StripeAPIError: Stripe rejected the session
        """
        product = await self._get_product(product_id)
        self._validate_purchasable(product, buyer.id)
        quote = self._quote(product, delivery_method)

        item_price = pricing.to_decimal(product.price)
        voucher = pricing.select_best_voucher(
            await self._active_vouchers(buyer.id),
            item_price,
            now=datetime.now(timezone.utc),
        )

        session = await self._create_session(buyer, product, item_price, quote, voucher=voucher)

        response: Dict[str, Any] = {"sessionId": session.id, "url": session.url}
        if voucher is not None:
            response["voucher"] = {
                "id": str(voucher.id),
                "discount": float(pricing.voucher_discount(voucher, item_price)),
                "description": voucher.description,
            }
        return response

    async def create_offer_checkout(
        self,
        buyer: AuthenticatedUser,
        offer_id: str,
        delivery_method: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Start a checkout for an accepted offer at the agreed amount.

        Raises:
            OfferNotFoundError / ProductNotFoundError
            PermissionDeniedError: caller is not the offer's buyer
            ValidationError: offer not payable or product already sold
        """
        offer = await self.db.get(Offer, offer_id)
        if offer is None:
            raise OfferNotFoundError("Offer not found")
        if offer.buyer_id != buyer.id:
            raise PermissionDeniedError("You can only pay for your own offers")
        if offer.status != OfferStatus.ACCEPTED.value:
            raise ValidationError("Only accepted offers can be paid")
        if offer.payment_status == OfferPaymentStatus.PAID.value:
            raise ValidationError("This offer has already been paid")
        now = datetime.now(timezone.utc)
        if offer.payment_deadline is not None and offer.payment_deadline < now:
            raise ValidationError("The payment deadline for this offer has passed")

        product = await self._get_product(offer.product_id)
        if product.is_sold:
            raise ValidationError("This product has already been sold")

        if delivery_method is None:
            delivery_method = (
                DeliveryMethod.SHIPPING.value if product.shipping_available else DeliveryMethod.PICKUP.value
            )
        quote = self._quote(product, delivery_method)

        session = await self._create_session(
            buyer,
            product,
            pricing.to_decimal(offer.offer_amount),
            quote,
            extra_metadata={
                "payment_type": "offer",
                "offer_id": str(offer.id),
                "original_price": str(pricing.round_money(offer.original_price)),
            },
            cancel_path=f"/marketplace/offers?offer_id={offer.id}",
        )

        offer.stripe_session_id = session.id
        await self.db.commit()

        return {"sessionId": session.id, "url": session.url}

    def _intent_breakdown(self, metadata: Dict[str, str]) -> Dict[str, float]:
        return {
            "itemPrice": float(metadata["item_price"]),
            "deliveryCost": float(metadata["delivery_cost"]),
            "buyerFee": float(metadata["buyer_fee"]),
            "totalAmount": float(metadata["total_amount"]),
        }

    async def create_payment_intent(
        self,
        buyer: AuthenticatedUser,
        product_id: str,
        delivery_method: str = DeliveryMethod.UBER_EXPRESS.value,
    ) -> Dict[str, Any]:
        """
        Start an embedded checkout: a bare PaymentIntent the front end
        confirms with Stripe Elements. The purchase row is created by the
        payment_intent.succeeded webhook.

        Vouchers are only applied on hosted Checkout.

        Returns:
            {clientSecret, paymentIntentId, breakdown, deliveryOptions, product}

        Raises:
            ProductNotFoundError: product does not exist
            ValidationError: inactive, sold, own product or bad delivery method
            StripeAPIError: Stripe rejected the intent
        """
        product = await self._get_product(product_id)
        self._validate_purchasable(product, buyer.id)
        quote = self._quote(product, delivery_method)

        item_price = pricing.to_decimal(product.price)
        metadata = self._purchase_metadata(buyer, product, item_price, quote, CheckoutFlow.PAYMENT_INTENT)

        params: Dict[str, Any] = {
            "amount": pricing.to_minor_units(metadata["total_amount"]),
            "currency": self.settings.STRIPE_CURRENCY,
            "payment_method_types": ["card", "link"],
            "metadata": metadata,
            "description": f"{product.display_name} - {quote.description}",
        }
        if buyer.email:
            params["receipt_email"] = buyer.email

        logger.info(
            f"Creating payment intent for product {product.id} buyer {buyer.id}: "
            f"delivery={quote.method} total={metadata['total_amount']}"
        )
        intent = await self.stripe.create_payment_intent(**params)

        return {
            "clientSecret": intent.client_secret,
            "paymentIntentId": intent.id,
            "breakdown": self._intent_breakdown(metadata),
            "deliveryOptions": pricing.delivery_options(
                bool(product.shipping_available), product.shipping_cost
            ),
            "product": {
                "id": str(product.id),
                "name": product.display_name,
                "price": float(item_price),
            },
        }

    async def update_payment_intent(
        self,
        buyer: AuthenticatedUser,
        payment_intent_id: str,
        product_id: str,
        delivery_method: str,
    ) -> Dict[str, Any]:
        """
        Re-price an open PaymentIntent after the buyer picks another delivery
        method. Amount and metadata are replaced together.

        Returns:
            {clientSecret, breakdown}
        """
        product = await self._get_product(product_id)
        self._validate_purchasable(product, buyer.id)
        quote = self._quote(product, delivery_method)

        metadata = self._purchase_metadata(
            buyer, product, pricing.to_decimal(product.price), quote, CheckoutFlow.PAYMENT_INTENT
        )
        intent = await self.stripe.modify_payment_intent(
            payment_intent_id,
            amount=pricing.to_minor_units(metadata["total_amount"]),
            metadata=metadata,
            description=f"{product.display_name} - {quote.description}",
        )
        logger.info(f"Payment intent {payment_intent_id} moved to {quote.method}, total={metadata['total_amount']}")

        return {"clientSecret": intent.client_secret, "breakdown": self._intent_breakdown(metadata)}
