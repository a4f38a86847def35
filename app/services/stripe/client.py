import asyncio
import logging
from functools import partial
from typing import Any, Callable, Dict, List, Optional

import stripe

from app.core.config import get_settings
from app.core.exceptions import StripeAPIError, WebhookSignatureError

logger = logging.getLogger(__name__)


class StripeClient:
    """
    Async wrapper around the Stripe SDK for the marketplace payment flows.

    The SDK is synchronous, so each call runs in the default executor. Every
    request passes the secret key explicitly rather than relying on the
    module-level stripe.api_key.

    StripeObject is not a dict, so anything the services read field by field
    (events, accounts, balance) is handed back as a plain dict via to_dict().
    Objects the services only take .id / .url / .client_secret from are
    returned as-is.

    Covers:
        - Checkout sessions (create_checkout_session)
        - Embedded checkout (create_payment_intent, modify_payment_intent)
        - Webhook verification (construct_event)
        - Connect express accounts (create_account, retrieve_account,
          create_account_link, create_login_link)
        - Transfers to connected accounts and platform balance
          (create_transfer, retrieve_balance)

    Documentation: https://docs.stripe.com/api
    """

    def __init__(self, api_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        settings = get_settings()
        self.api_key = api_key or settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or settings.STRIPE_WEBHOOK_SECRET
        if not self.api_key:
            logger.warning("STRIPE_SECRET_KEY is not configured; Stripe calls will fail")

    async def _call(self, func: Callable, *args, **kwargs) -> Any:
        """
        Run a blocking SDK call in the executor.

        Raises:
            StripeAPIError: wrapping any stripe.StripeError
        """
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, partial(func, *args, api_key=self.api_key, **kwargs))
        except stripe.StripeError as e:
            error = getattr(e, "error", None)
            error_type = getattr(error, "type", None) or type(e).__name__
            message = e.user_message or str(e)
            logger.error(f"Stripe {getattr(func, '__qualname__', func)} failed: {error_type} {message}")
            raise StripeAPIError(message, error_type=error_type, code=e.code)

    # Checkout

    async def create_checkout_session(self, **params) -> Any:
        session = await self._call(stripe.checkout.Session.create, **params)
        logger.info(f"Created checkout session {session.id}")
        return session

    async def create_payment_intent(self, **params) -> Any:
        intent = await self._call(stripe.PaymentIntent.create, **params)
        logger.info(f"Created payment intent {intent.id}")
        return intent

    async def modify_payment_intent(self, payment_intent_id: str, **params) -> Any:
        intent = await self._call(stripe.PaymentIntent.modify, payment_intent_id, **params)
        logger.info(f"Updated payment intent {intent.id}")
        return intent

    # Webhooks

    def construct_event(self, payload: bytes, signature: str) -> Dict[str, Any]:
        """
        Verify a webhook payload against the signing secret and parse it.

        Returns:
            The event as a plain dict, data.object included.

        Raises:
            WebhookSignatureError: on a bad signature or unparseable payload
        """
        if not self.webhook_secret:
            raise WebhookSignatureError("Webhook secret not configured")
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(str(e))
        except ValueError as e:
            raise WebhookSignatureError(f"Invalid payload: {e}")
        return event.to_dict()

    # Connect

    async def create_account(
        self,
        email: Optional[str],
        country: str,
        business_name: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Any:
        account = await self._call(
            stripe.Account.create,
            type="express",
            country=country,
            email=email,
            capabilities={
                "card_payments": {"requested": True},
                "transfers": {"requested": True},
            },
            business_type="individual",
            business_profile={
                "name": business_name or None,
                "product_description": "Selling cycling products on the marketplace",
            },
            metadata=metadata or {},
        )
        logger.info(f"Created Connect account {account.id}")
        return account

    async def retrieve_account(self, account_id: str) -> Dict[str, Any]:
        account = await self._call(stripe.Account.retrieve, account_id)
        return account.to_dict()

    async def create_account_link(self, account_id: str, refresh_url: str, return_url: str) -> Any:
        return await self._call(
            stripe.AccountLink.create,
            account=account_id,
            refresh_url=refresh_url,
            return_url=return_url,
            type="account_onboarding",
        )

    async def create_login_link(self, account_id: str) -> Any:
        return await self._call(stripe.Account.create_login_link, account_id)

    # Money movement

    async def create_transfer(
        self,
        amount: int,
        currency: str,
        destination: str,
        transfer_group: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Any:
        transfer = await self._call(
            stripe.Transfer.create,
            amount=amount,
            currency=currency,
            destination=destination,
            transfer_group=transfer_group,
            metadata=metadata or {},
        )
        logger.info(f"Created transfer {transfer.id} of {amount} {currency} to {destination}")
        return transfer

    async def retrieve_balance(self) -> Dict[str, Any]:
        balance = await self._call(stripe.Balance.retrieve)
        return balance.to_dict()

    @staticmethod
    def available_balance(balance: Dict[str, Any], currency: str) -> List[Dict[str, Any]]:
        """Pick the available balance entries for one currency"""
        return [
            {"amount": entry["amount"], "currency": entry["currency"]}
            for entry in (balance.get("available") or [])
            if entry.get("currency") == currency
        ]
