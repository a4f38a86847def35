import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import MarketplaceServiceError, StripeAPIError
from app.core.security import AuthenticatedUser, get_current_user
from app.dependencies import get_db, get_stripe_client
from app.schemas.checkout import (
    CheckoutRequest,
    CheckoutResponse,
    OfferCheckoutRequest,
    PaymentIntentRequest,
    PaymentIntentUpdateRequest,
)
from app.services.checkout_service import CheckoutService
from app.services.stripe.client import StripeClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.post("", response_model=CheckoutResponse, response_model_exclude_none=True)
async def create_checkout(
    request: CheckoutRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    stripe_client: StripeClient = Depends(get_stripe_client),
):
    """Create a Stripe Checkout session for a listed product"""
    service = CheckoutService(db, stripe_client)
    try:
        return await service.create_product_checkout(user, request.product_id, request.delivery_method.value)
    except StripeAPIError:
        raise HTTPException(status_code=500, detail="Failed to create checkout session")
    except MarketplaceServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.exception(f"Checkout failed for product {request.product_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to create checkout session")


@router.post("/offer", response_model=CheckoutResponse, response_model_exclude_none=True)
async def create_offer_checkout(
    request: OfferCheckoutRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    stripe_client: StripeClient = Depends(get_stripe_client),
):
    """Create a Stripe Checkout session for an accepted offer"""
    service = CheckoutService(db, stripe_client)
    delivery_method = request.delivery_method.value if request.delivery_method else None
    try:
        return await service.create_offer_checkout(user, request.offer_id, delivery_method)
    except StripeAPIError:
        raise HTTPException(status_code=500, detail="Failed to create checkout session")
    except MarketplaceServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.exception(f"Offer checkout failed for offer {request.offer_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to create checkout session")


@router.post("/payment-intent")
async def create_payment_intent(
    request: PaymentIntentRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    stripe_client: StripeClient = Depends(get_stripe_client),
):
    """Create a PaymentIntent for the embedded checkout"""
    service = CheckoutService(db, stripe_client)
    try:
        return await service.create_payment_intent(user, request.product_id, request.delivery_method.value)
    except StripeAPIError:
        raise HTTPException(status_code=500, detail="Failed to create payment intent")
    except MarketplaceServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.exception(f"Payment intent failed for product {request.product_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to create payment intent")


@router.patch("/payment-intent")
async def update_payment_intent(
    request: PaymentIntentUpdateRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    stripe_client: StripeClient = Depends(get_stripe_client),
):
    """Re-price the embedded checkout for a new delivery method"""
    service = CheckoutService(db, stripe_client)
    try:
        return await service.update_payment_intent(
            user, request.payment_intent_id, request.product_id, request.delivery_method.value
        )
    except StripeAPIError:
        raise HTTPException(status_code=500, detail="Failed to update payment intent")
    except MarketplaceServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.exception(f"Payment intent update failed for {request.payment_intent_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to update payment intent")
