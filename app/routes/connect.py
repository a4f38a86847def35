import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import MarketplaceServiceError, StripeAPIError
from app.core.security import AuthenticatedUser, get_current_user
from app.dependencies import get_db, get_stripe_client
from app.services.connect_service import ConnectService
from app.services.stripe.client import StripeClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/connect", tags=["connect"])


@router.get("/status")
@router.post("/status")
async def connect_status(
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    stripe_client: StripeClient = Depends(get_stripe_client),
):
    """Seller's Connect account status, refreshed from Stripe"""
    try:
        return await ConnectService(db, stripe_client).get_status(user.id)
    except MarketplaceServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/create-account")
async def create_account(
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    stripe_client: StripeClient = Depends(get_stripe_client),
):
    """Create (or resume) the seller's Connect onboarding"""
    try:
        return await ConnectService(db, stripe_client).create_account(user.id, email=user.email)
    except StripeAPIError as e:
        raise HTTPException(status_code=500, detail=f"Failed to create Stripe account: {e.message}")
    except MarketplaceServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/dashboard-link")
async def dashboard_link(
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    stripe_client: StripeClient = Depends(get_stripe_client),
):
    """Login link to the seller's Stripe Express dashboard"""
    try:
        return await ConnectService(db, stripe_client).create_dashboard_link(user.id)
    except StripeAPIError as e:
        raise HTTPException(status_code=500, detail=f"Failed to create dashboard link: {e.message}")
    except MarketplaceServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
