from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import MarketplaceServiceError
from app.core.security import AuthenticatedUser, get_current_user
from app.dependencies import get_db, get_stripe_client
from app.schemas.purchase import PurchaseRead
from app.services.purchase_service import PurchaseService
from app.services.stripe.client import StripeClient

router = APIRouter(prefix="/purchases", tags=["purchases"])


@router.get("")
async def list_purchases(
    role: str = Query("buyer", pattern="^(buyer|seller)$"),
    status: Optional[str] = None,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    stripe_client: StripeClient = Depends(get_stripe_client),
):
    purchases = await PurchaseService(db, stripe_client).list_purchases(user.id, role=role, status=status)
    return {"purchases": [PurchaseRead.model_validate(p) for p in purchases]}


@router.post("/{purchase_id}/confirm-receipt")
async def confirm_receipt(
    purchase_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    stripe_client: StripeClient = Depends(get_stripe_client),
):
    """Buyer confirms delivery, releasing the funds to the seller"""
    try:
        return await PurchaseService(db, stripe_client).confirm_receipt(user.id, purchase_id)
    except MarketplaceServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
