import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import MarketplaceServiceError
from app.core.security import AuthenticatedUser, get_current_user
from app.dependencies import get_db
from app.schemas.offer import OfferCounter, OfferCreate, OfferRead, OfferReject
from app.services.offer_service import OfferService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/offers", tags=["offers"])


@router.post("", status_code=201)
async def create_offer(
    request: OfferCreate,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        offer = await OfferService(db).create_offer(user.id, request.product_id, request.offer_amount, request.message)
    except MarketplaceServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return {"success": True, "offer": OfferRead.model_validate(offer)}


@router.get("")
async def list_offers(
    role: Optional[str] = Query(None, pattern="^(buyer|seller)$"),
    status: Optional[str] = Query(None, description="Comma separated statuses"),
    product_id: Optional[str] = Query(None, alias="productId"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    statuses = [s.strip() for s in status.split(",") if s.strip()] if status else None
    result = await OfferService(db).list_offers(
        user.id, role=role, statuses=statuses, product_id=product_id, page=page, limit=limit
    )
    result["offers"] = [OfferRead.model_validate(offer) for offer in result["offers"]]
    return result


@router.patch("/{offer_id}/accept")
async def accept_offer(
    offer_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        offer = await OfferService(db).accept_offer(user.id, offer_id)
    except MarketplaceServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return {"success": True, "offer": OfferRead.model_validate(offer)}


@router.patch("/{offer_id}/reject")
async def reject_offer(
    offer_id: str,
    request: Optional[OfferReject] = None,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    reason = request.reason if request else None
    try:
        offer = await OfferService(db).reject_offer(user.id, offer_id, reason)
    except MarketplaceServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return {"success": True, "offer": OfferRead.model_validate(offer)}


@router.post("/{offer_id}/counter")
async def counter_offer(
    offer_id: str,
    request: OfferCounter,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        offer = await OfferService(db).counter_offer(user.id, offer_id, request.new_amount, request.message)
    except MarketplaceServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return {"success": True, "offer": OfferRead.model_validate(offer)}


@router.patch("/{offer_id}/cancel")
async def cancel_offer(
    offer_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        offer = await OfferService(db).cancel_offer(user.id, offer_id)
    except MarketplaceServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return {"success": True, "offer": OfferRead.model_validate(offer)}
