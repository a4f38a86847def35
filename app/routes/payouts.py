import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.exceptions import PayoutError
from app.core.security import get_current_username
from app.dependencies import get_db, get_stripe_client
from app.schemas.purchase import PayoutTriggerRequest
from app.services.escrow_service import EscrowService
from app.services.payout_service import PayoutService
from app.services.stripe.client import StripeClient

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payouts"])


def verify_cron_secret(x_cron_secret: Optional[str] = Header(None)):
    """Cron callers must send the shared secret when one is configured"""
    expected = get_settings().CRON_SECRET
    if not expected:
        return
    if not x_cron_secret or not secrets.compare_digest(x_cron_secret, expected):
        raise HTTPException(status_code=401, detail="Unauthorised")


@router.post("/payout/trigger")
async def trigger_payout(
    request: PayoutTriggerRequest,
    _: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
    stripe_client: StripeClient = Depends(get_stripe_client),
):
    """Admin: pay the seller for a purchase whose funds are released"""
    service = PayoutService(db, stripe_client)
    try:
        return await service.trigger_payout(request.purchase_id, source="admin")
    except PayoutError as e:
        return JSONResponse(status_code=e.status_code, content=e.to_dict())
    except Exception as e:
        logger.exception(f"Payout trigger failed for {request.purchase_id}: {e}")
        return JSONResponse(status_code=500, content={"error": str(e), "logs": []})


@router.post("/cron/release-funds", dependencies=[Depends(verify_cron_secret)])
@router.get("/cron/release-funds", dependencies=[Depends(verify_cron_secret)])
async def release_funds(
    db: AsyncSession = Depends(get_db),
    stripe_client: StripeClient = Depends(get_stripe_client),
):
    """Release held funds past their escrow window and pay the sellers"""
    try:
        return await EscrowService(db, stripe_client).release_due_funds(source="cron")
    except Exception as e:
        logger.exception(f"Release funds sweep failed: {e}")
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})
