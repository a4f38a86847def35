import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.exceptions import WebhookSignatureError
from app.dependencies import get_db, get_stripe_client
from app.services.stripe.client import StripeClient
from app.services.webhook_processor import StripeWebhookProcessor

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


async def verify_stripe_signature(
    request: Request,
    stripe_client: StripeClient = Depends(get_stripe_client),
):
    """Verify the Stripe-Signature header and return the parsed event"""
    signature = request.headers.get("stripe-signature")
    if not signature:
        raise HTTPException(status_code=400, detail="No signature provided")

    body = await request.body()
    try:
        return stripe_client.construct_event(body, signature)
    except WebhookSignatureError as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        raise HTTPException(status_code=400, detail=f"Webhook signature verification failed: {e}")


@router.get("/webhook")
async def webhook_health():
    """Report whether the webhook endpoint is configured"""
    settings = get_settings()
    return {
        "status": "ok",
        "webhook_secret_configured": bool(settings.STRIPE_WEBHOOK_SECRET),
        "stripe_key_configured": bool(settings.STRIPE_SECRET_KEY),
    }


@router.post("/webhook")
async def stripe_webhook(
    event=Depends(verify_stripe_signature),
    db: AsyncSession = Depends(get_db),
    stripe_client: StripeClient = Depends(get_stripe_client),
):
    """Receive Stripe events. A 500 makes Stripe redeliver."""
    processor = StripeWebhookProcessor(db, stripe_client)
    try:
        result = await processor.process_event(event)
    except Exception as e:
        logger.exception(f"Webhook handler failed for event {event.get('id')}: {e}")
        await db.rollback()
        return JSONResponse(status_code=500, content={"error": "Webhook handler failed"})

    logger.debug(f"Webhook {event.get('id')} result: {result}")
    return {"received": True}
