"""
Stripe Connect account lifecycle for sellers.

Sellers get an express account on first request; later requests reuse it and
only mint a fresh onboarding link. The users table caches the account state,
refreshed by the status poll here and by the account.updated webhook. Both
paths derive the cached status with derive_account_status().
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.enums import ConnectStatus
from app.core.exceptions import StripeAPIError, UserNotFoundError, ValidationError
from app.models.user import User
from app.services.activity_logger import ActivityLogger
from app.services.stripe.client import StripeClient

logger = logging.getLogger(__name__)


def derive_account_status(
    details_submitted: bool,
    payouts_enabled: bool,
    disabled_reason: Optional[str],
) -> str:
    """
    Collapse a Connect account's flags into the status cached on the user.

    Examples:
        (True, True, None) -> 'active'
        (True, False, 'requirements.past_due') -> 'restricted'
        (False, False, None) -> 'pending'
    """
    if details_submitted and payouts_enabled:
        return ConnectStatus.ACTIVE.value
    if disabled_reason:
        return ConnectStatus.RESTRICTED.value
    return ConnectStatus.PENDING.value


def account_state(account: Any) -> Dict[str, Any]:
    """Read the tracked fields off a Stripe account object or webhook payload"""
    requirements = account.get("requirements") or {}
    details_submitted = bool(account.get("details_submitted"))
    payouts_enabled = bool(account.get("payouts_enabled"))
    return {
        "status": derive_account_status(details_submitted, payouts_enabled, requirements.get("disabled_reason")),
        "details_submitted": details_submitted,
        "payouts_enabled": payouts_enabled,
        "charges_enabled": bool(account.get("charges_enabled")),
        "currently_due": list(requirements.get("currently_due") or []),
    }


def apply_account_state(user: User, state: Dict[str, Any]) -> bool:
    """
    Copy derived account state onto the user row.

    Returns True if any tracked field changed.
    """
    changed = (
        user.stripe_account_status != state["status"]
        or bool(user.stripe_payouts_enabled) != state["payouts_enabled"]
        or bool(user.stripe_details_submitted) != state["details_submitted"]
    )
    if changed:
        user.stripe_account_status = state["status"]
        user.stripe_payouts_enabled = state["payouts_enabled"]
        user.stripe_details_submitted = state["details_submitted"]
        user.stripe_onboarding_complete = state["status"] == ConnectStatus.ACTIVE.value
    return changed


class ConnectService:
    def __init__(self, db: AsyncSession, stripe_client: StripeClient):
        self.db = db
        self.stripe = stripe_client
        self.settings = get_settings()
        self.activity_logger = ActivityLogger(db)

    async def _get_user(self, user_id: str) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise UserNotFoundError(f"User profile {user_id} not found")
        return user

    async def get_user_by_account(self, account_id: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.stripe_account_id == account_id))
        return result.scalar_one_or_none()

    def _onboarding_urls(self) -> Dict[str, str]:
        base = f"{self.settings.APP_URL}/marketplace/settings"
        return {"refresh_url": f"{base}?stripe=refresh", "return_url": f"{base}?stripe=success"}

    async def create_account(self, user_id: str, email: Optional[str] = None) -> Dict[str, Any]:
        """
        Create the seller's express account, or reuse the stored one, and
        return an onboarding link.

        Returns:
            {url, accountId, isExisting}

        Raises:
            UserNotFoundError: no profile row for the user
            StripeAPIError: Stripe rejected the account or link request
        """
        user = await self._get_user(user_id)

        if user.stripe_account_id:
            logger.info(f"User {user_id} already has Connect account {user.stripe_account_id}")
            link = await self.stripe.create_account_link(user.stripe_account_id, **self._onboarding_urls())
            return {"url": link.url, "accountId": user.stripe_account_id, "isExisting": True}

        account = await self.stripe.create_account(
            email=user.email or email,
            country=self.settings.STRIPE_CONNECT_COUNTRY,
            business_name=user.display_name,
            metadata={"user_id": user_id, "platform": self.settings.PLATFORM_NAME},
        )

        try:
            user.stripe_account_id = account.id
            user.stripe_account_status = ConnectStatus.PENDING.value
            user.stripe_connected_at = datetime.now(timezone.utc)
            await self.activity_logger.log_activity(
                action="connect_account_created",
                entity_type="user",
                entity_id=user_id,
                source="api",
                details={"stripe_account_id": account.id},
                user_id=user_id,
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            # The account exists at Stripe; onboarding can still continue
            logger.error(f"Failed to save Connect account {account.id} for user {user_id}: {e}")
            await self.db.rollback()

        link = await self.stripe.create_account_link(account.id, **self._onboarding_urls())
        return {"url": link.url, "accountId": account.id, "isExisting": False}

    async def get_status(self, user_id: str) -> Dict[str, Any]:
        """
        Poll the seller's account and refresh the cached flags.

        Falls back to the cached values (with cached=True) if Stripe is
        unreachable.
        """
        user = await self._get_user(user_id)

        if not user.stripe_account_id:
            return {
                "connected": False,
                "status": ConnectStatus.NOT_CONNECTED.value,
                "payoutsEnabled": False,
                "detailsSubmitted": False,
                "onboardingComplete": False,
            }

        try:
            account = await self.stripe.retrieve_account(user.stripe_account_id)
        except StripeAPIError as e:
            logger.warning(f"Using cached Connect status for {user_id}: {e.message}")
            return {
                "connected": True,
                "accountId": user.stripe_account_id,
                "status": user.stripe_account_status,
                "payoutsEnabled": bool(user.stripe_payouts_enabled),
                "detailsSubmitted": bool(user.stripe_details_submitted),
                "onboardingComplete": bool(user.stripe_onboarding_complete),
                "cached": True,
            }

        state = account_state(account)
        if apply_account_state(user, state):
            logger.info(f"Connect status for {user_id} changed to {state['status']}")
            await self.db.commit()

        return {
            "connected": True,
            "accountId": user.stripe_account_id,
            "status": state["status"],
            "payoutsEnabled": state["payouts_enabled"],
            "detailsSubmitted": state["details_submitted"],
            "onboardingComplete": state["status"] == ConnectStatus.ACTIVE.value,
            "chargesEnabled": state["charges_enabled"],
            "requirements": state["currently_due"],
            "connectedAt": user.stripe_connected_at.isoformat() if user.stripe_connected_at else None,
        }

    async def create_dashboard_link(self, user_id: str) -> Dict[str, Any]:
        """Login link to the seller's express dashboard"""
        user = await self._get_user(user_id)
        if not user.stripe_account_id:
            raise ValidationError("No Stripe account connected")
        link = await self.stripe.create_login_link(user.stripe_account_id)
        return {"url": link.url}

    async def handle_account_updated(self, account: Any) -> bool:
        """
        Mirror an account.updated event onto the owning user.

        Returns False when no user owns the account.
        """
        account_id = account.get("id")
        user = await self.get_user_by_account(account_id)
        if user is None:
            logger.warning(f"account.updated for unknown Connect account {account_id}")
            return False

        state = account_state(account)
        apply_account_state(user, state)
        await self.db.commit()
        logger.info(f"Connect account {account_id} for {user.user_id} is {state['status']}")
        return True
