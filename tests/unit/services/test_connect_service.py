# tests/unit/services/test_connect_service.py
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from app.core.exceptions import StripeAPIError, UserNotFoundError, ValidationError
from app.services.connect_service import ConnectService, account_state, derive_account_status

SELLER_ID = "22222222-2222-2222-2222-222222222222"


def _account(details_submitted=True, payouts_enabled=True, disabled_reason=None, currently_due=None):
    return {
        "id": "acct_seller_1",
        "details_submitted": details_submitted,
        "payouts_enabled": payouts_enabled,
        "charges_enabled": payouts_enabled,
        "requirements": {"disabled_reason": disabled_reason, "currently_due": currently_due or []},
    }


@pytest.mark.parametrize("details_submitted,payouts_enabled,disabled_reason,expected", [
    (True, True, None, "active"),
    (True, True, "requirements.past_due", "active"),
    (True, False, "requirements.past_due", "restricted"),
    (False, False, "rejected.fraud", "restricted"),
    (False, False, None, "pending"),
    (True, False, None, "pending"),
])
def test_derive_account_status(details_submitted, payouts_enabled, disabled_reason, expected):
    assert derive_account_status(details_submitted, payouts_enabled, disabled_reason) == expected


def test_account_state_reads_requirements():
    state = account_state(_account(False, False, None, ["individual.dob.day"]))

    assert state["status"] == "pending"
    assert state["currently_due"] == ["individual.dob.day"]
    assert state["charges_enabled"] is False


class TestGetStatus:

    @pytest.mark.asyncio
    async def test_not_connected(self, mock_session, mock_stripe, user_factory):
        mock_session.get = AsyncMock(return_value=user_factory())

        status = await ConnectService(mock_session, mock_stripe).get_status(SELLER_ID)

        assert status["connected"] is False
        assert status["status"] == "not_connected"
        mock_stripe.retrieve_account.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_change_is_written_back(self, mock_session, mock_stripe, user_factory):
        # Arrange
        user = user_factory(stripe_account_id="acct_seller_1", stripe_account_status="pending")
        mock_session.get = AsyncMock(return_value=user)
        mock_stripe.retrieve_account.return_value = _account()

        # Act
        status = await ConnectService(mock_session, mock_stripe).get_status(SELLER_ID)

        # Assert
        assert status["status"] == "active"
        assert status["onboardingComplete"] is True
        assert status["payoutsEnabled"] is True
        assert user.stripe_account_status == "active"
        assert user.stripe_onboarding_complete is True
        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unchanged_status_is_not_written(self, mock_session, mock_stripe, user_factory):
        user = user_factory(
            stripe_account_id="acct_seller_1",
            stripe_account_status="active",
            stripe_payouts_enabled=True,
            stripe_details_submitted=True,
            stripe_onboarding_complete=True,
        )
        mock_session.get = AsyncMock(return_value=user)
        mock_stripe.retrieve_account.return_value = _account()

        status = await ConnectService(mock_session, mock_stripe).get_status(SELLER_ID)

        assert status["status"] == "active"
        mock_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_falls_back_to_cached_values(self, mock_session, mock_stripe, user_factory):
        user = user_factory(stripe_account_id="acct_seller_1", stripe_account_status="pending")
        mock_session.get = AsyncMock(return_value=user)
        mock_stripe.retrieve_account.side_effect = StripeAPIError("Connection error", "api_connection_error")

        status = await ConnectService(mock_session, mock_stripe).get_status(SELLER_ID)

        assert status["cached"] is True
        assert status["status"] == "pending"
        assert status["accountId"] == "acct_seller_1"
        mock_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_user(self, mock_session, mock_stripe):
        mock_session.get = AsyncMock(return_value=None)

        with pytest.raises(UserNotFoundError):
            await ConnectService(mock_session, mock_stripe).get_status(SELLER_ID)


class TestCreateAccount:

    @pytest.mark.asyncio
    async def test_existing_account_only_gets_a_new_link(self, mock_session, mock_stripe, user_factory):
        mock_session.get = AsyncMock(return_value=user_factory(stripe_account_id="acct_seller_1"))
        mock_stripe.create_account_link.return_value = SimpleNamespace(url="https://connect.stripe.com/setup/e/1")

        result = await ConnectService(mock_session, mock_stripe).create_account(SELLER_ID)

        assert result == {
            "url": "https://connect.stripe.com/setup/e/1",
            "accountId": "acct_seller_1",
            "isExisting": True,
        }
        mock_stripe.create_account.assert_not_awaited()
        mock_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_new_account_is_saved_before_linking(self, mock_session, mock_stripe, user_factory):
        # Arrange
        user = user_factory(business_name="Spoke & Chain")
        mock_session.get = AsyncMock(return_value=user)
        mock_stripe.create_account.return_value = SimpleNamespace(id="acct_new_1")
        mock_stripe.create_account_link.return_value = SimpleNamespace(url="https://connect.stripe.com/setup/e/2")

        # Act
        result = await ConnectService(mock_session, mock_stripe).create_account(SELLER_ID)

        # Assert
        assert result == {
            "url": "https://connect.stripe.com/setup/e/2",
            "accountId": "acct_new_1",
            "isExisting": False,
        }
        kwargs = mock_stripe.create_account.await_args.kwargs
        assert kwargs["email"] == "seller@example.com"
        assert kwargs["country"] == "AU"
        assert kwargs["business_name"] == "Spoke & Chain"
        assert kwargs["metadata"]["user_id"] == SELLER_ID

        assert user.stripe_account_id == "acct_new_1"
        assert user.stripe_account_status == "pending"
        mock_session.commit.assert_awaited_once()
        mock_stripe.create_account_link.assert_awaited_once_with(
            "acct_new_1",
            refresh_url="https://market.test/marketplace/settings?stripe=refresh",
            return_url="https://market.test/marketplace/settings?stripe=success",
        )


class TestDashboardLinkAndWebhook:

    @pytest.mark.asyncio
    async def test_dashboard_link_needs_an_account(self, mock_session, mock_stripe, user_factory):
        mock_session.get = AsyncMock(return_value=user_factory())

        with pytest.raises(ValidationError, match="No Stripe account"):
            await ConnectService(mock_session, mock_stripe).create_dashboard_link(SELLER_ID)

        mock_stripe.create_login_link.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_dashboard_link(self, mock_session, mock_stripe, user_factory):
        mock_session.get = AsyncMock(return_value=user_factory(stripe_account_id="acct_seller_1"))
        mock_stripe.create_login_link.return_value = SimpleNamespace(url="https://connect.stripe.com/express/x")

        result = await ConnectService(mock_session, mock_stripe).create_dashboard_link(SELLER_ID)

        assert result == {"url": "https://connect.stripe.com/express/x"}
        mock_stripe.create_login_link.assert_awaited_once_with("acct_seller_1")

    @pytest.mark.asyncio
    async def test_account_updated_uses_same_derivation(
        self, mock_session, mock_stripe, user_factory, result_factory
    ):
        user = user_factory(stripe_account_id="acct_seller_1", stripe_account_status="active",
                            stripe_payouts_enabled=True, stripe_details_submitted=True)
        mock_session.execute.return_value = result_factory(scalar=user)

        updated = await ConnectService(mock_session, mock_stripe).handle_account_updated(
            _account(payouts_enabled=False, disabled_reason="requirements.past_due")
        )

        assert updated is True
        assert user.stripe_account_status == "restricted"
        assert user.stripe_payouts_enabled is False
        assert user.stripe_onboarding_complete is False
        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_account_updated_for_unknown_account(self, mock_session, mock_stripe, result_factory):
        mock_session.execute.return_value = result_factory(scalar=None)

        updated = await ConnectService(mock_session, mock_stripe).handle_account_updated(_account())

        assert updated is False
        mock_session.commit.assert_not_awaited()
