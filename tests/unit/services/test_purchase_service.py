# tests/unit/services/test_purchase_service.py
from unittest.mock import AsyncMock

import pytest

from app.core.exceptions import PayoutError, PermissionDeniedError, PurchaseNotFoundError, ValidationError
from app.services.purchase_service import PurchaseService

BUYER_ID = "11111111-1111-1111-1111-111111111111"
SELLER_ID = "22222222-2222-2222-2222-222222222222"


@pytest.fixture
def payout_service(mocker):
    payout_cls = mocker.patch("app.services.purchase_service.PayoutService")
    payout_cls.return_value.trigger_payout = AsyncMock(
        return_value={"success": True, "transfer_id": "tr_test_1", "amount": 970.0, "logs": []}
    )
    return payout_cls.return_value


class TestConfirmReceipt:

    @pytest.mark.asyncio
    async def test_buyer_confirmation_releases_and_pays(
        self, mock_session, mock_stripe, payout_service, purchase_factory
    ):
        # Arrange
        purchase = purchase_factory(funds_status="held")
        mock_session.get = AsyncMock(return_value=purchase)

        # Act
        result = await PurchaseService(mock_session, mock_stripe).confirm_receipt(BUYER_ID, purchase.id)

        # Assert
        assert purchase.funds_status == "released"
        assert purchase.buyer_confirmed_at is not None
        mock_session.commit.assert_awaited_once()
        payout_service.trigger_payout.assert_awaited_once_with(purchase.id, source="buyer_confirmation")
        assert result == {
            "success": True,
            "purchase_id": purchase.id,
            "funds_status": "released",
            "payout": {"transfer_id": "tr_test_1", "amount": 970.0},
        }

    @pytest.mark.asyncio
    async def test_payout_failure_keeps_the_release(
        self, mock_session, mock_stripe, payout_service, purchase_factory
    ):
        purchase = purchase_factory(funds_status="held")
        mock_session.get = AsyncMock(return_value=purchase)
        payout_service.trigger_payout.side_effect = PayoutError("Seller has no Stripe account", 400)

        result = await PurchaseService(mock_session, mock_stripe).confirm_receipt(BUYER_ID, purchase.id)

        assert result["success"] is True
        assert result["payout"] == {"error": "Seller has no Stripe account"}
        assert purchase.funds_status == "released"

    @pytest.mark.asyncio
    async def test_unexpected_payout_error_still_returns_the_release(
        self, mock_session, mock_stripe, payout_service, purchase_factory
    ):
        purchase = purchase_factory(funds_status="held")
        mock_session.get = AsyncMock(return_value=purchase)
        payout_service.trigger_payout.side_effect = ConnectionError("network unreachable")

        result = await PurchaseService(mock_session, mock_stripe).confirm_receipt(BUYER_ID, purchase.id)

        assert result == {
            "success": True,
            "purchase_id": purchase.id,
            "funds_status": "released",
            "payout": {"error": "Payout could not be started"},
        }
        mock_session.commit.assert_awaited_once()
        mock_session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_only_buyer_can_confirm(self, mock_session, mock_stripe, payout_service, purchase_factory):
        mock_session.get = AsyncMock(return_value=purchase_factory(funds_status="held"))

        with pytest.raises(PermissionDeniedError, match="Only the buyer"):
            await PurchaseService(mock_session, mock_stripe).confirm_receipt(SELLER_ID, "purchase-1")

        mock_session.commit.assert_not_awaited()
        payout_service.trigger_payout.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_funds_must_still_be_held(self, mock_session, mock_stripe, payout_service, purchase_factory):
        mock_session.get = AsyncMock(return_value=purchase_factory(funds_status="auto_released"))

        with pytest.raises(ValidationError, match="auto_released"):
            await PurchaseService(mock_session, mock_stripe).confirm_receipt(BUYER_ID, "purchase-1")

        payout_service.trigger_payout.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_purchase(self, mock_session, mock_stripe, payout_service):
        mock_session.get = AsyncMock(return_value=None)

        with pytest.raises(PurchaseNotFoundError):
            await PurchaseService(mock_session, mock_stripe).confirm_receipt(BUYER_ID, "missing")


@pytest.mark.asyncio
async def test_list_purchases_filters_by_role(mock_session, mock_stripe, purchase_factory, result_factory):
    purchase = purchase_factory()
    mock_session.execute.return_value = result_factory(scalars=[purchase])

    purchases = await PurchaseService(mock_session, mock_stripe).list_purchases(SELLER_ID, role="seller")

    assert purchases == [purchase]
    statement = str(mock_session.execute.await_args.args[0])
    assert "WHERE purchases.seller_id = " in statement
    assert "ORDER BY purchases.created_at DESC" in statement
