# tests/unit/services/test_payout_service.py
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import PayoutError, StripeAPIError
from app.models.purchase import Purchase
from app.models.seller_payout import SellerPayout
from app.models.user import User
from app.services.payout_service import PayoutService


@pytest.fixture
def connected_seller(user_factory):
    return user_factory(
        stripe_account_id="acct_seller_1",
        stripe_account_status="active",
        stripe_payouts_enabled=True,
        stripe_details_submitted=True,
    )


@pytest.fixture
def stripe_ready(mock_stripe):
    mock_stripe.retrieve_balance.return_value = {
        "available": [{"amount": 500000, "currency": "aud"}, {"amount": 100, "currency": "usd"}]
    }
    mock_stripe.create_transfer.return_value = SimpleNamespace(id="tr_test_1")
    return mock_stripe


def _stub_rows(mock_session, purchase=None, seller=None):
    rows = {Purchase: purchase, User: seller}
    mock_session.get = AsyncMock(side_effect=lambda model, key: rows.get(model))


class TestTriggerPayout:

    @pytest.mark.asyncio
    async def test_released_funds_are_transferred_and_recorded(
        self, mock_session, stripe_ready, purchase_factory, connected_seller
    ):
        # Arrange
        purchase = purchase_factory(funds_status="released")
        _stub_rows(mock_session, purchase, connected_seller)

        # Act
        result = await PayoutService(mock_session, stripe_ready).trigger_payout(purchase.id)

        # Assert
        assert result["success"] is True
        assert result["transfer_id"] == "tr_test_1"
        assert result["amount"] == 970.0
        assert any("Transfer created: tr_test_1" in line for line in result["logs"])

        stripe_ready.create_transfer.assert_awaited_once()
        kwargs = stripe_ready.create_transfer.await_args.kwargs
        assert kwargs["amount"] == 97000
        assert kwargs["currency"] == "aud"
        assert kwargs["destination"] == "acct_seller_1"
        assert kwargs["transfer_group"] == purchase.order_number
        assert kwargs["metadata"]["purchase_id"] == purchase.id

        assert purchase.stripe_transfer_id == "tr_test_1"
        assert purchase.payout_status == "completed"
        assert purchase.payout_triggered_at is not None

        ledger = [call.args[0] for call in mock_session.add.call_args_list if isinstance(call.args[0], SellerPayout)]
        assert len(ledger) == 1
        assert ledger[0].net_amount == Decimal("970.00")
        assert ledger[0].platform_fee == Decimal("30.00")
        assert ledger[0].gross_amount == Decimal("1020.00")
        assert ledger[0].stripe_account_id == "acct_seller_1"
        mock_session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_auto_released_funds_can_be_paid(
        self, mock_session, stripe_ready, purchase_factory, connected_seller
    ):
        _stub_rows(mock_session, purchase_factory(funds_status="auto_released"), connected_seller)

        result = await PayoutService(mock_session, stripe_ready).trigger_payout("purchase-1")

        assert result["success"] is True

    @pytest.mark.asyncio
    async def test_without_stored_payout_amount_fee_comes_off_total(
        self, mock_session, stripe_ready, purchase_factory, connected_seller
    ):
        purchase = purchase_factory(seller_payout_amount=None, platform_fee=None)
        _stub_rows(mock_session, purchase, connected_seller)

        result = await PayoutService(mock_session, stripe_ready).trigger_payout(purchase.id)

        assert result["amount"] == 989.4
        assert stripe_ready.create_transfer.await_args.kwargs["amount"] == 98940

    @pytest.mark.asyncio
    async def test_already_paid_out(self, mock_session, stripe_ready, purchase_factory, connected_seller):
        # Arrange
        _stub_rows(mock_session, purchase_factory(stripe_transfer_id="tr_old"), connected_seller)

        # Act
        with pytest.raises(PayoutError) as exc_info:
            await PayoutService(mock_session, stripe_ready).trigger_payout("purchase-1")

        # Assert
        assert exc_info.value.message == "Already paid out"
        assert exc_info.value.status_code == 400
        assert exc_info.value.to_dict()["transfer_id"] == "tr_old"
        stripe_ready.create_transfer.assert_not_awaited()
        mock_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_held_funds_cannot_be_paid(self, mock_session, stripe_ready, purchase_factory, connected_seller):
        _stub_rows(mock_session, purchase_factory(funds_status="held"), connected_seller)

        with pytest.raises(PayoutError) as exc_info:
            await PayoutService(mock_session, stripe_ready).trigger_payout("purchase-1")

        assert exc_info.value.message == "Cannot payout - funds_status is: held"
        assert exc_info.value.status_code == 400
        stripe_ready.create_transfer.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_purchase(self, mock_session, stripe_ready):
        _stub_rows(mock_session)

        with pytest.raises(PayoutError) as exc_info:
            await PayoutService(mock_session, stripe_ready).trigger_payout("missing")

        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Purchase not found"

    @pytest.mark.asyncio
    async def test_purchase_id_is_required(self, mock_session, stripe_ready):
        with pytest.raises(PayoutError) as exc_info:
            await PayoutService(mock_session, stripe_ready).trigger_payout("")

        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "purchaseId is required"

    @pytest.mark.asyncio
    async def test_seller_without_account(self, mock_session, stripe_ready, purchase_factory, user_factory):
        _stub_rows(mock_session, purchase_factory(), user_factory())

        with pytest.raises(PayoutError) as exc_info:
            await PayoutService(mock_session, stripe_ready).trigger_payout("purchase-1")

        assert exc_info.value.message == "Seller has no Stripe account"
        stripe_ready.create_transfer.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stripe_rejection_leaves_purchase_untouched(
        self, mock_session, stripe_ready, purchase_factory, connected_seller
    ):
        # Arrange
        purchase = purchase_factory()
        _stub_rows(mock_session, purchase, connected_seller)
        stripe_ready.create_transfer.side_effect = StripeAPIError(
            "Insufficient funds in Stripe account", "invalid_request_error", "balance_insufficient"
        )

        # Act
        with pytest.raises(PayoutError) as exc_info:
            await PayoutService(mock_session, stripe_ready).trigger_payout(purchase.id)

        # Assert
        error = exc_info.value
        assert error.status_code == 500
        assert error.message == "Stripe transfer failed"
        assert error.to_dict()["stripe_error"] == {
            "message": "Insufficient funds in Stripe account",
            "type": "invalid_request_error",
            "code": "balance_insufficient",
        }
        assert error.logs
        assert purchase.stripe_transfer_id is None
        assert purchase.payout_status == "pending"
        mock_session.add.assert_not_called()
        mock_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_balance_lookup_failure_does_not_block_transfer(
        self, mock_session, stripe_ready, purchase_factory, connected_seller
    ):
        _stub_rows(mock_session, purchase_factory(), connected_seller)
        stripe_ready.retrieve_balance.side_effect = StripeAPIError("Rate limited", "rate_limit_error")

        result = await PayoutService(mock_session, stripe_ready).trigger_payout("purchase-1")

        assert result["success"] is True
        assert any("Balance check failed" in line for line in result["logs"])

    @pytest.mark.asyncio
    async def test_transfer_that_cannot_be_recorded(
        self, mock_session, stripe_ready, purchase_factory, connected_seller
    ):
        _stub_rows(mock_session, purchase_factory(), connected_seller)
        mock_session.commit.side_effect = SQLAlchemyError("connection reset")

        with pytest.raises(PayoutError) as exc_info:
            await PayoutService(mock_session, stripe_ready).trigger_payout("purchase-1")

        assert exc_info.value.status_code == 500
        assert exc_info.value.to_dict()["transfer_id"] == "tr_test_1"
        mock_session.rollback.assert_awaited_once()
