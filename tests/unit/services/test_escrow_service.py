# tests/unit/services/test_escrow_service.py
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from app.core.exceptions import PayoutError
from app.services.escrow_service import EscrowService


@pytest.fixture
def payout_service(mocker):
    payout_cls = mocker.patch("app.services.escrow_service.PayoutService")
    payout_cls.return_value.trigger_payout = AsyncMock()
    return payout_cls.return_value


class TestReleaseDueFunds:

    @pytest.mark.asyncio
    async def test_releases_claimed_purchases_and_collects_payout_failures(
        self, mock_session, mock_stripe, payout_service, result_factory
    ):
        # Arrange
        mock_session.execute.side_effect = [
            result_factory(scalars=["p-1", "p-2", "p-3"]),
            result_factory(rowcount=1),
            result_factory(rowcount=0),  # released by the buyer in the meantime
            result_factory(rowcount=1),
        ]
        payout_service.trigger_payout.side_effect = [
            {"success": True, "transfer_id": "tr_1", "amount": 970.0, "logs": []},
            PayoutError("Seller has no Stripe account", 400),
        ]

        # Act
        result = await EscrowService(mock_session, mock_stripe).release_due_funds(
            now=datetime(2025, 1, 21, tzinfo=timezone.utc)
        )

        # Assert
        assert result == {
            "success": True,
            "released": 2,
            "paid_out": 1,
            "failed": 1,
            "errors": [{"purchase_id": "p-3", "error": "Seller has no Stripe account"}],
        }
        payout_service.trigger_payout.assert_any_await("p-1", source="scheduler")
        payout_service.trigger_payout.assert_any_await("p-3", source="scheduler")
        assert payout_service.trigger_payout.await_count == 2
        assert mock_session.commit.await_count == 2

    @pytest.mark.asyncio
    async def test_claim_only_moves_held_funds(self, mock_session, mock_stripe, payout_service, result_factory):
        mock_session.execute.return_value = result_factory(rowcount=1)

        claimed = await EscrowService(mock_session, mock_stripe)._claim("p-1")

        assert claimed is True
        statement = mock_session.execute.await_args.args[0]
        compiled = statement.compile()
        assert "purchases.funds_status = :funds_status_1" in str(compiled)
        assert compiled.params["funds_status_1"] == "held"
        assert compiled.params["funds_status"] == "auto_released"

    @pytest.mark.asyncio
    async def test_nothing_due(self, mock_session, mock_stripe, payout_service, result_factory):
        mock_session.execute.return_value = result_factory(scalars=[])

        result = await EscrowService(mock_session, mock_stripe).release_due_funds(source="cron")

        assert result["released"] == 0
        assert result["paid_out"] == 0
        assert result["errors"] == []
        payout_service.trigger_payout.assert_not_awaited()
        mock_session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unexpected_payout_error_does_not_stop_the_sweep(
        self, mock_session, mock_stripe, payout_service, result_factory
    ):
        # Arrange
        mock_session.execute.side_effect = [
            result_factory(scalars=["p-1", "p-2"]),
            result_factory(rowcount=1),
            result_factory(rowcount=1),
        ]
        payout_service.trigger_payout.side_effect = [
            AttributeError("boom"),
            {"success": True, "transfer_id": "tr_2", "amount": 970.0, "logs": []},
        ]

        # Act
        result = await EscrowService(mock_session, mock_stripe).release_due_funds(source="cron")

        # Assert
        assert result["released"] == 2
        assert result["paid_out"] == 1
        assert result["failed"] == 1
        assert result["errors"] == [{"purchase_id": "p-1", "error": "boom"}]
        payout_service.trigger_payout.assert_any_await("p-2", source="cron")
        mock_session.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_release_write_failure_is_counted_and_sweep_continues(
        self, mock_session, mock_stripe, payout_service, result_factory
    ):
        mock_session.execute.side_effect = [
            result_factory(scalars=["p-1", "p-2"]),
            result_factory(rowcount=1),
            result_factory(rowcount=1),
        ]
        mock_session.commit.side_effect = [SQLAlchemyError("connection reset"), None]
        payout_service.trigger_payout.return_value = {"success": True, "transfer_id": "tr_2", "amount": 970.0, "logs": []}

        result = await EscrowService(mock_session, mock_stripe).release_due_funds()

        assert result["released"] == 1
        assert result["paid_out"] == 1
        assert result["errors"][0]["purchase_id"] == "p-1"
        payout_service.trigger_payout.assert_awaited_once_with("p-2", source="scheduler")
