# app/cli/payouts.py
"""
Operator commands for escrow and payouts.

    python -m app.cli.payouts trigger-payout --purchase-id <id>
    python -m app.cli.payouts release-funds
    python -m app.cli.payouts expire-offers
"""
import asyncio
import json

import click

from app.core.exceptions import PayoutError
from app.database import async_session
from app.services.escrow_service import EscrowService
from app.services.offer_service import OfferService
from app.services.payout_service import PayoutService
from app.services.stripe.client import StripeClient


@click.group()
def cli():
    """Escrow and payout operations"""


@cli.command("trigger-payout")
@click.option('--purchase-id', required=True, help='Purchase to pay the seller for')
def trigger_payout(purchase_id):
    """Transfer the seller's proceeds for one released purchase"""

    async def _run():
        async with async_session() as session:
            return await PayoutService(session, StripeClient()).trigger_payout(purchase_id, source="cli")

    try:
        result = asyncio.run(_run())
    except PayoutError as e:
        for line in e.logs:
            click.echo(line)
        raise click.ClickException(e.message)

    for line in result["logs"]:
        click.echo(line)
    click.echo(f"Paid out {result['amount']:.2f} in transfer {result['transfer_id']}")


@cli.command("release-funds")
def release_funds():
    """Auto-release held funds past their hold and pay sellers"""

    async def _run():
        async with async_session() as session:
            return await EscrowService(session, StripeClient()).release_due_funds(source="cli")

    result = asyncio.run(_run())
    click.echo(json.dumps(result, indent=2))
    if result["failed"]:
        raise SystemExit(1)


@cli.command("expire-offers")
def expire_offers():
    """Expire pending/countered offers past their window"""

    async def _run():
        async with async_session() as session:
            return await OfferService(session).expire_stale_offers()

    expired = asyncio.run(_run())
    click.echo(f"Expired {expired} offers")


if __name__ == "__main__":
    cli()
