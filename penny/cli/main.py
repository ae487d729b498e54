"""
Penny CLI - Command Line Interface for Penny Channel

Main entry point for all CLI commands.
"""

import asyncio
import json
import random

import click

from penny.utils.logger import setup_logging


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--env-file", default=None, help="Path to a .env file")
@click.option("--log-file", is_flag=True, help="Also write logs to <log_dir>/penny.log")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, debug, env_file, log_file):
    """Penny Channel - off-chain penny auctions over state channels"""
    import logging

    from penny.core.config import load_config
    from penny.core.errors import ConfigError

    try:
        config = load_config(env_file)
    except ConfigError as e:
        raise click.ClickException(f"Invalid configuration: {e}")

    level = logging.DEBUG if debug else logging.INFO
    setup_logging(level=level, log_dir=config.log_dir, log_to_file=log_file)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config


# =============================================================================
# Config / Keys
# =============================================================================


@cli.command("config")
@click.pass_context
def show_config(ctx):
    """Print the resolved configuration"""
    config = ctx.obj["config"]
    click.echo(json.dumps({
        "bid_fee": str(config.bid_fee),
        "bid_increment": str(config.bid_increment),
        "starting_price": str(config.starting_price),
        "default_budget": str(config.default_budget),
        "countdown_window": config.countdown_window,
        "tick_interval": config.tick_interval,
        "asset": config.asset,
        "weights": list(config.weights),
        "quorum": config.quorum,
        "application_id": config.application_id,
        "operator_key_configured": config.operator_private_key is not None,
    }, indent=2))


@cli.command("keygen")
def keygen():
    """Generate a participant keypair"""
    from penny.crypto import generate_keypair

    kp = generate_keypair()
    click.echo(f"Address:     {kp.address}")
    click.echo(f"Private key: 0x{kp.private_key_hex}")
    click.echo("  ⚠️  Store the private key securely - it cannot be recovered!")


# =============================================================================
# Demo Command
# =============================================================================


@cli.command("demo")
@click.option("--budget", default=None, help="Budget to lock (default from config)")
@click.option("--bids", default=5, show_default=True, help="Local bids to place")
@click.option("--remote-bids", default=2, show_default=True, help="Rival bids pushed through the clearnode")
@click.option("--tick", default=0.02, show_default=True, help="Seconds per countdown tick")
@click.option("--seed", default=None, type=int, help="Random seed for bid interleaving")
@click.pass_context
def demo(ctx, budget, bids, remote_bids, tick, seed):
    """Run a simulated auction through an in-process clearnode"""
    from dataclasses import replace

    from penny.core.errors import PennyError

    config = replace(ctx.obj["config"], tick_interval=tick)
    rng = random.Random(seed)

    try:
        summary = asyncio.run(_run_demo(config, budget, bids, remote_bids, rng))
    except PennyError as e:
        raise click.ClickException(str(e))

    click.echo("\n📜 Ledger")
    for row in summary["ledger"]:
        click.echo(
            f"  v{row['version']:<4} {row['origin']:<10} price={row['price']:>6} "
            f"fees={row['fees']:>7} seller={row['seller']:>7} bidder={row['bidder']:>7}"
        )
    click.echo(f"\n🏁 Winner: {summary['winner']}")
    click.echo(f"   Final price: {summary['price']}")
    click.echo(f"   Receipt: {summary['receipt']}")


async def _run_demo(config, budget, bids, remote_bids, rng):
    from penny.core.money import format_amount, to_amount
    from penny.core.session.allocation import AllocationCalculator
    from penny.core.session.controller import SessionController
    from penny.core.session.models import AllocationMode, Participants, SessionState, SessionStatus
    from penny.crypto import generate_keypair, keypair_from_hex
    from penny.network import LocalClearnode, StateIntent, encode_session_data

    seller = generate_keypair()
    bidder = generate_keypair()
    rival = generate_keypair()
    operator = (
        keypair_from_hex(config.operator_private_key)
        if config.operator_private_key
        else generate_keypair()
    )

    clearnode = LocalClearnode()
    participants = Participants(seller.address, bidder.address, operator.address)
    controller = SessionController(
        clearnode.connect(bidder, co_signers=[operator]),
        participants,
        auction_id=f"demo-{rng.randrange(10**6):06d}",
        config=config,
    )
    # Operator relays rival bids, co-signed by the seller
    relay = clearnode.connect(operator, co_signers=[seller])

    session = await controller.create(budget)
    click.echo(f"🆔 Session {session.id[:18]}... budget={format_amount(session.budget)}")

    actions = ["local"] * bids + ["remote"] * remote_bids
    rng.shuffle(actions)

    for action in actions:
        if action == "local":
            event = await controller.place_bid()
            if event is None:
                click.echo("  ✗ bid refused")
            else:
                click.echo(f"  ✓ you bid: v{event.version} price={format_amount(event.price_after)}")
        else:
            state = SessionState(
                current_price=to_amount(session.current_price + config.bid_increment),
                time_left=config.countdown_window,
                last_bidder=rival.address,
                bid_count=session.bid_count + 1,
                total_fees=to_amount((session.bid_count + 1) * config.bid_fee),
            )
            calculator = AllocationCalculator(participants, session.budget, config.asset)
            if not calculator.can_fund(state):
                click.echo("  ✗ rival bid exceeds budget")
                continue
            await relay.submit_state(
                session_id=session.id,
                version=session.version + 1,
                allocations=calculator.compute(state, AllocationMode.OPERATE),
                intent=StateIntent.OPERATE,
                session_data=encode_session_data(session.auction_id, state),
            )
            # Let the push reach the controller
            await asyncio.sleep(0)
            click.echo(f"  ⇄ rival bid: v{session.version} price={format_amount(session.current_price)}")

    click.echo(f"⏳ Waiting {controller.formatted_time} for the countdown...")
    while controller.status == SessionStatus.ACTIVE:
        await asyncio.sleep(config.tick_interval)

    receipt = await controller.close_order()

    ledger = []
    for entry in controller.ledger:
        ledger.append({
            "version": entry.version,
            "origin": entry.origin.value,
            "price": format_amount(entry.state.current_price),
            "fees": format_amount(entry.state.total_fees),
            "seller": format_amount(entry.amount_for(participants.seller)),
            "bidder": format_amount(entry.amount_for(participants.bidder)),
        })

    return {
        "ledger": ledger,
        "winner": session.last_bidder,
        "price": format_amount(session.current_price),
        "receipt": receipt,
    }


if __name__ == "__main__":
    cli()
