"""Typer CLI: whale-consensus analyze, trade, price, triggers, signals, sweep, stats, filters."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Optional

import typer
from rich.console import Console

from whale_consensus.signals.models import Side

app = typer.Typer(
    name="whale-consensus",
    help="Multi-model consensus signals for Polymarket whale trades",
    no_args_is_help=True,
)
console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _parse_when(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise typer.BadParameter(f"not an ISO-8601 timestamp: {value}")


@app.command()
def analyze(
    market_ref: str = typer.Argument(help="Market ID or slug"),
    price: Optional[float] = typer.Option(None, "--price", help="Analyze at this YES price instead of the quote"),
    output: str = typer.Option("table", "--output", "-o", help="Output format: table, json"),
) -> None:
    """Run the model swarm on a market and print the consensus."""

    async def _run() -> None:
        import json

        from whale_consensus.config import get_settings
        from whale_consensus.markets.client import fetch_market
        from whale_consensus.signals.formatters import format_consensus
        from whale_consensus.swarm.engine import ConsensusEngine

        market = await fetch_market(market_ref)
        if market is None:
            console.print(f"[red]Market '{market_ref}' not found[/red]")
            raise typer.Exit(code=1)

        console.print(f"[bold]Analyzing:[/bold] {market.question}")
        console.print(f"  YES {market.yes_price:.3f} | NO {market.no_price:.3f}")
        async with ConsensusEngine(get_settings()) as engine:
            result = await engine.analyze(market, yes_price=price)

        if output == "json":
            typer.echo(json.dumps(result.to_dict(), indent=2))
        else:
            format_consensus(result, console)

    asyncio.run(_run())


@app.command()
def trade(
    market_ref: str = typer.Argument(help="Market ID or slug"),
    size: float = typer.Option(..., "--size", help="Trade size in USD"),
    price: float = typer.Option(..., "--price", help="Fill price of the bought side (0-1)"),
    side: Side = typer.Option(Side.YES, "--side", help="Outcome bought"),
    taker: Optional[str] = typer.Option(None, "--taker", help="Taker wallet address"),
) -> None:
    """Feed one whale trade through qualification, dedup and consensus."""

    async def _run() -> None:
        from whale_consensus.common.types import utc_now
        from whale_consensus.config import get_settings
        from whale_consensus.markets.client import fetch_market
        from whale_consensus.pipeline import handle_whale_trade
        from whale_consensus.signals.formatters import format_consensus
        from whale_consensus.signals.models import Trade
        from whale_consensus.store import SignalStore
        from whale_consensus.swarm.engine import ConsensusEngine

        settings = get_settings()
        market = await fetch_market(market_ref)
        if market is None:
            console.print(f"[red]Market '{market_ref}' not found[/red]")
            raise typer.Exit(code=1)

        try:
            whale_trade = Trade(size=size, price=price, side=side, timestamp=utc_now(), taker=taker)
        except ValueError as exc:
            raise typer.BadParameter(str(exc))

        store = SignalStore(settings.db_path)
        async with ConsensusEngine(settings) as engine:
            outcome = await handle_whale_trade(
                market, whale_trade, store=store, engine=engine, settings=settings,
            )

        result = outcome.result
        if result.skipped:
            console.print(f"[yellow]Skipped:[/yellow] {result.reason}")
        elif result.created:
            console.print(f"[bold green]Created signal {result.signal_id}[/bold green]")
        else:
            console.print(f"Aggregated into signal {result.signal_id}")
        if result.created and result.consensus is not None:
            format_consensus(result.consensus, console)
        if outcome.contrarian is not None and outcome.contrarian.detected:
            console.print(
                f"[bold magenta]Contrarian whale trigger {outcome.contrarian.trigger_id}[/bold magenta]"
            )

    asyncio.run(_run())


@app.command()
def price(
    market_id: str = typer.Argument(help="Market ID"),
    value: float = typer.Argument(help="Observed YES price (0-1)"),
    resolves: Optional[str] = typer.Option(None, "--resolves", help="Estimated resolution time (ISO-8601)"),
) -> None:
    """Record a price observation and run the price-based trigger detectors."""
    resolution_at = _parse_when(resolves)
    if not 0.0 <= value <= 1.0:
        raise typer.BadParameter(f"price must be in [0, 1], got {value}")

    async def _run() -> None:
        from whale_consensus.config import get_settings
        from whale_consensus.pipeline import handle_price_update
        from whale_consensus.store import SignalStore

        settings = get_settings()
        outcome = await handle_price_update(
            market_id, value,
            store=SignalStore(settings.db_path),
            settings=settings,
            estimated_resolution_at=resolution_at,
        )
        for label, detection in (
            ("Price movement", outcome.price_movement),
            ("Resolution proximity", outcome.resolution_proximity),
        ):
            if detection.detected:
                console.print(f"[bold green]{label} trigger {detection.trigger_id}[/bold green]")
            else:
                console.print(f"[dim]{label}: no new trigger[/dim]")

    asyncio.run(_run())


@app.command()
def triggers(
    limit: int = typer.Option(10, "--limit", "-n", help="Max triggers to show"),
    market_id: Optional[str] = typer.Option(None, "--market", help="Only this market"),
    output: str = typer.Option("table", "--output", "-o", help="Output format: table, json"),
) -> None:
    """List the highest-scoring active triggers."""

    async def _run() -> None:
        from whale_consensus.config import get_settings
        from whale_consensus.signals.formatters import format_triggers_json, format_triggers_table
        from whale_consensus.store import SignalStore
        from whale_consensus.triggers.detector import TriggerDetector, TriggerThresholds

        settings = get_settings()
        detector = TriggerDetector(SignalStore(settings.db_path), TriggerThresholds.from_settings(settings))
        top = await detector.get_top_triggers(limit=limit, market_id=market_id)
        if output == "json":
            typer.echo(format_triggers_json(top))
        else:
            format_triggers_table(top, console)

    asyncio.run(_run())


@app.command()
def signals(
    limit: int = typer.Option(20, "--limit", "-n", help="Max signals to show"),
    high_only: bool = typer.Option(False, "--high-only", help="Only high-confidence signals"),
    output: str = typer.Option("table", "--output", "-o", help="Output format: table, json"),
) -> None:
    """List recent signals."""

    async def _run() -> None:
        from whale_consensus.config import get_settings
        from whale_consensus.signals.formatters import format_signals_json, format_signals_table
        from whale_consensus.store import SignalStore

        settings = get_settings()
        recent = await SignalStore(settings.db_path).list_signals(
            limit=limit, only_high_confidence=high_only,
        )
        if output == "json":
            typer.echo(format_signals_json(recent))
        else:
            format_signals_table(recent, console)

    asyncio.run(_run())


@app.command()
def sweep() -> None:
    """Expire stale triggers and prune old price snapshots."""

    async def _run() -> None:
        from whale_consensus.config import get_settings
        from whale_consensus.pipeline import sweep as run_sweep
        from whale_consensus.store import SignalStore

        settings = get_settings()
        result = await run_sweep(store=SignalStore(settings.db_path), settings=settings)
        console.print(f"Expired {result.expired_triggers} trigger(s)")
        console.print(f"Pruned {result.pruned_snapshots} snapshot(s)")
        for detail in result.details:
            console.print(f"[yellow]{detail}[/yellow]")

    asyncio.run(_run())


@app.command()
def stats() -> None:
    """Show signal counts."""

    async def _run() -> None:
        from whale_consensus.common.types import utc_now
        from whale_consensus.config import get_settings
        from whale_consensus.store import SignalStore

        settings = get_settings()
        s = await SignalStore(settings.db_path).get_signal_stats(utc_now())
        console.print("[bold]Signal Stats[/bold]")
        console.print(f"  Total signals: {s['total_signals']}")
        console.print(f"  Last 24h: {s['signals_last_24h']}")
        console.print(f"  Last 7d: {s['signals_last_7d']}")
        console.print(
            f"  High confidence: {s['high_confidence_signals']} "
            f"({s['high_confidence_percentage']}%)"
        )

    asyncio.run(_run())


@app.command()
def filters(
    enable: Optional[bool] = typer.Option(None, "--enable/--disable", help="Turn signal generation on or off"),
    min_consensus: Optional[float] = typer.Option(None, "--min-consensus", help="Minimum consensus percentage"),
    dedup_window_ms: Optional[int] = typer.Option(None, "--dedup-window-ms", help="Dedup window in milliseconds"),
    min_trade_size: Optional[float] = typer.Option(None, "--min-trade-size", help="Minimum trade size in USD"),
) -> None:
    """Show the active signal filters, optionally persisting overrides first."""
    overrides = {
        k: v
        for k, v in {
            "is_enabled": enable,
            "min_consensus_percentage": min_consensus,
            "dedup_window_ms": dedup_window_ms,
            "min_trade_size": min_trade_size,
        }.items()
        if v is not None
    }
    if min_consensus is not None and not 0.0 <= min_consensus <= 100.0:
        raise typer.BadParameter(f"--min-consensus must be in [0, 100], got {min_consensus}")

    async def _run() -> None:
        from dataclasses import asdict

        from whale_consensus.common.types import utc_now
        from whale_consensus.config import get_settings
        from whale_consensus.pipeline import load_filters
        from whale_consensus.store import SignalStore

        settings = get_settings()
        store = SignalStore(settings.db_path)
        if overrides:
            await store.save_filter_overrides(overrides, utc_now())
            console.print(f"[green]Saved {len(overrides)} override(s)[/green]")
        current = await load_filters(store, settings)
        console.print("[bold]Signal Filters[/bold]")
        for name, value in asdict(current).items():
            console.print(f"  {name}: {value}")

    asyncio.run(_run())
