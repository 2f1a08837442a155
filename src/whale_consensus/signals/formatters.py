"""Output formatters: Rich tables and JSON for signals, consensus and triggers."""

from __future__ import annotations

import json
from dataclasses import asdict

from rich.console import Console
from rich.table import Table

from whale_consensus.common.types import utc_now
from whale_consensus.signals.models import Signal
from whale_consensus.swarm.models import ConsensusResult, Decision
from whale_consensus.swarm.registry import display_name
from whale_consensus.triggers.models import Trigger

_DECISION_COLORS = {Decision.YES: "green", Decision.NO: "red", Decision.NO_TRADE: "yellow"}
_LEVEL_COLORS = {"high": "green", "medium": "yellow", "low": "dim"}


def _decision(decision: Decision) -> str:
    color = _DECISION_COLORS[decision]
    return f"[{color}]{decision.value}[/{color}]"


def format_consensus(result: ConsensusResult, console: Console | None = None) -> None:
    """Print a consensus result with per-model votes."""
    if console is None:
        console = Console()

    dist = result.vote_distribution
    console.print(f"\n[bold]Consensus:[/bold] {_decision(result.decision)}")
    console.print(
        f"  Agreement: {result.consensus_percentage:.1f}% "
        f"({result.successful_models}/{result.total_models} models answered)"
    )
    console.print(f"  Votes: YES {dist.yes} | NO {dist.no} | NO_TRADE {dist.no_trade}")
    if result.successful_models:
        console.print(
            f"  Confidence: avg {result.average_confidence:.1f} "
            f"(range {result.confidence_min:.0f}-{result.confidence_max:.0f})"
        )
    if result.key_factors:
        console.print("  Key factors:")
        for factor in result.key_factors:
            console.print(f"    - {factor}")
    if result.risks:
        console.print("  Risks:")
        for risk in result.risks:
            console.print(f"    - {risk}")
    if result.reasoning:
        console.print(f"  Reasoning: [dim]{result.reasoning}[/dim]")

    if not result.votes:
        return

    table = Table(title="Model Votes", show_lines=False)
    table.add_column("Model", width=20)
    table.add_column("Decision", width=9)
    table.add_column("Conf", justify="right", width=5)
    table.add_column("Time", justify="right", width=7)
    table.add_column("Summary / Error", width=60, no_wrap=False)
    for vote in result.votes:
        if vote.prediction is not None:
            table.add_row(
                display_name(vote.model_id),
                _decision(vote.prediction.decision),
                f"{vote.prediction.confidence:.0f}",
                f"{vote.elapsed_ms / 1000:.1f}s",
                vote.prediction.summary[:120],
            )
        else:
            table.add_row(
                display_name(vote.model_id),
                "[red]ERROR[/red]",
                "",
                f"{vote.elapsed_ms / 1000:.1f}s",
                f"[red]{(vote.error or '')[:120]}[/red]",
            )
    console.print(table)


def format_signals_table(signals: list[Signal], console: Console | None = None) -> None:
    """Print signals as a Rich table, newest first."""
    if console is None:
        console = Console()

    if not signals:
        console.print("[yellow]No signals recorded yet.[/yellow]")
        return

    table = Table(
        title="Whale Consensus Signals",
        caption=f"Generated at {utc_now().strftime('%Y-%m-%d %H:%M UTC')}",
        show_lines=True,
    )
    table.add_column("ID", justify="right", width=5)
    table.add_column("Market", width=14)
    table.add_column("Decision", width=9)
    table.add_column("Consensus", justify="right", width=9)
    table.add_column("Level", width=7)
    table.add_column("Models", justify="right", width=7)
    table.add_column("YES Price", justify="right", width=9)
    table.add_column("Trades", justify="right", width=6)
    table.add_column("Volume", justify="right", width=10)
    table.add_column("Time (UTC)", width=16)

    for s in sorted(signals, key=lambda s: s.signal_timestamp, reverse=True):
        level = s.confidence_level.value
        color = _LEVEL_COLORS[level]
        table.add_row(
            str(s.id) if s.id is not None else "-",
            s.market_id[:14],
            _decision(s.decision),
            f"{s.consensus.consensus_percentage:.1f}%",
            f"[{color}]{level}[/{color}]",
            f"{s.consensus.successful_models}/{s.consensus.total_models}",
            f"{s.price_at_trigger:.3f}",
            str(len(s.trigger_trades)),
            f"${sum(t.size for t in s.trigger_trades):,.0f}",
            s.signal_timestamp.strftime("%Y-%m-%d %H:%M"),
        )

    console.print(table)
    console.print(f"\n[dim]{len(signals)} signal(s) total[/dim]")


def format_signals_json(signals: list[Signal]) -> str:
    """Format signals as a JSON string."""
    return json.dumps(
        [
            {
                "id": s.id,
                "market_id": s.market_id,
                "decision": s.decision.value,
                "confidence_level": s.confidence_level.value,
                "price_at_trigger": s.price_at_trigger,
                "signal_timestamp": s.signal_timestamp.isoformat(),
                "trigger_trades": [t.to_dict() for t in s.trigger_trades],
                "consensus": s.consensus.to_dict(),
            }
            for s in signals
        ],
        indent=2,
    )


def format_triggers_table(triggers: list[Trigger], console: Console | None = None) -> None:
    """Print triggers as a Rich table, highest score first."""
    if console is None:
        console = Console()

    if not triggers:
        console.print("[yellow]No active triggers.[/yellow]")
        return

    table = Table(title="Active Triggers", show_lines=True)
    table.add_column("ID", justify="right", width=5)
    table.add_column("Market", width=14)
    table.add_column("Type", width=20)
    table.add_column("Score", justify="right", width=6)
    table.add_column("Status", width=9)
    table.add_column("Expires (UTC)", width=16)
    table.add_column("Details", width=40, no_wrap=False)

    for t in sorted(triggers, key=lambda t: t.score, reverse=True):
        details = ", ".join(f"{k}={v}" for k, v in asdict(t.payload).items() if v is not None)
        table.add_row(
            str(t.id) if t.id is not None else "-",
            t.market_id[:14],
            t.trigger_type.value,
            f"{t.score:.1f}",
            t.status.value,
            t.expires_at.strftime("%Y-%m-%d %H:%M"),
            details,
        )

    console.print(table)


def format_triggers_json(triggers: list[Trigger]) -> str:
    return json.dumps(
        [
            {
                "id": t.id,
                "market_id": t.market_id,
                "trigger_type": t.trigger_type.value,
                "status": t.status.value,
                "score": t.score,
                "created_at": t.created_at.isoformat(),
                "expires_at": t.expires_at.isoformat(),
                "payload": asdict(t.payload),
            }
            for t in triggers
        ],
        indent=2,
    )
