"""Swarm data models: votes, consensus results and structured-output schemas."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TypeAlias

from pydantic import BaseModel, Field


class Decision(Enum):
    """Trading decision produced by a model or by consensus."""

    YES = "YES"  # buy YES shares
    NO = "NO"  # buy NO shares
    NO_TRADE = "NO_TRADE"  # abstain

    @property
    def is_trading(self) -> bool:
        return self is not Decision.NO_TRADE


# --- Structured output schemas (what providers must return) ---


class ReasoningOutput(BaseModel):
    summary: str = Field(description="Brief summary of the reasoning (max 500 chars)")
    key_factors: list[str] = Field(
        alias="keyFactors",
        min_length=1,
        description="1-5 key factors influencing the decision",
    )
    risks: list[str] = Field(default_factory=list, description="Up to 3 risk factors to consider")

    model_config = {"populate_by_name": True}


class PredictionOutput(BaseModel):
    """Schema every swarm model must answer with."""

    decision: Decision
    confidence: float = Field(ge=0, le=100, description="Confidence level 0-100 in the decision")
    reasoning: ReasoningOutput
    estimated_probability: float | None = Field(
        default=None,
        alias="estimatedProbability",
        description="Estimated true probability of YES outcome (0-100)",
    )

    model_config = {"populate_by_name": True}


class AggregationOutput(BaseModel):
    """Schema for the secondary synthesis call."""

    key_factors: list[str] = Field(
        alias="keyFactors",
        description="Top 3-5 most important factors across all models, deduplicated",
    )
    risks: list[str] = Field(description="Top 3 most critical risks across all models, deduplicated")
    reasoning: str = Field(description="Synthesized reasoning summary (max 500 chars)")

    model_config = {"populate_by_name": True}


# --- Per-model vote ---


@dataclass(frozen=True)
class Prediction:
    """A successful model answer."""

    decision: Decision
    confidence: float
    key_factors: tuple[str, ...]
    risks: tuple[str, ...] = ()
    summary: str = ""

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 100.0:
            raise ValueError(f"confidence must be in [0, 100], got {self.confidence}")

    @classmethod
    def from_output(cls, output: PredictionOutput) -> Prediction:
        return cls(
            decision=output.decision,
            confidence=float(output.confidence),
            key_factors=tuple(output.reasoning.key_factors[:5]),
            risks=tuple(output.reasoning.risks[:3]),
            summary=output.reasoning.summary,
        )


@dataclass(frozen=True)
class VoteFailure:
    """A failed model call; ``reason`` is a short description of the error."""

    reason: str


VoteOutcome: TypeAlias = Prediction | VoteFailure


@dataclass(frozen=True)
class ModelVote:
    """Result of querying one model: exactly one of a prediction or a failure."""

    model_id: str
    outcome: VoteOutcome
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        return isinstance(self.outcome, Prediction)

    @property
    def prediction(self) -> Prediction | None:
        return self.outcome if isinstance(self.outcome, Prediction) else None

    @property
    def decision(self) -> Decision | None:
        return self.outcome.decision if isinstance(self.outcome, Prediction) else None

    @property
    def error(self) -> str | None:
        return self.outcome.reason if isinstance(self.outcome, VoteFailure) else None


# --- Consensus ---


@dataclass
class VoteDistribution:
    yes: int = 0
    no: int = 0
    no_trade: int = 0

    def add(self, decision: Decision) -> None:
        if decision is Decision.YES:
            self.yes += 1
        elif decision is Decision.NO:
            self.no += 1
        else:
            self.no_trade += 1

    @property
    def total(self) -> int:
        return self.yes + self.no + self.no_trade

    def to_dict(self) -> dict[str, int]:
        return {"YES": self.yes, "NO": self.no, "NO_TRADE": self.no_trade}


@dataclass
class ConsensusResult:
    """Combined decision of the swarm.

    Attributes:
        decision: confidence-weighted winner (NO_TRADE on tie or no votes)
        consensus_percentage: share of successful votes agreeing with the winner (0-100)
        total_models: models queried
        successful_models: models that returned a valid prediction
        vote_distribution: counts per decision over successful votes
        average_confidence: mean confidence of the agreeing votes
        confidence_min / confidence_max: range of agreeing confidences
        key_factors: synthesized factors (at most 5)
        risks: synthesized risks (at most 3)
        reasoning: synthesized summary (at most 500 chars)
        votes: the raw per-model votes the result was computed from
    """

    decision: Decision
    consensus_percentage: float
    total_models: int
    successful_models: int
    vote_distribution: VoteDistribution = field(default_factory=VoteDistribution)
    average_confidence: float = 0.0
    confidence_min: float = 0.0
    confidence_max: float = 0.0
    key_factors: list[str] = field(default_factory=list)
    risks: list[str] = field(default_factory=list)
    reasoning: str = ""
    votes: list[ModelVote] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.successful_models > self.total_models:
            raise ValueError(
                f"successful_models ({self.successful_models}) exceeds total_models ({self.total_models})"
            )
        if self.vote_distribution.total != self.successful_models:
            raise ValueError("vote distribution does not sum to successful_models")
        if self.successful_models == 0 and (
            self.decision is not Decision.NO_TRADE or self.consensus_percentage != 0
        ):
            raise ValueError("a consensus with no successful models must be NO_TRADE at 0%")

    @property
    def agreeing_models(self) -> int:
        """Votes matching the winning decision (all successful votes on a tie)."""
        return round(self.consensus_percentage * self.successful_models / 100)

    def to_dict(self) -> dict:
        return {
            "decision": self.decision.value,
            "consensusPercentage": self.consensus_percentage,
            "totalModels": self.total_models,
            "successfulModels": self.successful_models,
            "voteDistribution": self.vote_distribution.to_dict(),
            "averageConfidence": self.average_confidence,
            "confidenceRange": {"min": self.confidence_min, "max": self.confidence_max},
            "keyFactors": list(self.key_factors),
            "risks": list(self.risks),
            "reasoning": self.reasoning,
        }

    @classmethod
    def from_dict(cls, data: dict) -> ConsensusResult:
        dist = data.get("voteDistribution") or {}
        conf_range = data.get("confidenceRange") or {}
        return cls(
            decision=Decision(data["decision"]),
            consensus_percentage=float(data["consensusPercentage"]),
            total_models=int(data["totalModels"]),
            successful_models=int(data["successfulModels"]),
            vote_distribution=VoteDistribution(
                yes=int(dist.get("YES", 0)),
                no=int(dist.get("NO", 0)),
                no_trade=int(dist.get("NO_TRADE", 0)),
            ),
            average_confidence=float(data.get("averageConfidence", 0.0)),
            confidence_min=float(conf_range.get("min", 0.0)),
            confidence_max=float(conf_range.get("max", 0.0)),
            key_factors=list(data.get("keyFactors", [])),
            risks=list(data.get("risks", [])),
            reasoning=data.get("reasoning", ""),
        )
