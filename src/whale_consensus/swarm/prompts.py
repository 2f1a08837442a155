"""Prompt builders for market analysis and result synthesis."""

from __future__ import annotations

from whale_consensus.swarm.models import Decision, ModelVote

ANALYST_SYSTEM_PROMPT = """You are an expert prediction market analyst. Analyze the given market and provide a structured trading recommendation.

Your analysis should consider:
1. Current market price vs your estimated true probability
2. Edge assessment (is the market underpriced, overpriced, or fair?)
3. Key factors supporting your decision
4. Risk factors that could invalidate your analysis

Decision Guidelines:
- Recommend YES if you believe the market is underpriced (true probability > market price + 10%)
- Recommend NO if you believe the market is overpriced (true probability < market price - 10%)
- Recommend NO_TRADE if the edge is small (<10%) or uncertainty is high

Confidence Guidelines:
- 80-100: Very confident, strong edge with clear supporting evidence
- 60-79: Moderately confident, reasonable edge with some uncertainty
- 40-59: Low confidence, small edge or significant uncertainty
- 0-39: Very low confidence, recommend NO_TRADE unless strong contrarian signal

Provide 1-5 key factors supporting your decision and up to 3 risk factors."""


def build_prompt(
    title: str,
    event_slug: str,
    yes_price: float,
    no_price: float,
) -> tuple[str, str]:
    """Build (system, user) prompts for analysing one market."""
    user = (
        "Analyze this prediction market:\n\n"
        f"**Market Question**: {title}\n"
        f"**Current YES Price**: {yes_price * 100:.1f}%\n"
        f"**Current NO Price**: {no_price * 100:.1f}%\n"
        f"**Event Slug**: {event_slug}\n\n"
        "Provide your trading decision with structured reasoning."
    )
    return ANALYST_SYSTEM_PROMPT, user


def build_aggregation_prompt(votes: list[ModelVote], decision: Decision) -> tuple[str, str]:
    """Build (system, user) prompts asking a model to merge the agreeing votes."""
    system = (
        "You are an expert at synthesizing insights from multiple AI model predictions.\n"
        "Your task is to aggregate and deduplicate the key factors, risks, and reasoning "
        "from multiple models into a concise summary.\n\n"
        "Guidelines:\n"
        "- Combine similar factors and risks, removing redundancy\n"
        "- Prioritize factors mentioned by multiple models\n"
        "- Create a unified reasoning summary that captures the essence of all models\n"
        "- Keep the output concise and actionable\n"
        f"- Focus on factors supporting the consensus decision: {decision.value}"
    )

    blocks = []
    for i, vote in enumerate(votes, start=1):
        p = vote.prediction
        if p is None:
            continue
        blocks.append(
            f"Model {i}:\n"
            f"  Decision: {p.decision.value}\n"
            f"  Confidence: {p.confidence:g}%\n"
            f"  Key Factors: {'; '.join(p.key_factors)}\n"
            f"  Risks: {'; '.join(p.risks)}\n"
            f"  Summary: {p.summary}"
        )

    user = (
        f"Synthesize the following {len(blocks)} model predictions into a unified analysis:\n\n"
        + "\n\n".join(blocks)
        + "\n\nProvide:\n"
        "1. Top 3-5 most important key factors (deduplicated and synthesized)\n"
        "2. Top 3 critical risks (deduplicated and synthesized)\n"
        "3. A unified reasoning summary (max 500 chars)"
    )
    return system, user
