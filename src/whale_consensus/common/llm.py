"""Thin wrapper around Anthropic SDK for Claude calls."""

from __future__ import annotations

import logging

import anthropic

logger = logging.getLogger(__name__)

DEFAULT_CLAUDE_MODEL = "claude-haiku-4-5-20251001"


async def ask_claude(
    api_key: str,
    system: str,
    user: str,
    model: str = DEFAULT_CLAUDE_MODEL,
    max_tokens: int = 1024,
) -> str:
    """Send a prompt to Claude and return the text response."""
    async with anthropic.AsyncAnthropic(api_key=api_key) as client:
        message = await client.messages.create(
            model=model,
            max_tokens=max_tokens,
            system=system,
            messages=[{"role": "user", "content": user}],
        )
        if not message.content:
            raise ValueError("Claude returned empty content")
        return message.content[0].text
