"""User-facing templated messages for non-answered agent turns.

None of these ever include raw upstream error text.
"""

from __future__ import annotations

import random

QUERY_ECHO_CHARS = 50


def _echo(query: str) -> str:
    if len(query) > QUERY_ECHO_CHARS:
        return query[:QUERY_ECHO_CHARS] + "..."
    return query


def paywall_message(agent_name: str, required: int, available: int) -> str:
    plural = "s" if required != 1 else ""
    return (
        "## Insufficient Credits 💳\n\n"
        f"You need **{required} credit{plural}** to use {agent_name}, "
        f"but you only have **{available}**.\n\n"
        "**Options:**\n"
        "[Subscribe for $9.99/month] - Get 250 credits monthly\n"
        "[Buy credit top-up] - Starting from $4.99 for 100 credits\n"
        "[View pricing plans] - Compare all options\n\n"
        "Credits never expire and unused subscription credits roll over!"
    )


def credit_error_message(required: int, available: int) -> str:
    return (
        "## Credit Processing Error 🔧\n\n"
        "There was an issue processing your credits. Please try again in a moment.\n\n"
        f"**Current balance:** {available} credits\n"
        f"**Required:** {required} credits\n\n"
        "[Try again]\n[Contact support]"
    )


_FALLBACK_TEMPLATES = (
    "I'm having trouble connecting to my AI services right now. "
    "Your question about \"{query}\" is important, please try again in a moment.",
    "Sorry for the technical difficulties. I wasn't able to process \"{query}\" right now. "
    "Could you try asking again?",
    "My AI engines are temporarily unavailable. I'd love to help with \"{query}\" "
    "once they're back online, please retry shortly.",
    "Something went wrong while answering \"{query}\". "
    "Please try again or rephrase your question.",
)


def fallback_message(
    query: str,
    *,
    agent_name: str | None = None,
    rng: random.Random | None = None,
) -> str:
    """Apology that echoes (a prefix of) the original query."""
    template = (rng or random).choice(_FALLBACK_TEMPLATES)
    body = template.format(query=_echo(query))
    if agent_name:
        body = f"**{agent_name}:** {body}"
    return (
        "## Sorry for the technical difficulties\n\n"
        f"{body}\n\n"
        "[Try again]\n[Ask a different question]\n[Contact support]"
    )
