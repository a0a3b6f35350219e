"""Application services: agent turns and multi-provider queries."""

from agenthub.application.services.orchestrator import AgentOrchestrator, AgentTurnResult
from agenthub.application.services.query_processor import (
    MultiProviderQueryProcessor,
    MultiProviderResult,
)

__all__ = [
    "AgentOrchestrator",
    "AgentTurnResult",
    "MultiProviderQueryProcessor",
    "MultiProviderResult",
]
