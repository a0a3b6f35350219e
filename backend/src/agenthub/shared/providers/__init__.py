"""Multi-provider resilience framework.

Provides per-provider rate-limit windows, time-based availability tracking,
and the retrying gateway (``agenthub.shared.providers.gateway``).
"""

from agenthub.shared.providers.types import (
    ProviderConfig,
    ProviderState,
    RateWindowSnapshot,
)
from agenthub.shared.providers.availability import ProviderAvailabilityTracker
from agenthub.shared.providers.rate_limit import RateLimitTracker

__all__ = [
    "ProviderAvailabilityTracker",
    "ProviderConfig",
    "ProviderState",
    "RateLimitTracker",
    "RateWindowSnapshot",
]
