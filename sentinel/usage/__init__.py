# Usage Accounting Package
"""사용자별 검색 사용량 제한"""

from sentinel.usage.limiter import (
    DEFAULT_TIER_LIMITS,
    TierLimits,
    UsageDecision,
    UsageLimiter,
    UserTier,
)

__all__ = [
    "DEFAULT_TIER_LIMITS",
    "TierLimits",
    "UsageDecision",
    "UsageLimiter",
    "UserTier",
]
