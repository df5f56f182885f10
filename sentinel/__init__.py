# Multi-Engine Search Package
"""
다중 검색 엔진 조율 패키지
- 공급자별 할당량 관리와 요청 큐
- 계층형 TTL 검색 결과 캐시
- 공급자 결과 정규화, 중복 제거, 병합
"""

__version__ = "0.1.0"

from sentinel.orchestrator import SearchOrchestrator
from sentinel.models.data_models import (
    CombinedResult,
    NormalizedResult,
    SearchConfig,
    SearchParameters,
    SearchRequest,
    SearchType,
)
from sentinel.errors import (
    AllProvidersFailed,
    ConfigurationError,
    NoProvidersAvailable,
    ProviderError,
    SearchError,
    UsageLimitExceeded,
)

__all__ = [
    "SearchOrchestrator",
    "CombinedResult",
    "NormalizedResult",
    "SearchConfig",
    "SearchParameters",
    "SearchRequest",
    "SearchType",
    "SearchError",
    "ConfigurationError",
    "ProviderError",
    "NoProvidersAvailable",
    "AllProvidersFailed",
    "UsageLimitExceeded",
]
