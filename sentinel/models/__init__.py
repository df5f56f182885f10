# Data Models Package
"""데이터 모델 정의"""

from .data_models import (
    SearchType,
    ContentFilter,
    SortBy,
    SearchMode,
    ContentType,
    SearchParameters,
    SearchRequest,
    NormalizedResult,
    CombinedResult,
    ProviderQuota,
    CacheEntry,
    QueuedRequest,
    SearchConfig,
)

__all__ = [
    # 요청 모델
    "SearchType",
    "ContentFilter",
    "SortBy",
    "SearchMode",
    "SearchParameters",
    "SearchRequest",
    # 결과 모델
    "ContentType",
    "NormalizedResult",
    "CombinedResult",
    # 내부 상태
    "ProviderQuota",
    "CacheEntry",
    "QueuedRequest",
    # 설정
    "SearchConfig",
]
