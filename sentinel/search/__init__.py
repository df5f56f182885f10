# Search Engine Module
"""
검색 엔진 모듈
- ResultCache: 검색 결과 캐싱
- RequestQueue: 할당량 대기 요청 큐
- ProviderAdapter: 검색 공급자 어댑터 추상 클래스
"""

from sentinel.search.cache import ResultCache, make_cache_key
from sentinel.search.request_queue import RequestQueue
from sentinel.search.adapters import (
    ProviderAdapter,
    GoogleCSEAdapter,
    BingSearchAdapter,
    YouTubeAdapter,
    DuckDuckGoAdapter,
)

__all__ = [
    "ResultCache",
    "make_cache_key",
    "RequestQueue",
    "ProviderAdapter",
    "GoogleCSEAdapter",
    "BingSearchAdapter",
    "YouTubeAdapter",
    "DuckDuckGoAdapter",
]
