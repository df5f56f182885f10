"""
ResultCache 구현

- 검색 결과 캐싱 및 계층형 TTL 관리
- 비용이 큰 주 공급자 결과는 긴 TTL, 나머지는 짧은 TTL
- 용량 90% 이상이면 우선순위 기반으로 80%까지 축출
- 적중/미스, 공급자별 호출 수, 누적 예상 비용 통계
"""

import logging
import threading
import time
from collections import Counter
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple, Union

from sentinel.models.data_models import CacheEntry, SearchConfig, SearchParameters, SearchType
from sentinel.utils.scheduler import PeriodicTask


logger = logging.getLogger(__name__)

# 정리 시작 임계치와 축출 목표 (최대 크기 대비 비율)
CLEANUP_THRESHOLD = 0.9
EVICTION_TARGET = 0.8


def make_cache_key(
    search_type: Union[SearchType, str],
    query: str,
    params: Union[SearchParameters, Dict[str, Any], None] = None,
) -> str:
    """검색 쿼리에 대한 캐시 키 생성

    key = type + ":" + 대소문자 접은(casefold) 검색어 + ":" + 키 정렬된 파라미터 JSON

    Args:
        search_type: 검색 유형
        query: 검색어
        params: 검색 파라미터 (SearchParameters 또는 딕셔너리)

    Returns:
        캐시 키 문자열
    """
    if not isinstance(params, SearchParameters):
        params = SearchParameters.from_dict(params)
    type_value = search_type.value if isinstance(search_type, SearchType) else str(search_type)
    return f"{type_value}:{(query or '').strip().casefold()}:{params.canonical_json()}"


class ResultCache:
    """검색 결과 캐시

    - get/put/invalidate/cleanup은 하나의 락으로 직렬화된다
    - 만료 항목은 접근 시 지연 삭제되고, 주기 작업으로도 정리된다
    """

    def __init__(
        self,
        config: Optional[SearchConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        """ResultCache 초기화

        Args:
            config: 검색 설정. None이면 기본값 사용
            clock: 현재 시각(Unix timestamp)을 반환하는 함수
        """
        if config is None:
            config = SearchConfig()

        self.max_size: int = config.cache_max_size
        self.primary_ttl: float = config.primary_cache_ttl
        self.default_ttl: float = config.default_cache_ttl
        # 긴 TTL과 축출 보호를 받는 공급자
        self.long_ttl_sources: Set[str] = {config.primary_provider}

        self._clock = clock
        self._lock = threading.RLock()
        # 캐시 저장소: {key: CacheEntry}
        self._cache: Dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._key_access: Counter = Counter()
        self._api_calls: Counter = Counter()
        self._estimated_cost = 0.0
        self._cleanup_task = PeriodicTask(
            self.cleanup, config.cache_cleanup_interval, name="cache-cleanup"
        )

    def ttl_for(self, provider_source: Optional[str]) -> float:
        """공급자에 따른 TTL (초)"""
        if provider_source in self.long_ttl_sources:
            return self.primary_ttl
        return self.default_ttl

    def get(self, key: str) -> Optional[Any]:
        """캐시된 결과 반환

        Args:
            key: 캐시 키

        Returns:
            캐시된 결과. 캐시 미스 또는 만료 시 None
        """
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                self._misses += 1
                logger.debug(f"캐시 미스: {key}")
                return None

            now = self._clock()
            if entry.is_expired(now):
                del self._cache[key]
                self._misses += 1
                logger.debug(f"캐시 만료: {key}, age={now - entry.created_at:.1f}s")
                return None

            entry.hit_count += 1
            entry.last_accessed_at = now
            self._hits += 1
            self._key_access[key] += 1
            logger.debug(f"캐시 히트: {key} (hit count: {entry.hit_count})")
            return entry.payload

    def put(
        self,
        key: str,
        payload: Any,
        provider_source: Optional[str] = None,
        cost_estimate: Optional[float] = None,
        record_call: bool = True,
    ) -> None:
        """결과 캐싱

        저장 전에 용량이 가득 찼으면 cleanup()을 먼저 실행한다.

        Args:
            key: 캐시 키
            payload: 저장할 결과
            provider_source: 결과를 만든 공급자 (TTL 결정에 사용)
            cost_estimate: 이 결과를 얻는 데 든 예상 비용
            record_call: 호출 수/비용 통계에 반영할지 여부. 호출마다
                record_api_call()로 이미 기록했으면 False
        """
        with self._lock:
            if len(self._cache) >= self.max_size:
                self.cleanup()

            now = self._clock()
            self._cache[key] = CacheEntry(
                key=key,
                payload=payload,
                created_at=now,
                last_accessed_at=now,
                ttl=self.ttl_for(provider_source),
                provider_source=provider_source,
                cost_estimate=cost_estimate,
            )

            if record_call:
                self.record_api_call(provider_source, cost_estimate)

        logger.debug(f"캐시 저장: {key} (source={provider_source or 'unknown'})")

    def record_api_call(self, provider_source: Optional[str], cost_estimate: Optional[float] = None) -> None:
        """공급자 호출 한 건을 통계에 기록"""
        with self._lock:
            if provider_source:
                self._api_calls[provider_source] += 1
            if cost_estimate:
                self._estimated_cost += cost_estimate

    def invalidate(self, key: str) -> bool:
        """특정 캐시 항목 무효화

        Returns:
            무효화 성공 여부
        """
        with self._lock:
            if key in self._cache:
                del self._cache[key]
                self._key_access.pop(key, None)
                logger.debug(f"캐시 무효화: {key}")
                return True
            return False

    def clear(self) -> int:
        """전체 캐시 초기화

        Returns:
            삭제된 캐시 항목 수
        """
        with self._lock:
            count = len(self._cache)
            self._cache.clear()
            self._key_access.clear()
        logger.info(f"캐시 전체 초기화: {count}개 항목 삭제")
        return count

    def _eviction_order(self, entries: Iterable[Tuple[str, CacheEntry]]) -> List[Tuple[str, CacheEntry]]:
        """덜 가치 있는 항목이 앞에 오도록 정렬

        주 공급자 결과가 아닌 것, 적중 수가 적은 것, 오래전에 접근한 것 순
        """
        return sorted(
            entries,
            key=lambda item: (
                item[1].provider_source in self.long_ttl_sources,
                item[1].hit_count,
                item[1].last_accessed_at,
            ),
        )

    def cleanup(self) -> int:
        """만료 항목 정리 및 용량 기반 축출

        용량이 90% 미만이면 만료 항목만 삭제한다.
        90% 이상이면 우선순위가 낮은 항목부터 80%가 될 때까지 추가로 삭제한다.

        Returns:
            삭제된 캐시 항목 수
        """
        with self._lock:
            now = self._clock()
            initial_size = len(self._cache)

            expired = [k for k, entry in self._cache.items() if entry.is_expired(now)]
            for key in expired:
                del self._cache[key]

            evicted = 0
            if initial_size >= self.max_size * CLEANUP_THRESHOLD:
                target_size = int(self.max_size * EVICTION_TARGET)
                excess = len(self._cache) - target_size
                if excess > 0:
                    for key, _ in self._eviction_order(self._cache.items())[:excess]:
                        del self._cache[key]
                        self._key_access.pop(key, None)
                        evicted += 1

            removed = len(expired) + evicted

        if removed:
            logger.debug(
                f"캐시 정리: 만료 {len(expired)}개, 축출 {evicted}개, 현재 {len(self._cache)}개"
            )
        return removed

    def set_max_size(self, size: int) -> None:
        """최대 크기 변경 후 즉시 정리"""
        if size < 1:
            raise ValueError("캐시 최대 크기는 1 이상이어야 합니다.")
        with self._lock:
            self.max_size = size
            self.cleanup()

    def pre_warm(
        self,
        queries: Iterable[Tuple[Union[SearchType, str], str, Optional[dict]]],
        fetch: Callable[[Union[SearchType, str], str, Optional[dict]], Any],
        provider_source: Optional[str] = None,
    ) -> int:
        """자주 쓰는 검색어로 캐시 미리 채우기

        이미 캐시된 키는 건너뛰고, 개별 조회 실패는 기록만 한다.

        Args:
            queries: (type, query, params) 목록
            fetch: 결과를 가져오는 함수
            provider_source: 저장할 결과의 공급자 태그

        Returns:
            새로 캐시된 항목 수
        """
        warmed = 0
        for search_type, query, params in queries:
            key = make_cache_key(search_type, query, params)
            with self._lock:
                if key in self._cache:
                    continue
            try:
                payload = fetch(search_type, query, params)
            except Exception as e:
                logger.error(f"캐시 예열 실패: query={query!r}: {e}")
                continue
            self.put(key, payload, provider_source)
            warmed += 1
        logger.info(f"캐시 예열 완료: {warmed}개 항목")
        return warmed

    def __contains__(self, key: str) -> bool:
        with self._lock:
            entry = self._cache.get(key)
            return entry is not None and not entry.is_expired(self._clock())

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def get_stats(self) -> Dict[str, Any]:
        """캐시 통계 반환

        Returns:
            캐시 통계 딕셔너리
        """
        with self._lock:
            total_requests = self._hits + self._misses
            size = len(self._cache)
            total_entry_hits = sum(entry.hit_count for entry in self._cache.values())
            return {
                "size": size,
                "max_size": self.max_size,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / total_requests if total_requests else 0.0,
                "popular_queries": [
                    {"key": key, "hits": hits} for key, hits in self._key_access.most_common(10)
                ],
                "average_hit_count": total_entry_hits / size if size else 0.0,
                "api_calls": dict(self._api_calls),
                "estimated_cost": round(self._estimated_cost, 6),
            }

    def start(self) -> None:
        """주기적 정리 작업 시작"""
        self._cleanup_task.start()

    def stop(self) -> None:
        """주기적 정리 작업 중지"""
        self._cleanup_task.stop()
