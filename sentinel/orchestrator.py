"""
SearchOrchestrator 구현

- 다중 검색 공급자 관리 (우선순위, 활성화 여부)
- 캐시 확인 → 공급자 순차 시도 → 결과 병합 → 캐시 저장
- 할당량 초과 공급자는 건너뛰고, 도중에 막히면 요청 큐로 대기
- 같은 검색이 진행 중이면 새로 호출하지 않고 그 결과를 공유
- 단일 공급자 검색(execute_with_throttling)은 공급자 이름으로 캐시되어 공급자별 TTL 적용
"""

import logging
import threading
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from typing import Any, Dict, List, Optional, Tuple, Union

from sentinel.errors import (
    AllProvidersFailed,
    ConfigurationError,
    NoProvidersAvailable,
    ProviderError,
)
from sentinel.models.data_models import (
    CombinedResult,
    NormalizedResult,
    QueuedRequest,
    SearchConfig,
    SearchParameters,
    SearchType,
)
from sentinel.search.adapters import (
    BingSearchAdapter,
    DuckDuckGoAdapter,
    GoogleCSEAdapter,
    ProviderAdapter,
    YouTubeAdapter,
)
from sentinel.search.cache import ResultCache, make_cache_key
from sentinel.search.request_queue import RequestQueue
from sentinel.usage.limiter import UsageLimiter, UserTier
from sentinel.utils.quota_manager import QuotaManager
from sentinel.utils.url_deduplicator import ResultMerger


logger = logging.getLogger(__name__)

MULTI_ENGINE_SOURCE = "multi-engine"


class _ProviderEntry:
    """등록된 공급자 상태"""

    def __init__(self, adapter: ProviderAdapter, priority: int, enabled: bool):
        self.adapter = adapter
        self.priority = priority
        self.enabled = enabled


class SearchOrchestrator:
    """다중 엔진 검색 조율자

    QuotaManager, ResultCache, RequestQueue, UsageLimiter는 생성 시 주입받는다.
    주입하지 않으면 설정으로부터 새로 만든다.
    """

    def __init__(
        self,
        config: Optional[SearchConfig] = None,
        quota_manager: Optional[QuotaManager] = None,
        cache: Optional[ResultCache] = None,
        request_queue: Optional[RequestQueue] = None,
        usage_limiter: Optional[UsageLimiter] = None,
    ):
        """SearchOrchestrator 초기화

        Args:
            config: 검색 설정. None이면 기본값 사용
            quota_manager: 공급자 할당량 관리자
            cache: 검색 결과 캐시
            request_queue: 할당량 대기 요청 큐
            usage_limiter: 사용자별 사용량 제한기. None이면 사용자 제한 없음
        """
        self.config = config or SearchConfig()
        self.quota = quota_manager or QuotaManager(self.config)
        self.cache = cache or ResultCache(self.config)
        self.queue = request_queue or RequestQueue(self.config, gate=self.quota.can_make_request)
        self.usage_limiter = usage_limiter
        self.merger = ResultMerger()

        self.max_results_per_engine = self.config.max_results_per_engine
        self.combined_results_limit = self.config.combined_results_limit

        self._providers: Dict[str, _ProviderEntry] = {}
        self._providers_lock = threading.Lock()
        # 진행 중인 검색: {cache_key: Future}
        self._pending: Dict[str, Future] = {}
        self._pending_lock = threading.Lock()

        logger.info("SearchOrchestrator 초기화 완료")

    @classmethod
    def from_config(cls, config: Optional[SearchConfig] = None, **components) -> "SearchOrchestrator":
        """기본 공급자 4종(Google, Bing, YouTube, DuckDuckGo)을 등록한 조율자 생성"""
        orchestrator = cls(config, **components)
        for adapter_cls in (GoogleCSEAdapter, BingSearchAdapter, YouTubeAdapter, DuckDuckGoAdapter):
            orchestrator.register_adapter(adapter_cls(orchestrator.config))
        return orchestrator

    # ---- 공급자 관리 ----

    def register_adapter(
        self,
        adapter: ProviderAdapter,
        priority: Optional[int] = None,
        enabled: bool = True,
    ) -> None:
        """검색 공급자 등록

        Args:
            adapter: 공급자 어댑터
            priority: 우선순위 (클수록 먼저). None이면 설정값
            enabled: 활성화 여부
        """
        if priority is None:
            priority = self.config.provider_priorities.get(adapter.provider_id, 0)
        with self._providers_lock:
            self._providers[adapter.provider_id] = _ProviderEntry(adapter, priority, enabled)
        logger.info(f"검색 공급자 등록: {adapter.name} (priority={priority}, enabled={enabled})")

    def _get_entry(self, provider_id: str) -> _ProviderEntry:
        entry = self._providers.get(provider_id)
        if entry is None:
            raise KeyError(f"등록되지 않은 공급자: {provider_id}")
        return entry

    def toggle_provider(self, provider_id: str, enabled: bool) -> None:
        with self._providers_lock:
            self._get_entry(provider_id).enabled = enabled
        logger.info(f"공급자 {provider_id} {'활성화' if enabled else '비활성화'}")

    def set_priority(self, provider_id: str, priority: int) -> None:
        with self._providers_lock:
            self._get_entry(provider_id).priority = priority
        logger.info(f"공급자 {provider_id} 우선순위: {priority}")

    def set_max_results_per_engine(self, count: int) -> None:
        if count < 1:
            raise ValueError("공급자별 최대 결과 수는 1 이상이어야 합니다.")
        self.max_results_per_engine = count

    def set_combined_results_limit(self, count: int) -> None:
        if count < 1:
            raise ValueError("통합 결과 최대 수는 1 이상이어야 합니다.")
        self.combined_results_limit = count

    def set_priority_mode(self, user_id: str, is_priority: bool) -> None:
        """사용자의 대기 요청을 우선 처리할지 설정"""
        self.queue.set_priority_mode(user_id, is_priority)

    def _sorted_entries(self) -> List[_ProviderEntry]:
        with self._providers_lock:
            entries = list(self._providers.values())
        return sorted(entries, key=lambda e: e.priority, reverse=True)

    def _eligible_providers(self, search_type: SearchType) -> List[_ProviderEntry]:
        """활성화, 유형 지원, 요청 가능한 공급자 (우선순위 내림차순)"""
        eligible = []
        for entry in self._sorted_entries():
            adapter = entry.adapter
            if not entry.enabled or not adapter.supports(search_type):
                continue
            if not adapter.is_available():
                logger.debug(f"공급자 일시 사용 불가: {adapter.name}")
                continue
            if not self.quota.can_make_request(adapter.provider_id):
                logger.info(f"할당량 초과로 건너뜀: {adapter.name}")
                continue
            eligible.append(entry)
        return eligible

    def list_available_providers(self) -> List[str]:
        """지금 요청 가능한 공급자 ID 목록 (우선순위 순)"""
        return [
            entry.adapter.provider_id
            for entry in self._sorted_entries()
            if entry.enabled
            and (entry.adapter.is_configured() or self.config.demo_mode)
            and entry.adapter.is_available()
            and self.quota.can_make_request(entry.adapter.provider_id)
        ]

    def get_provider_stats(self) -> Dict[str, dict]:
        """공급자별 상태 및 할당량 통계"""
        quota_stats = self.quota.get_quota_stats()
        stats = {}
        for entry in self._sorted_entries():
            adapter = entry.adapter
            stats[adapter.provider_id] = {
                "name": adapter.name,
                "priority": entry.priority,
                "enabled": entry.enabled,
                "configured": adapter.is_configured(),
                "supported_types": sorted(t.value for t in adapter.supported_types),
                "last_error": adapter.last_error,
                "quota": quota_stats.get(adapter.provider_id, {}),
            }
        return stats

    # ---- 검색 ----

    def search(
        self,
        search_type: Union[SearchType, str],
        query: str,
        params: Union[SearchParameters, dict, None] = None,
        user_id: Optional[str] = None,
        tier: Union[UserTier, str, None] = None,
    ) -> CombinedResult:
        """다중 엔진 검색

        Args:
            search_type: 검색 유형 (text, hashtag, image, video)
            query: 검색어 (이미지 검색이면 이미지 URL)
            params: 검색 파라미터
            user_id: 사용자 식별자 (사용량 제한, 큐 우선순위에 사용)
            tier: 사용자 구독 등급

        Returns:
            병합된 검색 결과

        Raises:
            UsageLimitExceeded: 사용자 검색 한도 초과
            NoProvidersAvailable: 요청 가능한 공급자 없음
            ConfigurationError: 모든 공급자가 자격 증명 문제로 실패
            AllProvidersFailed: 시도한 모든 공급자 실패
        """
        search_type = SearchType(search_type)
        if not isinstance(params, SearchParameters):
            params = SearchParameters.from_dict(params)
        if not (query or "").strip():
            raise ValueError("검색어가 비어 있습니다.")

        tier = UserTier(tier) if tier is not None else None
        if self.usage_limiter is not None and user_id:
            self.usage_limiter.check_and_record(user_id, tier or UserTier.BASIC)

        key = make_cache_key(search_type, query, params)
        cached = self.cache.get(key)
        if cached is not None:
            logger.info(f"캐시에서 결과 반환: {key}")
            return cached.copy()

        with self._pending_lock:
            future = self._pending.get(key)
            is_owner = future is None
            if is_owner:
                future = Future()
                self._pending[key] = future

        if not is_owner:
            logger.info(f"진행 중인 동일 검색 결과 대기: {key}")
            return future.result().copy()

        try:
            # 대기 중 다른 호출이 캐시를 채웠을 수 있음
            result = self.cache.get(key) if key in self.cache else None
            if result is None:
                result = self._search_providers(key, search_type, query, params, user_id, tier)
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result.copy()
        finally:
            with self._pending_lock:
                self._pending.pop(key, None)

    def _search_providers(
        self,
        key: str,
        search_type: SearchType,
        query: str,
        params: SearchParameters,
        user_id: Optional[str],
        tier: Optional[UserTier],
    ) -> CombinedResult:
        eligible = self._eligible_providers(search_type)
        if not eligible:
            logger.warning(f"사용 가능한 공급자 없음: type={search_type.value}")
            raise NoProvidersAvailable()

        max_results = min(params.max_results or self.combined_results_limit, self.combined_results_limit)
        engine_params = params.with_max_results(min(max_results, self.max_results_per_engine))
        priority = bool(tier is not None and tier.has_queue_priority)

        combined = CombinedResult(query=query, search_type=search_type)
        errors: List[Tuple[str, Exception]] = []
        cost = 0.0

        for entry in eligible:
            adapter = entry.adapter
            try:
                items, attempted = self._execute_provider(
                    adapter, search_type, query, engine_params, user_id, priority
                )
            except (ProviderError, ConfigurationError) as e:
                errors.append((adapter.provider_id, e))
                combined.errors.append(str(e))
                logger.warning(f"공급자 실패, 다음 공급자 시도: {adapter.name}: {e}")
                continue

            if attempted:
                call_cost = self.config.cost_per_request.get(adapter.provider_id, 0.0)
                cost += call_cost
                self.cache.record_api_call(adapter.provider_id, call_cost)
            added = self.merger.merge(combined, items)
            if added:
                combined.providers.append(adapter.provider_id)
            logger.info(f"{adapter.name}: {len(items)}개 결과, {added}개 추가 (누적 {len(combined.items)}개)")

            if len(combined.items) >= max_results:
                break

        if not combined.items:
            if not errors:
                raise AllProvidersFailed(
                    ProviderError(eligible[-1].adapter.provider_id, "검색 결과가 없습니다.")
                )
            last_error = errors[-1][1]
            if all(isinstance(e, ConfigurationError) for _, e in errors):
                raise last_error
            raise AllProvidersFailed(last_error, [str(e) for _, e in errors])

        combined.items = sorted(combined.items, key=lambda item: item.relevance_score, reverse=True)[:max_results]
        # 한 공급자 결과만 담겼으면 그 공급자의 TTL 적용
        source_tag = combined.providers[0] if len(combined.providers) == 1 else MULTI_ENGINE_SOURCE
        self.cache.put(key, combined, provider_source=source_tag, cost_estimate=cost, record_call=False)
        logger.info(
            f"검색 완료: type={search_type.value}, query={query!r}, "
            f"{len(combined.items)}개 결과, 공급자={combined.providers}"
        )
        return combined

    def _execute_provider(
        self,
        adapter: ProviderAdapter,
        search_type: SearchType,
        query: str,
        params: SearchParameters,
        user_id: Optional[str],
        priority: bool,
    ) -> Tuple[List[NormalizedResult], bool]:
        """할당량 확인 후 공급자 호출. 막혀 있으면 요청 큐에서 대기

        Returns:
            (결과 목록, 실제 요청 여부)
        """
        provider_id = adapter.provider_id

        if self.quota.try_acquire(provider_id):
            return adapter.execute(search_type, query, params), True

        if not self.queue.is_running():
            raise ProviderError(provider_id, "할당량 초과, 요청 큐가 실행 중이 아닙니다.")

        def run_queued() -> List[NormalizedResult]:
            if not self.quota.try_acquire(provider_id):
                raise ProviderError(provider_id, "할당량 초과")
            return adapter.execute(search_type, query, params)

        future = self.queue.add_to_queue(QueuedRequest(
            execute=run_queued,
            provider_id=provider_id,
            user_id=user_id,
            priority=priority,
        ))
        logger.info(f"할당량 초과로 요청 큐 대기: {adapter.name}")
        try:
            return future.result(timeout=self.config.queue_wait_timeout), True
        except FutureTimeoutError as e:
            future.cancel()
            raise ProviderError(
                provider_id, f"요청 큐 대기 시간 초과 ({self.config.queue_wait_timeout}s)"
            ) from e

    def execute_with_throttling(
        self,
        provider_id: str,
        search_type: Union[SearchType, str],
        query: str,
        params: Union[SearchParameters, dict, None] = None,
        user_id: Optional[str] = None,
        priority: bool = False,
    ) -> CombinedResult:
        """단일 공급자 검색 (캐시 → 할당량 확인 또는 요청 큐 → 캐시 저장)

        결과는 공급자 이름으로 캐시되므로 주 공급자 결과는 긴 TTL을 받는다.
        다른 공급자로 넘어가지 않고 공급자 오류를 그대로 전파한다.

        Args:
            provider_id: 사용할 공급자 ID
            search_type: 검색 유형
            query: 검색어
            params: 검색 파라미터
            user_id: 요청 큐 우선순위 판단에 쓰는 사용자 식별자
            priority: 요청 큐에서 우선 처리할지 여부

        Returns:
            해당 공급자의 검색 결과

        Raises:
            KeyError: 등록되지 않은 공급자
            NoProvidersAvailable: 비활성화되었거나 검색 유형을 지원하지 않는 공급자
            ConfigurationError: 자격 증명 누락
            ProviderError: 공급자 호출 실패 또는 요청 큐 대기 시간 초과
        """
        search_type = SearchType(search_type)
        if not isinstance(params, SearchParameters):
            params = SearchParameters.from_dict(params)
        if not (query or "").strip():
            raise ValueError("검색어가 비어 있습니다.")

        with self._providers_lock:
            entry = self._get_entry(provider_id)
        adapter = entry.adapter
        if not entry.enabled or not adapter.supports(search_type):
            raise NoProvidersAvailable(f"{provider_id} 공급자로 {search_type.value} 검색을 할 수 없습니다.")

        key = f"{provider_id}:{make_cache_key(search_type, query, params)}"
        cached = self.cache.get(key)
        if cached is not None:
            logger.info(f"캐시에서 결과 반환: {key}")
            return cached.copy()

        max_results = min(params.max_results or self.max_results_per_engine, self.max_results_per_engine)
        items, _ = self._execute_provider(
            adapter, search_type, query, params.with_max_results(max_results), user_id, priority
        )
        call_cost = self.config.cost_per_request.get(provider_id, 0.0)
        self.cache.record_api_call(provider_id, call_cost)

        result = CombinedResult(
            query=query,
            search_type=search_type,
            items=items,
            providers=[provider_id] if items else [],
            source=provider_id,
        )
        if items:
            self.cache.put(key, result, provider_source=provider_id, cost_estimate=call_cost, record_call=False)
        logger.info(f"{adapter.name} 단일 검색 완료: {len(items)}개 결과")
        return result.copy()

    # ---- 캐시 ----

    def get_cache_stats(self) -> Dict[str, Any]:
        return self.cache.get_stats()

    def clear_cache(self) -> int:
        """검색 캐시 초기화

        Returns:
            삭제된 캐시 항목 수
        """
        return self.cache.clear()

    # ---- 수명 주기 ----

    def start(self) -> None:
        """주기 작업(할당량 리셋, 캐시 정리)과 요청 큐 시작"""
        self.quota.start()
        self.cache.start()
        self.queue.start()
        logger.info("SearchOrchestrator 시작")

    def shutdown(self) -> None:
        """주기 작업과 요청 큐 중지, 공급자 세션 종료"""
        self.queue.stop()
        self.cache.stop()
        self.quota.stop()
        for entry in self._sorted_entries():
            entry.adapter.close()
        logger.info("SearchOrchestrator 종료")

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()
        return False
