"""
QuotaManager 구현

- 공급자별 일일/분당 사용량 추적
- 요청 가능 여부(admissibility) 판단
- 일일 한도는 로컬 자정, 분당 한도는 윈도우 첫 요청 후 60초에 리셋
"""

import logging
import threading
import time
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple

from sentinel.models.data_models import (
    DEFAULT_PROVIDER_LIMITS,
    ProviderQuota,
    SearchConfig,
)
from sentinel.utils.scheduler import PeriodicTask


logger = logging.getLogger(__name__)

MINUTE_WINDOW = 60.0


def end_of_day(timestamp: float) -> float:
    """timestamp가 속한 날의 로컬 23:59:59.999999 (Unix timestamp)"""
    moment = datetime.fromtimestamp(timestamp)
    return moment.replace(hour=23, minute=59, second=59, microsecond=999999).timestamp()


class QuotaManager:
    """공급자별 요청 할당량 관리

    - 각 공급자는 독립적인 (일일 한도, 분당 한도)를 가진다
    - 카운터는 윈도우 안에서 단조 증가하며 음수가 되지 않는다
    - 예외를 발생시키지 않는다. 요청 가능 여부 판단과 리셋만 수행한다
    """

    def __init__(
        self,
        config: Optional[SearchConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        """QuotaManager 초기화

        Args:
            config: 검색 설정. None이면 기본값 사용
            clock: 현재 시각(Unix timestamp)을 반환하는 함수
        """
        if config is None:
            config = SearchConfig()

        self._clock = clock
        self._lock = threading.RLock()
        self._quotas: Dict[str, ProviderQuota] = {}
        self._default_limits: Tuple[int, int] = DEFAULT_PROVIDER_LIMITS["google"]
        self._reset_task = PeriodicTask(
            self.reset_all_if_due, config.quota_reset_interval, name="quota-reset"
        )

        for provider_id, (daily_limit, per_minute_limit) in config.provider_limits.items():
            self.register_provider(provider_id, daily_limit, per_minute_limit)

    def register_provider(self, provider_id: str, daily_limit: int, per_minute_limit: int) -> None:
        """공급자 할당량 등록 (이미 있으면 한도만 변경)

        Args:
            provider_id: 공급자 식별자
            daily_limit: 일일 최대 요청 수
            per_minute_limit: 분당 최대 요청 수
        """
        if daily_limit < 0 or per_minute_limit < 0:
            raise ValueError("할당량 한도는 0 이상이어야 합니다.")

        with self._lock:
            quota = self._quotas.get(provider_id)
            if quota is None:
                now = self._clock()
                self._quotas[provider_id] = ProviderQuota(
                    provider_id=provider_id,
                    daily_limit=daily_limit,
                    per_minute_limit=per_minute_limit,
                    daily_reset_at=end_of_day(now),
                    minute_reset_at=now + MINUTE_WINDOW,
                )
            else:
                quota.daily_limit = daily_limit
                quota.per_minute_limit = per_minute_limit
        logger.debug(f"할당량 등록: {provider_id} (daily={daily_limit}, per_minute={per_minute_limit})")

    def _get_or_create(self, provider_id: str) -> ProviderQuota:
        quota = self._quotas.get(provider_id)
        if quota is None:
            daily_limit, per_minute_limit = self._default_limits
            self.register_provider(provider_id, daily_limit, per_minute_limit)
            quota = self._quotas[provider_id]
        return quota

    def reset_if_due(self, provider_id: str) -> None:
        """리셋 시각이 지난 카운터 초기화 (멱등)"""
        with self._lock:
            quota = self._get_or_create(provider_id)
            now = self._clock()

            if now > quota.daily_reset_at:
                logger.info(f"일일 할당량 리셋: {provider_id} (사용량 {quota.daily_usage})")
                quota.daily_usage = 0
                quota.daily_reset_at = end_of_day(now)

            if now > quota.minute_reset_at:
                quota.minute_usage = 0
                quota.minute_reset_at = now + MINUTE_WINDOW

    def reset_all_if_due(self) -> None:
        """등록된 모든 공급자에 대해 reset_if_due 실행"""
        with self._lock:
            for provider_id in list(self._quotas):
                self.reset_if_due(provider_id)

    def can_make_request(self, provider_id: str) -> bool:
        """공급자가 일일/분당 한도 내에 있는지 확인

        Args:
            provider_id: 공급자 식별자

        Returns:
            요청 가능 여부
        """
        with self._lock:
            self.reset_if_due(provider_id)
            quota = self._quotas[provider_id]
            return (
                quota.daily_usage < quota.daily_limit
                and quota.minute_usage < quota.per_minute_limit
            )

    def track_usage(self, provider_id: str) -> None:
        """요청 1회 사용량 기록

        분당 윈도우의 첫 요청이면 그 시점부터 60초 뒤를 리셋 시각으로 잡는다.
        """
        with self._lock:
            self.reset_if_due(provider_id)
            quota = self._quotas[provider_id]
            if quota.minute_usage == 0:
                quota.minute_reset_at = self._clock() + MINUTE_WINDOW
            quota.daily_usage += 1
            quota.minute_usage += 1
            logger.debug(
                f"사용량 기록: {provider_id} "
                f"(daily={quota.daily_usage}/{quota.daily_limit}, "
                f"minute={quota.minute_usage}/{quota.per_minute_limit})"
            )

    def try_acquire(self, provider_id: str) -> bool:
        """요청 가능하면 사용량을 기록하고 True, 아니면 False

        can_make_request와 track_usage를 하나의 락 안에서 수행한다.
        """
        with self._lock:
            if not self.can_make_request(provider_id):
                return False
            self.track_usage(provider_id)
            return True

    def get_quota(self, provider_id: str) -> ProviderQuota:
        """공급자 할당량 레코드의 복사본 반환"""
        with self._lock:
            self.reset_if_due(provider_id)
            quota = self._quotas[provider_id]
            return ProviderQuota(**vars(quota))

    def get_quota_stats(self) -> Dict[str, dict]:
        """공급자별 할당량 통계 반환

        Returns:
            {provider_id: {daily_usage, daily_limit, ...}} 딕셔너리
        """
        stats: Dict[str, dict] = {}
        with self._lock:
            for provider_id in list(self._quotas):
                available = self.can_make_request(provider_id)
                quota = self._quotas[provider_id]
                stats[provider_id] = {
                    "daily_usage": quota.daily_usage,
                    "daily_limit": quota.daily_limit,
                    "daily_remaining": quota.daily_remaining,
                    "minute_usage": quota.minute_usage,
                    "minute_limit": quota.per_minute_limit,
                    "available": available,
                }
        return stats

    def start(self) -> None:
        """주기적 리셋 타이머 시작"""
        self._reset_task.start()

    def stop(self) -> None:
        """주기적 리셋 타이머 중지"""
        self._reset_task.stop()
