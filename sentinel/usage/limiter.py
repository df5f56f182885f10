"""
사용자별 검색 사용량 제한

- 구독 등급(UserTier)별 분당/주간/월간 검색 횟수 제한
- 공급자 할당량(QuotaManager)과는 독립적으로 동작
- 분당 윈도우 60초, 주간 7일, 월간 30일 (첫 요청 기준 고정 윈도우)
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional, Union

from sentinel.errors import UsageLimitExceeded


logger = logging.getLogger(__name__)

MINUTE_SECONDS = 60.0
WEEK_SECONDS = 7 * 24 * 60 * 60.0
MONTH_SECONDS = 30 * 24 * 60 * 60.0

# 이 시간 동안 요청이 없는 사용자 기록은 정리 대상
INACTIVE_SECONDS = 24 * 60 * 60.0


class UserTier(str, Enum):
    """사용자 구독 등급"""
    ANONYMOUS = "anonymous"
    BASIC = "basic"
    PREMIUM = "premium"
    ADMIN = "admin"

    @property
    def has_queue_priority(self) -> bool:
        """요청 큐에서 우선 처리되는 등급"""
        return self in (UserTier.PREMIUM, UserTier.ADMIN)


@dataclass(frozen=True)
class TierLimits:
    """등급별 한도. None이면 제한 없음"""
    per_minute: Optional[int]
    weekly: Optional[int]
    monthly: Optional[int]


DEFAULT_TIER_LIMITS: Dict[UserTier, TierLimits] = {
    # 익명 사용자는 주간/월간 한도가 0이므로 로그인이 필요하다
    UserTier.ANONYMOUS: TierLimits(per_minute=10, weekly=0, monthly=0),
    UserTier.BASIC: TierLimits(per_minute=20, weekly=1, monthly=4),
    UserTier.PREMIUM: TierLimits(per_minute=50, weekly=10, monthly=40),
    UserTier.ADMIN: TierLimits(per_minute=None, weekly=None, monthly=None),
}


@dataclass
class UsageRecord:
    """사용자별 사용량 카운터"""
    minute_count: int = 0
    minute_started_at: float = 0.0
    weekly_count: int = 0
    weekly_started_at: float = 0.0
    monthly_count: int = 0
    monthly_started_at: float = 0.0
    last_request_at: float = 0.0


@dataclass
class UsageDecision:
    """사용량 검사 결과"""
    allowed: bool
    minute_remaining: Optional[int] = None
    weekly_remaining: Optional[int] = None
    monthly_remaining: Optional[int] = None
    retry_after: Optional[float] = None
    message: str = ""
    details: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "minute_remaining": self.minute_remaining,
            "weekly_remaining": self.weekly_remaining,
            "monthly_remaining": self.monthly_remaining,
            "retry_after": self.retry_after,
            "message": self.message,
        }


def _remaining(limit: Optional[int], count: int) -> Optional[int]:
    if limit is None:
        return None
    return max(0, limit - count)


def format_wait(seconds: float) -> str:
    """대기 시간을 읽기 쉬운 문자열로 변환"""
    seconds = max(0, int(seconds))
    if seconds < 60:
        return f"{seconds}초"
    if seconds < 3600:
        return f"{seconds // 60}분"
    if seconds < 86400:
        return f"{seconds // 3600}시간"
    return f"{seconds // 86400}일"


class UsageLimiter:
    """구독 등급별 사용자 검색 제한기

    check()는 카운터를 바꾸지 않는다. 허용된 검색은 record()로 기록한다.
    """

    def __init__(
        self,
        tier_limits: Optional[Dict[UserTier, TierLimits]] = None,
        clock: Callable[[], float] = time.time,
    ):
        """UsageLimiter 초기화

        Args:
            tier_limits: 등급별 한도. None이면 기본값 사용
            clock: 현재 시각(Unix timestamp)을 반환하는 함수
        """
        self._limits = dict(DEFAULT_TIER_LIMITS)
        if tier_limits:
            self._limits.update(tier_limits)
        self._clock = clock
        self._lock = threading.Lock()
        self._records: Dict[str, UsageRecord] = {}
        self._blocked = 0

    def limits_for(self, tier: Union[UserTier, str]) -> TierLimits:
        return self._limits[UserTier(tier)]

    def _get_record(self, user_id: str, now: float) -> UsageRecord:
        record = self._records.get(user_id)
        if record is None:
            record = UsageRecord(
                minute_started_at=now,
                weekly_started_at=now,
                monthly_started_at=now,
                last_request_at=now,
            )
            self._records[user_id] = record

        if now - record.minute_started_at > MINUTE_SECONDS:
            record.minute_count = 0
            record.minute_started_at = now
        if now - record.weekly_started_at > WEEK_SECONDS:
            record.weekly_count = 0
            record.weekly_started_at = now
        if now - record.monthly_started_at > MONTH_SECONDS:
            record.monthly_count = 0
            record.monthly_started_at = now
        return record

    def check(self, user_id: str, tier: Union[UserTier, str] = UserTier.BASIC) -> UsageDecision:
        """사용자가 지금 검색할 수 있는지 확인

        Args:
            user_id: 사용자 식별자
            tier: 구독 등급

        Returns:
            UsageDecision (허용 여부, 남은 횟수, 재시도 대기 시간)
        """
        tier = UserTier(tier)
        limits = self._limits[tier]
        with self._lock:
            now = self._clock()
            record = self._get_record(user_id, now)
            return self._decide(tier, limits, record, now)

    def _decide(self, tier: UserTier, limits: TierLimits, record: UsageRecord, now: float) -> UsageDecision:
        decision = UsageDecision(
            allowed=True,
            minute_remaining=_remaining(limits.per_minute, record.minute_count),
            weekly_remaining=_remaining(limits.weekly, record.weekly_count),
            monthly_remaining=_remaining(limits.monthly, record.monthly_count),
        )

        if limits.per_minute is not None and record.minute_count >= limits.per_minute:
            decision.retry_after = record.minute_started_at + MINUTE_SECONDS - now
            decision.message = "검색 요청이 너무 많습니다."
        elif limits.weekly is not None and record.weekly_count >= limits.weekly:
            decision.retry_after = record.weekly_started_at + WEEK_SECONDS - now
            decision.message = "주간 검색 한도에 도달했습니다."
        elif limits.monthly is not None and record.monthly_count >= limits.monthly:
            decision.retry_after = record.monthly_started_at + MONTH_SECONDS - now
            decision.message = "월간 검색 한도에 도달했습니다."
        else:
            return decision

        decision.allowed = False
        decision.retry_after = max(0.0, decision.retry_after)
        if tier == UserTier.ANONYMOUS:
            decision.message += " 로그인 후 검색할 수 있습니다."
        else:
            decision.message += f" {format_wait(decision.retry_after)} 후 다시 시도하세요."
        return decision

    def record(self, user_id: str, tier: Union[UserTier, str] = UserTier.BASIC) -> None:
        """검색 1회 기록"""
        limits = self._limits[UserTier(tier)]
        with self._lock:
            now = self._clock()
            record = self._get_record(user_id, now)
            record.minute_count += 1
            if limits.weekly is not None:
                record.weekly_count += 1
            if limits.monthly is not None:
                record.monthly_count += 1
            record.last_request_at = now

    def check_and_record(self, user_id: str, tier: Union[UserTier, str] = UserTier.BASIC) -> UsageDecision:
        """검사 후 허용되면 기록

        Raises:
            UsageLimitExceeded: 한도 초과
        """
        tier = UserTier(tier)
        limits = self._limits[tier]
        with self._lock:
            now = self._clock()
            record = self._get_record(user_id, now)
            decision = self._decide(tier, limits, record, now)
            if not decision.allowed:
                self._blocked += 1
                logger.warning(f"사용자 검색 한도 초과: user={user_id}, tier={tier.value}, {decision.message}")
                raise UsageLimitExceeded(decision.message, retry_after=decision.retry_after)

            record.minute_count += 1
            if limits.weekly is not None:
                record.weekly_count += 1
            if limits.monthly is not None:
                record.monthly_count += 1
            record.last_request_at = now

        decision.minute_remaining = _remaining(limits.per_minute, record.minute_count)
        decision.weekly_remaining = _remaining(limits.weekly, record.weekly_count)
        decision.monthly_remaining = _remaining(limits.monthly, record.monthly_count)
        return decision

    def clear(self, user_id: Optional[str] = None) -> None:
        """사용자(또는 전체) 사용량 기록 삭제"""
        with self._lock:
            if user_id is None:
                self._records.clear()
            else:
                self._records.pop(user_id, None)

    def cleanup(self) -> int:
        """오래 사용하지 않은 사용자 기록 정리

        Returns:
            삭제된 기록 수
        """
        with self._lock:
            now = self._clock()
            stale = [
                user_id for user_id, record in self._records.items()
                if now - record.last_request_at > INACTIVE_SECONDS
            ]
            for user_id in stale:
                del self._records[user_id]
        return len(stale)

    def get_stats(self) -> dict:
        """사용량 통계 (최근 1시간 활성 사용자 상위 10명)"""
        with self._lock:
            now = self._clock()
            active = sorted(
                (
                    {"user_id": user_id, "minute_count": r.minute_count,
                     "weekly_count": r.weekly_count, "last_request_at": r.last_request_at}
                    for user_id, r in self._records.items()
                    if now - r.last_request_at < 3600
                ),
                key=lambda entry: entry["weekly_count"],
                reverse=True,
            )
            return {
                "tracked_users": len(self._records),
                "blocked_requests": self._blocked,
                "active_users": active[:10],
            }
