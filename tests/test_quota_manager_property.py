"""
Property test: Quota Monotonicity

*For any* 공급자 한도와 요청 수에 대해,
*When* track_usage를 반복 호출하면,
*Then* 카운터는 감소하지 않고, 일일 한도에 도달하면 다음 리셋까지 요청 불가여야 한다.
"""

import pytest
from hypothesis import given, strategies as st, settings

from sentinel.models.data_models import SearchConfig
from sentinel.utils.quota_manager import QuotaManager, end_of_day


class FakeClock:
    """테스트용 시계"""

    def __init__(self, now: float):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_manager(daily_limit: int, per_minute_limit: int, clock: FakeClock) -> QuotaManager:
    config = SearchConfig(provider_limits={"p1": (daily_limit, per_minute_limit)})
    return QuotaManager(config, clock=clock)


# 자정과 멀리 떨어진 시각 (로컬 정오)
def noon_clock() -> FakeClock:
    start = end_of_day(1_700_000_000.0) - 12 * 60 * 60
    return FakeClock(start)


class TestQuotaMonotonicityProperty:
    """Quota Monotonicity Property Tests"""

    @given(calls=st.integers(min_value=1, max_value=50))
    @settings(max_examples=50, deadline=None)
    def test_counters_never_decrease_within_window(self, calls):
        """Property: 같은 윈도우 안에서 사용량은 단조 증가한다"""
        clock = noon_clock()
        manager = make_manager(1000, 1000, clock)

        previous = (0, 0)
        for _ in range(calls):
            manager.track_usage("p1")
            quota = manager.get_quota("p1")
            current = (quota.daily_usage, quota.minute_usage)
            assert current[0] >= previous[0] and current[1] >= previous[1]
            previous = current

        assert previous == (calls, calls)

    @given(daily_limit=st.integers(min_value=1, max_value=30))
    @settings(max_examples=30, deadline=None)
    def test_daily_limit_blocks_until_reset(self, daily_limit):
        """Property: 일일 한도 소진 후에는 자정 리셋 전까지 요청 불가"""
        clock = noon_clock()
        manager = make_manager(daily_limit, 1000, clock)

        for _ in range(daily_limit):
            assert manager.can_make_request("p1")
            manager.track_usage("p1")

        assert not manager.can_make_request("p1")
        clock.advance(60 * 60)
        assert not manager.can_make_request("p1")

        # 다음 날
        clock.now = end_of_day(clock.now) + 1
        assert manager.can_make_request("p1")
        assert manager.get_quota("p1").daily_usage == 0

    @given(per_minute=st.integers(min_value=1, max_value=20))
    @settings(max_examples=30, deadline=None)
    def test_minute_window_resets_after_sixty_seconds(self, per_minute):
        """Property: 분당 한도는 윈도우 첫 요청 후 60초가 지나면 풀린다"""
        clock = noon_clock()
        manager = make_manager(10000, per_minute, clock)

        for _ in range(per_minute):
            manager.track_usage("p1")
        assert not manager.can_make_request("p1")

        clock.advance(59)
        assert not manager.can_make_request("p1")
        clock.advance(2)
        assert manager.can_make_request("p1")

        quota = manager.get_quota("p1")
        assert quota.minute_usage == 0
        assert quota.daily_usage == per_minute


class TestQuotaManagerUnit:
    """QuotaManager 단위 테스트"""

    def test_default_limits_registered(self):
        manager = QuotaManager(SearchConfig())
        stats = manager.get_quota_stats()

        assert stats["google"]["daily_limit"] == 10000
        assert stats["google"]["minute_limit"] == 60
        assert stats["bing"]["daily_limit"] == 3000
        assert stats["bing"]["minute_limit"] == 50

    def test_unknown_provider_registered_lazily(self):
        manager = QuotaManager(SearchConfig(provider_limits={}))
        assert manager.can_make_request("new-provider")
        assert manager.get_quota("new-provider").daily_limit == 10000

    def test_try_acquire_tracks_once(self):
        clock = noon_clock()
        manager = make_manager(1, 10, clock)

        assert manager.try_acquire("p1") is True
        assert manager.try_acquire("p1") is False
        assert manager.get_quota("p1").daily_usage == 1

    def test_get_quota_returns_copy(self):
        clock = noon_clock()
        manager = make_manager(5, 5, clock)

        quota = manager.get_quota("p1")
        quota.daily_usage = 99

        assert manager.get_quota("p1").daily_usage == 0

    def test_stats_report_remaining_and_availability(self):
        clock = noon_clock()
        manager = make_manager(2, 10, clock)
        manager.track_usage("p1")
        manager.track_usage("p1")

        stats = manager.get_quota_stats()["p1"]

        assert stats["daily_usage"] == 2
        assert stats["daily_remaining"] == 0
        assert stats["available"] is False

    def test_negative_limit_rejected(self):
        manager = QuotaManager(SearchConfig(provider_limits={}))
        with pytest.raises(ValueError):
            manager.register_provider("p1", -1, 10)
