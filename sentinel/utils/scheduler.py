"""
주기 작업 실행기

QuotaManager의 할당량 리셋, ResultCache의 만료 항목 정리처럼
트래픽이 없어도 주기적으로 실행되어야 하는 작업에 사용한다.
"""

import logging
import threading
from typing import Callable, Optional


logger = logging.getLogger(__name__)


class PeriodicTask:
    """interval 초마다 func를 실행하는 데몬 스레드"""

    def __init__(self, func: Callable[[], object], interval: float, name: str = "periodic-task"):
        self._func = func
        self._interval = interval
        self._name = name
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()
        logger.debug(f"주기 작업 시작: {self._name} (interval={self._interval}s)")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.debug(f"주기 작업 중지: {self._name}")

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            try:
                self._func()
            except Exception as e:
                # 실패해도 다음 주기는 계속 실행
                logger.error(f"주기 작업 실패: {self._name}: {e}")
