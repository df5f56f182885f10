"""
RequestQueue 구현

- 할당량 때문에 즉시 실행할 수 없는 요청 보관
- 한 번에 하나씩 실행 (single-flight), 실행 사이에 고정 지연
- 우선순위 요청이 있으면 매 실행 전에 안정 정렬 (우선순위 먼저, 나머지는 FIFO)
- 할당량이 막힌 공급자의 요청은 건너뛰고 요청 가능한 다음 요청 실행
- 실패한 요청은 해당 Future만 실패시키고 큐는 계속 처리
"""

import logging
import threading
from concurrent.futures import Future
from typing import Callable, Dict, List, Optional

from sentinel.models.data_models import QueuedRequest, SearchConfig


logger = logging.getLogger(__name__)

# 대기 요청의 공급자가 모두 요청 불가능할 때 재확인 간격 (초)
GATE_POLL_INTERVAL = 1.0


class RequestQueue:
    """할당량 대기 요청 큐

    start()로 단일 소비자 스레드를 띄우거나, process_next()를 직접 호출해
    하나씩 처리할 수 있다. 어느 경우든 동시에 두 요청이 실행되지 않는다.
    """

    def __init__(
        self,
        config: Optional[SearchConfig] = None,
        gate: Optional[Callable[[str], bool]] = None,
    ):
        """RequestQueue 초기화

        Args:
            config: 검색 설정 (queue_delay 사용)
            gate: 공급자 요청 가능 여부 함수. 요청은 자기 공급자가
                요청 가능해질 때까지 실행을 미룬다
        """
        if config is None:
            config = SearchConfig()

        self.delay: float = config.queue_delay
        self._gate = gate
        self._queue: List[QueuedRequest] = []
        self._user_priorities: Dict[str, bool] = {}
        self._condition = threading.Condition()
        self._processing = threading.Lock()
        self._stop_event = threading.Event()
        self._worker: Optional[threading.Thread] = None

    def add_to_queue(self, request: QueuedRequest) -> Future:
        """요청을 큐에 추가

        Args:
            request: 대기시킬 요청

        Returns:
            요청 결과를 받을 Future
        """
        with self._condition:
            self._queue.append(request)
            self._condition.notify()
        logger.info(
            f"요청 대기열 추가: provider={request.provider_id}, "
            f"priority={self._is_priority(request)}, 대기 {len(self)}건"
        )
        return request.future

    def set_priority_mode(self, user_id: str, is_priority: bool) -> None:
        """사용자 우선순위 모드 설정 (구독 등급 기반)"""
        with self._condition:
            self._user_priorities[user_id] = is_priority
        logger.info(f"사용자 {user_id} 우선순위 모드: {is_priority}")

    def has_user_priority(self, user_id: str) -> bool:
        with self._condition:
            return self._user_priorities.get(user_id, False)

    def _is_priority(self, request: QueuedRequest) -> bool:
        if request.priority:
            return True
        return bool(request.user_id and self._user_priorities.get(request.user_id, False))

    def _sort_queue(self) -> None:
        """우선순위 요청을 앞으로 (안정 정렬)"""
        if any(self._is_priority(r) for r in self._queue):
            self._queue.sort(key=lambda r: not self._is_priority(r))

    def _admissible(self, request: QueuedRequest) -> bool:
        if self._gate is None or not request.provider_id:
            return True
        return self._gate(request.provider_id)

    def _next_request(self) -> Optional[QueuedRequest]:
        """실행할 요청 선택

        취소된 요청은 먼저 제거한다. 그다음 공급자가 요청 가능한 첫 요청을 꺼내므로
        한 공급자의 할당량 소진이 다른 공급자의 대기 요청을 막지 않는다.
        """
        with self._condition:
            cancelled = [r for r in self._queue if r.future.cancelled()]
            if cancelled:
                self._queue = [r for r in self._queue if not r.future.cancelled()]
                logger.debug(f"취소된 요청 {len(cancelled)}건 제거")
            self._sort_queue()
            blocked = set()
            for index, request in enumerate(self._queue):
                if request.provider_id in blocked:
                    continue
                if self._admissible(request):
                    return self._queue.pop(index)
                # 같은 공급자의 뒤 요청은 앞 요청을 추월하지 않는다
                blocked.add(request.provider_id)
            return None

    def process_next(self) -> bool:
        """큐에서 요청 하나를 꺼내 실행

        Returns:
            요청을 꺼냈으면 True (실행 직전 취소된 요청 포함), 꺼낼 요청이 없거나
            모든 대기 요청의 공급자가 아직 요청 불가능하면 False
        """
        with self._processing:
            request = self._next_request()
            if request is None:
                return False

            if not request.future.set_running_or_notify_cancel():
                logger.debug(f"취소된 요청 건너뜀: provider={request.provider_id}")
                return True

            try:
                result = request.execute()
            except Exception as e:
                logger.error(f"대기 요청 실행 실패: provider={request.provider_id}: {e}")
                request.future.set_exception(e)
            else:
                request.future.set_result(result)
            return True

    def _run(self) -> None:
        while not self._stop_event.is_set():
            if self.process_next():
                # 요청 간 고정 간격
                self._stop_event.wait(self.delay)
                continue
            with self._condition:
                if self._stop_event.is_set():
                    break
                # 비어 있으면 새 요청까지, 모든 공급자가 막혀 있으면 잠시 후 재확인
                self._condition.wait(GATE_POLL_INTERVAL if self._queue else None)

    def start(self) -> None:
        """단일 소비자 스레드 시작"""
        if self._worker is not None and self._worker.is_alive():
            return
        self._stop_event.clear()
        self._worker = threading.Thread(target=self._run, name="request-queue", daemon=True)
        self._worker.start()
        logger.debug("요청 큐 처리 시작")

    def is_running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """소비자 스레드 중지. 남은 요청의 Future는 취소된다"""
        self._stop_event.set()
        with self._condition:
            self._condition.notify_all()
        if self._worker is not None:
            self._worker.join(timeout)
            self._worker = None
        with self._condition:
            pending, self._queue = self._queue, []
        for request in pending:
            request.future.cancel()
        if pending:
            logger.info(f"요청 큐 중지: 대기 요청 {len(pending)}건 취소")

    def __len__(self) -> int:
        with self._condition:
            return len(self._queue)
