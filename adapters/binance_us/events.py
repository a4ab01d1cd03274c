"""
연결 단위 이벤트 버스

키(요청 id 또는 이벤트 이름)별 발행/구독.
소켓 인스턴스마다 하나씩 소유하며 연결과 함께 폐기.
"""

import asyncio
import inspect
import logging
from collections import defaultdict
from typing import Any, Callable, Hashable

logger = logging.getLogger(__name__)


# 핸들러 타입: 동기 함수 또는 코루틴 함수
EventHandler = Callable[[Any], Any]


class EventBus:
    """인프로세스 Pub/Sub
    
    - 같은 키에 여러 핸들러 등록 가능, 등록 순서대로 동기 호출
    - 핸들러 예외는 로깅만 하고 다음 핸들러 계속 실행
    - 핸들러 없는 키로 emit하면 아무 일도 없음
    - 코루틴 핸들러는 태스크로 스케줄 (emit 자체는 대기하지 않음)
    
    사용 예시:
    ```python
    bus = EventBus()
    bus.on("trade", lambda payload: print(payload["p"]))
    bus.emit("trade", {"e": "trade", "p": "100.0"})
    
    # 요청/응답 상관관계
    response = await bus.wait_for("createOrder", timeout=10)
    ```
    """
    
    def __init__(self) -> None:
        self._handlers: dict[Hashable, list[EventHandler]] = defaultdict(list)
        self._tasks: set[asyncio.Task[Any]] = set()
    
    def on(self, key: Hashable, handler: EventHandler) -> None:
        """핸들러 등록"""
        self._handlers[key].append(handler)
    
    def off(self, key: Hashable, handler: EventHandler) -> bool:
        """핸들러 등록 해제
        
        Returns:
            해제되었으면 True, 등록되어 있지 않았으면 False
        """
        handlers = self._handlers.get(key)
        if not handlers or handler not in handlers:
            return False
        
        handlers.remove(handler)
        if not handlers:
            del self._handlers[key]
        return True
    
    def has_listeners(self, key: Hashable) -> bool:
        """해당 키에 등록된 핸들러 존재 여부"""
        return bool(self._handlers.get(key))
    
    def listener_count(self, key: Hashable) -> int:
        """해당 키에 등록된 핸들러 수"""
        return len(self._handlers.get(key, ()))
    
    def emit(self, key: Hashable, payload: Any) -> int:
        """이벤트 발행
        
        Args:
            key: 요청 id 또는 이벤트 이름
            payload: 전달할 데이터
            
        Returns:
            호출된 핸들러 수
        """
        handlers = self._handlers.get(key)
        if not handlers:
            return 0
        
        # 핸들러가 실행 중 off 할 수 있으므로 복사본 순회
        called = 0
        for handler in list(handlers):
            called += 1
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    self._schedule(key, result)
            except Exception as e:
                logger.error(
                    "이벤트 핸들러 에러",
                    extra={"key": key, "error": str(e)},
                    exc_info=True,
                )
        
        return called
    
    def once(self, key: Hashable) -> "asyncio.Future[Any]":
        """다음 emit 한 번을 받는 Future 반환
        
        Future가 완료/취소되면 내부 핸들러도 자동 해제.
        실행 중인 이벤트 루프 안에서 호출해야 함.
        """
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        
        def _resolve(payload: Any) -> None:
            if not future.done():
                future.set_result(payload)
        
        self.on(key, _resolve)
        future.add_done_callback(lambda _: self.off(key, _resolve))
        return future
    
    async def wait_for(self, key: Hashable, timeout: float | None = None) -> Any:
        """다음 emit까지 대기
        
        Raises:
            asyncio.TimeoutError: timeout 초과 시
        """
        return await asyncio.wait_for(self.once(key), timeout)
    
    def clear(self) -> None:
        """모든 핸들러 제거 (연결 폐기 시)"""
        self._handlers.clear()
    
    def _schedule(self, key: Hashable, awaitable: Any) -> None:
        """코루틴 핸들러 결과를 태스크로 실행"""
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        
        def _done(t: "asyncio.Task[Any]") -> None:
            self._tasks.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.error(
                    "비동기 이벤트 핸들러 에러",
                    extra={"key": key, "error": str(t.exception())},
                )
        
        task.add_done_callback(_done)
