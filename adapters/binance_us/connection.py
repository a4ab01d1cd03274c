"""
WebSocket 연결 베이스

WS API 클라이언트와 데이터 스트림 클라이언트의 공통 생명주기:
- 상태 머신: DISCONNECTED → CONNECTING → OPEN → CLOSED
- 수신 루프: 도착 순서대로 한 메시지씩 처리
- 주기 작업(ping, listenKey 갱신) 핸들을 연결이 소유하고 OPEN 이탈 시 취소
- 자동 재연결 없음: 재연결은 호출자가 connect()를 다시 호출
"""

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from adapters.binance_us.errors import NotConnectedError, ProtocolError, TransportError
from adapters.binance_us.events import EventBus
from core.types import ConnectionState

logger = logging.getLogger(__name__)


# 콜백 타입 정의
StateChangeCallback = Callable[[ConnectionState], Awaitable[None]]
PeriodicCallback = Callable[[], Awaitable[Any]]


class SocketConnection:
    """WebSocket 연결 베이스 클래스
    
    서브클래스 구현 항목:
    - _resolve_url(): 접속 URL 결정 (listenKey 발급 등)
    - _on_open(): OPEN 직후 작업 (첫 ping, 주기 작업 등록)
    - _on_frame(frame): 파싱된 수신 메시지 처리
    
    Args:
        url: WebSocket URL (베이스)
        on_state_change: 상태 변경 콜백 (선택)
    """
    
    def __init__(
        self,
        url: str,
        on_state_change: StateChangeCallback | None = None,
    ):
        self.url = url.rstrip("/")
        self.on_state_change = on_state_change
        
        # 연결 단위 이벤트 테이블
        self.events = EventBus()
        
        self._state = ConnectionState.DISCONNECTED
        self._ws: Any = None
        
        # 태스크 관리
        self._receive_task: asyncio.Task[None] | None = None
        self._timers: list[asyncio.Task[None]] = []
    
    @property
    def state(self) -> ConnectionState:
        """현재 연결 상태"""
        return self._state
    
    @property
    def is_open(self) -> bool:
        """OPEN 상태 여부"""
        return self._state == ConnectionState.OPEN
    
    # -------------------------------------------------------------------------
    # 서브클래스 훅
    # -------------------------------------------------------------------------
    
    async def _resolve_url(self) -> str:
        return self.url
    
    async def _on_open(self) -> None:
        pass
    
    def _on_frame(self, frame: dict[str, Any]) -> None:
        raise NotImplementedError
    
    # -------------------------------------------------------------------------
    # 연결 / 종료
    # -------------------------------------------------------------------------
    
    async def connect(self) -> None:
        """연결 수립
        
        transport가 open을 보고할 때까지 대기.
        기존 소켓이 있으면 정리 후 새 소켓으로 통째로 교체.
        
        Raises:
            TransportError: 소켓 연결 실패
        """
        if self._ws is not None or self._receive_task is not None:
            await self._teardown()
        
        await self._set_state(ConnectionState.CONNECTING)
        
        try:
            url = await self._resolve_url()
            self._ws = await websockets.connect(url)
        except Exception as e:
            logger.error(
                "WebSocket 연결 실패",
                extra={"url": self.url, "error": str(e)},
            )
            await self._set_state(ConnectionState.DISCONNECTED)
            if isinstance(e, (OSError, WebSocketException, asyncio.TimeoutError)):
                raise TransportError(f"WebSocket connect failed: {e}") from e
            raise
        
        await self._set_state(ConnectionState.OPEN)
        logger.info("WebSocket 연결 성공", extra={"url": self.url})
        
        self._receive_task = asyncio.create_task(self._receive_loop(self._ws))
        await self._on_open()
    
    async def close(self) -> None:
        """연결 종료 (주기 작업/수신 루프 정리 후 CLOSED)"""
        await self._teardown()
        await self._set_state(ConnectionState.CLOSED)
        logger.info("WebSocket 연결 종료", extra={"url": self.url})
    
    async def _teardown(self) -> None:
        """타이머, 수신 태스크, 소켓 정리"""
        self._cancel_timers()
        
        task = self._receive_task
        self._receive_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        
        ws = self._ws
        self._ws = None
        if ws is not None:
            try:
                await ws.close()
            except (OSError, WebSocketException) as e:
                logger.warning("WebSocket close 에러", extra={"error": str(e)})
    
    # -------------------------------------------------------------------------
    # 송신
    # -------------------------------------------------------------------------
    
    async def _send_frame(self, frame: dict[str, Any]) -> None:
        """JSON 텍스트 프레임 전송
        
        응답을 기다리지 않음. 응답은 이벤트 버스로 도착.
        
        Raises:
            NotConnectedError: OPEN 상태가 아닐 때
        """
        if self._ws is None or self._state != ConnectionState.OPEN:
            raise NotConnectedError(f"Socket is not open (state={self._state.value})")
        
        await self._ws.send(json.dumps(frame, default=str))
    
    # -------------------------------------------------------------------------
    # 수신
    # -------------------------------------------------------------------------
    
    async def _receive_loop(self, ws: Any) -> None:
        """메시지 수신 루프"""
        try:
            async for message in ws:
                self._handle_message(message)
        except ConnectionClosed as e:
            logger.warning(
                "WebSocket 연결 끊김",
                extra={"url": self.url, "reason": str(e)},
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                "수신 루프 에러",
                extra={"url": self.url, "error": str(e)},
            )
        
        # close()가 아닌 끊김: DISCONNECTED로 전이 (재연결 없음)
        if self._ws is ws and self._state == ConnectionState.OPEN:
            self._receive_task = None
            self._ws = None
            await self._set_state(ConnectionState.DISCONNECTED)
    
    def _handle_message(self, message: str | bytes) -> None:
        """수신 메시지 1건 처리 (파싱 실패는 경고 후 폐기)"""
        try:
            frame = self.parse_frame(message)
        except ProtocolError as e:
            logger.warning(
                "메시지 파싱 실패",
                extra={"error": str(e), "raw": str(message)[:100]},
            )
            return
        
        try:
            self._on_frame(frame)
        except Exception as e:
            logger.error(
                "메시지 처리 중 에러",
                extra={"error": str(e)},
                exc_info=True,
            )
    
    @staticmethod
    def parse_frame(message: str | bytes) -> dict[str, Any]:
        """JSON 프레임 파싱
        
        Raises:
            ProtocolError: JSON이 아니거나 객체가 아닐 때
        """
        try:
            frame = json.loads(message)
        except (json.JSONDecodeError, UnicodeDecodeError, TypeError) as e:
            raise ProtocolError(f"Invalid JSON frame: {e}") from e
        
        if not isinstance(frame, dict):
            raise ProtocolError(f"Unexpected frame type: {type(frame).__name__}")
        
        return frame
    
    # -------------------------------------------------------------------------
    # 주기 작업 (연결 소유)
    # -------------------------------------------------------------------------
    
    def _start_timer(self, callback: PeriodicCallback, interval: float, name: str) -> None:
        """interval 초마다 callback 실행하는 태스크 등록"""
        task = asyncio.create_task(self._run_periodic(callback, interval, name))
        self._timers.append(task)
    
    async def _run_periodic(self, callback: PeriodicCallback, interval: float, name: str) -> None:
        while self._state == ConnectionState.OPEN:
            await asyncio.sleep(interval)
            
            if self._state != ConnectionState.OPEN:
                break
            
            try:
                await callback()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                # 실패해도 연결은 유지
                logger.error(
                    "주기 작업 실패",
                    extra={"timer": name, "error": str(e)},
                )
    
    def _cancel_timers(self) -> None:
        for task in self._timers:
            task.cancel()
        self._timers.clear()
    
    # -------------------------------------------------------------------------
    # 상태
    # -------------------------------------------------------------------------
    
    async def _set_state(self, new_state: ConnectionState) -> None:
        """상태 변경 및 콜백 호출
        
        OPEN이 아닌 상태로 바뀌면 주기 작업은 항상 취소.
        """
        old_state = self._state
        self._state = new_state
        
        if new_state != ConnectionState.OPEN:
            self._cancel_timers()
        
        if old_state == new_state:
            return
        
        logger.info(
            "WebSocket 상태 변경",
            extra={"old_state": old_state.value, "new_state": new_state.value},
        )
        
        if self.on_state_change is not None:
            try:
                await self.on_state_change(new_state)
            except Exception as e:
                logger.error(
                    "상태 변경 콜백 에러",
                    extra={"error": str(e)},
                )
    
    # -------------------------------------------------------------------------
    # 컨텍스트 매니저
    # -------------------------------------------------------------------------
    
    async def __aenter__(self) -> "SocketConnection":
        await self.connect()
        return self
    
    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
