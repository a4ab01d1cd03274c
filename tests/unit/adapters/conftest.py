"""
어댑터 테스트 픽스처

가짜 WebSocket / HTTP 응답 등 공통 픽스처 제공.
"""

import asyncio
import json
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

import pytest


class FakeWebSocket:
    """websockets 연결 대역
    
    - send(): 전송 프레임 기록 (responder가 있으면 응답을 수신 큐에 넣음)
    - feed(): 서버 → 클라이언트 메시지 주입
    - drop(): 서버 측 연결 종료 (수신 반복 종료)
    """
    
    def __init__(self) -> None:
        self.sent: list[str] = []
        self.closed = False
        self.responder: Callable[[dict[str, Any]], Any] | None = None
        self._incoming: asyncio.Queue[Any] = asyncio.Queue()
    
    @property
    def sent_frames(self) -> list[dict[str, Any]]:
        return [json.loads(message) for message in self.sent]
    
    async def send(self, message: str) -> None:
        self.sent.append(message)
        if self.responder is not None:
            reply = self.responder(json.loads(message))
            if reply is not None:
                self.feed(reply)
    
    async def close(self) -> None:
        self.closed = True
        self._incoming.put_nowait(None)
    
    def feed(self, message: Any) -> None:
        if not isinstance(message, (str, bytes)):
            message = json.dumps(message)
        self._incoming.put_nowait(message)
    
    def drop(self) -> None:
        self._incoming.put_nowait(None)
    
    def __aiter__(self) -> "FakeWebSocket":
        return self
    
    async def __anext__(self) -> Any:
        message = await self._incoming.get()
        if message is None:
            raise StopAsyncIteration
        return message


@pytest.fixture
def fake_ws() -> FakeWebSocket:
    """가짜 WebSocket 연결"""
    return FakeWebSocket()


@pytest.fixture
def make_fake_ws() -> Callable[[], FakeWebSocket]:
    """추가 가짜 WebSocket 생성 (재연결 테스트용)"""
    return FakeWebSocket


@pytest.fixture
def mock_http_response() -> Callable[..., MagicMock]:
    """httpx 응답 모킹 팩토리"""
    
    def _make(
        status_code: int = 200,
        json_data: Any = None,
        headers: dict[str, str] | None = None,
        text: str = "",
    ) -> MagicMock:
        response = MagicMock()
        response.status_code = status_code
        response.json.return_value = json_data if json_data is not None else {}
        response.headers = headers or {}
        response.text = text or json.dumps(json_data)
        return response
    
    return _make


@pytest.fixture
def mock_rest_client() -> MagicMock:
    """listenKey 관리용 REST 클라이언트 모킹"""
    rest_client = MagicMock()
    rest_client.create_listen_key = AsyncMock(return_value="test_listen_key_12345")
    rest_client.extend_listen_key = AsyncMock(return_value=None)
    rest_client.delete_listen_key = AsyncMock(return_value=None)
    return rest_client
