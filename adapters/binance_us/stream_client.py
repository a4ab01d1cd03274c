"""
Binance.US 데이터 스트림 클라이언트

심볼 하나의 마켓 데이터 + User Data Stream을 하나의 소켓으로 수신.
- 연결 전 REST로 listenKey 발급, <stream_url>/<listenKey> 로 접속
- 30분마다 listenKey 갱신 (실패는 로깅만, 연결 유지)
- 수신 메시지를 이벤트 이름으로 분류하여 이벤트 버스에 발행

분류 규칙 (먼저 매칭된 규칙 적용):
1. e == "executionReport" → 주문 업데이트 분류 (BID_<상태> / ASK_<상태>)
2. e 필드 존재 → e 값 그대로
3. u 필드 존재 → "bookTicker"
4. lastUpdateId 필드 존재 → "depth"
5. 그 외 → 폐기
"""

import logging
from typing import Any, Callable

from adapters.binance_us.connection import SocketConnection, StateChangeCallback
from adapters.binance_us.errors import HttpError
from adapters.binance_us.models import parse_numbers
from core.constants import BinanceUsEndpoints, Intervals
from core.types import OrderSide, StreamMethod

logger = logging.getLogger(__name__)


ORDER_UPDATE_EVENT = "executionReport"
BOOK_TICKER_EVENT = "bookTicker"
DEPTH_EVENT = "depth"

# 주문 방향 → 이벤트 접두어
SIDE_PREFIXES = {
    OrderSide.BUY.value: "BID_",
    OrderSide.SELL.value: "ASK_",
}


def classify_order_update(payload: dict[str, Any], symbol: str) -> str | None:
    """executionReport → 이벤트 이름
    
    심볼이 다르면 None (대소문자 무시 비교).
    
    예: {"s": "BTCUSD", "S": "BUY", "X": "FILLED"} → "BID_FILLED"
    """
    if str(payload.get("s", "")).lower() != symbol.lower():
        return None
    
    prefix = SIDE_PREFIXES.get(payload.get("S"))
    if prefix is None:
        return None
    
    return f"{prefix}{payload.get('X')}"


# (조건, 이벤트 이름 결정) 순서가 곧 우선순위
_CLASSIFIERS: list[
    tuple[Callable[[dict[str, Any]], bool], Callable[[dict[str, Any], str], str | None]]
] = [
    (lambda p: p.get("e") == ORDER_UPDATE_EVENT, classify_order_update),
    (lambda p: p.get("e") is not None, lambda p, _: str(p["e"])),
    (lambda p: "u" in p, lambda p, _: BOOK_TICKER_EVENT),
    (lambda p: "lastUpdateId" in p, lambda p, _: DEPTH_EVENT),
]


def classify_message(payload: dict[str, Any], symbol: str) -> str | None:
    """수신 메시지 → 이벤트 이름 (없으면 None)
    
    Args:
        payload: 파싱된 메시지
        symbol: 스트림에 바인딩된 심볼
    """
    for matches, event_name in _CLASSIFIERS:
        if matches(payload):
            return event_name(payload, symbol)
    return None


class BinanceUsStreamClient(SocketConnection):
    """Binance.US 마켓/유저 데이터 스트림 클라이언트
    
    Args:
        symbol: 거래 심볼 (대소문자 무관, 내부적으로 소문자)
        rest_client: REST 클라이언트 (listenKey 관리용)
        stream_url: 데이터 스트림 베이스 URL
        coerce_numbers: 페이로드의 숫자 문자열을 Decimal로 변환할지 여부
        on_state_change: 상태 변경 콜백
    
    사용 예시:
    ```python
    stream = BinanceUsStreamClient("BTCUSD", rest_client)
    stream.events.on("trade", on_trade)
    stream.events.on("BID_FILLED", on_buy_filled)
    
    await stream.connect()
    await stream.subscribe("trade")
    await stream.subscribe("depth5@100ms")
    ```
    
    스트림 이름(aggTrade, trade, kline_1m, bookTicker, depth5@100ms 등)은
    검증 없이 그대로 전달.
    """
    
    KEEPALIVE_INTERVAL = Intervals.LISTEN_KEY_KEEPALIVE_SEC
    SUBSCRIBE_ID = 1
    UNSUBSCRIBE_ID = 2
    
    def __init__(
        self,
        symbol: str,
        rest_client: Any,  # BinanceUsRestClient
        stream_url: str = BinanceUsEndpoints.STREAM_URL,
        coerce_numbers: bool = False,
        on_state_change: StateChangeCallback | None = None,
    ):
        super().__init__(stream_url, on_state_change=on_state_change)
        self.symbol = symbol.lower()
        self.rest_client = rest_client
        self.coerce_numbers = coerce_numbers
        
        self._listen_key: str | None = None
    
    @property
    def listen_key(self) -> str | None:
        """현재 listenKey"""
        return self._listen_key
    
    async def _resolve_url(self) -> str:
        # listenKey 발급 실패(HttpError)는 connect() 호출자에게 전파
        self._listen_key = await self.rest_client.create_listen_key()
        return f"{self.url}/{self._listen_key}"
    
    async def _on_open(self) -> None:
        self._start_timer(self._renew_listen_key, self.KEEPALIVE_INTERVAL, "listenKey")
    
    async def _renew_listen_key(self) -> None:
        """listenKey 갱신 (실패해도 연결 유지)"""
        if self._listen_key is None:
            return
        
        try:
            await self.rest_client.extend_listen_key(self._listen_key)
            logger.debug("listenKey 갱신 완료")
        except HttpError as e:
            logger.error(
                "listenKey 갱신 실패",
                extra={"symbol": self.symbol, "error": str(e)},
            )
    
    async def connect(self) -> None:
        """listenKey 발급 후 연결
        
        소켓 연결이 실패하면 발급한 listenKey를 삭제하고 예외 전파.
        """
        try:
            await super().connect()
        except Exception:
            await self._release_listen_key()
            raise
    
    async def close(self) -> None:
        """연결 종료 후 listenKey 삭제"""
        await super().close()
        await self._release_listen_key()
    
    async def _release_listen_key(self) -> None:
        """listenKey 삭제 (실패는 경고만)"""
        listen_key = self._listen_key
        self._listen_key = None
        if listen_key is None:
            return
        
        try:
            await self.rest_client.delete_listen_key(listen_key)
        except HttpError as e:
            logger.warning(
                "listenKey 삭제 실패",
                extra={"symbol": self.symbol, "error": str(e)},
            )
    
    # -------------------------------------------------------------------------
    # 구독
    # -------------------------------------------------------------------------
    
    def stream_name(self, stream: str) -> str:
        """<symbol>@<stream> 형식의 스트림 이름"""
        return f"{self.symbol}@{stream}"
    
    async def subscribe(self, stream: str, request_id: int = SUBSCRIBE_ID) -> None:
        """스트림 구독"""
        await self._send_frame({
            "id": request_id,
            "method": StreamMethod.SUBSCRIBE.value,
            "params": [self.stream_name(stream)],
        })
        logger.info("스트림 구독", extra={"stream": self.stream_name(stream)})
    
    async def unsubscribe(self, stream: str, request_id: int = UNSUBSCRIBE_ID) -> None:
        """스트림 구독 해제"""
        await self._send_frame({
            "id": request_id,
            "method": StreamMethod.UNSUBSCRIBE.value,
            "params": [self.stream_name(stream)],
        })
        logger.info("스트림 구독 해제", extra={"stream": self.stream_name(stream)})
    
    # -------------------------------------------------------------------------
    # 수신
    # -------------------------------------------------------------------------
    
    def _on_frame(self, frame: dict[str, Any]) -> None:
        event_name = classify_message(frame, self.symbol)
        if event_name is None:
            return
        
        payload = parse_numbers(frame) if self.coerce_numbers else frame
        self.events.emit(event_name, payload)
