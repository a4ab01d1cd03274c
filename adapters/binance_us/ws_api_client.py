"""
Binance.US WebSocket API 클라이언트

요청/응답 방식의 트레이딩 API를 단일 소켓으로 사용.
- 연결 직후 ping, 이후 3분마다 ping (유휴 소켓 끊김 방지)
- 응답은 요청 id로 이벤트 버스에 발행 → 호출자가 id로 구독

id 충돌 주의: 진행 중인 요청과 같은 id를 재사용하면
해당 id의 모든 리스너가 응답을 함께 받음 (내부에서 검사하지 않음).
"""

import asyncio
import logging
import time
from typing import Any, Hashable, Sequence

from adapters.binance_us.connection import SocketConnection, StateChangeCallback
from adapters.binance_us.models import symbol_params
from adapters.binance_us.signer import Signer
from core.config.loader import Credentials
from core.constants import BinanceUsEndpoints, Intervals
from core.types import CancelReplaceMode, OrderType, TimeInForce

logger = logging.getLogger(__name__)


# JSON 표현이 서명 문자열과 같은 타입만 원래 값으로 전송
_NATIVE_JSON_TYPES = (str, int, bool)


def _wire_value(value: Any, text: str) -> Any:
    """서명된 문자열 표현 → 프레임 값
    
    str/int/bool은 그대로, 그 외(Decimal, float, Enum 등)는 서명한 문자열로 전송.
    """
    if type(value) in _NATIVE_JSON_TYPES:
        return value
    return text


class BinanceUsWsApiClient(SocketConnection):
    """Binance.US WebSocket API 클라이언트
    
    엔드포인트 메서드는 프레임 전송만 하고 None 반환.
    응답은 events.on(request_id, handler) 또는 request()로 수신.
    
    Args:
        api_key: API 키 (서명 요청의 params.apiKey)
        api_secret: API 시크릿
        url: WebSocket API URL
        recv_window: 서명 요청의 recvWindow (밀리초)
        on_state_change: 상태 변경 콜백
    
    사용 예시:
    ```python
    async with BinanceUsWsApiClient(api_key, api_secret) as ws_api:
        ws_api.events.on("createOrder", handle_order_response)
        await ws_api.create_order("BTCUSD", "BUY", price="25000", quantity="0.001")
        
        # 또는 응답 대기
        response = await ws_api.request("time", "serverTime")
    ```
    """
    
    PING_INTERVAL = Intervals.PING_INTERVAL_SEC
    PING_ID = "ping"
    
    def __init__(
        self,
        api_key: str,
        api_secret: str,
        url: str = BinanceUsEndpoints.WS_API_URL,
        recv_window: int = Intervals.RECV_WINDOW_MS,
        on_state_change: StateChangeCallback | None = None,
    ):
        super().__init__(url, on_state_change=on_state_change)
        self.api_key = api_key
        self.recv_window = recv_window
        self.signer = Signer(api_secret)
    
    @classmethod
    def from_credentials(cls, credentials: Credentials, **kwargs: Any) -> "BinanceUsWsApiClient":
        """Credentials로 클라이언트 생성"""
        return cls(credentials.api_key, credentials.api_secret, **kwargs)
    
    async def _on_open(self) -> None:
        # 연결 직후 ping 후 주기 ping 등록
        await self.send_ping()
        self._start_timer(self.send_ping, self.PING_INTERVAL, "ping")
    
    def _on_frame(self, frame: dict[str, Any]) -> None:
        if "id" not in frame:
            logger.warning(
                "id 없는 응답 프레임 폐기",
                extra={"frame": str(frame)[:100]},
            )
            return
        
        self.events.emit(frame["id"], frame)
    
    def _get_timestamp(self) -> int:
        """현재 시간 (밀리초)"""
        return int(time.time() * 1000)
    
    # -------------------------------------------------------------------------
    # 프레임 전송
    # -------------------------------------------------------------------------
    
    def build_frame(
        self,
        method: str,
        request_id: Hashable = 0,
        params: dict[str, Any] | None = None,
        signed: bool = False,
    ) -> dict[str, Any]:
        """요청 프레임 생성
        
        서명 요청: params에 apiKey/timestamp/recvWindow 주입 후
        정렬된 params + signature 로 구성.
        비서명 요청: None 값만 제거한 params 그대로 (비어 있으면 생략).
        
        Args:
            method: WS API 메서드 (예: order.place)
            request_id: 응답 상관관계 id
            params: 요청 파라미터
            signed: 서명 필요 여부
            
        Returns:
            {"id": ..., "method": ..., "params": {...}}
        """
        frame: dict[str, Any] = {"id": request_id, "method": method}
        
        if signed:
            signed_params = dict(params or {})
            signed_params["apiKey"] = self.api_key
            signed_params["timestamp"] = self._get_timestamp()
            signed_params["recvWindow"] = self.recv_window
            
            # 전송 값은 서명한 문자열 표현과 동일해야 함
            signed_query = self.signer.sign(signed_params)
            frame["params"] = {
                key: _wire_value(signed_params.get(key), text)
                for key, text in signed_query.items()
            }
        elif params:
            cleaned = {k: v for k, v in params.items() if v is not None}
            if cleaned:
                frame["params"] = cleaned
        
        return frame
    
    async def send(
        self,
        method: str,
        request_id: Hashable = 0,
        params: dict[str, Any] | None = None,
        signed: bool = False,
    ) -> None:
        """요청 전송 (응답은 이벤트 버스로 도착)"""
        frame = self.build_frame(method, request_id, params, signed)
        await self._send_frame(frame)
        logger.debug("WS API 요청 전송", extra={"method": method, "id": request_id})
    
    async def request(
        self,
        method: str,
        request_id: Hashable,
        params: dict[str, Any] | None = None,
        signed: bool = False,
        timeout: float | None = Intervals.WS_RESPONSE_TIMEOUT_SEC,
    ) -> dict[str, Any]:
        """요청 전송 후 같은 id의 응답 대기
        
        전송 전에 리스너를 등록하므로 빠른 응답도 놓치지 않음.
        에러 응답({status: 4xx, error: {...}})도 그대로 반환.
        
        Raises:
            asyncio.TimeoutError: timeout 초과 시
        """
        waiter = self.events.once(request_id)
        try:
            await self.send(method, request_id, params, signed)
            return await asyncio.wait_for(waiter, timeout)
        finally:
            waiter.cancel()
    
    # -------------------------------------------------------------------------
    # 일반 / 마켓 데이터
    # -------------------------------------------------------------------------
    
    async def send_ping(self) -> None:
        """연결 확인 ping"""
        await self.send("ping", self.PING_ID)
    
    async def get_server_time(self, request_id: Hashable = "serverTime") -> None:
        """서버 시간 조회"""
        await self.send("time", request_id)
    
    async def get_exchange_information(
        self,
        symbols: str | Sequence[str] | None = None,
        request_id: Hashable = "exchangeInformation",
    ) -> None:
        """거래 규칙/심볼 정보 조회"""
        await self.send("exchangeInfo", request_id, symbol_params(symbols))
    
    async def get_recent_trades(
        self,
        symbol: str,
        limit: int = 500,
        request_id: Hashable = "recentTrades",
    ) -> None:
        """최근 체결 조회"""
        await self.send("trades.recent", request_id, {"symbol": symbol, "limit": limit})
    
    async def get_historical_trades(
        self,
        symbol: str,
        limit: int = 500,
        from_id: int | None = None,
        request_id: Hashable = "historicalTrades",
    ) -> None:
        """과거 체결 조회"""
        await self.send(
            "trades.historical",
            request_id,
            {"symbol": symbol, "limit": limit, "fromId": from_id},
        )
    
    async def get_aggregate_trades(
        self,
        symbol: str,
        limit: int = 500,
        from_id: int | None = None,
        start_time: int | None = None,
        end_time: int | None = None,
        request_id: Hashable = "aggregateTrades",
    ) -> None:
        """집계 체결 조회"""
        await self.send(
            "trades.aggregate",
            request_id,
            {
                "symbol": symbol,
                "limit": limit,
                "fromId": from_id,
                "startTime": start_time,
                "endTime": end_time,
            },
        )
    
    async def get_order_book_depth(
        self,
        symbol: str,
        limit: int = 100,
        request_id: Hashable = "orderBookDepth",
    ) -> None:
        """호가창 조회"""
        await self.send("depth", request_id, {"symbol": symbol, "limit": limit})
    
    async def get_candlestick_data(
        self,
        symbol: str,
        interval: str,
        limit: int = 500,
        start_time: int | None = None,
        end_time: int | None = None,
        request_id: Hashable = "candleStickData",
    ) -> None:
        """캔들스틱(Kline) 조회"""
        await self.send(
            "klines",
            request_id,
            {
                "symbol": symbol,
                "interval": interval,
                "limit": limit,
                "startTime": start_time,
                "endTime": end_time,
            },
        )
    
    async def get_live_ticker_price(
        self,
        symbols: str | Sequence[str] | None = None,
        request_id: Hashable = "liveTickerPrice",
    ) -> None:
        """현재가 조회"""
        await self.send("ticker.price", request_id, symbol_params(symbols))
    
    async def get_average_price(
        self,
        symbol: str,
        request_id: Hashable = "averagePrice",
    ) -> None:
        """평균가 조회"""
        await self.send("avgPrice", request_id, {"symbol": symbol})
    
    async def get_best_order_book_price(
        self,
        symbols: str | Sequence[str] | None = None,
        request_id: Hashable = "orderBookTicker",
    ) -> None:
        """최우선 호가 조회"""
        await self.send("ticker.book", request_id, symbol_params(symbols))
    
    async def get_price_change_statistics(
        self,
        symbols: str | Sequence[str] | None = None,
        request_id: Hashable = "priceChangeStatistics",
    ) -> None:
        """24시간 가격 변동 통계 조회"""
        await self.send("ticker.24hr", request_id, symbol_params(symbols))
    
    async def get_rolling_window_price_change_statistics(
        self,
        symbols: str | Sequence[str] | None = None,
        window_size: str = "1d",
        type: str = "FULL",
        request_id: Hashable = "rollingWindowPriceChangeStatistics",
    ) -> None:
        """롤링 윈도우 가격 변동 통계 조회"""
        params: dict[str, Any] = {"windowSize": window_size, "type": type}
        params.update(symbol_params(symbols))
        await self.send("ticker", request_id, params)
    
    # -------------------------------------------------------------------------
    # 계좌 (서명)
    # -------------------------------------------------------------------------
    
    async def get_user_account_information(
        self,
        request_id: Hashable = "accountInformation",
    ) -> None:
        """계좌 정보 조회"""
        await self.send("account.status", request_id, signed=True)
    
    async def get_order_rate_limits(
        self,
        request_id: Hashable = "orderRateLimits",
    ) -> None:
        """주문 Rate Limit 현황 조회"""
        await self.send("account.rateLimits.orders", request_id, signed=True)
    
    # -------------------------------------------------------------------------
    # 주문 (서명)
    # -------------------------------------------------------------------------
    
    async def create_order(
        self,
        symbol: str,
        side: str,
        price: Any = None,
        quantity: Any = None,
        quote_order_qty: Any = None,
        type: str = OrderType.LIMIT.value,
        time_in_force: str | None = TimeInForce.GTC.value,
        trailing_delta: int | None = None,
        iceberg_qty: Any = None,
        new_client_order_id: str | None = None,
        request_id: Hashable = "createOrder",
    ) -> None:
        """주문 생성"""
        await self.send(
            "order.place",
            request_id,
            {
                "symbol": symbol,
                "side": side,
                "price": price,
                "quantity": quantity,
                "quoteOrderQty": quote_order_qty,
                "type": type,
                "timeInForce": time_in_force,
                "trailingDelta": trailing_delta,
                "icebergQty": iceberg_qty,
                "newClientOrderId": new_client_order_id,
            },
            signed=True,
        )
    
    async def get_order_status(
        self,
        symbol: str,
        order_id: int | None = None,
        orig_client_order_id: str | None = None,
        request_id: Hashable = "orderStatus",
    ) -> None:
        """주문 조회"""
        await self.send(
            "order.status",
            request_id,
            {
                "symbol": symbol,
                "orderId": order_id,
                "origClientOrderId": orig_client_order_id,
            },
            signed=True,
        )
    
    async def get_open_orders(
        self,
        symbol: str | None = None,
        request_id: Hashable = "openOrders",
    ) -> None:
        """오픈 주문 목록 조회"""
        await self.send("openOrders.status", request_id, {"symbol": symbol}, signed=True)
    
    async def cancel_order(
        self,
        symbol: str,
        order_id: int | None = None,
        orig_client_order_id: str | None = None,
        new_client_order_id: str | None = None,
        cancel_restrictions: str | None = None,
        request_id: Hashable = "cancelOrder",
    ) -> None:
        """주문 취소"""
        await self.send(
            "order.cancel",
            request_id,
            {
                "symbol": symbol,
                "orderId": order_id,
                "origClientOrderId": orig_client_order_id,
                "newClientOrderId": new_client_order_id,
                "cancelRestrictions": cancel_restrictions,
            },
            signed=True,
        )
    
    async def cancel_open_orders(
        self,
        symbol: str,
        request_id: Hashable = "cancelOpenOrders",
    ) -> None:
        """심볼의 모든 오픈 주문 취소"""
        await self.send("openOrders.cancelAll", request_id, {"symbol": symbol}, signed=True)
    
    async def replace_order(
        self,
        symbol: str,
        side: str,
        cancel_order_id: int | None = None,
        cancel_orig_client_order_id: str | None = None,
        price: Any = None,
        quantity: Any = None,
        quote_order_qty: Any = None,
        type: str = OrderType.LIMIT.value,
        time_in_force: str | None = TimeInForce.GTC.value,
        trailing_delta: int | None = None,
        iceberg_qty: Any = None,
        new_client_order_id: str | None = None,
        cancel_replace_mode: str = CancelReplaceMode.STOP_ON_FAILURE.value,
        request_id: Hashable = "orderReplace",
    ) -> None:
        """주문 취소 후 재주문"""
        await self.send(
            "order.cancelReplace",
            request_id,
            {
                "cancelOrderId": cancel_order_id,
                "cancelOrigClientOrderId": cancel_orig_client_order_id,
                "symbol": symbol,
                "side": side,
                "price": price,
                "quantity": quantity,
                "quoteOrderQty": quote_order_qty,
                "type": type,
                "timeInForce": time_in_force,
                "trailingDelta": trailing_delta,
                "icebergQty": iceberg_qty,
                "newClientOrderId": new_client_order_id,
                "cancelReplaceMode": cancel_replace_mode,
            },
            signed=True,
        )
    
    async def get_prevented_matches(
        self,
        symbol: str,
        limit: int = 500,
        order_id: int | None = None,
        prevented_match_id: int | None = None,
        from_prevented_match_id: int | None = None,
        request_id: Hashable = "preventedMatches",
    ) -> None:
        """Self-Trade Prevention 매칭 조회"""
        await self.send(
            "myPreventedMatches",
            request_id,
            {
                "symbol": symbol,
                "limit": limit,
                "orderId": order_id,
                "preventedMatchId": prevented_match_id,
                "fromPreventedMatchId": from_prevented_match_id,
            },
            signed=True,
        )
    
    async def get_all_orders(
        self,
        symbol: str,
        limit: int = 500,
        order_id: int | None = None,
        start_time: int | None = None,
        end_time: int | None = None,
        request_id: Hashable = "allOrders",
    ) -> None:
        """전체 주문 내역 조회"""
        await self.send(
            "allOrders",
            request_id,
            {
                "symbol": symbol,
                "limit": limit,
                "orderId": order_id,
                "startTime": start_time,
                "endTime": end_time,
            },
            signed=True,
        )
