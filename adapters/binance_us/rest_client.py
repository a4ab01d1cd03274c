"""
Binance.US REST API 클라이언트

HMAC-SHA256 서명, Rate Limit 사용량 추적.
재시도 없음: 모든 실패는 HttpError 계열로 호출자에게 전달.
"""

import logging
import time
from typing import Any, Sequence

import httpx

from adapters.binance_us.errors import (
    ExchangeError,
    HttpError,
    RateLimitError,
    TransportError,
)
from adapters.binance_us.models import parse_numbers, symbol_params
from adapters.binance_us.rate_limit import RateLimitTracker, parse_int_header
from adapters.binance_us.signer import Signer
from core.config.loader import Credentials
from core.constants import BinanceUsEndpoints, Intervals
from core.types import CancelReplaceMode, OrderType, TimeInForce

logger = logging.getLogger(__name__)


API_KEY_HEADER = "X-MBX-APIKEY"


class BinanceUsRestClient:
    """Binance.US REST API 클라이언트
    
    엔드포인트 메서드 하나 = HTTP 요청 하나.
    응답 본문(JSON)을 그대로 반환 (coerce_numbers=True면 숫자 문자열 → Decimal).
    
    Args:
        api_key: API 키 (헤더로만 전송)
        api_secret: API 시크릿
        base_url: REST API 베이스 URL
        timeout: 요청 타임아웃 (초)
        recv_window: 서명 요청의 recvWindow (밀리초)
        coerce_numbers: 응답의 숫자 문자열을 Decimal로 변환할지 여부
    """
    
    def __init__(
        self,
        api_key: str,
        api_secret: str,
        base_url: str = BinanceUsEndpoints.REST_URL,
        timeout: float = Intervals.REQUEST_TIMEOUT_SEC,
        recv_window: int = Intervals.RECV_WINDOW_MS,
        coerce_numbers: bool = False,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.recv_window = recv_window
        self.coerce_numbers = coerce_numbers
        
        self.signer = Signer(api_secret)
        self.rate_tracker = RateLimitTracker()
        self._client: httpx.AsyncClient | None = None
    
    @classmethod
    def from_credentials(cls, credentials: Credentials, **kwargs: Any) -> "BinanceUsRestClient":
        """Credentials로 클라이언트 생성"""
        return cls(credentials.api_key, credentials.api_secret, **kwargs)
    
    async def _get_client(self) -> httpx.AsyncClient:
        """HTTP 클라이언트 가져오기 (lazy initialization)"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client
    
    async def close(self) -> None:
        """HTTP 클라이언트 종료"""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
    
    def _get_timestamp(self) -> int:
        """현재 시간 (밀리초)"""
        return int(time.time() * 1000)
    
    async def call(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        signed: bool = False,
        with_api_key: bool = False,
    ) -> Any:
        """API 요청 실행
        
        Args:
            method: HTTP 메서드 (GET, POST, PUT, DELETE)
            path: API 경로 (예: /api/v3/order)
            params: 요청 파라미터 (None 값은 제외)
            signed: 서명 필요 여부 (timestamp/recvWindow/signature 추가)
            with_api_key: 서명 없이 API 키 헤더만 필요한 경우
            
        Returns:
            JSON 응답
            
        Raises:
            TransportError: 연결 실패/타임아웃
            RateLimitError: 429/418 응답
            ExchangeError: 기타 2xx 이외 응답
        """
        url = f"{self.base_url}{path}"
        headers: dict[str, str] = {}
        request_params: dict[str, Any] | None = None
        
        if signed or with_api_key:
            headers[API_KEY_HEADER] = self.api_key
        
        if signed:
            # 서명된 쿼리 문자열을 그대로 전송 (인코딩 차이로 서명이 깨지지 않도록)
            signed_params = dict(params or {})
            signed_params["timestamp"] = self._get_timestamp()
            signed_params["recvWindow"] = self.recv_window
            url = f"{url}?{self.signer.sign_query_string(signed_params)}"
        elif params:
            request_params = {k: v for k, v in params.items() if v is not None}
        
        client = await self._get_client()
        
        try:
            response = await client.request(
                method,
                url,
                params=request_params,
                headers=headers,
            )
        except httpx.TimeoutException as e:
            logger.warning(
                "Request timeout",
                extra={"method": method, "path": path},
            )
            raise TransportError(f"{method} {path} timed out") from e
        except httpx.RequestError as e:
            logger.error(
                "Request error",
                extra={"method": method, "path": path, "error": str(e)},
            )
            raise TransportError(f"{method} {path} failed: {e}") from e
        
        self.rate_tracker.update_from_headers(dict(response.headers))
        
        if not 200 <= response.status_code < 300:
            raise self._build_error(method, path, response)
        
        try:
            data = response.json()
        except ValueError as e:
            # 프록시 HTML 페이지 등 JSON이 아닌 2xx 응답
            logger.error(
                "JSON이 아닌 응답",
                extra={"method": method, "path": path, "status": response.status_code},
            )
            raise ExchangeError(
                status_code=response.status_code,
                message="Invalid JSON response",
                body=response.text,
            ) from e
        
        return parse_numbers(data) if self.coerce_numbers else data
    
    def _build_error(self, method: str, path: str, response: Any) -> HttpError:
        """에러 응답 → 예외 변환"""
        try:
            body = response.json()
        except ValueError:
            body = response.text
        
        code: int | None = None
        message = response.text
        if isinstance(body, dict):
            code = body.get("code")
            message = body.get("msg", message)
        
        logger.warning(
            "API 에러 응답",
            extra={
                "method": method,
                "path": path,
                "status": response.status_code,
                "code": code,
                "error_msg": message,
            },
        )
        
        if response.status_code in (418, 429):
            retry_after = parse_int_header(response.headers.get("Retry-After")) or 0
            return RateLimitError(
                status_code=response.status_code,
                retry_after=retry_after,
                message=message,
                code=code,
                body=body,
            )
        
        return ExchangeError(
            status_code=response.status_code,
            message=message,
            code=code,
            body=body,
        )
    
    # -------------------------------------------------------------------------
    # listenKey 관리 (User Data Stream용, API 키 헤더만 필요)
    # -------------------------------------------------------------------------
    
    async def create_listen_key(self) -> str:
        """listenKey 생성"""
        data = await self.call(
            "POST",
            BinanceUsEndpoints.USER_DATA_STREAM_PATH,
            with_api_key=True,
        )
        logger.info("listenKey created")
        return data["listenKey"]
    
    async def extend_listen_key(self, listen_key: str) -> None:
        """listenKey 유효기간 연장 (60분 유효, 30분마다 호출)"""
        await self.call(
            "PUT",
            BinanceUsEndpoints.USER_DATA_STREAM_PATH,
            params={"listenKey": listen_key},
            with_api_key=True,
        )
        logger.debug("listenKey extended")
    
    async def delete_listen_key(self, listen_key: str) -> None:
        """listenKey 삭제 (User Data Stream 종료)"""
        await self.call(
            "DELETE",
            BinanceUsEndpoints.USER_DATA_STREAM_PATH,
            params={"listenKey": listen_key},
            with_api_key=True,
        )
        logger.info("listenKey deleted")
    
    # -------------------------------------------------------------------------
    # 시스템 / 마켓 데이터
    # -------------------------------------------------------------------------
    
    async def get_server_time(self) -> Any:
        """서버 시간 조회"""
        return await self.call("GET", "/api/v3/time")
    
    async def get_system_status(self) -> Any:
        """시스템 상태 조회"""
        return await self.call("GET", "/sapi/v1/system/status", signed=True)
    
    async def get_exchange_information(
        self,
        symbols: str | Sequence[str] | None = None,
    ) -> Any:
        """거래 규칙/심볼 정보 조회"""
        return await self.call(
            "GET",
            "/api/v3/exchangeInfo",
            params=symbol_params(symbols),
        )
    
    async def get_recent_trades(self, symbol: str, limit: int = 500) -> Any:
        """최근 체결 조회"""
        return await self.call(
            "GET",
            "/api/v3/trades",
            params={"symbol": symbol, "limit": limit},
        )
    
    async def get_historical_trades(
        self,
        symbol: str,
        limit: int = 500,
        from_id: int | None = None,
    ) -> Any:
        """과거 체결 조회 (API 키 필요)"""
        return await self.call(
            "GET",
            "/api/v3/historicalTrades",
            params={"symbol": symbol, "limit": limit, "fromId": from_id},
            with_api_key=True,
        )
    
    async def get_aggregate_trades(
        self,
        symbol: str,
        limit: int = 500,
        from_id: int | None = None,
        start_time: int | None = None,
        end_time: int | None = None,
    ) -> Any:
        """집계 체결 조회"""
        return await self.call(
            "GET",
            "/api/v3/aggTrades",
            params={
                "symbol": symbol,
                "limit": limit,
                "fromId": from_id,
                "startTime": start_time,
                "endTime": end_time,
            },
        )
    
    async def get_order_book_depth(self, symbol: str, limit: int = 100) -> Any:
        """호가창 조회"""
        return await self.call(
            "GET",
            "/api/v3/depth",
            params={"symbol": symbol, "limit": limit},
        )
    
    async def get_candlestick_data(
        self,
        symbol: str,
        interval: str,
        limit: int = 500,
        start_time: int | None = None,
        end_time: int | None = None,
    ) -> Any:
        """캔들스틱(Kline) 조회"""
        return await self.call(
            "GET",
            "/api/v3/klines",
            params={
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
    ) -> Any:
        """현재가 조회"""
        return await self.call(
            "GET",
            "/api/v3/ticker/price",
            params=symbol_params(symbols),
        )
    
    async def get_average_price(self, symbol: str) -> Any:
        """평균가 조회"""
        return await self.call(
            "GET",
            "/api/v3/avgPrice",
            params={"symbol": symbol},
        )
    
    async def get_best_order_book_price(
        self,
        symbols: str | Sequence[str] | None = None,
    ) -> Any:
        """최우선 호가 조회"""
        return await self.call(
            "GET",
            "/api/v3/ticker/bookTicker",
            params=symbol_params(symbols),
        )
    
    async def get_price_change_statistics(
        self,
        symbols: str | Sequence[str] | None = None,
    ) -> Any:
        """24시간 가격 변동 통계 조회"""
        return await self.call(
            "GET",
            "/api/v3/ticker/24hr",
            params=symbol_params(symbols),
        )
    
    async def get_rolling_window_price_change_statistics(
        self,
        symbols: str | Sequence[str] | None = None,
        window_size: str = "1d",
        type: str = "FULL",
    ) -> Any:
        """롤링 윈도우 가격 변동 통계 조회"""
        params: dict[str, Any] = {"windowSize": window_size, "type": type}
        params.update(symbol_params(symbols))
        return await self.call("GET", "/api/v3/ticker", params=params)
    
    # -------------------------------------------------------------------------
    # 계좌 조회
    # -------------------------------------------------------------------------
    
    async def get_user_account_information(self) -> Any:
        """계좌 정보 조회"""
        return await self.call("GET", "/api/v3/account", signed=True)
    
    async def get_user_account_status(self) -> Any:
        """계좌 상태 조회"""
        return await self.call("GET", "/sapi/v3/accountStatus", signed=True)
    
    async def get_user_api_trading_status(self) -> Any:
        """API 트레이딩 상태 조회"""
        return await self.call("GET", "/sapi/v3/apiTradingStatus", signed=True)
    
    async def get_asset_distribution_history(
        self,
        limit: int = 20,
        asset: str | None = None,
        category: str | None = None,
        start_time: int | None = None,
        end_time: int | None = None,
    ) -> Any:
        """자산 분배 내역 조회"""
        return await self.call(
            "GET",
            "/sapi/v1/asset/assetDistributionHistory",
            params={
                "limit": limit,
                "asset": asset,
                "category": category,
                "startTime": start_time,
                "endTime": end_time,
            },
            signed=True,
        )
    
    async def get_trade_fee(self, symbol: str | None = None) -> Any:
        """거래 수수료 조회"""
        return await self.call(
            "GET",
            "/sapi/v1/asset/query/trading-fee",
            params={"symbol": symbol},
            signed=True,
        )
    
    async def get_past_month_trade_volume(self) -> Any:
        """최근 30일 거래량 조회"""
        return await self.call(
            "GET",
            "/sapi/v1/asset/query/trading-volume",
            signed=True,
        )
    
    async def get_order_rate_limits(self) -> Any:
        """주문 Rate Limit 현황 조회"""
        return await self.call("GET", "/api/v3/rateLimit/order", signed=True)
    
    # -------------------------------------------------------------------------
    # 주문
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
    ) -> Any:
        """주문 생성"""
        response = await self.call(
            "POST",
            "/api/v3/order",
            params={
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
        logger.info(
            "Order placed",
            extra={"symbol": symbol, "side": side, "type": type},
        )
        return response
    
    async def get_order_status(
        self,
        symbol: str,
        order_id: int | None = None,
        orig_client_order_id: str | None = None,
    ) -> Any:
        """주문 조회"""
        return await self.call(
            "GET",
            "/api/v3/order",
            params={
                "symbol": symbol,
                "orderId": order_id,
                "origClientOrderId": orig_client_order_id,
            },
            signed=True,
        )
    
    async def get_open_orders(self, symbol: str | None = None) -> Any:
        """오픈 주문 목록 조회"""
        return await self.call(
            "GET",
            "/api/v3/openOrders",
            params={"symbol": symbol},
            signed=True,
        )
    
    async def cancel_order(
        self,
        symbol: str,
        order_id: int | None = None,
        orig_client_order_id: str | None = None,
        new_client_order_id: str | None = None,
        cancel_restrictions: str | None = None,
    ) -> Any:
        """주문 취소"""
        response = await self.call(
            "DELETE",
            "/api/v3/order",
            params={
                "symbol": symbol,
                "orderId": order_id,
                "origClientOrderId": orig_client_order_id,
                "newClientOrderId": new_client_order_id,
                "cancelRestrictions": cancel_restrictions,
            },
            signed=True,
        )
        logger.info(
            "Order canceled",
            extra={"symbol": symbol, "order_id": order_id},
        )
        return response
    
    async def cancel_open_orders(self, symbol: str) -> Any:
        """심볼의 모든 오픈 주문 취소"""
        return await self.call(
            "DELETE",
            "/api/v3/openOrders",
            params={"symbol": symbol},
            signed=True,
        )
    
    async def get_trades(
        self,
        symbol: str,
        limit: int = 500,
        order_id: int | None = None,
        from_id: int | None = None,
        start_time: int | None = None,
        end_time: int | None = None,
    ) -> Any:
        """내 체결 내역 조회"""
        return await self.call(
            "GET",
            "/api/v3/myTrades",
            params={
                "symbol": symbol,
                "limit": limit,
                "orderId": order_id,
                "fromId": from_id,
                "startTime": start_time,
                "endTime": end_time,
            },
            signed=True,
        )
    
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
    ) -> Any:
        """주문 취소 후 재주문 (cancelReplace)"""
        return await self.call(
            "POST",
            "/api/v3/order/cancelReplace",
            params={
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
    ) -> Any:
        """Self-Trade Prevention 매칭 조회"""
        return await self.call(
            "GET",
            "/api/v3/myPreventedMatches",
            params={
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
    ) -> Any:
        """전체 주문 내역 조회"""
        return await self.call(
            "GET",
            "/api/v3/allOrders",
            params={
                "symbol": symbol,
                "limit": limit,
                "orderId": order_id,
                "startTime": start_time,
                "endTime": end_time,
            },
            signed=True,
        )
    
    # -------------------------------------------------------------------------
    # 컨텍스트 매니저
    # -------------------------------------------------------------------------
    
    async def __aenter__(self) -> "BinanceUsRestClient":
        return self
    
    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
