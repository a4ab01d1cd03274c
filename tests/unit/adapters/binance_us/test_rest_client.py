"""
Binance.US REST 클라이언트 테스트

BinanceUsRestClient HTTP 요청 테스트 (httpx mock 사용).
"""

import hashlib
import hmac
from decimal import Decimal
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock, patch
from urllib.parse import parse_qsl, urlsplit

import httpx
import pytest

from adapters.binance_us.errors import (
    ExchangeError,
    RateLimitError,
    TransportError,
)
from adapters.binance_us.rest_client import BinanceUsRestClient
from core.config.loader import Credentials


FIXED_TIMESTAMP = 1700000000000


def _make_client(**kwargs: Any) -> BinanceUsRestClient:
    return BinanceUsRestClient(
        api_key="test_key",
        api_secret="test_secret",
        base_url="https://api.binance.us",
        **kwargs,
    )


def _mock_http(client: BinanceUsRestClient, response: MagicMock) -> Any:
    """client._get_client 패치 컨텍스트 + 모킹된 http 클라이언트"""
    mock_http_client = AsyncMock()
    mock_http_client.request.return_value = response
    patcher = patch.object(client, "_get_client", AsyncMock(return_value=mock_http_client))
    return patcher, mock_http_client


class TestBinanceUsRestClientConstruction:
    """생성 테스트"""
    
    def test_from_credentials(self) -> None:
        """Credentials로 생성"""
        client = BinanceUsRestClient.from_credentials(
            Credentials(api_key="k", api_secret="s"),
            recv_window=5000,
        )
        
        assert client.api_key == "k"
        assert client.recv_window == 5000
    
    def test_defaults(self) -> None:
        """기본값"""
        client = BinanceUsRestClient(api_key="k", api_secret="s")
        
        assert client.base_url == "https://api.binance.us"
        assert client.recv_window == 2000
        assert client.coerce_numbers is False


class TestBinanceUsRestClientUnsigned:
    """비서명 요청 테스트"""
    
    @pytest.mark.asyncio
    async def test_unsigned_params_passed_as_is(
        self,
        mock_http_response: Callable[..., MagicMock],
    ) -> None:
        """파라미터 그대로 전달, None 제외, API 키 헤더 없음"""
        client = _make_client()
        patcher, mock_http_client = _mock_http(client, mock_http_response(json_data=[]))
        
        with patcher:
            await client.get_aggregate_trades("BTCUSD", limit=10)
        
        args, kwargs = mock_http_client.request.call_args
        assert args == ("GET", "https://api.binance.us/api/v3/aggTrades")
        assert kwargs["params"] == {"symbol": "BTCUSD", "limit": 10}
        assert "X-MBX-APIKEY" not in kwargs["headers"]
    
    @pytest.mark.asyncio
    async def test_single_symbol_sets_symbol(
        self,
        mock_http_response: Callable[..., MagicMock],
    ) -> None:
        """문자열 심볼 → symbol 파라미터"""
        client = _make_client()
        patcher, mock_http_client = _mock_http(client, mock_http_response(json_data={}))
        
        with patcher:
            await client.get_exchange_information("BTCUSD")
        
        params = mock_http_client.request.call_args.kwargs["params"]
        assert params == {"symbol": "BTCUSD"}
    
    @pytest.mark.asyncio
    async def test_symbol_list_sets_symbols(
        self,
        mock_http_response: Callable[..., MagicMock],
    ) -> None:
        """심볼 리스트 → JSON 배열 symbols 파라미터"""
        client = _make_client()
        patcher, mock_http_client = _mock_http(client, mock_http_response(json_data={}))
        
        with patcher:
            await client.get_exchange_information(["BTCUSD", "ETHUSD"])
        
        params = mock_http_client.request.call_args.kwargs["params"]
        assert params == {"symbols": '["BTCUSD","ETHUSD"]'}
        assert "symbol" not in params
    
    @pytest.mark.asyncio
    async def test_rolling_window_defaults(
        self,
        mock_http_response: Callable[..., MagicMock],
    ) -> None:
        """롤링 윈도우 기본값"""
        client = _make_client()
        patcher, mock_http_client = _mock_http(client, mock_http_response(json_data={}))
        
        with patcher:
            await client.get_rolling_window_price_change_statistics("BTCUSD")
        
        params = mock_http_client.request.call_args.kwargs["params"]
        assert params == {"windowSize": "1d", "type": "FULL", "symbol": "BTCUSD"}
    
    @pytest.mark.asyncio
    async def test_historical_trades_sends_api_key_header(
        self,
        mock_http_response: Callable[..., MagicMock],
    ) -> None:
        """과거 체결 조회는 API 키 헤더만 (서명 없음)"""
        client = _make_client()
        patcher, mock_http_client = _mock_http(client, mock_http_response(json_data=[]))
        
        with patcher:
            await client.get_historical_trades("BTCUSD")
        
        args, kwargs = mock_http_client.request.call_args
        assert kwargs["headers"] == {"X-MBX-APIKEY": "test_key"}
        assert kwargs["params"] == {"symbol": "BTCUSD", "limit": 500}
        assert "signature" not in args[1]


class TestBinanceUsRestClientSigned:
    """서명 요청 테스트"""
    
    @pytest.mark.asyncio
    async def test_signed_request_query(
        self,
        mock_http_response: Callable[..., MagicMock],
    ) -> None:
        """timestamp/recvWindow 주입, 정렬된 쿼리 + signature"""
        client = _make_client()
        patcher, mock_http_client = _mock_http(client, mock_http_response(json_data=[]))
        
        with patcher, patch.object(client, "_get_timestamp", return_value=FIXED_TIMESTAMP):
            await client.get_open_orders("BTCUSD")
        
        args, kwargs = mock_http_client.request.call_args
        method, url = args
        parts = urlsplit(url)
        query = parts.query
        
        assert method == "GET"
        assert parts.path == "/api/v3/openOrders"
        assert kwargs["params"] is None
        
        unsigned_query, signature = query.rsplit("&signature=", 1)
        assert unsigned_query == f"recvWindow=2000&symbol=BTCUSD&timestamp={FIXED_TIMESTAMP}"
        assert signature == hmac.new(
            b"test_secret",
            unsigned_query.encode(),
            hashlib.sha256,
        ).hexdigest()
    
    @pytest.mark.asyncio
    async def test_api_key_in_header_not_query(
        self,
        mock_http_response: Callable[..., MagicMock],
    ) -> None:
        """API 키는 헤더로만 전송"""
        client = _make_client()
        patcher, mock_http_client = _mock_http(client, mock_http_response(json_data={}))
        
        with patcher:
            await client.get_user_account_information()
        
        args, kwargs = mock_http_client.request.call_args
        query_keys = [key for key, _ in parse_qsl(urlsplit(args[1]).query)]
        
        assert kwargs["headers"] == {"X-MBX-APIKEY": "test_key"}
        assert "apiKey" not in query_keys
        assert "test_key" not in args[1]
    
    @pytest.mark.asyncio
    async def test_create_order_drops_unset_params(
        self,
        mock_http_response: Callable[..., MagicMock],
    ) -> None:
        """주문 생성 - None 파라미터 제외, 기본 type/timeInForce"""
        client = _make_client()
        patcher, mock_http_client = _mock_http(
            client,
            mock_http_response(json_data={"orderId": 1, "status": "NEW"}),
        )
        
        with patcher:
            result = await client.create_order(
                "BTCUSD",
                "BUY",
                price="25000.00",
                quantity="0.001",
            )
        
        args, _ = mock_http_client.request.call_args
        query = dict(parse_qsl(urlsplit(args[1]).query))
        
        assert args[0] == "POST"
        assert query["type"] == "LIMIT"
        assert query["timeInForce"] == "GTC"
        assert query["price"] == "25000.00"
        assert "quoteOrderQty" not in query
        assert "icebergQty" not in query
        assert "signature" in query
        assert result == {"orderId": 1, "status": "NEW"}
    
    @pytest.mark.asyncio
    async def test_cancel_order_by_client_order_id(
        self,
        mock_http_response: Callable[..., MagicMock],
    ) -> None:
        """주문 취소 - origClientOrderId 전달"""
        client = _make_client()
        patcher, mock_http_client = _mock_http(client, mock_http_response(json_data={}))
        
        with patcher:
            await client.cancel_order("BTCUSD", orig_client_order_id="my-order-1")
        
        args, _ = mock_http_client.request.call_args
        query = dict(parse_qsl(urlsplit(args[1]).query))
        
        assert args[0] == "DELETE"
        assert query["origClientOrderId"] == "my-order-1"
        assert "orderId" not in query


class TestBinanceUsRestClientListenKey:
    """listenKey 관리 테스트"""
    
    @pytest.mark.asyncio
    async def test_create_listen_key(
        self,
        mock_http_response: Callable[..., MagicMock],
    ) -> None:
        """listenKey 생성 (POST, API 키 헤더)"""
        client = _make_client()
        patcher, mock_http_client = _mock_http(
            client,
            mock_http_response(json_data={"listenKey": "test_listen_key_12345"}),
        )
        
        with patcher:
            listen_key = await client.create_listen_key()
        
        args, kwargs = mock_http_client.request.call_args
        assert listen_key == "test_listen_key_12345"
        assert args == ("POST", "https://api.binance.us/api/v3/userDataStream")
        assert kwargs["headers"] == {"X-MBX-APIKEY": "test_key"}
    
    @pytest.mark.asyncio
    async def test_extend_listen_key(
        self,
        mock_http_response: Callable[..., MagicMock],
    ) -> None:
        """listenKey 갱신 (PUT)"""
        client = _make_client()
        patcher, mock_http_client = _mock_http(client, mock_http_response(json_data={}))
        
        with patcher:
            await client.extend_listen_key("abc")
        
        args, kwargs = mock_http_client.request.call_args
        assert args[0] == "PUT"
        assert kwargs["params"] == {"listenKey": "abc"}
    
    @pytest.mark.asyncio
    async def test_delete_listen_key(
        self,
        mock_http_response: Callable[..., MagicMock],
    ) -> None:
        """listenKey 삭제 (DELETE)"""
        client = _make_client()
        patcher, mock_http_client = _mock_http(client, mock_http_response(json_data={}))
        
        with patcher:
            await client.delete_listen_key("abc")
        
        args, _ = mock_http_client.request.call_args
        assert args[0] == "DELETE"


class TestBinanceUsRestClientErrors:
    """에러 처리 테스트"""
    
    @pytest.mark.asyncio
    async def test_exchange_error(
        self,
        mock_http_response: Callable[..., MagicMock],
    ) -> None:
        """거래소 에러 응답 → ExchangeError (상태/코드/본문 포함)"""
        client = _make_client()
        body = {"code": -1121, "msg": "Invalid symbol."}
        patcher, _ = _mock_http(client, mock_http_response(status_code=400, json_data=body))
        
        with patcher:
            with pytest.raises(ExchangeError) as exc_info:
                await client.get_average_price("NOPE")
        
        assert exc_info.value.status_code == 400
        assert exc_info.value.code == -1121
        assert exc_info.value.message == "Invalid symbol."
        assert exc_info.value.body == body
    
    @pytest.mark.asyncio
    async def test_rate_limit_no_retry(
        self,
        mock_http_response: Callable[..., MagicMock],
    ) -> None:
        """429 → RateLimitError, 재시도 없음"""
        client = _make_client()
        response = mock_http_response(
            status_code=429,
            json_data={"code": -1003, "msg": "Too many requests."},
            headers={"Retry-After": "30"},
        )
        patcher, mock_http_client = _mock_http(client, response)
        
        with patcher:
            with pytest.raises(RateLimitError) as exc_info:
                await client.get_server_time()
        
        assert exc_info.value.retry_after == 30
        assert exc_info.value.status_code == 429
        assert mock_http_client.request.await_count == 1
    
    @pytest.mark.asyncio
    async def test_non_json_error_body(
        self,
        mock_http_response: Callable[..., MagicMock],
    ) -> None:
        """JSON이 아닌 에러 본문"""
        client = _make_client()
        response = mock_http_response(status_code=502, text="Bad Gateway")
        response.json.side_effect = ValueError("not json")
        patcher, _ = _mock_http(client, response)
        
        with patcher:
            with pytest.raises(ExchangeError) as exc_info:
                await client.get_server_time()
        
        assert exc_info.value.status_code == 502
        assert exc_info.value.code is None
        assert exc_info.value.body == "Bad Gateway"
    
    @pytest.mark.asyncio
    async def test_non_json_success_body(
        self,
        mock_http_response: Callable[..., MagicMock],
    ) -> None:
        """2xx인데 JSON이 아닌 본문 → ExchangeError (JSONDecodeError 노출 안 함)"""
        client = _make_client()
        html = "<html><body>maintenance</body></html>"
        response = mock_http_response(status_code=200, text=html)
        response.json.side_effect = ValueError("Expecting value")
        patcher, _ = _mock_http(client, response)
        
        with patcher:
            with pytest.raises(ExchangeError) as exc_info:
                await client.get_server_time()
        
        assert exc_info.value.status_code == 200
        assert exc_info.value.body == html
        assert isinstance(exc_info.value.__cause__, ValueError)
    
    @pytest.mark.asyncio
    async def test_rate_limit_http_date_retry_after(
        self,
        mock_http_response: Callable[..., MagicMock],
    ) -> None:
        """Retry-After가 HTTP 날짜 형식 → RateLimitError, retry_after=0"""
        client = _make_client()
        response = mock_http_response(
            status_code=429,
            json_data={"code": -1003, "msg": "Too many requests."},
            headers={"Retry-After": "Wed, 21 Oct 2026 07:28:00 GMT"},
        )
        patcher, _ = _mock_http(client, response)
        
        with patcher:
            with pytest.raises(RateLimitError) as exc_info:
                await client.get_server_time()
        
        assert exc_info.value.retry_after == 0
        assert exc_info.value.status_code == 429
    
    @pytest.mark.asyncio
    async def test_transport_error(self) -> None:
        """연결 실패 → TransportError"""
        client = _make_client()
        mock_http_client = AsyncMock()
        mock_http_client.request.side_effect = httpx.ConnectError("connection refused")
        
        with patch.object(client, "_get_client", AsyncMock(return_value=mock_http_client)):
            with pytest.raises(TransportError) as exc_info:
                await client.get_server_time()
        
        assert exc_info.value.status_code is None
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
        assert mock_http_client.request.await_count == 1
    
    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        """타임아웃 → TransportError"""
        client = _make_client()
        mock_http_client = AsyncMock()
        mock_http_client.request.side_effect = httpx.ReadTimeout("timed out")
        
        with patch.object(client, "_get_client", AsyncMock(return_value=mock_http_client)):
            with pytest.raises(TransportError):
                await client.get_server_time()


class TestBinanceUsRestClientResponse:
    """응답 처리 테스트"""
    
    @pytest.mark.asyncio
    async def test_rate_headers_tracked(
        self,
        mock_http_response: Callable[..., MagicMock],
    ) -> None:
        """Rate Limit 헤더 기록"""
        client = _make_client()
        response = mock_http_response(
            json_data={"serverTime": 1},
            headers={"X-MBX-USED-WEIGHT-1M": "7"},
        )
        patcher, _ = _mock_http(client, response)
        
        with patcher:
            await client.get_server_time()
        
        assert client.rate_tracker.used_weight_1m == 7
    
    @pytest.mark.asyncio
    async def test_coerce_numbers(
        self,
        mock_http_response: Callable[..., MagicMock],
    ) -> None:
        """coerce_numbers=True면 숫자 문자열 → Decimal"""
        client = _make_client(coerce_numbers=True)
        patcher, _ = _mock_http(
            client,
            mock_http_response(json_data={"mins": 5, "price": "25000.12345678"}),
        )
        
        with patcher:
            result = await client.get_average_price("BTCUSD")
        
        assert result["price"] == Decimal("25000.12345678")
    
    @pytest.mark.asyncio
    async def test_raw_strings_by_default(
        self,
        mock_http_response: Callable[..., MagicMock],
    ) -> None:
        """기본은 원본 문자열 유지"""
        client = _make_client()
        patcher, _ = _mock_http(client, mock_http_response(json_data={"price": "1.00"}))
        
        with patcher:
            result = await client.get_average_price("BTCUSD")
        
        assert result == {"price": "1.00"}
    
    @pytest.mark.asyncio
    async def test_context_manager_closes(self) -> None:
        """async with 종료 시 HTTP 클라이언트 종료"""
        client = _make_client()
        http_client = await client._get_client()
        
        async with client:
            pass
        
        assert http_client.is_closed
        assert client._client is None
