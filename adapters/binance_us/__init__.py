"""
Binance.US 어댑터

REST API, WebSocket API(요청/응답), 데이터 스트림(마켓 + User Data) 지원.
"""

from adapters.binance_us.errors import (
    BinanceUsError,
    HttpError,
    TransportError,
    ExchangeError,
    RateLimitError,
    ProtocolError,
    NotConnectedError,
)
from adapters.binance_us.events import EventBus
from adapters.binance_us.models import parse_numbers, symbol_params
from adapters.binance_us.rate_limit import RateLimitTracker
from adapters.binance_us.rest_client import BinanceUsRestClient
from adapters.binance_us.signer import Signer
from adapters.binance_us.stream_client import BinanceUsStreamClient, classify_message
from adapters.binance_us.ws_api_client import BinanceUsWsApiClient

__all__ = [
    # Clients
    "BinanceUsRestClient",
    "BinanceUsWsApiClient",
    "BinanceUsStreamClient",
    # Core
    "Signer",
    "EventBus",
    "RateLimitTracker",
    "classify_message",
    "parse_numbers",
    "symbol_params",
    # Errors
    "BinanceUsError",
    "HttpError",
    "TransportError",
    "ExchangeError",
    "RateLimitError",
    "ProtocolError",
    "NotConnectedError",
]
