#!/usr/bin/env python3
"""
데이터 스트림 데모 스크립트

흐름:
1. secrets.yaml 로드
2. 로깅 설정 (콘솔 + logs/stream_demo.log)
3. REST로 listenKey 발급 후 데이터 스트림 연결
4. 체결/주문 업데이트 이벤트 출력
5. Ctrl+C 또는 --duration 경과 시 종료 (listenKey 삭제)

사용법:
    python scripts/stream_demo.py --symbol BTCUSD --stream trade --duration 60
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Any

# 프로젝트 루트를 Python 경로에 추가
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from adapters.binance_us.errors import BinanceUsError
from adapters.binance_us.rest_client import BinanceUsRestClient
from adapters.binance_us.stream_client import BinanceUsStreamClient
from core.config.loader import SecretsLoadError, get_settings
from core.logging import setup_logging
from core.types import ConnectionState, OrderSide, OrderStatus

logger = logging.getLogger(__name__)


# 출력할 주문 업데이트 이벤트 (BID_FILLED, ASK_CANCELED 등)
ORDER_EVENTS = [
    f"{prefix}{status.value}"
    for prefix in ("BID_", "ASK_")
    for status in OrderStatus
]


def event_name_for(stream: str) -> str:
    """구독 스트림 → 발행되는 이벤트 이름

    예: trade → trade, kline_1m → kline, depth5@100ms → depth, depth@100ms → depthUpdate
    """
    base = stream.split("@")[0]
    if base.startswith("depth"):
        return "depth" if base[len("depth"):].isdigit() else "depthUpdate"
    return base.split("_")[0]


def print_event(name: str, payload: dict[str, Any]) -> None:
    """이벤트 한 줄 출력"""
    if name.startswith(("BID_", "ASK_")):
        side = OrderSide.BUY if name.startswith("BID_") else OrderSide.SELL
        logger.info(
            f"[{name}] {side.value} {payload.get('s')} "
            f"price={payload.get('p')} qty={payload.get('q')} order_id={payload.get('i')}"
        )
    else:
        logger.info(f"[{name}] {payload}")


async def on_state_change(state: ConnectionState) -> None:
    logger.info(f"스트림 상태: {state.value}")


async def main() -> int:
    """메인 함수

    Returns:
        종료 코드 (0: 성공, 1: 실패)
    """
    parser = argparse.ArgumentParser(description="Binance.US 데이터 스트림 데모")
    parser.add_argument("--symbol", default="BTCUSD", help="거래 심볼")
    parser.add_argument(
        "--stream",
        action="append",
        help="구독할 스트림 (반복 가능, 기본: trade)",
    )
    parser.add_argument(
        "--duration",
        type=float,
        default=0,
        help="실행 시간 (초, 0이면 Ctrl+C까지)",
    )
    parser.add_argument("--decimal", action="store_true", help="숫자 문자열을 Decimal로 변환")
    args = parser.parse_args()

    setup_logging("stream_demo")

    try:
        settings = get_settings()
    except SecretsLoadError as e:
        logger.error(f"설정 로드 실패: {e}")
        return 1

    streams = args.stream or ["trade"]
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows: KeyboardInterrupt로 종료
            pass

    async with BinanceUsRestClient.from_credentials(settings.credentials) as rest_client:
        stream = BinanceUsStreamClient(
            args.symbol,
            rest_client,
            coerce_numbers=args.decimal,
            on_state_change=on_state_change,
        )

        for name in streams:
            event_name = event_name_for(name)
            stream.events.on(event_name, lambda payload, n=event_name: print_event(n, payload))
        for name in ORDER_EVENTS:
            stream.events.on(name, lambda payload, n=name: print_event(n, payload))

        try:
            await stream.connect()
            for name in streams:
                await stream.subscribe(name)

            if args.duration > 0:
                try:
                    await asyncio.wait_for(stop_event.wait(), args.duration)
                except asyncio.TimeoutError:
                    logger.info("실행 시간 경과")
            else:
                await stop_event.wait()
        except BinanceUsError as e:
            logger.error(f"스트림 실패: {e}")
            return 1
        finally:
            await stream.close()

    logger.info("종료")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
