"""
하드코딩 상수 - 변경될 일이 거의 없는 고정값

중요: 경로는 반드시 pathlib.Path 사용 (Windows/Linux 크로스 플랫폼)
"""

from pathlib import Path


# 프로젝트 루트 (이 파일 기준 2단계 상위: core/constants.py → 저장소 루트)
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent


class BinanceUsEndpoints:
    """Binance.US 엔드포인트 (고정값)
    
    공식 문서: https://docs.binance.us/
    """

    REST_URL: str = "https://api.binance.us"
    WS_API_URL: str = "wss://ws-api.binance.us:443/ws-api/v3"
    STREAM_URL: str = "wss://stream.binance.us:9443/ws"

    USER_DATA_STREAM_PATH: str = "/api/v3/userDataStream"


class Intervals:
    """주기/타임아웃 상수"""

    PING_INTERVAL_SEC: float = 3 * 60  # WS API ping (유휴 소켓 끊김 방지)
    LISTEN_KEY_KEEPALIVE_SEC: float = 30 * 60  # listenKey 갱신 주기
    RECV_WINDOW_MS: int = 2000
    REQUEST_TIMEOUT_SEC: float = 30.0
    WS_RESPONSE_TIMEOUT_SEC: float = 10.0


class Paths:
    """프로젝트 경로 상수 (pathlib 사용 - OS 독립적)"""

    CONFIG_DIR: Path = PROJECT_ROOT / "config"
    LOGS_DIR: Path = PROJECT_ROOT / "logs"

    SECRETS_FILE: Path = CONFIG_DIR / "secrets.yaml"
