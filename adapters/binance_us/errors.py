"""
Binance.US 클라이언트 에러

- TransportError: HTTP/소켓 연결 실패
- ExchangeError: 거래소가 거절한 요청 (잘못된 서명, 심볼 오류, Rate Limit 등)
- ProtocolError: 파싱 불가능한 소켓 메시지

라이브러리는 재시도/백오프를 하지 않음. 재시도 정책은 호출자 책임.
"""

from typing import Any


class BinanceUsError(Exception):
    """Binance.US 클라이언트 에러 베이스"""
    pass


class HttpError(BinanceUsError):
    """REST 호출 실패
    
    2xx가 아닌 응답 또는 전송 실패 시 발생.
    
    Args:
        status_code: HTTP 상태 코드 (전송 실패 시 None)
        message: 에러 메시지
        code: 거래소 에러 코드 (예: -1121)
        body: 거래소가 반환한 에러 본문
    """
    
    def __init__(
        self,
        status_code: int | None,
        message: str,
        code: int | None = None,
        body: Any = None,
    ):
        self.status_code = status_code
        self.message = message
        self.code = code
        self.body = body
        super().__init__(self._format())
    
    def _format(self) -> str:
        if self.code is not None:
            return f"HTTP {self.status_code} [{self.code}]: {self.message}"
        return f"HTTP {self.status_code}: {self.message}"


class TransportError(HttpError):
    """연결/타임아웃 등 전송 계층 실패"""
    
    def __init__(self, message: str):
        super().__init__(status_code=None, message=message)
    
    def _format(self) -> str:
        return f"Transport error: {self.message}"


class ExchangeError(HttpError):
    """거래소 비즈니스 에러 (응답 본문 {code, msg})"""
    pass


class RateLimitError(ExchangeError):
    """Rate Limit 초과 에러
    
    429(초과) / 418(IP 차단) 응답 수신 시 발생.
    retry_after 초 후 재시도 필요 (자동 재시도 없음).
    """
    
    def __init__(
        self,
        status_code: int,
        retry_after: int,
        message: str = "Rate limit exceeded",
        code: int | None = None,
        body: Any = None,
    ):
        self.retry_after = retry_after
        super().__init__(status_code, message, code=code, body=body)
    
    def _format(self) -> str:
        return f"{super()._format()}. Retry after {self.retry_after} seconds."


class ProtocolError(BinanceUsError):
    """수신 소켓 메시지 파싱 실패"""
    pass


class NotConnectedError(BinanceUsError):
    """OPEN 상태가 아닌 소켓으로 전송 시도"""
    pass
