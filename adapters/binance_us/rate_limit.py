"""
Binance.US Rate Limit 추적

응답 헤더에서 사용량 정보를 기록.
요청 제한은 하지 않음 (거래소 자체 제한만 적용, 초과 시 429 응답).
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping


def parse_int_header(value: Any) -> int | None:
    """정수 헤더 값 파싱 (없거나 정수가 아니면 None)"""
    if value is None:
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


@dataclass
class RateLimitTracker:
    """Rate Limit 사용량 기록기
    
    Binance.US 응답 헤더:
    - X-MBX-USED-WEIGHT-1M: 1분간 사용된 요청 가중치
    - X-MBX-ORDER-COUNT-10S: 10초간 주문 수
    - X-MBX-ORDER-COUNT-1D: 1일간 주문 수
    - Retry-After: 429/418 응답 시 대기 시간 (초)
    """
    
    used_weight_1m: int = 0
    order_count_10s: int = 0
    order_count_1d: int = 0
    retry_after: int = 0
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    
    def update_from_headers(self, headers: Mapping[str, Any]) -> None:
        """응답 헤더에서 사용량 정보 업데이트
        
        Args:
            headers: HTTP 응답 헤더 (대소문자 무관)
        """
        headers_lower = {k.lower(): v for k, v in headers.items()}
        
        weight = parse_int_header(headers_lower.get("x-mbx-used-weight-1m"))
        if weight is not None:
            self.used_weight_1m = weight
        
        order_count_10s = parse_int_header(headers_lower.get("x-mbx-order-count-10s"))
        if order_count_10s is not None:
            self.order_count_10s = order_count_10s
        
        order_count_1d = parse_int_header(headers_lower.get("x-mbx-order-count-1d"))
        if order_count_1d is not None:
            self.order_count_1d = order_count_1d
        
        retry_after = parse_int_header(headers_lower.get("retry-after"))
        if retry_after is not None:
            self.retry_after = retry_after
        
        self.last_updated = datetime.now(timezone.utc)
    
    def reset(self) -> None:
        """카운터 리셋"""
        self.used_weight_1m = 0
        self.order_count_10s = 0
        self.order_count_1d = 0
        self.retry_after = 0
        self.last_updated = datetime.now(timezone.utc)
    
    def to_dict(self) -> dict[str, Any]:
        """딕셔너리로 변환 (로깅용)"""
        return {
            "used_weight_1m": self.used_weight_1m,
            "order_count_10s": self.order_count_10s,
            "order_count_1d": self.order_count_1d,
            "retry_after": self.retry_after,
            "last_updated": self.last_updated.isoformat(),
        }
