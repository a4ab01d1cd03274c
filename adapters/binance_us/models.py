"""
Binance.US 요청/응답 페이로드 헬퍼

- 심볼 파라미터 형태 결정 (symbol vs symbols)
- 숫자 문자열 → Decimal 변환 (정밀도 유지)
"""

import json
import re
from decimal import Decimal
from typing import Any, Sequence


# 거래소는 가격/수량을 10진 문자열로 전달 (부동소수점 손실 방지)
_DECIMAL_PATTERN = re.compile(r"-?\d+(\.\d+)?")

# 숫자처럼 보여도 식별자/심볼이므로 변환하지 않는 필드
NON_NUMERIC_FIELDS = frozenset({
    "symbol",
    "s",
    "clientOrderId",
    "origClientOrderId",
    "newClientOrderId",
    "listClientOrderId",
    "c",
    "C",
    "listenKey",
    "asset",
    "N",
})


def symbol_params(symbols: str | Sequence[str] | None) -> dict[str, str]:
    """심볼 인자 형태에 따른 파라미터 생성
    
    단일 문자열이면 symbol, 리스트면 JSON 배열 문자열의 symbols.
    두 키는 동시에 설정되지 않음.
    
    Args:
        symbols: "BTCUSD" 또는 ["BTCUSD", "ETHUSD"] 또는 None
        
    Returns:
        {"symbol": ...} / {"symbols": '["BTCUSD","ETHUSD"]'} / {}
    """
    if not symbols:
        return {}
    if isinstance(symbols, str):
        return {"symbol": symbols}
    return {"symbols": json.dumps(list(symbols), separators=(",", ":"))}


def is_decimal_string(value: Any) -> bool:
    """10진 숫자 문자열 여부"""
    return isinstance(value, str) and bool(_DECIMAL_PATTERN.fullmatch(value))


def parse_numbers(data: Any) -> Any:
    """숫자 문자열을 Decimal로 변환 (재귀)
    
    dict/list 구조를 새로 만들어 반환 (원본 불변).
    NON_NUMERIC_FIELDS 키의 값과 숫자가 아닌 문자열은 그대로 둠.
    
    예:
        {"p": "0.00012345", "s": "BTCUSD", "bids": [["100.1", "2"]]}
        → {"p": Decimal("0.00012345"), "s": "BTCUSD",
           "bids": [[Decimal("100.1"), Decimal("2")]]}
    """
    if isinstance(data, dict):
        return {
            key: value if key in NON_NUMERIC_FIELDS else parse_numbers(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [parse_numbers(item) for item in data]
    if is_decimal_string(data):
        return Decimal(data)
    return data
