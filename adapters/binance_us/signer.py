"""
Binance.US 요청 서명

HMAC-SHA256 서명. 정규화 규칙:
- 값이 None인 키 제거
- 남은 키를 사전순 정렬 후 URL 인코딩
- signature = hex(HMAC_SHA256(secret, query_string))

REST / WebSocket API 공용. I/O 없는 순수 함수 계열.
"""

import hashlib
import hmac
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping
from urllib.parse import urlencode


def _stringify(value: Any) -> str:
    """파라미터 값을 쿼리 문자열 표현으로 변환"""
    if isinstance(value, bool):
        # 거래소는 소문자 true/false 기대
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def canonicalize(params: Mapping[str, Any] | None) -> dict[str, str]:
    """None 값 제거 + 키 정렬 + 문자열 변환
    
    Args:
        params: 원본 파라미터
        
    Returns:
        정렬된 파라미터 (삽입 순서 = 키 사전순)
    """
    if not params:
        return {}
    
    return {
        key: _stringify(params[key])
        for key in sorted(params)
        if params[key] is not None
    }


def build_query_string(params: Mapping[str, Any] | None) -> str:
    """정규화된 쿼리 문자열 생성
    
    Args:
        params: 원본 파라미터
        
    Returns:
        URL 인코딩된 쿼리 문자열 (빈 파라미터면 빈 문자열)
    """
    return urlencode(canonicalize(params))


class Signer:
    """HMAC-SHA256 요청 서명기
    
    secret만 보유하는 무상태 객체. 여러 연결에서 공유해도 안전.
    
    Args:
        api_secret: API 시크릿 (HMAC 키)
    """
    
    def __init__(self, api_secret: str):
        self._secret = api_secret.encode("utf-8")
    
    def generate_signature(self, query_string: str) -> str:
        """HMAC-SHA256 서명 생성
        
        Args:
            query_string: URL 인코딩된 파라미터 문자열
            
        Returns:
            16진수 서명 문자열 (64자)
        """
        return hmac.new(
            self._secret,
            query_string.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
    
    def sign(self, params: Mapping[str, Any] | None = None) -> dict[str, str]:
        """파라미터 서명
        
        timestamp/recvWindow 주입은 호출자 책임 (서명 대상에 포함되어야 함).
        
        Args:
            params: 서명할 파라미터
            
        Returns:
            정렬된 파라미터 + 마지막에 signature 추가된 dict
        """
        query = canonicalize(params)
        query["signature"] = self.generate_signature(urlencode(query))
        return query
    
    def sign_query_string(self, params: Mapping[str, Any] | None = None) -> str:
        """서명이 포함된 쿼리 문자열 반환 (REST 전송용)"""
        return urlencode(self.sign(params))
