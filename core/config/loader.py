"""
설정 로더

secrets.yaml 로드 및 API 자격 증명 생성
"""

from dataclasses import dataclass
from pathlib import Path

import yaml

from core.constants import Paths


@dataclass(frozen=True)
class Credentials:
    """API 자격 증명 (secrets.yaml에서 로드)

    불변 데이터 구조로 설정 변경 방지.
    클라이언트 인스턴스가 생명주기 동안 읽기 전용으로 보유.
    """

    api_key: str
    api_secret: str

    def __repr__(self) -> str:
        # secret이 로그/트레이스백에 노출되지 않도록 마스킹
        return f"Credentials(api_key='{self.api_key[:4]}***', api_secret='***')"


class SecretsLoadError(Exception):
    """Secrets 로드 실패 예외"""

    pass


def load_credentials(path: Path | None = None) -> Credentials:
    """secrets.yaml 파일에서 자격 증명 로드

    파일 형식:
        api_key: "..."
        api_secret: "..."

    Args:
        path: secrets.yaml 경로 (None이면 기본 경로 사용)

    Returns:
        Credentials 인스턴스

    Raises:
        SecretsLoadError: 파일이 없거나 형식이 잘못된 경우
    """
    if path is None:
        path = Paths.SECRETS_FILE

    if not path.exists():
        raise SecretsLoadError(f"secrets.yaml 파일을 찾을 수 없습니다: {path}")

    try:
        content = path.read_text(encoding="utf-8")
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SecretsLoadError(f"secrets.yaml 파싱 실패: {e}") from e

    if data is None:
        raise SecretsLoadError("secrets.yaml이 비어 있습니다")

    if not isinstance(data, dict):
        raise SecretsLoadError("secrets.yaml 최상위는 매핑이어야 합니다")

    api_key = data.get("api_key")
    api_secret = data.get("api_secret")

    if not api_key:
        raise SecretsLoadError("secrets.yaml에 'api_key'가 없습니다")
    if not api_secret:
        raise SecretsLoadError("secrets.yaml에 'api_secret'가 없습니다")

    return Credentials(api_key=str(api_key), api_secret=str(api_secret))


class Settings:
    """애플리케이션 설정 (싱글턴 패턴)

    secrets.yaml을 로드하고 자격 증명을 제공
    """

    _instance: "Settings | None" = None
    _credentials: Credentials | None = None

    def __new__(cls, secrets_path: Path | None = None) -> "Settings":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, secrets_path: Path | None = None) -> None:
        if self._credentials is None:
            self._credentials = load_credentials(secrets_path)

    @property
    def credentials(self) -> Credentials:
        """API 자격 증명"""
        assert self._credentials is not None
        return self._credentials

    @property
    def api_key(self) -> str:
        """API 키"""
        return self.credentials.api_key

    @property
    def api_secret(self) -> str:
        """API Secret"""
        return self.credentials.api_secret

    @classmethod
    def reset(cls) -> None:
        """싱글턴 인스턴스 초기화 (테스트용)"""
        cls._instance = None
        cls._credentials = None


def get_settings(secrets_path: Path | None = None) -> Settings:
    """Settings 인스턴스 반환

    Args:
        secrets_path: secrets.yaml 경로 (None이면 기본 경로 사용)

    Returns:
        Settings 싱글턴 인스턴스
    """
    return Settings(secrets_path)
