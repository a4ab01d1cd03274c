"""
core/config/loader.py 테스트

secrets.yaml 로드, 검증, Settings 싱글턴 테스트
"""

from pathlib import Path

import pytest

from core.config.loader import (
    Credentials,
    SecretsLoadError,
    Settings,
    get_settings,
    load_credentials,
)


class TestCredentials:
    """Credentials 데이터클래스 테스트"""

    def test_creation(self) -> None:
        """기본 생성"""
        credentials = Credentials(api_key="test_key", api_secret="test_secret")

        assert credentials.api_key == "test_key"
        assert credentials.api_secret == "test_secret"

    def test_frozen(self) -> None:
        """불변성 확인"""
        credentials = Credentials(api_key="key", api_secret="secret")

        with pytest.raises(AttributeError):
            credentials.api_key = "new_key"  # type: ignore

    def test_repr_masks_secret(self) -> None:
        """repr에 secret 노출 안 됨"""
        credentials = Credentials(api_key="abcdefgh", api_secret="super_secret")

        text = repr(credentials)
        assert "super_secret" not in text
        assert "efgh" not in text


class TestLoadCredentials:
    """load_credentials 함수 테스트"""

    def test_load(self, temp_secrets_file: Path) -> None:
        """정상 로드"""
        credentials = load_credentials(temp_secrets_file)

        assert credentials.api_key == "test_api_key_abcde"
        assert credentials.api_secret == "test_api_secret_fghij"

    def test_file_not_found(self, temp_dir: Path) -> None:
        """파일 없음 에러"""
        with pytest.raises(SecretsLoadError) as exc_info:
            load_credentials(temp_dir / "nonexistent.yaml")

        assert "찾을 수 없습니다" in str(exc_info.value)

    def test_empty_file(self, temp_dir: Path) -> None:
        """빈 파일 에러"""
        secrets_path = temp_dir / "empty.yaml"
        secrets_path.write_text("", encoding="utf-8")

        with pytest.raises(SecretsLoadError) as exc_info:
            load_credentials(secrets_path)

        assert "비어" in str(exc_info.value)

    def test_not_a_mapping(self, temp_dir: Path) -> None:
        """최상위가 매핑이 아니면 에러"""
        secrets_path = temp_dir / "list.yaml"
        secrets_path.write_text("- api_key\n- api_secret\n", encoding="utf-8")

        with pytest.raises(SecretsLoadError):
            load_credentials(secrets_path)

    def test_missing_api_key(self, temp_dir: Path) -> None:
        """api_key 누락 에러"""
        secrets_path = temp_dir / "no_key.yaml"
        secrets_path.write_text('api_secret: "secret"\n', encoding="utf-8")

        with pytest.raises(SecretsLoadError) as exc_info:
            load_credentials(secrets_path)

        assert "api_key" in str(exc_info.value)

    def test_missing_api_secret(self, temp_secrets_file_missing_secret: Path) -> None:
        """api_secret 누락 에러"""
        with pytest.raises(SecretsLoadError) as exc_info:
            load_credentials(temp_secrets_file_missing_secret)

        assert "api_secret" in str(exc_info.value)

    def test_invalid_yaml(self, temp_dir: Path) -> None:
        """잘못된 YAML 형식"""
        secrets_path = temp_dir / "invalid.yaml"
        secrets_path.write_text("api_key: [unclosed\n", encoding="utf-8")

        with pytest.raises(SecretsLoadError) as exc_info:
            load_credentials(secrets_path)

        assert "파싱 실패" in str(exc_info.value)


class TestSettings:
    """Settings 클래스 테스트"""

    def setup_method(self) -> None:
        """각 테스트 전에 싱글턴 초기화"""
        Settings.reset()

    def teardown_method(self) -> None:
        Settings.reset()

    def test_creation(self, temp_secrets_file: Path) -> None:
        """기본 생성"""
        settings = Settings(temp_secrets_file)

        assert settings.api_key == "test_api_key_abcde"
        assert settings.api_secret == "test_api_secret_fghij"
        assert isinstance(settings.credentials, Credentials)

    def test_singleton(self, temp_secrets_file: Path) -> None:
        """싱글턴 확인"""
        settings1 = Settings(temp_secrets_file)
        settings2 = Settings()  # 경로 없이 호출

        assert settings1 is settings2
        assert settings2.api_key == "test_api_key_abcde"

    def test_reset(self, temp_secrets_file: Path) -> None:
        """reset 후 재생성"""
        settings1 = Settings(temp_secrets_file)
        Settings.reset()
        settings2 = Settings(temp_secrets_file)

        # reset 후에는 새 인스턴스
        assert settings1 is not settings2

    def test_load_error_propagates(self, temp_dir: Path) -> None:
        """로드 실패 시 예외 전파"""
        with pytest.raises(SecretsLoadError):
            Settings(temp_dir / "nonexistent.yaml")


class TestGetSettings:
    """get_settings 함수 테스트"""

    def setup_method(self) -> None:
        """각 테스트 전에 싱글턴 초기화"""
        Settings.reset()

    def teardown_method(self) -> None:
        Settings.reset()

    def test_returns_settings(self, temp_secrets_file: Path) -> None:
        """Settings 인스턴스 반환"""
        settings = get_settings(temp_secrets_file)

        assert isinstance(settings, Settings)
        assert settings is get_settings()
