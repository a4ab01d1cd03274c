"""
core/logging.py 테스트

로그 파일 경로, 핸들러 구성 확인
"""

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Iterator

import pytest

from core.constants import Paths
from core.logging import (
    NOISY_LOGGERS,
    ExtraFieldsFormatter,
    get_log_file_path,
    record_extras,
    setup_logging,
)


@pytest.fixture
def restore_root_logger() -> Iterator[None]:
    """setup_logging이 바꾼 루트 로거 복원"""
    root_logger = logging.getLogger()
    handlers = list(root_logger.handlers)
    level = root_logger.level
    yield
    for handler in root_logger.handlers:
        if handler not in handlers:
            handler.close()
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)


class TestGetLogFilePath:
    """get_log_file_path 테스트"""

    def test_default_dir(self) -> None:
        """기본 로그 디렉토리"""
        assert get_log_file_path("stream") == Paths.LOGS_DIR / "stream.log"

    def test_custom_dir(self, temp_dir: Path) -> None:
        """지정 디렉토리"""
        assert get_log_file_path("stream", temp_dir) == temp_dir / "stream.log"


class TestSetupLogging:
    """setup_logging 테스트"""

    def test_handlers(self, temp_dir: Path, restore_root_logger: None) -> None:
        """콘솔 + daily 파일 핸들러 구성"""
        root_logger = setup_logging("stream", console_level=logging.WARNING, log_dir=temp_dir)

        handler_types = [type(handler) for handler in root_logger.handlers]
        assert handler_types == [logging.StreamHandler, TimedRotatingFileHandler]
        assert root_logger.handlers[0].level == logging.WARNING
        assert (temp_dir / "stream.log").exists()

    def test_noisy_loggers_quieted(self, temp_dir: Path, restore_root_logger: None) -> None:
        """httpx/websockets 등은 WARNING 이상만"""
        setup_logging("stream", log_dir=temp_dir)

        for logger_name in NOISY_LOGGERS:
            assert logging.getLogger(logger_name).level == logging.WARNING


class TestExtraFieldsFormatter:
    """extra 필드 포맷터 테스트"""

    def _record(self, **extra: object) -> logging.LogRecord:
        logger = logging.getLogger("test.extra")
        return logger.makeRecord(
            "test.extra", logging.ERROR, __file__, 1, "listenKey 갱신 실패", None, None, extra=extra
        )

    def test_record_extras(self) -> None:
        """extra로 넘긴 필드만 추출"""
        record = self._record(symbol="btcusd", error="timeout")

        assert record_extras(record) == {"symbol": "btcusd", "error": "timeout"}

    def test_appends_fields(self) -> None:
        """메시지 뒤에 key=value 추가"""
        formatter = ExtraFieldsFormatter("%(levelname)s | %(message)s")

        text = formatter.format(self._record(symbol="btcusd"))

        assert text == "ERROR | listenKey 갱신 실패 | symbol=btcusd"

    def test_no_extras(self) -> None:
        """extra가 없으면 기본 포맷 그대로"""
        formatter = ExtraFieldsFormatter("%(message)s")

        assert formatter.format(self._record()) == "listenKey 갱신 실패"
