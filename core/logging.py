"""
로깅 설정 유틸리티

라이브러리 코드는 logging.getLogger(__name__) + extra={...} 로 로그를 남기고,
실행 스크립트가 setup_logging()으로 출력 대상을 구성.

- 콘솔: stdout, 기본 INFO
- 파일: logs/<process_name>.log, 자정마다 롤링 (7일 보관)
- extra로 넘긴 필드는 메시지 뒤에 key=value 형태로 출력

사용법:
    from core.logging import setup_logging
    setup_logging("stream_demo")
"""

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Any

from core.constants import Paths


LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_BACKUP_COUNT = 7

# 프레임/연결 단위 로그가 많은 서드파티 로거 (WARNING 이상만)
NOISY_LOGGERS = [
    "httpcore",
    "httpx",
    "websockets",
    "asyncio",
]

# LogRecord 기본 속성 (이외의 속성은 extra로 전달된 필드)
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


def record_extras(record: logging.LogRecord) -> dict[str, Any]:
    """LogRecord에서 extra 필드만 추출"""
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }


class ExtraFieldsFormatter(logging.Formatter):
    """extra 필드를 메시지 뒤에 붙이는 포맷터

    예: logger.error("listenKey 갱신 실패", extra={"symbol": "btcusd"})
    → ... | listenKey 갱신 실패 | symbol=btcusd
    """

    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        extras = record_extras(record)
        if not extras:
            return text

        fields = " ".join(f"{key}={value}" for key, value in extras.items())

        # 예외 트레이스백이 있으면 첫 줄(메시지 줄)에 붙임
        head, sep, tail = text.partition("\n")
        return f"{head} | {fields}{sep}{tail}"


def get_log_file_path(process_name: str, log_dir: Path | None = None) -> Path:
    """로그 파일 경로 (<log_dir>/<process_name>.log)"""
    return (log_dir or Paths.LOGS_DIR) / f"{process_name}.log"


def setup_logging(
    process_name: str,
    console_level: int = logging.INFO,
    file_level: int = logging.INFO,
    log_dir: Path | None = None,
) -> logging.Logger:
    """루트 로거에 콘솔/파일 핸들러 구성

    여러 번 호출해도 핸들러가 중복되지 않음 (기존 핸들러 교체).

    Args:
        process_name: 프로세스 이름 (로그 파일명)
        console_level: 콘솔 로그 레벨
        file_level: 파일 로그 레벨
        log_dir: 로그 디렉토리 (None이면 Paths.LOGS_DIR)

    Returns:
        설정된 루트 Logger
    """
    log_file = get_log_file_path(process_name, log_dir)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # 필터링은 핸들러 레벨에서

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    formatter = ExtraFieldsFormatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    file_handler = TimedRotatingFileHandler(
        filename=log_file,
        when="midnight",
        interval=1,
        backupCount=LOG_FILE_BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.suffix = "%Y-%m-%d"  # stream_demo.log.2026-02-21
    file_handler.setLevel(file_level)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    root_logger.info(
        "로깅 초기화 완료",
        extra={"process_name": process_name, "log_file": str(log_file)},
    )

    return root_logger
