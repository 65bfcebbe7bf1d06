import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional
from pythonjsonlogger import jsonlogger

LOGGER_NAME = "chat_proxy"

# 모듈 import 시에는 핸들러를 붙이지 않음. setup_logging()은 main.py에서 호출
logger = logging.getLogger(LOGGER_NAME)

_max_message_length = 200


class ChatProxyJsonFormatter(jsonlogger.JsonFormatter):
    """콘솔용 JSON 포맷. 수집기가 읽는 timestamp 필드를 항상 채움"""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record.setdefault("timestamp", self.formatTime(record, "%Y-%m-%dT%H:%M:%S"))
        log_record.setdefault("logger", record.name)


def _file_handler(settings) -> Optional[logging.Handler]:
    """logging.file_path가 설정되어 있고 production이 아닐 때만 회전 파일 로그 사용"""
    log_settings = settings.logging
    if not log_settings.file_path or settings.is_production:
        return None

    log_dir = os.path.dirname(log_settings.file_path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    handler = RotatingFileHandler(
        log_settings.file_path,
        maxBytes=log_settings.max_file_size_mb * 1024 * 1024,
        backupCount=log_settings.backup_count,
        encoding="utf-8"
    )
    handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))
    return handler


def setup_logging(settings) -> logging.Logger:
    """
    주입된 설정으로 chat_proxy 로거 구성

    Args:
        settings: Config (environment, logging 섹션 사용)

    Returns:
        핸들러가 교체된 chat_proxy 로거
    """
    global _max_message_length
    _max_message_length = settings.logging.max_message_length

    logger.setLevel(getattr(logging, settings.logging.level.upper(), logging.INFO))
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    # levelname -> severity (구조화 로그 수집기 호환)
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(ChatProxyJsonFormatter(
        "%(levelname)s %(message)s",
        rename_fields={"levelname": "severity"},
        static_fields={"service": LOGGER_NAME, "environment": settings.environment}
    ))
    logger.addHandler(console_handler)

    file_handler = _file_handler(settings)
    if file_handler is not None:
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger


def mask_api_key(api_key: Optional[str]) -> str:
    """API 키 마스킹 (앞 3자, 뒤 3자만 표시)"""
    if not api_key or len(api_key) <= 6:
        return "***"
    return f"{api_key[:3]}***{api_key[-3:]}"


def truncate_message(message: str, max_length: Optional[int] = None) -> str:
    """로그용 메시지 자르기. 기본 길이는 setup_logging()에 전달된 logging.max_message_length"""
    if max_length is None:
        max_length = _max_message_length

    if len(message) <= max_length:
        return message
    return message[:max_length] + "..."
