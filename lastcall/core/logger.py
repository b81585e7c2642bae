import logging
import sys
import re
from pathlib import Path

from ..config import settings

# key=value / key: value pairs that carry credentials
_SECRET_PATTERN = re.compile(
    r'(secret|token|api_key|apikey|authorization|bearer|password)(\s*[=:]\s*)\S+',
    re.IGNORECASE
)

# Full E.164 numbers; recipients' numbers never reach the log files
_PHONE_PATTERN = re.compile(r'\+\d{7,11}(\d{4})\b')


def mask_phone(phone: str) -> str:
    """+15557654321 -> ***4321"""
    if not phone or len(phone) <= 4:
        return phone or ""
    return f"***{phone[-4:]}"


def redact(message: str) -> str:
    message = _SECRET_PATTERN.sub(lambda m: f"{m.group(1)}{m.group(2)}***REDACTED***", message)
    return _PHONE_PATTERN.sub(lambda m: f"***{m.group(1)}", message)


class SensitiveDataFilter(logging.Filter):
    """Redacts credentials and phone numbers from log messages."""
    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact(record.msg)
        return True


class NoHttpRequestFilter(logging.Filter):
    """httpx logs every Telnyx call at INFO, including the full URL"""
    def filter(self, record: logging.LogRecord) -> bool:
        return not record.getMessage().startswith("HTTP Request:")


def setup_logging():
    """Console + file logging for the API process and the workers"""

    log_file_path = Path(settings.log_file)
    log_file_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(log_file_path, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, settings.log_level.upper()))
    console_handler.setFormatter(logging.Formatter("%(levelname)-8s | %(message)s"))

    sensitive_filter = SensitiveDataFilter()
    for handler in (file_handler, console_handler):
        handler.addFilter(sensitive_filter)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    # Silence noisy loggers
    for name in ("httpx", "httpcore", "asyncpg"):
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("httpx").addFilter(NoHttpRequestFilter())

    logging.info(f"Logging configured: level={settings.log_level}, file={settings.log_file}")
