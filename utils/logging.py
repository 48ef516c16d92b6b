"""Logging setup and conversation/order log helpers"""

import logging
import sys
from typing import Iterable, Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
NOISY_LOGGERS = ('requests', 'urllib3', 'werkzeug')


class ColoredFormatter(logging.Formatter):
    """Console formatter that colours the level name"""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }

    RESET = '\033[0m'

    def format(self, record):
        # Colour a copy so file handlers keep the plain level name
        record = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelname, self.RESET)
        record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


def setup_logging(level: str = 'INFO', log_file: Optional[str] = None,
                  quiet_loggers: Iterable[str] = NOISY_LOGGERS):
    """Configure the root logger with a coloured console and optional plain file output"""
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))

    handlers = [console_handler]
    if log_file:
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(file_handler)

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=handlers,
        force=True
    )

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)


def mask_phone(phone_number: Optional[str]) -> str:
    """Hide the middle digits of a customer phone number"""
    if not phone_number:
        return '?'
    if len(phone_number) <= 6:
        return '***' + phone_number[-2:]
    return f"{phone_number[:4]}***{phone_number[-3:]}"


def log_message_flow(phone_number: str, state: str, next_state: str, success: bool = True):
    """One line per processed message: customer, state before and after"""
    logger = logging.getLogger('message_flow')
    status = "✅" if success else "❌"
    logger.info(f"{status} {mask_phone(phone_number)} | {state} -> {next_state}")


def log_order_event(order_number: str, phone_number: str, event: str, **details):
    logger = logging.getLogger('orders')
    extra = ' '.join(f"{key}={value}" for key, value in details.items())
    logger.info(f"🧾 {order_number} | {mask_phone(phone_number)} | {event} {extra}".rstrip())
