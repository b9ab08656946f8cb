"""Logging setup for cdpwire."""

import logging
import sys

from dotenv import load_dotenv

load_dotenv()

from cdpwire.config import CONFIG  # noqa: E402

PROTOCOL_LOGGER_NAME = 'cdpwire.protocol'


class CdpWireFormatter(logging.Formatter):
    """Shortens `cdpwire.*` logger names outside of debug mode."""

    def __init__(self, format_string: str, level_value: int):
        super().__init__(format_string)
        self.level_value = level_value

    def format(self, record: logging.LogRecord) -> str:
        if self.level_value > logging.DEBUG and isinstance(record.name, str) and record.name.startswith('cdpwire.'):
            record.name = record.name.split('.')[-1]
        return super().format(record)


def setup_logging(stream=None, log_level=None, force_setup=False, debug_log_file=None):
    """Configure logging for cdpwire.

    Args:
        stream: Output stream for logs (default: sys.stdout).
        log_level: Logging level name (default: CONFIG.LOGGING_LEVEL).
        force_setup: Force reconfiguration even if handlers already exist.
        debug_log_file: Path to a file receiving debug level logs.

    Returns:
        The `cdpwire` package logger.
    """
    level_type = (log_level or CONFIG.LOGGING_LEVEL).lower()

    if logging.getLogger().hasHandlers() and not force_setup:
        return logging.getLogger('cdpwire')

    root_logger = logging.getLogger()
    root_logger.handlers = []

    effective_level = logging.DEBUG if level_type == 'debug' else logging.getLevelName(level_type.upper())
    if not isinstance(effective_level, int):
        effective_level = logging.INFO

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setLevel(effective_level)
    console_handler.setFormatter(CdpWireFormatter('%(levelname)-8s [%(name)s] %(message)s', effective_level))
    root_logger.addHandler(console_handler)

    debug_log_file = debug_log_file or CONFIG.DEBUG_LOG_FILE
    if debug_log_file:
        debug_file_handler = logging.FileHandler(debug_log_file, encoding='utf-8')
        debug_file_handler.setLevel(logging.DEBUG)
        debug_file_handler.setFormatter(
            CdpWireFormatter('%(asctime)s - %(levelname)-8s [%(name)s] %(message)s', logging.DEBUG)
        )
        root_logger.addHandler(debug_file_handler)

    root_logger.setLevel(logging.DEBUG if debug_log_file else effective_level)

    cdpwire_logger = logging.getLogger('cdpwire')

    # Raw protocol traffic has its own level
    protocol_level = logging.getLevelName(CONFIG.CDP_LOGGING_LEVEL)
    logging.getLogger(PROTOCOL_LOGGER_NAME).setLevel(protocol_level if isinstance(protocol_level, int) else logging.WARNING)

    # Silence third-party loggers
    for third_party in ('websockets', 'httpx', 'httpcore', 'asyncio', 'bubus'):
        logging.getLogger(third_party).setLevel(logging.WARNING)

    return cdpwire_logger
