import logging
import logging.handlers
import os
from pathlib import Path
from typing import Optional

LOGGER_NAMES = ('yidsrom', 'yidsgui')


def setup_logging(log_dir: Optional[Path] = None, log_level: str = 'INFO') -> logging.Logger:
    """
    Configure the editor's loggers.

    Args:
        log_dir: Directory for a rotating log file; console only when None
        log_level: Logging level name

    Returns:
        The core package logger
    """
    if os.environ.get('YIDSROM_DEBUG', '').lower() in ('1', 'true', 'yes'):
        log_level = 'DEBUG'
    level = getattr(logging, log_level.upper(), logging.INFO)
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter('%(levelname)s - %(name)s - %(message)s'))
    handlers = [console_handler]
    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(log_dir / 'yidsrom.log', maxBytes=5000000, backupCount=3, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s'))
        handlers.append(file_handler)
    for name in LOGGER_NAMES:
        logger = logging.getLogger(name)
        logger.setLevel(min(level, logging.DEBUG) if log_dir is not None else level)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        for handler in handlers:
            logger.addHandler(handler)
        logger.propagate = False
    core = logging.getLogger(LOGGER_NAMES[0])
    core.debug('[Logging] Configured at %s (file: %s)', logging.getLevelName(level), log_dir or 'none')
    return core