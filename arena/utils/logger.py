import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from arena.config import Config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

_formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
_file_handler: Optional[logging.FileHandler] = None


def _log_level() -> int:
    if Config.DEBUG:
        return logging.DEBUG
    level = logging.getLevelName(Config.LOG_LEVEL)
    return level if isinstance(level, int) else logging.INFO


def _shared_file_handler() -> Optional[logging.FileHandler]:
    """One daily log file per process, shared by every arena logger"""
    global _file_handler
    if not Config.LOG_TO_FILE:
        return None
    if _file_handler is None:
        log_dir = Path(Config.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)
        _file_handler = logging.FileHandler(
            log_dir / f'battle_arena_{datetime.now().strftime("%Y%m%d")}.log',
            encoding='utf-8'
        )
        _file_handler.setLevel(logging.DEBUG)
        _file_handler.setFormatter(_formatter)
    return _file_handler


def setup_logger(name: str) -> logging.Logger:
    """Setup a logger with the arena's console and file handlers"""

    logger = logging.getLogger(name)

    if logger.handlers:
        return logger

    level = _log_level()
    logger.setLevel(level)

    # Console
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(_formatter)
    logger.addHandler(console_handler)

    # File
    file_handler = _shared_file_handler()
    if file_handler is not None:
        logger.addHandler(file_handler)

    return logger
