"""
Student Progress Engine - Logging
Colored console output plus a rotating progress.log file.

Environment:
    PROGRESS_LOG_DIR    where progress.log is written (default: backend/logs)
    PROGRESS_LOG_LEVEL  DEBUG / INFO / WARNING / ... (default: INFO)
    PROGRESS_LOG_FILE   "false" disables the file handler
"""

import logging
import sys
import os
from logging.handlers import RotatingFileHandler

LOGS_DIR = os.getenv("PROGRESS_LOG_DIR") or os.path.join(os.path.dirname(__file__), "logs")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class CustomFormatter(logging.Formatter):
    """Console formatter; the color follows the level, call site appended"""

    COLORS = {
        logging.DEBUG: "\x1b[38;20m",       # grey
        logging.INFO: "\x1b[34;20m",        # blue
        logging.WARNING: "\x1b[33;20m",     # yellow
        logging.ERROR: "\x1b[31;20m",       # red
        logging.CRITICAL: "\x1b[31;1m",     # bold red
    }
    RESET = "\x1b[0m"

    def __init__(self):
        super().__init__(datefmt=DATE_FORMAT)
        self._formatters = {
            level: logging.Formatter(color + LOG_FORMAT + " (%(filename)s:%(lineno)d)" + self.RESET, DATE_FORMAT)
            for level, color in self.COLORS.items()
        }

    def format(self, record):
        formatter = self._formatters.get(record.levelno, self._formatters[logging.INFO])
        return formatter.format(record)


def _level_from_env(default: int) -> int:
    # getLevelName maps a known name back to its number, anything else to a string
    level = logging.getLevelName(os.getenv("PROGRESS_LOG_LEVEL", "").upper())
    return level if isinstance(level, int) else default


def setup_logger(name: str = "progress_engine", level: int = logging.INFO) -> logging.Logger:
    """Configures and returns the engine logger"""

    logger = logging.getLogger(name)
    logger.setLevel(_level_from_env(level))

    if logger.hasHandlers():
        return logger

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(CustomFormatter())
    logger.addHandler(console_handler)

    if os.getenv("PROGRESS_LOG_FILE", "true").lower() != "false":
        os.makedirs(LOGS_DIR, exist_ok=True)
        # 5MB per file, keep last 5
        file_handler = RotatingFileHandler(
            os.path.join(LOGS_DIR, "progress.log"), maxBytes=5*1024*1024, backupCount=5, encoding='utf-8'
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(file_handler)

    return logger


def get_logger(component: str) -> logging.Logger:
    """Child logger of the engine logger, e.g. progress_engine.service"""
    return logger.getChild(component)


# Global logger instance
logger = setup_logger()
