# posinvoice/logger.py
import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional

LOGGER_NAME = "posinvoice"


def setup_logger(log_dir: Optional[str] = "data/logs", level: str = "INFO") -> logging.Logger:
    """
    Configure the application logger.

    - Console output always
    - Daily rotating file (7 days kept) when log_dir is given
    - Safe to call repeatedly, handlers are only attached once
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    if logger.handlers:
        return logger

    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            filename=path / "posinvoice.log",
            when="midnight",
            interval=1,
            backupCount=7,
            encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.info("Logger initialized (level=%s)", logging.getLevelName(logger.level))
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    if name:
        return logging.getLogger(f"{LOGGER_NAME}.{name}")
    return logging.getLogger(LOGGER_NAME)
