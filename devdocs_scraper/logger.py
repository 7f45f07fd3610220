"""Logging setup with rotating file + console output."""

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Union

# httpx and httpcore announce every request at INFO; a crawl makes thousands
NOISY_LOGGERS = ("httpx", "httpcore")


def setup_logger(
    log_dir: str = "logs",
    log_file: str = "scraper.log",
    level: Union[int, str] = logging.INFO,
) -> logging.Logger:
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            raise ValueError(f"Unknown log level: {level}")
        level = resolved

    os.makedirs(log_dir, exist_ok=True)

    logger = logging.getLogger("devdocs_scraper")
    logger.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    if logger.handlers:
        return logger

    fmt = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(fmt)
    logger.addHandler(console)

    # one file per log_dir, 10MB each, keep 5
    file_handler = RotatingFileHandler(
        os.path.join(log_dir, log_file),
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(fmt)
    logger.addHandler(file_handler)

    return logger
