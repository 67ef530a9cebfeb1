"""Centralized logging setup for the administration client.

Configures the root logger to write to the console only; the client never
writes log files of its own.
"""
import logging
from typing import Union

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def setup_logging(level: Union[int, str] = logging.INFO) -> logging.Logger:
    """Configure the root logger with a single console handler.

    Safe to call more than once: an existing stream handler is reused and
    only its level is updated.

    Args:
        level: Logging level name or number

    Returns:
        The configured root logger
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    handlers = [h for h in root_logger.handlers if isinstance(h, logging.StreamHandler)]
    if not handlers:
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter(LOG_FORMAT))
        root_logger.addHandler(console)
        handlers = [console]

    for handler in handlers:
        handler.setLevel(level)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))

    return root_logger
