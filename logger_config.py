import logging
import sys
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

def setup_logging(level: Optional[Union[int, str]] = None) -> None:
    """Configures the shared logger for the project.

    Args:
        level: Logging level or level name. Defaults to LOG_LEVEL from config.
    """
    if level is None:
        from config import cfg
        level = cfg().log_level
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )
    # httpx logs every request at INFO, which drowns out the poll loop
    logging.getLogger("httpx").setLevel(logging.WARNING)

def get_logger(name: str) -> logging.Logger:
    """Gets a logger instance for a specific module.

    Args:
        name: The name of the module, usually __name__.

    Returns:
        A configured logging.Logger instance.
    """
    return logging.getLogger(name)
