import logging
import sys
from pathlib import Path

from path_store import config

LOGGER_NAME = "path_store"


def setup_logger():
    logger = logging.getLogger(LOGGER_NAME)
    # Every module calls this at import; attach handlers only once
    if logger.handlers:
        return logger

    logger.setLevel(config.LOG_LEVEL)

    # Create formatters
    file_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
    )
    console_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s'
    )

    # File handler (for detailed logging)
    if config.LOG_DIR:
        logs_dir = Path(config.LOG_DIR)
        logs_dir.mkdir(exist_ok=True, parents=True)
        file_handler = logging.FileHandler(logs_dir / "path_store.log")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    # Console handler (for basic logging)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    return logger
