"""
Logging system for ScreenPilot
"""

import logging
import os
import sys
import tempfile
from datetime import datetime
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _attach_file_handler(logger: logging.Logger, logs_dir: Path) -> Path:
    """Create a timestamped log file in logs_dir and attach it to the logger."""
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = logs_dir / f"screenpilot_{timestamp}.log"

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    logger.addHandler(file_handler)
    return log_file


def setup_logger(name: str = "ScreenPilot") -> logging.Logger:
    """Setup logger with console and (optional) file handlers"""

    logger = logging.getLogger(name)
    logger.setLevel(os.getenv("SCREENPILOT_LOG_LEVEL", "DEBUG").upper())

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(levelname)s: %(message)s")
    )
    logger.addHandler(console_handler)

    if os.getenv("SCREENPILOT_FILE_LOGGING", "1") == "0":
        return logger

    try:
        from config import config

        log_file = _attach_file_handler(logger, config.get_logs_dir())
        logger.info("=" * 60)
        logger.info(f"ScreenPilot Log Started - {datetime.now()}")
        logger.info(f"Log file: {log_file}")
        logger.info("=" * 60)

    except Exception as e:
        # Fallback to temp directory
        try:
            log_file = _attach_file_handler(
                logger, Path(tempfile.gettempdir()) / "ScreenPilot"
            )
            logger.warning(f"Using temporary log file: {log_file}")
            logger.error(f"Failed to create log in app directory: {e}")

        except OSError:
            logger.warning("Running without file logging - console only")

    return logger


# Create default logger
logger = setup_logger()
