"""Logging configuration for the EKS cluster manager.

Console output goes through rich so log lines interleave cleanly with the
CLI's tables and status messages. The optional log file keeps full DEBUG
detail, including the worker thread that produced each line.
"""

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

FILE_FORMAT = "%(asctime)s - %(threadName)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers and the level they are capped at
NOISY_LOGGERS = {
    "urllib3": logging.WARNING,
    "botocore": logging.WARNING,
    "boto3": logging.WARNING,
    "s3transfer": logging.WARNING,
    "kubernetes": logging.WARNING,
}


def setup_logging(level: str = "INFO", log_file: Path | None = None, verbose: bool = False) -> None:
    """Configure logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file
        verbose: If True, set level to DEBUG
    """
    if verbose:
        level = "DEBUG"

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers
    root_logger.handlers.clear()

    # Console handler (only for WARNING and above unless verbose)
    console_handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        markup=False,
        log_time_format="[%X]",
    )
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    root_logger.addHandler(console_handler)

    # File handler (if specified)
    if log_file:
        try:
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
            root_logger.addHandler(file_handler)
        except OSError as e:
            logging.warning(f"Failed to create log file handler: {e}")

    # Set levels for noisy libraries
    for name, cap in NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(cap)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
