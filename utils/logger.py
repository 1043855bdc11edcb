"""
Logging configuration for featurestream.

This module provides centralized logging configuration for console and optional
file output. Console displays INFO-level messages (request summaries, paging
progress, token renewals), while the file handler captures DEBUG-level detail
such as every HTTP request issued against a FeatureServer.

Functions:
    setup_logging: Initialize logging handlers and return log file path
    get_logger: Get a logger instance for a specific module

Example:
    >>> from utils.logger import setup_logging, get_logger
    >>> setup_logging()
    >>> logger = get_logger(__name__)
    >>> logger.info("Download started")
"""

import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Optional

ROOT_LOGGER_NAME = 'featurestream'


def setup_logging(
    log_dir: Optional[Path] = None,
    console_level: int = logging.INFO
) -> Optional[Path]:
    """
    Setup logging to console and, optionally, to a file.

    Creates up to two handlers:
    - Console: console_level (INFO by default) with clean formatting
    - File: DEBUG level with timestamps and module names (only if log_dir given)

    Parameters:
    -----------
    log_dir : Optional[Path]
        Directory for log files. No file handler is created when omitted.
    console_level : int
        Level for the console handler (default: logging.INFO)

    Returns:
    --------
    Optional[Path]
        Path to the created log file, or None when logging to console only
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)

    # Remove existing handlers to avoid duplicates
    logger.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(console_level)
    console.setFormatter(logging.Formatter('%(message)s'))
    logger.addHandler(console)

    log_file = None
    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_dir / f'featurestream_{timestamp}.log'

        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        logger.addHandler(file_handler)

    logger.debug(f"Logging initialized: {log_file or 'console only'}")

    return log_file


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a specific module.

    Parameters:
    -----------
    name : str
        Module name (typically __name__)

    Returns:
    --------
    logging.Logger
        Logger namespaced under the featurestream root logger

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Module initialized")
    """
    return logging.getLogger(f'{ROOT_LOGGER_NAME}.{name}')
