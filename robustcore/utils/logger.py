"""Logging utilities."""

import logging
import os
import sys
from pathlib import Path
from datetime import datetime
from typing import Any, Dict, Union


def setup_logger(name: str = 'robustcore', log_level: Union[int, str] = logging.INFO,
                log_file: str = None) -> logging.Logger:
    """Setup logger with console and optional file handler."""
    logger = logging.getLogger(name)
    if isinstance(log_level, str):
        log_level = logging.getLevelName(log_level.upper())
    logger.setLevel(log_level)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Calling twice must not duplicate output
    if not any(getattr(h, '_robustcore_console', False) for h in logger.handlers):
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        console_handler._robustcore_console = True
        logger.addHandler(console_handler)

    if log_file:
        log_path = os.path.abspath(log_file)
        existing = [h for h in logger.handlers
                    if isinstance(h, logging.FileHandler) and h.baseFilename == log_path]
        if not existing:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger


def setup_logger_from_config(config: Dict[str, Any], name: str = 'robustcore') -> logging.Logger:
    """Setup logger from the ``logging`` section of a configuration dict."""
    section = config.get('logging', {})
    return setup_logger(name, section.get('level', logging.INFO), section.get('file'))


def create_session_log_file(log_dir: str = 'logs') -> str:
    """Create timestamped log file for session."""
    Path(log_dir).mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    return f"{log_dir}/robustcore_{timestamp}.log"
