"""
Logging setup using Loguru.

The blessed UI owns the terminal, so log records only go to a rotating file.
"""

from pathlib import Path
from typing import Optional

from loguru import logger

from .config import get_data_dir


def get_log_file_path() -> Path:
    """Get the path to the log file."""
    return get_data_dir() / "tori.log"


def setup_loguru(log_file: Optional[Path] = None, level: str = "INFO") -> Path:
    """
    Configure loguru for file-only logging.

    Args:
        log_file: Path to log file (default: ~/.local/share/tori/tori.log)
        level: Minimum level for file logging (DEBUG, INFO, WARNING, ERROR)

    Returns:
        The log file actually used
    """
    log_file = log_file or get_log_file_path()
    log_file.parent.mkdir(parents=True, exist_ok=True)

    # Remove default stderr handler
    logger.remove()

    logger.add(
        log_file,
        rotation="10 MB",
        retention=5,  # Keep 5 backup files
        level=level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {thread.name} | {name}:{line} | {message}",
        enqueue=True,  # several threads log concurrently
    )

    logger.info(f"Loguru initialized: {log_file} (level={level})")
    return log_file
