"""
Logging setup.

Configured once at startup; every module logs through the root logger.
"""

from __future__ import annotations

import logging
import os


def setup_logging(log_path: str, log_level: str = "INFO") -> None:
    """
    Log to log_path and to the console.

    An empty log_path logs to the console only.
    """
    handlers: list = [logging.StreamHandler()]
    if log_path:
        log_dir = os.path.dirname(log_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.insert(0, logging.FileHandler(log_path))

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )
