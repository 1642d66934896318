"""
utils.py — Logging Setup and Saved-State Paths
===============================================

Common helpers used by the service and retraining entry points.
"""

import os
import logging

from . import config

# Third-party loggers that chatter at INFO on every serial open, MQTT
# publish, HTTP request and Firebase call.
NOISY_LOGGERS = ("serial", "paho", "werkzeug", "urllib3", "google", "firebase_admin")


def setup_logging(level: str = None) -> logging.Logger:
    """
    Configure logging for the hydration pipeline.

    The ``hydration`` logger gets a console handler at ``level``; every
    hydration.* module logger inherits it. Library loggers in
    NOISY_LOGGERS are held at WARNING unless the pipeline itself runs at
    DEBUG, when their detail is useful for link and broker diagnosis.

    Args:
        level: Log level name. Defaults to config.LOG_LEVEL
               (HYDRATION_LOG_LEVEL env var).

    Returns:
        The configured ``hydration`` logger.
    """
    level = (level or config.LOG_LEVEL).upper()
    numeric_level = getattr(logging, level, logging.INFO)

    pipeline_logger = logging.getLogger("hydration")
    pipeline_logger.setLevel(numeric_level)
    if not pipeline_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            fmt="%(asctime)s [%(threadName)s] %(name)s %(levelname)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        pipeline_logger.addHandler(handler)

    library_level = logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    return pipeline_logger


def ensure_saved_dir() -> str:
    """Create the directory holding the cluster snapshot; return its path."""
    os.makedirs(config.SAVED_DIR, exist_ok=True)
    return config.SAVED_DIR
