"""Process-wide logging configuration."""

import logging
import os
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str = "INFO", log_dir: Optional[Path] = None) -> None:
    """Configure the root logger with a stream handler and an optional file handler.

    Args:
        level: Log level name (e.g. "INFO", "DEBUG").
        log_dir: Directory for `app.log`; file logging is skipped when None.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_dir is not None:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(Path(log_dir) / "app.log"))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    # boto's wire logging is far too chatty at INFO
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
