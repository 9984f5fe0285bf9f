"""Optional logging bootstrap for applications embedding ffmux.

The library itself only creates module loggers; nothing here runs on import.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def resolve_log_level(level_override: Optional[str] = None, default: str = "WARNING") -> int:
    env_level = os.environ.get("LOGLEVEL")
    level_name = (env_level or level_override or default).upper()
    level = getattr(logging, level_name, None)
    return level if isinstance(level, int) else logging.WARNING


def configure_logging(
    level: Optional[str] = None,
    log_dir: Optional[Path] = None,
    *,
    settings=None,
) -> Optional[Path]:
    """Install a stream handler (and a timestamped file handler when ``log_dir`` is given).

    The level comes from ``LOGLEVEL``, then ``level``, then the settings'
    ``diagnostics.log_level``. Returns the log file path, if any.
    """

    default_level = settings.get_log_level() if settings is not None else "WARNING"
    if log_dir is None and settings is not None:
        log_dir = settings.get_log_dir()
    resolved = resolve_log_level(level, default_level)
    formatter = logging.Formatter(LOG_FORMAT)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    handlers: list[logging.Handler] = [stream_handler]

    log_path: Path | None = None
    if log_dir is not None:
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
            log_path = log_dir / f"ffmux-{timestamp}.log"
            file_handler = logging.FileHandler(log_path, encoding="utf-8")
            file_handler.setFormatter(formatter)
            handlers.append(file_handler)
        except OSError as exc:
            log_path = None
            logging.getLogger(__name__).warning("Cannot write logs to %s: %s", log_dir, exc)

    logging.basicConfig(level=resolved, handlers=handlers, force=True)
    if log_path:
        logging.getLogger(__name__).info("Writing log to %s", log_path)
    return log_path
