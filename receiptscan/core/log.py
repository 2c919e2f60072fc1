"""
Logging setup for the command-line tools. Library modules only create
module loggers; handlers are attached here.
"""
from __future__ import annotations
from datetime import datetime
from pathlib import Path
from typing import Optional
import logging

_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def setup_logging(debug: bool = False, log_dir: Optional[str] = ".",
                  prefix: str = "receiptscan") -> Optional[Path]:
    """
    Log to stdout and to <log_dir>/<prefix>_<timestamp>.log.
    Returns the log file path (None when log_dir is None).
    """
    level = logging.DEBUG if debug else logging.INFO
    handlers = [logging.StreamHandler()]
    logfile = None
    if log_dir is not None:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        logfile = Path(log_dir) / f"{prefix}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
        handlers.append(logging.FileHandler(logfile, encoding="utf-8"))
    logging.basicConfig(level=level, format=_FORMAT, handlers=handlers, force=True)
    if logfile is not None:
        logging.getLogger(__name__).info("[logging] Writing debug output to: %s", logfile)
    return logfile
