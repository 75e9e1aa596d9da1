import logging
import sys
from logging import Logger
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def _has_handler(logger: Logger, cls, filename: Optional[str] = None) -> bool:
    for h in logger.handlers:
        if type(h) is not cls:
            continue
        if filename is None:
            return True
        if getattr(h, "baseFilename", None) == str(Path(filename).resolve()):
            return True
    return False


def setup_logging(level: Union[int, str] = logging.INFO, logfile: Optional[str] = None) -> Logger:
    """
    Configure root logging to stream to stdout and, when ``logfile`` is given,
    to a rotating file as well.
    Idempotent: safe to call multiple times without duplicating handlers.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger = logging.getLogger()
    logger.setLevel(level)

    fmt = logging.Formatter(FORMAT)

    if not _has_handler(logger, logging.StreamHandler):
        ch = logging.StreamHandler(sys.stdout)
        ch.setLevel(level)
        ch.setFormatter(fmt)
        logger.addHandler(ch)

    if logfile and not _has_handler(logger, RotatingFileHandler, filename=logfile):
        fh = RotatingFileHandler(logfile, maxBytes=5_000_000, backupCount=3, encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    # Make werkzeug (Flask dev server) logs go through root as well
    werk = logging.getLogger("werkzeug")
    werk.setLevel(logging.INFO)
    werk.propagate = True

    return logger
