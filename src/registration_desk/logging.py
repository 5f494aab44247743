import logging
import os
from typing import List, Optional, Union

NAMESPACE = "registration_desk"

_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "TRACE": logging.DEBUG,
}


def _coerce_level(value: Union[str, int, None]) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return _LEVELS.get(value.upper().strip(), logging.INFO)
    return logging.INFO


def _handlers(level: int) -> List[logging.Handler]:
    formatter = logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT)
    out: List[logging.Handler] = [logging.StreamHandler()]

    log_file = os.environ.get("LOG_FILE")
    if log_file:
        try:
            out.append(logging.FileHandler(log_file, encoding="utf-8"))
        except OSError as exc:
            logging.getLogger(NAMESPACE).warning(f"LOG_FILE {log_file!r} not usable ({exc}); console only")

    for h in out:
        h.setLevel(level)
        h.setFormatter(formatter)
    return out


def get_logger(name: str) -> logging.Logger:
    """Return the ``registration_desk.<name>`` logger, configured once.

    Level comes from LOG_LEVEL (default INFO); LOG_FILE adds an appending
    file handler next to the stderr console handler.
    """
    logger = logging.getLogger(f"{NAMESPACE}.{name}")
    if getattr(logger, "_desk_configured", False):
        return logger

    level = _coerce_level(os.environ.get("LOG_LEVEL", "INFO"))
    logger.setLevel(level)
    for h in _handlers(level):
        logger.addHandler(h)
    logger.propagate = False
    setattr(logger, "_desk_configured", True)
    return logger


def set_level(level: Union[str, int, None]) -> int:
    """Apply a level to every logger already handed out; returns it."""
    resolved = _coerce_level(level)
    prefix = NAMESPACE + "."
    for name, logger in list(logging.Logger.manager.loggerDict.items()):
        if not name.startswith(prefix) or not isinstance(logger, logging.Logger):
            continue
        logger.setLevel(resolved)
        for h in logger.handlers:
            h.setLevel(resolved)
    return resolved
