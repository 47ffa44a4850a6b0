import logging
import os
from typing import Optional, Union


ROOT_LOGGER = "price_tracker"

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}


def _coerce_level(value: Union[str, int, None]) -> int:
    if isinstance(value, str):
        return _LEVELS.get(value.upper().strip(), logging.INFO)
    if isinstance(value, int):
        return value
    return logging.INFO


class _ShortNameFormatter(logging.Formatter):
    """Print "catalog-db" rather than "price_tracker.catalog-db"."""

    def format(self, record: logging.LogRecord) -> str:
        record.short_name = record.name.rsplit(".", 1)[-1]
        return super().format(record)


def configure_logging(
    level: Union[str, int, None] = None,
    log_file: Optional[str] = None,
    *,
    force: bool = False,
) -> logging.Logger:
    """Attach handlers to the package logger shared by every module logger.

    - `level` defaults to LOG_LEVEL (INFO when unset).
    - `log_file` defaults to LOG_FILE; pass "" to disable file logging.
    - Runs once unless `force` is set, which replaces existing handlers.
    """
    root = logging.getLogger(ROOT_LOGGER)
    if getattr(root, "_price_tracker_configured", False) and not force:
        return root

    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    resolved = _coerce_level(level if level is not None else os.environ.get("LOG_LEVEL", "INFO"))
    root.setLevel(resolved)

    formatter = _ShortNameFormatter(
        fmt="%(asctime)s [%(short_name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    sh = logging.StreamHandler()
    sh.setFormatter(formatter)
    root.addHandler(sh)

    # One appending file handle for all modules
    path = os.environ.get("LOG_FILE") if log_file is None else log_file
    if path:
        try:
            fh = logging.FileHandler(path, encoding="utf-8")
            fh.setFormatter(formatter)
            root.addHandler(fh)
        except OSError:
            root.warning("LOG_FILE %s could not be opened; continuing without file logging", path)

    root.propagate = False
    setattr(root, "_price_tracker_configured", True)
    return root


def get_logger(name: str) -> logging.Logger:
    """Return the module logger `name`, configuring the package logger on first use."""
    configure_logging()
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
