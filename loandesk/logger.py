"""Logging setup for LoanDesk.

Modules call ``get_logger(__name__)``. Everything goes through the
``loandesk`` logger so embedding applications and tests keep control of
the root logger.
"""
import logging
import os
import sys

_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_PACKAGE_LOGGER = "loandesk"
_initialized = False


def _init_logging() -> None:
    """Attach the console handler to the package logger once."""
    global _initialized
    if _initialized:
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, _DATE_FORMAT))
    package_logger = logging.getLogger(_PACKAGE_LOGGER)
    package_logger.setLevel(os.environ.get("LOANDESK_LOG_LEVEL", "INFO").upper())
    package_logger.addHandler(handler)
    package_logger.propagate = False
    _initialized = True


def get_logger(name: str) -> logging.Logger:
    """Get a named logger under the ``loandesk`` hierarchy.

    Args:
        name: Usually ``__name__`` of the calling module.
    """
    _init_logging()
    if name != _PACKAGE_LOGGER and not name.startswith(_PACKAGE_LOGGER + "."):
        name = f"{_PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)
