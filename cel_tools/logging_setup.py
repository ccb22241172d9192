"""Opt-in debug logging to a file, switched on by the CELTOOLS_DEBUG environment variable.

Without the variable the package logger only gets a NullHandler. With it, the
root logger writes DEBUG records to CELTOOLS_DEBUG_LOG (default
``cel_tools_debug.log`` in the working directory) and uncaught exceptions are
logged before the normal excepthook runs.
"""
from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

DEBUG_ENV = "CELTOOLS_DEBUG"
DEBUG_LOG_ENV = "CELTOOLS_DEBUG_LOG"

logger = logging.getLogger("cel_tools")
_EXCEPTION_HOOK_INSTALLED = False


def setup_debug_logging() -> Path | None:
    """Send debug logs to a file when ``CELTOOLS_DEBUG`` is set; return its path."""

    global _EXCEPTION_HOOK_INSTALLED
    if not os.environ.get(DEBUG_ENV):
        if not logger.handlers:
            logger.addHandler(logging.NullHandler())
        return None
    log_name = os.environ.get(DEBUG_LOG_ENV, "cel_tools_debug.log")
    log_path = Path(log_name)
    if not log_path.is_absolute():
        log_path = Path.cwd() / log_name
    log_path.parent.mkdir(parents=True, exist_ok=True)
    log_path.write_text("", encoding="utf-8")
    handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    # remove existing file handlers to avoid duplicates
    root_logger.handlers = [h for h in root_logger.handlers if not isinstance(h, logging.FileHandler)]
    root_logger.addHandler(handler)
    root_logger.info("CelTools debug logging enabled at %s", log_path)
    if not _EXCEPTION_HOOK_INSTALLED:
        previous_hook = sys.excepthook

        def _logging_excepthook(exc_type, exc_value, exc_traceback, _prev=previous_hook):
            root_logger.error(
                "Unhandled exception",
                exc_info=(exc_type, exc_value, exc_traceback),
            )
            _prev(exc_type, exc_value, exc_traceback)

        sys.excepthook = _logging_excepthook
        _EXCEPTION_HOOK_INSTALLED = True
    return log_path
