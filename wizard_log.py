from __future__ import annotations

import json
import logging
import os
import sys
import time
from typing import Optional

_ROOT_LOGGER_NAME = "vehicle_wizard"
_root: Optional[logging.Logger] = None


def setup_logger(level: Optional[str] = None) -> logging.Logger:
    """
    Configure the package logger (console handler, INFO by default).

    Level comes from the argument, else WIZARD_LOG_LEVEL, else INFO. Calling it again
    replaces the handler instead of stacking a second one.
    """
    global _root

    logger = logging.getLogger(_ROOT_LOGGER_NAME)
    level_name = (level or os.environ.get("WIZARD_LOG_LEVEL") or "INFO").strip().upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
    )
    logger.addHandler(handler)
    logger.propagate = False

    _root = logger
    return logger


def get_logger(name: str) -> logging.Logger:
    global _root
    if _root is None:
        _root = setup_logger()
    return _root.getChild(name)


# region event log

def event_log_path() -> str:
    return str(os.environ.get("WIZARD_EVENT_LOG") or "").strip()


def log_event(*, location: str, message: str, data: dict) -> None:
    """
    Append one JSON line to the wizard event trace (WIZARD_EVENT_LOG). No-op when unset.
    """
    path = event_log_path()
    if not path:
        return
    payload = {
        "location": location,
        "message": message,
        "data": data,
        "timestamp": int(time.time() * 1000),
    }
    try:
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(payload, default=str) + "\n")
    except OSError as exc:
        # Never let tracing break the wizard.
        get_logger(__name__).warning("Could not write event log %s: %s", path, exc)


# endregion event log
