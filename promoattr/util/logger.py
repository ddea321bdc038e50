"""
Logging setup.

- get_logger(name): namespaced stdlib logger under "promoattr".
- The root "promoattr" logger is configured once (stream handler + level from
  PROMOATTR_LOG_LEVEL, or DEBUG when PROMOATTR_DEBUG is truthy).

Accept/reject diagnostics go to DEBUG; per-page outcomes to INFO.
"""

import logging
import os
from typing import Optional

_ROOT = "promoattr"
_configured = False


def _level_from_env() -> int:
    if os.getenv("PROMOATTR_DEBUG", "false").lower() in ("1", "true", "yes"):
        return logging.DEBUG
    name = os.getenv("PROMOATTR_LOG_LEVEL", "INFO").upper()
    return getattr(logging, name, logging.INFO)


def configure(level: Optional[int] = None) -> None:
    """Attach a single stream handler to the package logger (idempotent)."""
    global _configured
    root = logging.getLogger(_ROOT)
    if not _configured:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        root.addHandler(handler)
        root.propagate = False
        _configured = True
    root.setLevel(level if level is not None else _level_from_env())


def get_logger(name: Optional[str] = None) -> logging.Logger:
    if not _configured:
        configure()
    if not name:
        return logging.getLogger(_ROOT)
    if name == _ROOT or name.startswith(_ROOT + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT}.{name}")
