from __future__ import annotations

import logging
import sys

from .config import get_settings

_ROOT = "bookings"


def get_logger(name: str = _ROOT) -> logging.Logger:
    root = logging.getLogger(_ROOT)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s %(name)s - %(message)s"))
        root.addHandler(handler)
        root.setLevel(get_settings().log_level)
        root.propagate = False
    if name == _ROOT or name.startswith(_ROOT + "."):
        return logging.getLogger(name)
    return root.getChild(name)


__all__ = ["get_logger"]
