from __future__ import annotations

import logging
from typing import Optional

_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(level: str = "INFO", *, fmt: Optional[str] = None) -> None:
    """
    Configure the `supplyprov` logger hierarchy once.

    Library modules only call logging.getLogger(__name__); entry points
    (CLI, HTTP server) call this to attach a handler.
    """
    root = logging.getLogger("supplyprov")
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt or _FORMAT))
        root.addHandler(handler)
