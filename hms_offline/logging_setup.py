from __future__ import annotations

import logging

from rich.logging import RichHandler


def configure_logging(level: str | int = "WARNING", *, verbose: bool = False) -> None:
    if verbose:
        level = logging.DEBUG
    elif isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING
    root = logging.getLogger("hms_offline")
    root.setLevel(level)
    if not any(isinstance(handler, RichHandler) for handler in root.handlers):
        root.addHandler(RichHandler(show_path=False, rich_tracebacks=False))
