"""Configuración centralizada de logging.

- Un único handler Rich sobre el root logger, instalado una sola vez.
- Los módulos usan `logging.getLogger(__name__)`; nunca loguean secretos
  (password, OTP, tokens ni coordenadas de click).
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(name)s: %(message)s"


def configure_logging(level: str | int = "INFO", *, console: Console | None = None) -> None:
    """Configura el root logger si todavía no tiene handlers."""

    root = logging.getLogger()
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    root.setLevel(level)

    if root.handlers:
        return

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=False,
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
