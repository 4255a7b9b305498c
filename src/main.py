"""Script de ejecución: `python -m main ...` desde `src/`."""

from __future__ import annotations

import sys

# Consolas Windows en cp1252 rompen los paneles Rich.
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8")
    sys.stderr.reconfigure(encoding="utf-8")

from cli.main import run


def main() -> None:
    run()


if __name__ == "__main__":
    main()
