"""Localizador de recursos (glifos del keypad).

Este módulo vive en `core/` porque:
- centraliza el *dónde* buscamos los glifos sin acoplarse a la CLI
- evita duplicar lógica de paths en adaptadores y tests.

No incluye los glifos en el repo; el usuario los coloca en `data/keypad_digits/`
(ignorarlo en git) o apunta `KEYPAD_SCA_TEMPLATES_DIR` a su directorio.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from core.config import AppSettings, get_user_config_dir

TEMPLATES_DIRNAME = "keypad_digits"


def _project_root() -> Path:
    # core/resources_loader.py -> core -> src -> <project_root>
    return Path(__file__).resolve().parents[2]


def _data_dir() -> Path:
    """Directorio de datos en runtime.

    Reglas:
    - Si KEYPAD_SCA_DATA_DIR está definido, se usa tal cual.
    - Si estamos en modo "frozen" (PyInstaller), usar un path del usuario.
    - En desarrollo, usar <project_root>/data.
    """

    override = (os.environ.get("KEYPAD_SCA_DATA_DIR") or "").strip()
    if override:
        return Path(override)

    if getattr(sys, "frozen", False):
        return get_user_config_dir() / "data"

    return _project_root() / "data"


def _has_templates(directory: Path) -> bool:
    return directory.is_dir() and all((directory / f"{d}.png").is_file() for d in range(10))


def get_templates_dir(settings: AppSettings | None = None) -> Path | None:
    """Busca el directorio de glifos en ubicaciones comunes.

    Orden:
    1) `settings.templates_dir` (si está configurado, se respeta aunque falte)
    2) <data_dir>/keypad_digits
    3) <user_config>/keypad_digits
    4) ./keypad_digits (cwd)
    """

    settings = settings or AppSettings()
    if settings.templates_dir is not None:
        return settings.templates_dir

    candidates = [
        _data_dir() / TEMPLATES_DIRNAME,
        get_user_config_dir() / TEMPLATES_DIRNAME,
        Path.cwd() / TEMPLATES_DIRNAME,
    ]
    for p in candidates:
        if _has_templates(p):
            return p
    return None
