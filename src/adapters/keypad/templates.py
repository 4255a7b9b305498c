"""Librería de glifos de referencia (dígitos 0-9).

Formato en disco:
- Un PNG por dígito: `<dir>/0.png` .. `<dir>/9.png`.
- Tamaño canónico 90x88 (celda sin escalar); si no coincide se reescala al cargar.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

import numpy as np
from PIL import Image, UnidentifiedImageError

from core.domain.errors import ConfigurationError
from core.domain.keypad import CELL_SIZE, DIGITS

logger = logging.getLogger(__name__)


def pixel_diff_percent(left: Image.Image, right: Image.Image, threshold: float = 0.1) -> float:
    """Fracción (0..1) de píxeles distintos entre dos imágenes del mismo tamaño.

    Un píxel cuenta como distinto cuando algún canal RGBA difiere más de
    `threshold * 255`.

    No es la métrica de pixelmatch (distancia perceptual YIQ con
    detección de anti-aliasing): es una comparación por canal, más
    estricta con el color. Sobre glifos en blanco y negro
    ambas separan los dígitos igual; el umbral por defecto (0.1) es el
    mismo. Otra métrica puede sustituirla detrás de `DigitClassifier`.
    """

    if left.size != right.size:
        raise ValueError(f"cannot diff images of different sizes: {left.size} vs {right.size}")

    a = np.asarray(left.convert("RGBA"), dtype=np.int16)
    b = np.asarray(right.convert("RGBA"), dtype=np.int16)
    delta = np.abs(a - b).max(axis=2)
    return float((delta > threshold * 255).mean())


class DigitTemplateLibrary:
    """Diez glifos etiquetados, uno por dígito, al tamaño canónico de celda."""

    def __init__(self, templates: Mapping[int, Image.Image], *, size: tuple[int, int] = CELL_SIZE) -> None:
        if sorted(templates) != list(DIGITS):
            raise ConfigurationError(
                f"a template library needs exactly one glyph per digit 0-9, got {sorted(templates)}"
            )
        self._size = size
        self._templates: dict[int, Image.Image] = {}
        for digit in DIGITS:
            glyph = templates[digit].convert("RGBA")
            if glyph.size != size:
                glyph = glyph.resize(size, Image.Resampling.BILINEAR)
            self._templates[digit] = glyph

    @property
    def size(self) -> tuple[int, int]:
        return self._size

    def __len__(self) -> int:
        return len(self._templates)

    def glyph(self, digit: int) -> Image.Image:
        return self._templates[digit]

    def scores(self, glyph: Image.Image, threshold: float = 0.1) -> list[float]:
        """Diff contra cada plantilla, en orden de dígito."""

        return [pixel_diff_percent(glyph, self._templates[d], threshold) for d in DIGITS]

    @classmethod
    def from_directory(cls, directory: Path) -> "DigitTemplateLibrary":
        if not directory.is_dir():
            raise ConfigurationError(f"keypad templates directory not found: {directory}")

        templates: dict[int, Image.Image] = {}
        for digit in DIGITS:
            path = directory / f"{digit}.png"
            if not path.is_file():
                raise ConfigurationError(f"missing keypad template for digit {digit}: {path}")
            try:
                with Image.open(path) as img:
                    templates[digit] = img.convert("RGBA")
            except (OSError, UnidentifiedImageError) as exc:
                raise ConfigurationError(f"unreadable keypad template {path}: {exc}") from exc

        logger.debug("Loaded %d keypad templates from %s", len(templates), directory)
        return cls(templates)
