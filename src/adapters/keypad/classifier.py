"""Clasificador por diferencia de píxeles.

Algoritmo:
- Recorta cada celda del layout (ya escalada por el multiplicador).
- Reescala el recorte al tamaño de las plantillas si difiere.
- Elige la plantilla con el diff estrictamente menor (`<`): a igualdad gana
  el dígito más bajo.
"""

from __future__ import annotations

import io
import logging
import math

from PIL import Image, UnidentifiedImageError

from adapters.keypad.templates import DigitTemplateLibrary
from core.domain.errors import ClassificationError
from core.domain.keypad import ClassifiedKeypad, KeypadLayout
from core.interfaces.classifier import DigitClassifier

logger = logging.getLogger(__name__)


def decode_keypad_image(data: bytes) -> Image.Image:
    """Decodifica los bytes PNG del keypad a una imagen RGBA."""

    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.convert("RGBA")
    except (OSError, UnidentifiedImageError) as exc:
        raise ClassificationError(f"keypad image is not decodable: {exc}") from exc


class PixelDiffClassifier(DigitClassifier):
    def __init__(self, library: DigitTemplateLibrary, *, threshold: float = 0.1) -> None:
        self._library = library
        self._threshold = threshold

    @property
    def threshold(self) -> float:
        return self._threshold

    def best_match(self, glyph: Image.Image) -> tuple[int, float]:
        closest_digit = 0
        closest_score = math.inf
        for digit, score in enumerate(self._library.scores(glyph, self._threshold)):
            if score < closest_score:
                closest_score = score
                closest_digit = digit
        return closest_digit, closest_score

    def classify(self, image: Image.Image, layout: KeypadLayout) -> ClassifiedKeypad:
        rgba = image.convert("RGBA")
        cells = layout.scaled_cells()

        right = max(cell.x + cell.width for cell in cells)
        bottom = max(cell.y + cell.height for cell in cells)
        if right > rgba.width or bottom > rgba.height:
            raise ClassificationError(
                f"keypad image {rgba.size} is smaller than the layout "
                f"(x{layout.size_multiplier} needs {right}x{bottom})"
            )

        digits: list[int] = []
        scores: list[float] = []
        for index, cell in enumerate(cells):
            glyph = rgba.crop(cell.box())
            if glyph.size != self._library.size:
                glyph = glyph.resize(self._library.size, Image.Resampling.BILINEAR)
            digit, score = self.best_match(glyph)
            logger.debug("cell %d -> digit %d (diff %.4f)", index, digit, score)
            digits.append(digit)
            scores.append(score)

        return ClassifiedKeypad(digits=tuple(digits), scores=tuple(scores))
