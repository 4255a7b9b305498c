"""Solver del keypad virtual (Pillow + numpy).

Por qué un paquete:
- Agrupa la librería de glifos y el clasificador por diff de píxeles.
- El clasificador implementa `core.interfaces.classifier.DigitClassifier`.
"""

from adapters.keypad.classifier import PixelDiffClassifier, decode_keypad_image
from adapters.keypad.templates import DigitTemplateLibrary, pixel_diff_percent

__all__ = [
    "DigitTemplateLibrary",
    "PixelDiffClassifier",
    "decode_keypad_image",
    "pixel_diff_percent",
]
