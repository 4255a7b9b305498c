"""Contrato del clasificador de dígitos.

Por qué Protocol:
- Define un contrato estructural (duck typing) sin herencia rígida.
- Permite cambiar la estrategia de matching (diff de píxeles, hash
  perceptual...) sin tocar el solver ni el controlador del flujo.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from PIL import Image

from core.domain.keypad import ClassifiedKeypad, KeypadLayout


@runtime_checkable
class DigitClassifier(Protocol):
    """Contrato mínimo para etiquetar un keypad.

    Reglas de diseño:
    - `classify` es síncrono: es CPU puro sobre una imagen ya descargada.
    - Devuelve siempre una biyección o lanza `ClassificationError`.
    """

    def classify(self, image: Image.Image, layout: KeypadLayout) -> ClassifiedKeypad:
        """Etiqueta las diez celdas del keypad."""

        ...
