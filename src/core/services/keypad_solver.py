"""Keypad click synthesis.

Given a classified keypad, the password offsets the bank is asking for and
the secret password, produce one click per requested offset. Each click
lands at a uniformly random point inside the target cell rather than at its
center, so repeated logins do not replay the same coordinates.
"""

from __future__ import annotations

import random
from collections.abc import Sequence

from core.domain.errors import ClassificationError
from core.domain.keypad import ClassifiedKeypad, ClickCoordinate, KeypadLayout


def requested_digits(missing_positions: Sequence[int], password: str) -> list[int]:
    """Digits to press, in the order of `missing_positions` (1-based offsets)."""

    digits: list[int] = []
    for position in missing_positions:
        if position < 1 or position > len(password):
            raise ClassificationError(
                f"requested password position {position} is outside a {len(password)}-digit password"
            )
        char = password[position - 1]
        if not char.isdigit():
            raise ClassificationError(f"password character at position {position} is not a digit")
        digits.append(int(char))
    return digits


def solve(
    keypad: ClassifiedKeypad,
    layout: KeypadLayout,
    missing_positions: Sequence[int],
    password: str,
    *,
    rng: random.Random | None = None,
) -> list[ClickCoordinate]:
    """Return the ordered click coordinates for the requested password digits."""

    rng = rng or random.SystemRandom()
    clicks: list[ClickCoordinate] = []
    for digit in requested_digits(missing_positions, password):
        cell = layout.cell(keypad.cell_of(digit))
        clicks.append(
            ClickCoordinate(
                x=cell.x + rng.random() * cell.width,
                y=cell.y + rng.random() * cell.height,
            )
        )
    return clicks
