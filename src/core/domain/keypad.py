"""Geometría y resultado del keypad virtual.

Por qué dataclasses congeladas:
- Son valores puros (sin I/O) que se comparten entre clasificador, solver y CLI.
- Las invariantes (10 celdas, biyección) se validan al construir, así que un
  objeto inválido nunca llega al solver.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from core.domain.errors import ClassificationError

CANONICAL_KEYPAD_SIZE = (484, 190)
CELL_SIZE = (90, 88)
DIGITS = tuple(range(10))


@dataclass(frozen=True)
class KeypadCell:
    """Rectángulo de una celda en el canvas canónico (sin escalar)."""

    x: int
    y: int
    width: int = CELL_SIZE[0]
    height: int = CELL_SIZE[1]

    def scaled(self, multiplier: int) -> "KeypadCell":
        return KeypadCell(
            x=self.x * multiplier,
            y=self.y * multiplier,
            width=self.width * multiplier,
            height=self.height * multiplier,
        )

    def box(self) -> tuple[int, int, int, int]:
        """Caja `(left, upper, right, lower)` tal como la espera Pillow."""

        return (self.x, self.y, self.x + self.width, self.y + self.height)

    def contains(self, x: float, y: float) -> bool:
        return self.x <= x < self.x + self.width and self.y <= y < self.y + self.height

    def overlaps(self, other: "KeypadCell") -> bool:
        return not (
            self.x + self.width <= other.x
            or other.x + other.width <= self.x
            or self.y + self.height <= other.y
            or other.y + other.height <= self.y
        )


_DEFAULT_CELLS = (
    KeypadCell(3, 3),
    KeypadCell(99, 3),
    KeypadCell(196, 3),
    KeypadCell(293, 3),
    KeypadCell(390, 3),
    KeypadCell(3, 98),
    KeypadCell(99, 98),
    KeypadCell(196, 98),
    KeypadCell(293, 98),
    KeypadCell(390, 98),
)


@dataclass(frozen=True)
class KeypadLayout:
    """Rejilla 5x2 de diez celdas, escalable por un multiplicador entero."""

    cells: tuple[KeypadCell, ...] = _DEFAULT_CELLS
    size_multiplier: int = 1

    def __post_init__(self) -> None:
        if len(self.cells) != len(DIGITS):
            raise ValueError(f"a keypad layout needs exactly {len(DIGITS)} cells, got {len(self.cells)}")
        if self.size_multiplier < 1:
            raise ValueError("size_multiplier must be >= 1")
        for i, cell in enumerate(self.cells):
            for other in self.cells[i + 1 :]:
                if cell.overlaps(other):
                    raise ValueError(f"keypad cells overlap: {cell} / {other}")

    @classmethod
    def for_image_size(cls, width: int, height: int) -> "KeypadLayout":
        """Mayor multiplicador cuya rejilla cabe en la imagen recibida (ancho y alto)."""

        canonical_width, canonical_height = CANONICAL_KEYPAD_SIZE
        multiplier = max(1, min(width // canonical_width, height // canonical_height))
        return cls(size_multiplier=multiplier)

    def with_multiplier(self, multiplier: int) -> "KeypadLayout":
        return KeypadLayout(cells=self.cells, size_multiplier=multiplier)

    def cell(self, index: int) -> KeypadCell:
        """Celda `index` ya escalada."""

        return self.cells[index].scaled(self.size_multiplier)

    def scaled_cells(self) -> list[KeypadCell]:
        return [self.cell(i) for i in range(len(self.cells))]


@dataclass(frozen=True)
class ClassifiedKeypad:
    """Mapa índice de celda -> dígito reconocido. Siempre una biyección."""

    digits: tuple[int, ...]
    scores: tuple[float, ...] = field(default=(), compare=False)

    def __post_init__(self) -> None:
        if len(self.digits) != len(DIGITS):
            raise ClassificationError(f"expected {len(DIGITS)} classified cells, got {len(self.digits)}")
        if sorted(self.digits) != list(DIGITS):
            duplicates = sorted({d for d in self.digits if self.digits.count(d) > 1})
            raise ClassificationError(
                f"keypad classification is not a bijection (duplicated digits: {duplicates}); "
                "the image is corrupt or the layout multiplier does not match"
            )

    def cell_of(self, digit: int) -> int:
        """Índice de la celda que contiene `digit`."""

        try:
            return self.digits.index(digit)
        except ValueError:
            raise ClassificationError(f"digit {digit!r} is not present on the keypad") from None


@dataclass(frozen=True)
class ClickCoordinate:
    """Posición de click en píxeles (float), dentro de la celda destino."""

    x: float
    y: float

    def as_pair(self) -> list[float]:
        return [self.x, self.y]
