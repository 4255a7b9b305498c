"""Componentes de UI para CLI (Rich).

Por qué separar componentes:
- Evita mezclar lógica de comandos con detalles visuales.
- Permite reutilizar tablas/paneles en múltiples comandos.
"""

from __future__ import annotations

from collections.abc import Sequence

from rich.align import Align
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from core.domain.keypad import ClassifiedKeypad, ClickCoordinate, KeypadLayout


def print_banner(console: Console) -> None:
    """Imprime el banner de bienvenida."""

    title = Text("KEYPAD-SCA", style="bold cyan")
    subtitle = Text("Keypad virtual • SCA • OTP", style="dim")
    body = Align.center(Text.assemble(title, "\n", subtitle), vertical="middle")
    console.print(Panel(body, border_style="cyan", padding=(1, 4)))


def build_keypad_table(keypad: ClassifiedKeypad, layout: KeypadLayout) -> Table:
    """Tabla celda -> dígito reconocido (con el diff ganador si existe)."""

    table = Table(title=f"Keypad (x{layout.size_multiplier})")
    table.add_column("Cell", style="cyan", no_wrap=True)
    table.add_column("Box", style="dim")
    table.add_column("Digit", style="bold green")
    table.add_column("Diff", style="white")
    for index, digit in enumerate(keypad.digits):
        cell = layout.cell(index)
        score = f"{keypad.scores[index]:.4f}" if keypad.scores else "-"
        table.add_row(str(index), f"{cell.x},{cell.y} {cell.width}x{cell.height}", str(digit), score)
    return table


def build_clicks_table(positions: Sequence[int], clicks: Sequence[ClickCoordinate]) -> Table:
    table = Table(title="Clicks")
    table.add_column("Position", style="cyan", no_wrap=True)
    table.add_column("X", style="white")
    table.add_column("Y", style="white")
    for position, click in zip(positions, clicks):
        table.add_row(str(position), f"{click.x:.2f}", f"{click.y:.2f}")
    return table

