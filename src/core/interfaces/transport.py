"""Contrato del transporte HTTP usado por el flujo SCA.

Por qué Protocol:
- El controlador depende de esta abstracción y no de httpx, así cada
  transición se prueba sin red.
- La sesión viaja explícita en cada llamada: no hay estado ambiente.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from core.domain.session import SessionState


@runtime_checkable
class ApiTransport(Protocol):
    async def call(
        self,
        session: SessionState,
        path: str,
        method: str = "GET",
        body: Any | None = None,
    ) -> Any:
        """Llama a la API, refresca `session` con las cabeceras y devuelve el JSON."""

        ...

    async def fetch_bytes(self, session: SessionState, path: str) -> bytes:
        """Descarga un recurso binario (imagen del keypad) con la sesión actual."""

        ...
