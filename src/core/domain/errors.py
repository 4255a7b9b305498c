"""Taxonomía de errores del motor SCA.

Por qué una jerarquía propia:
- El llamador distingue fallos de red, de clasificación, de negocio y de
  secuencia sin inspeccionar mensajes.
- Todos heredan de `ScaError` para poder abortar un flujo con un único
  `except`.
"""

from __future__ import annotations

from typing import Any


class ScaError(Exception):
    """Base de todos los errores del motor."""


class ConfigurationError(ScaError):
    """Faltan credenciales, plantillas u otra configuración obligatoria."""


class TransportError(ScaError):
    """Fallo de red, timeout, status no 2xx o cuerpo ilegible."""

    def __init__(self, message: str, *, status_code: int | None = None, path: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.path = path


class ClassificationError(ScaError):
    """El keypad no se pudo etiquetar de forma inequívoca."""


class SequencingError(ScaError):
    """Un paso del flujo SCA se invocó antes de completar el anterior."""


class BusinessError(ScaError):
    """Respuesta 200 con un payload `error` del banco.

    Se expone tal cual (code + message + values) para que el llamador decida.
    """

    def __init__(
        self,
        code: str,
        message: str = "",
        values: dict[str, Any] | None = None,
        *,
        path: str | None = None,
    ) -> None:
        super().__init__(f"{code}: {message}" if message else code)
        self.code = code
        self.message = message
        self.values = dict(values or {})
        self.path = path

    @classmethod
    def from_payload(cls, error: dict[str, Any], *, path: str | None = None) -> "BusinessError":
        values = error.get("values")
        return cls(
            code=str(error.get("code") or "UNKNOWN"),
            message=str(error.get("message") or ""),
            values=values if isinstance(values, dict) else {},
            path=path,
        )
