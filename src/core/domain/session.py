"""Estado de sesión compartido por todas las llamadas de un cliente autenticado.

Reglas:
- `cookie` y `auth_token` se sobrescriben (nunca se mezclan) cuando una
  respuesta trae la cabecera correspondiente.
- `save_invest_token` solo lo fija el paso explícito de generación de token.
- Escritura last-write-wins: el llamador serializa flujos concurrentes.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

COOKIE_HEADER = "Set-Cookie"
AUTH_TOKEN_HEADER = "Ingdf-Auth-Token"


def _header(headers: Mapping[str, str], name: str) -> str | None:
    # httpx.Headers ya es case-insensitive; un dict plano no.
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        for key, candidate in headers.items():
            if key.lower() == lowered:
                value = candidate
                break
    return value or None


@dataclass
class SessionState:
    cookie: str | None = None
    auth_token: str | None = None
    save_invest_token: str | None = None

    def apply_response(self, headers: Mapping[str, str]) -> None:
        """Refresca cookie/token desde las cabeceras de una respuesta."""

        cookie = _header(headers, COOKIE_HEADER)
        if cookie:
            self.cookie = cookie
        auth_token = _header(headers, AUTH_TOKEN_HEADER)
        if auth_token:
            self.auth_token = auth_token

    def set_save_invest_token(self, token: str) -> None:
        self.save_invest_token = token

    def clear_save_invest_token(self) -> None:
        """Fuerza a regenerar el token secundario en el próximo acceso."""

        self.save_invest_token = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.cookie and self.auth_token)

    def request_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.cookie:
            headers["Cookie"] = self.cookie
        if self.auth_token:
            headers[AUTH_TOKEN_HEADER] = self.auth_token
        return headers
