"""Wrapper de httpx para la API del banco.

Por qué un wrapper:
- Estandariza timeouts, headers y logging en todas las llamadas.
- Aplica la sesión (cookie + token) y la refresca con cada respuesta.
- Traduce fallos de red / status no 2xx / payloads `error` a la jerarquía
  `ScaError`, así el flujo SCA solo ve errores tipados.
- Facilita testeo: se inyecta un `httpx.AsyncClient` con `MockTransport`.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urljoin

import httpx

from core.config import AppSettings
from core.domain.errors import BusinessError, TransportError
from core.domain.models import SaveInvestToken, parse_response
from core.domain.session import SessionState
from core.interfaces.transport import ApiTransport

logger = logging.getLogger(__name__)


def build_async_client(
    settings: AppSettings | None = None,
    *,
    extra_headers: dict[str, str] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Crea un `httpx.AsyncClient` con defaults seguros.

    Por qué un builder:
    - Centraliza timeouts/headers para que todos los transportes se comporten igual.
    - `transport` permite inyectar un `httpx.MockTransport` en tests.
    """

    settings = settings or AppSettings()
    headers: dict[str, str] = {
        "User-Agent": settings.user_agent,
        "Accept": "application/json, text/plain, */*",
    }
    if extra_headers:
        headers.update(extra_headers)
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.http_timeout_seconds),
        follow_redirects=True,
        headers=headers,
        transport=transport,
    )


def raise_for_business_error(payload: Any, *, path: str | None = None) -> None:
    """Un 200 con `error` no es un éxito: lo convierte en `BusinessError`."""

    if not isinstance(payload, dict):
        return
    error = payload.get("error")
    if not error:
        return
    if isinstance(error, dict):
        raise BusinessError.from_payload(error, path=path)
    raise BusinessError(code=str(error), path=path)


def _decode_json(response: httpx.Response, path: str) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as exc:
        raise TransportError(
            f"{path}: response body is not JSON",
            status_code=response.status_code,
            path=path,
        ) from exc


async def _request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    path: str,
    headers: dict[str, str],
    body: Any | None = None,
    session: SessionState | None = None,
) -> httpx.Response:
    """Un request con el mapeo común de errores.

    Si se pasa `session`, las cabeceras de la respuesta se aplican antes de
    comprobar el status (un 401 también puede rotar la cookie).
    """

    try:
        if body is not None:
            response = await client.request(method, url, json=body, headers=headers)
        else:
            response = await client.request(method, url, headers=headers)
    except httpx.HTTPError as exc:
        raise TransportError(f"{method} {path} failed: {exc}", path=path) from exc

    logger.debug("%s %s -> %s", method, path, response.status_code)
    if session is not None:
        session.apply_response(response.headers)

    if response.status_code < 200 or response.status_code >= 300:
        raise TransportError(
            f"{method} {path} returned HTTP {response.status_code}",
            status_code=response.status_code,
            path=path,
        )
    return response


def _business_payload(response: httpx.Response, path: str) -> Any:
    payload = _decode_json(response, path)
    raise_for_business_error(payload, path=path)
    return payload


class SecureApiTransport(ApiTransport):
    """Transporte de la API autenticada (`secure/api-v1`).

    Cada llamada envía `Cookie` e `Ingdf-Auth-Token` (si existen) y luego
    sobrescribe ambos con lo que traiga la respuesta.
    """

    def __init__(self, client: httpx.AsyncClient, *, base_url: str) -> None:
        self._client = client
        self._base_url = base_url if base_url.endswith("/") else base_url + "/"

    def url_for(self, path: str) -> str:
        if "://" in path:
            return path
        return urljoin(self._base_url, path.lstrip("/"))

    def resource_url(self, url: str) -> str:
        """URL de un recurso devuelto por el banco (absoluta, relativa al host o a la base)."""

        if url.startswith("/") and not url.startswith("//"):
            return urljoin(self._base_url, url)
        return self.url_for(url)

    async def call(
        self,
        session: SessionState,
        path: str,
        method: str = "GET",
        body: Any | None = None,
    ) -> Any:
        response = await _request(
            self._client,
            method,
            self.url_for(path),
            path=path,
            headers=session.request_headers(),
            body=body,
            session=session,
        )
        return _business_payload(response, path)

    async def fetch_bytes(self, session: SessionState, path: str) -> bytes:
        response = await _request(
            self._client,
            "GET",
            self.resource_url(path),
            path=path,
            headers=session.request_headers(),
            session=session,
        )
        return response.content


class SaveInvestTransport:
    """Transporte del servicio secundario (`saveinvestapi/v1`).

    El token Bearer se genera una sola vez, al primer acceso, a través de la
    API segura; luego se reutiliza mientras la sesión no lo limpie.
    """

    token_path = "saveInvest/token/generate"

    def __init__(self, client: httpx.AsyncClient, *, base_url: str, secure: ApiTransport) -> None:
        self._client = client
        self._base_url = base_url if base_url.endswith("/") else base_url + "/"
        self._secure = secure

    async def ensure_token(self, session: SessionState) -> str:
        if session.save_invest_token:
            return session.save_invest_token
        payload = await self._secure.call(session, self.token_path)
        token = parse_response(SaveInvestToken, payload, path=self.token_path).token
        session.set_save_invest_token(token)
        logger.info("Generated save-invest token")
        return token

    async def call(
        self,
        session: SessionState,
        path: str,
        method: str = "GET",
        body: Any | None = None,
    ) -> Any:
        token = await self.ensure_token(session)
        headers = {"Authorization": f"Bearer {token}"}
        if session.cookie:
            headers["Cookie"] = session.cookie
        response = await _request(
            self._client,
            method,
            urljoin(self._base_url, path.lstrip("/")),
            path=path,
            headers=headers,
            body=body,
        )
        return _business_payload(response, path)
