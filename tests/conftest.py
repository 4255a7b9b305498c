"""Shared fixtures: synthetic keypad glyphs and an in-memory bank."""

from __future__ import annotations

import io
import json
from typing import Any, Callable

import httpx
import numpy as np
import pytest
from PIL import Image

from adapters.http_client import SecureApiTransport, build_async_client
from adapters.keypad import DigitTemplateLibrary, PixelDiffClassifier
from core.config import AppSettings
from core.domain.keypad import CANONICAL_KEYPAD_SIZE, CELL_SIZE, KeypadLayout

BASE_URL = "https://bank.test/secure/api-v1/"
SAVE_INVEST_URL = "https://bank.test/saveinvestapi/v1/"

# cell0 -> 7, cell1 -> 2, ..., cell9 -> 0
SCENARIO_ORDER = (7, 2, 4, 9, 1, 8, 5, 3, 6, 0)


def make_glyph(digit: int) -> Image.Image:
    """Random 9x8 grid of black/white 10x11 blocks, distinct per digit.

    Blocks keep the glyph stable under the bilinear downscale the classifier
    applies to scaled keypads; any two digits differ on roughly half the pixels.
    """

    rng = np.random.default_rng(1000 + digit)
    width, height = CELL_SIZE
    blocks = rng.integers(0, 2, size=(height // 11, width // 10), dtype=np.uint8) * 255
    mask = np.kron(blocks, np.ones((11, 10), dtype=np.uint8))
    rgba = np.dstack([mask, mask, mask, np.full_like(mask, 255)])
    return Image.fromarray(rgba)


def render_keypad(
    order: tuple[int, ...],
    multiplier: int = 1,
    canvas_size: tuple[int, int] | None = None,
) -> Image.Image:
    """Paste the glyph of `order[i]` into cell i of a blank keypad."""

    width, height = CANONICAL_KEYPAD_SIZE
    size = canvas_size or (width * multiplier, height * multiplier)
    canvas = Image.new("RGBA", size, (255, 255, 255, 255))
    layout = KeypadLayout(size_multiplier=multiplier)
    for index, digit in enumerate(order):
        cell = layout.cell(index)
        glyph = make_glyph(digit)
        if multiplier != 1:
            glyph = glyph.resize((cell.width, cell.height), Image.Resampling.NEAREST)
        canvas.paste(glyph, (cell.x, cell.y))
    return canvas


def to_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture(scope="session")
def templates() -> dict[int, Image.Image]:
    return {digit: make_glyph(digit) for digit in range(10)}


@pytest.fixture(scope="session")
def library(templates: dict[int, Image.Image]) -> DigitTemplateLibrary:
    return DigitTemplateLibrary(templates)


@pytest.fixture(scope="session")
def classifier(library: DigitTemplateLibrary) -> PixelDiffClassifier:
    return PixelDiffClassifier(library)


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        _env_file=None,
        secure_api_url=BASE_URL,
        save_invest_api_url=SAVE_INVEST_URL,
        customer_id="0123456789",
        birthdate="01011970",
        password="847213",
    )


Responder = Callable[[httpx.Request], httpx.Response]


class FakeBank:
    """Routes `(METHOD, path?query)` relative to the secure API base to canned responses."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[tuple[str, str], Responder] = {}

    def route(
        self,
        method: str,
        path: str,
        payload: Any = None,
        *,
        status: int = 200,
        headers: dict[str, str] | None = None,
        content: bytes | None = None,
    ) -> None:
        def responder(request: httpx.Request) -> httpx.Response:
            if content is not None:
                return httpx.Response(status, content=content, headers=headers)
            return httpx.Response(status, json=payload, headers=headers)

        self.routes[(method, path)] = responder

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        for prefix in ("/secure/api-v1/", "/saveinvestapi/v1/"):
            if path.startswith(prefix):
                path = path[len(prefix) :]
        if request.url.query:
            path = f"{path}?{request.url.query.decode()}"
        responder = self.routes.get((request.method, path))
        if responder is None:
            return httpx.Response(404, json={"message": f"no route for {request.method} {path}"})
        return responder(request)

    def calls(self) -> list[str]:
        return [f"{r.method} {r.url.path.rsplit('/api-v1/', 1)[-1]}" for r in self.requests]

    def last(self, fragment: str) -> httpx.Request:
        for request in reversed(self.requests):
            if fragment in str(request.url):
                return request
        raise AssertionError(f"no request matching {fragment!r}; saw {self.calls()}")

    def body(self, fragment: str) -> Any:
        return json.loads(self.last(fragment).content)

    def install_login(self, order: tuple[int, ...] = SCENARIO_ORDER, pin_positions: list[int] | None = None) -> None:
        self.route("POST", "login/cif?v2=true", {"id": "internal-42"}, headers={"Set-Cookie": "SESSION=step1"})
        self.route("POST", "login/keypad?v2=true", {"pinPositions": pin_positions or [1, 3]})
        self.route("GET", "keypad/newkeypad.png", content=to_png(render_keypad(order)))
        self.route(
            "POST",
            "login/sca/pin",
            {},
            headers={"Set-Cookie": "SESSION=step2", "Ingdf-Auth-Token": "token-1"},
        )
        self.route("GET", "session", {"authenticated": True})

    def install_operation(
        self,
        action: str,
        order: tuple[int, ...] = SCENARIO_ORDER,
        multiplier: int = 2,
        channels: list[dict[str, Any]] | None = None,
    ) -> None:
        self.route(
            "POST",
            "sca/keyPad",
            {"pinPositions": [1, 3, 5], "keyPadUrl": "/secure/api-v1/sca/keypad/abc.png"},
        )
        self.route("GET", "sca/keypad/abc.png", content=to_png(render_keypad(order, multiplier)))
        self.route("POST", "sca/validatePin", {"secretCode": "secret-1", "validated": True})
        self.route(
            "GET",
            f"sensitiveoperation/{action}/otpChannels",
            channels
            if channels is not None
            else [
                {"type": "EMAIL", "phone": None},
                {"type": "SMS_MOBILE", "phone": "+33600000001"},
                {"type": "SMS_MOBILE", "phone": "+33600000002"},
            ],
        )
        self.route("POST", "sca/sendOtp", {"acknowledged": True})
        self.route("POST", "sca/confirmOtp", {"acknowledged": True})


@pytest.fixture
def bank() -> FakeBank:
    return FakeBank()


@pytest.fixture
def http_client(bank: FakeBank, settings: AppSettings) -> httpx.AsyncClient:
    return build_async_client(settings, transport=httpx.MockTransport(bank.handler))


@pytest.fixture
def transport(http_client: httpx.AsyncClient) -> SecureApiTransport:
    return SecureApiTransport(http_client, base_url=BASE_URL)
