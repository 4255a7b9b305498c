"""Cliente del banco: fachada sobre transporte + flujos SCA.

Por qué una fachada:
- Un único `SessionState` por cliente autenticado, compartido por login,
  operaciones sensibles y lecturas.
- Un `asyncio.Lock` serializa todo lo que escribe en la sesión: las
  cabeceras se aplican last-write-wins y dos flujos concurrentes podrían
  restaurar un token viejo.

Las lecturas (cuentas, movimientos, tarjetas...) son GET/POST uniformes que
devuelven el JSON tal cual; no modelamos su esquema.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Any

import httpx

from adapters.http_client import SaveInvestTransport, SecureApiTransport, build_async_client
from adapters.keypad import DigitTemplateLibrary, PixelDiffClassifier
from core.config import AppSettings
from core.domain.actions import SensitiveOperationAction
from core.domain.errors import ConfigurationError
from core.domain.models import (
    Acknowledgement,
    ExternalAccountRequest,
    OtpChannel,
    SaveInvestToken,
    TransferRequest,
)
from core.domain.session import SessionState
from core.interfaces.classifier import DigitClassifier
from core.resources_loader import get_templates_dir
from core.services.sca_flow import LoginResult, ScaFlowController, SensitiveOperationFlow

logger = logging.getLogger(__name__)


def build_classifier(settings: AppSettings) -> PixelDiffClassifier:
    templates_dir = get_templates_dir(settings)
    if templates_dir is None:
        raise ConfigurationError(
            "keypad templates not found; set KEYPAD_SCA_TEMPLATES_DIR to a directory with 0.png .. 9.png"
        )
    library = DigitTemplateLibrary.from_directory(templates_dir)
    return PixelDiffClassifier(library, threshold=settings.pixel_diff_threshold)


class BankClient:
    def __init__(
        self,
        settings: AppSettings | None = None,
        *,
        classifier: DigitClassifier | None = None,
        http_client: httpx.AsyncClient | None = None,
        session: SessionState | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings or AppSettings()
        self._http = http_client or build_async_client(self._settings)
        self._owns_http = http_client is None
        self._classifier = classifier
        self._rng = rng
        self._lock = asyncio.Lock()

        self.session = session or SessionState()
        self.internal_id: str | None = None
        self.secure = SecureApiTransport(self._http, base_url=self._settings.secure_api_url)
        self.save_invest = SaveInvestTransport(
            self._http,
            base_url=self._settings.save_invest_api_url,
            secure=self.secure,
        )

    async def __aenter__(self) -> "BankClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    @property
    def classifier(self) -> DigitClassifier:
        if self._classifier is None:
            self._classifier = build_classifier(self._settings)
        return self._classifier

    @property
    def controller(self) -> ScaFlowController:
        return ScaFlowController(
            self.secure,
            self.classifier,
            canvas_size=(self._settings.keypad_canvas_width, self._settings.keypad_canvas_height),
            rng=self._rng,
        )

    def _password(self, password: str | None) -> str:
        if password:
            return password
        if self._settings.password is not None:
            return self._settings.password.get_secret_value()
        raise ConfigurationError("no password configured (KEYPAD_SCA_PASSWORD)")

    # ------------------------------------------------------------------
    # SCA
    # ------------------------------------------------------------------

    async def connect(
        self,
        customer_id: str | None = None,
        birthdate: str | None = None,
        password: str | None = None,
    ) -> LoginResult:
        """Run the whole login flow and leave `session` authenticated."""

        customer_id = customer_id or self._settings.customer_id
        birthdate = birthdate or self._settings.birthdate
        if not customer_id or not birthdate:
            raise ConfigurationError("customer id and birthdate are required (KEYPAD_SCA_CUSTOMER_ID / KEYPAD_SCA_BIRTHDATE)")
        secret = self._password(password)

        async with self._lock:
            flow = self.controller.login_flow(self.session)
            result = await flow.run(customer_id, birthdate, secret)
        self.internal_id = result.internal_id
        logger.info("Logged in")
        return result

    async def _start(
        self,
        action: SensitiveOperationAction,
        context: TransferRequest | ExternalAccountRequest | None,
        password: str | None,
    ) -> SensitiveOperationFlow:
        secret = self._password(password)
        async with self._lock:
            return await self._run_operation(action, context, secret)

    async def _run_operation(
        self,
        action: SensitiveOperationAction,
        context: TransferRequest | ExternalAccountRequest | None,
        secret: str,
    ) -> SensitiveOperationFlow:
        # El llamador ya tiene el lock.
        flow = self.controller.sensitive_operation(self.session, action, context)
        await flow.run(secret)
        return flow

    async def start_external_transfer(
        self,
        transfer: TransferRequest,
        password: str | None = None,
    ) -> SensitiveOperationFlow:
        return await self._start(SensitiveOperationAction.EXTERNAL_TRANSFER, transfer, password)

    async def start_add_beneficiary(
        self,
        beneficiary: ExternalAccountRequest,
        password: str | None = None,
    ) -> SensitiveOperationFlow:
        """Validate the beneficiary first; a business error stops before any keypad.

        Validation and the keypad flow run under one lock acquisition so no
        other flow touches the session in between.
        """

        secret = self._password(password)
        async with self._lock:
            context = await self.controller.validate_external_account(self.session, beneficiary)
            return await self._run_operation(
                SensitiveOperationAction.ADD_TRANSFER_BENEFICIARY,
                context,
                secret,
            )

    async def start_display_transactions(self, password: str | None = None) -> SensitiveOperationFlow:
        return await self._start(SensitiveOperationAction.DISPLAY_TRANSACTIONS, None, password)

    async def confirm_operation(self, flow: SensitiveOperationFlow, otp: str) -> Acknowledgement:
        async with self._lock:
            return await flow.confirm(otp)

    async def get_otp_channels(self, action: SensitiveOperationAction) -> list[OtpChannel]:
        async with self._lock:
            return await self.controller.get_otp_channels(self.session, action)

    # ------------------------------------------------------------------
    # Lecturas
    # ------------------------------------------------------------------

    async def _call(self, path: str, method: str = "GET", body: Any | None = None) -> Any:
        async with self._lock:
            return await self.secure.call(self.session, path, method, body)

    async def get_session(self) -> Any:
        return await self._call("session")

    async def get_accounts(self) -> Any:
        return await self._call("accounts")

    async def get_account(self, account_id: str) -> Any:
        return await self._call(f"accounts/{account_id}")

    async def get_account_transactions(self, account_id: str, start_at: int = 0, limit: int = 50) -> Any:
        return await self._call(f"accounts/{account_id}/transactions/after/{start_at}/limit/{limit}")

    async def get_customer_info(self) -> Any:
        return await self._call("customer/info")

    async def get_cards(self, account_id: str) -> Any:
        return await self._call(f"accounts/cards/v2/cards/{account_id}")

    async def get_transfer_debit_accounts(self) -> Any:
        return await self._call("transfers/debitAccounts")

    async def get_external_beneficiaries(self) -> Any:
        return await self._call("externalAccounts/beneficiaries")

    async def generate_save_invest_token(self) -> SaveInvestToken:
        """Force a fresh save-invest token, replacing any cached one."""

        async with self._lock:
            self.session.clear_save_invest_token()
            token = await self.save_invest.ensure_token(self.session)
        return SaveInvestToken(token=token)

    async def get_life_insurance_contract(self, contract_id: str) -> Any:
        async with self._lock:
            return await self.save_invest.call(self.session, f"lifeinsurance/contract/{contract_id}")
