"""Strong Customer Authentication flow orchestration.

This module sequences the bank's SCA round trips as explicit state machines:
one for the initial login and one per sensitive operation. Every transition
issues exactly one blocking network call (or one keypad fetch), checks that
the previous transition completed, and threads the caller's `SessionState`
through the transport explicitly. Nothing is retried: a failed step aborts
the flow and the caller restarts from `INIT`, because a fetched keypad
challenge may be single-use on the server side.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from PIL import Image

from adapters.keypad.classifier import decode_keypad_image
from core.domain.actions import SensitiveOperationAction
from core.domain.errors import BusinessError, ScaError, SequencingError, TransportError
from core.domain.keypad import ClickCoordinate, KeypadLayout
from core.domain.models import (
    Acknowledgement,
    ExternalAccountRequest,
    KeypadChallenge,
    LoginIdentity,
    NoContext,
    OperationContext,
    OtpChannel,
    PinValidation,
    SessionStatus,
    context_matches,
    context_payload,
    parse_response,
)
from core.domain.session import SessionState
from core.interfaces.classifier import DigitClassifier
from core.interfaces.transport import ApiTransport
from core.services.keypad_solver import solve

logger = logging.getLogger(__name__)

LOGIN_CIF_PATH = "login/cif?v2=true"
LOGIN_KEYPAD_PATH = "login/keypad?v2=true"
LOGIN_KEYPAD_IMAGE_PATH = "keypad/newkeypad.png"
LOGIN_PIN_PATH = "login/sca/pin"
SESSION_PATH = "session"
EXTERNAL_ACCOUNT_VALIDATE_PATH = "externalAccounts/validate"
SCA_KEYPAD_PATH = "sca/keyPad"
SCA_VALIDATE_PIN_PATH = "sca/validatePin"
SCA_SEND_OTP_PATH = "sca/sendOtp"
SCA_CONFIRM_OTP_PATH = "sca/confirmOtp"


def otp_channels_path(action: SensitiveOperationAction) -> str:
    return f"sensitiveoperation/{action.value}/otpChannels"


class ScaState(str, Enum):
    INIT = "INIT"
    CREDENTIALS_SUBMITTED = "CREDENTIALS_SUBMITTED"
    KEYPAD_FETCHED = "KEYPAD_FETCHED"
    PIN_SUBMITTED = "PIN_SUBMITTED"
    SESSION_CONFIRMED = "SESSION_CONFIRMED"
    CHANNEL_SELECTED = "CHANNEL_SELECTED"
    OTP_SENT = "OTP_SENT"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"


@dataclass
class FetchedKeypad:
    """A keypad challenge together with its decoded image and scaled layout."""

    challenge: KeypadChallenge
    image: Image.Image
    layout: KeypadLayout


def select_sms_channel(channels: Sequence[OtpChannel]) -> OtpChannel:
    """First SMS_MOBILE channel in the order the bank returned them."""

    for channel in channels:
        if channel.is_sms_mobile:
            return channel
    raise BusinessError(
        code="NO_SMS_MOBILE_CHANNEL",
        message="no SMS_MOBILE OTP channel is registered for this customer",
        values={"types": [c.type for c in channels]},
    )


class ScaFlowController:
    """Builds login and sensitive-operation flows sharing one transport and classifier."""

    def __init__(
        self,
        transport: ApiTransport,
        classifier: DigitClassifier,
        *,
        canvas_size: tuple[int, int] = (3800, 1520),
        rng: random.Random | None = None,
    ) -> None:
        self.transport = transport
        self.classifier = classifier
        self.canvas_size = canvas_size
        self.rng = rng

    def keypad_size_payload(self) -> dict[str, int]:
        width, height = self.canvas_size
        return {"width": width, "height": height}

    async def fetch_keypad(
        self,
        session: SessionState,
        challenge: KeypadChallenge,
        image_path: str,
        *,
        size_multiplier: int | None = None,
    ) -> FetchedKeypad:
        image = decode_keypad_image(await self.transport.fetch_bytes(session, image_path))
        if size_multiplier is None:
            layout = KeypadLayout.for_image_size(image.width, image.height)
        else:
            layout = KeypadLayout(size_multiplier=size_multiplier)
        logger.info(
            "Keypad fetched (%dx%d, x%d, %d digits requested)",
            image.width,
            image.height,
            layout.size_multiplier,
            len(challenge.pin_positions),
        )
        return FetchedKeypad(challenge=challenge, image=image, layout=layout)

    def compute_clicks(self, keypad: FetchedKeypad, password: str) -> list[ClickCoordinate]:
        classified = self.classifier.classify(keypad.image, keypad.layout)
        return solve(
            classified,
            keypad.layout,
            keypad.challenge.pin_positions,
            password,
            rng=self.rng,
        )

    def login_flow(self, session: SessionState) -> "LoginFlow":
        return LoginFlow(self, session)

    def sensitive_operation(
        self,
        session: SessionState,
        action: SensitiveOperationAction,
        context: OperationContext | None = None,
    ) -> "SensitiveOperationFlow":
        return SensitiveOperationFlow(self, session, action, context or NoContext())

    async def get_otp_channels(
        self,
        session: SessionState,
        action: SensitiveOperationAction,
    ) -> list[OtpChannel]:
        path = otp_channels_path(action)
        payload = await self.transport.call(session, path)
        if isinstance(payload, dict):
            # Algunas respuestas envuelven la lista.
            payload = payload.get("otpChannels") or payload.get("channels") or []
        if not isinstance(payload, list):
            raise TransportError(f"{path}: expected a list of OTP channels", path=path)
        return [parse_response(OtpChannel, item, path=path) for item in payload]

    async def validate_external_account(
        self,
        session: SessionState,
        request: ExternalAccountRequest,
    ) -> ExternalAccountRequest:
        """Pre-step of ADD_TRANSFER_BENEFICIARY: the bank checks IBAN and holder.

        A business error (bad IBAN format, duplicate account...) propagates
        untouched and no keypad is ever requested.
        """

        payload = await self.transport.call(
            session,
            EXTERNAL_ACCOUNT_VALIDATE_PATH,
            "POST",
            request.to_wire(),
        )
        validated: dict[str, Any] = request.to_wire()
        if isinstance(payload, dict):
            validated.update({k: v for k, v in payload.items() if k in validated and v})
        logger.info("External account validated")
        return parse_response(ExternalAccountRequest, validated, path=EXTERNAL_ACCOUNT_VALIDATE_PATH)


class _Flow:
    def __init__(self, controller: ScaFlowController, session: SessionState) -> None:
        self.controller = controller
        self.session = session
        self.state = ScaState.INIT
        self.keypad: FetchedKeypad | None = None

    def _require(self, step: str, *allowed: ScaState) -> None:
        if self.state not in allowed:
            expected = ", ".join(s.value for s in allowed)
            raise SequencingError(f"cannot {step} in state {self.state.value} (expected {expected})")

    def _advance(self, state: ScaState) -> None:
        logger.info("%s: %s -> %s", type(self).__name__, self.state.value, state.value)
        self.state = state


@dataclass
class LoginResult:
    internal_id: str | None
    status: SessionStatus


class LoginFlow(_Flow):
    """INIT -> CREDENTIALS_SUBMITTED -> KEYPAD_FETCHED -> PIN_SUBMITTED -> SESSION_CONFIRMED."""

    def __init__(self, controller: ScaFlowController, session: SessionState) -> None:
        super().__init__(controller, session)
        self.identity: LoginIdentity | None = None

    async def submit_credentials(self, customer_id: str, birthdate: str) -> LoginIdentity:
        self._require("submit credentials", ScaState.INIT)
        payload = await self.controller.transport.call(
            self.session,
            LOGIN_CIF_PATH,
            "POST",
            {"cif": customer_id, "birthDate": birthdate},
        )
        self.identity = parse_response(LoginIdentity, payload or {}, path=LOGIN_CIF_PATH)
        self._advance(ScaState.CREDENTIALS_SUBMITTED)
        return self.identity

    async def fetch_keypad(self, *, size_multiplier: int | None = None) -> FetchedKeypad:
        self._require("fetch the login keypad", ScaState.CREDENTIALS_SUBMITTED)
        payload = await self.controller.transport.call(
            self.session,
            LOGIN_KEYPAD_PATH,
            "POST",
            {"keyPadSize": self.controller.keypad_size_payload(), "mode": ""},
        )
        challenge = parse_response(KeypadChallenge, payload, path=LOGIN_KEYPAD_PATH)
        self.keypad = await self.controller.fetch_keypad(
            self.session,
            challenge,
            LOGIN_KEYPAD_IMAGE_PATH,
            size_multiplier=size_multiplier,
        )
        self._advance(ScaState.KEYPAD_FETCHED)
        return self.keypad

    async def submit_pin(self, password: str) -> None:
        self._require("submit the pin", ScaState.KEYPAD_FETCHED)
        assert self.keypad is not None
        clicks = self.controller.compute_clicks(self.keypad, password)
        await self.controller.transport.call(
            self.session,
            LOGIN_PIN_PATH,
            "POST",
            {"clickPositions": [c.as_pair() for c in clicks]},
        )
        self._advance(ScaState.PIN_SUBMITTED)

    async def confirm_session(self) -> SessionStatus:
        self._require("confirm the session", ScaState.PIN_SUBMITTED)
        payload = await self.controller.transport.call(self.session, SESSION_PATH)
        status = parse_response(SessionStatus, payload or {}, path=SESSION_PATH)
        if not status.authenticated:
            raise BusinessError(
                code="SESSION_NOT_AUTHENTICATED",
                message="the bank did not authenticate the session after pin submission",
                path=SESSION_PATH,
            )
        self._advance(ScaState.SESSION_CONFIRMED)
        return status

    async def run(self, customer_id: str, birthdate: str, password: str) -> LoginResult:
        identity = await self.submit_credentials(customer_id, birthdate)
        await self.fetch_keypad()
        await self.submit_pin(password)
        status = await self.confirm_session()
        return LoginResult(internal_id=identity.internal_id, status=status)


class SensitiveOperationFlow(_Flow):
    """INIT -> KEYPAD_FETCHED -> PIN_SUBMITTED -> CHANNEL_SELECTED -> OTP_SENT -> CONFIRMED | REJECTED.

    The operation context is fixed at construction and sent unchanged with
    pin validation, OTP dispatch and OTP confirmation.
    """

    def __init__(
        self,
        controller: ScaFlowController,
        session: SessionState,
        action: SensitiveOperationAction,
        context: OperationContext,
    ) -> None:
        if not context_matches(action, context):
            raise ValueError(
                f"{action.value} cannot carry a {type(context).__name__} operation context"
            )
        super().__init__(controller, session)
        self.action = action
        self.context = context
        self.secret_code: str | None = None
        self.channel: OtpChannel | None = None

    def _with_context(self, body: dict[str, Any]) -> dict[str, Any]:
        return {**body, **context_payload(self.action, self.context)}

    async def fetch_keypad(self, *, size_multiplier: int | None = None) -> FetchedKeypad:
        self._require("fetch the operation keypad", ScaState.INIT)
        payload = await self.controller.transport.call(
            self.session,
            SCA_KEYPAD_PATH,
            "POST",
            {
                "keyPadSize": self.controller.keypad_size_payload(),
                "sensitiveOperationAction": self.action.value,
            },
        )
        challenge = parse_response(KeypadChallenge, payload, path=SCA_KEYPAD_PATH)
        if not challenge.keypad_url:
            raise BusinessError(
                code="MISSING_KEYPAD_URL",
                message="keypad challenge did not include an image URL",
                path=SCA_KEYPAD_PATH,
            )
        self.keypad = await self.controller.fetch_keypad(
            self.session,
            challenge,
            challenge.keypad_url,
            size_multiplier=size_multiplier,
        )
        self._advance(ScaState.KEYPAD_FETCHED)
        return self.keypad

    async def submit_pin(self, password: str) -> str:
        self._require("validate the pin", ScaState.KEYPAD_FETCHED)
        assert self.keypad is not None
        clicks = self.controller.compute_clicks(self.keypad, password)
        payload = await self.controller.transport.call(
            self.session,
            SCA_VALIDATE_PIN_PATH,
            "POST",
            self._with_context(
                {
                    "keyPad": {"clickPositions": [c.as_pair() for c in clicks]},
                    "sensitiveOperationAction": self.action.value,
                }
            ),
        )
        validation = parse_response(PinValidation, payload or {}, path=SCA_VALIDATE_PIN_PATH)
        if not validation.secret_code:
            raise BusinessError(
                code="PIN_NOT_VALIDATED",
                message="pin validation did not return a secret code",
                values={"validated": validation.validated},
                path=SCA_VALIDATE_PIN_PATH,
            )
        self.secret_code = validation.secret_code
        self._advance(ScaState.PIN_SUBMITTED)
        return self.secret_code

    async def select_channel(self) -> OtpChannel:
        self._require("select an OTP channel", ScaState.PIN_SUBMITTED)
        channels = await self.controller.get_otp_channels(self.session, self.action)
        self.channel = select_sms_channel(channels)
        self._advance(ScaState.CHANNEL_SELECTED)
        return self.channel

    async def send_otp(self) -> Acknowledgement:
        self._require("send the OTP", ScaState.CHANNEL_SELECTED)
        if not self.secret_code or self.channel is None:
            raise SequencingError("cannot send the OTP without a validated pin and a channel")
        payload = await self.controller.transport.call(
            self.session,
            SCA_SEND_OTP_PATH,
            "POST",
            self._with_context(
                {
                    "sensitiveOperationAction": self.action.value,
                    "secretCode": self.secret_code,
                    "channelValue": self.channel.phone,
                    "channelType": self.channel.type,
                }
            ),
        )
        ack = parse_response(Acknowledgement, payload or {}, path=SCA_SEND_OTP_PATH)
        if not ack.acknowledged:
            raise BusinessError(
                code="OTP_NOT_SENT",
                message="the bank did not acknowledge the OTP dispatch",
                path=SCA_SEND_OTP_PATH,
            )
        self._advance(ScaState.OTP_SENT)
        return ack

    async def confirm(self, otp: str) -> Acknowledgement:
        """Submit the code received by SMS. Called by the external caller."""

        self._require("confirm the OTP", ScaState.OTP_SENT)
        try:
            payload = await self.controller.transport.call(
                self.session,
                SCA_CONFIRM_OTP_PATH,
                "POST",
                self._with_context(
                    {
                        "sensitiveOperationAction": self.action.value,
                        "otp": otp,
                    }
                ),
            )
        except BusinessError:
            self._advance(ScaState.REJECTED)
            raise
        ack = parse_response(Acknowledgement, payload or {}, path=SCA_CONFIRM_OTP_PATH)
        self._advance(ScaState.CONFIRMED if ack.acknowledged else ScaState.REJECTED)
        return ack

    async def run(self, password: str, *, size_multiplier: int | None = None) -> OtpChannel:
        """Drive the flow up to OTP_SENT and return the channel the code went to."""

        try:
            await self.fetch_keypad(size_multiplier=size_multiplier)
            await self.submit_pin(password)
            channel = await self.select_channel()
            await self.send_otp()
        except ScaError:
            logger.warning("%s aborted in state %s", self.action.label(), self.state.value)
            raise
        return channel
