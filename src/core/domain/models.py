"""Modelos del dominio (Pydantic v2).

Por qué Pydantic en el dominio:
- Validación estricta de los payloads del banco en el borde, con alias para
  los nombres camelCase del wire.
- El contexto de operación es una unión discriminada: transferencia, cuenta
  externa o "sin contexto", nunca un objeto nullable de forma ambigua.

Nota:
- Estos modelos describen *qué* viaja por la API, no *cómo* se obtiene.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Literal, TypeVar, Union

from pydantic import BaseModel, Field, ValidationError
from pydantic.config import ConfigDict

from core.domain.actions import SensitiveOperationAction
from core.domain.errors import TransportError

SMS_MOBILE_CHANNEL = "SMS_MOBILE"

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_response(model: type[ModelT], payload: Any, *, path: str) -> ModelT:
    """Valida un payload del banco; si no encaja con `model` es un `TransportError`.

    Un cuerpo mal formado (campo obligatorio ausente, tipo inesperado) no es
    un rechazo de negocio: el banco respondió algo que no sabemos leer.
    """

    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) or "<root>" for err in exc.errors())
        raise TransportError(
            f"{path}: unexpected {model.__name__} payload ({fields})",
            path=path,
        ) from exc


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude={"kind"})


class TransferRequest(_WireModel):
    """Contexto de una transferencia externa (EXTERNAL_TRANSFER)."""

    kind: Literal["transfer"] = "transfer"
    from_account: str = Field(..., alias="fromAccount", min_length=1)
    to_account: str = Field(..., alias="toAccount", min_length=1)
    amount: Decimal = Field(..., gt=0, description="Importe en euros.")
    label: str = Field(default="", max_length=140)
    execution_date: date = Field(..., alias="executionDate")


class ExternalAccountRequest(_WireModel):
    """Contexto de alta de beneficiario (ADD_TRANSFER_BENEFICIARY)."""

    kind: Literal["external_account"] = "external_account"
    account_holder_name: str = Field(..., alias="accountHolderName", min_length=1)
    bank_name: str = Field(default="", alias="bankName")
    bic: str = Field(default="", alias="bic")
    iban: str = Field(..., alias="iban", min_length=1)


class NoContext(_WireModel):
    """Operación sin contexto (login, DISPLAY_TRANSACTIONS)."""

    kind: Literal["none"] = "none"


OperationContext = Union[TransferRequest, ExternalAccountRequest, NoContext]


def context_matches(action: SensitiveOperationAction, context: OperationContext) -> bool:
    """Cada acción admite exactamente una forma de contexto."""

    match action:
        case SensitiveOperationAction.EXTERNAL_TRANSFER:
            return isinstance(context, TransferRequest)
        case SensitiveOperationAction.ADD_TRANSFER_BENEFICIARY:
            return isinstance(context, ExternalAccountRequest)
        case SensitiveOperationAction.DISPLAY_TRANSACTIONS:
            return isinstance(context, NoContext)
    return False


def context_payload(action: SensitiveOperationAction, context: OperationContext) -> dict[str, Any]:
    """Fragmento de request con el contexto bajo la clave que exige la acción."""

    key = action.context_key()
    if key is None or isinstance(context, NoContext):
        return {}
    return {key: context.to_wire()}


class LoginIdentity(BaseModel):
    """Respuesta de `login/cif`: identificador interno retenido para la sesión."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    internal_id: str | None = Field(default=None, alias="id")


class KeypadChallenge(BaseModel):
    """Metadatos de un reto de keypad (login o operación sensible)."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    pin_positions: list[int] = Field(..., alias="pinPositions", min_length=1)
    keypad_url: str | None = Field(default=None, alias="keyPadUrl")


class PinValidation(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    secret_code: str | None = Field(default=None, alias="secretCode")
    validated: bool = Field(default=False)


class OtpChannel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str = Field(..., min_length=1)
    phone: str | None = Field(default=None)

    @property
    def is_sms_mobile(self) -> bool:
        return self.type == SMS_MOBILE_CHANNEL


class Acknowledgement(BaseModel):
    model_config = ConfigDict(extra="ignore")

    acknowledged: bool = Field(default=False)


class SessionStatus(BaseModel):
    model_config = ConfigDict(extra="allow")

    authenticated: bool = Field(default=False)


class SaveInvestToken(BaseModel):
    model_config = ConfigDict(extra="ignore")

    token: str = Field(..., min_length=1)
