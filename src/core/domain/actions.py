"""Sensitive operations that require a fresh SCA challenge.

This module centralizes the closed set of actions understood by the bank's
`sca/*` endpoints. Keeping it in the domain layer lets the flow controller,
the client facade and the CLI share a single source of truth, and keeps the
per-action payload rules in one exhaustive `match`.
"""

from __future__ import annotations

from enum import Enum


class SensitiveOperationAction(str, Enum):
    """Actions accepted as `sensitiveOperationAction` on the wire."""

    EXTERNAL_TRANSFER = "EXTERNAL_TRANSFER"
    ADD_TRANSFER_BENEFICIARY = "ADD_TRANSFER_BENEFICIARY"
    DISPLAY_TRANSACTIONS = "DISPLAY_TRANSACTIONS"

    def context_key(self) -> str | None:
        """Request key carrying the operation context, or None when the action has none."""

        match self:
            case SensitiveOperationAction.EXTERNAL_TRANSFER:
                return "transactionRequest"
            case SensitiveOperationAction.ADD_TRANSFER_BENEFICIARY:
                return "externalAccountsRequest"
            case SensitiveOperationAction.DISPLAY_TRANSACTIONS:
                return None

    def label(self) -> str:
        """Human readable label for prompts and logging."""

        match self:
            case SensitiveOperationAction.EXTERNAL_TRANSFER:
                return "external transfer"
            case SensitiveOperationAction.ADD_TRANSFER_BENEFICIARY:
                return "add transfer beneficiary"
            case SensitiveOperationAction.DISPLAY_TRANSACTIONS:
                return "display more transactions"
