"""Swedish BankID profile."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Self

from .base import Action, IdentityRequest


@dataclass(frozen=True, slots=True)
class SwedishBankID(IdentityRequest):
    """Swedish BankID.

    ``same_device`` opens the BankID app on this device, ``other_device``
    shows a QR code for another device, and ``selector_page`` lets the user
    choose.
    """

    acr_value_chain: tuple[str, ...] = ("urn:grn:authn:se:bankid",)

    @classmethod
    def other_device(cls) -> SwedishBankID:
        return cls().with_modifier("another-device:qr")

    @classmethod
    def same_device(cls) -> SwedishBankID:
        return cls().with_modifier("same-device")

    @classmethod
    def selector_page(cls) -> SwedishBankID:
        return cls()

    def with_ssn(self, ssn: str) -> Self:
        return self.with_login_hint(f"sub:{ssn}")

    def with_message(self, message: str) -> Self:
        return self._with_message(message)

    def sign(self, message: str) -> Self:
        return self.with_message(message).with_action(Action.SIGN)
