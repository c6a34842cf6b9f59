"""Norwegian BankID profile."""

from __future__ import annotations

from dataclasses import dataclass

from .base import IdentityRequest


@dataclass(frozen=True, slots=True)
class NorwegianBankID(IdentityRequest):
    """Norwegian BankID."""

    acr_value_chain: tuple[str, ...] = ("urn:grn:authn:no:bankid",)

    @classmethod
    def substantial(cls) -> NorwegianBankID:
        return cls().with_modifier("substantial")

    @classmethod
    def high(cls) -> NorwegianBankID:
        return cls().with_modifier("high")
