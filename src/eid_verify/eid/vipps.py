"""Vipps Login profile."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Self

from .base import IdentityRequest


@dataclass(frozen=True, slots=True)
class Vipps(IdentityRequest):
    """Vipps Login (Norway)."""

    acr_value_chain: tuple[str, ...] = ("urn:grn:authn:no:vipps",)

    def with_email(self) -> Self:
        return self.with_scope("email")

    def with_phone(self) -> Self:
        return self.with_scope("phone")

    def with_address(self) -> Self:
        return self.with_scope("address")

    def with_birthdate(self) -> Self:
        return self.with_scope("birthdate")

    def with_ssn(self) -> Self:
        return self.with_scope("ssn")
