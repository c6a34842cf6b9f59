"""Danish MitID profile."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import ClassVar, Self

from .base import IdentityRequest


@dataclass(frozen=True, slots=True)
class DanishMitID(IdentityRequest):
    """Danish MitID, the national eID of Denmark.

    Use one of the assurance-level constructors:

        >>> DanishMitID.substantial().acr_value
        'urn:grn:authn:dk:mitid:substantial'

    MitID can hand over to the MitID app and resume the login afterwards, see
    ``VerifyEngine(app_switch_uri=...)``.
    """

    acr_value_chain: tuple[str, ...] = ("urn:grn:authn:dk:mitid",)

    supports_app_switch: ClassVar[bool] = True

    @classmethod
    def substantial(cls) -> DanishMitID:
        return cls().with_modifier("substantial")

    @classmethod
    def high(cls) -> DanishMitID:
        return cls().with_modifier("high")

    @classmethod
    def low(cls) -> DanishMitID:
        return cls().with_modifier("low")

    @classmethod
    def business(cls) -> DanishMitID:
        return cls().with_modifier("business")

    def prefill_ssn(self, ssn: str) -> Self:
        return self.with_scope("ssn").with_login_hint(f"sub:{ssn}")

    def prefill_uuid(self, value: uuid.UUID | str) -> Self:
        """Prefill the MitID UUID so the user can skip entering their username."""
        return self.with_login_hint(f"uuid:{value}")

    def prefill_vat_id(self, vat_id: str) -> Self:
        return self.with_login_hint(f"vatid:DK{vat_id}")

    def with_ssn(self) -> Self:
        return self.with_scope("ssn")

    def with_address(self) -> Self:
        return self.with_scope("address")

    def with_message(self, message: str) -> Self:
        return self._with_message(message)
