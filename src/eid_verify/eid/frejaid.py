"""Freja eID profile."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Self

from .base import Action, IdentityRequest, encode_hint_text


@dataclass(frozen=True, slots=True)
class FrejaID(IdentityRequest):
    """Freja eID (Sweden), at the ``basic`` registration level.

    Use ``FrejaID.basic()``, ``FrejaID.extended()`` or ``FrejaID.plus()``;
    the latter two return FrejaIDExtendedOrPlus, which can request the
    additional identity attributes only verified users have.
    """

    acr_value_chain: tuple[str, ...] = ("urn:grn:authn:se:frejaid",)

    @classmethod
    def basic(cls) -> FrejaID:
        return FrejaID().with_login_hint("minregistrationlevel:basic")

    @classmethod
    def extended(cls) -> FrejaIDExtendedOrPlus:
        return FrejaIDExtendedOrPlus._at_level("extended")

    @classmethod
    def plus(cls) -> FrejaIDExtendedOrPlus:
        return FrejaIDExtendedOrPlus._at_level("plus")

    def with_email(self) -> Self:
        return self.with_scope("frejaid:email_address")

    def with_all_emails(self) -> Self:
        return self.with_scope("frejaid:all_email_addresses")

    def with_phone_numbers(self) -> Self:
        return self.with_scope("frejaid:all_phone_numbers")

    def with_registration_level(self) -> Self:
        return self.with_scope("frejaid:registration_level")

    def sign(self, message: str, title: str | None = None) -> Self:
        """Ask the user to sign ``message``, optionally under ``title``."""
        request = self.with_action(Action.SIGN)
        if title is not None:
            request = request.with_login_hint(f"title:{encode_hint_text(title)}")
        return request._with_message(message)


@dataclass(frozen=True, slots=True)
class FrejaIDExtendedOrPlus(FrejaID):
    """Freja eID at the ``extended`` or ``plus`` registration level."""

    @classmethod
    def _at_level(cls, level: str) -> FrejaIDExtendedOrPlus:
        return (
            cls()
            .with_login_hint(f"minregistrationlevel:{level}")
            .with_login_hint("minregistrationlevel:extended")
        )

    def with_basic_user_info(self) -> Self:
        return self.with_scope("frejaid:basic_user_info")

    def with_date_of_birth(self) -> Self:
        return self.with_scope("frejaid:date_of_birth")

    def with_age(self) -> Self:
        return self.with_scope("frejaid:age")

    def with_ssn(self) -> Self:
        return self.with_scope("frejaid:ssn")

    def with_addresses(self) -> Self:
        return self.with_scope("frejaid:addresses")

    def with_document(self) -> Self:
        return self.with_scope("frejaid:document")

    def with_photo(self) -> Self:
        return self.with_scope("frejaid:photo")

    def with_document_photo(self) -> Self:
        return self.with_scope("frejaid:document_photo")

    def with_default_and_face_confirmation(self) -> Self:
        return self.with_login_hint("userconfirmationmethod:defaultandface")
