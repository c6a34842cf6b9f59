"""Identity request model shared by every eID profile.

An IdentityRequest describes *what* the user should log in with: the
authentication-context (acr) value chain, extra scopes and login hints, and an
optional action shown to the user. It is a frozen dataclass; every builder
method returns a new value, so a request handed to the engine can never change
underneath it.

Profiles for specific eIDs (Danish MitID, Swedish BankID, ...) subclass it
once to preset the acr value and to expose the scopes and hints that eID
understands. The base class is also usable directly for providers without a
profile:

    >>> req = IdentityRequest(acr_value_chain=("urn:x:dk",)).with_modifier("substantial")
    >>> req.acr_value
    'urn:x:dk:substantial'
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, replace
from enum import Enum
from typing import ClassVar, Self


class Action(Enum):
    """Action verb the eID shows to the user, sent as ``action:<name>``."""

    LOGIN = "login"
    CONFIRM = "confirm"
    ACCEPT = "accept"
    APPROVE = "approve"
    SIGN = "sign"


def encode_hint_text(text: str) -> str:
    """Base64-encode arbitrary UTF-8 text for use inside a login hint."""
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def _append_unique(values: tuple[str, ...], value: str) -> tuple[str, ...]:
    if value in values:
        return values
    return (*values, value)


@dataclass(frozen=True, slots=True)
class IdentityRequest:
    """Variant-tagged description of a login intent.

    Attributes:
        acr_value_chain: Base acr value first, then modifiers in the order
            they were added. Serialized joined with ``:``.
        scopes: Extra scopes; duplicates collapse, insertion order is kept.
        login_hints: Opaque ``key:value`` hints; duplicates collapse.
        action: Optional action, sent as an ``action:<name>`` login hint.
        supports_app_switch: Whether the eID can switch to a native app and
            resume the login through the engine's app-switch URI.
    """

    acr_value_chain: tuple[str, ...]
    scopes: tuple[str, ...] = ()
    login_hints: tuple[str, ...] = ()
    action: Action | None = None

    supports_app_switch: ClassVar[bool] = False

    @property
    def acr_value(self) -> str:
        return ":".join(self.acr_value_chain)

    def with_modifier(self, modifier: str) -> Self:
        """Append a lower-cased modifier (e.g. assurance level) to the acr value."""
        return replace(self, acr_value_chain=(*self.acr_value_chain, modifier.lower()))

    def with_scope(self, scope: str) -> Self:
        return replace(self, scopes=_append_unique(self.scopes, scope))

    def with_login_hint(self, login_hint: str) -> Self:
        return replace(self, login_hints=_append_unique(self.login_hints, login_hint))

    def with_action(self, action: Action) -> Self:
        return replace(self, action=action)

    def _with_message(self, message: str) -> Self:
        # Only exposed by eIDs that can display a message.
        return self.with_login_hint(f"message:{encode_hint_text(message)}")
