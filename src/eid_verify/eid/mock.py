"""Mock eID profile for development and automated tests."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Self

from .base import IdentityRequest, encode_hint_text


@dataclass(frozen=True, slots=True)
class Mock(IdentityRequest):
    """Mock eID that logs in without user interaction.

    The identity returned is controlled by ``with_mock_data``:

        >>> Mock().with_mock_data({"name": "foobar"}).login_hints
        ('mockdata:eyJuYW1lIjogImZvb2JhciJ9',)
    """

    acr_value_chain: tuple[str, ...] = ("urn:grn:authn:mock",)

    def with_mock_data(self, data: Mapping[str, Any]) -> Self:
        return self.with_login_hint(f"mockdata:{encode_hint_text(json.dumps(data))}")
