"""
eID profiles used to parameterize a login.

Each profile presets the acr value of one eID and exposes the scopes and
login hints it understands. All profiles are immutable; builder methods
return new values.
"""

from .base import Action, IdentityRequest, encode_hint_text
from .danish_mitid import DanishMitID
from .frejaid import FrejaID, FrejaIDExtendedOrPlus
from .mock import Mock
from .norwegian_bankid import NorwegianBankID
from .swedish_bankid import SwedishBankID
from .vipps import Vipps

__all__ = [
    "Action",
    "DanishMitID",
    "FrejaID",
    "FrejaIDExtendedOrPlus",
    "IdentityRequest",
    "Mock",
    "NorwegianBankID",
    "SwedishBankID",
    "Vipps",
    "encode_hint_text",
]
