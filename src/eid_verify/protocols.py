"""Protocol definitions for the eID login engine.

This module defines structural interfaces using Protocol (PEP 544) for:
- Presenting a browser to the user (BrowserDelegate)
- Key resolution (KeyProvider)
- Observing flow transitions (FlowObserver)

The engine depends only on these shapes, so hosts can plug in their own
browser integration or tracing without inheriting from anything.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Protocol, TypeAlias

if TYPE_CHECKING:
    from jwt import PyJWK

    from .flow import FlowState

# ============================================================================
# Type Aliases
# ============================================================================

Claims: TypeAlias = Mapping[str, Any]
"""Represents the decoded JWT payload as an immutable mapping.
"""


# ============================================================================
# Core Protocols
# ============================================================================


class BrowserDelegate(Protocol):
    """Protocol for the user-facing browser capability.

    The engine hands over the browser-facing authorization (or end-session)
    URL and suspends until the provider redirects back to the app.

    Guarantees required of implementers:
    - ``launch`` resolves exactly once per invocation: it either returns the
      callback URI or raises.
    - The returned URI is the full callback URI, query parameters included.

    The engine never issues overlapping invocations on the same instance.
    """

    async def launch(self, url: str) -> str:
        """Open ``url`` for the user and wait for the redirect back.

        Args:
            url: Browser-facing URL to open.

        Returns:
            The full callback URI received by the redirect receiver.

        Raises:
            UserCancelled: The user dismissed the browser.
            NoSuitableBrowser: No browser can handle the URL.
            BrowserHandlerError: The browser failed for any other reason.
        """
        ...


class KeyProvider(Protocol):
    """Protocol for resolving JWT signing keys.

    Implementers must provide a get_key_for_token() coroutine that resolves a
    signing key given a key ID (kid) from the JWT header.
    """

    async def get_key_for_token(self, kid: str) -> PyJWK:
        """Resolve a signing key by its ID.

        Args:
            kid: Key ID from the JWT header.

        Returns:
            PyJWK object containing the signing key.

        Raises:
            UnknownSigningKey: If kid is not part of the key set.
            FetchFailure: If the key set cannot be loaded.
        """
        ...


class FlowObserver(Protocol):
    """Extension point notified at the start and end of every flow transition.

    Use this to attach tracing spans or metrics without the engine depending
    on a telemetry backend. Observers must not raise.
    """

    def transition_started(self, flow_id: str, state: FlowState) -> None:
        """Called when the flow enters ``state``."""
        ...

    def transition_finished(
        self,
        flow_id: str,
        state: FlowState,
        error: BaseException | None,
    ) -> None:
        """Called when the work of ``state`` ends, with the error if it failed."""
        ...
