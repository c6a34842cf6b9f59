"""Single-slot handoff between a redirect receiver and a waiting flow.

Hosts typically receive the provider's redirect somewhere other than the code
that opened the browser: a deep-link handler, a local HTTP listener, or a
pasted URL. ``RedirectBrowser`` bridges the two. The flow awaits
``launch()``; the host's receiver calls ``deliver()`` with the callback URI.

    browser = RedirectBrowser(webbrowser.open)
    engine = VerifyEngine(client_id, domain, redirect_uri, browser=browser)

    # in the redirect receiver
    browser.deliver(callback_uri)

The slot resolves exactly once. Deliveries with nobody waiting, or after the
slot was resolved, are logged and dropped. ``deliver()``, ``fail()`` and
``cancel()`` are safe to call from a thread other than the event loop's.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from collections.abc import Callable

import httpx

from .errors import FlowAlreadyInProgress, NoSuitableBrowser, UserCancelled
from .request_builder import is_app_switch_callback

logger = logging.getLogger(__name__)


class CallbackSlot:
    """A one-shot future for the next callback URI.

    ``open`` and ``release`` belong to the event loop thread. ``resolve`` and
    ``fail`` may be called from any thread, such as a local HTTP listener's:
    the outcome is handed to the loop with ``call_soon_threadsafe``.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._future: asyncio.Future[str] | None = None
        self._settled = False

    @property
    def pending(self) -> bool:
        future = self._future
        return future is not None and not future.done() and not self._settled

    def open(self) -> asyncio.Future[str]:
        """Arm the slot and return the future a callback will resolve.

        Raises:
            FlowAlreadyInProgress: If a callback is already awaited.
        """
        future = asyncio.get_running_loop().create_future()
        with self._lock:
            if self._future is not None:
                raise FlowAlreadyInProgress("A callback is already pending")
            self._future = future
            self._settled = False
        return future

    def resolve(self, callback_uri: str) -> bool:
        """Hand ``callback_uri`` to the waiter. Returns False if dropped."""
        future = self._claim()
        if future is None:
            logger.warning("Dropping callback: no flow is waiting for one")
            return False
        future.get_loop().call_soon_threadsafe(_set_result, future, callback_uri)
        return True

    def fail(self, exc: BaseException) -> bool:
        """Raise ``exc`` in the waiter. Returns False if nobody was waiting."""
        future = self._claim()
        if future is None:
            logger.warning("Dropping browser failure: no flow is waiting (%s)", exc)
            return False
        future.get_loop().call_soon_threadsafe(_set_exception, future, exc)
        return True

    def release(self) -> None:
        """Disarm the slot, cancelling the waiter if it is still pending."""
        with self._lock:
            future, self._future = self._future, None
        if future is not None and not future.done():
            future.cancel()

    def _claim(self) -> asyncio.Future[str] | None:
        # The first resolve or fail wins; later ones find nothing to claim.
        with self._lock:
            future = self._future
            if future is None or future.done() or self._settled:
                return None
            self._settled = True
            return future


def _set_result(future: asyncio.Future[str], value: str) -> None:
    if not future.done():
        future.set_result(value)


def _set_exception(future: asyncio.Future[str], exc: BaseException) -> None:
    if not future.done():
        future.set_exception(exc)


class RedirectBrowser:
    """BrowserDelegate that opens URLs with a host callable and waits for
    the host to deliver the redirect.

    Args:
        open_url: Called with the URL to present. May be sync or async.
            Returning ``False`` (as ``webbrowser.open`` does when no browser
            is available) fails the flow with NoSuitableBrowser.
    """

    def __init__(self, open_url: Callable[[str], object]) -> None:
        self._open_url = open_url
        self._slot = CallbackSlot()

    @property
    def waiting(self) -> bool:
        return self._slot.pending

    async def launch(self, url: str) -> str:
        future = self._slot.open()
        try:
            opened = self._open_url(url)
            if inspect.isawaitable(opened):
                opened = await opened
            if opened is False:
                raise NoSuitableBrowser()
            return await future
        finally:
            self._slot.release()

    def deliver(self, callback_uri: str) -> bool:
        """Complete the pending launch with ``callback_uri``.

        App-switch resume callbacks are ignored: they only bring the app back
        to the foreground, the authorization response follows separately.

        Returns:
            True if a waiting flow received the URI.
        """
        try:
            app_switch = is_app_switch_callback(callback_uri)
        except httpx.InvalidURL:
            app_switch = False
        if app_switch:
            logger.debug("Ignoring app-switch resume callback")
            return False
        return self._slot.resolve(callback_uri)

    def fail(self, exc: BaseException) -> bool:
        """Fail the pending launch with ``exc``."""
        return self._slot.fail(exc)

    def cancel(self) -> bool:
        """Report that the user dismissed the browser."""
        return self._slot.fail(UserCancelled())
