"""
Console login demo.

Opens the provider's login page in the system browser and waits for the
callback URL to be pasted back, since a console has no redirect receiver.

Run from the repository root:

    python -m examples.console_demo.login mock
    python -m examples.console_demo.login mitid
"""

import asyncio
import sys
import webbrowser

from eid_verify import (
    DanishMitID,
    IdentityRequest,
    Mock,
    NorwegianBankID,
    RedirectBrowser,
    SwedishBankID,
    VerifyError,
)

from examples.console_demo.app_config import create_engine

EIDS: dict[str, IdentityRequest] = {
    "mock": Mock().with_mock_data({"name": "foobar"}),
    "mitid": DanishMitID.substantial(),
    "bankid-se": SwedishBankID.same_device(),
    "bankid-no": NorwegianBankID.substantial(),
}


async def read_callback(browser: RedirectBrowser) -> None:
    while True:
        pasted = await asyncio.to_thread(input, "Paste the callback URL (empty to cancel): ")
        if not pasted.strip():
            browser.cancel()
            return
        if browser.deliver(pasted.strip()):
            return


async def main(eid_name: str) -> int:
    opened = asyncio.Event()

    def open_url(url: str) -> bool:
        try:
            return webbrowser.open(url)
        finally:
            opened.set()

    browser = RedirectBrowser(open_url)

    async with create_engine(browser) as engine:
        await engine.prefetch()

        login = asyncio.create_task(engine.login(EIDS[eid_name]))
        wait_opened = asyncio.create_task(opened.wait())
        await asyncio.wait({login, wait_opened}, return_when=asyncio.FIRST_COMPLETED)
        wait_opened.cancel()
        if browser.waiting:
            await read_callback(browser)

        try:
            token = await login
        except VerifyError as e:
            print(f"Login failed: {e}")
            return 1

        print(f"Logged in as {token.claim('name') or token.subject}")
        print(f"Identity scheme: {token.identity_scheme}")
        return 0


if __name__ == "__main__":
    name = sys.argv[1] if len(sys.argv) > 1 else "mock"
    if name not in EIDS:
        sys.exit(f"Unknown eID {name!r}, choose one of: {', '.join(EIDS)}")
    sys.exit(asyncio.run(main(name)))
