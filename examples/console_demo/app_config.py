import logging

from eid_verify import RedirectBrowser, VerifyEngine, VerifySettings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Reads EID_VERIFY_* from the environment, or from a .env file in the
# working directory:
#
#   EID_VERIFY_CLIENT_ID=urn:my:application
#   EID_VERIFY_DOMAIN=example.idura.broker
#   EID_VERIFY_REDIRECT_URI=https://app.example.com/callback
SETTINGS = VerifySettings.from_env()


def create_engine(browser: RedirectBrowser) -> VerifyEngine:
    return VerifyEngine.from_settings(SETTINGS, browser=browser)
