"""Engine configuration loaded from the environment.

Variables (prefix ``EID_VERIFY_`` by default):

- ``CLIENT_ID``, ``DOMAIN``, ``REDIRECT_URI``: required.
- ``APP_SWITCH_URI``: HTTPS URI eID apps return to after an app switch.
- ``APP_SWITCH_PLATFORM``: platform announced in app-switch hints.
- ``HTTP_TIMEOUT``: seconds, float.
- ``LEEWAY``: tolerated clock skew in seconds, int.
- ``ALGORITHMS``: comma-separated allowlist of signing algorithms.

A ``.env`` file in the working directory is read first, without overriding
variables that are already set.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from dotenv import find_dotenv, load_dotenv

from .errors import ConfigurationError
from .key_providers import require_domain
from .request_builder import require_https
from .verifier import DEFAULT_LEEWAY, TokenVerifyOptions

ENV_PREFIX = "EID_VERIFY_"


@dataclass(frozen=True, slots=True)
class VerifySettings:
    """Everything needed to build a VerifyEngine.

    Raises:
        ConfigurationError: On empty client id or domain, or invalid numbers.
        InvalidRedirectUri: If a redirect or app-switch URI is not HTTPS.
    """

    client_id: str
    domain: str
    redirect_uri: str
    app_switch_uri: str | None = None
    app_switch_platform: str = "android"
    http_timeout: float = 30.0
    leeway: int = DEFAULT_LEEWAY
    algorithms: tuple[str, ...] = ("RS256",)

    def __post_init__(self) -> None:
        if not self.client_id:
            raise ConfigurationError("client_id must not be empty")
        require_domain(self.domain)
        require_https(self.redirect_uri)
        if self.app_switch_uri is not None:
            require_https(self.app_switch_uri, "app_switch_uri")
        if self.http_timeout <= 0:
            raise ConfigurationError("http_timeout must be positive")
        if self.leeway < 0:
            raise ConfigurationError("leeway must not be negative")
        if not self.algorithms:
            raise ConfigurationError("algorithms must not be empty")

    def verify_options(self) -> TokenVerifyOptions:
        return TokenVerifyOptions(algorithms=self.algorithms, leeway=self.leeway)

    @classmethod
    def from_env(
        cls,
        prefix: str = ENV_PREFIX,
        *,
        environ: Mapping[str, str] | None = None,
        dotenv: bool = True,
    ) -> VerifySettings:
        """Build settings from environment variables.

        Args:
            prefix: Prefix of every variable name.
            environ: Mapping to read instead of ``os.environ``.
            dotenv: Load ``.env`` into the process environment first.

        Raises:
            ConfigurationError: If a required variable is missing or a value
                cannot be parsed.
        """
        if dotenv:
            load_dotenv(find_dotenv(usecwd=True))
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            value = env.get(prefix + name)
            return value.strip() if value and value.strip() else None

        required = {name: get(name) for name in ("CLIENT_ID", "DOMAIN", "REDIRECT_URI")}
        missing = [prefix + name for name, value in required.items() if value is None]
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}"
            )

        options: dict[str, object] = {}
        if (app_switch_uri := get("APP_SWITCH_URI")) is not None:
            options["app_switch_uri"] = app_switch_uri
        if (platform := get("APP_SWITCH_PLATFORM")) is not None:
            options["app_switch_platform"] = platform
        if (algorithms := get("ALGORITHMS")) is not None:
            options["algorithms"] = tuple(
                a.strip() for a in algorithms.split(",") if a.strip()
            )
        try:
            if (timeout := get("HTTP_TIMEOUT")) is not None:
                options["http_timeout"] = float(timeout)
            if (leeway := get("LEEWAY")) is not None:
                options["leeway"] = int(leeway)
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric setting: {e}") from e

        return cls(
            client_id=required["CLIENT_ID"],  # type: ignore[arg-type]
            domain=required["DOMAIN"],  # type: ignore[arg-type]
            redirect_uri=required["REDIRECT_URI"],  # type: ignore[arg-type]
            **options,  # type: ignore[arg-type]
        )
