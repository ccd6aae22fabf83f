"""Registry login via the OAuth 2.0 device authorization flow.

The CLI asks the registry for a device code, shows the user a URL and a
short code to enter in the browser, then polls until the browser side
approves or denies the request or the code expires.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

from skill_get.constants import DEFAULT_POLL_INTERVAL, SLOW_DOWN_INCREMENT
from skill_get.errors import AuthDeniedError, AuthExpiredError, AuthTimeoutError, RegistryError
from skill_get.registry.client import RegistryClient
from skill_get.registry.models import AuthResult, DeviceCode

logger = logging.getLogger(__name__)

# Poll error codes that mean "keep waiting"
_PENDING = "authorization_pending"
_SLOW_DOWN = "slow_down"
_EXPIRED = "expired_token"
_DENIED = "access_denied"


class DeviceAuthFlow:
    """Drive one device-flow login against the registry.

    Parameters
    ----------
    registry:
        Client used for ``POST /auth/device`` and token polling.
    sleep:
        Awaitable sleep, replaced in tests.
    clock:
        Monotonic clock in seconds, replaced in tests.
    """

    def __init__(
        self,
        registry: RegistryClient,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._registry = registry
        self._sleep = sleep
        self._clock = clock

    async def start(self) -> DeviceCode:
        """Request a device code and user code."""
        code = await self._registry.start_device_auth()
        logger.debug(
            "Device code issued (expires_in=%ds, interval=%ds)", code.expires_in, code.interval
        )
        return code

    async def wait_for_token(self, code: DeviceCode) -> AuthResult:
        """Poll until the user approves the request.

        Raises
        ------
        AuthExpiredError
            The registry reports the device code as expired.
        AuthDeniedError
            The user denied the request.
        AuthTimeoutError
            ``expires_in`` elapsed without a decision.
        """
        interval = float(code.interval or DEFAULT_POLL_INTERVAL)
        deadline = self._clock() + code.expires_in

        while self._clock() < deadline:
            await self._sleep(interval)
            try:
                result = await self._registry.poll_device_auth(code.device_code)
            except RegistryError as exc:
                if exc.code == _PENDING:
                    continue
                if exc.code == _SLOW_DOWN:
                    interval += SLOW_DOWN_INCREMENT
                    logger.debug("Registry asked to slow down; interval now %.0fs", interval)
                    continue
                if exc.code == _EXPIRED:
                    raise AuthExpiredError("Authentication expired") from exc
                if exc.code == _DENIED:
                    raise AuthDeniedError("Authentication denied") from exc
                logger.debug("Device token poll failed (%s), retrying", exc)
                continue

            logger.info("Device login approved for '%s'", result.user.username)
            return result

        raise AuthTimeoutError("Authentication timed out")
