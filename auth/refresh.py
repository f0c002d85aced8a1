"""Single-flight token refresh shared by all requests of one client.

The first request that needs a new token runs the refresh; every request that
arrives while it is running queues a future and waits (bounded) for the
outcome. Failure is broadcast to the queue immediately, so nobody hangs on a
refresh that already gave up.

Runs on one event loop. ``in_flight`` is checked and the waiter appended
without an await in between, so no lock is needed.
"""

import asyncio
import logging
from typing import Protocol

from errors import REFRESH_FAILED, REFRESH_NO_TOKEN, REFRESH_TIMEOUT, RefreshError

log = logging.getLogger(__name__)


class CredentialProvider(Protocol):
    @property
    def access_token(self) -> str | None: ...

    async def refresh(self) -> None: ...

    def clear(self) -> None: ...


class Navigator(Protocol):
    def redirect_to_login(self) -> None: ...


class RefreshCoordinator:
    def __init__(
        self,
        provider: CredentialProvider,
        navigator: Navigator | None = None,
        *,
        wait_timeout: float = 10.0,
        refresh_timeout: float | None = 30.0,
    ):
        self._provider = provider
        self._navigator = navigator
        self._wait_timeout = wait_timeout
        self._refresh_timeout = refresh_timeout
        self._in_flight = False
        self._waiters: list[asyncio.Future] = []
        self._task: asyncio.Task | None = None

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def waiting(self) -> int:
        return len(self._waiters)

    async def ensure_fresh_token(self, stale_token: str | None = None) -> str:
        """Return a token newer than ``stale_token``, refreshing at most once
        across all concurrent callers.

        Raises RefreshError (REFRESH_FAILED, REFRESH_NO_TOKEN or
        REFRESH_TIMEOUT) when no token could be obtained.
        """
        if self._in_flight:
            return await self._wait_for_refresh()

        current = self._provider.access_token
        if stale_token and current and current != stale_token:
            # A refresh finished between this caller's request and its 401
            log.debug("Token already refreshed, reusing it")
            return current

        self._in_flight = True
        self._task = asyncio.ensure_future(self._run_refresh())
        # Shielded: a caller giving up must not abort the refresh others wait on
        return await asyncio.shield(self._task)

    async def _run_refresh(self) -> str:
        try:
            try:
                await asyncio.wait_for(self._provider.refresh(), self._refresh_timeout)
            except asyncio.TimeoutError as e:
                raise RefreshError(
                    REFRESH_FAILED, f"Token refresh timed out after {self._refresh_timeout}s",
                ) from e
            except Exception as e:
                raise RefreshError(REFRESH_FAILED, str(e) or "Token refresh failed") from e

            token = self._provider.access_token
            if not token:
                raise RefreshError(REFRESH_NO_TOKEN, "Failed to get new token after refresh")
        except RefreshError as e:
            log.error("Token refresh failed: %s", e.message)
            try:
                self._provider.clear()
            except Exception:
                log.exception("Failed to clear credentials")
            if self._navigator:
                self._navigator.redirect_to_login()
            self._release(error=e)
            raise
        else:
            log.info("Token refreshed, releasing %d waiting request(s)", len(self._waiters))
            self._release(token=token)
            return token
        finally:
            if self._waiters:
                # Only reachable when the refresh itself was cancelled
                self._release(error=RefreshError(REFRESH_FAILED, "Token refresh aborted"))
            self._in_flight = False
            self._task = None

    async def _wait_for_refresh(self) -> str:
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        log.debug("Refresh in flight, %d request(s) waiting", len(self._waiters))
        try:
            # wait_for cancels the future on timeout, so a late release skips it
            return await asyncio.wait_for(waiter, self._wait_timeout)
        except asyncio.TimeoutError:
            raise RefreshError(REFRESH_TIMEOUT, "Token refresh timeout") from None
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)

    def _release(self, token: str | None = None, error: RefreshError | None = None):
        """Settle every queued waiter in arrival order and empty the queue."""
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if waiter.done():
                continue
            if error is not None:
                # One instance per waiter, so tracebacks don't pile up on a shared one
                own = RefreshError(error.code, error.message)
                own.__cause__ = error
                waiter.set_exception(own)
            else:
                waiter.set_result(token)
