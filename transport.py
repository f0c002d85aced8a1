"""aiohttp transport: send a request, hand back status and raw body."""

import logging
from collections.abc import Mapping

import aiohttp

log = logging.getLogger(__name__)


class TransportResponse:
    def __init__(self, status: int, body: bytes, encoding: str = "utf-8"):
        self.status = status
        self._body = body
        self._encoding = encoding
        self._consumed = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def text(self) -> str:
        """Decode the body. Can only be read once, like a stream."""
        if self._consumed:
            raise RuntimeError("Response body already consumed")
        self._consumed = True
        return self._body.decode(self._encoding, errors="replace")


class AiohttpTransport:
    def __init__(self, timeout: float = 30.0):
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None

    async def _ensure_session(self):
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def send(
        self, method: str, url: str, headers: Mapping[str, str], body: str | None = None,
    ) -> TransportResponse:
        await self._ensure_session()
        async with self._session.request(method, url, headers=dict(headers), data=body) as resp:
            raw = await resp.read()
            log.debug("%s %s → %d (%d bytes)", method, url, resp.status, len(raw))
            return TransportResponse(resp.status, raw, resp.charset or "utf-8")
