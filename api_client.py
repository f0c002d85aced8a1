"""Central HTTP client for the JSON API. Bearer auth with coordinated refresh."""

import enum
import json
import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

from multidict import CIMultiDict

from auth.navigator import LoginNavigator
from auth.refresh import CredentialProvider, RefreshCoordinator
from errors import (
    EMPTY_RESPONSE, INVALID_RESPONSE, NETWORK_ERROR, UNAUTHORIZED, UNKNOWN_ERROR,
    ApiError, RefreshError,
)
from transport import AiohttpTransport, TransportResponse

log = logging.getLogger(__name__)

ApiResponse = dict[str, Any]

_UNAUTHORIZED = {"code": UNAUTHORIZED, "message": "Unauthorized"}
_UNKNOWN = {"code": UNKNOWN_ERROR, "message": "An error occurred"}


class AuthOutcome(enum.Enum):
    FIRST_ATTEMPT = "first_attempt"    # no 401, no refresh
    RETRIED = "retried"                # refreshed and replayed once
    REFRESH_FAILED = "refresh_failed"  # original 401 stands


@dataclass
class PendingRequest:
    method: str
    url: str
    headers: dict[str, str]
    body: str | None = None
    auth: bool = True
    token: str | None = None


@dataclass
class Attempt:
    response: TransportResponse
    outcome: AuthOutcome
    refresh_error: RefreshError | None = None


class ApiClient:
    def __init__(
        self,
        server_url: str,
        token_store: CredentialProvider,
        *,
        transport=None,
        navigator: LoginNavigator | None = None,
        coordinator: RefreshCoordinator | None = None,
        wait_timeout: float = 10.0,
        refresh_timeout: float = 30.0,
    ):
        self._base = server_url.rstrip("/")
        self._tokens = token_store
        self._transport = transport or AiohttpTransport()
        self._refresh = coordinator or RefreshCoordinator(
            token_store, navigator,
            wait_timeout=wait_timeout, refresh_timeout=refresh_timeout,
        )

    async def close(self):
        await self._transport.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    # ── Verbs ──────────────────────────────────────────────

    async def get(self, endpoint: str, *, headers=None, params=None, auth=True) -> ApiResponse:
        return await self._request("GET", endpoint, headers=headers, params=params, auth=auth)

    async def post(self, endpoint: str, body=None, *, headers=None, params=None, auth=True) -> ApiResponse:
        return await self._request("POST", endpoint, body=body, headers=headers, params=params, auth=auth)

    async def put(self, endpoint: str, body=None, *, headers=None, params=None, auth=True) -> ApiResponse:
        return await self._request("PUT", endpoint, body=body, headers=headers, params=params, auth=auth)

    async def patch(self, endpoint: str, body=None, *, headers=None, params=None, auth=True) -> ApiResponse:
        return await self._request("PATCH", endpoint, body=body, headers=headers, params=params, auth=auth)

    async def delete(self, endpoint: str, body=None, *, headers=None, params=None, auth=True) -> ApiResponse:
        return await self._request("DELETE", endpoint, body=body, headers=headers, params=params, auth=auth)

    # ── Core ───────────────────────────────────────────────

    async def _request(
        self, method: str, endpoint: str, *, body=None, headers=None, params=None, auth=True,
    ) -> ApiResponse:
        url = f"{self._base}{endpoint}"
        if params:
            url = f"{url}?{urlencode(params, doseq=True)}"
        pending = PendingRequest(
            method=method,
            url=url,
            headers=dict(headers or {}),
            body=json.dumps(body) if body is not None else None,
            auth=auth,
        )

        try:
            attempt = await self._send_authenticated(pending)
            if attempt.outcome is AuthOutcome.REFRESH_FAILED:
                raise self._unauthorized(attempt.response) from attempt.refresh_error
            if attempt.outcome is AuthOutcome.RETRIED and attempt.response.status == 401:
                log.warning("API %s %s → 401 after token refresh", method, endpoint)
            return self._decode(attempt.response, method, endpoint)
        except ApiError:
            raise
        except Exception as e:
            log.error("API %s %s error: %s", method, endpoint, e)
            raise ApiError(NETWORK_ERROR, str(e) or "Network request failed", 0) from e

    async def _send_authenticated(self, pending: PendingRequest) -> Attempt:
        """First attempt plus at most one replay after a token refresh."""
        pending.token = self._tokens.access_token if pending.auth else None
        resp = await self._send(pending)
        if resp.status != 401 or not pending.auth:
            return Attempt(resp, AuthOutcome.FIRST_ATTEMPT)

        try:
            pending.token = await self._refresh.ensure_fresh_token(pending.token)
        except RefreshError as e:
            return Attempt(resp, AuthOutcome.REFRESH_FAILED, e)

        return Attempt(await self._send(pending), AuthOutcome.RETRIED)

    async def _send(self, pending: PendingRequest) -> TransportResponse:
        return await self._transport.send(
            pending.method, pending.url, self._merge_headers(pending), pending.body,
        )

    @staticmethod
    def _merge_headers(pending: PendingRequest) -> CIMultiDict:
        # Caller headers win, including an explicit Authorization
        headers = CIMultiDict({"Content-Type": "application/json"})
        headers.update(pending.headers)
        if pending.token and "Authorization" not in headers:
            headers["Authorization"] = f"Bearer {pending.token}"
        return headers

    @staticmethod
    def _unauthorized(resp: TransportResponse) -> ApiError:
        try:
            text = resp.text()
            payload = json.loads(text) if text else {}
        except ValueError:
            payload = {}
        error = _error_field(payload, _UNAUTHORIZED)
        return ApiError(error["code"], error["message"], resp.status)

    @staticmethod
    def _decode(resp: TransportResponse, method: str, endpoint: str) -> ApiResponse:
        if resp.status == 204:
            return {"data": None}

        text = resp.text()
        if not text.strip():
            if not resp.ok:
                raise ApiError(EMPTY_RESPONSE, "Server returned empty response", resp.status)
            return {"data": None}

        try:
            payload = json.loads(text)
        except ValueError as e:
            raise ApiError(
                INVALID_RESPONSE, f"Failed to parse server response: {e}", resp.status,
            ) from e

        if not resp.ok:
            log.error("API %s %s → %d: %s", method, endpoint, resp.status, text[:200])
            error = _error_field(payload, _UNKNOWN)
            raise ApiError(error["code"], error["message"], resp.status)
        return payload


def _error_field(payload, fallback: dict) -> dict:
    """Server errors look like {"error": {"code": ..., "message": ...}}."""
    error = payload.get("error") if isinstance(payload, dict) else None
    if not isinstance(error, dict):
        return fallback
    return {
        "code": error.get("code") or fallback["code"],
        "message": error.get("message") or fallback["message"],
    }
