"""Bearer token storage in a JSON config file, with refresh against the API."""

import json
import logging
from pathlib import Path

import aiohttp

log = logging.getLogger(__name__)


class TokenRefreshError(Exception):
    pass


class TokenStore:
    def __init__(self, path: Path, refresh_url: str, timeout: float = 30.0):
        self._path = Path(path)
        self._refresh_url = refresh_url
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._access_token: str | None = None
        self._refresh_token: str | None = None
        self._load()

    @property
    def is_authenticated(self) -> bool:
        return self._access_token is not None

    @property
    def access_token(self) -> str | None:
        return self._access_token

    @property
    def refresh_token(self) -> str | None:
        return self._refresh_token

    def save(self, access_token: str, refresh_token: str | None):
        self._access_token = access_token
        self._refresh_token = refresh_token
        self._persist()
        log.info("Tokens saved")

    def clear(self):
        self._access_token = None
        self._refresh_token = None
        self._persist()
        log.info("Tokens cleared")

    async def refresh(self):
        """Exchange the refresh token for a new token pair.

        Raises TokenRefreshError when no new pair could be obtained. On success
        the new access token is readable through ``access_token``.
        """
        if not self._refresh_token:
            raise TokenRefreshError("No refresh token stored")

        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.post(
                    self._refresh_url, json={"refresh_token": self._refresh_token},
                ) as resp:
                    if resp.status != 200:
                        raise TokenRefreshError(f"Refresh rejected: HTTP {resp.status}")
                    data = await resp.json(content_type=None)
        except aiohttp.ClientError as e:
            raise TokenRefreshError(f"Refresh request failed: {e}") from e
        except json.JSONDecodeError as e:
            raise TokenRefreshError(f"Malformed refresh response: {e}") from e

        if not isinstance(data, dict) or "access_token" not in data:
            raise TokenRefreshError("Malformed refresh response: missing access_token")
        # Servers that don't rotate refresh tokens omit it
        self.save(data["access_token"], data.get("refresh_token", self._refresh_token))

    def _load(self):
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
            self._access_token = data.get("access_token")
            self._refresh_token = data.get("refresh_token")
        except (FileNotFoundError, json.JSONDecodeError):
            pass

    def _persist(self):
        # Read existing config, merge tokens
        data = {}
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (FileNotFoundError, json.JSONDecodeError):
            pass

        if self._access_token:
            data["access_token"] = self._access_token
            data["refresh_token"] = self._refresh_token
        else:
            data.pop("access_token", None)
            data.pop("refresh_token", None)

        with open(self._path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False)
