"""Ephemeral credential exchange with the authentication service."""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from popcall.config import AUTH_SERVER_URL, DEFAULT_AUTH_TIMEOUT, USER_AGENT
from popcall.exceptions import AuthenticationError
from popcall.models import AuthData, Credentials, ProbeTarget

logger = logging.getLogger(__name__)


class AuthClient:
    """Requests session credentials and the list of POPs to probe."""

    def __init__(
        self,
        url: str = AUTH_SERVER_URL,
        timeout: float = DEFAULT_AUTH_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._client = client

    async def authenticate(self, credentials: Credentials) -> AuthData:
        """Exchange *credentials* for session credentials and probe targets.

        Raises
        ------
        AuthenticationError
            On transport failure, error status or a malformed body.
        """
        logger.info("Authenticating against %s", self.url)
        params: dict[str, Any] = {
            "username": credentials.username,
            "key": credentials.key,
            "_": str(int(time.time() * 1000)),
        }
        if credentials.expires is not None:
            params["expires"] = credentials.expires
        headers = {"Accept": "application/json", "User-Agent": USER_AGENT}
        url = httpx.URL(self.url).copy_merge_params(params)

        try:
            if self._client is not None:
                resp = await self._client.get(url, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                    resp = await client.get(url, headers=headers)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as exc:
            raise AuthenticationError(f"Authentication request failed: {exc}") from exc
        except ValueError as exc:
            raise AuthenticationError("Authentication response is not valid JSON") from exc

        return parse_auth_data(data)


def parse_auth_data(data: Any) -> AuthData:
    """Parse an authentication service response body."""
    if not isinstance(data, dict):
        raise AuthenticationError(f"Unexpected authentication response: {data!r}")

    missing = [k for k in ("username", "password") if not data.get(k)]
    if missing:
        raise AuthenticationError(f"Authentication response missing {', '.join(missing)}")

    ping_servers = data.get("pingServers") or {}
    if not isinstance(ping_servers, dict):
        raise AuthenticationError("pingServers must be a mapping of POP name to URL")

    targets = [ProbeTarget(name=str(name), endpoint=str(url)) for name, url in ping_servers.items()]
    logger.debug("Authentication returned %d probe targets", len(targets))

    return AuthData(
        username=data["username"],
        password=data["password"],
        ws_servers=_as_list(data.get("ws")),
        wss_servers=_as_list(data.get("wss")),
        targets=targets,
    )


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value]
