"""GitHub App credential issuance."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Protocol

import httpx
import jwt

from reclaim.core.config import GITHUB_API_URL, ReclaimConfig
from reclaim.core.errors import CoordinatorAuthError
from reclaim.github.client import GitHubClient

logger = logging.getLogger(__name__)

# GitHub rejects app JWTs valid for more than 10 minutes
_JWT_TTL_S = 540
_CLOCK_DRIFT_S = 60


class TokenIssuer(Protocol):
    """Produces authenticated GitHub clients."""

    async def app_client(self) -> GitHubClient:
        """Return a client authenticated as the app itself."""
        ...

    async def installation_client(self, installation_id: int) -> GitHubClient:
        """Return a client authenticated as installation *installation_id*."""
        ...


class GitHubAppIssuer:
    """Issues app JWTs and installation tokens for a GitHub App."""

    def __init__(
        self,
        app_id: str,
        private_key: str,
        api_url: str = GITHUB_API_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._app_id = app_id
        self._private_key = private_key
        self._api_url = api_url
        self._transport = transport

    @classmethod
    def from_config(cls, config: ReclaimConfig) -> GitHubAppIssuer:
        if not config.github_app_id or config.github_app_key_path is None:
            raise CoordinatorAuthError("github_app_id and github_app_key_path must be configured")
        key = Path(config.github_app_key_path).read_text(encoding="utf-8")
        return cls(config.github_app_id, key, api_url=config.api_url)

    def app_jwt(self, now: float | None = None) -> str:
        """Sign a short-lived RS256 JWT identifying the app."""
        issued = int(now if now is not None else time.time()) - _CLOCK_DRIFT_S
        payload = {"iat": issued, "exp": issued + _JWT_TTL_S, "iss": self._app_id}
        try:
            return jwt.encode(payload, self._private_key, algorithm="RS256")
        except (jwt.PyJWTError, ValueError) as exc:
            raise CoordinatorAuthError(f"Could not sign app JWT: {exc}") from exc

    async def app_client(self) -> GitHubClient:
        return GitHubClient(self.app_jwt(), self._api_url, transport=self._transport)

    async def installation_client(self, installation_id: int) -> GitHubClient:
        async with await self.app_client() as app:
            token = await app.create_installation_token(installation_id)
        logger.debug("Issued installation token for %d", installation_id)
        return GitHubClient(token, self._api_url, transport=self._transport)
