"""Per-pass memoization of GitHub clients and runner listings."""

from __future__ import annotations

import logging

from reclaim.core.models import OwnerScope, RunnerRegistration
from reclaim.github.auth import TokenIssuer
from reclaim.github.client import GitHubClient

logger = logging.getLogger(__name__)


class RunnerCache:
    """Caches installation clients and runner listings by scope key.

    Busy state is only meaningful for a moment, so the engine calls
    :meth:`reset` once at the start of every pass. Within a pass each scope
    is authenticated at most once and listed at most once.

    Failures from the issuer or the listing call propagate to the caller
    and nothing is cached for that scope.
    """

    def __init__(self, issuer: TokenIssuer) -> None:
        self._issuer = issuer
        self._clients: dict[str, GitHubClient] = {}
        self._listings: dict[str, list[RunnerRegistration]] = {}
        self._stale: list[GitHubClient] = []
        self.auth_calls = 0
        self.listing_calls = 0

    async def get_client(self, scope: OwnerScope) -> GitHubClient:
        """Return the installation client for *scope*, authenticating on miss."""
        key = scope.key
        cached = self._clients.get(key)
        if cached is not None:
            logger.debug("Client cache hit for %s", key)
            return cached

        logger.debug("Client cache miss for %s", key)
        self.auth_calls += 1
        async with await self._issuer.app_client() as app:
            if scope.is_org_level:
                installation_id = await app.get_org_installation(scope.owner)
            else:
                installation_id = await app.get_repo_installation(scope.owner, scope.repository)
        client = await self._issuer.installation_client(installation_id)
        self._clients[key] = client
        return client

    async def get_runner_listing(
        self, client: GitHubClient, scope: OwnerScope
    ) -> list[RunnerRegistration]:
        """Return every runner registered to *scope*, fetching on miss."""
        key = scope.key
        cached = self._listings.get(key)
        if cached is not None:
            logger.debug("Runner listing cache hit for %s", key)
            return cached

        logger.debug("Runner listing cache miss for %s", key)
        self.listing_calls += 1
        runners = await client.list_runners(scope)
        self._listings[key] = runners
        return runners

    def reset(self) -> None:
        """Forget all clients and listings."""
        # Dropped clients are closed by close_stale(); reset() stays synchronous
        self._stale.extend(self._clients.values())
        self._clients.clear()
        self._listings.clear()

    async def close_stale(self) -> None:
        """Close clients dropped by earlier resets."""
        stale, self._stale = self._stale, []
        for client in stale:
            await client.aclose()

    async def aclose(self) -> None:
        """Close every client this cache has handed out."""
        self.reset()
        await self.close_stale()
