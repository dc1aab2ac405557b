"""Async GitHub REST client for self-hosted runner management."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from reclaim.core.errors import CoordinatorAuthError, CoordinatorError, DeregistrationError
from reclaim.core.models import OwnerScope, RunnerRegistration

logger = logging.getLogger(__name__)

API_VERSION = "2022-11-28"
PAGE_SIZE = 100


def _runners_path(scope: OwnerScope) -> str:
    if scope.is_org_level:
        return f"/orgs/{scope.owner}/actions/runners"
    return f"/repos/{scope.owner}/{scope.repository}/actions/runners"


class GitHubClient:
    """Thin wrapper over ``httpx.AsyncClient`` bound to a single bearer token.

    Parameters
    ----------
    token:
        App JWT or installation access token.
    base_url:
        REST API root, ``https://api.github.com`` or ``<ghes>/api/v3``.
    transport:
        Optional httpx transport, used by tests to intercept requests.
    """

    def __init__(
        self,
        token: str,
        base_url: str,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout_s: float = 30.0,
    ) -> None:
        self._http = httpx.AsyncClient(
            base_url=base_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": API_VERSION,
            },
            transport=transport,
            timeout=httpx.Timeout(timeout_s),
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Apps
    # ------------------------------------------------------------------

    async def get_org_installation(self, org: str) -> int:
        """Return the app installation id for organization *org*."""
        data = await self._auth_request("GET", f"/orgs/{org}/installation")
        return int(data["id"])

    async def get_repo_installation(self, owner: str, repo: str) -> int:
        """Return the app installation id for repository *owner/repo*."""
        data = await self._auth_request("GET", f"/repos/{owner}/{repo}/installation")
        return int(data["id"])

    async def create_installation_token(self, installation_id: int) -> str:
        """Exchange the app JWT for an installation access token."""
        data = await self._auth_request(
            "POST", f"/app/installations/{installation_id}/access_tokens"
        )
        return str(data["token"])

    # ------------------------------------------------------------------
    # Self-hosted runners
    # ------------------------------------------------------------------

    async def list_runners(self, scope: OwnerScope) -> list[RunnerRegistration]:
        """Return every runner registered to *scope*, following pagination."""
        runners: list[RunnerRegistration] = []
        url: str | None = _runners_path(scope)
        params: dict[str, Any] | None = {"per_page": PAGE_SIZE}
        while url is not None:
            response = await self._send("GET", url, params=params)
            if response.is_error:
                raise CoordinatorError(
                    f"Listing runners for {scope.key} failed: {response.status_code}",
                    status_code=response.status_code,
                )
            for item in response.json().get("runners", []):
                runners.append(
                    RunnerRegistration(
                        id=item["id"],
                        name=item["name"],
                        busy=item.get("busy", False),
                        status=item.get("status"),
                        os=item.get("os"),
                        labels=[label["name"] for label in item.get("labels", [])],
                    )
                )
            # The next link already carries the query string
            url = response.links.get("next", {}).get("url")
            params = None
        return runners

    async def delete_runner(self, scope: OwnerScope, runner_id: int) -> None:
        """Remove runner *runner_id* from *scope*. A missing runner is not an error."""
        response = await self._send("DELETE", f"{_runners_path(scope)}/{runner_id}")
        if response.status_code == 404:
            logger.debug("Runner %d already removed from %s", runner_id, scope.key)
            return
        if response.is_error:
            raise DeregistrationError(
                f"Deleting runner {runner_id} from {scope.key} failed: "
                f"{response.status_code} {response.text}",
                status_code=response.status_code,
            )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise CoordinatorError(f"{method} {url} failed: {exc}") from exc

    async def _auth_request(self, method: str, url: str) -> dict[str, Any]:
        try:
            response = await self._http.request(method, url)
        except httpx.HTTPError as exc:
            raise CoordinatorAuthError(f"{method} {url} failed: {exc}") from exc
        if response.is_error:
            raise CoordinatorAuthError(
                f"{method} {url} failed: {response.status_code}",
                status_code=response.status_code,
            )
        return response.json()
