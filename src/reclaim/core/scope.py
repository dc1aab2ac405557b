"""Owner scope resolution for runner registrations.

A runner is registered either against an organization (all repositories of
the org share it) or against a single repository. Both the client cache and
the runner listing cache key on the resolved scope.
"""

from __future__ import annotations

from reclaim.core.errors import ScopeError
from reclaim.core.models import OwnerScope


def resolve_scope(org: str | None, repo: str | None, org_level: bool) -> OwnerScope:
    """Map an instance's ``Org``/``Repo`` tags to an :class:`OwnerScope`.

    With ``org_level`` the repository is always dropped. Otherwise a ``Repo``
    tag of the form ``owner/name`` carries its own owner; a bare name takes
    the owner from ``org``.

    Raises:
        ScopeError: when the tags cannot identify a scope.
    """
    if org_level:
        if not org:
            raise ScopeError("organization scope requires an org")
        return OwnerScope(owner=org)

    if not repo:
        raise ScopeError("repository scope requires a repo")

    owner, _, name = repo.rpartition("/")
    if not owner:
        owner, name = org or "", repo
    if not owner or not name:
        raise ScopeError(f"cannot resolve owner for repo {repo!r}")
    return OwnerScope(owner=owner, repository=name)


def scope_key(scope: OwnerScope) -> str:
    """Return the canonical cache key for *scope*."""
    return scope.key
