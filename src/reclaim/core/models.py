"""Core domain models for runner-reclaim.

All domain objects are Pydantic BaseModel classes. Instances and runner
registrations are observed snapshots; nothing here is persisted.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Compute fleet
# ---------------------------------------------------------------------------


class InstanceRecord(BaseModel):
    """One EC2 instance tagged as a GitHub Actions runner."""

    instance_id: str
    launch_time: datetime | None = None
    repository: str | None = None
    owner: str | None = None
    runner_class: str | None = None
    remote_runner_id: int | None = None


class InstanceFilters(BaseModel):
    """Optional narrowing of the fleet query. All given fields must match."""

    environment: str | None = None
    repository: str | None = None
    owner: str | None = None


# ---------------------------------------------------------------------------
# CI coordinator
# ---------------------------------------------------------------------------


class RunnerRegistration(BaseModel):
    """A self-hosted runner as registered with GitHub Actions."""

    id: int
    name: str
    busy: bool = False
    status: str | None = None
    os: str | None = None
    labels: list[str] = Field(default_factory=list)


class OwnerScope(BaseModel, frozen=True):
    """The (owner, repository) pair runners are registered under.

    ``repository`` is empty for organization-wide scopes.
    """

    owner: str
    repository: str = ""

    @property
    def is_org_level(self) -> bool:
        return not self.repository

    @property
    def key(self) -> str:
        """Canonical cache key: ``owner`` or ``owner/repository``."""
        if self.is_org_level:
            return self.owner
        return f"{self.owner}/{self.repository}"


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


class ReclaimAction(StrEnum):
    skip_too_young = "skip-too-young"
    skip_busy = "skip-busy"
    skip_unscoped = "skip-unscoped"
    deregister_and_terminate = "deregister-and-terminate"
    terminate_orphan = "terminate-orphan"
    deregister_failed_abort_pass = "deregister-failed-abort-pass"
    terminate_failed_log = "terminate-failed-log"
    dry_run = "dry-run"


class ReclaimDecision(BaseModel):
    """What a pass decided to do with a single instance."""

    instance_id: str
    runner_class: str | None = None
    action: ReclaimAction
    remote_runner_id: int | None = None
    detail: str | None = None


class PassReport(BaseModel):
    """Summary of one reconciliation pass."""

    started_at: datetime
    finished_at: datetime | None = None
    environment: str = ""
    instances_seen: int = 0
    decisions: list[ReclaimDecision] = Field(default_factory=list)
    aborted: bool = False

    def _ids(self, *actions: ReclaimAction) -> list[str]:
        return [d.instance_id for d in self.decisions if d.action in actions]

    @property
    def terminated(self) -> list[str]:
        return self._ids(
            ReclaimAction.deregister_and_terminate,
            ReclaimAction.terminate_orphan,
        )

    @property
    def deregistered(self) -> list[str]:
        # A failed termination still counts when the runner was de-registered first
        return [
            d.instance_id
            for d in self.decisions
            if d.remote_runner_id is not None
            and d.action
            in (ReclaimAction.deregister_and_terminate, ReclaimAction.terminate_failed_log)
        ]

    @property
    def skipped(self) -> list[str]:
        return self._ids(
            ReclaimAction.skip_too_young,
            ReclaimAction.skip_busy,
            ReclaimAction.skip_unscoped,
        )
