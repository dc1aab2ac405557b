"""Scale-down reconciliation loop.

One pass takes a snapshot of the runner fleet, walks it newest first and,
for every instance that has outlived its boot window and is not running a
job, removes the GitHub registration and then terminates the instance.

A failed de-registration most likely means the runner picked up a job
between the listing and the delete, so the rest of the pass is abandoned
rather than acting on stale listings. A failed termination only leaves an
orphan behind; the next pass picks it up again.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
import time
from collections.abc import Callable, Iterable

from reclaim.cloud.ec2 import ComputeProvider
from reclaim.cloud.inventory import list_instances
from reclaim.core.config import ReclaimConfig
from reclaim.core.errors import CoordinatorError, ProviderError, ScopeError
from reclaim.core.models import (
    InstanceFilters,
    InstanceRecord,
    OwnerScope,
    PassReport,
    ReclaimAction,
    ReclaimDecision,
    RunnerRegistration,
)
from reclaim.core.scope import resolve_scope
from reclaim.engine.actuator import LifecycleActuator
from reclaim.github.cache import RunnerCache
from reclaim.github.client import GitHubClient
from reclaim.metrics import DECISIONS_TOTAL, FLEET_SIZE, LAST_PASS, PASS_DURATION, PASSES_TOTAL

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime.datetime]


def _utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def _as_utc(value: datetime.datetime) -> datetime.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.UTC)
    return value


def sort_newest_first(instances: Iterable[InstanceRecord]) -> list[InstanceRecord]:
    """Order instances by launch time, newest first, undated ones last."""
    instances = list(instances)
    dated = [i for i in instances if i.launch_time is not None]
    undated = [i for i in instances if i.launch_time is None]
    dated.sort(key=lambda i: _as_utc(i.launch_time), reverse=True)  # type: ignore[arg-type]
    return dated + undated


def minimum_time_exceeded(
    instance: InstanceRecord, minimum_minutes: int, now: datetime.datetime
) -> bool:
    """True once *instance* has been up longer than *minimum_minutes*.

    An instance without a launch time never qualifies.
    """
    if instance.launch_time is None:
        return False
    deadline = _as_utc(instance.launch_time) + datetime.timedelta(minutes=minimum_minutes)
    return deadline < _as_utc(now)


def find_registration(
    runners: Iterable[RunnerRegistration], instance_id: str
) -> RunnerRegistration | None:
    """Return the registration whose name is exactly *instance_id*."""
    for runner in runners:
        if runner.name == instance_id:
            return runner
    return None


class ScaleDown:
    """Runs scale-down passes over the runner fleet.

    Parameters
    ----------
    config:
        Environment, minimum lifetime, org-level flag and dry-run switch.
    provider:
        EC2 access for both the inventory query and termination.
    cache:
        Client and listing cache; reset at the start of every pass.
    actuator:
        Defaults to a :class:`LifecycleActuator` over *provider*.
    clock:
        Returns the current UTC time. Injected by tests.
    """

    def __init__(
        self,
        config: ReclaimConfig,
        provider: ComputeProvider,
        cache: RunnerCache,
        actuator: LifecycleActuator | None = None,
        clock: Clock = _utc_now,
    ) -> None:
        self._config = config
        self._provider = provider
        self._cache = cache
        self._actuator = actuator or LifecycleActuator(provider)
        self._clock = clock

    # -- Public API -------------------------------------------------------

    async def run_pass(self) -> PassReport:
        """Run one reconciliation pass and return what it decided.

        Inventory, authentication and listing failures propagate. A
        de-registration failure ends the pass early with ``aborted=True``.
        """
        started = time.monotonic()
        report = PassReport(started_at=self._clock(), environment=self._config.environment)
        try:
            await self._reconcile(report)
        except Exception:
            PASSES_TOTAL.labels(outcome="failed").inc()
            raise
        finally:
            report.finished_at = self._clock()
            PASS_DURATION.observe(time.monotonic() - started)

        PASSES_TOTAL.labels(outcome="aborted" if report.aborted else "completed").inc()
        LAST_PASS.set(time.time())
        logger.info(
            "Scale-down pass finished: %d seen, %d terminated, %d skipped%s",
            report.instances_seen,
            len(report.terminated),
            len(report.skipped),
            " (aborted)" if report.aborted else "",
        )
        return report

    async def run_forever(self, stop_event: asyncio.Event, interval_s: float | None = None) -> None:
        """Repeat passes every *interval_s* seconds until *stop_event* is set.

        A failed pass is logged and the next one runs on schedule; there is
        no retry inside a pass.
        """
        interval = interval_s if interval_s is not None else self._config.interval_s
        try:
            while not stop_event.is_set():
                try:
                    await self.run_pass()
                except Exception:
                    logger.exception("Error in scale-down pass")

                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=interval)
                    break
                except TimeoutError:
                    continue
        finally:
            await self.close()

    async def close(self) -> None:
        """Release the HTTP clients held by the cache."""
        await self._cache.aclose()

    # -- Pass internals ---------------------------------------------------

    async def _reconcile(self, report: PassReport) -> None:
        environment = self._config.environment
        instances = await list_instances(
            self._provider, InstanceFilters(environment=environment or None)
        )
        report.instances_seen = len(instances)
        FLEET_SIZE.set(len(instances))

        if not instances:
            logger.debug("No active runners found for environment: '%s'", environment)
            return

        # Busy state is only trustworthy for this pass
        self._cache.reset()
        await self._cache.close_stale()

        now = self._clock()
        for instance in sort_newest_first(instances):
            if not await self._reconcile_instance(instance, now, report):
                report.aborted = True
                return

    async def _reconcile_instance(
        self, instance: InstanceRecord, now: datetime.datetime, report: PassReport
    ) -> bool:
        """Handle one instance. Returns False when the pass must stop."""
        label = f"'{instance.instance_id}' [{instance.runner_class}]"

        if not minimum_time_exceeded(instance, self._config.minimum_running_time_minutes, now):
            logger.debug("Runner %s has not been alive long enough, skipping", label)
            self._record(report, instance, ReclaimAction.skip_too_young)
            return True

        try:
            scope = resolve_scope(
                instance.owner, instance.repository, self._config.enable_organization_runners
            )
        except ScopeError as exc:
            logger.warning("Runner %s has no usable Org/Repo tags, skipping: %s", label, exc)
            self._record(report, instance, ReclaimAction.skip_unscoped, detail=str(exc))
            return True

        client = await self._cache.get_client(scope)
        runners = await self._cache.get_runner_listing(client, scope)
        registration = find_registration(runners, instance.instance_id)

        if registration is not None and registration.busy:
            logger.info("Runner %s is busy, skipping", label)
            self._record(report, instance, ReclaimAction.skip_busy, registration.id)
            return True

        runner_id = registration.id if registration is not None else None
        if self._config.dry_run:
            logger.info(
                "Runner %s would be %s (dry run)",
                label,
                "de-registered and terminated" if registration else "terminated",
            )
            self._record(report, instance, ReclaimAction.dry_run, runner_id)
            return True

        if registration is not None:
            if not await self._deregister(instance, client, scope, registration, label, report):
                return False

        logger.info("Runner %s will be terminated", label)
        try:
            await self._actuator.terminate(instance)
        except ProviderError as exc:
            logger.error("Orphan runner %s cannot be removed: %s", label, exc)
            self._record(
                report, instance, ReclaimAction.terminate_failed_log, runner_id, detail=str(exc)
            )
            return True

        action = (
            ReclaimAction.deregister_and_terminate
            if registration is not None
            else ReclaimAction.terminate_orphan
        )
        self._record(report, instance, action, runner_id)
        return True

    async def _deregister(
        self,
        instance: InstanceRecord,
        client: GitHubClient,
        scope: OwnerScope,
        registration: RunnerRegistration,
        label: str,
        report: PassReport,
    ) -> bool:
        logger.info("Runner %s will be de-registered from GitHub", label)
        try:
            await self._actuator.deregister(client, scope, registration.id)
        except CoordinatorError as exc:
            # Most likely the runner started a job after the listing was taken
            logger.warning("Error de-registering %s: %s", label, exc)
            self._record(
                report,
                instance,
                ReclaimAction.deregister_failed_abort_pass,
                registration.id,
                detail=str(exc),
            )
            return False
        return True

    @staticmethod
    def _record(
        report: PassReport,
        instance: InstanceRecord,
        action: ReclaimAction,
        runner_id: int | None = None,
        detail: str | None = None,
    ) -> None:
        report.decisions.append(
            ReclaimDecision(
                instance_id=instance.instance_id,
                runner_class=instance.runner_class,
                action=action,
                remote_runner_id=runner_id,
                detail=detail,
            )
        )
        DECISIONS_TOTAL.labels(action=action.value).inc()
