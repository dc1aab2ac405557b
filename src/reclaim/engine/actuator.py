"""Side-effecting calls against EC2 and GitHub."""

from __future__ import annotations

import logging

from reclaim.cloud.ec2 import ComputeProvider
from reclaim.core.models import InstanceRecord, OwnerScope
from reclaim.github.client import GitHubClient

logger = logging.getLogger(__name__)


class LifecycleActuator:
    """Terminates instances and removes runner registrations.

    Both operations are idempotent: an instance that is already gone or a
    runner that is already deleted is a no-op, so overlapping passes can
    race on the same instance safely.
    """

    def __init__(self, provider: ComputeProvider) -> None:
        self._provider = provider

    async def terminate(self, instance: InstanceRecord) -> None:
        """Terminate *instance*. Raises ProviderError when EC2 rejects the call."""
        await self._provider.terminate_instances([instance.instance_id])
        logger.debug("Runner %s terminated", instance.instance_id)

    async def deregister(self, client: GitHubClient, scope: OwnerScope, runner_id: int) -> None:
        """Remove runner *runner_id* from *scope*. Raises DeregistrationError on rejection."""
        await client.delete_runner(scope, runner_id)
        logger.debug("Runner %d removed from %s", runner_id, scope.key)
