"""Tests for the lifecycle actuator."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from reclaim.cloud.ec2 import Ec2Provider
from reclaim.core.errors import DeregistrationError, ProviderError
from reclaim.core.models import InstanceRecord, OwnerScope
from reclaim.engine.actuator import LifecycleActuator
from reclaim.github.client import GitHubClient


class TestTerminate:
    async def test_terminates_single_instance(self):
        provider = AsyncMock(spec=Ec2Provider)
        await LifecycleActuator(provider).terminate(InstanceRecord(instance_id="i-1"))
        provider.terminate_instances.assert_awaited_once_with(["i-1"])

    async def test_failure_propagates(self):
        provider = AsyncMock(spec=Ec2Provider)
        provider.terminate_instances = AsyncMock(side_effect=ProviderError("denied"))
        with pytest.raises(ProviderError):
            await LifecycleActuator(provider).terminate(InstanceRecord(instance_id="i-1"))


class TestDeregister:
    async def test_deletes_from_scope(self):
        client = AsyncMock(spec=GitHubClient)
        scope = OwnerScope(owner="o", repository="r")
        await LifecycleActuator(AsyncMock(spec=Ec2Provider)).deregister(client, scope, 42)
        client.delete_runner.assert_awaited_once_with(scope, 42)

    async def test_failure_propagates(self):
        client = AsyncMock(spec=GitHubClient)
        client.delete_runner = AsyncMock(side_effect=DeregistrationError("busy", status_code=422))
        with pytest.raises(DeregistrationError):
            await LifecycleActuator(AsyncMock(spec=Ec2Provider)).deregister(
                client, OwnerScope(owner="acme"), 42
            )
