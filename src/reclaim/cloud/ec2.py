"""Async wrapper around the boto3 EC2 client."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import anyio.to_thread
import boto3
from botocore.exceptions import BotoCoreError, ClientError

from reclaim.core.errors import ProviderError

logger = logging.getLogger(__name__)

# Error codes meaning the instance is already gone
_MISSING_INSTANCE_CODES = frozenset({"InvalidInstanceID.NotFound"})


class ComputeProvider(Protocol):
    """The slice of the EC2 API the scale-down path needs."""

    async def describe_instances(self, filters: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Return raw instance dicts matching *filters*, across all pages."""
        ...

    async def terminate_instances(self, instance_ids: list[str]) -> None:
        """Terminate the given instances."""
        ...


def is_missing_instance(exc: ClientError) -> bool:
    """Return True when *exc* says the instance no longer exists."""
    return exc.response.get("Error", {}).get("Code") in _MISSING_INSTANCE_CODES


class Ec2Provider:
    """EC2 compute provider backed by boto3.

    boto3 is blocking, so every call is pushed to a worker thread.
    """

    def __init__(self, client: Any | None = None, region: str | None = None) -> None:
        self._client = client or boto3.client("ec2", region_name=region)

    async def describe_instances(self, filters: list[dict[str, Any]]) -> list[dict[str, Any]]:
        def _describe() -> list[dict[str, Any]]:
            paginator = self._client.get_paginator("describe_instances")
            instances: list[dict[str, Any]] = []
            for page in paginator.paginate(Filters=filters):
                for reservation in page.get("Reservations", []):
                    instances.extend(reservation.get("Instances", []))
            return instances

        try:
            return await anyio.to_thread.run_sync(_describe)
        except (ClientError, BotoCoreError) as exc:
            raise ProviderError(f"describe_instances failed: {exc}") from exc

    async def terminate_instances(self, instance_ids: list[str]) -> None:
        def _terminate() -> None:
            self._client.terminate_instances(InstanceIds=instance_ids)

        try:
            await anyio.to_thread.run_sync(_terminate)
        except ClientError as exc:
            if is_missing_instance(exc):
                logger.debug("Instances %s already gone", ",".join(instance_ids))
                return
            raise ProviderError(f"terminate_instances failed: {exc}") from exc
        except BotoCoreError as exc:
            raise ProviderError(f"terminate_instances failed: {exc}") from exc
        logger.debug("Terminated %s", ",".join(instance_ids))
