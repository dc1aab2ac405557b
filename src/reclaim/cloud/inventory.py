"""Fleet inventory: runner-tagged EC2 instances as InstanceRecords."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from reclaim.cloud.ec2 import ComputeProvider
from reclaim.core.models import InstanceFilters, InstanceRecord

logger = logging.getLogger(__name__)

APPLICATION_TAG = "github-action-runner"
LIVE_STATES = ["running", "pending"]


def build_filters(filters: InstanceFilters | None = None) -> list[dict[str, Any]]:
    """Translate *filters* into EC2 ``Filters``; runner tag and live states always apply."""
    ec2_filters: list[dict[str, Any]] = [
        {"Name": "tag:Application", "Values": [APPLICATION_TAG]},
        {"Name": "instance-state-name", "Values": list(LIVE_STATES)},
    ]
    if filters is None:
        return ec2_filters
    if filters.environment is not None:
        ec2_filters.append({"Name": "tag:Environment", "Values": [filters.environment]})
    if filters.repository is not None:
        ec2_filters.append({"Name": "tag:Repo", "Values": [filters.repository]})
    if filters.owner is not None:
        ec2_filters.append({"Name": "tag:Org", "Values": [filters.owner]})
    return ec2_filters


def _tag(instance: dict[str, Any], key: str) -> str | None:
    for tag in instance.get("Tags") or []:
        if tag.get("Key") == key:
            return tag.get("Value")
    return None


def to_record(instance: dict[str, Any]) -> InstanceRecord:
    """Build an InstanceRecord from a raw ``describe_instances`` entry."""
    launch_time: datetime | None = instance.get("LaunchTime")
    runner_id = _tag(instance, "GhRunnerId")
    return InstanceRecord(
        instance_id=instance["InstanceId"],
        launch_time=launch_time,
        repository=_tag(instance, "Repo"),
        owner=_tag(instance, "Org"),
        runner_class=_tag(instance, "RunnerType"),
        remote_runner_id=int(runner_id) if runner_id and runner_id.isdigit() else None,
    )


async def list_instances(
    provider: ComputeProvider,
    filters: InstanceFilters | None = None,
) -> list[InstanceRecord]:
    """Return every live runner instance matching *filters*, unordered.

    Provider failures propagate; a pass cannot run without a fleet view.
    """
    raw = await provider.describe_instances(build_filters(filters))
    records = [to_record(i) for i in raw]
    logger.debug("Fleet query returned %d instances", len(records))
    return records
