"""Tests for the boto3-backed EC2 provider (botocore Stubber)."""

from __future__ import annotations

import datetime

import boto3
import pytest
from botocore.stub import Stubber

from reclaim.cloud.ec2 import Ec2Provider
from reclaim.core.errors import ProviderError

FILTERS = [{"Name": "tag:Application", "Values": ["github-action-runner"]}]
LAUNCHED = datetime.datetime(2026, 10, 17, 11, 0, tzinfo=datetime.UTC)


@pytest.fixture
def ec2():
    client = boto3.client(
        "ec2",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )
    with Stubber(client) as stubber:
        yield client, stubber
        stubber.assert_no_pending_responses()


class TestDescribeInstances:
    async def test_flattens_reservations_across_pages(self, ec2):
        client, stubber = ec2
        stubber.add_response(
            "describe_instances",
            {
                "Reservations": [
                    {"Instances": [{"InstanceId": "i-1", "LaunchTime": LAUNCHED}]},
                    {"Instances": [{"InstanceId": "i-2"}]},
                ],
                "NextToken": "page-2",
            },
            {"Filters": FILTERS},
        )
        stubber.add_response(
            "describe_instances",
            {"Reservations": [{"Instances": [{"InstanceId": "i-3"}]}]},
            {"Filters": FILTERS, "NextToken": "page-2"},
        )

        instances = await Ec2Provider(client).describe_instances(FILTERS)

        assert [i["InstanceId"] for i in instances] == ["i-1", "i-2", "i-3"]

    async def test_client_error_wrapped(self, ec2):
        client, stubber = ec2
        stubber.add_client_error(
            "describe_instances", service_error_code="RequestLimitExceeded", http_status_code=503
        )

        with pytest.raises(ProviderError, match="describe_instances failed"):
            await Ec2Provider(client).describe_instances(FILTERS)


class TestTerminateInstances:
    async def test_terminates(self, ec2):
        client, stubber = ec2
        stubber.add_response(
            "terminate_instances",
            {"TerminatingInstances": [{"InstanceId": "i-1"}]},
            {"InstanceIds": ["i-1"]},
        )

        await Ec2Provider(client).terminate_instances(["i-1"])

    async def test_already_gone_is_noop(self, ec2):
        client, stubber = ec2
        stubber.add_client_error(
            "terminate_instances",
            service_error_code="InvalidInstanceID.NotFound",
            http_status_code=400,
        )

        await Ec2Provider(client).terminate_instances(["i-1"])

    async def test_rejection_raises(self, ec2):
        client, stubber = ec2
        stubber.add_client_error(
            "terminate_instances",
            service_error_code="UnauthorizedOperation",
            http_status_code=403,
        )

        with pytest.raises(ProviderError, match="terminate_instances failed"):
            await Ec2Provider(client).terminate_instances(["i-1"])

    async def test_malformed_id_raises(self, ec2):
        client, stubber = ec2
        stubber.add_client_error(
            "terminate_instances",
            service_error_code="InvalidInstanceID.Malformed",
            http_status_code=400,
        )

        with pytest.raises(ProviderError, match="terminate_instances failed"):
            await Ec2Provider(client).terminate_instances(["not-an-id"])
