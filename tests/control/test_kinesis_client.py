"""Tests for the boto3 Kinesis control plane client."""

from datetime import datetime, timezone

import boto3
import pytest
from botocore.exceptions import ClientError
from botocore.stub import Stubber

from streamscale.control.coordinator import PartitionMutationCoordinator
from streamscale.control.kinesis import KinesisControlClient, shard_to_partition
from streamscale.core.keyspace import KEYSPACE_END
from streamscale.errors import (
    InvalidMutationError,
    NotFoundError,
    TransientBusyError,
    TransientThrottledError,
)
from streamscale.utils.config import Config

MAX_HASH_KEY = str(KEYSPACE_END - 1)
MID_HASH_KEY = str(2 ** 127)


def shard(shard_id, start, end, parent=None, adjacent=None):
    data = {
        "ShardId": shard_id,
        "HashKeyRange": {"StartingHashKey": start, "EndingHashKey": end},
        "SequenceNumberRange": {"StartingSequenceNumber": "49590338271490256608559692538361571095921575989136588898"},
    }
    if parent:
        data["ParentShardId"] = parent
    if adjacent:
        data["AdjacentParentShardId"] = adjacent
    return data


@pytest.fixture
def boto_client(monkeypatch):
    """Create a boto3 Kinesis client that never reaches the network."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    return boto3.client("kinesis", region_name="us-east-1")


@pytest.fixture
def stubber(boto_client):
    with Stubber(boto_client) as stub:
        yield stub
        stub.assert_no_pending_responses()


@pytest.fixture
def client(boto_client):
    return KinesisControlClient(client=boto_client)


class TestShardConversion:
    """Test shard_to_partition."""

    def test_inclusive_end_becomes_exclusive(self):
        """Test the full keyspace shard ends at 2^128."""
        partition = shard_to_partition(shard("shardId-000000000000", "0", MAX_HASH_KEY))

        assert partition.start_hash_key == 0
        assert partition.end_hash_key == KEYSPACE_END
        assert partition.parent_id is None

    def test_lineage_preserved(self):
        """Test parent ids are carried over."""
        partition = shard_to_partition(
            shard("shardId-000000000003", "0", MAX_HASH_KEY, "shardId-000000000001", "shardId-000000000002")
        )

        assert partition.parent_ids == ("shardId-000000000001", "shardId-000000000002")


class TestKinesisControlClient:
    """Test KinesisControlClient."""

    def test_list_follows_next_token(self, client, stubber):
        """Test pagination is exhausted and only the first page names the stream."""
        stubber.add_response(
            "list_shards",
            {
                "Shards": [
                    shard("shardId-000000000000", "0", MAX_HASH_KEY),
                    shard("shardId-000000000001", "0", str(2 ** 127 - 1), "shardId-000000000000"),
                ],
                "NextToken": "page-2",
            },
            {"StreamName": "orders"},
        )
        stubber.add_response(
            "list_shards",
            {"Shards": [shard("shardId-000000000002", MID_HASH_KEY, MAX_HASH_KEY, "shardId-000000000000")]},
            {"NextToken": "page-2"},
        )

        partitions = client.list_partitions("orders")

        assert [p.partition_id for p in partitions] == [
            "shardId-000000000000",
            "shardId-000000000001",
            "shardId-000000000002",
        ]
        assert partitions[1].end_hash_key == partitions[2].start_hash_key

    def test_list_start_after(self, client, stubber):
        """Test exclusive start shard id is sent on the first page."""
        stubber.add_response(
            "list_shards",
            {"Shards": []},
            {"StreamName": "orders", "ExclusiveStartShardId": "shardId-000000000000"},
        )

        assert client.list_partitions("orders", "shardId-000000000000") == []

    def test_describe(self, client, stubber):
        """Test describe maps the stream summary."""
        stubber.add_response(
            "describe_stream_summary",
            {
                "StreamDescriptionSummary": {
                    "StreamName": "orders",
                    "StreamARN": "arn:aws:kinesis:us-east-1:123456789012:stream/orders",
                    "StreamStatus": "UPDATING",
                    "RetentionPeriodHours": 24,
                    "StreamCreationTimestamp": datetime(2024, 1, 1, tzinfo=timezone.utc),
                    "EnhancedMonitoring": [],
                    "OpenShardCount": 2,
                }
            },
            {"StreamName": "orders"},
        )

        summary = client.describe_stream("orders")

        assert summary.status == "UPDATING"
        assert summary.open_partition_count == 2
        assert not summary.is_active

    def test_split_sends_decimal_hash_key(self, client, stubber):
        """Test split passes the hash key as a decimal string."""
        stubber.add_response(
            "split_shard",
            {},
            {
                "StreamName": "orders",
                "ShardToSplit": "shardId-000000000000",
                "NewStartingHashKey": MID_HASH_KEY,
            },
        )

        client.split_partition("orders", "shardId-000000000000", MID_HASH_KEY)

    def test_merge(self, client, stubber):
        """Test merge request parameters."""
        stubber.add_response(
            "merge_shards",
            {},
            {
                "StreamName": "orders",
                "ShardToMerge": "shardId-000000000001",
                "AdjacentShardToMerge": "shardId-000000000002",
            },
        )

        client.merge_partitions("orders", "shardId-000000000001", "shardId-000000000002")

    @pytest.mark.parametrize(
        "code,error",
        [
            ("ResourceInUseException", TransientBusyError),
            ("LimitExceededException", TransientThrottledError),
            ("InvalidArgumentException", InvalidMutationError),
            ("ResourceNotFoundException", NotFoundError),
        ],
    )
    def test_error_mapping(self, client, stubber, code, error):
        """Test control plane error codes map to the error taxonomy."""
        stubber.add_client_error("merge_shards", service_error_code=code)

        with pytest.raises(error) as exc_info:
            client.merge_partitions("orders", "shardId-000000000001", "shardId-000000000002")

        assert isinstance(exc_info.value.__cause__, ClientError)

    def test_unknown_error_propagates(self, client, stubber):
        """Test unmapped errors surface as ClientError."""
        stubber.add_client_error("split_shard", service_error_code="InternalFailure")

        with pytest.raises(ClientError):
            client.split_partition("orders", "shardId-000000000000", MID_HASH_KEY)

    def test_coordinator_retries_busy_split(self, client, stubber):
        """Test the coordinator retries a busy Kinesis split."""
        expected = {
            "StreamName": "orders",
            "ShardToSplit": "shardId-000000000000",
            "NewStartingHashKey": MID_HASH_KEY,
        }
        stubber.add_client_error(
            "split_shard",
            service_error_code="ResourceInUseException",
            expected_params=expected,
        )
        stubber.add_response("split_shard", {}, expected)
        delays = []
        coordinator = PartitionMutationCoordinator(client, sleep=delays.append)

        state = coordinator.split("orders", "shardId-000000000000", 2 ** 127)

        assert state.succeeded
        assert delays == [1000]

    def test_from_config(self, monkeypatch):
        """Test client configuration is read from Config."""
        monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
        monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
        config = Config()
        config.set("aws.region", "eu-west-1")
        config.set("aws.endpoint_url", "http://localhost:4566")

        client = KinesisControlClient.from_config(config)

        assert client.config.region == "eu-west-1"
        assert client.config.endpoint_url == "http://localhost:4566"
