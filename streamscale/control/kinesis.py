"""
AWS Kinesis Data Streams control plane client.

Kinesis shards are the partitions. Kinesis reports an inclusive ending hash
key; partitions here use exclusive ends, so one is added on the way in.

Error mapping:
    ResourceInUseException           -> TransientBusyError
    LimitExceededException           -> TransientThrottledError
    InvalidArgumentException         -> InvalidMutationError
    ResourceNotFoundException        -> NotFoundError
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, TypeVar

import boto3
from botocore.exceptions import ClientError

from streamscale.control.client import StreamSummary
from streamscale.core.partition import Partition
from streamscale.errors import (
    InvalidMutationError,
    NotFoundError,
    TransientBusyError,
    TransientThrottledError,
)
from streamscale.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_BUSY_ERROR_CODES = {"ResourceInUseException"}
_THROTTLE_ERROR_CODES = {
    "LimitExceededException",
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
}
_INVALID_ERROR_CODES = {"InvalidArgumentException", "ValidationException"}
_NOT_FOUND_ERROR_CODES = {"ResourceNotFoundException"}


@dataclass(frozen=True)
class KinesisConfig:
    """
    Kinesis client configuration.

    Attributes:
        region: AWS region (None uses the default credential chain's region)
        endpoint_url: Custom endpoint URL (for LocalStack testing)
    """
    region: Optional[str] = None
    endpoint_url: Optional[str] = None

    @classmethod
    def from_env(cls) -> KinesisConfig:
        """Load configuration from environment variables."""
        return cls(
            region=os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION"),
            endpoint_url=os.getenv("KINESIS_ENDPOINT_URL"),
        )


def _error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


def shard_to_partition(shard: Dict[str, Any]) -> Partition:
    """
    Convert a Kinesis Shard structure to a Partition.

    Args:
        shard: Shard dict from ListShards

    Returns:
        Partition with an exclusive end hash key
    """
    hash_range = shard["HashKeyRange"]
    return Partition(
        partition_id=shard["ShardId"],
        start_hash_key=int(hash_range["StartingHashKey"]),
        end_hash_key=int(hash_range["EndingHashKey"]) + 1,
        parent_id=shard.get("ParentShardId"),
        adjacent_parent_id=shard.get("AdjacentParentShardId"),
    )


class KinesisControlClient:
    """
    StreamControlClient backed by boto3.

    Example:
        >>> client = KinesisControlClient.from_config(get_config())
        >>> client.describe_stream("orders").open_partition_count
        4
    """

    def __init__(self, config: Optional[KinesisConfig] = None, client: Any = None) -> None:
        """
        Initialize Kinesis client.

        Args:
            config: Region and endpoint configuration
            client: Pre-built boto3 Kinesis client (skips client creation)
        """
        self.config = config or KinesisConfig()
        self._client = client or boto3.client(
            "kinesis",
            region_name=self.config.region,
            endpoint_url=self.config.endpoint_url,
        )

    @classmethod
    def from_config(cls, config: Any) -> KinesisControlClient:
        """
        Build a client from the ``aws`` section of a Config.

        Args:
            config: streamscale Config instance
        """
        return cls(
            KinesisConfig(
                region=config.get("aws.region"),
                endpoint_url=config.get("aws.endpoint_url"),
            )
        )

    def _call(self, stream_name: str, action: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except ClientError as e:
            code = _error_code(e)
            if code in _BUSY_ERROR_CODES:
                raise TransientBusyError(f"{action} on {stream_name}: {code}") from e
            if code in _THROTTLE_ERROR_CODES:
                raise TransientThrottledError(f"{action} on {stream_name}: {code}") from e
            if code in _INVALID_ERROR_CODES:
                raise InvalidMutationError(f"{action} on {stream_name} rejected: {e}") from e
            if code in _NOT_FOUND_ERROR_CODES:
                raise NotFoundError(f"{action} on {stream_name}: {e}") from e
            raise

    def describe_stream(self, stream_name: str) -> StreamSummary:
        response = self._call(
            stream_name,
            "DescribeStreamSummary",
            lambda: self._client.describe_stream_summary(StreamName=stream_name),
        )
        summary = response["StreamDescriptionSummary"]
        return StreamSummary(
            stream_name=summary.get("StreamName", stream_name),
            status=summary["StreamStatus"],
            open_partition_count=summary.get("OpenShardCount", 0),
        )

    def list_partitions(
        self,
        stream_name: str,
        start_after_id: Optional[str] = None,
    ) -> List[Partition]:
        """
        List all shards, following NextToken until exhausted.

        Kinesis rejects StreamName and ExclusiveStartShardId alongside a
        NextToken, so only the first request carries them.
        """
        logger.debug("Listing partitions", stream=stream_name, start_after=start_after_id)

        request: Dict[str, Any] = {"StreamName": stream_name}
        if start_after_id is not None:
            request["ExclusiveStartShardId"] = start_after_id

        partitions: List[Partition] = []
        while True:
            params = request
            response = self._call(
                stream_name,
                "ListShards",
                lambda: self._client.list_shards(**params),
            )
            partitions.extend(shard_to_partition(s) for s in response.get("Shards", []))

            next_token = response.get("NextToken")
            if not next_token:
                break
            request = {"NextToken": next_token}

        return partitions

    def split_partition(
        self,
        stream_name: str,
        partition_id: str,
        target_hash_key: str,
    ) -> None:
        logger.debug(
            "Splitting partition",
            stream=stream_name,
            partition=partition_id,
            target_hash_key=target_hash_key,
        )
        self._call(
            stream_name,
            "SplitShard",
            lambda: self._client.split_shard(
                StreamName=stream_name,
                ShardToSplit=partition_id,
                NewStartingHashKey=target_hash_key,
            ),
        )

    def merge_partitions(
        self,
        stream_name: str,
        lower_id: str,
        higher_id: str,
    ) -> None:
        logger.debug(
            "Merging partitions",
            stream=stream_name,
            lower=lower_id,
            higher=higher_id,
        )
        self._call(
            stream_name,
            "MergeShards",
            lambda: self._client.merge_shards(
                StreamName=stream_name,
                ShardToMerge=lower_id,
                AdjacentShardToMerge=higher_id,
            ),
        )
