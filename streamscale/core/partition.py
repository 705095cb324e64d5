"""
Partition (shard) data model.

A partition owns the half-open hash-key range [start_hash_key, end_hash_key).
Hash keys are Python ints so ranges wider than 64 bits compare exactly.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class SortOrder(str, Enum):
    """Presentation order for derived partition maps."""

    ASCENDING = "ascending"
    DESCENDING = "descending"
    NONE = "none"


@dataclass(frozen=True)
class Partition:
    """
    A single stream partition.

    Attributes:
        partition_id: Opaque partition identifier
        start_hash_key: First hash key owned by the partition (inclusive)
        end_hash_key: Hash key where the partition stops (exclusive)
        parent_id: Partition this one was split from, or the first merge parent
        adjacent_parent_id: Second merge parent
    """
    partition_id: str
    start_hash_key: int
    end_hash_key: int
    parent_id: Optional[str] = None
    adjacent_parent_id: Optional[str] = None

    def __post_init__(self):
        if self.start_hash_key < 0:
            raise ValueError(f"Negative start hash key for {self.partition_id}")
        if self.end_hash_key <= self.start_hash_key:
            raise ValueError(
                f"Empty hash key range for {self.partition_id}: "
                f"[{self.start_hash_key}, {self.end_hash_key})"
            )

    @property
    def width(self) -> int:
        """Number of hash keys owned."""
        return self.end_hash_key - self.start_hash_key

    @property
    def parent_ids(self) -> tuple:
        """Ids of the partitions this one supersedes."""
        return tuple(p for p in (self.parent_id, self.adjacent_parent_id) if p is not None)

    def contains(self, hash_key: int) -> bool:
        return self.start_hash_key <= hash_key < self.end_hash_key

    def midpoint(self) -> int:
        """Hash key that divides the range into two equal halves."""
        return self.start_hash_key + self.width // 2

    def is_adjacent_to(self, other: "Partition") -> bool:
        """True when ``other`` starts exactly where this partition ends."""
        return self.end_hash_key == other.start_hash_key

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary. Hash keys are rendered as decimal strings."""
        return {
            "partition_id": self.partition_id,
            "start_hash_key": str(self.start_hash_key),
            "end_hash_key": str(self.end_hash_key),
            "parent_id": self.parent_id,
            "adjacent_parent_id": self.adjacent_parent_id,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "Partition":
        """Create from dictionary."""
        return Partition(
            partition_id=data["partition_id"],
            start_hash_key=int(data["start_hash_key"]),
            end_hash_key=int(data["end_hash_key"]),
            parent_id=data.get("parent_id"),
            adjacent_parent_id=data.get("adjacent_parent_id"),
        )

    def __str__(self) -> str:
        return f"{self.partition_id}[{self.start_hash_key}, {self.end_hash_key})"
