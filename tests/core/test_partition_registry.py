"""Tests for partition model and open partition derivation."""

import itertools

import pytest

from streamscale.core.keyspace import KEYSPACE_END
from streamscale.core.partition import Partition, SortOrder
from streamscale.core.registry import PartitionRegistry
from streamscale.errors import KeyspaceTilingError, NotFoundError


@pytest.fixture
def registry():
    """Create partition registry."""
    return PartitionRegistry()


def split_history():
    """P [0,100) split at 50 into A [0,50) and B [50,100)."""
    return [
        Partition("P", 0, 100),
        Partition("A", 0, 50, parent_id="P"),
        Partition("B", 50, 100, parent_id="P"),
    ]


def merge_history():
    """A [0,50) and B [50,100) merged into M [0,100)."""
    return [
        Partition("A", 0, 50),
        Partition("B", 50, 100),
        Partition("M", 0, 100, parent_id="A", adjacent_parent_id="B"),
    ]


def deep_history():
    """Several generations of splits and merges over [0,100)."""
    return [
        Partition("p0", 0, 100),
        Partition("p1", 0, 50, parent_id="p0"),
        Partition("p2", 50, 100, parent_id="p0"),
        Partition("p3", 0, 25, parent_id="p1"),
        Partition("p4", 25, 50, parent_id="p1"),
        Partition("p5", 25, 100, parent_id="p4", adjacent_parent_id="p2"),
        Partition("p6", 25, 60, parent_id="p5"),
        Partition("p7", 60, 100, parent_id="p5"),
    ]


class TestPartition:
    """Test Partition."""

    def test_creation(self):
        """Test creating a partition."""
        partition = Partition("p0", 0, 100, parent_id="a", adjacent_parent_id="b")

        assert partition.width == 100
        assert partition.parent_ids == ("a", "b")
        assert partition.contains(0)
        assert partition.contains(99)
        assert not partition.contains(100)

    def test_big_hash_keys(self):
        """Test ranges wider than 64 bits compare exactly."""
        partition = Partition("p0", 2 ** 127, KEYSPACE_END)

        assert partition.contains(KEYSPACE_END - 1)
        assert not partition.contains(2 ** 127 - 1)
        assert partition.midpoint() == 2 ** 127 + 2 ** 126

    def test_empty_range_rejected(self):
        """Test empty or inverted ranges are rejected."""
        with pytest.raises(ValueError):
            Partition("p0", 10, 10)
        with pytest.raises(ValueError):
            Partition("p0", 10, 5)

    def test_adjacency(self):
        """Test adjacency check."""
        lower = Partition("a", 0, 50)
        higher = Partition("b", 50, 100)

        assert lower.is_adjacent_to(higher)
        assert not higher.is_adjacent_to(lower)

    def test_dict_round_trip_keeps_big_keys(self):
        """Test hash keys survive serialization as strings."""
        partition = Partition("p0", 0, KEYSPACE_END, parent_id="x")

        data = partition.to_dict()

        assert data["end_hash_key"] == str(KEYSPACE_END)
        assert Partition.from_dict(data) == partition


class TestDeriveOpenPartitions:
    """Test PartitionRegistry.derive_open_partitions."""

    def test_split_closes_parent(self, registry):
        """Test a split parent is closed and both children are open."""
        open_partitions = registry.derive_open_partitions(split_history())

        assert list(open_partitions) == ["A", "B"]
        assert open_partitions["A"].end_hash_key == 50
        assert open_partitions["B"].start_hash_key == 50

    def test_merge_closes_both_parents(self, registry):
        """Test both merge parents are closed and the child is open."""
        open_partitions = registry.derive_open_partitions(merge_history())

        assert list(open_partitions) == ["M"]
        assert open_partitions["M"].width == 100

    def test_deep_lineage(self, registry):
        """Test several generations resolve to the leaves."""
        open_partitions = registry.derive_open_partitions(deep_history(), SortOrder.ASCENDING)

        assert list(open_partitions) == ["p3", "p6", "p7"]

    def test_membership_independent_of_listing_order(self, registry):
        """Test every permutation of the listing yields the same open set."""
        history = split_history() + [
            Partition("C", 0, 100, parent_id="A", adjacent_parent_id="B"),
        ]
        expected = set(registry.derive_open_partitions(history))

        for permutation in itertools.permutations(history):
            assert set(registry.derive_open_partitions(permutation)) == expected

        assert expected == {"C"}

    def test_child_listed_before_parent(self, registry):
        """Test a parent listed after its child stays closed."""
        history = list(reversed(split_history()))

        open_partitions = registry.derive_open_partitions(history)

        assert set(open_partitions) == {"A", "B"}

    def test_repeated_derivation_is_identical(self, registry):
        """Test deriving twice gives the same result."""
        history = deep_history()

        first = registry.derive_open_partitions(history, SortOrder.ASCENDING)
        second = registry.derive_open_partitions(history, SortOrder.ASCENDING)

        assert first == second
        assert list(first) == list(second)

    def test_empty_listing(self, registry):
        """Test an empty listing yields no partitions."""
        assert registry.derive_open_partitions([]) == {}


class TestOrdering:
    """Test presentation order of open partitions."""

    @pytest.fixture
    def partitions(self):
        return [
            Partition("mid", 50, 100),
            Partition("low", 0, 50),
            Partition("high", 100, 150),
        ]

    def test_ascending(self, registry, partitions):
        """Test ascending order by start hash key."""
        ordered = registry.derive_open_partitions(partitions, SortOrder.ASCENDING)

        assert [p.start_hash_key for p in ordered.values()] == [0, 50, 100]

    def test_descending(self, registry, partitions):
        """Test descending order by start hash key."""
        ordered = registry.derive_open_partitions(partitions, SortOrder.DESCENDING)

        assert [p.start_hash_key for p in ordered.values()] == [100, 50, 0]

    def test_none_preserves_discovery_order(self, registry, partitions):
        """Test NONE keeps listing order."""
        ordered = registry.derive_open_partitions(partitions, SortOrder.NONE)

        assert list(ordered) == ["mid", "low", "high"]

    def test_integer_not_lexical_sort(self, registry):
        """Test big keys sort numerically."""
        partitions = [
            Partition("b", 9 * 10 ** 30, 10 ** 31),
            Partition("a", 10 ** 30, 9 * 10 ** 30),
            Partition("c", 10 ** 31, 10 ** 31 + 1),
        ]

        ordered = registry.derive_open_partitions(partitions, SortOrder.ASCENDING)

        assert list(ordered) == ["a", "b", "c"]


class TestSinglePartition:
    """Test single partition lookups."""

    def test_get_open_partition(self, registry):
        """Test fetching an open partition by id."""
        partition = registry.get_single_partition(split_history(), "B")

        assert partition.start_hash_key == 50

    def test_closed_partition_not_found(self, registry):
        """Test a closed partition is not returned."""
        with pytest.raises(NotFoundError) as exc_info:
            registry.get_single_partition(split_history(), "P")

        assert exc_info.value.partition_id == "P"

    def test_unknown_partition_not_found(self, registry):
        """Test an unknown id is not found."""
        with pytest.raises(NotFoundError):
            registry.get_single_partition(split_history(), "missing")

    def test_find_partition_for_key(self, registry):
        """Test locating the partition owning a key."""
        open_partitions = registry.derive_open_partitions(deep_history())

        assert registry.find_partition_for_key(open_partitions, 24).partition_id == "p3"
        assert registry.find_partition_for_key(open_partitions, 25).partition_id == "p6"

        with pytest.raises(NotFoundError):
            registry.find_partition_for_key(open_partitions, 100)

    def test_find_adjacent(self, registry):
        """Test finding the higher neighbour."""
        open_partitions = registry.derive_open_partitions(deep_history())

        assert registry.find_adjacent(open_partitions, "p3").partition_id == "p6"
        assert registry.find_adjacent(open_partitions, "p7") is None

        with pytest.raises(NotFoundError):
            registry.find_adjacent(open_partitions, "p0")


class TestTiling:
    """Test keyspace tiling checks."""

    def test_derived_sets_tile(self, registry):
        """Test every sample history tiles [0, 100)."""
        for history in (split_history(), merge_history(), deep_history()):
            registry.check_tiling(registry.derive_open_partitions(history), 0, 100)

    def test_gap_detected(self, registry):
        """Test a gap is reported."""
        partitions = {"a": Partition("a", 0, 40), "b": Partition("b", 50, 100)}

        with pytest.raises(KeyspaceTilingError, match="Gap"):
            registry.check_tiling(partitions, 0, 100)

    def test_overlap_detected(self, registry):
        """Test an overlap is reported."""
        partitions = {"a": Partition("a", 0, 60), "b": Partition("b", 50, 100)}

        with pytest.raises(KeyspaceTilingError, match="overlaps"):
            registry.check_tiling(partitions, 0, 100)

    def test_short_coverage_detected(self, registry):
        """Test missing keys at the top of the keyspace are reported."""
        with pytest.raises(KeyspaceTilingError):
            registry.check_tiling({"a": Partition("a", 0, 99)}, 0, 100)

    def test_empty_set_detected(self, registry):
        """Test an empty open set does not tile."""
        with pytest.raises(KeyspaceTilingError):
            registry.check_tiling({}, 0, 100)
