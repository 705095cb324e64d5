"""
Keyspace constants and fuzzy comparison of keyspace shares.

A stream with N partitions cannot always divide the keyspace into exactly
equal shares (3 partitions get 33.33..% each, with the remainder landing on
one of them), so share percentages are compared with a tolerance one order of
magnitude looser than the rounding scale.
"""

from decimal import ROUND_HALF_DOWN, Decimal, localcontext
from typing import Iterable

from streamscale.core.partition import Partition

# Full keyspace of the reference service: [0, 2^128)
KEYSPACE_START = 0
KEYSPACE_END = 2 ** 128
KEYSPACE_WIDTH = KEYSPACE_END - KEYSPACE_START

# rounding scale for share comparisons
PCT_COMPARISON_SCALE = 10


def _round(value: float, scale: int) -> Decimal:
    exact = Decimal(value)
    with localcontext() as ctx:
        # quantize needs room for every integer digit plus the scale
        ctx.prec = max(28, exact.adjusted() + scale + 2)
        return exact.quantize(Decimal(1).scaleb(-scale), rounding=ROUND_HALF_DOWN)


def soft_compare(a: float, b: float, scale: int = PCT_COMPARISON_SCALE) -> int:
    """
    Compare two keyspace shares, treating near-equal values as equal.

    Both values are rounded half-down to ``scale`` fractional digits. If the
    rounded values differ by less than 10^-(scale-1) they are equal.

    Args:
        a: First share
        b: Second share
        scale: Number of fractional digits to round to

    Returns:
        -1 if a < b, 0 if equal within tolerance, 1 if a > b
    """
    if scale < 1:
        raise ValueError(f"Invalid comparison scale: {scale}")

    accepted_variation = Decimal(1).scaleb(-(scale - 1))

    first = _round(a, scale)
    second = _round(b, scale)

    with localcontext() as ctx:
        ctx.prec = max(28, first.adjusted() + scale + 2, second.adjusted() + scale + 2)
        variation = abs(first - second)

        if variation < accepted_variation:
            return 0

        if first < second:
            return -1
        return 1


def keyspace_share(partition: Partition, keyspace_width: int = KEYSPACE_WIDTH) -> float:
    """
    Percentage of the keyspace owned by a partition.

    Args:
        partition: Partition to measure
        keyspace_width: Width of the full keyspace

    Returns:
        Share as a percentage (0-100)
    """
    if keyspace_width <= 0:
        raise ValueError(f"Invalid keyspace width: {keyspace_width}")

    # int / int true division is correctly rounded for arbitrarily large ints
    return partition.width * 100 / keyspace_width


def shares_are_even(
    partitions: Iterable[Partition],
    keyspace_width: int = KEYSPACE_WIDTH,
    scale: int = PCT_COMPARISON_SCALE,
) -> bool:
    """True when every partition owns the same share of the keyspace within tolerance."""
    shares = [keyspace_share(p, keyspace_width) for p in partitions]
    if not shares:
        return True

    target = 100 / len(shares)
    return all(soft_compare(share, target, scale) == 0 for share in shares)


def even_split_point(partition: Partition) -> int:
    """Hash key at which to split a partition into two equal halves."""
    if partition.width < 2:
        raise ValueError(f"Partition {partition.partition_id} is too narrow to split")
    return partition.midpoint()
