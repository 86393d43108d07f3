"""
Integer quota allocation for percentage distributions.

Percentages are turned into exact per-category counts with the
largest-remainder method so the counts always sum to the requested total.
"""
from fractions import Fraction
from typing import Dict, Mapping, TypeVar, Union

from exam_generator.models.protocol_models import PercentRange

K = TypeVar("K")


def _weight(value: Union[PercentRange, float, int]) -> Fraction:
    if isinstance(value, PercentRange):
        return (Fraction(value.min) + Fraction(value.max)) / 2
    return Fraction(value)


def allocate_quotas(ranges: Mapping[K, Union[PercentRange, float, int]], total: int) -> Dict[K, int]:
    """
    Allocate ``total`` items across categories in proportion to their ranges.

    Each category starts at floor(midpoint share x total); the remaining
    units go one each to the categories with the largest fractional
    remainder. Ties go to the category declared first. Midpoints are
    normalized by their own sum so the result is exact even when a table
    does not add up to precisely 100.

    Args:
        ranges: Category to PercentRange (or plain numeric weight), in declaration order.
        total: Number of items to allocate.

    Returns:
        Category to integer count, in declaration order, summing to ``total``.

    Raises:
        ValueError: If total is negative or the weights are unusable.
    """
    if total < 0:
        raise ValueError(f"Cannot allocate a negative total ({total})")
    if not ranges:
        raise ValueError("Cannot allocate across an empty distribution")

    weights = {key: _weight(value) for key, value in ranges.items()}
    if any(w < 0 for w in weights.values()):
        raise ValueError("Distribution weights must be non-negative")
    weight_sum = sum(weights.values())
    if weight_sum == 0:
        raise ValueError("Distribution weights sum to zero")

    counts = {}
    remainders = []
    for position, (key, weight) in enumerate(weights.items()):
        exact = weight * total / weight_sum
        floor = exact.numerator // exact.denominator
        counts[key] = floor
        remainders.append((exact - floor, position, key))

    leftover = total - sum(counts.values())
    remainders.sort(key=lambda item: (-item[0], item[1]))
    for _, _, key in remainders[:leftover]:
        counts[key] += 1
    return counts
