"""
Deterministic traffic splitting for variant tests.

Inclusion in a test is a pure function of visitor id and test id, so a
visitor sees the same include/exclude decision on every server. The variant
draw among included visitors is random and is made sticky by persisting it.
"""

import random
from typing import Callable, Optional, Sequence

_INT32_MASK = 0xFFFFFFFF
_INT32_SIGN = 0x80000000


def stable_hash(text: str) -> int:
    """
    Polynomial string hash (h * 31 + code point) kept in signed 32-bit
    range after every step; the absolute value is returned.
    """
    h = 0
    for char in text:
        h = (h * 31 + ord(char)) & _INT32_MASK
    if h & _INT32_SIGN:
        h -= 1 << 32
    return abs(h)


def allocation_bucket(visitor_id: str, test_id: str) -> int:
    """Bucket 0-99 for a visitor in a test"""
    return stable_hash(f"{visitor_id}{test_id}") % 100


def decide_inclusion(visitor_id: str, test_id: str, traffic_allocation: int) -> bool:
    """True when the visitor falls inside the test's traffic allocation"""
    return allocation_bucket(visitor_id, test_id) < traffic_allocation


def control_variant_key(variants: Sequence) -> Optional[str]:
    """Key of the control variant, or of the first variant if none is flagged"""
    if not variants:
        return None
    for variant in variants:
        if variant.is_control:
            return variant.variant_key
    return variants[0].variant_key


def draw_variant(variants: Sequence, random_source: Callable[[], float] = random.random) -> Optional[str]:
    """
    Weighted draw over ordered variants. Weights are relative; a zero total
    (or a draw that rounding pushes past the last bucket) yields the first
    variant.
    """
    if not variants:
        return None

    total_weight = sum(max(v.weight or 0, 0) for v in variants)
    if total_weight <= 0:
        return variants[0].variant_key

    draw = random_source() * total_weight
    cumulative = 0
    for variant in variants:
        cumulative += max(variant.weight or 0, 0)
        if draw < cumulative:
            return variant.variant_key

    return variants[0].variant_key
