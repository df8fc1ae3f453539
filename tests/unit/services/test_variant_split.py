"""
Tests for deterministic traffic splitting and the weighted variant draw
"""

import random
from collections import Counter
from types import SimpleNamespace

import pytest

from services.variant_split import (
    allocation_bucket,
    control_variant_key,
    decide_inclusion,
    draw_variant,
    stable_hash,
)


def variant(key, weight=50, is_control=False):
    return SimpleNamespace(variant_key=key, weight=weight, is_control=is_control)


class TestStableHash:
    """The hash must match the 31-multiplier string hash used by the web client"""

    def test_empty_string_hashes_to_zero(self):
        assert stable_hash('') == 0

    def test_short_strings(self):
        assert stable_hash('a') == 97
        assert stable_hash('ab') == 97 * 31 + 98

    def test_wraps_like_signed_32_bit(self):
        assert stable_hash('hello') == 99162322

    def test_most_negative_value_is_returned_as_positive(self):
        # This string hashes to exactly -2**31 in signed 32-bit arithmetic
        assert stable_hash('polygenelubricants') == 2 ** 31

    def test_is_deterministic(self):
        assert stable_hash('visitor-1test-1') == stable_hash('visitor-1test-1')


class TestInclusion:

    def test_bucket_is_in_range(self):
        buckets = {allocation_bucket(f"visitor-{i}", 'test-1') for i in range(500)}
        assert min(buckets) >= 0
        assert max(buckets) <= 99

    def test_same_visitor_and_test_always_get_same_decision(self):
        decisions = {decide_inclusion('visitor-42', 'test-1', 50) for _ in range(20)}
        assert len(decisions) == 1

    def test_zero_allocation_excludes_everyone(self):
        assert not any(decide_inclusion(f"visitor-{i}", 'test-1', 0) for i in range(1000))

    def test_full_allocation_includes_everyone(self):
        assert all(decide_inclusion(f"visitor-{i}", 'test-1', 100) for i in range(1000))

    def test_partial_allocation_includes_roughly_that_share(self):
        included = sum(decide_inclusion(f"visitor-{i}", 'test-1', 30) for i in range(10000))
        assert 2000 < included < 4000


class TestControlVariant:

    def test_flagged_control_wins(self):
        variants = [variant('a'), variant('b', is_control=True)]
        assert control_variant_key(variants) == 'b'

    def test_first_variant_when_none_flagged(self):
        assert control_variant_key([variant('a'), variant('b')]) == 'a'

    def test_no_variants(self):
        assert control_variant_key([]) is None


class TestDrawVariant:

    def test_draw_boundaries(self):
        variants = [variant('a', 70), variant('b', 30)]
        assert draw_variant(variants, lambda: 0.0) == 'a'
        assert draw_variant(variants, lambda: 0.69) == 'a'
        assert draw_variant(variants, lambda: 0.75) == 'b'
        assert draw_variant(variants, lambda: 0.999) == 'b'

    def test_zero_weight_variant_is_never_drawn(self):
        variants = [variant('a', 0), variant('b', 100)]
        rng = random.Random(7)
        draws = {draw_variant(variants, rng.random) for _ in range(1000)}
        assert draws == {'b'}

    def test_zero_total_weight_falls_back_to_first(self):
        variants = [variant('a', 0), variant('b', 0)]
        assert draw_variant(variants, lambda: 0.5) == 'a'

    def test_no_variants(self):
        assert draw_variant([], lambda: 0.5) is None

    @pytest.mark.parametrize('weights', [(70, 30), (7, 3)])
    def test_distribution_follows_relative_weights(self, weights):
        variants = [variant('a', weights[0]), variant('b', weights[1])]
        rng = random.Random(42)

        counts = Counter(draw_variant(variants, rng.random) for _ in range(100000))

        assert abs(counts['a'] / 100000 - 0.7) < 0.01
        assert abs(counts['b'] / 100000 - 0.3) < 0.01
