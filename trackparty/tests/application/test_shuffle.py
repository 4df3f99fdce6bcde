import random

import pytest

from trackparty.application.shuffle import (
    RandomShuffle,
    SeededLcgShuffle,
    lcg_shuffle,
    shuffle_pool,
)


class TestLcgShuffle:
    """The seeded shuffle must reproduce the same order for a seed, bit for bit."""

    def test_known_order_for_seed_one(self):
        assert lcg_shuffle([0, 1, 2, 3], 1) == [1, 3, 0, 2]
        assert lcg_shuffle(list(range(10)), 1) == [1, 2, 7, 5, 3, 6, 9, 4, 0, 8]

    def test_timestamp_seed_rounds_like_double_arithmetic(self):
        # 1760000000000 * 9301 exceeds 2**53; the first state is 76496, not 76497
        assert lcg_shuffle(list(range(10)), 1760000000000) == [4, 3, 7, 2, 1, 0, 5, 8, 9, 6]

    @pytest.mark.parametrize("seed", [-1, 1.5, True, "7"])
    def test_rejects_invalid_seed(self, seed):
        with pytest.raises(ValueError):
            lcg_shuffle([1, 2, 3], seed)

    def test_same_seed_same_order(self):
        items = list(range(50))
        assert lcg_shuffle(items, 42) == lcg_shuffle(items, 42)

    def test_different_seeds_differ(self):
        items = list(range(50))
        assert lcg_shuffle(items, 1) != lcg_shuffle(items, 2)

    def test_is_a_permutation_and_input_untouched(self):
        items = list(range(20))
        shuffled = lcg_shuffle(items, 7)
        assert sorted(shuffled) == items
        assert items == list(range(20))

    @pytest.mark.parametrize("items", [[], ["only"]])
    def test_trivial_inputs(self, items):
        assert lcg_shuffle(items, 3) == items


class TestStrategies:

    def test_seeded_strategy_requires_seed(self):
        with pytest.raises(ValueError):
            SeededLcgShuffle().shuffle([1, 2, 3])

    def test_random_shuffle_is_permutation(self):
        shuffled = RandomShuffle(random.Random(5)).shuffle(list(range(30)))
        assert sorted(shuffled) == list(range(30))

    def test_shuffle_pool_uses_lcg_when_seeded(self):
        assert shuffle_pool([0, 1, 2, 3], seed=1) == [1, 3, 0, 2]

    def test_shuffle_pool_uses_pluggable_seeded_strategy(self):
        class Reverse:
            def shuffle(self, items, seed=None):
                return list(reversed(items))

        assert shuffle_pool([1, 2, 3], seed=9, seeded=Reverse()) == [3, 2, 1]

    def test_shuffle_pool_unseeded_uses_random_strategy(self):
        rng = random.Random(11)
        expected = RandomShuffle(random.Random(11)).shuffle(list(range(10)))
        assert shuffle_pool(list(range(10)), unseeded=RandomShuffle(rng)) == expected
