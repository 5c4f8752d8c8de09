"""
Unit Tests for the Sort-Key Engine.
"""

import random

import pytest
from fractional_indexing import FIError, generate_key_between, generate_n_keys_between

from notestore.domain.sort_keys import (
    FIRST_KEY,
    InvalidSortKeyError,
    compare,
    is_valid_key,
    key_between,
    keys_between,
    sorted_keys,
)


class TestCompare:
    """Tests for byte-wise key comparison."""

    def test_orders_by_codepoint(self):
        """Digits < uppercase < lowercase."""
        assert compare("a0", "a1") == -1
        assert compare("a1", "a0") == 1
        assert compare("a0", "a0") == 0
        assert compare("Zz", "a0") == -1
        assert compare("a0", "a0V") == -1

    def test_differs_from_case_insensitive_order(self):
        """Locale-style ordering would put 'a0' before 'Zz'; keys must not."""
        keys = ["a0", "Zz"]

        assert sorted(keys, key=str.casefold) == ["a0", "Zz"]
        assert sorted_keys(keys) == ["Zz", "a0"]


class TestKeyBetween:
    """Tests for key_between."""

    def test_first_key(self):
        assert key_between(None, None) == FIRST_KEY == "a0"

    def test_append(self):
        assert key_between("a0", None) == "a1"

    def test_prepend(self):
        assert key_between(None, "a0") == "Zz"

    def test_midpoint(self):
        assert key_between("a0", "a1") == "a0V"
        assert key_between("a0", "a0V") == "a0G"

    @pytest.mark.parametrize(
        "lower,upper",
        [("a0", "a1"), ("a0", "a0V"), ("Zz", "a0"), ("a1", "a2"), ("a0V", "a1"), (None, "a0"), ("a5", None)],
    )
    def test_strictly_between(self, lower, upper):
        """Generated keys must fall strictly inside the bounds."""
        key = key_between(lower, upper)

        assert is_valid_key(key)
        if lower is not None:
            assert compare(lower, key) < 0
        if upper is not None:
            assert compare(key, upper) < 0

    def test_fifty_insertions_between_fixed_neighbours(self):
        """Repeated insertion between the same neighbours keeps producing new keys."""
        lower, upper = "a0", "a1"
        keys = []
        current_upper = upper
        for _ in range(50):
            key = key_between(lower, current_upper)
            keys.append(key)
            current_upper = key

        assert len(set(keys)) == 50
        assert sorted_keys(keys) == list(reversed(keys))
        assert all(compare(lower, k) < 0 < compare(upper, k) for k in keys)

    def test_fifty_insertions_after_moving_lower(self):
        """Inserting right after the previous key also stays ordered."""
        lower, upper = "a0", "a1"
        keys = []
        for _ in range(50):
            lower = key_between(lower, upper)
            keys.append(lower)

        assert sorted_keys(keys) == keys
        assert len(set(keys)) == 50

    def test_random_insertions_stay_sorted(self):
        """Inserting at random positions keeps the list strictly ordered."""
        rng = random.Random(7)
        keys: list[str] = []
        for _ in range(200):
            index = rng.randint(0, len(keys))
            lower = keys[index - 1] if index > 0 else None
            upper = keys[index] if index < len(keys) else None
            keys.insert(index, key_between(lower, upper))

        assert sorted_keys(keys) == keys
        assert len(set(keys)) == len(keys)

    def test_inverted_bounds_rejected(self):
        with pytest.raises(InvalidSortKeyError):
            key_between("a1", "a0")

    def test_equal_bounds_rejected(self):
        with pytest.raises(InvalidSortKeyError):
            key_between("a1", "a1")

    @pytest.mark.parametrize("bad", ["", "a", "a00", "a0!", "0", "A" + "0" * 26])
    def test_malformed_bound_rejected(self, bad):
        with pytest.raises(InvalidSortKeyError):
            key_between(bad, None)


class TestKeysBetween:
    """Tests for keys_between."""

    @pytest.mark.parametrize("lower,upper", [(None, None), ("a0", None), (None, "a0"), ("a0", "a1")])
    def test_returns_n_ordered_keys(self, lower, upper):
        keys = keys_between(lower, upper, 10)

        assert len(keys) == 10
        assert sorted_keys(keys) == keys
        assert len(set(keys)) == 10

    def test_zero(self):
        assert keys_between("a0", "a1", 0) == []

    def test_negative(self):
        with pytest.raises(ValueError):
            keys_between(None, None, -1)


class TestGeneratorErrors:
    """Failures from the key generator surface as InvalidSortKeyError."""

    def test_generator_error_is_translated(self, monkeypatch):
        def exhausted(lower, upper):
            raise FIError("cannot increment any more")

        monkeypatch.setattr("notestore.domain.sort_keys.generate_key_between", exhausted)

        with pytest.raises(InvalidSortKeyError, match="cannot increment"):
            key_between("a0", None)

    def test_keys_match_generator(self):
        assert key_between("a0", "a1") == generate_key_between("a0", "a1")
        assert keys_between("a0", "a1", 5) == generate_n_keys_between("a0", "a1", 5)
