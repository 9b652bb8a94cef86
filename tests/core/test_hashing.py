"""Tests for deterministic hashing."""

from orderstream.core.hashing import compute_hash


class TestComputeHash:
    def test_deterministic(self):
        assert compute_hash("o-1", 1700000000000) == compute_hash("o-1", 1700000000000)

    def test_order_dependent(self):
        assert compute_hash("a", "b") != compute_hash("b", "a")

    def test_length(self):
        assert len(compute_hash("x", length=12)) == 12
