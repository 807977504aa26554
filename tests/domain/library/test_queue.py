"""Tests for the play queue."""

import random
from collections import Counter
from itertools import permutations

import pytest

from tori.domain.library import Direction, NotFoundError, Queue, QueueEntry


def entries(*ids: int) -> list[QueueEntry]:
    return [QueueEntry("p", i) for i in ids]


class TestQueueOrder:
    """Tests for advancing, retreating and reordering."""

    def test_advance_moves_current_to_history(self) -> None:
        queue = Queue(entries(1, 2))
        assert queue.advance() == QueueEntry("p", 1)
        assert queue.advance() == QueueEntry("p", 2)
        assert queue.history == entries(1)
        assert queue.advance() is None
        assert queue.current is None

    def test_retreat_returns_current_to_queue(self) -> None:
        queue = Queue(entries(1, 2, 3))
        queue.advance()
        queue.advance()

        assert queue.retreat() == QueueEntry("p", 1)
        assert queue.entries == tuple(entries(2, 3))

    def test_retreat_without_history_changes_nothing(self) -> None:
        queue = Queue(entries(1))
        assert queue.retreat() is None
        assert queue.entries == tuple(entries(1))

    def test_swap_at_boundaries_is_noop(self) -> None:
        queue = Queue(entries(1, 2, 3))
        assert queue.swap_adjacent(0, Direction.UP) is False
        assert queue.swap_adjacent(2, Direction.DOWN) is False
        assert queue.entries == tuple(entries(1, 2, 3))

    def test_swap(self) -> None:
        queue = Queue(entries(1, 2, 3))
        assert queue.swap_adjacent(1, Direction.UP) is True
        assert queue.entries == tuple(entries(2, 1, 3))

    def test_remove_bad_index_fails(self) -> None:
        queue = Queue(entries(1))
        with pytest.raises(NotFoundError):
            queue.remove(3)

    def test_discard_covers_current(self) -> None:
        queue = Queue(entries(1, 2))
        queue.advance()
        assert queue.discard(lambda e: e.song_id == 1) == 1
        assert queue.current is None


class TestShuffle:
    """Tests for shuffling the upcoming entries."""

    def test_current_entry_never_moves(self) -> None:
        queue = Queue(entries(1, 2, 3, 4, 5))
        current = queue.advance()

        for seed in range(50):
            queue.shuffle(random.Random(seed))
            assert queue.current == current
            assert sorted(queue.entries) == entries(2, 3, 4, 5)

    def test_permutations_uniform(self) -> None:
        """Every ordering of a 3-item suffix shows up about equally often."""
        rng = random.Random(1234)
        trials = 6000
        counts: Counter = Counter()
        for _ in range(trials):
            queue = Queue(entries(1, 2, 3))
            queue.shuffle(rng)
            counts[tuple(e.song_id for e in queue.entries)] += 1

        assert set(counts) == set(permutations((1, 2, 3)))
        expected = trials / 6
        # Chi-squared with 5 degrees of freedom; 20.5 is the 0.001 critical value
        chi_squared = sum((n - expected) ** 2 / expected for n in counts.values())
        assert chi_squared < 20.5
