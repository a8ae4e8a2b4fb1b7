import pytest
import time

from sources import count_from, from_collection, range_of


class TestLazyEvaluation:
    """Test core lazy evaluation functionality"""

    def test_deferred_execution(self):
        """Test that operations are not executed immediately"""
        call_count = 0

        def track_calls(x):
            nonlocal call_count
            call_count += 1
            return x * 2

        lazy_seq = range_of(0, 10).map(track_calls)
        assert call_count == 0, "Operations should not execute during definition"

        result = lazy_seq.take(3).collect()
        assert call_count == 3, f"Expected exactly 3 calls, got {call_count}"
        assert result == [0, 2, 4], f"Unexpected result: {result}"

    def test_one_pull_at_a_time(self):
        """Each pull runs the pipeline for exactly one element"""
        log = []
        pipeline = (
            range_of(0, 100)
            .inspect(lambda x: log.append(("source", x)))
            .map(lambda x: x + 1)
            .inspect(lambda x: log.append(("mapped", x)))
        )
        assert pipeline.try_next() == 1
        assert log == [("source", 0), ("mapped", 1)]

    def test_filter_pulls_until_match(self):
        pulled = []
        evens = range_of(1, 10).inspect(pulled.append).filter(lambda x: x % 4 == 0)
        assert next(evens) == 4
        assert pulled == [1, 2, 3, 4]

    def test_lazy_evaluation_with_side_effects(self):
        """Test that side effects only occur when operations are executed"""
        side_effects = []

        def side_effect_map(x):
            side_effects.append(f"processed {x}")
            return x * 2

        lazy_seq = from_collection([1, 2, 3, 4, 5]).map(side_effect_map)
        assert len(side_effects) == 0, "Side effects should not occur during definition"

        result = lazy_seq.take(2).collect()
        assert side_effects == ["processed 1", "processed 2"]
        assert result == [2, 4], f"Unexpected result: {result}"

    def test_unbounded_sources_are_lazy(self):
        """Building a pipeline over an unbounded range does no work"""
        calls = []
        pipeline = count_from(0).map(lambda x: calls.append(x) or x).filter(lambda x: x > 5)
        assert calls == []
        assert pipeline.first() == 6
        assert calls == [0, 1, 2, 3, 4, 5, 6]

    def test_python_iteration(self):
        """Sequences plug into for loops and builtins"""
        total = 0
        for x in range_of(0, 5):
            total += x
        assert total == 10
        assert list(range_of(0, 3).map(str)) == ["0", "1", "2"]

    def test_lazy_evaluation_performance(self):
        """Test that lazy evaluation improves performance for small outputs"""
        start_time = time.perf_counter()
        result = (
            count_from(0)
            .map(lambda x: x * x)
            .filter(lambda x: x % 1000 == 0)
            .take(5)
            .collect()
        )
        lazy_time = time.perf_counter() - start_time

        assert result == [0, 10000, 40000, 90000, 160000]
        assert lazy_time < 1.0, f"Lazy evaluation took too long: {lazy_time:.2f}s"
