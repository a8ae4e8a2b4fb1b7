import pytest

from sequence import ConsumedTwice
from sources import char_range, from_collection, range_of


RANGE_BOUNDS = [(0, 0), (0, 1), (3, 10), (-5, 5), (10, 2), (7, 7), (-3, -8)]
COLLECTIONS = [[], [1], [5, 3, 5, 1], list(range(20)), ["b", "a", None]]


class TestRangeLaws:
    """Algebraic properties of ranges"""

    @pytest.mark.parametrize("a,b", RANGE_BOUNDS)
    def test_exclusive_count(self, a, b):
        assert range_of(a, b).count() == max(0, b - a)

    @pytest.mark.parametrize("a,b", RANGE_BOUNDS)
    def test_inclusive_count(self, a, b):
        assert range_of(a, b, inclusive=True).count() == max(0, b - a + 1)

    @pytest.mark.parametrize("a,b", RANGE_BOUNDS)
    def test_matches_builtin_range(self, a, b):
        assert range_of(a, b).collect() == list(range(a, b))
        assert range_of(a, b).rev().collect() == list(reversed(range(a, b)))


class TestCompositionLaws:
    """Properties that hold for any finite sequence"""

    @pytest.mark.parametrize("items", COLLECTIONS)
    def test_rev_is_an_involution(self, items):
        assert from_collection(items).rev().rev().collect() == items

    def test_rev_rev_on_chars(self):
        assert char_range("a", "f").rev().rev().join() == "abcdef"

    @pytest.mark.parametrize("left,right", [([], []), ([1, 2], []), ([], [3]), ([1], [2, 3])])
    def test_chain_is_concatenation(self, left, right):
        assert from_collection(left).chain(from_collection(right)).collect() == left + right

    @pytest.mark.parametrize("a,b", [(0, 0), (0, 5), (3, 10), (2, 4)])
    def test_zip_count_is_minimum(self, a, b):
        zipped = range_of(0, a).zip(range_of(0, b))
        assert zipped.count() == min(range_of(0, a).count(), range_of(0, b).count())

    def test_map_composition(self):
        f = lambda x: x + 3
        g = lambda x: x * 7
        chained = range_of(-5, 15).map(f).map(g).collect()
        composed = range_of(-5, 15).map(lambda x: g(f(x))).collect()
        assert chained == composed

    @pytest.mark.parametrize("pred", [
        lambda x: x % 2 == 0,
        lambda x: x > 100,
        lambda x: True,
        lambda x: x in (3, 4, 9),
    ])
    def test_filter_partition_law(self, pred):
        kept = range_of(0, 30).filter(pred).count()
        dropped = range_of(0, 30).filter(lambda x: not pred(x)).count()
        assert kept + dropped == range_of(0, 30).count()

    @pytest.mark.parametrize("n", [0, 1, 5, 10, 50])
    def test_take_count(self, n):
        assert range_of(0, 10).take(n).count() == min(n, 10)

    @pytest.mark.parametrize("items", COLLECTIONS[:4])
    def test_partition_matches_filters(self, items):
        matching, rest = from_collection(items).partition(lambda x: x > 2)
        assert matching == from_collection(items).filter(lambda x: x > 2).collect()
        assert rest == from_collection(items).filter(lambda x: not x > 2).collect()

    def test_second_collect_never_returns_a_result(self):
        seq = range_of(0, 4).map(lambda x: x * x)
        seq.collect()
        with pytest.raises(ConsumedTwice):
            seq.collect()
