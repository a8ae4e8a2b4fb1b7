"""Source sequences: ranges, collections and user-defined generators."""

import collections.abc
import copy
import itertools
from collections import deque
from dataclasses import dataclass

from sequence import DONE, InvalidRange, InvalidStep, Sequence

COLLECTION_MODES = ("borrow", "copy", "consume")

_SURROGATE_FIRST = 0xD800
_SURROGATE_LAST = 0xDFFF


def _require_int(name, value):
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidRange(f"range {name} must be an integer, got {value!r}")


class Range(Sequence):
    """
    Bounded integer range, double-ended.

    The cursor is kept as (front, remaining, step): the tail element is always
    ``front + (remaining - 1) * step`` so both ends can be pulled in O(1).
    """

    finite = True
    double_ended = True

    def __init__(self, start, end, inclusive=False, step=1):
        super().__init__()
        _require_int("start", start)
        _require_int("end", end)
        _require_int("step", step)
        if step <= 0:
            raise InvalidRange(f"range step must be a positive integer, got {step}")
        span = end - start + (1 if inclusive else 0)
        self._front = start
        self._step = step
        self._remaining = max(0, -(-span // step))

    @classmethod
    def _from_cursor(cls, front, remaining, step):
        rng = cls.__new__(cls)
        Sequence.__init__(rng)
        rng._front = front
        rng._remaining = remaining
        rng._step = step
        return rng

    def __repr__(self):
        return f"Range(front={self._front}, remaining={self._remaining}, step={self._step})"

    def _next(self):
        if self._remaining == 0:
            return DONE
        value = self._front
        self._front += self._step
        self._remaining -= 1
        return value

    def _next_back(self):
        if self._remaining == 0:
            return DONE
        self._remaining -= 1
        return self._front + self._remaining * self._step

    def _known_len(self):
        return self._remaining

    def step_by(self, n):
        """Stepping a range yields another (still double-ended) range."""
        if n <= 0:
            raise InvalidStep(f"step_by() needs a positive step, got {n}")
        self._move_into("step_by")
        return Range._from_cursor(self._front, -(-self._remaining // n), self._step * n)


class CountFrom(Sequence):
    """Unbounded integer range: start, start + step, ... forever."""

    finite = False

    def __init__(self, start=0, step=1):
        super().__init__()
        _require_int("start", start)
        _require_int("step", step)
        if step <= 0:
            raise InvalidRange(f"range step must be a positive integer, got {step}")
        self._current = start
        self._step = step

    def __repr__(self):
        return f"CountFrom(current={self._current}, step={self._step})"

    def _next(self):
        value = self._current
        self._current += self._step
        return value


def _next_code_point(cp):
    cp += 1
    return _SURROGATE_LAST + 1 if cp == _SURROGATE_FIRST else cp


def _previous_code_point(cp):
    cp -= 1
    return _SURROGATE_FIRST - 1 if cp == _SURROGATE_LAST else cp


class CharRange(Sequence):
    """Inclusive range of characters, stepping by code point over scalar values."""

    finite = True
    double_ended = True

    def __init__(self, first, last):
        super().__init__()
        for name, value in (("first", first), ("last", last)):
            if not isinstance(value, str) or len(value) != 1:
                raise InvalidRange(f"character range {name} must be a single character, got {value!r}")
            if _SURROGATE_FIRST <= ord(value) <= _SURROGATE_LAST:
                raise InvalidRange(f"character range {name} is a surrogate code point: {value!r}")
        if ord(first) > ord(last):
            raise InvalidRange(f"character range is inverted: {first!r} > {last!r}")
        self._front = ord(first)
        self._back = ord(last)

    def __repr__(self):
        return f"CharRange({chr(self._front)!r}..)" if self._front <= self._back else "CharRange(empty)"

    def _next(self):
        if self._front > self._back:
            return DONE
        cp = self._front
        self._front = _next_code_point(cp)
        return chr(cp)

    def _next_back(self):
        if self._front > self._back:
            return DONE
        cp = self._back
        self._back = _previous_code_point(cp)
        return chr(cp)


class Collection(Sequence):
    """
    Elements of an existing ordered collection.

    ``borrow`` yields the stored objects themselves, ``copy`` yields shallow
    copies; both leave the collection untouched. ``consume`` moves the
    elements out and clears the source when it is mutable.
    """

    finite = True
    double_ended = True

    def __init__(self, items, mode="borrow"):
        super().__init__()
        if mode not in COLLECTION_MODES:
            raise ValueError(f"Unknown collection mode {mode!r}, expected one of {COLLECTION_MODES}")
        self._mode = mode
        if mode == "consume":
            self._items = deque(items)
            if isinstance(items, (collections.abc.MutableSequence, collections.abc.MutableSet, deque)):
                items.clear()
            return
        if not isinstance(items, collections.abc.Sequence):
            items = list(items)
        self._items = items
        self._front = 0
        self._back = len(items)

    def __repr__(self):
        return f"Collection(mode={self._mode!r})"

    def _take(self, item):
        return copy.copy(item) if self._mode == "copy" else item

    def _next(self):
        if self._mode == "consume":
            return self._items.popleft() if self._items else DONE
        if self._front >= self._back:
            return DONE
        self._front += 1
        return self._take(self._items[self._front - 1])

    def _next_back(self):
        if self._mode == "consume":
            return self._items.pop() if self._items else DONE
        if self._front >= self._back:
            return DONE
        self._back -= 1
        return self._take(self._items[self._back])

    def _known_len(self):
        if self._mode == "consume":
            return len(self._items)
        return max(0, self._back - self._front)

    def _clone(self):
        twin = super()._clone()
        if self._mode == "consume":
            twin._items = deque(self._items)
        return twin


class Generator(Sequence):
    """
    User-defined stateful generator.

    Every pull calls ``step_fn(state)``, which returns the next value and
    advances ``state`` in place. Raising StopIteration ends the sequence;
    otherwise it never ends.
    """

    def __init__(self, state, step_fn, finite=None):
        super().__init__()
        self.state = state
        self._step_fn = step_fn
        self.finite = finite

    def __repr__(self):
        return f"Generator({self.state!r})"

    def _next(self):
        try:
            return self._step_fn(self.state)
        except StopIteration:
            return DONE

    def _clone(self):
        twin = super()._clone()
        twin.state = copy.deepcopy(self.state)
        return twin


class IterSource(Sequence):
    """Adapts an arbitrary Python iterable (finiteness unknown)."""

    def __init__(self, iterable):
        super().__init__()
        self._it = iter(iterable)

    def _next(self):
        return next(self._it, DONE)

    def _clone(self):
        twin = super()._clone()
        self._it, twin._it = itertools.tee(self._it)
        return twin


@dataclass
class FahrenheitState:
    """Persistent state of the Fahrenheit table: current value and increment."""
    fahr: float
    step: float


def to_celsius(fahr):
    return (fahr - 32.0) / 1.8


def _fahrenheit_step(state):
    current = state.fahr
    state.fahr = state.fahr + state.step
    return current, to_celsius(current)


# --------- factories ----------
def range_of(start, end, inclusive=False, step=1):
    """start, start+step, ... up to end (excluded unless inclusive)."""
    return Range(start, end, inclusive, step)


def count_from(start=0, step=1):
    """Unbounded range. Bound it with take()/take_while() before consuming."""
    return CountFrom(start, step)


def char_range(first, last):
    return CharRange(first, last)


def from_collection(items, mode="borrow"):
    return Collection(items, mode)


def generate(state, step_fn, finite=None):
    return Generator(state, step_fn, finite)


def fahrenheit_table(start=0.0, step=5.0):
    """Endless (fahrenheit, celsius) pairs starting at start, advancing by step."""
    return Generator(FahrenheitState(float(start), float(step)), _fahrenheit_step, finite=False)


def sequence(source):
    """Wrap any iterable; ordered collections keep the double-ended capability."""
    if isinstance(source, Sequence):
        return source
    if isinstance(source, collections.abc.Sequence):
        return Collection(source)
    return IterSource(source)
