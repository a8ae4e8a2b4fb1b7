"""Lazy, pull-based sequences with single-owner cursors.

A ``Sequence`` computes nothing until an element is pulled from it. Chainable
adaptors (``map``, ``filter``, ``take`` ...) wrap the sequence they are called
on and take ownership of it; the wrapped sequence can no longer be pulled or
consumed directly. Consumers (``collect``, ``sum``, ``find`` ...) drive the
sequence and may be invoked only once.
"""

import copy
import functools
import logging

logger = logging.getLogger(__name__)

# Internal pull signal. Elements may legitimately be None, so exhaustion is
# reported with this sentinel between nodes and as StopIteration to callers.
DONE = object()

_NO_INITIAL = object()

# Maximum number of elements an eager operation may buffer (None = no limit).
_materialize_limit = None


class SequenceError(Exception):
    """Base class for sequence engine errors."""
    pass


class InvalidRange(SequenceError, ValueError):
    """Raised when a range source is built from malformed bounds or step."""
    pass


class InvalidStep(SequenceError, ValueError):
    """Raised when step_by() or batch() receives a non-positive size."""
    pass


class UnboundedMaterialization(SequenceError):
    """Raised when an eager operation is applied to an unbounded sequence."""
    pass


class ConsumedTwice(SequenceError, RuntimeError):
    """Raised when a consumed or moved sequence is used again."""
    pass


class NotReversible(SequenceError, TypeError):
    """Raised when a sequence cannot be pulled from its tail."""
    pass


def set_materialize_limit(limit):
    """Cap how many elements collect(), sorted_by(), join() etc. may buffer."""
    global _materialize_limit
    if limit is not None and limit < 0:
        raise ValueError("Materialize limit must be >= 0 or None")
    _materialize_limit = limit


def get_materialize_limit():
    return _materialize_limit


class Sequence:
    """
    Base class for every source and adaptor.

    Subclasses implement ``_next()`` (and ``_next_back()`` when they are
    double-ended) returning either an element or ``DONE``. The base class
    fuses exhaustion, tracks ownership and provides the chainable adaptors and
    the consumers.

    ``finite`` is True when the sequence is known to end, False when it is
    known to be unbounded and None when that cannot be decided up front.
    """

    finite = None
    double_ended = False

    # attribute names of owned upstream sequences, used by clone()
    _upstreams = ()

    def __init__(self):
        self._exhausted = False
        self._consumed = False
        self._owner = None

    def __repr__(self):
        return f"<{type(self).__name__} finite={self.finite}>"

    # --------- iterator protocol ----------
    def __iter__(self):
        return self

    def __next__(self):
        self._check_usable()
        value = self._pull()
        if value is DONE:
            raise StopIteration
        return value

    def try_next(self, default=None):
        """Pull one element, or return default once the sequence is exhausted."""
        self._check_usable()
        value = self._pull()
        return default if value is DONE else value

    def next_back(self, default=None):
        """Pull one element from the tail of a double-ended sequence."""
        self._check_usable()
        if not self.double_ended:
            raise NotReversible(f"{type(self).__name__} cannot be pulled from the back")
        value = self._pull_back()
        return default if value is DONE else value

    # --------- node internals ----------
    def _next(self):
        raise NotImplementedError

    def _next_back(self):
        raise NotReversible(f"{type(self).__name__} cannot be pulled from the back")

    def _known_len(self):
        """Exact number of elements left, or None when it cannot be told without pulling."""
        return None

    def _pull(self):
        if self._exhausted:
            return DONE
        value = self._next()
        if value is DONE:
            self._exhausted = True
        return value

    def _pull_back(self):
        if self._exhausted:
            return DONE
        value = self._next_back()
        if value is DONE:
            self._exhausted = True
        return value

    def _drain(self):
        while True:
            value = self._pull()
            if value is DONE:
                return
            yield value

    def _check_usable(self):
        if self._consumed:
            logger.debug("Rejected use of consumed %r", self)
            raise ConsumedTwice(f"{type(self).__name__} has already been consumed")
        if self._owner is not None:
            logger.debug("Rejected use of %r owned by %s", self, self._owner)
            raise ConsumedTwice(f"{type(self).__name__} was moved into {self._owner}()")

    def _move_into(self, owner):
        self._check_usable()
        self._owner = owner
        return self

    def _consume(self, op, eager=False):
        self._check_usable()
        # drained through the iterator protocol counts as consumed
        if self._exhausted:
            logger.debug("Rejected %s() on exhausted %r", op, self)
            raise ConsumedTwice(f"{type(self).__name__} has already been fully consumed")
        if eager and self.finite is False:
            raise UnboundedMaterialization(
                f"{op}() on an unbounded sequence never finishes; "
                f"bound it with take() or take_while() first"
            )
        self._consumed = True

    def _materialize(self, op):
        limit = _materialize_limit
        items = []
        for item in self._drain():
            if limit is not None and len(items) >= limit:
                raise UnboundedMaterialization(
                    f"{op}() exceeded the materialize limit of {limit} elements"
                )
            items.append(item)
        logger.debug("%s() materialized %d elements", op, len(items))
        return items

    def _clone(self):
        twin = copy.copy(self)
        for name in self._upstreams:
            setattr(twin, name, getattr(self, name)._clone())
        return twin

    def clone(self):
        """Return an independent copy that restarts from the current position."""
        self._check_usable()
        return self._clone()

    # --------- chainable adaptors (lazy) ----------
    def map(self, fn):
        return Map(self, fn)

    def filter(self, pred):
        return Filter(self, pred)

    def filter_map(self, fn):
        """Map and keep only results that are not None."""
        return FilterMap(self, fn)

    def rev(self):
        return Rev(self)

    def chain(self, other):
        return Chain(self, other)

    def zip(self, other):
        return Zip(self, other)

    def enumerate(self, start=0):
        return Enumerate(self, start)

    def step_by(self, n):
        return StepBy(self, n)

    def take(self, n):
        return Take(self, int(n))

    def take_while(self, pred):
        return TakeWhile(self, pred)

    def skip(self, n):
        return Skip(self, int(n))

    def inspect(self, fn):
        return Inspect(self, fn)

    def unique(self, key=None):
        return Unique(self, key)

    def dedup(self):
        """Drop consecutive duplicates."""
        return Dedup(self)

    def sorted_by(self, cmp):
        """Stable sort by a two-argument comparator returning <0, 0 or >0."""
        return Sorted(self, functools.cmp_to_key(cmp), False, "sorted_by")

    def sorted_by_key(self, key):
        return Sorted(self, key, False, "sorted_by_key")

    def sorted(self, key=None, reverse=False):
        return Sorted(self, key, reverse, "sorted")

    def batch(self, size):
        return Batch(self, int(size))

    def chunk(self, size):
        """Alias for batch() - groups elements into chunks of specified size"""
        return self.batch(size)

    def page(self, page_number, page_size):
        """Get a specific page of results (1-indexed)"""
        if page_number < 1:
            raise ValueError("Page number must be >= 1")
        offset = (page_number - 1) * page_size
        return self.skip(offset).take(page_size)

    # --------- consumers (force evaluation) ----------
    def collect(self):
        self._consume("collect", eager=True)
        return self._materialize("collect")

    def to_list(self):
        return self.collect()

    def join(self, sep=""):
        """Render every element with str() and join them with sep."""
        self._consume("join", eager=True)
        return sep.join(str(item) for item in self._materialize("join"))

    def count(self):
        """Return the count of elements"""
        self._consume("count", eager=True)
        count = 0
        for _ in self._drain():
            count += 1
        return count

    def sum(self, start=0):
        """Return the sum of all elements"""
        self._consume("sum", eager=True)
        total = start
        for item in self._drain():
            total += item
        return total

    def fold(self, initial, fn):
        """Left-to-right reduction: fn(accumulator, element) -> accumulator."""
        self._consume("fold", eager=True)
        acc = initial
        for item in self._drain():
            acc = fn(acc, item)
        return acc

    def reduce(self, fn, initial=_NO_INITIAL):
        """Apply a function of two arguments cumulatively to items, from left to right"""
        self._consume("reduce", eager=True)
        if initial is _NO_INITIAL:
            return functools.reduce(fn, self._drain())
        return functools.reduce(fn, self._drain(), initial)

    def min(self, key=None, default=None):
        """Smallest element; on ties the first one wins. default when empty."""
        self._consume("min", eager=True)
        return self._extreme(key, default, lambda candidate, best: candidate < best)

    def max(self, key=None, default=None):
        """Largest element; on ties the first one wins. default when empty."""
        self._consume("max", eager=True)
        return self._extreme(key, default, lambda candidate, best: candidate > best)

    def _extreme(self, key, default, better):
        best = best_key = DONE
        for item in self._drain():
            item_key = item if key is None else key(item)
            if best is DONE or better(item_key, best_key):
                best, best_key = item, item_key
        return default if best is DONE else best

    def minmax(self, key=None):
        """
        Return (min, max) in a single pass, or None for an empty sequence.

        Unlike min() and max(), ties resolve to the first minimum and the
        last maximum.
        """
        self._consume("minmax", eager=True)
        low = high = low_key = high_key = DONE
        for item in self._drain():
            item_key = item if key is None else key(item)
            if low is DONE:
                low = high = item
                low_key = high_key = item_key
                continue
            if item_key < low_key:
                low, low_key = item, item_key
            if item_key >= high_key:
                high, high_key = item, item_key
        if low is DONE:
            return None
        return low, high

    def find(self, pred):
        """Return the first element that satisfies the predicate, or None"""
        self._consume("find")
        for item in self._drain():
            if pred(item):
                return item
        return None

    def find_map(self, fn):
        """Return the first fn(element) that is not None, or None"""
        self._consume("find_map")
        for item in self._drain():
            result = fn(item)
            if result is not None:
                return result
        return None

    def position(self, pred):
        """Return the index of the first element satisfying pred, or None"""
        self._consume("position")
        for index, item in enumerate(self._drain()):
            if pred(item):
                return index
        return None

    def any(self, pred=None):
        """Return True if any element is truthy (or satisfies predicate)"""
        self._consume("any")
        if pred is None:
            return any(self._drain())
        return any(pred(x) for x in self._drain())

    def all(self, pred=None):
        """Return True if all elements are truthy (or satisfy predicate)"""
        self._consume("all")
        if pred is None:
            return all(self._drain())
        return all(pred(x) for x in self._drain())

    def first(self, default=None):
        """Return the first element, or default if empty"""
        self._consume("first")
        value = self._pull()
        return default if value is DONE else value

    def nth(self, n, default=None):
        """Return the element at 0-based position n, or default"""
        if n < 0:
            raise ValueError(f"nth() needs a non-negative position, got {n}")
        self._consume("nth")
        for index, item in enumerate(self._drain()):
            if index == n:
                return item
        return default

    def last(self, default=None):
        """Return the last element, or default if empty"""
        self._consume("last", eager=True)
        last_item = default
        for item in self._drain():
            last_item = item
        return last_item

    def partition(self, pred):
        """Split into (matching, rest), both in original order."""
        self._consume("partition", eager=True)
        matching, rest = [], []
        for item in self._materialize("partition"):
            (matching if pred(item) else rest).append(item)
        return matching, rest

    def group_by(self, key_fn):
        """Group elements by the result of key_fn"""
        self._consume("group_by", eager=True)
        groups = {}
        for item in self._materialize("group_by"):
            groups.setdefault(key_fn(item), []).append(item)
        return groups

    def for_each(self, fn):
        self._consume("for_each", eager=True)
        for item in self._drain():
            fn(item)


class Adaptor(Sequence):
    """A sequence that owns exactly one upstream sequence."""

    _upstreams = ("_upstream",)
    op = "adaptor"

    def __init__(self, upstream):
        super().__init__()
        self._upstream = upstream._move_into(self.op)
        self.finite = upstream.finite
        self.double_ended = upstream.double_ended

    def __repr__(self):
        return f"{type(self).__name__}({self._upstream!r})"


class Map(Adaptor):
    op = "map"

    def __init__(self, upstream, fn):
        super().__init__(upstream)
        self._fn = fn

    def _next(self):
        value = self._upstream._pull()
        return value if value is DONE else self._fn(value)

    def _next_back(self):
        value = self._upstream._pull_back()
        return value if value is DONE else self._fn(value)


class Filter(Adaptor):
    op = "filter"

    def __init__(self, upstream, pred):
        super().__init__(upstream)
        self._pred = pred

    def _next(self):
        for item in self._upstream._drain():
            if self._pred(item):
                return item
        return DONE

    def _next_back(self):
        while True:
            value = self._upstream._pull_back()
            if value is DONE or self._pred(value):
                return value


class FilterMap(Adaptor):
    op = "filter_map"

    def __init__(self, upstream, fn):
        super().__init__(upstream)
        self._fn = fn

    def _next(self):
        for item in self._upstream._drain():
            result = self._fn(item)
            if result is not None:
                return result
        return DONE

    def _next_back(self):
        while True:
            value = self._upstream._pull_back()
            if value is DONE:
                return DONE
            result = self._fn(value)
            if result is not None:
                return result


class Rev(Adaptor):
    op = "rev"

    def __init__(self, upstream):
        if not upstream.double_ended:
            raise NotReversible(
                f"rev() needs a double-ended sequence, {type(upstream).__name__} is not"
            )
        super().__init__(upstream)

    def _next(self):
        return self._upstream._pull_back()

    def _next_back(self):
        return self._upstream._pull()


class Chain(Sequence):
    _upstreams = ("_first", "_second")

    def __init__(self, first, second):
        super().__init__()
        # check both before taking either, so a failed chain() moves nothing
        first._check_usable()
        second._check_usable()
        if first is second:
            raise ConsumedTwice("chain() needs two distinct sequences")
        self._first = first._move_into("chain")
        self._second = second._move_into("chain")
        self._first_done = False
        self._second_done = False
        if first.finite is False or second.finite is False:
            self.finite = False
        elif first.finite and second.finite:
            self.finite = True
        else:
            self.finite = None
        self.double_ended = first.double_ended and second.double_ended

    def __repr__(self):
        return f"Chain({self._first!r}, {self._second!r})"

    def _next(self):
        if not self._first_done:
            value = self._first._pull()
            if value is not DONE:
                return value
            self._first_done = True
        return self._second._pull()

    def _next_back(self):
        if not self._second_done:
            value = self._second._pull_back()
            if value is not DONE:
                return value
            self._second_done = True
        return self._first._pull_back()


class Zip(Sequence):
    _upstreams = ("_left", "_right")

    def __init__(self, left, right):
        super().__init__()
        left._check_usable()
        right._check_usable()
        if left is right:
            raise ConsumedTwice("zip() needs two distinct sequences")
        self._left = left._move_into("zip")
        self._right = right._move_into("zip")
        if left.finite or right.finite:
            self.finite = True
        elif left.finite is False and right.finite is False:
            self.finite = False
        else:
            self.finite = None

    def __repr__(self):
        return f"Zip({self._left!r}, {self._right!r})"

    def _next(self):
        left = self._left._pull()
        if left is DONE:
            return DONE
        right = self._right._pull()
        if right is DONE:
            return DONE
        return left, right


class Enumerate(Adaptor):
    op = "enumerate"

    def __init__(self, upstream, start=0):
        super().__init__(upstream)
        self.double_ended = False
        self._index = start

    def _next(self):
        value = self._upstream._pull()
        if value is DONE:
            return DONE
        index = self._index
        self._index += 1
        return index, value


class StepBy(Adaptor):
    op = "step_by"

    def __init__(self, upstream, step):
        if step <= 0:
            raise InvalidStep(f"step_by() needs a positive step, got {step}")
        super().__init__(upstream)
        self.double_ended = False
        self._step = step
        self._started = False

    def _next(self):
        if self._started:
            for _ in range(self._step - 1):
                if self._upstream._pull() is DONE:
                    return DONE
        self._started = True
        return self._upstream._pull()


class Take(Adaptor):
    op = "take"

    def __init__(self, upstream, n):
        super().__init__(upstream)
        self.finite = True
        # the tail of the window is only reachable when the upstream length is known
        self.double_ended = upstream.double_ended and upstream._known_len() is not None
        self._remaining = max(0, n)

    def _next(self):
        if self._remaining <= 0:
            return DONE
        value = self._upstream._pull()
        if value is DONE:
            return DONE
        self._remaining -= 1
        return value

    def _next_back(self):
        if self._remaining <= 0:
            return DONE
        excess = self._upstream._known_len() - self._remaining
        for _ in range(excess):
            self._upstream._pull_back()
        value = self._upstream._pull_back()
        if value is DONE:
            return DONE
        self._remaining -= 1
        return value

    def _known_len(self):
        upstream_len = self._upstream._known_len()
        return None if upstream_len is None else min(self._remaining, upstream_len)


class TakeWhile(Adaptor):
    op = "take_while"

    def __init__(self, upstream, pred):
        super().__init__(upstream)
        # an unbounded upstream may still be cut short by the predicate
        if upstream.finite is False:
            self.finite = None
        self.double_ended = False
        self._pred = pred

    def _next(self):
        value = self._upstream._pull()
        if value is DONE or not self._pred(value):
            return DONE
        return value


class Skip(Adaptor):
    op = "skip"

    def __init__(self, upstream, n):
        super().__init__(upstream)
        self.double_ended = False
        self._to_skip = max(0, n)

    def _next(self):
        while self._to_skip > 0:
            self._to_skip -= 1
            if self._upstream._pull() is DONE:
                return DONE
        return self._upstream._pull()


class Inspect(Adaptor):
    op = "inspect"

    def __init__(self, upstream, fn):
        super().__init__(upstream)
        self._fn = fn

    def _next(self):
        value = self._upstream._pull()
        if value is not DONE:
            self._fn(value)
        return value

    def _next_back(self):
        value = self._upstream._pull_back()
        if value is not DONE:
            self._fn(value)
        return value


class Unique(Adaptor):
    op = "unique"

    def __init__(self, upstream, key=None):
        super().__init__(upstream)
        self.double_ended = False
        self._key = key
        self._seen = set()
        # unhashable keys fall back to a linear equality scan
        self._seen_unhashable = []

    def _is_new(self, item):
        marker = item if self._key is None else self._key(item)
        try:
            if marker in self._seen:
                return False
            self._seen.add(marker)
        except TypeError:
            if marker in self._seen_unhashable:
                return False
            self._seen_unhashable.append(marker)
        return True

    def _next(self):
        for item in self._upstream._drain():
            if self._is_new(item):
                return item
        return DONE

    def _clone(self):
        twin = super()._clone()
        twin._seen = set(self._seen)
        twin._seen_unhashable = list(self._seen_unhashable)
        return twin


class Dedup(Adaptor):
    op = "dedup"

    def __init__(self, upstream):
        super().__init__(upstream)
        self.double_ended = False
        self._previous = DONE

    def _next(self):
        for item in self._upstream._drain():
            if self._previous is DONE or item != self._previous:
                self._previous = item
                return item
        return DONE


class Sorted(Adaptor):
    """Eager: buffers the whole upstream on first pull, then streams it sorted."""

    op = "sorted"

    def __init__(self, upstream, key=None, reverse=False, op="sorted"):
        if upstream.finite is False:
            raise UnboundedMaterialization(
                f"{op}() on an unbounded sequence never finishes; "
                f"bound it with take() or take_while() first"
            )
        self.op = op
        super().__init__(upstream)
        self.double_ended = True
        self._key = key
        self._reverse = reverse
        self._buffer = None
        self._front = 0
        self._back = 0

    def _fill(self):
        if self._buffer is None:
            self._buffer = self._upstream._materialize(self.op)
            # list.sort is stable, reverse=True keeps equal elements in order
            self._buffer.sort(key=self._key, reverse=self._reverse)
            self._back = len(self._buffer)

    def _next(self):
        self._fill()
        if self._front >= self._back:
            return DONE
        self._front += 1
        return self._buffer[self._front - 1]

    def _next_back(self):
        self._fill()
        if self._front >= self._back:
            return DONE
        self._back -= 1
        return self._buffer[self._back]

    def _clone(self):
        twin = super()._clone()
        if self._buffer is not None:
            twin._buffer = list(self._buffer)
        return twin


class Batch(Adaptor):
    op = "batch"

    def __init__(self, upstream, size):
        if size <= 0:
            raise InvalidStep(f"batch() needs a positive size, got {size}")
        super().__init__(upstream)
        self.double_ended = False
        self._size = size

    def _next(self):
        bucket = []
        for item in self._upstream._drain():
            bucket.append(item)
            if len(bucket) == self._size:
                break
        if not bucket:
            return DONE
        return tuple(bucket)
