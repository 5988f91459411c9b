"""
Helpers for append-only, time-versioned records.
"""

from typing import Callable, Hashable, Iterable, Iterator, TypeVar

T = TypeVar("T")


def latest_per_key(rows: Iterable[T], key: Callable[[T], Hashable]) -> Iterator[T]:
    """Yield the first row seen for each key.

    Rows must be grouped by key and ordered newest first within each group,
    e.g. ``ORDER BY key, effective_from DESC``. Because groups are contiguous
    only the previous key needs to be remembered.

    Args:
        rows: Rows pre-sorted by (key, effective_from desc)
        key: Function extracting the grouping key from a row

    Yields:
        The latest row of each group, in input order
    """
    sentinel = object()
    previous = sentinel
    for row in rows:
        current = key(row)
        if current != previous:
            previous = current
            yield row
