"""Key based indexing of tables.

A table can be *keyed* by one or more of its columns. Setting a key
physically sorts the rows of the table by the values of the key
columns, this makes possible to find the rows matching a value
by binary search instead of scanning the whole table.

Rows are sorted ascending comparing the key columns lexicographically,
the first key column is the most significant one. Missing values
always sort **after** any other value, NaN sorts after any number but
before missing values, and the sort is stable, so rows
with equal keys preserve their relative order.

>>> from keytable import Table
>>> table = Table.from_pydict({"uid": [2, 1, 2, 1], "visit": [1, 1, 2, 2]})
>>> _ = set_key(table, ["uid", "visit"])
>>> table["uid"].to_pylist(), table["visit"].to_pylist()
([1, 1, 2, 2], [1, 2, 1, 2])
>>> lookup(table, (2,))
[2, 3]
>>> lookup(table, {"uid": 2, "visit": 2})
[3]

Lookups must always provide a *prefix* of the key, it's possible to
look for all visits of user 2, but not for all users with visit 2
as the rows are not sorted by visit alone. Use a filter for that.
"""

import bisect
import enum
import logging
import math
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Sequence

import pyarrow as pa
import pyarrow.compute as pc

from .errors import TableKeyError, TableTypeError

if TYPE_CHECKING:
    from .table import Table

__all__ = (
    "MatchPolicy",
    "set_key",
    "lookup",
    "lookup_rows",
    "sort_indices",
    "sortable",
)

logger = logging.getLogger(__name__)

_KEY_TUPLES_CACHE = "key_tuples"


class MatchPolicy(enum.Enum):
    """What a lookup returns depending on how many rows matched.

    * ``ALL``: all the matching rows, possibly none.
    * ``FIRST``: only the first matching row, possibly none.
    * ``ERROR_IF_NONE``: all the matching rows, fails if there are none.
    * ``NULL_IF_NONE``: all the matching rows, or a single missing row
      reference (``None``) if there are none.
    """

    ALL = "all"
    FIRST = "first"
    ERROR_IF_NONE = "error"
    NULL_IF_NONE = "null"


def sortable(value: Any) -> tuple:
    """Wrap a value so that Python sorting matches the key order.

    Missing values compare greater than anything else and NaN
    compares greater than any number but lower than missing values,
    as in the physical order of keyed tables.

    >>> sorted([None, float("nan"), 2.0, 1.0], key=sortable)
    [1.0, 2.0, nan, None]
    """
    if value is None:
        return (2,)
    if isinstance(value, float) and math.isnan(value):
        return (1,)
    return (0, value)


def sort_indices(
    data: pa.Table,
    columns: Sequence[str],
    descending: Sequence[bool] | None = None,
) -> pa.Array:
    """Compute the indices that would sort ``data`` by ``columns``.

    The sort is stable and places missing values at the end
    regardless of the direction.

    Dictionary encoded (categorical) columns are sorted by their values,
    not by the dictionary indices.
    """
    if descending is None:
        descending = [False] * len(columns)
    if len(columns) != len(descending):
        raise ValueError("Keys and descending must have the same length")

    sort_data = {}
    for name in columns:
        column = data.column(name)
        if pa.types.is_dictionary(column.type):
            column = column.cast(column.type.value_type)
        sort_data[name] = column
    sorting = [
        (name, "descending" if desc else "ascending")
        for name, desc in zip(columns, descending)
    ]
    return pc.sort_indices(
        pa.table(sort_data), sort_keys=sorting, null_placement="at_end"
    )


def set_key(table: "Table", columns: Iterable[str]) -> "Table":
    """Sort the table by ``columns`` and record them as its key.

    This mutates the table in place, every handle aliasing
    the table will see the rows in the new order.

    Returns the table itself for convenience.
    """
    columns = list(columns)
    if not columns:
        raise TableKeyError("A key requires at least one column")
    if len(set(columns)) != len(columns):
        raise TableKeyError(f"Duplicate columns in key {columns}")
    store = table.store
    missing = [name for name in columns if name not in store]
    if missing:
        raise TableKeyError(f"Key columns {missing} not found in {store.column_names}")

    indices = sort_indices(
        pa.table({name: store.get(name).data for name in columns}), columns
    )
    store.reorder(indices)
    store.record_key(columns)
    logger.debug("Keyed table of %d rows by %s", store.row_count(), columns)
    return table


def _bind_prefix(key: tuple[str, ...], values: Any) -> tuple:
    """Turn the lookup values into a prefix of the key tuple."""
    if isinstance(values, Mapping):
        unknown = [name for name in values if name not in key]
        if unknown:
            raise TableKeyError(f"Columns {unknown} are not part of the key {list(key)}")
        expected = key[: len(values)]
        if set(values) != set(expected):
            missing = [name for name in expected if name not in values]
            raise TableKeyError(
                f"Lookups must bind a prefix of the key {list(key)}, "
                f"missing leading key columns {missing}"
            )
        return tuple(values[name] for name in expected)

    if isinstance(values, (str, bytes)) or not isinstance(values, Sequence):
        values = (values,)
    values = tuple(values)
    if not values:
        raise TableKeyError("Lookups require at least one key value")
    if len(values) > len(key):
        raise TableKeyError(
            f"Got {len(values)} values for lookup, but the key {list(key)} has only {len(key)} columns"
        )
    return values


def _key_tuples(table: "Table") -> list[tuple]:
    """Sorted key tuples of the table, cached until the key columns change."""
    store = table.store
    signature = store.key_signature()
    cached = store.cache.get(_KEY_TUPLES_CACHE)
    if cached is not None and cached[0] == signature:
        return cached[1]

    columns = [store.get(name).data.to_pylist() for name in store.key]
    tuples = [tuple(sortable(v) for v in row) for row in zip(*columns)]
    store.cache[_KEY_TUPLES_CACHE] = (signature, tuples)
    return tuples


def lookup(
    table: "Table", values: Any, match: MatchPolicy = MatchPolicy.ALL
) -> list[int | None]:
    """Find the rows whose key starts with ``values``.

    :param table: A keyed table.
    :param values: The values to look for, a single value, a tuple
                   with a prefix of the key columns or a mapping
                   ``{column: value}`` whose columns form a prefix of the key.
    :param match: How to deal with zero or multiple matches.
    :returns: The index of the matching rows, in table order.
    """
    key = table.key
    if not key:
        raise TableKeyError("The table has no key, call set_key first")
    prefix = tuple(sortable(v) for v in _bind_prefix(key, values))

    tuples = _key_tuples(table)
    width = len(prefix)
    try:
        start = bisect.bisect_left(tuples, prefix, key=lambda t: t[:width])
        end = bisect.bisect_right(tuples, prefix, key=lambda t: t[:width])
    except TypeError as e:
        raise TableTypeError(f"Cannot compare {values!r} with key {list(key)}: {e}") from e

    if start == end:
        if match is MatchPolicy.ERROR_IF_NONE:
            raise TableKeyError(f"No rows match {values!r} on key {list(key)}")
        if match is MatchPolicy.NULL_IF_NONE:
            return [None]
        return []
    if match is MatchPolicy.FIRST:
        return [start]
    return list(range(start, end))


def lookup_rows(
    table: "Table", values: Any, match: MatchPolicy = MatchPolicy.ALL
) -> "Table":
    """Like :func:`lookup` but returns the matching rows as a new table.

    With ``MatchPolicy.NULL_IF_NONE`` a miss results in a single
    row where all columns are missing.
    """
    return table.take(lookup(table, values, match))
