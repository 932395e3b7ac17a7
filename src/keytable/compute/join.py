"""Joining tables.

Keyed join
==========

:func:`merge_on` joins two keyed tables using their keys: the key
columns of the ``right`` table are matched against the key columns
of the ``left`` table (the shortest of the two keys decides how many
columns are involved). Every row of ``right`` is preserved, looking
up the matching rows of ``left``::

    left (key uid):           right (key uid):
    +-----+----------+        +-----+-----+
    | uid | date     |        | uid | age |
    +-----+----------+        +-----+-----+
    | 1   | 2018-... |        | 1   | 40  |
    | 1   | 2018-... |        | 3   | 55  |
    | 2   | 2019-... |        +-----+-----+
    +-----+----------+

    merge_on(left, right):
    +-----+----------+-----+
    | uid | date     | age |
    +-----+----------+-----+
    | 1   | 2018-... | 40  |
    | 1   | 2018-... | 40  |
    | 3   | null     | 55  |
    +-----+----------+-----+

Rows of ``right`` without a match get missing values for the
columns of ``left``, or are dropped with ``nomatch=NoMatch.DROP``.

As each row of ``right`` can match many rows of ``left``, joins can
silently explode the number of rows. To prevent that, the join fails
with :class:`keytable.errors.CartesianError` when the result would
have more rows than ``left`` and ``right`` combined, or, when
``options.cartesian_multiplicity`` is set, when any row of ``right``
matches more rows than that. Pass ``allow_cartesian=True`` when the
explosion is expected.

The join is implemented as a hash join: the rows of ``left`` are
indexed by their key values and each row of ``right`` looks its key up in the index.
Missing key values never match.

General join
============

:func:`merge` joins two tables on arbitrary columns with SQL like
``inner``, ``left``, ``right`` or ``outer`` semantics and doesn't require
the tables to be keyed.

>>> from keytable import Table
>>> left = Table.from_pydict({"id": [1, 2, 3], "name": ["Alice", "Bob", "Charlie"]})
>>> right = Table.from_pydict({"id": [3, 2], "age": [25, 30]})
>>> merge(left, right, on="id").to_pydict()
{'id': [2, 3], 'name': ['Bob', 'Charlie'], 'age': [30, 25]}
"""

import enum
import logging
from typing import Sequence

import pyarrow as pa
import pyarrow.compute as pc

from ..errors import CartesianError, SchemaError, TableKeyError, TableTypeError
from ..index import sort_indices
from ..options import options
from ..table import Table
from .aggregate import unique
from .base import col
from .expressions import FunctionCallExpression
from .filtering import where
from .selection import Select, assign, project

__all__ = ("NoMatch", "merge_on", "merge", "nearest_prior_match")

logger = logging.getLogger(__name__)

RIGHT_SUFFIX = "_right"


class NoMatch(enum.Enum):
    """What to do with rows of the right table that have no match."""

    NULL = "null"
    DROP = "drop"


def _check_join_types(
    left: Table, right: Table, left_on: Sequence[str], right_on: Sequence[str]
) -> None:
    for lname, rname in zip(left_on, right_on):
        ltype, rtype = left.column(lname).type, right.column(rname).type
        if pa.types.is_dictionary(ltype):
            ltype = ltype.value_type
        if pa.types.is_dictionary(rtype):
            rtype = rtype.value_type
        numeric = all(
            pa.types.is_integer(t) or pa.types.is_floating(t) for t in (ltype, rtype)
        )
        if ltype != rtype and not numeric:
            raise TableTypeError(
                f"Cannot join {lname!r} ({ltype}) with {rname!r} ({rtype})"
            )


def _build_index(table: Table, columns: Sequence[str]) -> dict[tuple, list[int]]:
    """Hash the rows of ``table`` by their values for ``columns``."""
    data = [table[name].to_pylist() for name in columns]
    index: dict[tuple, list[int]] = {}
    for row, key in enumerate(zip(*data)):
        if any(v is None for v in key):
            continue
        index.setdefault(key, []).append(row)
    return index


def _check_cartesian(
    matches: Sequence[int], total_rows: int, left: Table, right: Table
) -> None:
    """Fail if the join multiplies rows more than allowed.

    :param matches: For each row of right, how many rows of left it matched.
    :param total_rows: Number of rows the join would produce.
    """
    threshold = options.cartesian_multiplicity
    if threshold is None:
        limit = left.num_rows + right.num_rows
        if total_rows > limit:
            raise CartesianError(
                f"Join results in {total_rows} rows, more than the {limit} rows of both inputs. "
                "Check for duplicate keys or pass allow_cartesian=True"
            )
        return
    worst = max(matches, default=0)
    if worst > threshold:
        raise CartesianError(
            f"A row of the right table matches {worst} rows of the left table, "
            f"more than the allowed {threshold}. Pass allow_cartesian=True if expected"
        )


def _right_output_names(
    left: Table, right: Table, right_on: Sequence[str]
) -> dict[str, str]:
    """Names the non join columns of ``right`` take in the joined table.

    Names already used by ``left`` get suffixed with ``_right``
    until they are unique.
    """
    taken = set(left.column_names)
    names = {}
    for name in right.column_names:
        if name in right_on:
            continue
        output_name = name
        while output_name in taken:
            output_name += RIGHT_SUFFIX
        taken.add(output_name)
        names[name] = output_name
    return names


def _assemble(
    left: Table,
    right: Table,
    pairs: list[tuple[int | None, int | None]],
    left_on: Sequence[str],
    right_on: Sequence[str],
) -> Table:
    """Build the joined table out of the matched ``(left_row, right_row)`` pairs.

    Join columns take the name of the left columns and the value of
    whichever side is available. Other columns follow, left ones first,
    right ones suffixed with ``_right`` when their name is already taken.
    """
    left_rows = pa.array([p[0] for p in pairs], type=pa.int64())
    right_rows = pa.array([p[1] for p in pairs], type=pa.int64())

    result: dict[str, pa.Array] = {}
    for lname, rname in zip(left_on, right_on):
        lvalues = left[lname].take(left_rows)
        rvalues = right[rname].take(right_rows)
        if pa.types.is_dictionary(lvalues.type):
            lvalues = lvalues.cast(lvalues.type.value_type)
        if pa.types.is_dictionary(rvalues.type):
            rvalues = rvalues.cast(rvalues.type.value_type)
        if rvalues.type != lvalues.type:
            # Only numbers of different width or kind get here.
            both_integers = pa.types.is_integer(lvalues.type) and pa.types.is_integer(rvalues.type)
            common = pa.int64() if both_integers else pa.float64()
            lvalues, rvalues = lvalues.cast(common), rvalues.cast(common)
        result[lname] = pc.coalesce(lvalues, rvalues)
    for name in left.column_names:
        if name not in result:
            result[name] = left[name].take(left_rows)
    for name, output_name in _right_output_names(left, right, right_on).items():
        result[output_name] = right[name].take(right_rows)
    return Table.from_pydict(result)


def merge_on(
    left: Table,
    right: Table,
    nomatch: NoMatch = NoMatch.NULL,
    allow_cartesian: bool = False,
) -> Table:
    """Join ``right`` onto ``left`` using the keys of the two tables.

    :param left: The keyed table to look rows up into.
    :param right: The keyed table whose rows drive the join.
    :param nomatch: Whether unmatched rows of ``right`` are kept with
                    missing values or dropped.
    :param allow_cartesian: Disable the check on the join multiplicity.
    :returns: A new table with the rows of ``right`` in their order,
              each repeated for every row of ``left`` it matches.
    """
    if not left.key or not right.key:
        raise TableKeyError("Both tables must be keyed to merge on their keys")
    width = min(len(left.key), len(right.key))
    left_on, right_on = list(left.key[:width]), list(right.key[:width])
    _check_join_types(left, right, left_on, right_on)

    index = _build_index(left, left_on)
    right_data = [right[name].to_pylist() for name in right_on]
    pairs: list[tuple[int | None, int | None]] = []
    matches: list[int] = []
    for row, key in enumerate(zip(*right_data)):
        found = index.get(key, []) if not any(v is None for v in key) else []
        matches.append(len(found))
        if found:
            pairs.extend((match, row) for match in found)
        elif nomatch is NoMatch.NULL:
            pairs.append((None, row))

    if not allow_cartesian:
        _check_cartesian(matches, len(pairs), left, right)
    logger.debug(
        "Merged %d right rows on %s into %d rows", right.num_rows, right_on, len(pairs)
    )
    return _assemble(left, right, pairs, left_on, right_on)


def merge(
    left: Table,
    right: Table,
    on: str | Sequence[str],
    how: str = "inner",
    right_on: str | Sequence[str] | None = None,
    sort: bool = True,
    allow_cartesian: bool = False,
) -> Table:
    """Join two tables on the given columns.

    :param left: The left table.
    :param right: The right table.
    :param on: The columns to join on.
    :param how: ``inner``, ``left``, ``right`` or ``outer``.
    :param right_on: Columns of ``right`` to match with ``on``,
                     when they are named differently.
    :param sort: Sort the result by the join columns.
    :param allow_cartesian: Disable the check on the join multiplicity.
    """
    if how not in ("inner", "left", "right", "outer"):
        raise ValueError(f"Unsupported join type {how!r}")
    left_on = [on] if isinstance(on, str) else list(on)
    if right_on is None:
        right_on = left_on
    right_on = [right_on] if isinstance(right_on, str) else list(right_on)
    if len(left_on) != len(right_on) or not left_on:
        raise SchemaError(f"Cannot join {left_on} with {right_on}")
    _check_join_types(left, right, left_on, right_on)

    index = _build_index(right, right_on)
    left_data = [left[name].to_pylist() for name in left_on]
    pairs: list[tuple[int | None, int | None]] = []
    matches: dict[int, int] = {}
    matched_right: set[int] = set()
    for row, key in enumerate(zip(*left_data)):
        found = index.get(key, []) if not any(v is None for v in key) else []
        for match in found:
            pairs.append((row, match))
            matches[match] = matches.get(match, 0) + 1
            matched_right.add(match)
        if not found and how in ("left", "outer"):
            pairs.append((row, None))
    if how in ("right", "outer"):
        pairs.extend(
            (None, row) for row in range(right.num_rows) if row not in matched_right
        )
    if not allow_cartesian:
        _check_cartesian(list(matches.values()), len(pairs), left, right)

    result = _assemble(left, right, pairs, left_on, right_on)
    if sort and result.num_rows:
        result = result.take(sort_indices(result.to_arrow(), left_on))
    logger.debug("%s join on %s produced %d rows", how, left_on, result.num_rows)
    return result


def _is_date(data_type: pa.DataType) -> bool:
    return pa.types.is_date(data_type) or pa.types.is_timestamp(data_type)


def nearest_prior_match(
    anchors: Table,
    events: Table,
    by: str | Sequence[str],
    anchor_date: str,
    event_date: str,
    within_days: int | None = None,
    distance_column: str = "days_prior",
) -> Table:
    """For each anchor, find the closest event that happened on or before it.

    This is a composition of the other operators:

    1. Key both tables by ``by`` and join the events onto the anchors,
       every anchor gets a row for each event of the same ``by`` group.
    2. Keep only the events that happened on or before the anchor date.
    3. Compute the distance in days between the event and the anchor.
    4. Optionally drop the events further than ``within_days``.
    5. Sort by distance and keep the first row for each
       ``(by, anchor_date)``, which is the closest event.

    Anchors without any event satisfying the conditions produce no row.
    The input tables are not modified.

    :param anchors: The table with the reference dates, like incidents.
    :param events: The table with the events to match, like visits.
    :param by: Columns identifying the entity both tables refer to.
    :param anchor_date: Date column of ``anchors``.
    :param event_date: Date column of ``events``.
    :param within_days: Maximum distance in days between event and anchor.
    :param distance_column: Name of the column with the distance in days.
    :returns: The columns of anchors, followed by the columns of
              events and the distance, sorted by ``by`` and anchor date.
    """
    by = [by] if isinstance(by, str) else list(by)
    if anchor_date == event_date:
        raise SchemaError("Anchor and event date columns must have different names")
    for table, date_column in ((anchors, anchor_date), (events, event_date)):
        for name in by + [date_column]:
            table.column(name)
        if not _is_date(table.column(date_column).type):
            raise TableTypeError(
                f"{date_column!r} must be a date column, got {table.column(date_column).type}"
            )
    if within_days is not None and within_days < 0:
        raise ValueError("within_days must not be negative")

    # Work on shallow copies, setting the key reorders the rows
    # and we don't want to alter the order of the caller tables.
    events = events.shallow_copy()
    anchors = anchors.shallow_copy()
    events.set_key(by)
    anchors.set_key(by)

    # Every anchor, repeated for every event of the same entity.
    candidates = merge_on(events, anchors, nomatch=NoMatch.DROP, allow_cartesian=True)
    # Columns of anchors clashing with the ones of events got suffixed by the join.
    renamed = _right_output_names(events, anchors, by)
    anchor_columns = [renamed.get(name, name) for name in anchors.column_names]
    anchor_date = renamed.get(anchor_date, anchor_date)

    candidates = where(
        candidates,
        FunctionCallExpression(pc.less_equal, col(event_date), col(anchor_date)),
    )
    assign(
        candidates,
        {
            distance_column: FunctionCallExpression(
                pc.days_between, col(event_date), col(anchor_date)
            )
        },
    )
    if within_days is not None:
        candidates = where(
            candidates,
            FunctionCallExpression(pc.less_equal, col(distance_column), within_days),
        )

    candidates.store.reorder(
        sort_indices(candidates.to_arrow(), by + [anchor_date, distance_column])
    )
    closest = unique(candidates, by + [anchor_date])

    event_columns = [
        name for name in closest.column_names
        if name not in anchor_columns and name != distance_column
    ]
    return project(closest, Select(*anchor_columns, *event_columns, distance_column))

