"""Reshaping tables between wide and long formats.

Melt (wide to long)
===================

:func:`melt` turns measure columns into rows. Given::

    uid | visit_1    | visit_2
    1   | 2018-01-01 | 2018-02-01
    2   | 2018-03-01 | null

melting ``visit_1, visit_2`` with ``uid`` as the id column gives::

    uid | variable | value
    1   | visit_1  | 2018-01-01
    2   | visit_1  | 2018-03-01
    1   | visit_2  | 2018-02-01
    2   | visit_2  | null

Multiple groups of measure columns can be melted at once, each group
becomes one value column and the ``variable`` column holds the position
(starting from 1) within the groups::

    melt(events, ["uid"], [["visit_1", "visit_2"], ["lab_1", "lab_2"]],
         value_names=["visit", "lab"])

Dcast (long to wide)
====================

:func:`dcast` is the inverse operation. One row is emitted for each
distinct combination of the row keys, one column for each distinct
combination of the column keys, named after their values.

Rows are sorted by the row keys and columns by the column keys,
missing values last. When more than one row matches the same cell
the ``multiple`` policy decides what happens, by default it's an error.

>>> from keytable import Table
>>> wide = Table.from_pydict({"uid": [1, 2], "a": [10, 20], "b": [30, 40]})
>>> long = melt(wide, ["uid"], ["a", "b"])
>>> long.to_pydict()
{'uid': [1, 2, 1, 2], 'variable': ['a', 'a', 'b', 'b'], 'value': [10, 20, 30, 40]}
>>> dcast(long, ["uid"], ["variable"], "value").to_pydict()
{'uid': [1, 2], 'a': [10, 20], 'b': [30, 40]}
"""

import enum
import logging
import re
from typing import Any, Sequence

import pyarrow as pa
import pyarrow.compute as pc

from ..errors import SchemaError, TableTypeError
from ..index import sortable
from ..options import options
from ..table import Table

__all__ = ("Multiple", "patterns", "melt", "dcast")

logger = logging.getLogger(__name__)


class Multiple(enum.Enum):
    """How :func:`dcast` deals with multiple rows for the same cell."""

    ERROR = "error"
    FIRST = "first"
    LAST = "last"


class patterns:
    """Select groups of measure columns by regular expression.

    Each pattern produces one group with all the columns,
    in table order, whose name matches it::

        melt(events, ["uid"], patterns(r"^visit_", r"^lab_"))
    """

    def __init__(self, *regexes: str) -> None:
        self.regexes = [re.compile(r) for r in regexes]

    def __repr__(self) -> str:
        return f"patterns({', '.join(repr(r.pattern) for r in self.regexes)})"

    def resolve(self, column_names: Sequence[str]) -> list[list[str]]:
        return [
            [name for name in column_names if regex.search(name)]
            for regex in self.regexes
        ]


def _measure_groups(table: Table, measures: Any) -> list[list[str]]:
    if isinstance(measures, patterns):
        groups = measures.resolve(table.column_names)
    elif isinstance(measures, str):
        groups = [[measures]]
    elif measures and all(isinstance(m, str) for m in measures):
        groups = [list(measures)]
    else:
        groups = [list(group) for group in measures]

    if not groups or not all(groups):
        raise SchemaError(f"Empty measure group in {measures!r}")
    if len({len(group) for group in groups}) != 1:
        raise SchemaError(
            f"All measure groups must have the same number of columns, got {groups}"
        )
    for group in groups:
        for name in group:
            table.column(name)
    return groups


def _concat_measures(table: Table, columns: list[str]) -> pa.Array:
    """Stack the values of ``columns`` one after the other."""
    arrays = []
    for name in columns:
        data = table[name]
        if pa.types.is_dictionary(data.type):
            data = data.cast(data.type.value_type)
        arrays.append(data)

    types = {a.type for a in arrays if not pa.types.is_null(a.type)}
    if len(types) > 1:
        if all(pa.types.is_integer(t) or pa.types.is_floating(t) for t in types):
            target = pa.float64()
        else:
            raise TableTypeError(
                f"Measure columns {columns} have incompatible types {sorted(map(str, types))}"
            )
    else:
        target = types.pop() if types else pa.null()
    return pa.concat_arrays([a.cast(target) for a in arrays])


def melt(
    table: Table,
    id_columns: Sequence[str],
    measures: Sequence[str] | Sequence[Sequence[str]] | patterns,
    value_names: Sequence[str] | None = None,
    variable_name: str = "variable",
    drop_missing: bool = False,
) -> Table:
    """Turn measure columns into rows.

    :param table: The table to melt.
    :param id_columns: Columns identifying each row, repeated for every measure.
    :param measures: A list of measure columns, a list of lists for
                     multiple measure groups, or :class:`patterns`.
    :param value_names: Names of the value columns, one per measure group.
                        Defaults to ``value`` for a single group and
                        ``value1, value2, ...`` for multiple groups.
    :param variable_name: Name of the column identifying the measure.
                          It holds the measure column name when a single
                          group is melted, its 1-based position otherwise.
    :param drop_missing: Drop rows where all the values are missing.
    """
    id_columns = list(id_columns)
    for name in id_columns:
        table.column(name)
    groups = _measure_groups(table, measures)
    if value_names is None:
        value_names = (
            ["value"] if len(groups) == 1 else [f"value{i + 1}" for i in range(len(groups))]
        )
    value_names = list(value_names)
    if len(value_names) != len(groups):
        raise SchemaError(
            f"Got {len(value_names)} value names for {len(groups)} measure groups"
        )
    names = id_columns + [variable_name] + value_names
    if len(set(names)) != len(names):
        raise SchemaError(f"Duplicate output columns {names}")

    positions = len(groups[0])
    rows = table.num_rows
    result: dict[str, pa.Array] = {
        name: pa.concat_arrays([table[name]] * positions)
        for name in id_columns
    }
    if len(groups) == 1:
        variable = [name for name in groups[0] for _ in range(rows)]
        result[variable_name] = pa.array(variable, type=pa.string())
    else:
        variable = [pos for pos in range(1, positions + 1) for _ in range(rows)]
        result[variable_name] = pa.array(variable, type=pa.int64())
    for value_name, group in zip(value_names, groups):
        result[value_name] = _concat_measures(table, group)

    melted = Table.from_pydict(result)
    if drop_missing:
        keep = pc.is_valid(melted[value_names[0]])
        for value_name in value_names[1:]:
            keep = pc.or_(keep, pc.is_valid(melted[value_name]))
        melted = melted.take(pc.indices_nonzero(keep))
    logger.debug(
        "Melted %d rows and %d measure groups into %d rows", rows, len(groups), melted.num_rows
    )
    return melted


def _label(values: tuple, sep: str) -> str:
    return sep.join(options.missing_label if v is None else str(v) for v in values)


def dcast(
    table: Table,
    row_keys: str | Sequence[str],
    column_keys: str | Sequence[str],
    value_column: str,
    multiple: Multiple = Multiple.ERROR,
    fill: Any = None,
    prefix: str = "",
    sep: str | None = None,
) -> Table:
    """Turn rows into columns.

    :param table: The long table to reshape.
    :param row_keys: Columns identifying the rows of the result.
    :param column_keys: Columns whose values become the columns of the result.
    :param value_column: Column holding the values of the cells.
    :param multiple: What to do when multiple rows match the same cell.
    :param fill: Value of cells that no row matches.
    :param prefix: Prefix added to the name of the generated columns.
    :param sep: Separator used to join the values of multiple column keys,
                defaults to ``options.dcast_sep``.
    """
    row_keys = [row_keys] if isinstance(row_keys, str) else list(row_keys)
    column_keys = [column_keys] if isinstance(column_keys, str) else list(column_keys)
    sep = options.dcast_sep if sep is None else sep
    for name in row_keys + column_keys + [value_column]:
        table.column(name)
    if set(row_keys) & set(column_keys):
        raise SchemaError(f"Columns {row_keys} used both as row and column keys")

    row_data = [table[name].to_pylist() for name in row_keys]
    column_data = [table[name].to_pylist() for name in column_keys]
    values = table[value_column].to_pylist()

    cells: dict[tuple, dict[tuple, Any]] = {}
    column_tuples: dict[tuple, None] = {}
    for idx in range(table.num_rows):
        row_key = tuple(data[idx] for data in row_data)
        column_key = tuple(data[idx] for data in column_data)
        column_tuples[column_key] = None
        row_cells = cells.setdefault(row_key, {})
        if column_key in row_cells:
            if multiple is Multiple.ERROR:
                raise SchemaError(
                    f"Multiple values for row {row_key} and column {column_key}, "
                    "use multiple=Multiple.FIRST or Multiple.LAST to pick one"
                )
            if multiple is Multiple.FIRST:
                continue
        row_cells[column_key] = values[idx]

    def key_order(k: tuple) -> tuple:
        return tuple(sortable(v) for v in k)

    sorted_rows = sorted(cells, key=key_order)
    sorted_columns = sorted(column_tuples, key=key_order)
    labels = [prefix + _label(k, sep) for k in sorted_columns]
    names = row_keys + labels
    if len(set(names)) != len(names):
        raise SchemaError(f"Generated columns {labels} clash with row keys {row_keys}")

    value_type = table.column(value_column).type
    if pa.types.is_dictionary(value_type):
        value_type = value_type.value_type
    try:
        fill = table.column(value_column).check_value(fill)
    except TableTypeError:
        raise TableTypeError(f"Fill value {fill!r} incompatible with {value_type}") from None

    result: dict[str, pa.Array] = {}
    for idx, name in enumerate(row_keys):
        result[name] = pa.array(
            [k[idx] for k in sorted_rows], type=table.column(name).type
        )
    for label, column_key in zip(labels, sorted_columns):
        result[label] = pa.array(
            [cells[k].get(column_key, fill) for k in sorted_rows], type=value_type
        )
    logger.debug(
        "Cast %d rows into %d rows and %d columns", table.num_rows, len(sorted_rows), len(labels)
    )
    return Table.from_pydict(result)
