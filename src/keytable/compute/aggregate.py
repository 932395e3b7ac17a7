"""Grouped aggregations.

Frequently when analysing data is necessary
to compute statistics like the count, average, etc...
of the rows sharing the same values for some columns.

For example, given the following data::

    city, shop, n_employees
    New York, Shop A, 10
    New York, Shop B, 15
    Los Angeles, Shop C, 8
    Los Angeles, Shop D, 12
    New York, Shop E, 20

We could group by city and compute the sum of the employees
to get::

    city, total_employees
    New York, 45
    Los Angeles, 20

Two operators are provided:

* :func:`group_by` returns a new table with one row per group.
* :func:`group_assign` modifies the table **in place**, adding
  a column where each row holds the aggregated value of its group
  (what SQL calls a window function).

Groups are emitted in order of first appearance of their key,
unless the table is keyed, in which case they are emitted sorted.

>>> from keytable import Table
>>> data = Table.from_pydict({
...    "city": ["New York", "New York", "Los Angeles", "Los Angeles", "New York"],
...    "n_employees": [10, 15, 8, 12, 20],
... })
>>> group_by(data, ["city"], {"total_employees": SumAggregation("n_employees")}).to_pydict()
{'city': ['New York', 'Los Angeles'], 'total_employees': [45, 20]}
>>> group_assign(data, ["city"], {"city_employees": SumAggregation("n_employees")})
>>> data["city_employees"].to_pylist()
[45, 45, 20, 20, 45]
"""

import abc
import logging
from typing import Any, Mapping, Sequence

import pyarrow as pa
import pyarrow.compute as pc

from ..errors import SchemaError, TableTypeError
from ..index import sortable
from ..store import Column
from ..table import Table

__all__ = (
    "Aggregation",
    "CountAggregation",
    "CountDistinctAggregation",
    "SumAggregation",
    "MinAggregation",
    "MaxAggregation",
    "MeanAggregation",
    "FirstAggregation",
    "LastAggregation",
    "RowNumberAggregation",
    "partition",
    "group_by",
    "group_assign",
    "unique",
)

logger = logging.getLogger(__name__)


def partition(table: Table, keys: Sequence[str]) -> dict[tuple, list[int]]:
    """Group the positions of the rows by their values for ``keys``.

    Returns ``{key_tuple: [row, ...]}`` with groups in order of first
    appearance, or sorted by key (missing values last) when the table
    is keyed.
    """
    keys = list(keys)
    if len(set(keys)) != len(keys):
        raise SchemaError(f"Duplicate grouping columns {keys}")
    columns = [table[name].to_pylist() for name in keys]

    groups: dict[tuple, list[int]] = {}
    if not keys:
        groups[()] = list(range(table.num_rows))
        return groups
    for row, key in enumerate(zip(*columns)):
        groups.setdefault(key, []).append(row)

    if table.key:
        groups = dict(
            sorted(groups.items(), key=lambda item: tuple(sortable(v) for v in item[0]))
        )
    return groups


class Aggregation(abc.ABC):
    """Base class for aggregations.

    Every aggregation computes a single value out of
    the rows of a group, provided as an Arrow array with the
    values of the aggregated column for those rows.
    """

    #: Whether the aggregation reads a column. ``Count`` does not.
    requires_column = True

    def __init__(self, column: str | None = None) -> None:
        if self.requires_column and column is None:
            raise SchemaError(f"{self.__class__.__name__} requires a column")
        self.column = column

    def __str__(self) -> str:
        return f"{self.__class__.__name__}({self.column or ''})"

    __repr__ = __str__

    def validate(self, table: Table) -> None:
        """Verify the aggregation can be applied to ``table``.

        Invoked before any work is done, so that invalid aggregations
        fail without leaving anything half computed.
        """
        if self.column is not None and self.column not in table:
            raise SchemaError(f"Unknown column {self.column!r} in {self}")

    def values(self, table: Table, rows: list[int]) -> pa.Array:
        """The values of the aggregated column for ``rows``."""
        data = table[self.column]
        if pa.types.is_dictionary(data.type):
            data = data.cast(data.type.value_type)
        return data.take(pa.array(rows, type=pa.int64()))

    @abc.abstractmethod
    def compute(self, data: pa.Array, size: int) -> pa.Scalar:
        """Aggregate the values of a group.

        :param data: Values of the column for the rows of the group,
                     ``None`` for aggregations that need no column.
        :param size: Number of rows of the group.
        """
        ...

    def window(self, data: pa.Array, size: int) -> list[Any]:
        """Values to assign to each row of the group by :func:`group_assign`."""
        return [self.compute(data, size).as_py()] * size

    def output_type(self, table: Table) -> pa.DataType:
        """Type of the aggregated values."""
        data = None
        if self.column is not None:
            data = self.values(table, [])
        return self.compute(data, 0).type


class NumericAggregation(Aggregation):
    """Aggregations that only make sense on numbers."""

    def validate(self, table: Table) -> None:
        super().validate(table)
        column_type = table.column(self.column).type
        if not (
            pa.types.is_integer(column_type)
            or pa.types.is_floating(column_type)
            or pa.types.is_decimal(column_type)
        ):
            raise TableTypeError(
                f"{self} requires a numeric column, {self.column!r} is {column_type}"
            )


class SumAggregation(NumericAggregation):
    """Compute the sum of an aggregated column."""

    def compute(self, data: pa.Array, size: int) -> pa.Scalar:
        return pc.sum(data)


class MeanAggregation(NumericAggregation):
    """Compute the mean of an aggregated column, ignoring missing values."""

    def compute(self, data: pa.Array, size: int) -> pa.Scalar:
        return pc.mean(data)


class OrderedAggregation(Aggregation):
    """Aggregations that require comparable values."""

    def validate(self, table: Table) -> None:
        super().validate(table)
        column_type = table.column(self.column).type
        if pa.types.is_nested(column_type) or pa.types.is_null(column_type):
            raise TableTypeError(f"{self} cannot compare values of type {column_type}")


class MinAggregation(OrderedAggregation):
    """Compute the min of an aggregated column."""

    def compute(self, data: pa.Array, size: int) -> pa.Scalar:
        return pc.min(data)


class MaxAggregation(OrderedAggregation):
    """Compute the max of an aggregated column."""

    def compute(self, data: pa.Array, size: int) -> pa.Scalar:
        return pc.max(data)


class CountAggregation(Aggregation):
    """Count the rows of the group.

    When a column is provided only the rows where
    the column is not missing are counted.
    """

    requires_column = False

    def values(self, table: Table, rows: list[int]) -> pa.Array | None:
        if self.column is None:
            return None
        return super().values(table, rows)

    def compute(self, data: pa.Array | None, size: int) -> pa.Scalar:
        if data is None:
            return pa.scalar(size, type=pa.int64())
        return pc.count(data)


class CountDistinctAggregation(Aggregation):
    """Count the distinct non missing values of a column."""

    def compute(self, data: pa.Array, size: int) -> pa.Scalar:
        return pc.count_distinct(data)


class FirstAggregation(Aggregation):
    """The value of the column for the first row of the group."""

    def compute(self, data: pa.Array, size: int) -> pa.Scalar:
        if len(data) == 0:
            return pa.scalar(None, type=data.type)
        return data[0]


class LastAggregation(Aggregation):
    """The value of the column for the last row of the group."""

    def compute(self, data: pa.Array, size: int) -> pa.Scalar:
        if len(data) == 0:
            return pa.scalar(None, type=data.type)
        return data[len(data) - 1]


class RowNumberAggregation(Aggregation):
    """Number the rows of each group starting from 1.

    This only makes sense with :func:`group_assign`, as it
    produces a different value for each row of the group.
    """

    requires_column = False

    def values(self, table: Table, rows: list[int]) -> None:
        return None

    def compute(self, data: None, size: int) -> pa.Scalar:
        raise TableTypeError("RowNumberAggregation can only be used with group_assign")

    def window(self, data: None, size: int) -> list[int]:
        return list(range(1, size + 1))

    def output_type(self, table: Table) -> pa.DataType:
        return pa.int64()


def _check_aggregations(
    table: Table, keys: Sequence[str], aggregations: Mapping[str, Aggregation]
) -> None:
    for name in keys:
        table.column(name)
    for name, aggregation in aggregations.items():
        if not isinstance(aggregation, Aggregation):
            raise TypeError(f"Expected an Aggregation for {name!r}, got {aggregation!r}")
        aggregation.validate(table)


def group_by(
    table: Table, keys: Sequence[str], aggregations: Mapping[str, Aggregation]
) -> Table:
    """Group rows by ``keys`` and compute ``aggregations`` for each group.

    :param table: The table to aggregate.
    :param keys: The columns to group by, an empty list aggregates the whole table.
    :param aggregations: The aggregations to compute in the form of
                         ``{"new_col_name": Aggregation}``.
    :returns: A new table with the key columns followed by the aggregated columns.
    """
    keys = list(keys)
    _check_aggregations(table, keys, aggregations)
    clashes = [name for name in aggregations if name in keys]
    if clashes:
        raise SchemaError(f"Aggregations {clashes} clash with grouping columns")

    groups = partition(table, keys)
    result: dict[str, Any] = {
        name: pa.array([key[idx] for key in groups], type=table.column(name).type)
        for idx, name in enumerate(keys)
    }
    for name, aggregation in aggregations.items():
        scalars = [
            aggregation.compute(aggregation.values(table, rows), len(rows))
            for rows in groups.values()
        ]
        result[name] = pa.array(
            [s.as_py() for s in scalars], type=aggregation.output_type(table)
        )
    logger.debug("Aggregated %d rows into %d groups by %s", table.num_rows, len(groups), keys)
    return Table.from_pydict(result)


def group_assign(
    table: Table, keys: Sequence[str], aggregations: Mapping[str, Aggregation]
) -> None:
    """Compute ``aggregations`` by group and store them in ``table`` in place.

    Each row receives the aggregated value of the group it belongs to.
    The table is only modified once all aggregations were computed.
    """
    keys = list(keys)
    _check_aggregations(table, keys, aggregations)

    groups = partition(table, keys)
    new_columns: dict[str, Column] = {}
    for name, aggregation in aggregations.items():
        values: list[Any] = [None] * table.num_rows
        for rows in groups.values():
            group_values = aggregation.window(aggregation.values(table, rows), len(rows))
            for row, value in zip(rows, group_values):
                values[row] = value
        new_columns[name] = table.store.check_column(
            name, Column(values, aggregation.output_type(table))
        )

    for name, column in new_columns.items():
        table.store.set(name, column)
    logger.debug("Assigned %s over %d groups by %s", list(aggregations), len(groups), keys)


def unique(table: Table, by: Sequence[str] | None = None) -> Table:
    """A new table keeping only the first row for each distinct ``by`` tuple.

    When ``by`` is omitted all columns are considered.
    """
    by = list(by) if by is not None else table.column_names
    for name in by:
        table.column(name)
    groups = partition(table, by)
    first_rows = sorted(rows[0] for rows in groups.values() if rows)
    return table.take(first_rows)
