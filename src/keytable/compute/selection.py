"""Projection of columns and in place column assignment.

Projection
==========

:func:`project` builds a new table out of some of the columns of
an existing one, optionally adding computed columns. What to keep is
described by one or more column specs:

* :class:`Select` keeps the listed columns, in the listed order.
* :class:`Exclude` keeps all columns but the listed ones.
* :class:`Range` keeps a contiguous range of columns, from the
  first to the last named column (both included).
* :class:`Computed` adds new columns computed by expressions.

>>> import pyarrow.compute as pc
>>> from keytable import Table
>>> from keytable.compute import col, FunctionCallExpression
>>> data = Table.from_pydict({"a": [1, 2, 3], "b": [4, 5, 6], "c": [7, 8, 9]})
>>> project(data, Range("b", "c")).column_names
['b', 'c']
>>> project(data, Select("a"), Computed({"ab_sum": FunctionCallExpression(pc.add, col("a"), col("b"))})).to_pydict()
{'a': [1, 2, 3], 'ab_sum': [5, 7, 9]}

Names listed in a :class:`Select` or :class:`Exclude` are column names,
unless the evaluation context resolves them to a variable, in which
case the variable is expected to hold the column names::

    cols = ["a", "b"]
    project(data, Select("cols"), context=EvaluationContext({"cols": cols}, bypass=True))

Assignment
==========

:func:`assign` adds or replaces columns **in place**, all the handles
aliasing the table will see the new columns. When a predicate is
provided only the matching rows are updated, the other rows keep
their values, or get a missing value for newly created columns.

>>> assign(data, {"d": FunctionCallExpression(pc.multiply, col("a"), 10)})
>>> data["d"].to_pylist()
[10, 20, 30]
"""

import abc
import logging
from typing import Any, Iterable, Mapping

import pyarrow as pa

from ..errors import SchemaError, TableTypeError
from ..store import Column, as_array
from ..table import Table
from .base import EvaluationContext, Expression, Scope, Source
from .expressions import evaluate
from .filtering import filter_rows

__all__ = (
    "ColumnSpec",
    "Select",
    "Exclude",
    "Range",
    "Computed",
    "project",
    "assign",
)

logger = logging.getLogger(__name__)


class ColumnSpec(abc.ABC):
    """Describes which columns a projection should emit."""

    @abc.abstractmethod
    def resolve(self, scope: Scope, current: list[str]) -> list[str]:
        """Names of the columns to keep.

        :param scope: The table being projected and its evaluation context.
        :param current: The columns selected so far by previous specs.
        """
        ...

    def computed(self) -> Mapping[str, Any]:
        """New columns added by the spec, ``{name: expression}``."""
        return {}

    @staticmethod
    def _expand(scope: Scope, names: Iterable[str]) -> list[str]:
        """Resolve names that refer to variables holding column names."""
        expanded = []
        for name in names:
            if scope.context.source_of(name) is Source.VARIABLE:
                value = scope.context.variable(name)
                if isinstance(value, str):
                    value = [value]
                if not all(isinstance(v, str) for v in value):
                    raise TableTypeError(f"Variable {name!r} must hold column names, got {value!r}")
                expanded.extend(value)
            else:
                expanded.append(name)
        unknown = [name for name in expanded if name not in scope.table]
        if unknown:
            raise SchemaError(f"Unknown columns {unknown}, available columns: {scope.table.column_names}")
        return expanded


class Select(ColumnSpec):
    """Keep only the given columns."""

    def __init__(self, *names: str) -> None:
        self.names = names

    def __str__(self) -> str:
        return f"Select({', '.join(self.names)})"

    def resolve(self, scope: Scope, current: list[str]) -> list[str]:
        return current + self._expand(scope, self.names)


class Exclude(ColumnSpec):
    """Keep all the columns except the given ones."""

    def __init__(self, *names: str) -> None:
        self.names = names

    def __str__(self) -> str:
        return f"Exclude({', '.join(self.names)})"

    def resolve(self, scope: Scope, current: list[str]) -> list[str]:
        excluded = set(self._expand(scope, self.names))
        base = current or scope.table.column_names
        return [name for name in base if name not in excluded]


class Range(ColumnSpec):
    """Keep the columns from ``first`` to ``last``, both included."""

    def __init__(self, first: str, last: str) -> None:
        self.first = first
        self.last = last

    def __str__(self) -> str:
        return f"Range({self.first}:{self.last})"

    def resolve(self, scope: Scope, current: list[str]) -> list[str]:
        first, last = self._expand(scope, [self.first, self.last])
        names = scope.table.column_names
        start, end = names.index(first), names.index(last)
        if start > end:
            raise SchemaError(f"Column {first!r} comes after {last!r}")
        return current + names[start : end + 1]


class Computed(ColumnSpec):
    """Add new columns computed by expressions."""

    def __init__(self, expressions: Mapping[str, Any]) -> None:
        self.expressions = dict(expressions)

    def __str__(self) -> str:
        return f"Computed({self.expressions})"

    def resolve(self, scope: Scope, current: list[str]) -> list[str]:
        return current

    def computed(self) -> Mapping[str, Any]:
        return self.expressions


def project(
    table: Table, *specs: ColumnSpec, context: EvaluationContext | None = None
) -> Table:
    """A new table with the columns described by ``specs``.

    The new table has its own rows, numbered from zero,
    and no key.
    """
    if not specs:
        raise SchemaError("project requires at least one column spec")
    scope = Scope(table, context)

    selected: list[str] = []
    computed: dict[str, Any] = {}
    only_computed = True
    for spec in specs:
        if not isinstance(spec, ColumnSpec):
            raise TypeError(f"Expected a ColumnSpec, got {spec!r}")
        if not isinstance(spec, Computed):
            only_computed = False
        selected = spec.resolve(scope, selected)
        computed.update(spec.computed())
    if only_computed:
        # Only computed columns were requested, behave like a SELECT *, expr
        selected = table.column_names

    names = selected + [name for name in computed if name not in selected]
    if len(set(names)) != len(names):
        raise SchemaError(f"Duplicate columns in projection {names}")

    # Evaluate everything before building the result, so that
    # errors are reported before any new data is allocated.
    values = {name: evaluate(scope, expr) for name, expr in computed.items()}
    return Table.from_pydict(
        {name: values[name] if name in values else table[name] for name in names}
    )


def assign(
    table: Table,
    columns: Mapping[str, Any],
    where: Expression | None = None,
    context: EvaluationContext | None = None,
) -> None:
    """Add or replace columns of ``table`` in place.

    :param table: The table to modify.
    :param columns: ``{name: expression}`` of the columns to assign,
                    expressions can also be plain values or arrays.
    :param where: Only assign the rows where this predicate is true.
    :param context: Variables and name resolution rules for the expressions.

    All the new values are computed and validated before the table is
    modified, so on failure the table is left untouched.
    """
    rows = None
    scope = Scope(table, context)
    if where is not None:
        rows = filter_rows(table, where, context)
        scope = Scope(table.take(rows), context)

    new_columns: dict[str, Column] = {}
    for name, expr in columns.items():
        values = evaluate(scope, expr)
        if rows is not None:
            values = _scatter(table, name, rows, values)
        new_columns[name] = table.store.check_column(name, Column(values))

    for name, column in new_columns.items():
        table.store.set(name, column)
    logger.debug(
        "Assigned columns %s on %s rows",
        list(new_columns),
        "all" if rows is None else len(rows),
    )


def _scatter(table: Table, name: str, rows: list[int], values: pa.Array) -> pa.Array:
    """Place ``values`` at ``rows`` of column ``name``.

    Rows not listed keep the current values of the column,
    or are missing if the column doesn't exist yet.
    """
    if name in table:
        current = table.column(name)
        target_type = current.type
        result = current.data.to_pylist()
    else:
        target_type = values.type
        result = [None] * table.num_rows
    for row, value in zip(rows, values.to_pylist()):
        result[row] = value
    return as_array(result, target_type)
