"""Filtering of rows.

A common request is to pick only the rows of a table
that satisfy a predicate. An example is the ``WHERE``
condition in SQL queries.

The predicate is an expression that returns ``true`` or ``false``
for each row of the table. Rows where the predicate is missing
(``null``) are treated as not matching.

>>> import pyarrow.compute as pc
>>> from keytable import Table
>>> from keytable.compute import col, lit, FunctionCallExpression
>>> data = Table.from_pydict({"values": [1, 2, 3, 4, 5]})
>>> predicate = FunctionCallExpression(pc.greater, col("values"), lit(3))
>>> filter_rows(data, predicate)
[3, 4]
>>> where(data, predicate).to_pydict()
{'values': [4, 5]}
"""

import logging

import pyarrow as pa
import pyarrow.compute as pc

from ..errors import TableTypeError
from ..table import Table
from .base import EvaluationContext, Expression, Scope
from .expressions import evaluate

__all__ = ("filter_rows", "where", "predicate_mask")

logger = logging.getLogger(__name__)


def predicate_mask(
    table: Table, predicate: Expression, context: EvaluationContext | None = None
) -> pa.BooleanArray:
    """Evaluate ``predicate`` on every row, missing results become ``false``."""
    mask = evaluate(Scope(table, context), predicate)
    if not pa.types.is_boolean(mask.type):
        raise TableTypeError(f"Predicate {predicate} returned {mask.type} instead of bool")
    return pc.fill_null(mask, False)


def filter_rows(
    table: Table, predicate: Expression, context: EvaluationContext | None = None
) -> list[int]:
    """Positions of the rows that satisfy ``predicate``.

    :param table: The table to filter.
    :param predicate: Expression evaluating to a boolean for each row.
    :param context: Variables and name resolution rules for the predicate.
    """
    mask = predicate_mask(table, predicate, context)
    rows = pc.indices_nonzero(mask).to_pylist()
    logger.debug("Predicate %s matched %d of %d rows", predicate, len(rows), table.num_rows)
    return rows


def where(
    table: Table, predicate: Expression, context: EvaluationContext | None = None
) -> Table:
    """A new table with only the rows that satisfy ``predicate``."""
    return table.take(filter_rows(table, predicate, context))
