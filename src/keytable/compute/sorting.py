"""Reordering the rows of a table.

When computing ranks or looking for the most significant
values, it's often necessary to sort the data based
on one or more columns.

:func:`order_by` sorts the rows **in place**, like setting a key,
but it supports descending orders and doesn't record a key, so it
can't be used for lookups. Missing values are always placed last.

>>> from keytable import Table
>>> data = Table.from_pydict({"values": [3, None, 1, 2]})
>>> order_by(data, ["values"], descending=[True])
>>> data["values"].to_pylist()
[3, 2, 1, None]
>>> sort(data, ["values"])["values"].to_pylist()
[1, 2, 3, None]
"""

import logging
from typing import Sequence

from ..index import sort_indices
from ..table import Table

__all__ = ("order_by", "sort")

logger = logging.getLogger(__name__)


def order_by(
    table: Table, columns: Sequence[str], descending: Sequence[bool] | None = None
) -> None:
    """Sort the rows of ``table`` in place by ``columns``.

    :param table: The table to sort, any key it had is discarded.
    :param columns: The columns to sort by in the order they should be sorted.
    :param descending: If each column should be sorted in a descending order.
    """
    columns = list(columns)
    for name in columns:
        table.column(name)
    indices = sort_indices(table.to_arrow(), columns, descending)
    table.store.reorder(indices)
    logger.debug("Sorted %d rows by %s", table.num_rows, columns)


def sort(
    table: Table, columns: Sequence[str], descending: Sequence[bool] | None = None
) -> Table:
    """A sorted copy of ``table``, the original is not modified."""
    columns = list(columns)
    for name in columns:
        table.column(name)
    return table.take(sort_indices(table.to_arrow(), columns, descending))
