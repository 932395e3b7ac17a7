"""keytable

An in-memory tabular data engine built on Apache Arrow.

keytable stores tables as named, typed Arrow columns and offers
the operations commonly needed when preparing data for an analysis:

* Fast lookups of rows by key, after sorting the table by its key columns.
* Reference semantics, tables are shared and modified in place
  unless explicitly copied.
* Filtering, projection and in place assignment of columns.
* Grouped aggregations, both as new tables and as window
  columns added to the grouped table.
* Reshaping between wide and long formats.
* Joins, including finding the closest prior event for a date.

The engine is made of multiple components, each isolated within
its own module and each self documented:

* :mod:`keytable.store`, the columnar storage.
* :mod:`keytable.index`, keys and lookups.
* :mod:`keytable.table`, the table handles.
* :mod:`keytable.compute`, the operators.

>>> from keytable import Table
>>> demo = Table.from_pydict({"uid": [3, 1, 2], "age": [40, 35, 61]}, key=["uid"])
>>> demo.lookup(2).to_pydict()
{'uid': [2], 'age': [61]}
"""

from . import compute
from .errors import (
    CartesianError,
    SchemaError,
    TableError,
    TableKeyError,
    TableTypeError,
    UnboundVariableError,
)
from .index import MatchPolicy, lookup, set_key
from .options import option_context, options
from .table import Table, bind_rows

__all__ = (
    "compute",
    "Table",
    "bind_rows",
    "MatchPolicy",
    "lookup",
    "set_key",
    "options",
    "option_context",
    "TableError",
    "SchemaError",
    "TableKeyError",
    "CartesianError",
    "TableTypeError",
    "UnboundVariableError",
)
