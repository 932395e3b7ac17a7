"""The keytable compute operators.

The operators work on :class:`keytable.Table` objects, some of them
build new tables (:func:`where`, :func:`project`, :func:`group_by`,
:func:`melt`, :func:`dcast`, :func:`merge_on`, ...) while others
modify the table they receive **in place** (:func:`assign`,
:func:`group_assign`, :func:`order_by`). In place operators
return ``None`` to make the difference evident.

Columns are stored as Arrow arrays, so expressions are usually
built out of :mod:`pyarrow.compute` functions:

>>> import pyarrow.compute as pc
>>> from keytable import Table
>>> data = Table.from_pydict({
...    "animals": ["Flamingo", "Horse", "Brittle stars", "Centipede"],
...    "n_legs": [2, 4, 5, 100],
... })
>>> where(data, FunctionCallExpression(pc.greater_equal, col("n_legs"), 5)).to_pydict()
{'animals': ['Brittle stars', 'Centipede'], 'n_legs': [5, 100]}
"""

from .aggregate import (
    Aggregation,
    CountAggregation,
    CountDistinctAggregation,
    FirstAggregation,
    LastAggregation,
    MaxAggregation,
    MeanAggregation,
    MinAggregation,
    RowNumberAggregation,
    SumAggregation,
    group_assign,
    group_by,
    partition,
    unique,
)
from .base import ColumnRef, EvaluationContext, Expression, Literal, Scope, Source, col, lit
from .expressions import (
    DerefColumn,
    FunctionCallExpression,
    NameRef,
    VariableRef,
    deref,
    name,
    var,
)
from .filtering import filter_rows, where
from .join import NoMatch, merge, merge_on, nearest_prior_match
from .reshape import Multiple, dcast, melt, patterns
from .selection import Computed, Exclude, Range, Select, assign, project
from .sorting import order_by, sort

__all__ = (
    "Aggregation",
    "CountAggregation",
    "CountDistinctAggregation",
    "FirstAggregation",
    "LastAggregation",
    "MaxAggregation",
    "MeanAggregation",
    "MinAggregation",
    "RowNumberAggregation",
    "SumAggregation",
    "group_assign",
    "group_by",
    "partition",
    "unique",
    "ColumnRef",
    "EvaluationContext",
    "Expression",
    "Literal",
    "Scope",
    "Source",
    "col",
    "lit",
    "DerefColumn",
    "FunctionCallExpression",
    "NameRef",
    "VariableRef",
    "deref",
    "name",
    "var",
    "filter_rows",
    "where",
    "NoMatch",
    "merge",
    "merge_on",
    "nearest_prior_match",
    "Multiple",
    "dcast",
    "melt",
    "patterns",
    "Computed",
    "Exclude",
    "Range",
    "Select",
    "assign",
    "project",
    "order_by",
    "sort",
)
