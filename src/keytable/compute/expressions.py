"""Expressions evaluated by the compute operators.

Filters need a ``predicate``, an expression that returns
``true`` or ``false`` for each row of the table.

Projections and column assignments need an expression that
computes the values of the new column, for example ``A + B``.

Besides the :func:`col` and :func:`lit` basic expressions,
this module provides the expressions that resolve identifiers
through the :class:`keytable.compute.base.EvaluationContext`:

* :class:`NameRef` (``name``) resolves to a column by default
  or to a variable when the context asks so.
* :class:`VariableRef` (``var``) always resolves to a variable.
* :class:`DerefColumn` (``deref``) resolves to the column whose
  name is stored in a variable.

>>> import pyarrow.compute as pc
>>> from keytable import Table
>>> from keytable.compute import EvaluationContext, Scope
>>> data = Table.from_pydict({"age": [30, 50, 70], "limit": [40, 40, 80]})
>>> predicate = FunctionCallExpression(pc.greater, col("age"), name("limit"))
>>> predicate.apply(Scope(data)).to_pylist()
[False, True, False]
>>> ctx = EvaluationContext({"limit": 60}, bypass=True)
>>> predicate.apply(Scope(data, ctx)).to_pylist()
[False, False, True]
"""

from typing import Any, Callable

import pyarrow as pa

from ..errors import SchemaError, TableTypeError
from .base import ColumnRef, Expression, Literal, Scope, Source, col, lit

__all__ = (
    "FunctionCallExpression",
    "NameRef",
    "VariableRef",
    "DerefColumn",
    "apply_expression_if_needed",
    "evaluate",
    "name",
    "var",
    "deref",
    "col",
    "lit",
    "ColumnRef",
    "Literal",
)


def apply_expression_if_needed(scope: Scope, o: Any) -> Any:
    """Invoke apply on expressions when needed.

    If the provided object is an Expression,
    it will be applied to the target scope.

    Otherwise it will treat it as if it's
    already the result of an expression
    or a literal value.
    """
    if isinstance(o, Expression):
        o = o.apply(scope)
    return o


def evaluate(scope: Scope, o: Any) -> pa.Array:
    """Evaluate ``o`` and return a column as long as the table.

    Scalar results are repeated for every row of the table.
    """
    result = apply_expression_if_needed(scope, o)
    if isinstance(result, pa.ChunkedArray):
        result = result.combine_chunks()
    if isinstance(result, pa.Array):
        if len(result) != scope.num_rows:
            raise SchemaError(
                f"Expression {o} produced {len(result)} values for a table of {scope.num_rows} rows"
            )
        return result
    if not isinstance(result, pa.Scalar):
        try:
            result = pa.scalar(result)
        except (pa.ArrowInvalid, pa.ArrowTypeError) as e:
            raise TableTypeError(f"Unsupported expression result {result!r}") from e
    return pa.repeat(result, scope.num_rows)


class FunctionCallExpression(Expression):
    """Call a compute function on its arguments.

    Given a compute function, and a set of arguments
    (other expressions, literals or data), execute
    the function on the provided arguments and return
    the resulting data.

    For example to sum two columns this would be used as::

        FunctionCallExpression(pyarrow.compute.add, col("A"), col("B"))

    Arrow errors caused by incompatible argument types
    are reported as :class:`keytable.errors.TableTypeError`.
    """

    def __init__(self, func: Callable[..., Any], *args: Any) -> None:
        """
        :param func: The function accepting the arguments.
        :param *args: The arguments for the function.
        """
        self.func = func
        self.args = args

    def __str__(self) -> str:
        func_name = getattr(self.func, "__qualname__", None) or type(self.func).__name__
        module = getattr(self.func, "__module__", None)
        if module:
            func_name = f"{module}.{func_name}"
        return f"{func_name}({','.join(map(str, self.args))})"

    def apply(self, scope: Scope) -> pa.Array | pa.Scalar:
        """Invoke the function resolving all arguments within the scope."""
        args = tuple(apply_expression_if_needed(scope, arg) for arg in self.args)
        try:
            return self.func(*args)
        except (pa.ArrowNotImplementedError, pa.ArrowTypeError, pa.ArrowInvalid) as e:
            raise TableTypeError(f"Unable to evaluate {self}: {e}") from e


class NameRef(Expression):
    """An identifier resolved through the evaluation context.

    Resolves to the column named ``identifier``, unless the context
    explicitly redirects the identifier to one of its variables.
    """

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier

    def apply(self, scope: Scope) -> Any:
        if scope.context.source_of(self.identifier) is Source.VARIABLE:
            return scope.context.variable(self.identifier)
        return scope.column(self.identifier)

    def __str__(self) -> str:
        return f"NameRef({self.identifier})"


class VariableRef(Expression):
    """A variable of the evaluation context, never a column."""

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier

    def apply(self, scope: Scope) -> Any:
        return scope.context.variable(self.identifier)

    def __str__(self) -> str:
        return f"VariableRef({self.identifier})"


class DerefColumn(Expression):
    """The column whose name is held by a variable of the context.

    Given ``EvaluationContext({"target": "age"})``,
    ``deref("target")`` evaluates to the ``age`` column.
    """

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier

    def apply(self, scope: Scope) -> pa.Array:
        column_name = scope.context.variable(self.identifier)
        if not isinstance(column_name, str):
            raise TableTypeError(
                f"Variable {self.identifier!r} must hold a column name, got {column_name!r}"
            )
        return scope.column(column_name)

    def __str__(self) -> str:
        return f"DerefColumn({self.identifier})"


name = NameRef
var = VariableRef
deref = DerefColumn