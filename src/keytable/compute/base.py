"""Base classes for expressions and their evaluation.

Expressions are evaluated against a table within a :class:`Scope`,
which couples the table providing the column data with an
:class:`EvaluationContext` providing values that don't come
from the table (variables of the calling code).

Name resolution
===============

When an expression refers to an identifier through :func:`name`
the identifier is looked up, **by default, as a column** of the table.
This means that given a table with a ``threshold`` column::

    name("threshold")

refers to the column even if the caller has a ``threshold`` variable
in the context. To refer to the variable instead, the resolution
must be requested explicitly, either for the single identifier::

    EvaluationContext({"threshold": 5}, sources={"threshold": Source.VARIABLE})

or for all identifiers that are available as variables::

    EvaluationContext({"threshold": 5}, bypass=True)

Scope walking never happens, only the provided variables are visible.
"""

import abc
import enum
from typing import TYPE_CHECKING, Any, Mapping

import pyarrow as pa

from ..errors import UnboundVariableError

if TYPE_CHECKING:
    from ..table import Table

__all__ = (
    "Expression",
    "ColumnRef",
    "Literal",
    "col",
    "lit",
    "Source",
    "EvaluationContext",
    "Scope",
)


class Source(enum.Enum):
    """Where an identifier should be resolved from."""

    COLUMN = "column"
    VARIABLE = "variable"


class EvaluationContext:
    """Values and resolution rules available to expressions.

    >>> ctx = EvaluationContext({"limit": 5}, bypass=True)
    >>> ctx.source_of("limit"), ctx.source_of("age")
    (<Source.VARIABLE: 'variable'>, <Source.COLUMN: 'column'>)
    """

    def __init__(
        self,
        variables: Mapping[str, Any] | None = None,
        sources: Mapping[str, Source] | None = None,
        bypass: bool = False,
    ) -> None:
        """
        :param variables: Values of the caller that expressions can refer to.
        :param sources: Explicit resolution for some identifiers.
        :param bypass: Resolve every identifier bound in ``variables``
                       to the variable instead of the column.
        """
        self.variables = dict(variables or {})
        self.sources = dict(sources or {})
        self.bypass = bypass

    def __repr__(self) -> str:
        sources = {k: v.value for k, v in self.sources.items()}
        return (
            f"EvaluationContext(variables={sorted(self.variables)}, "
            f"sources={sources}, bypass={self.bypass})"
        )

    def source_of(self, identifier: str) -> Source:
        """How ``identifier`` should be resolved."""
        if identifier in self.sources:
            return self.sources[identifier]
        if self.bypass and identifier in self.variables:
            return Source.VARIABLE
        return Source.COLUMN

    def variable(self, identifier: str) -> Any:
        """The value of the variable ``identifier``."""
        try:
            return self.variables[identifier]
        except KeyError:
            raise UnboundVariableError(
                f"Variable {identifier!r} is not bound in the evaluation context"
            ) from None


class Scope:
    """A table and the context expressions are evaluated in."""

    def __init__(self, table: "Table", context: EvaluationContext | None = None) -> None:
        self.table = table
        self.context = context or EvaluationContext()

    @property
    def num_rows(self) -> int:
        return self.table.num_rows

    def column(self, name: str) -> pa.Array:
        """The data of the column ``name``."""
        return self.table[name]


class Expression(abc.ABC):
    """Expression to evaluate against a table.

    Typical example of expressions are: ``A + B``
    which is expected to sum column A of the table
    to column B of the table and return the result.

    As our engine is Column Major, applying an expression
    results in a new column, thus in a :class:`pyarrow.Array`,
    or in a :class:`pyarrow.Scalar` for expressions that
    produce a single value, like literals.
    """

    @abc.abstractmethod
    def apply(self, scope: Scope) -> pa.Array | pa.Scalar:
        """Evaluate the expression within ``scope``."""
        ...

    @abc.abstractmethod
    def __str__(self) -> str:
        """Human readable representation of the expression."""
        ...

    def __repr__(self) -> str:
        return str(self)


class ColumnRef(Expression):
    """References a column of the table.

    Unlike :func:`keytable.compute.name` this always
    refers to a column, whatever the context says.
    """

    def __init__(self, name: str) -> None:
        """
        :param name: The name of the column being referenced.
        """
        self.name = name

    def apply(self, scope: Scope) -> pa.Array:
        """Get the data for the column."""
        return scope.column(self.name)

    def __str__(self) -> str:
        return f"ColumnRef({self.name})"


class Literal(Expression):
    """A constant value."""

    def __init__(self, value: Any, type: pa.DataType | None = None) -> None:
        """
        :param value: The Python value of the literal.
        :param type: Optional Arrow type of the value.
        """
        self.value = pa.scalar(value, type=type)

    def apply(self, scope: Scope) -> pa.Scalar:
        return self.value

    def __str__(self) -> str:
        return f"Literal({self.value.as_py()!r})"


col = ColumnRef
lit = Literal
