"""Exceptions raised by keytable.

All the errors share :class:`TableError` as their base, so callers can
catch every failure of the engine at once, but each of them also
derives from the builtin exception it specializes. That way
code that expects a ``KeyError`` from a failed lookup or a ``TypeError``
from a bad aggregation keeps working unchanged.

Operations validate their inputs before mutating anything, so when one
of these errors is raised the table is left exactly as it was.
"""

__all__ = (
    "TableError",
    "SchemaError",
    "TableKeyError",
    "CartesianError",
    "TableTypeError",
    "UnboundVariableError",
)


class TableError(Exception):
    """Base exception for keytable."""


class SchemaError(TableError, ValueError):
    """Column length mismatch, duplicate names or unknown columns."""


class TableKeyError(TableError, KeyError):
    """Malformed key lookup or a missing key where one is required."""

    def __str__(self) -> str:
        # KeyError repr()s its argument, we want the plain message.
        return str(self.args[0]) if self.args else ""


class CartesianError(TableError, ValueError):
    """A join would multiply rows beyond the allowed threshold."""


class TableTypeError(TableError, TypeError):
    """Incompatible column types for an aggregation, comparison or join."""


class UnboundVariableError(TableError, NameError):
    """An expression referenced a variable missing from its context."""
