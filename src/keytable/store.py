"""Columnar storage for tables.

The storage layer is made of two pieces:

* :class:`Column` owns the data of a single column, an Arrow array.
* :class:`ColumnStore` is the ordered set of named columns of a table
  and guarantees that all of them share the same number of rows.

Arrow arrays are immutable, so changing a single value would require
rebuilding the whole column. To keep single cell updates cheap the
column records them as pending patches and only folds them into a new
Arrow array the next time the data is read. Consecutive writes thus
pay the rebuild only once::

    column.set_value(3, 10)   # O(1)
    column.set_value(7, 11)   # O(1)
    column.data               # one rebuild applying both patches

Tables never copy columns implicitly, the same :class:`Column` object
can be shared by multiple stores (see :meth:`ColumnStore.shallow_copy`)
in which case cell updates are visible through all of them.

>>> store = ColumnStore({"a": [1, 2, 3]})
>>> store.get("a").set_value(1, 20)
>>> store.get("a").data.to_pylist()
[1, 20, 3]
"""

import itertools
import logging
from typing import Any, Iterable, Iterator

import pyarrow as pa

from .errors import SchemaError, TableTypeError

__all__ = ("Column", "ColumnStore", "as_array")

logger = logging.getLogger(__name__)

_serials = itertools.count()

ArrayLike = pa.Array | pa.ChunkedArray | Iterable[Any]


def as_array(values: ArrayLike, type: pa.DataType | None = None) -> pa.Array:
    """Convert the provided values to a contiguous :class:`pyarrow.Array`.

    Accepts Arrow arrays, chunked arrays or any Python iterable.
    When ``type`` is provided the values are converted to that type.
    """
    try:
        if isinstance(values, pa.ChunkedArray):
            values = values.combine_chunks()
        if isinstance(values, pa.Array):
            if type is not None and values.type != type:
                values = values.cast(type)
            return values
        if not isinstance(values, (list, tuple)):
            values = list(values)
        return pa.array(values, type=type)
    except (pa.ArrowInvalid, pa.ArrowTypeError, pa.ArrowNotImplementedError) as e:
        raise TableTypeError(f"Unable to build a column of type {type}: {e}") from e


class Column:
    """A single nullable, typed column of data.

    The column wraps a :class:`pyarrow.Array` and adds support
    for cheap in place updates of single values.

    Every write increments :attr:`version`, which allows indexes
    built over the column to detect that they became stale.
    """

    __slots__ = ("_data", "_patches", "version", "serial")

    def __init__(self, data: ArrayLike, type: pa.DataType | None = None) -> None:
        """
        :param data: The values of the column.
        :param type: Optional Arrow type the values should be converted to.
        """
        self._data = as_array(data, type)
        self._patches: dict[int, Any] = {}
        self.version = 0
        self.serial = next(_serials)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"Column(type={self.type}, length={len(self)}, version={self.version})"

    @property
    def type(self) -> pa.DataType:
        return self._data.type

    @property
    def data(self) -> pa.Array:
        """The content of the column as an Arrow array.

        Any pending patch is applied before returning the data.
        """
        if self._patches:
            self._apply_patches()
        return self._data

    def set_value(self, row: int, value: Any) -> None:
        """Replace the value at position ``row``.

        The value is validated against the column type immediately
        but the underlying array is only rebuilt when the data
        is next accessed.
        """
        if not 0 <= row < len(self._data):
            raise IndexError(f"Row {row} out of range for column of length {len(self)}")
        self._patches[row] = self.check_value(value)
        self.version += 1

    def check_value(self, value: Any) -> Any:
        """Verify that ``value`` can be stored in this column.

        Returns the value converted to a Python object of the column type.
        """
        if value is None:
            return None
        value_type = self.type
        if pa.types.is_dictionary(value_type):
            value_type = value_type.value_type
        try:
            return pa.scalar(value, type=value_type).as_py()
        except (pa.ArrowInvalid, pa.ArrowTypeError, pa.ArrowNotImplementedError) as e:
            raise TableTypeError(
                f"Cannot store {value!r} in a column of type {self.type}"
            ) from e

    def copy(self) -> "Column":
        """Return an independent copy of the column."""
        # Arrow buffers are immutable, so sharing the array is safe,
        # only the patches would be shared and they are materialized first.
        return Column(self.data)

    def _apply_patches(self) -> None:
        values = self._data.to_pylist()
        for row, value in self._patches.items():
            values[row] = value
        logger.debug("Folding %d patches into column of %d rows", len(self._patches), len(values))
        self._data = pa.array(values, type=self._data.type)
        self._patches.clear()


class ColumnStore:
    """Ordered set of named columns sharing the same number of rows.

    The store is the actual state of a table, table handles that
    alias each other point to the same store.

    Besides the columns, the store records the key of the table,
    the list of columns the rows are physically sorted by.
    The key is automatically discarded when any of its columns
    is modified after the key was set.
    """

    def __init__(
        self, columns: dict[str, Column | ArrayLike] | None = None
    ) -> None:
        """
        :param columns: The initial columns, in the form ``{name: values}``.
        """
        self._columns: dict[str, Column] = {}
        self._key: tuple[str, ...] | None = None
        self._key_versions: tuple[tuple[int, int], ...] = ()
        self.cache: dict[str, Any] = {}
        for name, values in (columns or {}).items():
            self.add_column(name, values)

    def __repr__(self) -> str:
        return f"ColumnStore(columns={self.column_names}, rows={self.row_count()})"

    def __contains__(self, name: str) -> bool:
        return name in self._columns

    def __iter__(self) -> Iterator[str]:
        return iter(self._columns)

    @property
    def column_names(self) -> list[str]:
        return list(self._columns)

    def row_count(self) -> int:
        """Number of rows shared by all columns."""
        for column in self._columns.values():
            return len(column)
        return 0

    def get(self, name: str) -> Column:
        """Get the column with the given name."""
        try:
            return self._columns[name]
        except KeyError:
            raise SchemaError(
                f"Unknown column {name!r}, available columns: {self.column_names}"
            ) from None

    def items(self) -> Iterator[tuple[str, Column]]:
        return iter(self._columns.items())

    def set(self, name: str, values: Column | ArrayLike) -> None:
        """Bind ``values`` to the column ``name``, replacing it if it exists.

        The values must have the same length of the other columns,
        unless the store contains no other column.
        """
        column = self.check_column(name, values)
        if self._key and name in self._key:
            self.clear_key()
        self._columns[name] = column

    def add_column(self, name: str, values: Column | ArrayLike) -> None:
        """Add a new column, failing if a column with the same name exists."""
        if name in self._columns:
            raise SchemaError(f"Column {name!r} already exists")
        self.set(name, values)

    def drop_column(self, name: str) -> None:
        """Remove a column from the store."""
        self.get(name)
        del self._columns[name]
        if self._key and name in self._key:
            self.clear_key()

    def rename(self, old: str, new: str) -> None:
        """Rename a column preserving its position."""
        self.get(old)
        if new != old and new in self._columns:
            raise SchemaError(f"Column {new!r} already exists")
        self._columns = {
            (new if name == old else name): column
            for name, column in self._columns.items()
        }
        if self._key:
            self._key = tuple(new if k == old else k for k in self._key)

    def reorder(self, indices: pa.Array | list[int]) -> None:
        """Rebind every column to its rows taken at ``indices``.

        New column objects are created, so stores sharing the
        columns with this one are not affected.
        """
        indices = as_array(indices, pa.int64())
        self._columns = {
            name: Column(column.data.take(indices))
            for name, column in self._columns.items()
        }
        self.clear_key()

    def shallow_copy(self) -> "ColumnStore":
        """New store with its own list of columns sharing the column objects."""
        store = ColumnStore()
        store._columns = dict(self._columns)
        store._key = self._key
        store._key_versions = self._key_versions
        return store

    def deep_copy(self) -> "ColumnStore":
        """New store with copies of all the columns."""
        store = ColumnStore()
        store._columns = {name: column.copy() for name, column in self._columns.items()}
        if self.key:
            store.record_key(self._key)
        return store

    @property
    def key(self) -> tuple[str, ...] | None:
        """The columns the rows are currently sorted by, if any."""
        if self._key is not None and self._key_versions != self._versions(self._key):
            logger.debug("Key %s invalidated by a write to its columns", self._key)
            self.clear_key()
        return self._key

    def record_key(self, columns: Iterable[str]) -> None:
        """Mark the store as sorted by ``columns``.

        The caller is in charge of having sorted the rows.
        """
        columns = tuple(columns)
        for name in columns:
            self.get(name)
        self._key = columns
        self._key_versions = self._versions(columns)
        self.cache.clear()

    def clear_key(self) -> None:
        self._key = None
        self._key_versions = ()
        self.cache.clear()

    def key_signature(self) -> tuple[tuple[int, int], ...]:
        """Identity of the data of the key columns.

        Changes whenever a key column is replaced or written to.
        """
        return self._versions(self._key or ())

    def _versions(self, names: Iterable[str]) -> tuple[tuple[int, int], ...]:
        return tuple(
            (self._columns[n].serial, self._columns[n].version)
            if n in self._columns
            else (0, -1)
            for n in names
        )

    def check_column(self, name: str, values: Column | ArrayLike) -> Column:
        """Verify that ``values`` can be bound to ``name`` without binding it.

        Returns the values as a :class:`Column`.
        """
        if not isinstance(name, str) or not name:
            raise SchemaError(f"Invalid column name {name!r}")
        column = values if isinstance(values, Column) else Column(values)
        others = [n for n in self._columns if n != name]
        if others and len(column) != self.row_count():
            raise SchemaError(
                f"Column {name!r} has {len(column)} rows, expected {self.row_count()}"
            )
        return column
