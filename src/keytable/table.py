"""The Table handle.

A :class:`Table` is a handle to a :class:`keytable.store.ColumnStore`.
The engine uses reference semantics: passing a table around never
copies its data, and any in-place operation (column assignment,
setting a key, deleting rows, ...) performed through one handle
is visible through every other handle of the same table.

There are three ways to get a second handle to some data, depending
on how independent it should be from the original:

* :meth:`Table.alias` returns a new handle to the **same** store.
  Everything done through the alias happens to the original too.
* :meth:`Table.shallow_copy` returns a handle to a new store that shares
  the columns with the original. Adding, removing, renaming columns
  or reordering rows on the copy does not affect the original, but
  updating values in place (:meth:`Table.set_value`) does, as the column
  data is shared.
* :meth:`Table.deep_copy` returns a fully independent table.

>>> incident = Table.from_pydict({"uid": [1, 2], "severity": [3, 5]})
>>> same = incident.alias()
>>> same.set_value(0, "severity", 4)
>>> incident["severity"].to_pylist()
[4, 5]
>>> independent = incident.deep_copy()
>>> independent.set_value(0, "severity", 1)
>>> incident["severity"].to_pylist()
[4, 5]

Tables are not thread safe. The engine performs no locking, mutating
a table (or any of its aliases) from multiple threads at the same time
is undefined behaviour and must be synchronized by the caller.
"""

import logging
from typing import Any, Iterable, Iterator, Mapping, Self, Sequence

import pyarrow as pa
import pyarrow.compute as pc

from . import index
from .errors import SchemaError, TableTypeError
from .store import ArrayLike, Column, ColumnStore, as_array

__all__ = ("Table", "bind_rows")

logger = logging.getLogger(__name__)


class Table:
    """Named, typed columns sharing the same number of rows.

    Tables are usually created through one of the constructors
    (:meth:`from_pydict`, :meth:`from_records`, :meth:`from_arrow`)
    or as the result of the compute operators.
    """

    def __init__(self, store: ColumnStore | None = None) -> None:
        """
        :param store: The column store the handle points to,
                      a new empty store if omitted.
        """
        self._store = store if store is not None else ColumnStore()

    @classmethod
    def from_pydict(
        cls,
        mapping: Mapping[str, ArrayLike],
        types: Mapping[str, pa.DataType] | None = None,
        key: Sequence[str] | None = None,
    ) -> Self:
        """Create a table from a ``{column_name: values}`` mapping.

        :param mapping: Values for each column, Python sequences or Arrow arrays.
        :param types: Optional Arrow types for some of the columns.
        :param key: Optional columns to key the table by.
        """
        types = types or {}
        unknown = set(types) - set(mapping)
        if unknown:
            raise SchemaError(f"Types provided for unknown columns {sorted(unknown)}")
        store = ColumnStore(
            {name: Column(values, types.get(name)) for name, values in mapping.items()}
        )
        table = cls(store)
        if key:
            table.set_key(key)
        return table

    @classmethod
    def from_records(
        cls,
        records: Iterable[Mapping[str, Any]],
        types: Mapping[str, pa.DataType] | None = None,
    ) -> Self:
        """Create a table from a list of rows in the form ``{column: value}``.

        Records can provide different columns, the table will have
        all the columns in order of first appearance and missing values
        will be null.
        """
        records = list(records)
        names: dict[str, None] = {}
        for record in records:
            names.update(dict.fromkeys(record))
        return cls.from_pydict(
            {name: [record.get(name) for record in records] for name in names},
            types=types,
        )

    @classmethod
    def from_arrow(cls, data: pa.Table | pa.RecordBatch) -> Self:
        """Create a table from a :class:`pyarrow.Table` or :class:`pyarrow.RecordBatch`.

        The Arrow buffers are shared, not copied.
        """
        if not isinstance(data, (pa.Table, pa.RecordBatch)):
            raise TypeError(f"Expected a pyarrow Table or RecordBatch, got {type(data)}")
        if len(set(data.column_names)) != len(data.column_names):
            raise SchemaError(f"Duplicate column names in {data.column_names}")
        return cls(
            ColumnStore(
                {
                    name: Column(data.column(idx))
                    for idx, name in enumerate(data.column_names)
                }
            )
        )

    def to_arrow(self) -> pa.Table:
        """The content of the table as a :class:`pyarrow.Table`."""
        if not self.column_names:
            return pa.table({})
        return pa.table({name: column.data for name, column in self._store.items()})

    def to_pydict(self) -> dict[str, list[Any]]:
        """The content of the table as ``{column_name: [values]}``."""
        return {name: column.data.to_pylist() for name, column in self._store.items()}

    def to_pylist(self) -> list[dict[str, Any]]:
        """The content of the table as a list of ``{column_name: value}`` rows."""
        return self.to_arrow().to_pylist()

    @property
    def store(self) -> ColumnStore:
        """The column store this handle points to."""
        return self._store

    @property
    def column_names(self) -> list[str]:
        return self._store.column_names

    @property
    def num_rows(self) -> int:
        return self._store.row_count()

    @property
    def schema(self) -> pa.Schema:
        return pa.schema([(name, column.type) for name, column in self._store.items()])

    @property
    def key(self) -> tuple[str, ...] | None:
        """The columns the table is keyed by, ``None`` if it's not keyed."""
        return self._store.key

    def __len__(self) -> int:
        return self._store.row_count()

    def __contains__(self, name: str) -> bool:
        return name in self._store

    def __iter__(self) -> Iterator[str]:
        return iter(self._store)

    def __getitem__(self, name: str) -> pa.Array:
        return self._store.get(name).data

    def __setitem__(self, name: str, values: ArrayLike) -> None:
        self._store.set(name, values)

    def __delitem__(self, name: str) -> None:
        self._store.drop_column(name)

    def __repr__(self) -> str:
        return f"Table(columns={self.column_names}, rows={self.num_rows}, key={self.key})"

    def column(self, name: str) -> Column:
        """The :class:`keytable.store.Column` object holding the data of ``name``."""
        return self._store.get(name)

    def equals(self, other: "Table") -> bool:
        """Whether the two tables have the same columns and values."""
        return self.to_arrow().equals(other.to_arrow())

    def alias(self) -> Self:
        """A new handle to the very same table."""
        return self.__class__(self._store)

    def shallow_copy(self) -> Self:
        """A new table with its own list of columns sharing the column data."""
        return self.__class__(self._store.shallow_copy())

    def deep_copy(self) -> Self:
        """A new, fully independent, copy of the table."""
        return self.__class__(self._store.deep_copy())

    def shares_store_with(self, other: "Table") -> bool:
        """Whether ``other`` is an alias of this table."""
        return self._store is other._store

    def take(self, rows: Sequence[int | None] | pa.Array) -> Self:
        """A new table made of the rows at the given positions.

        ``None`` positions produce a row where all values are missing.
        """
        rows = as_array(rows, pa.int64())
        if len(rows) and not self.column_names:
            raise SchemaError("Cannot take rows from a table without columns")
        valid = pc.drop_null(rows)
        if len(valid) and (
            pc.min(valid).as_py() < 0 or pc.max(valid).as_py() >= self.num_rows
        ):
            raise IndexError(f"Row positions out of range for table of {self.num_rows} rows")
        return self.__class__(
            ColumnStore(
                {name: Column(column.data.take(rows)) for name, column in self._store.items()}
            )
        )

    def head(self, count: int = 5) -> Self:
        """A new table with the first ``count`` rows."""
        return self.take(range(min(count, self.num_rows)))

    def set_key(self, columns: str | Sequence[str]) -> Self:
        """Key the table by ``columns``, see :func:`keytable.index.set_key`."""
        if isinstance(columns, str):
            columns = [columns]
        return index.set_key(self, columns)

    def lookup(
        self, values: Any, match: index.MatchPolicy = index.MatchPolicy.ALL
    ) -> Self:
        """Rows whose key starts with ``values``, see :func:`keytable.index.lookup_rows`."""
        return index.lookup_rows(self, values, match)

    def set_value(self, row: int, column: str, value: Any) -> None:
        """Update a single value in place.

        This does not rebuild the column, so it's cheap to
        invoke it multiple times in a row.
        """
        target = self._store.get(column)
        if not 0 <= row < self.num_rows:
            raise IndexError(f"Row {row} out of range for table of {self.num_rows} rows")
        target.set_value(row, value)

    def delete_rows(self, rows: Iterable[int]) -> None:
        """Remove the rows at the given positions in place.

        The key of the table, if any, is preserved as the remaining
        rows are still sorted.
        """
        drop = set(rows)
        invalid = [r for r in drop if not 0 <= r < self.num_rows]
        if invalid:
            raise IndexError(f"Rows {sorted(invalid)} out of range for table of {self.num_rows} rows")
        key = self.key
        self._store.reorder([r for r in range(self.num_rows) if r not in drop])
        if key:
            self._store.record_key(key)
        logger.debug("Deleted %d rows, %d left", len(drop), self.num_rows)

    def drop(self, columns: str | Iterable[str]) -> None:
        """Remove one or more columns in place."""
        if isinstance(columns, str):
            columns = [columns]
        columns = list(columns)
        for name in columns:
            self._store.get(name)
        for name in columns:
            self._store.drop_column(name)

    def rename(self, mapping: Mapping[str, str]) -> None:
        """Rename columns in place given a ``{old_name: new_name}`` mapping."""
        names = self.column_names
        for old in mapping:
            self._store.get(old)
        renamed = [mapping.get(name, name) for name in names]
        if len(set(renamed)) != len(renamed):
            raise SchemaError(f"Renaming would lead to duplicate columns {renamed}")
        # Rename through temporary names so that swaps like {"a": "b", "b": "a"} work.
        for old in mapping:
            self._store.rename(old, f"\0{old}")
        for old, new in mapping.items():
            self._store.rename(f"\0{old}", new)

    def add_prefix(self, prefix: str, exclude: Iterable[str] = ()) -> None:
        """Prefix the names of all columns, but those in ``exclude``, in place."""
        exclude = set(exclude)
        self.rename(
            {name: prefix + name for name in self.column_names if name not in exclude}
        )


def bind_rows(
    items: Iterable["Table | pa.Table | Sequence[Mapping[str, Any]]"],
    fill: bool = True,
) -> Table:
    """Stack tables, or lists of records, on top of each other.

    Columns are matched by name and appear in order of first appearance.

    :param items: Tables, Arrow tables or lists of ``{column: value}`` records.
    :param fill: Fill columns missing from some of the inputs with nulls,
                 when ``False`` all inputs must have the same columns.

    >>> merged = bind_rows([[{"a": 1, "b": "x"}], [{"a": 2}]])
    >>> merged.to_pydict()
    {'a': [1, 2], 'b': ['x', None]}
    """
    tables = []
    for item in items:
        if isinstance(item, Table):
            item = item.to_arrow()
        elif not isinstance(item, pa.Table):
            item = Table.from_records(item).to_arrow()
        tables.append(item)

    names: dict[str, pa.DataType] = {}
    for data in tables:
        for field in data.schema:
            if field.name not in names or pa.types.is_null(names[field.name]):
                names[field.name] = field.type

    aligned = []
    for data in tables:
        missing = [name for name in names if name not in data.column_names]
        if missing and not fill:
            raise SchemaError(
                f"Columns {missing} missing from one of the inputs, use fill=True to fill them"
            )
        columns = {
            name: (
                data.column(name)
                if name in data.column_names
                else pa.nulls(data.num_rows, type=names[name])
            )
            for name in names
        }
        aligned.append(pa.table(columns))

    if not aligned:
        return Table()
    try:
        result = pa.concat_tables(aligned, promote_options="default")
    except (pa.ArrowInvalid, pa.ArrowTypeError) as e:
        raise TableTypeError(f"Incompatible column types while binding rows: {e}") from e
    return Table.from_arrow(result)
