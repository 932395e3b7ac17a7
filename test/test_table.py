import pyarrow as pa
import pytest

from keytable import Table, bind_rows
from keytable.errors import SchemaError, TableTypeError

TEST_DATA = {
    "uid": [2, 1, 3],
    "severity": [5, 3, 4],
    "site": ["b", "a", "c"],
}


@pytest.fixture
def table():
    return Table.from_pydict(TEST_DATA)


def modify(table):
    """Mutate a table received as an argument."""
    table.set_value(0, "severity", 10)
    table["flag"] = [True, False, True]


def test_from_pydict_types():
    table = Table.from_pydict({"a": [1, 2]}, types={"a": pa.int8()})
    assert table.schema == pa.schema([("a", pa.int8())])
    with pytest.raises(SchemaError):
        Table.from_pydict({"a": [1, 2]}, types={"b": pa.int8()})
    with pytest.raises(SchemaError):
        Table.from_pydict({"a": [1, 2], "b": [1]})


def test_from_pydict_with_key():
    table = Table.from_pydict(TEST_DATA, key=["uid"])
    assert table.key == ("uid",)
    assert table["uid"].to_pylist() == [1, 2, 3]


def test_from_records_union_of_columns():
    table = Table.from_records([{"a": 1}, {"b": "x", "a": 2}])
    assert table.to_pydict() == {"a": [1, 2], "b": [None, "x"]}


def test_from_arrow():
    data = pa.table({"a": [1, 2], "b": ["x", "y"]})
    table = Table.from_arrow(data)
    assert table.to_arrow().equals(data)
    batch = pa.record_batch({"a": [1]})
    assert Table.from_arrow(batch).to_pylist() == [{"a": 1}]
    with pytest.raises(TypeError):
        Table.from_arrow({"a": [1]})


def test_mutations_visible_to_caller(table):
    modify(table)
    assert table["severity"].to_pylist() == [10, 3, 4]
    assert table.column_names == ["uid", "severity", "site", "flag"]


def test_alias_shares_everything(table):
    alias = table.alias()
    assert alias.shares_store_with(table)
    alias.set_key("uid")
    del alias["site"]
    assert table.key == ("uid",)
    assert table.column_names == ["uid", "severity"]


def test_deep_copy_is_independent(table):
    copied = table.deep_copy()
    assert not copied.shares_store_with(table)
    modify(copied)
    copied.set_key("uid")
    copied.rename({"site": "location"})
    copied.delete_rows([0])
    assert table.to_pydict() == TEST_DATA
    assert table.key is None


def test_shallow_copy_names_are_independent(table):
    copied = table.shallow_copy()
    copied["flag"] = [True, False, True]
    copied.rename({"site": "location"})
    copied.drop("severity")
    assert table.column_names == ["uid", "severity", "site"]
    assert copied.column_names == ["uid", "location", "flag"]


def test_shallow_copy_shares_values_until_rebound(table):
    copied = table.shallow_copy()
    copied.set_value(1, "severity", 7)
    assert table["severity"].to_pylist() == [5, 7, 4]

    # Reordering rebinds the columns of the copy, they are no longer shared.
    copied.set_key("uid")
    copied.set_value(0, "severity", 1)
    assert table["severity"].to_pylist() == [5, 7, 4]
    assert copied["severity"].to_pylist() == [1, 5, 4]


def test_take(table):
    assert table.take([2, None]).to_pydict() == {
        "uid": [3, None],
        "severity": [4, None],
        "site": ["c", None],
    }
    with pytest.raises(IndexError):
        table.take([3])
    assert table.head(2).num_rows == 2
    assert table.head(10).num_rows == 3


def test_set_value(table):
    table.set_value(2, "site", None)
    assert table["site"].to_pylist() == ["b", "a", None]
    with pytest.raises(IndexError):
        table.set_value(3, "site", "d")
    with pytest.raises(SchemaError):
        table.set_value(0, "missing", "d")
    with pytest.raises(TableTypeError):
        table.set_value(0, "severity", "high")


def test_delete_rows_keeps_key(table):
    table.set_key("uid")
    table.delete_rows([1])
    assert table.key == ("uid",)
    assert table["uid"].to_pylist() == [1, 3]
    assert table.lookup(3)["severity"].to_pylist() == [4]
    with pytest.raises(IndexError):
        table.delete_rows([5])


def test_drop(table):
    table.drop(["severity", "site"])
    assert table.column_names == ["uid"]
    with pytest.raises(SchemaError):
        table.drop("missing")


def test_rename_swap(table):
    table.rename({"uid": "site", "site": "uid"})
    assert table.column_names == ["site", "severity", "uid"]
    assert table["uid"].to_pylist() == ["b", "a", "c"]
    with pytest.raises(SchemaError):
        table.rename({"uid": "severity"})


def test_add_prefix(table):
    table.set_key("uid")
    table.add_prefix("inc_", exclude=["uid"])
    assert table.column_names == ["uid", "inc_severity", "inc_site"]
    assert table.key == ("uid",)


def test_equals(table):
    assert table.equals(table.deep_copy())
    other = table.deep_copy()
    other.set_value(0, "uid", 9)
    assert not table.equals(other)


def test_repr(table):
    assert repr(table) == "Table(columns=['uid', 'severity', 'site'], rows=3, key=None)"


def test_bind_rows_fill():
    first = Table.from_pydict({"a": [1, 2], "b": ["x", "y"]})
    second = pa.table({"a": [3], "c": [1.5]})
    result = bind_rows([first, second, [{"c": 2.5}]])
    assert result.to_pydict() == {
        "a": [1, 2, 3, None],
        "b": ["x", "y", None, None],
        "c": [None, None, 1.5, 2.5],
    }


def test_bind_rows_no_fill():
    first = Table.from_pydict({"a": [1]})
    second = Table.from_pydict({"b": [2]})
    with pytest.raises(SchemaError):
        bind_rows([first, second], fill=False)
    assert bind_rows([first, first], fill=False).to_pydict() == {"a": [1, 1]}


def test_bind_rows_incompatible_types():
    with pytest.raises(TableTypeError):
        bind_rows([[{"a": 1}], [{"a": "x"}]])


def test_bind_rows_empty():
    assert bind_rows([]).num_rows == 0
