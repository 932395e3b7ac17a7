import pytest

from keytable import Table
from keytable.compute import order_by, sort
from keytable.errors import SchemaError


@pytest.mark.parametrize(
    "descending, expected",
    [([False], [1, 2, 3, 4, 5, None]), ([True], [5, 4, 3, 2, 1, None])],
)
def test_order_by_single_column(descending, expected):
    table = Table.from_pydict({"values": [5, 3, None, 1, 4, 2]})
    order_by(table, ["values"], descending)
    assert table["values"].to_pylist() == expected


def test_order_by_multiple_columns():
    table = Table.from_pydict(
        {"group": ["b", "a", "b", "a"], "values": [1, 2, 3, 4]}
    )
    order_by(table, ["group", "values"], [False, True])
    assert table.to_pydict() == {"group": ["a", "a", "b", "b"], "values": [4, 2, 3, 1]}


def test_order_by_visible_through_alias_and_drops_key():
    table = Table.from_pydict({"k": [1, 2, 3], "v": [3, 1, 2]}, key=["k"])
    order_by(table.alias(), ["v"])
    assert table["k"].to_pylist() == [2, 3, 1]
    assert table.key is None


def test_sort_returns_copy():
    table = Table.from_pydict({"values": [2, 1]})
    assert sort(table, ["values"])["values"].to_pylist() == [1, 2]
    assert table["values"].to_pylist() == [2, 1]


def test_order_by_unknown_column():
    table = Table.from_pydict({"values": [2, 1]})
    with pytest.raises(SchemaError):
        order_by(table, ["missing"])
