import datetime
import math
import warnings

import pyarrow as pa
import pytest

from keytable import Table
from keytable.errors import TableKeyError, TableTypeError
from keytable.index import MatchPolicy, lookup, lookup_rows, set_key, sort_indices, sortable

TEST_DATA = {
    "uid": [3, 1, 2, 1, None, 2],
    "date": [
        datetime.date(2018, 1, 5),
        datetime.date(2018, 2, 1),
        datetime.date(2018, 1, 1),
        datetime.date(2018, 1, 1),
        datetime.date(2018, 3, 1),
        datetime.date(2018, 1, 1),
    ],
    "score": [30, 11, 20, 10, 99, 21],
}


@pytest.fixture
def keyed():
    return Table.from_pydict(TEST_DATA, key=["uid", "date"])


def test_set_key_sorts_rows(keyed):
    assert keyed.key == ("uid", "date")
    assert keyed["uid"].to_pylist() == [1, 1, 2, 2, 3, None]
    assert keyed["score"].to_pylist() == [10, 11, 20, 21, 30, 99]


@pytest.mark.parametrize(
    "columns",
    [["uid"], ["date"], ["score"], ["uid", "date"], ["date", "score"], ["uid", "date", "score"]],
)
def test_set_key_non_decreasing(columns):
    table = Table.from_pydict(TEST_DATA)
    set_key(table, columns)
    rows = list(zip(*(table[name].to_pylist() for name in columns)))
    ordered = [tuple(sortable(v) for v in row) for row in rows]
    assert ordered == sorted(ordered)


def test_set_key_is_stable():
    table = Table.from_pydict({"k": [2, 1, 2, 1], "pos": [0, 1, 2, 3]})
    set_key(table, ["k"])
    assert table["pos"].to_pylist() == [1, 3, 0, 2]


def test_set_key_dictionary_by_value():
    table = Table.from_pydict({"k": pa.array(["b", "a", "c"]).dictionary_encode()})
    table.set_key("k")
    assert table["k"].to_pylist() == ["a", "b", "c"]


def test_set_key_visible_through_alias():
    table = Table.from_pydict(TEST_DATA)
    alias = table.alias()
    set_key(alias, ["score"])
    assert table.key == ("score",)
    assert table["score"].to_pylist() == [10, 11, 20, 21, 30, 99]


@pytest.mark.parametrize("columns", [[], ["uid", "uid"], ["missing"]])
def test_set_key_invalid(columns):
    table = Table.from_pydict(TEST_DATA)
    with pytest.raises(TableKeyError):
        set_key(table, columns)
    assert table.key is None
    assert table["uid"].to_pylist() == TEST_DATA["uid"]


def test_lookup_prefix(keyed):
    assert lookup(keyed, 1) == [0, 1]
    assert lookup(keyed, (2,)) == [2, 3]
    assert lookup(keyed, [2, datetime.date(2018, 1, 1)]) == [2, 3]
    assert lookup(keyed, {"uid": 1, "date": datetime.date(2018, 2, 1)}) == [1]
    assert lookup(keyed, None) == [5]


def test_lookup_skipping_leading_column_fails(keyed):
    with pytest.raises(KeyError):
        lookup(keyed, {"date": datetime.date(2018, 1, 1)})
    with pytest.raises(TableKeyError):
        lookup(keyed, {"score": 10})


def test_lookup_too_many_values(keyed):
    with pytest.raises(TableKeyError):
        lookup(keyed, (1, datetime.date(2018, 1, 1), 10))


def test_lookup_unkeyed():
    with pytest.raises(TableKeyError):
        lookup(Table.from_pydict(TEST_DATA), 1)


def test_lookup_incomparable_value(keyed):
    with pytest.raises(TableTypeError):
        lookup(keyed, "one")


@pytest.mark.parametrize(
    "match, found, missing",
    [
        (MatchPolicy.ALL, [2, 3], []),
        (MatchPolicy.FIRST, [2], []),
        (MatchPolicy.NULL_IF_NONE, [2, 3], [None]),
        (MatchPolicy.ERROR_IF_NONE, [2, 3], TableKeyError),
    ],
)
def test_lookup_match_policy(keyed, match, found, missing):
    assert lookup(keyed, 2, match) == found
    if isinstance(missing, list):
        assert lookup(keyed, 7, match) == missing
    else:
        with pytest.raises(missing):
            lookup(keyed, 7, match)


def test_lookup_rows_null_if_none(keyed):
    result = lookup_rows(keyed, 7, MatchPolicy.NULL_IF_NONE)
    assert result.to_pylist() == [{"uid": None, "date": None, "score": None}]


def test_lookup_after_write_to_key(keyed):
    keyed.set_value(0, "uid", 5)
    assert keyed.key is None
    with pytest.raises(TableKeyError):
        lookup(keyed, 1)


def test_lookup_cache_refreshed_after_rekey(keyed):
    assert lookup(keyed, 1) == [0, 1]
    keyed.set_value(0, "uid", 2)
    keyed.set_key(["uid", "date"])
    assert lookup(keyed, 1) == [0]
    assert lookup(keyed, 2) == [1, 2, 3]


def test_sort_indices_descending_nulls_last():
    data = pa.table({"a": [1, None, 3, 2]})
    assert sort_indices(data, ["a"], [True]).to_pylist() == [2, 3, 0, 1]
    with pytest.raises(ValueError):
        sort_indices(data, ["a"], [True, False])


def test_lookup_float_key_with_nan():
    table = Table.from_pydict({"k": [2.0, math.nan, 1.0, None], "pos": [0, 1, 2, 3]}, key=["k"])
    assert table["pos"].to_pylist() == [2, 0, 1, 3]
    assert lookup(table, 1.0) == [0]
    assert lookup(table, 2.0) == [1]
    assert lookup(table, math.nan) == [2]
    assert lookup(table, None) == [3]
    assert lookup(table, 1.5) == []


def test_sort_indices_emits_no_warnings():
    data = pa.table({"a": [2, None, 1]})
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        assert sort_indices(data, ["a"]).to_pylist() == [2, 0, 1]
