import pyarrow as pa
import pyarrow.compute as pc
import pytest

from keytable import Table
from keytable.compute import (
    Computed,
    EvaluationContext,
    Exclude,
    FunctionCallExpression,
    Range,
    Select,
    assign,
    col,
    project,
    var,
)
from keytable.errors import SchemaError, TableTypeError, UnboundVariableError

TEST_DATA = {
    "uid": [1, 2, 3],
    "a": [1, 2, 3],
    "b": [4, 5, 6],
    "c": [7, 8, 9],
}


@pytest.fixture
def table():
    return Table.from_pydict(TEST_DATA)


@pytest.mark.parametrize(
    "specs, expected",
    [
        ((Select("c", "a"),), ["c", "a"]),
        ((Exclude("a", "b"),), ["uid", "c"]),
        ((Range("a", "c"),), ["a", "b", "c"]),
        ((Select("uid"), Range("b", "c")), ["uid", "b", "c"]),
        ((Range("uid", "b"), Exclude("a")), ["uid", "b"]),
    ],
)
def test_project_column_specs(table, specs, expected):
    assert project(table, *specs).column_names == expected


def test_project_computed(table):
    result = project(
        table,
        Select("uid"),
        Computed({"ab": FunctionCallExpression(pc.add, col("a"), col("b"))}),
    )
    assert result.to_pydict() == {"uid": [1, 2, 3], "ab": [5, 7, 9]}


def test_project_only_computed_keeps_all_columns(table):
    result = project(table, Computed({"one": 1}))
    assert result.column_names == ["uid", "a", "b", "c", "one"]
    assert result["one"].to_pylist() == [1, 1, 1]


def test_project_computed_replaces_selected(table):
    result = project(table, Select("uid", "a"), Computed({"a": 0}))
    assert result.to_pydict() == {"uid": [1, 2, 3], "a": [0, 0, 0]}


def test_project_result_is_fresh_and_unkeyed(table):
    table.set_key("uid")
    result = project(table, Select("uid", "a"))
    assert result.key is None
    result.set_value(0, "a", 100)
    assert table["a"].to_pylist() == [1, 2, 3]


def test_project_columns_from_variable(table):
    ctx = EvaluationContext({"cols": ["b", "uid"]}, bypass=True)
    assert project(table, Select("cols"), context=ctx).column_names == ["b", "uid"]
    assert project(table, Exclude("cols"), context=ctx).column_names == ["a", "c"]


def test_project_variable_must_hold_names(table):
    ctx = EvaluationContext({"cols": [1, 2]}, bypass=True)
    with pytest.raises(TableTypeError):
        project(table, Select("cols"), context=ctx)


@pytest.mark.parametrize(
    "specs",
    [
        (Select("missing"),),
        (Range("c", "a"),),
        (Select("a", "a"),),
        (),
    ],
)
def test_project_invalid(table, specs):
    with pytest.raises(SchemaError):
        project(table, *specs)


def test_assign_is_in_place(table):
    alias = table.alias()
    assign(alias, {"d": FunctionCallExpression(pc.multiply, col("a"), 10)})
    assert table["d"].to_pylist() == [10, 20, 30]


def test_assign_replaces_columns(table):
    assign(table, {"a": FunctionCallExpression(pc.add, col("a"), col("b"))})
    assert table.column_names == ["uid", "a", "b", "c"]
    assert table["a"].to_pylist() == [5, 7, 9]


def test_assign_where(table):
    predicate = FunctionCallExpression(pc.greater, col("a"), 1)
    assign(
        table,
        {"a": FunctionCallExpression(pc.negate, col("a")), "flag": "big"},
        where=predicate,
    )
    assert table["a"].to_pylist() == [1, -2, -3]
    assert table["flag"].to_pylist() == [None, "big", "big"]


def test_assign_with_variables(table):
    ctx = EvaluationContext({"factor": 2})
    assign(
        table,
        {"scaled": FunctionCallExpression(pc.multiply, col("b"), var("factor"))},
        context=ctx,
    )
    assert table["scaled"].to_pylist() == [8, 10, 12]


def test_assign_failure_leaves_table_untouched(table):
    with pytest.raises(UnboundVariableError):
        assign(
            table,
            {
                "ok": FunctionCallExpression(pc.add, col("a"), 1),
                "bad": FunctionCallExpression(pc.add, col("a"), var("missing")),
            },
        )
    assert table.column_names == ["uid", "a", "b", "c"]


def test_assign_length_mismatch(table):
    with pytest.raises(SchemaError):
        assign(table, {"d": pa.array([1, 2])})


def test_assign_to_key_column_drops_key(table):
    table.set_key("a")
    assign(table, {"a": FunctionCallExpression(pc.negate, col("a"))})
    assert table.key is None
    assign(table, {"e": 0})
    assert table.key is None


def test_assign_invalid_name_leaves_table_untouched(table):
    with pytest.raises(SchemaError):
        assign(table, {"ok": 1, "": 2})
    assert table.column_names == ["uid", "a", "b", "c"]
