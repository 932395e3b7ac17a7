import pyarrow as pa
import pyarrow.compute as pc
import pytest

from keytable import Table
from keytable.compute import (
    EvaluationContext,
    FunctionCallExpression,
    Scope,
    Source,
    col,
    deref,
    lit,
    name,
    var,
)
from keytable.compute.expressions import evaluate
from keytable.errors import SchemaError, TableTypeError, UnboundVariableError


@pytest.fixture
def sample_table():
    return Table.from_pydict(
        {"numbers": [1, 2, 3, 4, 5], "letters": ["a", "b", "c", "d", "e"]}
    )


def test_function_call_expression_init():
    expr = FunctionCallExpression(pc.add, col("numbers"), 1)
    assert expr.func == pc.add
    assert len(expr.args) == 2
    assert expr.args[1] == 1


def test_function_call_expression_str():
    expr = FunctionCallExpression(pc.add, col("numbers"), lit(1))
    assert str(expr) == "pyarrow.compute.add(ColumnRef(numbers),Literal(1))"


def test_function_call_expression_apply_nested(sample_table):
    inner_expr = FunctionCallExpression(pc.multiply, col("numbers"), 2)
    outer_expr = FunctionCallExpression(pc.add, inner_expr, 1)
    result = outer_expr.apply(Scope(sample_table))
    assert result.to_pylist() == [3, 5, 7, 9, 11]


def test_function_call_expression_apply_string_ops(sample_table):
    expr = FunctionCallExpression(pc.utf8_upper, col("letters"))
    assert expr.apply(Scope(sample_table)).to_pylist() == ["A", "B", "C", "D", "E"]


def test_function_call_expression_type_error(sample_table):
    expr = FunctionCallExpression(pc.add, col("numbers"), col("letters"))
    with pytest.raises(TableTypeError):
        expr.apply(Scope(sample_table))


def test_column_ref_unknown_column(sample_table):
    with pytest.raises(SchemaError):
        col("missing").apply(Scope(sample_table))


def test_name_resolves_to_column_by_default(sample_table):
    ctx = EvaluationContext({"numbers": 10})
    assert name("numbers").apply(Scope(sample_table, ctx)).to_pylist() == [1, 2, 3, 4, 5]


@pytest.mark.parametrize(
    "ctx",
    [
        EvaluationContext({"numbers": 10}, sources={"numbers": Source.VARIABLE}),
        EvaluationContext({"numbers": 10}, bypass=True),
    ],
)
def test_name_resolves_to_variable_when_requested(sample_table, ctx):
    expr = FunctionCallExpression(pc.add, col("numbers"), name("numbers"))
    assert expr.apply(Scope(sample_table, ctx)).to_pylist() == [11, 12, 13, 14, 15]


def test_bypass_only_affects_bound_variables(sample_table):
    ctx = EvaluationContext({"threshold": 3}, bypass=True)
    assert name("numbers").apply(Scope(sample_table, ctx)).to_pylist() == [1, 2, 3, 4, 5]


def test_var_is_always_a_variable(sample_table):
    ctx = EvaluationContext({"numbers": 2})
    assert var("numbers").apply(Scope(sample_table, ctx)) == 2
    with pytest.raises(UnboundVariableError):
        var("missing").apply(Scope(sample_table, ctx))
    with pytest.raises(NameError):
        var("missing").apply(Scope(sample_table))


def test_unbound_variable_requested_as_source(sample_table):
    ctx = EvaluationContext(sources={"numbers": Source.VARIABLE})
    with pytest.raises(UnboundVariableError):
        name("numbers").apply(Scope(sample_table, ctx))


def test_deref(sample_table):
    ctx = EvaluationContext({"target": "letters", "bad": 3})
    assert deref("target").apply(Scope(sample_table, ctx)).to_pylist() == [
        "a",
        "b",
        "c",
        "d",
        "e",
    ]
    with pytest.raises(TableTypeError):
        deref("bad").apply(Scope(sample_table, ctx))


def test_evaluate_broadcasts_scalars(sample_table):
    scope = Scope(sample_table)
    assert evaluate(scope, lit(0)).to_pylist() == [0, 0, 0, 0, 0]
    assert evaluate(scope, "x").to_pylist() == ["x"] * 5
    assert evaluate(scope, pa.array([5, 4, 3, 2, 1])).to_pylist() == [5, 4, 3, 2, 1]


def test_evaluate_length_mismatch(sample_table):
    with pytest.raises(SchemaError):
        evaluate(Scope(sample_table), pa.array([1, 2]))


def test_evaluate_unsupported_result(sample_table):
    with pytest.raises(TableTypeError):
        evaluate(Scope(sample_table), object())
