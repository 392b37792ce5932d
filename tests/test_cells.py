import pytest
from dbcopy.errors import CellValueError, ValidationError
from dbcopy.meta.model import ParamMeta, TypeMeta
from dbcopy.text.cells import (
    CellParam, CellExpr, CellAcc, CellAllAcc, CellMicro,
    ParamCellConverter, ExprCellConverter, AccCellConverter, AllAccCellConverter, MicroCellConverter,
)

AGE_CELLS = [CellParam(dim_ids=[0], value=10.5), CellParam(dim_ids=[1], value=20.25)]


def test_age_numeric_mode(model):
    cvt = ParamCellConverter(model, "Age", id_csv=True, double_fmt="%.2f")
    assert cvt.header() == ["Age_dim0", "param_value"]
    assert [cvt.to_row(c) for c in AGE_CELLS] == [["0", "10.50"], ["1", "20.25"]]
    assert cvt.file_name() == "Age.id.csv"

def test_age_symbolic_mode(model):
    cvt = ParamCellConverter(model, "Age", id_csv=False, double_fmt="%.2f")
    assert cvt.header() == ["Age_dim0", "param_value"]
    assert [cvt.to_row(c) for c in AGE_CELLS] == [["Young", "10.50"], ["Old", "20.25"]]
    assert cvt.file_name() == "Age.csv"

def test_age_parse_back(model):
    cvt = ParamCellConverter(model, "Age")
    assert cvt.to_cell(["Old", "20.25"]) == CellParam(dim_ids=[1], value=20.25)
    assert cvt.to_cell(["Young", "NULL"]) == CellParam(dim_ids=[0], value=None)

def test_unknown_code(model):
    cvt = ParamCellConverter(model, "Age")
    with pytest.raises(CellValueError) as e:
        cvt.to_cell(["Middle", "1"])
    assert isinstance(e.value, ValidationError)

def test_param_sub_id_column(model):
    cvt = ParamCellConverter(model, "Age", sub_count=4)
    assert cvt.header() == ["sub_id", "Age_dim0", "param_value"]
    assert cvt.to_row(CellParam(dim_ids=[1], value=2.0, sub_id=3)) == ["3", "Old", "2"]
    assert cvt.to_cell(["3", "Old", "2"]).sub_id == 3

def test_param_scalar_and_bool(model):
    seed = ParamCellConverter(model, "StartSeed")
    assert seed.header() == ["param_value"]
    assert seed.to_row(CellParam(dim_ids=[], value=16)) == ["16"]
    fast = ParamCellConverter(model, "UseFast")
    assert fast.to_row(CellParam(dim_ids=[], value=1)) == ["true"]
    assert fast.to_cell(["false"]).value is False
    with pytest.raises(CellValueError):
        fast.to_cell(["maybe"])

def test_string_value_null_spelling(model):
    m = model.model_copy(deep=True)
    m.types.append(TypeMeta(type_id=9, name="file"))
    m.params.append(ParamMeta(param_id=9, name="Label", type_id=9, digest="p9"))
    cvt = ParamCellConverter(m, "Label")
    assert cvt.to_cell(["null"]).value == "null"
    assert cvt.to_cell(["Null"]).value == "Null"
    assert cvt.to_cell(["NULL"]).value is None
    assert cvt.to_row(CellParam(dim_ids=[], value="null")) == ["null"]
    assert cvt.to_row(CellParam(dim_ids=[], value=None)) == ["NULL"]

def test_param_arity(model):
    cvt = ParamCellConverter(model, "Age")
    with pytest.raises(CellValueError):
        cvt.to_cell(["Young"])
    with pytest.raises(CellValueError):
        cvt.to_row(CellParam(dim_ids=[0, 1], value=1.0))

def test_expr_total_item(model):
    cvt = ExprCellConverter(model, "Income")
    assert cvt.header() == ["expr_name", "Group", "expr_value"]
    assert cvt.to_row(CellExpr(expr_id=0, dim_ids=[2], value=None)) == ["expr0", "all", "NULL"]
    assert cvt.to_cell(["expr1", "all", "0.5"]) == CellExpr(expr_id=1, dim_ids=[2], value=0.5)

    num = ExprCellConverter(model, "Income", id_csv=True)
    assert num.header() == ["expr_id", "Group", "expr_value"]
    assert num.to_row(CellExpr(expr_id=1, dim_ids=[2], value=0.125)) == ["1", "2", "0.125"]

def test_acc_and_all_acc(model):
    acc = AccCellConverter(model, "Income")
    assert acc.file_name() == "Income.acc.csv"
    assert acc.header() == ["acc_name", "sub_id", "Group", "acc_value"]
    assert acc.to_row(CellAcc(acc_id=1, sub_id=0, dim_ids=[0], value=4.0)) == ["acc1", "0", "Young", "4"]

    all_acc = AllAccCellConverter(model, "Income", id_csv=True)
    assert all_acc.file_name() == "Income.id.acc-all.csv"
    assert all_acc.header() == ["sub_id", "Group", "acc0", "acc1"]
    assert all_acc.to_row(CellAllAcc(sub_id=0, dim_ids=[0], values=[3.0, None])) == ["0", "0", "3", "NULL"]

def test_micro(model):
    cvt = MicroCellConverter(model, "Person")
    assert cvt.header() == ["key", "age", "group", "income"]
    assert cvt.to_row(CellMicro(key=2, values=[70, 1, None])) == ["2", "70", "Old", "NULL"]
    assert cvt.to_cell(["1", "30", "Young", "100.5"]) == CellMicro(key=1, values=[30, 0, 100.5])

def test_leading_column(model):
    base = ParamCellConverter(model, "Age", double_fmt="%.2f")
    cvt = base.with_leading("run_name", "Default")
    assert cvt.header() == ["run_name", "Age_dim0", "param_value"]
    assert cvt.to_row(AGE_CELLS[0]) == ["Default", "Young", "10.50"]
    assert cvt.to_cell(["Default", "Old", "20.25"]) == CellParam(dim_ids=[1], value=20.25)
    # original converter is unchanged
    assert base.header() == ["Age_dim0", "param_value"]
