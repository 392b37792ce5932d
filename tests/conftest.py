import sqlite3
import pytest
from dbcopy.db.digest import run_value_digest, run_digest
from dbcopy.db.get import get_model
from dbcopy.db.upsert import (
    insert_model, insert_langs, insert_profiles, insert_run, insert_workset, insert_task,
    update_run_digest, write_param_cells, write_expr_cells, write_acc_cells, write_micro_cells,
)
from dbcopy.meta.model import (
    DIC_CLASSIFICATION, EnumItem, TypeMeta, ParamDim, ParamMeta, TableDim, TableAcc, TableExpr,
    TableMeta, EntityAttr, EntityMeta, ModelDic, ModelMeta,
)
from dbcopy.meta.run import (
    DescrNote, LangNote, RunParam, RunEntity, RunMeta, WorksetParam, WorksetMeta,
    TaskRunItem, TaskRun, TaskMeta, LangMeta, ProfileMeta,
)
from dbcopy.text.cells import CellParam, CellExpr, CellAcc, CellMicro


def make_model() -> ModelMeta:
    """Model M: Age parameter of rank 1 over 2 enum items, one output table, one entity"""
    return ModelMeta(
        model=ModelDic(model_id=1, name="M", digest="a1b2c3d4e5f60718", create_dt="2024-05-01 10:00:00"),
        types=[
            TypeMeta(type_id=0, name="int"),
            TypeMeta(type_id=1, name="double"),
            TypeMeta(type_id=2, name="bool"),
            TypeMeta(type_id=3, name="AGE_GROUP", digest="t3", dic_id=DIC_CLASSIFICATION, total_enum_id=2,
                     enums=[EnumItem(enum_id=0, name="Young"), EnumItem(enum_id=1, name="Old")]),
        ],
        params=[
            ParamMeta(param_id=0, name="Age", type_id=1, digest="p0",
                      dims=[ParamDim(dim_id=0, name="Age_dim0", type_id=3)]),
            ParamMeta(param_id=1, name="StartSeed", type_id=0, digest="p1"),
            ParamMeta(param_id=2, name="UseFast", type_id=2, digest="p2"),
        ],
        tables=[
            TableMeta(
                table_id=0, name="Income", digest="t0", expr_pos=1,
                dims=[TableDim(dim_id=0, name="Group", type_id=3, is_total=True, dim_size=3)],
                accs=[TableAcc(acc_id=0, name="acc0"), TableAcc(acc_id=1, name="acc1")],
                exprs=[TableExpr(expr_id=0, name="expr0", decimals=2), TableExpr(expr_id=1, name="expr1")],
            ),
        ],
        entities=[
            EntityMeta(entity_id=0, name="Person", digest="e0", attrs=[
                EntityAttr(attr_id=0, name="age", type_id=0),
                EntityAttr(attr_id=1, name="group", type_id=3),
                EntityAttr(attr_id=2, name="income", type_id=1),
            ]),
        ],
    )

def make_run(name: str = "Default") -> RunMeta:
    return RunMeta(
        run_id=0,
        name=name,
        create_dt="2024-05-01 10:05:00",
        update_dt="2024-05-01 10:06:00",
        run_stamp="2024_05_01_10_05_00_000",
        txt=[DescrNote(lang_code="EN", descr="Default run", note=None),
             DescrNote(lang_code="FR", descr="", note="")],
        options={"Parameter.StartSeed": "16", "OpenM.SubValues": "1"},
        params=[
            RunParam(name="Age", txt=[LangNote(lang_code="EN", note="Age **values**")]),
            RunParam(name="StartSeed"),
            RunParam(name="UseFast"),
        ],
        tables=["Income"],
        entities=[RunEntity(name="Person", gen_digest="g0", row_count=2)],
    )

def populate(conn) -> ModelMeta:
    """Source database: model M with one run, two worksets named Base, one task"""
    model = insert_model(conn, make_model())
    insert_langs(conn, [
        LangMeta(lang_id=0, code="EN", name="English", words={"all": "All", "min": "Min"}),
        LangMeta(lang_id=1, code="FR", name="Français", words={"all": "Tous"}),
    ])
    insert_profiles(conn, [ProfileMeta(name="M", options={"Parameter.StartSeed": "1"})])

    run = make_run()
    run_id = insert_run(conn, model, run)
    write_param_cells(conn, model.param_by_name("Age"),
                      [CellParam(dim_ids=[0], value=10.5), CellParam(dim_ids=[1], value=20.25)], run_id=run_id)
    write_param_cells(conn, model.param_by_name("StartSeed"), [CellParam(dim_ids=[], value=16)], run_id=run_id)
    write_param_cells(conn, model.param_by_name("UseFast"), [CellParam(dim_ids=[], value=True)], run_id=run_id)
    income = model.table_by_name("Income")
    write_expr_cells(conn, income, run_id, [
        CellExpr(expr_id=0, dim_ids=[0], value=1.5),
        CellExpr(expr_id=0, dim_ids=[2], value=None),
        CellExpr(expr_id=1, dim_ids=[1], value=0.125),
    ])
    write_acc_cells(conn, income, run_id, [
        CellAcc(acc_id=0, sub_id=0, dim_ids=[0], value=3.0),
        CellAcc(acc_id=1, sub_id=0, dim_ids=[0], value=4.0),
        CellAcc(acc_id=0, sub_id=0, dim_ids=[2], value=7.0),
    ])
    write_micro_cells(conn, model.entity_by_name("Person"), run_id, [
        CellMicro(key=1, values=[30, 0, 100.5]),
        CellMicro(key=2, values=[70, 1, None]),
    ])
    value_digest = run_value_digest(conn, model, run, run_id)
    update_run_digest(conn, run_id, run_digest(model, run, value_digest), value_digest)

    for k in range(2):
        ws = WorksetMeta(
            set_id=0, name="Base", is_readonly=True, update_dt="2024-05-02 09:00:00",
            txt=[DescrNote(lang_code="EN", descr=f"Base scenario {k}")],
            params=[WorksetParam(name="Age", txt=[LangNote(lang_code="EN", note=f"workset {k} note")])],
        )
        set_id = insert_workset(conn, model, ws)
        write_param_cells(conn, model.param_by_name("Age"),
                          [CellParam(dim_ids=[0], value=1.0 + k), CellParam(dim_ids=[1], value=2.0 + k)],
                          set_id=set_id)

    insert_task(conn, model, TaskMeta(
        task_id=0, name="Sweep",
        txt=[DescrNote(lang_code="EN", descr="Age sweep")],
        sets=["Base"],
        task_runs=[TaskRun(task_run_id=0, name="Sweep_1", create_dt="2024-05-03 08:00:00",
                           items=[TaskRunItem(run_digest=None, set_name="Base")])],
    ))
    conn.commit()
    return model

def add_run(conn, model: ModelMeta, name: str, ages) -> int:
    """Completed run with parameter values only, ages are Age values of Young and Old"""
    run = make_run(name)
    run_id = insert_run(conn, model, run)
    write_param_cells(conn, model.param_by_name("Age"),
                      [CellParam(dim_ids=[k], value=v) for k, v in enumerate(ages)], run_id=run_id)
    write_param_cells(conn, model.param_by_name("StartSeed"), [CellParam(dim_ids=[], value=8)], run_id=run_id)
    write_param_cells(conn, model.param_by_name("UseFast"), [CellParam(dim_ids=[], value=False)], run_id=run_id)
    value_digest = run_value_digest(conn, model, run, run_id)
    update_run_digest(conn, run_id, run_digest(model, run, value_digest), value_digest)
    conn.commit()
    return run_id


@pytest.fixture
def model() -> ModelMeta:
    return make_model()

@pytest.fixture
def src_conn(tmp_path):
    conn = sqlite3.connect(str(tmp_path / "src.sqlite"))
    populate(conn)
    yield conn
    conn.close()

@pytest.fixture
def dst_conn(tmp_path):
    conn = sqlite3.connect(str(tmp_path / "dst.sqlite"))
    yield conn
    conn.close()

@pytest.fixture
def second_run(src_conn) -> int:
    """Run Second in source database after run Default"""
    return add_run(src_conn, get_model(src_conn, model_name="M"), "Second", [5.0, 6.0])
