import json
import logging
import unittest
import pytest
import pandas as pd
from dbcopy.copy.orchestrator import (
    TO_TEXT, TO_DB, TO_CSV, DB_TO_DB, DELETE, CopyState, CopyScope, CopyOptions, CopyOrchestrator,
)
from dbcopy.db.get import (
    get_model, get_run_list, get_workset_list, get_task_list, get_langs,
    read_param_cells, read_expr_cells, read_acc_cells, read_micro_cells,
)
from dbcopy.db.upsert import insert_task
from dbcopy.db.utils import execute_query
from dbcopy.errors import EntityNotFoundError, MissingValuesError, ValidationError
from dbcopy.meta.run import TaskMeta, TaskRun, TaskRunItem
from dbcopy.text.names import IdNamePolicy


def _export(conn, out_dir, **kwargs) -> dict:
    scope = CopyScope.from_selectors(model_name="M", **kwargs.pop("selectors", {}))
    options = CopyOptions(output_dir=str(out_dir), **kwargs)
    return CopyOrchestrator(TO_TEXT, scope, options, conn).run()

def _import(conn, in_dir, **kwargs) -> dict:
    scope = CopyScope.from_selectors(model_name="M", **kwargs.pop("selectors", {}))
    options = CopyOptions(input_dir=str(in_dir), output_dir=str(in_dir), **kwargs)
    return CopyOrchestrator(TO_DB, scope, options, conn).run()

def _count(conn, tbl_name: str) -> int:
    return execute_query(f'SELECT COUNT(*) FROM "{tbl_name}"', conn)[0][0]


def test_export_layout(src_conn, tmp_path):
    out = tmp_path / "out"
    result = _export(src_conn, out)
    assert result["status"] == "success"
    assert result["runs"] == 1 and result["worksets"] == 2 and result["tasks"] == 1

    m_dir = out / "M"
    assert (m_dir / "M.model.json").is_file()
    assert (m_dir / "M.lang.json").is_file()
    assert (m_dir / "M.run.Default.json").is_file()
    # two worksets named Base get ids, the single run does not
    assert (m_dir / "M.set.1.Base.json").is_file()
    assert (m_dir / "M.set.2.Base.json").is_file()
    assert (m_dir / "set.1.Base" / "Age.csv").is_file()
    assert (m_dir / "M.task.Sweep.json").is_file()

    run_dir = m_dir / "run.Default"
    df = pd.read_csv(run_dir / "parameters" / "Age.csv", dtype=str, keep_default_na=False)
    assert list(df.columns) == ["Age_dim0", "param_value"]
    assert df.values.tolist() == [["Young", "10.5"], ["Old", "20.25"]]
    assert (run_dir / "parameters" / "Age.EN.md").read_text(encoding="utf-8") == "Age **values**"
    assert (run_dir / "output-tables" / "Income.csv").is_file()
    assert (run_dir / "output-tables" / "Income.acc.csv").is_file()
    assert (run_dir / "microdata" / "Person.csv").is_file()

    with open(m_dir / "M.run.Default.json", encoding="utf-8") as f:
        run_json = json.load(f)
    assert run_json["txt"][0]["note"] is None
    assert run_json["txt"][1]["note"] == ""

def test_export_id_csv_no_acc_no_microdata(src_conn, tmp_path):
    out = tmp_path / "out"
    _export(src_conn, out, id_csv=True, double_format="%.2f", no_acc=True, no_microdata=True,
            id_names=IdNamePolicy.ALWAYS)
    run_dir = out / "M" / "run.1.Default"
    df = pd.read_csv(run_dir / "parameters" / "Age.id.csv", dtype=str, keep_default_na=False)
    assert df.values.tolist() == [["0", "10.50"], ["1", "20.25"]]
    assert not (run_dir / "output-tables" / "Income.id.acc.csv").exists()
    assert not (run_dir / "microdata").exists()

def test_roundtrip(src_conn, dst_conn, tmp_path):
    out = tmp_path / "out"
    _export(src_conn, out)
    result = _import(dst_conn, out)
    assert result["runs"] == 1 and result["worksets"] == 2 and result["tasks"] == 1

    src = get_model(src_conn, model_name="M")
    dst = get_model(dst_conn, model_name="M")
    assert dst.model.digest == src.model.digest
    assert [p.name for p in dst.params] == [p.name for p in src.params]
    assert dst.types == src.types
    assert dst.tables == src.tables

    src_run = get_run_list(src_conn, src)[0]
    dst_run = get_run_list(dst_conn, dst)[0]
    assert dst_run.name == src_run.name
    assert dst_run.run_digest == src_run.run_digest
    assert dst_run.value_digest == src_run.value_digest
    assert dst_run.txt == src_run.txt
    assert dst_run.options == src_run.options
    assert dst_run.params == src_run.params
    assert dst_run.entities == src_run.entities

    for param in src.params:
        assert list(read_param_cells(dst_conn, dst.param_by_name(param.name), run_id=dst_run.run_id)) == \
            list(read_param_cells(src_conn, param, run_id=src_run.run_id))
    income_src, income_dst = src.table_by_name("Income"), dst.table_by_name("Income")
    assert list(read_expr_cells(dst_conn, income_dst, dst_run.run_id)) == \
        list(read_expr_cells(src_conn, income_src, src_run.run_id))
    assert list(read_acc_cells(dst_conn, income_dst, dst_run.run_id)) == \
        list(read_acc_cells(src_conn, income_src, src_run.run_id))
    assert list(read_micro_cells(dst_conn, dst.entity_by_name("Person"), dst_run.run_id)) == \
        list(read_micro_cells(src_conn, src.entity_by_name("Person"), src_run.run_id))

    src_sets = get_workset_list(src_conn, src)
    dst_sets = get_workset_list(dst_conn, dst)
    assert [(s.name, s.txt, s.params) for s in dst_sets] == [(s.name, s.txt, s.params) for s in src_sets]
    assert dst_sets[1].params[0].txt[0].note == "workset 1 note"

    dst_task = get_task_list(dst_conn, dst)[0]
    assert dst_task.name == "Sweep"
    assert dst_task.sets == ["Base"]
    assert [lang.code for lang in get_langs(dst_conn)] == ["EN", "FR"]

def test_import_existing_run_skipped(src_conn, dst_conn, tmp_path, caplog):
    out = tmp_path / "out"
    _export(src_conn, out, selectors={"run_name": "Default"})
    _import(dst_conn, out, selectors={"run_name": "Default"})
    with caplog.at_level(logging.WARNING):
        result = _import(dst_conn, out, selectors={"run_name": "Default"})
    assert result["runs_skipped"] == 1
    assert "already exists" in caplog.text
    assert _count(dst_conn, "run_lst") == 1

def test_import_missing_parameter_values(src_conn, dst_conn, tmp_path):
    out = tmp_path / "out"
    _export(src_conn, out)
    (out / "M" / "run.Default" / "parameters" / "StartSeed.csv").unlink()

    scope = CopyScope.from_selectors(model_name="M")
    copy = CopyOrchestrator(TO_DB, scope, CopyOptions(input_dir=str(out)), dst_conn)
    with pytest.raises(MissingValuesError) as e:
        copy.run()
    assert "missing run parameter values" in str(e.value)
    assert copy.state is CopyState.FAILED
    assert copy.error is e.value
    # nothing is kept in destination
    assert _count(dst_conn, "run_lst") == 0
    assert _count(dst_conn, "model_dic") == 0

def test_import_empty_parameter_csv(src_conn, dst_conn, tmp_path):
    out = tmp_path / "out"
    _export(src_conn, out)
    (out / "M" / "run.Default" / "parameters" / "UseFast.csv").write_text("param_value\n", encoding="utf-8")
    with pytest.raises(MissingValuesError):
        _import(dst_conn, out)

def test_zip_roundtrip(src_conn, dst_conn, tmp_path):
    out = tmp_path / "out"
    result = _export(src_conn, out, zip=True)
    assert result["output_path"].endswith("M.zip")

    unpack = tmp_path / "unpack"
    scope = CopyScope.from_selectors(model_name="M")
    options = CopyOptions(input_dir=str(out), output_dir=str(unpack), zip=True)
    CopyOrchestrator(TO_DB, scope, options, dst_conn).run()
    assert (unpack / "M" / "M.model.json").is_file()
    assert _count(dst_conn, "run_lst") == 1

def test_import_workset_by_name_from_directory(src_conn, dst_conn, tmp_path):
    out = tmp_path / "out"
    _export(src_conn, out)
    result = _import(dst_conn, out, selectors={"set_name": "Base"})
    assert result["worksets"] == 1
    dst = get_model(dst_conn, model_name="M")
    ws = get_workset_list(dst_conn, dst)
    assert [s.name for s in ws] == ["Base"]
    # first of set.1.Base and set.2.Base
    cells = list(read_param_cells(dst_conn, dst.param_by_name("Age"), set_id=ws[0].set_id))
    assert [c.value for c in cells] == [1.0, 2.0]


def test_task_roundtrip_with_worksets_and_runs(src_conn, dst_conn, tmp_path):
    src = get_model(src_conn, model_name="M")
    src_run = get_run_list(src_conn, src)[0]
    insert_task(src_conn, src, TaskMeta(
        task_id=0, name="Rerun", sets=["Base"],
        task_runs=[TaskRun(task_run_id=0, name="Rerun_1",
                           items=[TaskRunItem(run_digest=src_run.run_digest, set_name="Base")])],
    ))
    src_conn.commit()

    out = tmp_path / "out"
    result = _export(src_conn, out, selectors={"task_name": "Rerun"})
    assert result["tasks"] == 1 and result["worksets"] == 1 and result["runs"] == 1
    m_dir = out / "M"
    assert (m_dir / "M.task.Rerun.json").is_file()
    assert (m_dir / "M.set.Base.json").is_file()
    assert (m_dir / "set.Base" / "Age.csv").is_file()
    assert (m_dir / "run.Default" / "parameters" / "Age.csv").is_file()
    assert not (m_dir / "M.task.Sweep.json").exists()

    result = _import(dst_conn, out, selectors={"task_name": "Rerun"})
    assert result["tasks"] == 1 and result["worksets"] == 1 and result["runs"] == 1
    dst = get_model(dst_conn, model_name="M")
    assert [r.run_digest for r in get_run_list(dst_conn, dst)] == [src_run.run_digest]
    ws = get_workset_list(dst_conn, dst)
    assert [s.name for s in ws] == ["Base"]
    cells = list(read_param_cells(dst_conn, dst.param_by_name("Age"), set_id=ws[0].set_id))
    assert [c.value for c in cells] == [1.0, 2.0]

    task = get_task_list(dst_conn, dst)[0]
    assert task.name == "Rerun"
    assert task.sets == ["Base"]
    assert task.task_runs[0].items == [TaskRunItem(run_digest=src_run.run_digest, set_name="Base")]


def _csv_export(conn, out_dir, **kwargs) -> dict:
    scope = CopyScope.from_selectors(model_name="M")
    return CopyOrchestrator(TO_CSV, scope, CopyOptions(output_dir=str(out_dir), **kwargs), conn).run()

def test_csv_all_runs_two_runs(src_conn, second_run, tmp_path):
    result = _csv_export(src_conn, tmp_path / "csv")
    assert result["runs"] == 2
    lines = (tmp_path / "csv" / "M" / "all_model_runs" / "Age.csv").read_text(encoding="utf-8").splitlines()
    assert lines == [
        "run_name,Age_dim0,param_value",
        "Default,Young,10.5",
        "Default,Old,20.25",
        "Second,Young,5",
        "Second,Old,6",
    ]

    seed = pd.read_csv(tmp_path / "csv" / "M" / "all_model_runs" / "StartSeed.csv", dtype=str, keep_default_na=False)
    assert seed.values.tolist() == [["Default", "16"], ["Second", "8"]]

def test_csv_all_runs_two_runs_id_csv(src_conn, second_run, tmp_path):
    _csv_export(src_conn, tmp_path / "csv", id_csv=True)
    lines = (tmp_path / "csv" / "M" / "all_model_runs" / "Age.id.csv").read_text(encoding="utf-8").splitlines()
    assert lines[0] == "run_id,Age_dim0,param_value"
    assert lines.count(lines[0]) == 1
    assert [x.split(",")[0] for x in lines[1:]] == ["1", "1", str(second_run), str(second_run)]
    assert second_run != 1


def _db2db(src_conn, dst_conn, **kwargs) -> dict:
    scope = CopyScope.from_selectors(model_name="M", **kwargs.pop("selectors", {}))
    return CopyOrchestrator(DB_TO_DB, scope, CopyOptions(**kwargs), src_conn, dst_conn=dst_conn).run()

def test_db2db_copy(src_conn, dst_conn, second_run):
    result = _db2db(src_conn, dst_conn)
    assert result["direction"] == DB_TO_DB
    assert result["runs"] == 2 and result["worksets"] == 2 and result["tasks"] == 1

    src = get_model(src_conn, model_name="M")
    dst = get_model(dst_conn, model_name="M")
    assert dst.model.digest == src.model.digest
    assert dst.types == src.types

    src_runs = get_run_list(src_conn, src)
    dst_runs = get_run_list(dst_conn, dst)
    assert [(r.name, r.run_digest, r.value_digest, r.txt, r.params) for r in dst_runs] == \
        [(r.name, r.run_digest, r.value_digest, r.txt, r.params) for r in src_runs]
    for src_run, dst_run in zip(src_runs, dst_runs):
        for param in src.params:
            assert list(read_param_cells(dst_conn, dst.param_by_name(param.name), run_id=dst_run.run_id)) == \
                list(read_param_cells(src_conn, param, run_id=src_run.run_id))
    income_src, income_dst = src.table_by_name("Income"), dst.table_by_name("Income")
    assert list(read_acc_cells(dst_conn, income_dst, dst_runs[0].run_id)) == \
        list(read_acc_cells(src_conn, income_src, src_runs[0].run_id))
    assert list(read_micro_cells(dst_conn, dst.entity_by_name("Person"), dst_runs[0].run_id)) == \
        list(read_micro_cells(src_conn, src.entity_by_name("Person"), src_runs[0].run_id))

    dst_sets = get_workset_list(dst_conn, dst)
    assert [(s.name, s.txt, s.params) for s in dst_sets] == \
        [(s.name, s.txt, s.params) for s in get_workset_list(src_conn, src)]
    cells = list(read_param_cells(dst_conn, dst.param_by_name("Age"), set_id=dst_sets[1].set_id))
    assert [c.value for c in cells] == [2.0, 3.0]
    assert get_task_list(dst_conn, dst)[0].sets == ["Base"]
    assert [lang.code for lang in get_langs(dst_conn)] == ["EN", "FR"]

    # runs are found by digest on the second copy
    result = _db2db(src_conn, dst_conn, selectors={"run_name": "Second"})
    assert result["runs_skipped"] == 1
    assert _count(dst_conn, "run_lst") == 2

def test_db2db_task(src_conn, dst_conn):
    result = _db2db(src_conn, dst_conn, selectors={"task_name": "Sweep"})
    assert result["tasks"] == 1 and result["worksets"] == 1
    assert "runs" not in result
    dst = get_model(dst_conn, model_name="M")
    assert [s.name for s in get_workset_list(dst_conn, dst)] == ["Base"]
    assert get_task_list(dst_conn, dst)[0].sets == ["Base"]

def test_db2db_rollback(src_conn, dst_conn):
    execute_query(f'DELETE FROM "{get_model(src_conn, model_name="M").param_by_name("UseFast").db_run_table}"',
                  src_conn)
    scope = CopyScope.from_selectors(model_name="M")
    copy = CopyOrchestrator(DB_TO_DB, scope, CopyOptions(), src_conn, dst_conn=dst_conn)
    with pytest.raises(MissingValuesError):
        copy.run()
    assert copy.state is CopyState.FAILED
    assert _count(dst_conn, "run_lst") == 0

def test_db2db_requires_destination(src_conn):
    with pytest.raises(ValidationError):
        CopyOrchestrator(DB_TO_DB, CopyScope.from_selectors(model_name="M"), CopyOptions(), src_conn)


class TestCsvAndDelete(unittest.TestCase):

    @pytest.fixture(autouse=True)
    def _setup(self, src_conn, tmp_path):
        self.conn = src_conn
        self.out = tmp_path / "csv"

    def test_csv_metadata_tables(self):
        scope = CopyScope.from_selectors(model_name="M")
        result = CopyOrchestrator(TO_CSV, scope, CopyOptions(output_dir=str(self.out)), self.conn).run()
        self.assertEqual(result["status"], "success")
        m_dir = self.out / "M"
        for name in ("model_dic", "type_enum_lst", "parameter_dims", "table_acc", "lang_word",
                     "run_txt", "run_parameter_txt", "workset_parameter_txt", "task_run_set"):
            self.assertTrue((m_dir / f"{name}.csv").is_file(), name)

        run_txt = pd.read_csv(m_dir / "run_txt.csv", dtype=str, keep_default_na=False)
        self.assertEqual(run_txt["note"].tolist(), ["NULL", ""])
        words = pd.read_csv(m_dir / "lang_word.csv", dtype=str, keep_default_na=False)
        self.assertEqual(words["word_code"].tolist(), ["all", "min", "all"])
        enums = pd.read_csv(m_dir / "type_enum_lst.csv", dtype=str, keep_default_na=False)
        self.assertEqual(enums["enum_name"].tolist(), ["Young", "Old"])

        age = pd.read_csv(m_dir / "all_model_runs" / "Age.csv", dtype=str, keep_default_na=False)
        self.assertEqual(list(age.columns), ["run_name", "Age_dim0", "param_value"])
        self.assertEqual(age["run_name"].tolist(), ["Default", "Default"])
        self.assertTrue((m_dir / "all_model_runs" / "Income.acc-all.csv").is_file())

        # worksets with the same name get ids in directory names
        ws_age = pd.read_csv(m_dir / "set.2.Base" / "Age.csv", dtype=str, keep_default_na=False)
        self.assertEqual(ws_age.values.tolist(), [["Young", "2"], ["Old", "3"]])
        self.assertTrue((m_dir / "set.1.Base" / "Age.EN.md").is_file())
        self.assertEqual(result["worksets"], 2)

    def test_csv_rejects_workset_scope(self):
        scope = CopyScope.from_selectors(model_name="M", set_name="Base")
        with self.assertRaises(ValidationError):
            CopyOrchestrator(TO_CSV, scope, CopyOptions(output_dir=str(self.out)), self.conn).run()

    def test_delete_workset(self):
        scope = CopyScope.from_selectors(model_name="M", set_id=2)
        result = CopyOrchestrator(DELETE, scope, CopyOptions(), self.conn).run()
        self.assertEqual(result["id"], 2)
        model = get_model(self.conn, model_name="M")
        self.assertEqual([s.set_id for s in get_workset_list(self.conn, model)], [1])

    def test_delete_run_not_found(self):
        scope = CopyScope.from_selectors(model_name="M", run_name="NoSuchRun")
        copy = CopyOrchestrator(DELETE, scope, CopyOptions(), self.conn)
        with self.assertRaises(EntityNotFoundError):
            copy.run()
        self.assertIs(copy.state, CopyState.FAILED)
