# import
## batteries
import logging
from typing import Dict, Iterable, List, Optional
## 3rd party
from pypika import Query, Table
## package
from dbcopy.db.create import create_schema, create_value_tables, drop_value_tables
from dbcopy.db.get import get_model
from dbcopy.db.utils import execute_query, insert_rows, next_id, read_records, sql_name
from dbcopy.errors import EntityNotFoundError, MissingValuesError
from dbcopy.meta.model import ModelMeta, ParamMeta, TableMeta, EntityMeta
from dbcopy.meta.run import LangMeta, ProfileMeta, RunMeta, WorksetMeta, TaskMeta
from dbcopy.text.cells import CellParam, CellExpr, CellAcc, CellMicro

logger = logging.getLogger(__name__)

# helpers
def _flag(v: bool) -> int:
    return 1 if v else 0

def _db_value(v):
    # booleans are stored as integers
    if isinstance(v, bool):
        return int(v)
    return v

def _find_id(conn, tbl_name: str, id_col: str, where: Dict[str, object]) -> Optional[int]:
    tbl = Table(tbl_name)
    stmt = Query.from_(tbl).select(tbl.field(id_col)).orderby(tbl.field(id_col))
    for col, val in where.items():
        stmt = stmt.where(tbl.field(col) == val)
    rows = execute_query(stmt, conn)
    return int(rows[0][0]) if rows else None

# model
def assign_db_names(model: ModelMeta) -> ModelMeta:
    """
    Assign value table names where empty, names are unique by model digest
    """
    digest = model.model.digest
    for p in model.params:
        p.db_run_table = p.db_run_table or sql_name(p.name, digest, "p")
        p.db_set_table = p.db_set_table or sql_name(p.name, digest, "w")
    for t in model.tables:
        t.db_expr_table = t.db_expr_table or sql_name(t.name, digest, "v")
        t.db_acc_table = t.db_acc_table or sql_name(t.name, digest, "a")
    for e in model.entities:
        e.db_entity_table = e.db_entity_table or sql_name(e.name, digest, "e")
    return model

def insert_model(conn, model: ModelMeta) -> ModelMeta:
    """
    Insert model definition and create its value tables.
    If model with the same digest already exists then it is returned as is.

    Args:
        conn: Database connection
        model: Model definition, model id is ignored
    Returns:
        Model definition with destination model id
    """
    create_schema(conn)
    try:
        existing = get_model(conn, model_digest=model.model.digest)
        logger.info(f"Model {existing.name} {existing.model.digest} already exists, id: {existing.model.model_id}")
        return existing
    except EntityNotFoundError:
        pass

    model = assign_db_names(model.model_copy(deep=True))
    model_id = next_id(conn, "model_dic", "model_id")
    model.model.model_id = model_id
    m = model.model
    logger.info(f"Insert model {m.name} {m.digest}, id: {model_id}")

    insert_rows(conn, "model_dic",
                ["model_id", "model_name", "model_digest", "model_type", "model_ver", "create_dt", "default_lang_code"],
                [(model_id, m.name, m.digest, m.model_type, m.version, m.create_dt, m.default_lang_code)])
    insert_rows(conn, "type_dic",
                ["model_id", "model_type_id", "type_name", "type_digest", "dic_id", "total_enum_id"],
                [(model_id, t.type_id, t.name, t.digest, t.dic_id, t.total_enum_id) for t in model.types])
    insert_rows(conn, "type_enum_lst",
                ["model_id", "model_type_id", "enum_id", "enum_name"],
                [(model_id, t.type_id, e.enum_id, e.name) for t in model.types for e in t.enums])
    insert_rows(conn, "parameter_dic",
                ["model_id", "model_parameter_id", "parameter_name", "parameter_digest", "db_run_table",
                 "db_set_table", "parameter_rank", "model_type_id", "is_hidden", "num_cumulated"],
                [(model_id, p.param_id, p.name, p.digest, p.db_run_table, p.db_set_table, p.rank,
                  p.type_id, _flag(p.is_hidden), p.num_cumulated) for p in model.params])
    insert_rows(conn, "parameter_dims",
                ["model_id", "model_parameter_id", "dim_id", "dim_name", "model_type_id"],
                [(model_id, p.param_id, d.dim_id, d.name, d.type_id) for p in model.params for d in p.dims])
    insert_rows(conn, "table_dic",
                ["model_id", "model_table_id", "table_name", "table_digest", "is_user", "table_rank",
                 "is_sparse", "db_expr_table", "db_acc_table", "expr_dim_pos"],
                [(model_id, t.table_id, t.name, t.digest, _flag(t.is_user), t.rank, _flag(t.is_sparse),
                  t.db_expr_table, t.db_acc_table, t.expr_pos) for t in model.tables])
    insert_rows(conn, "table_dims",
                ["model_id", "model_table_id", "dim_id", "dim_name", "model_type_id", "is_total", "dim_size"],
                [(model_id, t.table_id, d.dim_id, d.name, d.type_id, _flag(d.is_total), d.dim_size)
                 for t in model.tables for d in t.dims])
    insert_rows(conn, "table_acc",
                ["model_id", "model_table_id", "acc_id", "acc_name", "is_derived", "acc_src"],
                [(model_id, t.table_id, a.acc_id, a.name, _flag(a.is_derived), a.acc_src)
                 for t in model.tables for a in t.accs])
    insert_rows(conn, "table_expr",
                ["model_id", "model_table_id", "expr_id", "expr_name", "expr_decimals", "expr_src"],
                [(model_id, t.table_id, e.expr_id, e.name, e.decimals, e.expr_src)
                 for t in model.tables for e in t.exprs])
    insert_rows(conn, "entity_dic",
                ["model_id", "model_entity_id", "entity_name", "entity_digest", "db_entity_table"],
                [(model_id, e.entity_id, e.name, e.digest, e.db_entity_table) for e in model.entities])
    insert_rows(conn, "entity_attr",
                ["model_id", "model_entity_id", "attr_id", "attr_name", "model_type_id", "is_internal"],
                [(model_id, e.entity_id, a.attr_id, a.name, a.type_id, _flag(a.is_internal))
                 for e in model.entities for a in e.attrs])

    create_value_tables(conn, model)
    return model

# languages and profiles
def insert_langs(conn, langs: List[LangMeta]) -> Dict[str, int]:
    """
    Insert languages and words which are not in database yet.
    Returns language code to destination lang_id map.
    """
    create_schema(conn)
    lang_ids = {}
    for lang in langs:
        lang_id = _find_id(conn, "lang_lst", "lang_id", {"lang_code": lang.code})
        if lang_id is None:
            lang_id = next_id(conn, "lang_lst", "lang_id")
            insert_rows(conn, "lang_lst", ["lang_id", "lang_code", "lang_name"], [(lang_id, lang.code, lang.name)])
            logger.info(f"Insert language {lang.code}, id: {lang_id}")
        lang_ids[lang.code] = lang_id

        lang_word = Table("lang_word")
        existing = {
            r["word_code"] for r in read_records(
                Query.from_(lang_word).select(lang_word.word_code).where(lang_word.lang_id == lang_id), conn)
        }
        insert_rows(conn, "lang_word", ["lang_id", "word_code", "word_value"],
                    [(lang_id, k, v) for k, v in lang.words.items() if k not in existing])
    return lang_ids

def insert_profiles(conn, profiles: List[ProfileMeta]) -> None:
    """Insert or replace profile options"""
    create_schema(conn)
    profile_lst = Table("profile_lst")
    profile_option = Table("profile_option")
    for p in profiles:
        execute_query(Query.from_(profile_option).delete().where(profile_option.profile_name == p.name), conn)
        execute_query(Query.from_(profile_lst).delete().where(profile_lst.profile_name == p.name), conn)
        insert_rows(conn, "profile_lst", ["profile_name"], [(p.name,)])
        insert_rows(conn, "profile_option", ["profile_name", "option_key", "option_value"],
                    [(p.name, k, v) for k, v in p.options.items()])

# runs
def find_run_by_digest(conn, model: ModelMeta, run_digest: str) -> Optional[int]:
    if not run_digest:
        return None
    return _find_id(conn, "run_lst", "run_id", {"model_id": model.model.model_id, "run_digest": run_digest})

def insert_run(conn, model: ModelMeta, run: RunMeta) -> int:
    """
    Insert run metadata rows with new run id, values are written separately.

    Returns:
        Destination run id
    """
    run_id = next_id(conn, "run_lst", "run_id")
    insert_rows(conn, "run_lst",
                ["run_id", "model_id", "run_name", "sub_count", "sub_started", "sub_completed", "create_dt",
                 "status", "update_dt", "run_digest", "value_digest", "run_stamp"],
                [(run_id, model.model.model_id, run.name, run.sub_count, run.sub_started, run.sub_completed,
                  run.create_dt, run.status, run.update_dt, run.run_digest or None, run.value_digest or None,
                  run.run_stamp)])
    insert_rows(conn, "run_txt", ["run_id", "lang_code", "descr", "note"],
                [(run_id, t.lang_code, t.descr, t.note) for t in run.txt])
    insert_rows(conn, "run_option", ["run_id", "option_key", "option_value"],
                [(run_id, k, v) for k, v in run.options.items()])
    insert_rows(conn, "run_parameter", ["run_id", "model_parameter_id", "sub_count"],
                [(run_id, model.param_by_name(p.name).param_id, p.sub_count) for p in run.params])
    insert_rows(conn, "run_parameter_txt", ["run_id", "model_parameter_id", "lang_code", "note"],
                [(run_id, model.param_by_name(p.name).param_id, t.lang_code, t.note)
                 for p in run.params for t in p.txt])
    insert_rows(conn, "run_table", ["run_id", "model_table_id"],
                [(run_id, model.table_by_name(t).table_id) for t in run.tables])
    insert_rows(conn, "run_entity", ["run_id", "model_entity_id", "gen_digest", "row_count"],
                [(run_id, model.entity_by_name(e.name).entity_id, e.gen_digest, e.row_count) for e in run.entities])
    logger.info(f"Insert run {run.name}, id: {run_id}")
    return run_id

def update_run_digest(conn, run_id: int, run_digest: str, value_digest: str) -> None:
    run_lst = Table("run_lst")
    stmt = Query.update(run_lst) \
        .set(run_lst.run_digest, run_digest) \
        .set(run_lst.value_digest, value_digest) \
        .where(run_lst.run_id == run_id)
    execute_query(stmt, conn)

def write_param_cells(conn, param: ParamMeta, cells: Iterable[CellParam],
                      run_id: Optional[int] = None, set_id: Optional[int] = None) -> int:
    """
    Insert parameter values of run or workset.
    Returns number of values, zero values is a validation error.
    """
    if run_id is not None:
        tbl_name, id_col, key = param.db_run_table, "run_id", run_id
    else:
        tbl_name, id_col, key = param.db_set_table, "set_id", set_id
    columns = [id_col, "sub_id"] + [f"dim{k}" for k in range(param.rank)] + ["param_value"]
    n = insert_rows(conn, tbl_name, columns,
                    ((key, c.sub_id, *c.dim_ids, _db_value(c.value)) for c in cells))
    if n <= 0:
        raise MissingValuesError(f"missing values of parameter {param.name}")
    return n

def write_expr_cells(conn, table: TableMeta, run_id: int, cells: Iterable[CellExpr]) -> int:
    columns = ["run_id", "expr_id"] + [f"dim{k}" for k in range(table.rank)] + ["expr_value"]
    return insert_rows(conn, table.db_expr_table, columns,
                       ((run_id, c.expr_id, *c.dim_ids, c.value) for c in cells))

def write_acc_cells(conn, table: TableMeta, run_id: int, cells: Iterable[CellAcc]) -> int:
    columns = ["run_id", "acc_id", "sub_id"] + [f"dim{k}" for k in range(table.rank)] + ["acc_value"]
    return insert_rows(conn, table.db_acc_table, columns,
                       ((run_id, c.acc_id, c.sub_id, *c.dim_ids, c.value) for c in cells))

def write_micro_cells(conn, entity: EntityMeta, run_id: int, cells: Iterable[CellMicro]) -> int:
    columns = ["run_id", "entity_key"] + [f"attr{k}" for k in range(len(entity.attrs))]
    return insert_rows(conn, entity.db_entity_table, columns,
                       ((run_id, c.key, *[_db_value(v) for v in c.values]) for c in cells))

# worksets
def insert_workset(conn, model: ModelMeta, ws: WorksetMeta) -> int:
    """
    Insert workset metadata rows with new set id.
    Base run is found by digest, if it is not in database then base run is NULL.
    """
    base_run_id = find_run_by_digest(conn, model, ws.base_run_digest) if ws.base_run_digest else None
    if ws.base_run_digest and base_run_id is None:
        logger.warning(f"Workset {ws.name}: base run not found by digest {ws.base_run_digest}")

    set_id = next_id(conn, "workset_lst", "set_id")
    insert_rows(conn, "workset_lst",
                ["set_id", "model_id", "set_name", "base_run_id", "is_readonly", "update_dt"],
                [(set_id, model.model.model_id, ws.name, base_run_id, _flag(ws.is_readonly), ws.update_dt)])
    insert_rows(conn, "workset_txt", ["set_id", "lang_code", "descr", "note"],
                [(set_id, t.lang_code, t.descr, t.note) for t in ws.txt])
    insert_rows(conn, "workset_parameter", ["set_id", "model_parameter_id", "sub_count", "default_sub_id"],
                [(set_id, model.param_by_name(p.name).param_id, p.sub_count, p.default_sub_id) for p in ws.params])
    insert_rows(conn, "workset_parameter_txt", ["set_id", "model_parameter_id", "lang_code", "note"],
                [(set_id, model.param_by_name(p.name).param_id, t.lang_code, t.note)
                 for p in ws.params for t in p.txt])
    logger.info(f"Insert workset {ws.name}, id: {set_id}")
    return set_id

# tasks
def insert_task(conn, model: ModelMeta, task: TaskMeta, set_ids: Optional[Dict[str, int]] = None) -> int:
    """
    Insert modeling task, its worksets and run history with new ids.

    Args:
        conn: Database connection
        model: Destination model
        task: Task metadata
        set_ids: Workset name to destination id, worksets not in the map are found by name
    """
    set_ids = dict(set_ids or {})

    def _set_id(name: Optional[str]) -> Optional[int]:
        if not name:
            return None
        if name not in set_ids:
            set_ids[name] = _find_id(conn, "workset_lst", "set_id",
                                     {"model_id": model.model.model_id, "set_name": name})
        return set_ids[name]

    task_id = next_id(conn, "task_lst", "task_id")
    insert_rows(conn, "task_lst", ["task_id", "model_id", "task_name"], [(task_id, model.model.model_id, task.name)])
    insert_rows(conn, "task_txt", ["task_id", "lang_code", "descr", "note"],
                [(task_id, t.lang_code, t.descr, t.note) for t in task.txt])

    task_sets = []
    for name in task.sets:
        sid = _set_id(name)
        if sid is None:
            logger.warning(f"Task {task.name}: workset not found: {name}")
            continue
        task_sets.append((task_id, sid))
    insert_rows(conn, "task_set", ["task_id", "set_id"], task_sets)

    task_run_id = next_id(conn, "task_run_lst", "task_run_id")
    for tr in task.task_runs:
        insert_rows(conn, "task_run_lst",
                    ["task_run_id", "task_id", "run_name", "sub_count", "create_dt", "status", "update_dt", "run_stamp"],
                    [(task_run_id, task_id, tr.name, tr.sub_count, tr.create_dt, tr.status, tr.update_dt, tr.run_stamp)])
        insert_rows(conn, "task_run_set", ["task_run_id", "item_id", "run_id", "set_id", "task_id"],
                    [(task_run_id, k, find_run_by_digest(conn, model, item.run_digest), _set_id(item.set_name), task_id)
                     for k, item in enumerate(tr.items)])
        task_run_id += 1

    logger.info(f"Insert task {task.name}, id: {task_id}")
    return task_id

# delete
def _delete(conn, tbl_name: str, col: str, value) -> None:
    tbl = Table(tbl_name)
    execute_query(Query.from_(tbl).delete().where(tbl.field(col) == value), conn)

def delete_run(conn, model: ModelMeta, run_id: int) -> None:
    """Delete run values and metadata, references from worksets and tasks are set to NULL"""
    for p in model.params:
        _delete(conn, p.db_run_table, "run_id", run_id)
    for t in model.tables:
        _delete(conn, t.db_expr_table, "run_id", run_id)
        _delete(conn, t.db_acc_table, "run_id", run_id)
    for e in model.entities:
        _delete(conn, e.db_entity_table, "run_id", run_id)

    workset_lst = Table("workset_lst")
    execute_query(Query.update(workset_lst).set(workset_lst.base_run_id, None).where(workset_lst.base_run_id == run_id), conn)
    task_run_set = Table("task_run_set")
    execute_query(Query.update(task_run_set).set(task_run_set.run_id, None).where(task_run_set.run_id == run_id), conn)

    for tbl_name in ("run_entity", "run_table", "run_parameter_txt", "run_parameter", "run_option", "run_txt", "run_lst"):
        _delete(conn, tbl_name, "run_id", run_id)
    logger.info(f"Deleted run id: {run_id}")

def delete_workset(conn, model: ModelMeta, set_id: int) -> None:
    for p in model.params:
        _delete(conn, p.db_set_table, "set_id", set_id)
    task_run_set = Table("task_run_set")
    execute_query(Query.update(task_run_set).set(task_run_set.set_id, None).where(task_run_set.set_id == set_id), conn)
    for tbl_name in ("task_set", "workset_parameter_txt", "workset_parameter", "workset_txt", "workset_lst"):
        _delete(conn, tbl_name, "set_id", set_id)
    logger.info(f"Deleted workset id: {set_id}")

def delete_task(conn, task_id: int) -> None:
    for tbl_name in ("task_run_set", "task_run_lst", "task_set", "task_txt", "task_lst"):
        _delete(conn, tbl_name, "task_id", task_id)
    logger.info(f"Deleted task id: {task_id}")

def delete_model(conn, model: ModelMeta) -> None:
    """Delete model with all runs, worksets, tasks and value tables"""
    model_id = model.model.model_id
    for tbl_name, id_col in (("run_lst", "run_id"), ("workset_lst", "set_id"), ("task_lst", "task_id")):
        for entity_id in [r[0] for r in execute_query(
                Query.from_(Table(tbl_name)).select(id_col).where(Table(tbl_name).model_id == model_id), conn)]:
            if tbl_name == "run_lst":
                delete_run(conn, model, entity_id)
            elif tbl_name == "workset_lst":
                delete_workset(conn, model, entity_id)
            else:
                delete_task(conn, entity_id)

    drop_value_tables(conn, model)
    for tbl_name in ("entity_attr", "entity_dic", "table_expr", "table_acc", "table_dims", "table_dic",
                     "parameter_dims", "parameter_dic", "type_enum_lst", "type_dic", "model_dic"):
        _delete(conn, tbl_name, "model_id", model_id)
    logger.info(f"Deleted model {model.name}, id: {model_id}")
