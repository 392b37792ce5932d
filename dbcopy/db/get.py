# import
## batteries
import logging
from typing import Dict, Iterator, List, Optional, Tuple
## 3rd party
from pypika import Query, Table, Order
## package
from dbcopy.db.utils import read_records, iter_rows
from dbcopy.errors import EntityNotFoundError
from dbcopy.meta.model import (
    EnumItem, TypeMeta, ParamDim, ParamMeta, TableDim, TableAcc, TableExpr, TableMeta,
    EntityAttr, EntityMeta, ModelDic, ModelMeta,
)
from dbcopy.meta.run import (
    DescrNote, LangNote, RunParam, RunEntity, RunMeta, WorksetParam, WorksetMeta,
    TaskRunItem, TaskRun, TaskMeta, LangMeta, ProfileMeta,
)
from dbcopy.text.cells import CellParam, CellExpr, CellAcc, CellAllAcc, CellMicro
from dbcopy.text.names import EntityLocator, RUN, SET, TASK

logger = logging.getLogger(__name__)

# kind -> (table, id column, name column)
_ENTITY_TABLES = {
    RUN: ("run_lst", "run_id", "run_name"),
    SET: ("workset_lst", "set_id", "set_name"),
    TASK: ("task_lst", "task_id", "task_name"),
}

# helpers
def _by_key(records: List[dict], key: str) -> Dict[int, List[dict]]:
    out: Dict[int, List[dict]] = {}
    for r in records:
        out.setdefault(int(r[key]), []).append(r)
    return out

def _int_or_none(v) -> Optional[int]:
    return None if v is None else int(v)

def _str(v) -> str:
    return "" if v is None else str(v)

def _pick_one(records: List[dict], kind: str, id_col: str, entity_id, name) -> dict:
    if not records:
        raise EntityNotFoundError(kind, entity_id, name)
    if len(records) > 1:
        logger.warning(
            f"Found multiple {kind} named {name}: ids {[r[id_col] for r in records]}, using: {records[0][id_col]}"
        )
    return records[0]

# model
def get_model_dic(conn, model_name: Optional[str] = None, model_digest: Optional[str] = None) -> ModelDic:
    """
    Find model_dic row by digest or by name, digest first
    """
    if not model_name and not model_digest:
        raise ValueError("model name or digest required")

    model_dic = Table("model_dic")
    stmt = Query.from_(model_dic).select("*").orderby(model_dic.model_id)
    if model_digest:
        stmt = stmt.where(model_dic.model_digest == model_digest)
    else:
        stmt = stmt.where(model_dic.model_name == model_name)
    r = _pick_one(read_records(stmt, conn), "model", "model_id", None, model_digest or model_name)
    return ModelDic(
        model_id=int(r["model_id"]),
        name=r["model_name"],
        digest=r["model_digest"],
        model_type=int(r["model_type"]),
        version=_str(r["model_ver"]),
        create_dt=_str(r["create_dt"]),
        default_lang_code=_str(r["default_lang_code"]),
    )

def list_entities(conn, model_id: int, kind: str, entity_id: Optional[int] = None,
                  name: Optional[str] = None, status: Optional[str] = None) -> List[EntityLocator]:
    """
    Id and name of model runs, worksets or tasks, ordered by id.

    Args:
        conn: Database connection
        model_id: Model id
        kind: run, set or task
        entity_id: If specified then only entity with this id
        name: If specified then only entities with this name
        status: Run status filter, runs only
    """
    tbl_name, id_col, name_col = _ENTITY_TABLES[kind]
    tbl = Table(tbl_name)
    stmt = Query.from_(tbl).select(tbl.field(id_col), tbl.field(name_col)) \
        .where(tbl.model_id == model_id).orderby(tbl.field(id_col))
    if entity_id is not None:
        stmt = stmt.where(tbl.field(id_col) == entity_id)
    if name:
        stmt = stmt.where(tbl.field(name_col) == name)
    if status is not None and kind == RUN:
        stmt = stmt.where(tbl.status == status)
    return [
        EntityLocator(kind=kind, entity_id=int(r[id_col]), name=r[name_col])
        for r in read_records(stmt, conn)
    ]

def get_model(conn, model_name: Optional[str] = None, model_digest: Optional[str] = None) -> ModelMeta:
    """
    Read model definition: types, parameters, output tables and entities.

    Args:
        conn: Database connection
        model_name: Model name, used if digest not specified
        model_digest: Model digest
    Returns:
        ModelMeta
    Raises:
        EntityNotFoundError: model not in database
    """
    model = ModelMeta(model=get_model_dic(conn, model_name, model_digest))
    model_id = model.model.model_id

    # types and enums
    type_dic = Table("type_dic")
    enum_lst = Table("type_enum_lst")
    enums = _by_key(read_records(
        Query.from_(enum_lst).select("*").where(enum_lst.model_id == model_id)
        .orderby(enum_lst.model_type_id).orderby(enum_lst.enum_id),
        conn), "model_type_id")
    for t in read_records(
            Query.from_(type_dic).select("*").where(type_dic.model_id == model_id).orderby(type_dic.model_type_id),
            conn):
        type_id = int(t["model_type_id"])
        model.types.append(TypeMeta(
            type_id=type_id,
            name=t["type_name"],
            digest=_str(t["type_digest"]),
            dic_id=int(t["dic_id"]),
            total_enum_id=int(t["total_enum_id"]),
            enums=[EnumItem(enum_id=int(e["enum_id"]), name=e["enum_name"]) for e in enums.get(type_id, [])],
        ))

    # parameters
    param_dic = Table("parameter_dic")
    param_dims = Table("parameter_dims")
    dims = _by_key(read_records(
        Query.from_(param_dims).select("*").where(param_dims.model_id == model_id)
        .orderby(param_dims.model_parameter_id).orderby(param_dims.dim_id),
        conn), "model_parameter_id")
    for p in read_records(
            Query.from_(param_dic).select("*").where(param_dic.model_id == model_id).orderby(param_dic.model_parameter_id),
            conn):
        param_id = int(p["model_parameter_id"])
        model.params.append(ParamMeta(
            param_id=param_id,
            name=p["parameter_name"],
            type_id=int(p["model_type_id"]),
            digest=_str(p["parameter_digest"]),
            is_hidden=bool(p["is_hidden"]),
            num_cumulated=int(p["num_cumulated"]),
            db_run_table=_str(p["db_run_table"]),
            db_set_table=_str(p["db_set_table"]),
            dims=[
                ParamDim(dim_id=int(d["dim_id"]), name=d["dim_name"], type_id=int(d["model_type_id"]))
                for d in dims.get(param_id, [])
            ],
        ))

    # output tables
    table_dic = Table("table_dic")
    table_dims = Table("table_dims")
    table_acc = Table("table_acc")
    table_expr = Table("table_expr")
    t_dims = _by_key(read_records(
        Query.from_(table_dims).select("*").where(table_dims.model_id == model_id)
        .orderby(table_dims.model_table_id).orderby(table_dims.dim_id),
        conn), "model_table_id")
    t_accs = _by_key(read_records(
        Query.from_(table_acc).select("*").where(table_acc.model_id == model_id)
        .orderby(table_acc.model_table_id).orderby(table_acc.acc_id),
        conn), "model_table_id")
    t_exprs = _by_key(read_records(
        Query.from_(table_expr).select("*").where(table_expr.model_id == model_id)
        .orderby(table_expr.model_table_id).orderby(table_expr.expr_id),
        conn), "model_table_id")
    for t in read_records(
            Query.from_(table_dic).select("*").where(table_dic.model_id == model_id).orderby(table_dic.model_table_id),
            conn):
        table_id = int(t["model_table_id"])
        model.tables.append(TableMeta(
            table_id=table_id,
            name=t["table_name"],
            digest=_str(t["table_digest"]),
            is_user=bool(t["is_user"]),
            is_sparse=bool(t["is_sparse"]),
            expr_pos=int(t["expr_dim_pos"]),
            db_expr_table=_str(t["db_expr_table"]),
            db_acc_table=_str(t["db_acc_table"]),
            dims=[
                TableDim(
                    dim_id=int(d["dim_id"]), name=d["dim_name"], type_id=int(d["model_type_id"]),
                    is_total=bool(d["is_total"]), dim_size=int(d["dim_size"]),
                )
                for d in t_dims.get(table_id, [])
            ],
            accs=[
                TableAcc(acc_id=int(a["acc_id"]), name=a["acc_name"], is_derived=bool(a["is_derived"]), acc_src=_str(a["acc_src"]))
                for a in t_accs.get(table_id, [])
            ],
            exprs=[
                TableExpr(expr_id=int(e["expr_id"]), name=e["expr_name"], decimals=int(e["expr_decimals"]), expr_src=_str(e["expr_src"]))
                for e in t_exprs.get(table_id, [])
            ],
        ))

    # microdata entities
    entity_dic = Table("entity_dic")
    entity_attr = Table("entity_attr")
    attrs = _by_key(read_records(
        Query.from_(entity_attr).select("*").where(entity_attr.model_id == model_id)
        .orderby(entity_attr.model_entity_id).orderby(entity_attr.attr_id),
        conn), "model_entity_id")
    for e in read_records(
            Query.from_(entity_dic).select("*").where(entity_dic.model_id == model_id).orderby(entity_dic.model_entity_id),
            conn):
        entity_id = int(e["model_entity_id"])
        model.entities.append(EntityMeta(
            entity_id=entity_id,
            name=e["entity_name"],
            digest=_str(e["entity_digest"]),
            db_entity_table=_str(e["db_entity_table"]),
            attrs=[
                EntityAttr(attr_id=int(a["attr_id"]), name=a["attr_name"], type_id=int(a["model_type_id"]), is_internal=bool(a["is_internal"]))
                for a in attrs.get(entity_id, [])
            ],
        ))

    logger.info(f"Model {model.name} {model.model.digest}: {len(model.params)} parameters, {len(model.tables)} output tables")
    return model

# languages and profiles
def get_langs(conn) -> List[LangMeta]:
    lang_lst = Table("lang_lst")
    lang_word = Table("lang_word")
    words = _by_key(read_records(
        Query.from_(lang_word).select("*").orderby(lang_word.lang_id).orderby(lang_word.word_code), conn
    ), "lang_id")
    return [
        LangMeta(
            lang_id=int(r["lang_id"]),
            code=r["lang_code"],
            name=r["lang_name"],
            words={w["word_code"]: _str(w["word_value"]) for w in words.get(int(r["lang_id"]), [])},
        )
        for r in read_records(Query.from_(lang_lst).select("*").orderby(lang_lst.lang_id), conn)
    ]

def get_profiles(conn) -> List[ProfileMeta]:
    profile_lst = Table("profile_lst")
    profile_option = Table("profile_option")
    options: Dict[str, Dict[str, str]] = {}
    for r in read_records(
            Query.from_(profile_option).select("*").orderby(profile_option.profile_name).orderby(profile_option.option_key),
            conn):
        options.setdefault(r["profile_name"], {})[r["option_key"]] = _str(r["option_value"])
    return [
        ProfileMeta(name=r["profile_name"], options=options.get(r["profile_name"], {}))
        for r in read_records(Query.from_(profile_lst).select("*").orderby(profile_lst.profile_name), conn)
    ]

# runs
def _descr_notes(records: List[dict]) -> List[DescrNote]:
    return [DescrNote(lang_code=r["lang_code"], descr=_str(r["descr"]), note=r["note"]) for r in records]

def _lang_notes(records: List[dict]) -> List[LangNote]:
    return [LangNote(lang_code=r["lang_code"], note=r["note"]) for r in records]

def get_run_list(conn, model: ModelMeta, status: Optional[str] = None,
                 run_id: Optional[int] = None) -> List[RunMeta]:
    """
    Read model runs with texts, options, parameters, tables and entities.

    Args:
        conn: Database connection
        model: Model definition
        status: If specified then only runs with this status
        run_id: If specified then only this run
    """
    model_id = model.model.model_id
    run_lst = Table("run_lst")
    stmt = Query.from_(run_lst).select("*").where(run_lst.model_id == model_id).orderby(run_lst.run_id)
    if status is not None:
        stmt = stmt.where(run_lst.status == status)
    if run_id is not None:
        stmt = stmt.where(run_lst.run_id == run_id)
    runs = read_records(stmt, conn)
    if not runs:
        return []
    ids = [int(r["run_id"]) for r in runs]

    def _children(tbl_name: str, *order):
        t = Table(tbl_name)
        q = Query.from_(t).select("*").where(t.run_id.isin(ids)).orderby(t.run_id)
        for col in order:
            q = q.orderby(t.field(col))
        return _by_key(read_records(q, conn), "run_id")

    txt = _children("run_txt", "lang_code")
    opts = _children("run_option", "option_key")
    params = _children("run_parameter", "model_parameter_id")
    param_txt = _children("run_parameter_txt", "model_parameter_id", "lang_code")
    tables = _children("run_table", "model_table_id")
    entities = _children("run_entity", "model_entity_id")

    result = []
    for r in runs:
        rid = int(r["run_id"])
        p_txt: Dict[int, List[dict]] = _by_key(param_txt.get(rid, []), "model_parameter_id")
        result.append(RunMeta(
            run_id=rid,
            name=r["run_name"],
            sub_count=int(r["sub_count"]),
            sub_started=int(r["sub_started"]),
            sub_completed=int(r["sub_completed"]),
            create_dt=_str(r["create_dt"]),
            status=r["status"],
            update_dt=_str(r["update_dt"]),
            run_digest=_str(r["run_digest"]),
            value_digest=_str(r["value_digest"]),
            run_stamp=_str(r["run_stamp"]),
            txt=_descr_notes(txt.get(rid, [])),
            options={o["option_key"]: _str(o["option_value"]) for o in opts.get(rid, [])},
            params=[
                RunParam(
                    name=model.param_by_id(int(p["model_parameter_id"])).name,
                    sub_count=int(p["sub_count"]),
                    txt=_lang_notes(p_txt.get(int(p["model_parameter_id"]), [])),
                )
                for p in params.get(rid, [])
            ],
            tables=[model.table_by_id(int(t["model_table_id"])).name for t in tables.get(rid, [])],
            entities=[
                RunEntity(
                    name=model.entity_by_id(int(e["model_entity_id"])).name,
                    gen_digest=_str(e["gen_digest"]),
                    row_count=int(e["row_count"]),
                )
                for e in entities.get(rid, [])
            ],
        ))
    return result

def find_run(conn, model: ModelMeta, run_id: Optional[int] = None, name: Optional[str] = None,
             digest: Optional[str] = None) -> RunMeta:
    """
    Find run by id, digest or name, id first. Raises EntityNotFoundError.
    """
    run_lst = Table("run_lst")
    stmt = Query.from_(run_lst).select(run_lst.run_id) \
        .where(run_lst.model_id == model.model.model_id).orderby(run_lst.run_id)
    if run_id is not None:
        stmt = stmt.where(run_lst.run_id == run_id)
    elif digest:
        stmt = stmt.where(run_lst.run_digest == digest)
    elif name:
        stmt = stmt.where(run_lst.run_name == name)
    else:
        raise ValueError("run id, digest or name required")
    r = _pick_one(read_records(stmt, conn), "run", "run_id", run_id, name or digest)
    return get_run_list(conn, model, run_id=int(r["run_id"]))[0]

def get_run_digest(conn, run_id: Optional[int]) -> Optional[str]:
    if run_id is None:
        return None
    run_lst = Table("run_lst")
    rows = read_records(Query.from_(run_lst).select(run_lst.run_digest).where(run_lst.run_id == run_id), conn)
    return rows[0]["run_digest"] if rows else None

# worksets
def get_workset_list(conn, model: ModelMeta, set_id: Optional[int] = None,
                     readonly_only: bool = False) -> List[WorksetMeta]:
    model_id = model.model.model_id
    workset_lst = Table("workset_lst")
    stmt = Query.from_(workset_lst).select("*").where(workset_lst.model_id == model_id).orderby(workset_lst.set_id)
    if set_id is not None:
        stmt = stmt.where(workset_lst.set_id == set_id)
    if readonly_only:
        stmt = stmt.where(workset_lst.is_readonly == 1)
    sets = read_records(stmt, conn)
    if not sets:
        return []
    ids = [int(r["set_id"]) for r in sets]

    def _children(tbl_name: str, *order):
        t = Table(tbl_name)
        q = Query.from_(t).select("*").where(t.set_id.isin(ids)).orderby(t.set_id)
        for col in order:
            q = q.orderby(t.field(col))
        return _by_key(read_records(q, conn), "set_id")

    txt = _children("workset_txt", "lang_code")
    params = _children("workset_parameter", "model_parameter_id")
    param_txt = _children("workset_parameter_txt", "model_parameter_id", "lang_code")

    result = []
    for r in sets:
        sid = int(r["set_id"])
        p_txt = _by_key(param_txt.get(sid, []), "model_parameter_id")
        result.append(WorksetMeta(
            set_id=sid,
            name=r["set_name"],
            base_run_digest=get_run_digest(conn, _int_or_none(r["base_run_id"])),
            is_readonly=bool(r["is_readonly"]),
            update_dt=_str(r["update_dt"]),
            txt=_descr_notes(txt.get(sid, [])),
            params=[
                WorksetParam(
                    name=model.param_by_id(int(p["model_parameter_id"])).name,
                    sub_count=int(p["sub_count"]),
                    default_sub_id=int(p["default_sub_id"]),
                    txt=_lang_notes(p_txt.get(int(p["model_parameter_id"]), [])),
                )
                for p in params.get(sid, [])
            ],
        ))
    return result

def find_workset(conn, model: ModelMeta, set_id: Optional[int] = None, name: Optional[str] = None) -> WorksetMeta:
    workset_lst = Table("workset_lst")
    stmt = Query.from_(workset_lst).select(workset_lst.set_id) \
        .where(workset_lst.model_id == model.model.model_id).orderby(workset_lst.set_id)
    if set_id is not None:
        stmt = stmt.where(workset_lst.set_id == set_id)
    elif name:
        stmt = stmt.where(workset_lst.set_name == name)
    else:
        raise ValueError("workset id or name required")
    r = _pick_one(read_records(stmt, conn), "set", "set_id", set_id, name)
    return get_workset_list(conn, model, set_id=int(r["set_id"]))[0]

# tasks
def get_task_list(conn, model: ModelMeta, task_id: Optional[int] = None) -> List[TaskMeta]:
    model_id = model.model.model_id
    task_lst = Table("task_lst")
    stmt = Query.from_(task_lst).select("*").where(task_lst.model_id == model_id).orderby(task_lst.task_id)
    if task_id is not None:
        stmt = stmt.where(task_lst.task_id == task_id)
    tasks = read_records(stmt, conn)
    if not tasks:
        return []
    ids = [int(r["task_id"]) for r in tasks]

    task_txt = Table("task_txt")
    txt = _by_key(read_records(
        Query.from_(task_txt).select("*").where(task_txt.task_id.isin(ids)).orderby(task_txt.task_id).orderby(task_txt.lang_code),
        conn), "task_id")

    task_set = Table("task_set")
    workset_lst = Table("workset_lst")
    sets = _by_key(read_records(
        Query.from_(task_set).join(workset_lst).on(task_set.set_id == workset_lst.set_id)
        .select(task_set.task_id, workset_lst.set_name)
        .where(task_set.task_id.isin(ids)).orderby(task_set.task_id).orderby(task_set.set_id),
        conn), "task_id")

    task_run_lst = Table("task_run_lst")
    task_runs = _by_key(read_records(
        Query.from_(task_run_lst).select("*").where(task_run_lst.task_id.isin(ids)).orderby(task_run_lst.task_run_id),
        conn), "task_id")

    task_run_set = Table("task_run_set")
    run_lst = Table("run_lst")
    items = _by_key(read_records(
        Query.from_(task_run_set)
        .left_join(run_lst).on(task_run_set.run_id == run_lst.run_id)
        .left_join(workset_lst).on(task_run_set.set_id == workset_lst.set_id)
        .select(task_run_set.task_run_id, run_lst.run_digest, workset_lst.set_name)
        .where(task_run_set.task_id.isin(ids))
        .orderby(task_run_set.task_run_id).orderby(task_run_set.item_id),
        conn), "task_run_id")

    result = []
    for r in tasks:
        tid = int(r["task_id"])
        result.append(TaskMeta(
            task_id=tid,
            name=r["task_name"],
            txt=_descr_notes(txt.get(tid, [])),
            sets=[s["set_name"] for s in sets.get(tid, [])],
            task_runs=[
                TaskRun(
                    task_run_id=int(tr["task_run_id"]),
                    name=tr["run_name"],
                    sub_count=int(tr["sub_count"]),
                    create_dt=_str(tr["create_dt"]),
                    status=tr["status"],
                    update_dt=_str(tr["update_dt"]),
                    run_stamp=_str(tr["run_stamp"]),
                    items=[
                        TaskRunItem(run_digest=i["run_digest"], set_name=i["set_name"])
                        for i in items.get(int(tr["task_run_id"]), [])
                    ],
                )
                for tr in task_runs.get(tid, [])
            ],
        ))
    return result

def find_task(conn, model: ModelMeta, task_id: Optional[int] = None, name: Optional[str] = None) -> TaskMeta:
    task_lst = Table("task_lst")
    stmt = Query.from_(task_lst).select(task_lst.task_id) \
        .where(task_lst.model_id == model.model.model_id).orderby(task_lst.task_id)
    if task_id is not None:
        stmt = stmt.where(task_lst.task_id == task_id)
    elif name:
        stmt = stmt.where(task_lst.task_name == name)
    else:
        raise ValueError("task id or name required")
    r = _pick_one(read_records(stmt, conn), "task", "task_id", task_id, name)
    return get_task_list(conn, model, task_id=int(r["task_id"]))[0]

def get_task_members(conn, task_id: int) -> Tuple[List[int], List[int]]:
    """
    Ids of worksets and runs used by the task: task worksets and task run history.

    Returns:
        (set ids, run ids), each in order of appearance without repeats
    """
    task_set = Table("task_set")
    set_ids = [int(r["set_id"]) for r in read_records(
        Query.from_(task_set).select(task_set.set_id).where(task_set.task_id == task_id).orderby(task_set.set_id),
        conn)]
    run_ids: List[int] = []

    task_run_set = Table("task_run_set")
    items = read_records(
        Query.from_(task_run_set).select(task_run_set.run_id, task_run_set.set_id)
        .where(task_run_set.task_id == task_id)
        .orderby(task_run_set.task_run_id).orderby(task_run_set.item_id),
        conn)
    for r in items:
        set_id, run_id = _int_or_none(r["set_id"]), _int_or_none(r["run_id"])
        if set_id is not None and set_id not in set_ids:
            set_ids.append(set_id)
        if run_id is not None and run_id not in run_ids:
            run_ids.append(run_id)
    return set_ids, run_ids

# cell values
def _dim_fields(tbl: Table, rank: int):
    return [tbl.field(f"dim{k}") for k in range(rank)]

def read_param_cells(conn, param: ParamMeta, run_id: Optional[int] = None,
                     set_id: Optional[int] = None) -> Iterator[CellParam]:
    """
    Parameter values of run or workset, ordered by sub_id and dimensions
    """
    if run_id is not None:
        tbl = Table(param.db_run_table)
        key = tbl.run_id == run_id
    else:
        tbl = Table(param.db_set_table)
        key = tbl.set_id == set_id
    dims = _dim_fields(tbl, param.rank)
    stmt = Query.from_(tbl).select(tbl.sub_id, *dims, tbl.param_value).where(key)
    for col in [tbl.sub_id] + dims:
        stmt = stmt.orderby(col, order=Order.asc)
    for row in iter_rows(stmt, conn):
        yield CellParam(sub_id=int(row[0]), dim_ids=[int(d) for d in row[1:-1]], value=row[-1])

def read_expr_cells(conn, table: TableMeta, run_id: int) -> Iterator[CellExpr]:
    tbl = Table(table.db_expr_table)
    dims = _dim_fields(tbl, table.rank)
    stmt = Query.from_(tbl).select(tbl.expr_id, *dims, tbl.expr_value).where(tbl.run_id == run_id)
    for col in [tbl.expr_id] + dims:
        stmt = stmt.orderby(col)
    for row in iter_rows(stmt, conn):
        yield CellExpr(expr_id=int(row[0]), dim_ids=[int(d) for d in row[1:-1]], value=row[-1])

def read_acc_cells(conn, table: TableMeta, run_id: int) -> Iterator[CellAcc]:
    tbl = Table(table.db_acc_table)
    dims = _dim_fields(tbl, table.rank)
    stmt = Query.from_(tbl).select(tbl.acc_id, tbl.sub_id, *dims, tbl.acc_value).where(tbl.run_id == run_id)
    for col in [tbl.acc_id, tbl.sub_id] + dims:
        stmt = stmt.orderby(col)
    for row in iter_rows(stmt, conn):
        yield CellAcc(acc_id=int(row[0]), sub_id=int(row[1]), dim_ids=[int(d) for d in row[2:-1]], value=row[-1])

def read_all_acc_cells(conn, table: TableMeta, run_id: int) -> Iterator[CellAllAcc]:
    """
    All accumulators of one cell in one row, ordered by sub_id and dimensions.
    Accumulator values missing for a cell are returned as None.
    """
    tbl = Table(table.db_acc_table)
    dims = _dim_fields(tbl, table.rank)
    stmt = Query.from_(tbl).select(tbl.sub_id, *dims, tbl.acc_id, tbl.acc_value).where(tbl.run_id == run_id)
    for col in [tbl.sub_id] + dims + [tbl.acc_id]:
        stmt = stmt.orderby(col)

    acc_pos = {a.acc_id: k for k, a in enumerate(table.accs)}
    cell: Optional[CellAllAcc] = None
    for row in iter_rows(stmt, conn):
        sub_id = int(row[0])
        dim_ids = [int(d) for d in row[1:-2]]
        if cell is None or cell.sub_id != sub_id or cell.dim_ids != dim_ids:
            if cell is not None:
                yield cell
            cell = CellAllAcc(sub_id=sub_id, dim_ids=dim_ids, values=[None] * len(table.accs))
        cell.values[acc_pos[int(row[-2])]] = row[-1]
    if cell is not None:
        yield cell

def read_micro_cells(conn, entity: EntityMeta, run_id: int) -> Iterator[CellMicro]:
    tbl = Table(entity.db_entity_table)
    attrs = [tbl.field(f"attr{k}") for k in range(len(entity.attrs))]
    stmt = Query.from_(tbl).select(tbl.entity_key, *attrs).where(tbl.run_id == run_id).orderby(tbl.entity_key)
    for row in iter_rows(stmt, conn):
        yield CellMicro(key=int(row[0]), values=list(row[1:]))
