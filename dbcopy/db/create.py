# import
## batteries
import logging
from contextlib import closing
from typing import List
## 3rd party
from pypika import Query, Column
## package
from dbcopy.db.utils import execute_query
from dbcopy.meta.model import ModelMeta, TypeMeta

logger = logging.getLogger(__name__)

NAME = "VARCHAR(255)"
DIGEST = "VARCHAR(32)"
DT = "VARCHAR(32)"

# metadata tables: name -> (columns, primary key)
METADATA_TABLES = {
    "model_dic": ([
        Column("model_id", "INT", nullable=False),
        Column("model_name", NAME, nullable=False),
        Column("model_digest", DIGEST, nullable=False),
        Column("model_type", "INT", nullable=False),
        Column("model_ver", NAME, nullable=False),
        Column("create_dt", DT, nullable=False),
        Column("default_lang_code", "VARCHAR(32)", nullable=False),
    ], ["model_id"]),
    "type_dic": ([
        Column("model_id", "INT", nullable=False),
        Column("model_type_id", "INT", nullable=False),
        Column("type_name", NAME, nullable=False),
        Column("type_digest", DIGEST, nullable=False),
        Column("dic_id", "INT", nullable=False),
        Column("total_enum_id", "INT", nullable=False),
    ], ["model_id", "model_type_id"]),
    "type_enum_lst": ([
        Column("model_id", "INT", nullable=False),
        Column("model_type_id", "INT", nullable=False),
        Column("enum_id", "INT", nullable=False),
        Column("enum_name", NAME, nullable=False),
    ], ["model_id", "model_type_id", "enum_id"]),
    "parameter_dic": ([
        Column("model_id", "INT", nullable=False),
        Column("model_parameter_id", "INT", nullable=False),
        Column("parameter_name", NAME, nullable=False),
        Column("parameter_digest", DIGEST, nullable=False),
        Column("db_run_table", NAME, nullable=False),
        Column("db_set_table", NAME, nullable=False),
        Column("parameter_rank", "INT", nullable=False),
        Column("model_type_id", "INT", nullable=False),
        Column("is_hidden", "SMALLINT", nullable=False),
        Column("num_cumulated", "INT", nullable=False),
    ], ["model_id", "model_parameter_id"]),
    "parameter_dims": ([
        Column("model_id", "INT", nullable=False),
        Column("model_parameter_id", "INT", nullable=False),
        Column("dim_id", "INT", nullable=False),
        Column("dim_name", NAME, nullable=False),
        Column("model_type_id", "INT", nullable=False),
    ], ["model_id", "model_parameter_id", "dim_id"]),
    "table_dic": ([
        Column("model_id", "INT", nullable=False),
        Column("model_table_id", "INT", nullable=False),
        Column("table_name", NAME, nullable=False),
        Column("table_digest", DIGEST, nullable=False),
        Column("is_user", "SMALLINT", nullable=False),
        Column("table_rank", "INT", nullable=False),
        Column("is_sparse", "SMALLINT", nullable=False),
        Column("db_expr_table", NAME, nullable=False),
        Column("db_acc_table", NAME, nullable=False),
        Column("expr_dim_pos", "INT", nullable=False),
    ], ["model_id", "model_table_id"]),
    "table_dims": ([
        Column("model_id", "INT", nullable=False),
        Column("model_table_id", "INT", nullable=False),
        Column("dim_id", "INT", nullable=False),
        Column("dim_name", NAME, nullable=False),
        Column("model_type_id", "INT", nullable=False),
        Column("is_total", "SMALLINT", nullable=False),
        Column("dim_size", "INT", nullable=False),
    ], ["model_id", "model_table_id", "dim_id"]),
    "table_acc": ([
        Column("model_id", "INT", nullable=False),
        Column("model_table_id", "INT", nullable=False),
        Column("acc_id", "INT", nullable=False),
        Column("acc_name", NAME, nullable=False),
        Column("is_derived", "SMALLINT", nullable=False),
        Column("acc_src", "TEXT", nullable=False),
    ], ["model_id", "model_table_id", "acc_id"]),
    "table_expr": ([
        Column("model_id", "INT", nullable=False),
        Column("model_table_id", "INT", nullable=False),
        Column("expr_id", "INT", nullable=False),
        Column("expr_name", NAME, nullable=False),
        Column("expr_decimals", "INT", nullable=False),
        Column("expr_src", "TEXT", nullable=False),
    ], ["model_id", "model_table_id", "expr_id"]),
    "entity_dic": ([
        Column("model_id", "INT", nullable=False),
        Column("model_entity_id", "INT", nullable=False),
        Column("entity_name", NAME, nullable=False),
        Column("entity_digest", DIGEST, nullable=False),
        Column("db_entity_table", NAME, nullable=False),
    ], ["model_id", "model_entity_id"]),
    "entity_attr": ([
        Column("model_id", "INT", nullable=False),
        Column("model_entity_id", "INT", nullable=False),
        Column("attr_id", "INT", nullable=False),
        Column("attr_name", NAME, nullable=False),
        Column("model_type_id", "INT", nullable=False),
        Column("is_internal", "SMALLINT", nullable=False),
    ], ["model_id", "model_entity_id", "attr_id"]),
    "lang_lst": ([
        Column("lang_id", "INT", nullable=False),
        Column("lang_code", "VARCHAR(32)", nullable=False),
        Column("lang_name", NAME, nullable=False),
    ], ["lang_id"]),
    "lang_word": ([
        Column("lang_id", "INT", nullable=False),
        Column("word_code", NAME, nullable=False),
        Column("word_value", "TEXT", nullable=False),
    ], ["lang_id", "word_code"]),
    "profile_lst": ([
        Column("profile_name", NAME, nullable=False),
    ], ["profile_name"]),
    "profile_option": ([
        Column("profile_name", NAME, nullable=False),
        Column("option_key", NAME, nullable=False),
        Column("option_value", "TEXT", nullable=False),
    ], ["profile_name", "option_key"]),
    "run_lst": ([
        Column("run_id", "INT", nullable=False),
        Column("model_id", "INT", nullable=False),
        Column("run_name", NAME, nullable=False),
        Column("sub_count", "INT", nullable=False),
        Column("sub_started", "INT", nullable=False),
        Column("sub_completed", "INT", nullable=False),
        Column("create_dt", DT, nullable=False),
        Column("status", "VARCHAR(1)", nullable=False),
        Column("update_dt", DT, nullable=False),
        Column("run_digest", DIGEST),
        Column("value_digest", DIGEST),
        Column("run_stamp", NAME, nullable=False),
    ], ["run_id"]),
    "run_txt": ([
        Column("run_id", "INT", nullable=False),
        Column("lang_code", "VARCHAR(32)", nullable=False),
        Column("descr", NAME, nullable=False),
        Column("note", "TEXT"),
    ], ["run_id", "lang_code"]),
    "run_option": ([
        Column("run_id", "INT", nullable=False),
        Column("option_key", NAME, nullable=False),
        Column("option_value", "TEXT", nullable=False),
    ], ["run_id", "option_key"]),
    "run_parameter": ([
        Column("run_id", "INT", nullable=False),
        Column("model_parameter_id", "INT", nullable=False),
        Column("sub_count", "INT", nullable=False),
    ], ["run_id", "model_parameter_id"]),
    "run_parameter_txt": ([
        Column("run_id", "INT", nullable=False),
        Column("model_parameter_id", "INT", nullable=False),
        Column("lang_code", "VARCHAR(32)", nullable=False),
        Column("note", "TEXT"),
    ], ["run_id", "model_parameter_id", "lang_code"]),
    "run_table": ([
        Column("run_id", "INT", nullable=False),
        Column("model_table_id", "INT", nullable=False),
    ], ["run_id", "model_table_id"]),
    "run_entity": ([
        Column("run_id", "INT", nullable=False),
        Column("model_entity_id", "INT", nullable=False),
        Column("gen_digest", DIGEST, nullable=False),
        Column("row_count", "INT", nullable=False),
    ], ["run_id", "model_entity_id"]),
    "workset_lst": ([
        Column("set_id", "INT", nullable=False),
        Column("model_id", "INT", nullable=False),
        Column("set_name", NAME, nullable=False),
        Column("base_run_id", "INT"),
        Column("is_readonly", "SMALLINT", nullable=False),
        Column("update_dt", DT, nullable=False),
    ], ["set_id"]),
    "workset_txt": ([
        Column("set_id", "INT", nullable=False),
        Column("lang_code", "VARCHAR(32)", nullable=False),
        Column("descr", NAME, nullable=False),
        Column("note", "TEXT"),
    ], ["set_id", "lang_code"]),
    "workset_parameter": ([
        Column("set_id", "INT", nullable=False),
        Column("model_parameter_id", "INT", nullable=False),
        Column("sub_count", "INT", nullable=False),
        Column("default_sub_id", "INT", nullable=False),
    ], ["set_id", "model_parameter_id"]),
    "workset_parameter_txt": ([
        Column("set_id", "INT", nullable=False),
        Column("model_parameter_id", "INT", nullable=False),
        Column("lang_code", "VARCHAR(32)", nullable=False),
        Column("note", "TEXT"),
    ], ["set_id", "model_parameter_id", "lang_code"]),
    "task_lst": ([
        Column("task_id", "INT", nullable=False),
        Column("model_id", "INT", nullable=False),
        Column("task_name", NAME, nullable=False),
    ], ["task_id"]),
    "task_txt": ([
        Column("task_id", "INT", nullable=False),
        Column("lang_code", "VARCHAR(32)", nullable=False),
        Column("descr", NAME, nullable=False),
        Column("note", "TEXT"),
    ], ["task_id", "lang_code"]),
    "task_set": ([
        Column("task_id", "INT", nullable=False),
        Column("set_id", "INT", nullable=False),
    ], ["task_id", "set_id"]),
    "task_run_lst": ([
        Column("task_run_id", "INT", nullable=False),
        Column("task_id", "INT", nullable=False),
        Column("run_name", NAME, nullable=False),
        Column("sub_count", "INT", nullable=False),
        Column("create_dt", DT, nullable=False),
        Column("status", "VARCHAR(1)", nullable=False),
        Column("update_dt", DT, nullable=False),
        Column("run_stamp", NAME, nullable=False),
    ], ["task_run_id"]),
    "task_run_set": ([
        Column("task_run_id", "INT", nullable=False),
        Column("item_id", "INT", nullable=False),
        Column("run_id", "INT"),
        Column("set_id", "INT"),
        Column("task_id", "INT", nullable=False),
    ], ["task_run_id", "item_id"]),
}

# functions
def create_schema(conn) -> None:
    """
    Create metadata tables if not exist
    """
    for tbl_name, (columns, pk) in METADATA_TABLES.items():
        stmt = Query \
            .create_table(tbl_name) \
            .columns(*columns) \
            .primary_key(*pk) \
            .if_not_exists()
        execute_query(stmt, conn)
    logger.debug(f"Schema ready: {len(METADATA_TABLES)} tables")

def value_sql_type(type_meta: TypeMeta) -> str:
    """Column type of parameter value or microdata attribute"""
    if type_meta.is_float:
        return "FLOAT"
    if type_meta.is_bool or type_meta.has_enums or type_meta.is_int:
        return "INT"
    return "TEXT"

def _dim_columns(rank: int) -> List[Column]:
    return [Column(f"dim{k}", "INT", nullable=False) for k in range(rank)]

def create_value_tables(conn, model: ModelMeta) -> None:
    """
    Create parameter, output table and microdata value tables of the model.
    Table names must already be assigned in model metadata.
    """
    for param in model.params:
        value_col = Column("param_value", value_sql_type(model.type_by_id(param.type_id)))
        dims = _dim_columns(param.rank)
        for tbl_name, id_col in ((param.db_run_table, "run_id"), (param.db_set_table, "set_id")):
            stmt = Query \
                .create_table(tbl_name) \
                .columns(Column(id_col, "INT", nullable=False), Column("sub_id", "INT", nullable=False), *dims, value_col) \
                .primary_key(id_col, "sub_id", *[d.name for d in dims]) \
                .if_not_exists()
            execute_query(stmt, conn)

    for table in model.tables:
        dims = _dim_columns(table.rank)
        stmt = Query \
            .create_table(table.db_expr_table) \
            .columns(
                Column("run_id", "INT", nullable=False),
                Column("expr_id", "INT", nullable=False),
                *dims,
                Column("expr_value", "FLOAT"),
            ) \
            .primary_key("run_id", "expr_id", *[d.name for d in dims]) \
            .if_not_exists()
        execute_query(stmt, conn)

        stmt = Query \
            .create_table(table.db_acc_table) \
            .columns(
                Column("run_id", "INT", nullable=False),
                Column("acc_id", "INT", nullable=False),
                Column("sub_id", "INT", nullable=False),
                *dims,
                Column("acc_value", "FLOAT"),
            ) \
            .primary_key("run_id", "acc_id", "sub_id", *[d.name for d in dims]) \
            .if_not_exists()
        execute_query(stmt, conn)

    for entity in model.entities:
        attrs = [
            Column(f"attr{k}", value_sql_type(model.type_by_id(a.type_id)))
            for k, a in enumerate(entity.attrs)
        ]
        stmt = Query \
            .create_table(entity.db_entity_table) \
            .columns(Column("run_id", "INT", nullable=False), Column("entity_key", "INT", nullable=False), *attrs) \
            .primary_key("run_id", "entity_key") \
            .if_not_exists()
        execute_query(stmt, conn)

    logger.debug(f"Value tables ready: model {model.name}")

def drop_value_tables(conn, model: ModelMeta) -> None:
    names = []
    for param in model.params:
        names += [param.db_run_table, param.db_set_table]
    for table in model.tables:
        names += [table.db_expr_table, table.db_acc_table]
    names += [e.db_entity_table for e in model.entities]
    with closing(conn.cursor()) as cur:
        for name in names:
            if name:
                cur.execute(f'DROP TABLE IF EXISTS "{name}"')
