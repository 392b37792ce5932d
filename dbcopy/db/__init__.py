from .connect import db_connect
from .create import create_schema, create_value_tables
from .get import (
    get_model_dic, list_entities, get_model, get_langs, get_profiles, get_run_list, find_run, get_workset_list,
    find_workset, get_task_list, find_task,
)
from .upsert import (
    insert_model, insert_langs, insert_profiles, insert_run, insert_workset, insert_task,
    delete_run, delete_workset, delete_task, delete_model,
)

__all__ = [
    "db_connect", "create_schema", "create_value_tables",
    "get_model_dic", "list_entities", "get_model", "get_langs", "get_profiles", "get_run_list", "find_run", "get_workset_list",
    "find_workset", "get_task_list", "find_task",
    "insert_model", "insert_langs", "insert_profiles", "insert_run", "insert_workset", "insert_task",
    "delete_run", "delete_workset", "delete_task", "delete_model",
]
