from .model import (
    MetaModel, EnumItem, TypeMeta, ParamDim, ParamMeta, TableDim, TableAcc, TableExpr, TableMeta,
    EntityAttr, EntityMeta, ModelDic, ModelMeta,
)
from .run import (
    DescrNote, LangNote, RunParam, RunEntity, RunMeta, WorksetParam, WorksetMeta,
    TaskRunItem, TaskRun, TaskMeta, LangMeta, ProfileMeta,
)
from .json_io import from_dict, to_json_file, from_json_file, list_from_json_file

__all__ = [
    "MetaModel", "EnumItem", "TypeMeta", "ParamDim", "ParamMeta", "TableDim", "TableAcc", "TableExpr",
    "TableMeta", "EntityAttr", "EntityMeta", "ModelDic", "ModelMeta",
    "DescrNote", "LangNote", "RunParam", "RunEntity", "RunMeta", "WorksetParam",
    "WorksetMeta", "TaskRunItem", "TaskRun", "TaskMeta", "LangMeta", "ProfileMeta",
    "from_dict", "to_json_file", "from_json_file", "list_from_json_file",
]
