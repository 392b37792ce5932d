# import
## batteries
from typing import List, Dict
## 3rd party
from pydantic import BaseModel, ConfigDict, Field
## package
from dbcopy.errors import EntityNotFoundError


# built-in type names, lower case
FLOAT_TYPES = {"float", "double", "ldouble", "time", "real"}
INT_TYPES = {
    "char", "schar", "uchar", "short", "ushort", "int", "uint", "long", "ulong",
    "llong", "ullong", "counter", "big_counter", "integer",
}
BOOL_TYPE = "bool"
TOTAL_CODE = "all"

# type_dic.dic_id values
DIC_SIMPLE = 0
DIC_LOGICAL = 1
DIC_CLASSIFICATION = 2
DIC_RANGE = 3
DIC_PARTITION = 4

# classes
class MetaModel(BaseModel):
    """Metadata record as stored in json, unknown keys are rejected"""
    model_config = ConfigDict(extra="forbid", protected_namespaces=())

class EnumItem(MetaModel):
    enum_id: int
    name: str

class TypeMeta(MetaModel):
    """
    Model type: built-in (int, double, bool, ...) or enum based
    (classification, range, partition).
    """
    type_id: int
    name: str
    digest: str = ""
    dic_id: int = DIC_SIMPLE
    total_enum_id: int = 0
    enums: List[EnumItem] = Field(default_factory=list)

    @property
    def is_builtin(self) -> bool:
        return self.dic_id == DIC_SIMPLE

    @property
    def is_float(self) -> bool:
        return self.is_builtin and self.name.lower() in FLOAT_TYPES

    @property
    def is_int(self) -> bool:
        return self.is_builtin and self.name.lower() in INT_TYPES

    @property
    def is_bool(self) -> bool:
        return self.name.lower() == BOOL_TYPE

    @property
    def has_enums(self) -> bool:
        return not self.is_builtin and not self.is_bool

    def code_map(self, is_total: bool = False) -> Dict[int, str]:
        """
        Map enum id to enum code, with "all" for the total item if requested
        """
        codes = {e.enum_id: e.name for e in self.enums}
        if is_total:
            codes[self.total_enum_id] = TOTAL_CODE
        return codes

    def id_map(self, is_total: bool = False) -> Dict[str, int]:
        ids = {e.name: e.enum_id for e in self.enums}
        if is_total:
            ids[TOTAL_CODE] = self.total_enum_id
        return ids

class ParamDim(MetaModel):
    dim_id: int
    name: str
    type_id: int

class ParamMeta(MetaModel):
    param_id: int
    name: str
    type_id: int
    digest: str = ""
    is_hidden: bool = False
    num_cumulated: int = 0
    db_run_table: str = ""
    db_set_table: str = ""
    dims: List[ParamDim] = Field(default_factory=list)

    @property
    def rank(self) -> int:
        return len(self.dims)

class TableDim(MetaModel):
    dim_id: int
    name: str
    type_id: int
    is_total: bool = False
    dim_size: int = 0

class TableAcc(MetaModel):
    acc_id: int
    name: str
    is_derived: bool = False
    acc_src: str = ""

class TableExpr(MetaModel):
    expr_id: int
    name: str
    decimals: int = -1
    expr_src: str = ""

class TableMeta(MetaModel):
    table_id: int
    name: str
    digest: str = ""
    is_user: bool = False
    is_sparse: bool = False
    expr_pos: int = 0
    db_expr_table: str = ""
    db_acc_table: str = ""
    dims: List[TableDim] = Field(default_factory=list)
    accs: List[TableAcc] = Field(default_factory=list)
    exprs: List[TableExpr] = Field(default_factory=list)

    @property
    def rank(self) -> int:
        return len(self.dims)

class EntityAttr(MetaModel):
    attr_id: int
    name: str
    type_id: int
    is_internal: bool = False

class EntityMeta(MetaModel):
    entity_id: int
    name: str
    digest: str = ""
    db_entity_table: str = ""
    attrs: List[EntityAttr] = Field(default_factory=list)

class ModelDic(MetaModel):
    model_id: int
    name: str
    digest: str
    model_type: int = 0
    version: str = "1.0.0.0"
    create_dt: str = ""
    default_lang_code: str = "EN"

class ModelMeta(MetaModel):
    """
    Model definition: types, parameters, output tables and microdata entities.
    Child lists keep the source order.
    """
    model: ModelDic
    types: List[TypeMeta] = Field(default_factory=list)
    params: List[ParamMeta] = Field(default_factory=list)
    tables: List[TableMeta] = Field(default_factory=list)
    entities: List[EntityMeta] = Field(default_factory=list)

    @property
    def name(self) -> str:
        return self.model.name

    def type_by_id(self, type_id: int) -> TypeMeta:
        for t in self.types:
            if t.type_id == type_id:
                return t
        raise EntityNotFoundError("type", type_id, where=f"model {self.name}")

    def param_by_name(self, name: str) -> ParamMeta:
        for p in self.params:
            if p.name == name:
                return p
        raise EntityNotFoundError("parameter", name=name, where=f"model {self.name}")

    def param_by_id(self, param_id: int) -> ParamMeta:
        for p in self.params:
            if p.param_id == param_id:
                return p
        raise EntityNotFoundError("parameter", param_id, where=f"model {self.name}")

    def table_by_name(self, name: str) -> TableMeta:
        for t in self.tables:
            if t.name == name:
                return t
        raise EntityNotFoundError("output table", name=name, where=f"model {self.name}")

    def table_by_id(self, table_id: int) -> TableMeta:
        for t in self.tables:
            if t.table_id == table_id:
                return t
        raise EntityNotFoundError("output table", table_id, where=f"model {self.name}")

    def entity_by_name(self, name: str) -> EntityMeta:
        for e in self.entities:
            if e.name == name:
                return e
        raise EntityNotFoundError("entity", name=name, where=f"model {self.name}")

    def entity_by_id(self, entity_id: int) -> EntityMeta:
        for e in self.entities:
            if e.entity_id == entity_id:
                return e
        raise EntityNotFoundError("entity", entity_id, where=f"model {self.name}")
