# import
## batteries
import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple
## package
from dbcopy.errors import CellValueError
from dbcopy.meta.model import ModelMeta, TypeMeta
from dbcopy.text.sequencer import NULL_TOKEN


DEFAULT_DOUBLE_FMT = "%.15g"

# cells
@dataclass
class CellParam:
    dim_ids: List[int]
    value: Any
    sub_id: int = 0

@dataclass
class CellExpr:
    expr_id: int
    dim_ids: List[int]
    value: Optional[float]

@dataclass
class CellAcc:
    acc_id: int
    sub_id: int
    dim_ids: List[int]
    value: Optional[float]

@dataclass
class CellAllAcc:
    sub_id: int
    dim_ids: List[int]
    values: List[Optional[float]] = field(default_factory=list)

@dataclass
class CellMicro:
    key: int
    values: List[Any] = field(default_factory=list)

# value codecs
def _is_null_text(text: str) -> bool:
    return text == NULL_TOKEN

def format_float(value: float, double_fmt: str) -> str:
    return double_fmt % value

class DimCodec:
    """
    Dimension item: enum id <-> text field, code or id depending on mode
    """
    def __init__(self, dim_name: str, type_meta: TypeMeta, is_total: bool, id_csv: bool):
        self.dim_name = dim_name
        self.type_name = type_meta.name
        self.has_enums = type_meta.has_enums
        self.id_csv = id_csv
        self._codes = type_meta.code_map(is_total)
        self._ids = type_meta.id_map(is_total)

    def to_text(self, enum_id: int) -> str:
        if not self.has_enums:
            return str(enum_id)
        if enum_id not in self._codes:
            raise CellValueError(f"invalid item id {enum_id} of dimension {self.dim_name}")
        return str(enum_id) if self.id_csv else self._codes[enum_id]

    def to_id(self, text: str) -> int:
        if not self.has_enums or self.id_csv:
            try:
                enum_id = int(text)
            except ValueError:
                raise CellValueError(f"invalid item id {text!r} of dimension {self.dim_name}")
            if self.has_enums and enum_id not in self._codes:
                raise CellValueError(f"invalid item id {enum_id} of dimension {self.dim_name}")
            return enum_id
        if text not in self._ids:
            raise CellValueError(f"invalid item code {text!r} of dimension {self.dim_name}")
        return self._ids[text]

class ValueCodec:
    """
    Parameter value or microdata attribute: typed value <-> text field
    """
    def __init__(self, name: str, type_meta: TypeMeta, id_csv: bool, double_fmt: str):
        self.name = name
        self.type_meta = type_meta
        self.double_fmt = double_fmt
        self._enum = DimCodec(name, type_meta, False, id_csv) if type_meta.has_enums else None

    def to_text(self, value: Any) -> str:
        if value is None:
            return NULL_TOKEN
        t = self.type_meta
        if self._enum is not None:
            return self._enum.to_text(int(value))
        if t.is_bool:
            return "true" if value else "false"
        if t.is_float:
            return format_float(float(value), self.double_fmt)
        if t.is_int:
            return str(int(value))
        return str(value)

    def to_value(self, text: str) -> Any:
        if _is_null_text(text):
            return None
        t = self.type_meta
        if self._enum is not None:
            return self._enum.to_id(text)
        try:
            if t.is_bool:
                s = text.strip().lower()
                if s in ("true", "t", "1", "yes"):
                    return True
                if s in ("false", "f", "0", "no"):
                    return False
                raise ValueError(text)
            if t.is_float:
                return float(text)
            if t.is_int:
                return int(text)
        except ValueError:
            raise CellValueError(f"invalid value {text!r} of {self.name}, type {t.name}")
        return text

def _parse_float(text: str, what: str) -> Optional[float]:
    if _is_null_text(text):
        return None
    try:
        return float(text)
    except ValueError:
        raise CellValueError(f"invalid {what} {text!r}")

def _parse_int(text: str, what: str) -> int:
    try:
        return int(text)
    except ValueError:
        raise CellValueError(f"invalid {what} {text!r}")

# converters
class CellConverter(ABC):
    """
    Row layout of one value table: column names plus cell <-> row functions.

    Mode is fixed per converter: symbolic (enum codes) or numeric (enum ids,
    id_csv=True). An optional leading column (run id or run name) is prefixed
    to the header and to every row for all-in-one output.
    """
    suffix = ""

    def __init__(self, model: ModelMeta, name: str, id_csv: bool = False,
                 double_fmt: str = DEFAULT_DOUBLE_FMT):
        self.model = model
        self.name = name
        self.id_csv = id_csv
        self.double_fmt = double_fmt or DEFAULT_DOUBLE_FMT
        self.leading: Optional[Tuple[str, str]] = None

    def with_leading(self, column: str, value: Any) -> "CellConverter":
        """Copy of this converter which prefixes column=value to header and rows"""
        cvt = copy.copy(self)
        cvt.leading = (column, str(value))
        return cvt

    def file_name(self) -> str:
        return self.name + (".id" if self.id_csv else "") + self.suffix + ".csv"

    def header(self) -> List[str]:
        cols = self.columns()
        if self.leading is not None:
            return [self.leading[0]] + cols
        return cols

    def to_row(self, cell) -> List[str]:
        row = self.fields(cell)
        if self.leading is not None:
            return [self.leading[1]] + row
        return row

    def to_cell(self, row: List[str]):
        if self.leading is not None:
            row = row[1:]
        n = len(self.columns())
        if len(row) != n:
            raise CellValueError(f"{self.name}: expected {n} fields, found {len(row)}")
        return self.parse(row)

    def _dim_codecs(self, dims, is_total_of: Callable[[Any], bool]) -> List[DimCodec]:
        return [
            DimCodec(d.name, self.model.type_by_id(d.type_id), is_total_of(d), self.id_csv)
            for d in dims
        ]

    def _dims_to_text(self, dim_ids: List[int]) -> List[str]:
        if len(dim_ids) != len(self._dims):
            raise CellValueError(
                f"{self.name}: expected {len(self._dims)} dimension items, found {len(dim_ids)}"
            )
        return [c.to_text(i) for c, i in zip(self._dims, dim_ids)]

    def _dims_to_ids(self, fields: List[str]) -> List[int]:
        return [c.to_id(s) for c, s in zip(self._dims, fields)]

    @abstractmethod
    def columns(self) -> List[str]:
        pass

    @abstractmethod
    def fields(self, cell) -> List[str]:
        pass

    @abstractmethod
    def parse(self, row: List[str]):
        pass

class ParamCellConverter(CellConverter):
    """
    Parameter values: [sub_id,] dim0, dim1, ..., param_value.
    The sub_id column is present only if the parameter has more than one sub-value.
    """
    def __init__(self, model: ModelMeta, name: str, id_csv: bool = False,
                 double_fmt: str = DEFAULT_DOUBLE_FMT, sub_count: int = 1):
        super().__init__(model, name, id_csv, double_fmt)
        self.param = model.param_by_name(name)
        self.sub_count = sub_count
        self._dims = self._dim_codecs(self.param.dims, lambda d: False)
        self._value = ValueCodec(name, model.type_by_id(self.param.type_id), id_csv, self.double_fmt)

    @property
    def has_sub_id(self) -> bool:
        return self.sub_count > 1

    def columns(self) -> List[str]:
        cols = ["sub_id"] if self.has_sub_id else []
        return cols + [d.name for d in self.param.dims] + ["param_value"]

    def fields(self, cell: CellParam) -> List[str]:
        row = [str(cell.sub_id)] if self.has_sub_id else []
        return row + self._dims_to_text(cell.dim_ids) + [self._value.to_text(cell.value)]

    def parse(self, row: List[str]) -> CellParam:
        sub_id = 0
        if self.has_sub_id:
            sub_id = _parse_int(row[0], f"sub_id of {self.name}")
            row = row[1:]
        rank = self.param.rank
        return CellParam(
            dim_ids=self._dims_to_ids(row[:rank]),
            value=self._value.to_value(row[rank]),
            sub_id=sub_id,
        )

class ExprCellConverter(CellConverter):
    """
    Output table expressions: expr_name (or expr_id), dims..., expr_value
    """
    def __init__(self, model: ModelMeta, name: str, id_csv: bool = False,
                 double_fmt: str = DEFAULT_DOUBLE_FMT):
        super().__init__(model, name, id_csv, double_fmt)
        self.table = model.table_by_name(name)
        self._dims = self._dim_codecs(self.table.dims, lambda d: d.is_total)
        self._expr_names = {e.expr_id: e.name for e in self.table.exprs}
        self._expr_ids = {e.name: e.expr_id for e in self.table.exprs}

    def columns(self) -> List[str]:
        first = "expr_id" if self.id_csv else "expr_name"
        return [first] + [d.name for d in self.table.dims] + ["expr_value"]

    def fields(self, cell: CellExpr) -> List[str]:
        if cell.expr_id not in self._expr_names:
            raise CellValueError(f"invalid expression id {cell.expr_id} of {self.name}")
        expr = str(cell.expr_id) if self.id_csv else self._expr_names[cell.expr_id]
        value = NULL_TOKEN if cell.value is None else format_float(cell.value, self.double_fmt)
        return [expr] + self._dims_to_text(cell.dim_ids) + [value]

    def parse(self, row: List[str]) -> CellExpr:
        if self.id_csv:
            expr_id = _parse_int(row[0], f"expression id of {self.name}")
            if expr_id not in self._expr_names:
                raise CellValueError(f"invalid expression id {expr_id} of {self.name}")
        else:
            if row[0] not in self._expr_ids:
                raise CellValueError(f"invalid expression {row[0]!r} of {self.name}")
            expr_id = self._expr_ids[row[0]]
        rank = self.table.rank
        return CellExpr(
            expr_id=expr_id,
            dim_ids=self._dims_to_ids(row[1:rank + 1]),
            value=_parse_float(row[rank + 1], f"value of {self.name}"),
        )

class AccCellConverter(CellConverter):
    """
    Output table accumulators: acc_name (or acc_id), sub_id, dims..., acc_value
    """
    suffix = ".acc"

    def __init__(self, model: ModelMeta, name: str, id_csv: bool = False,
                 double_fmt: str = DEFAULT_DOUBLE_FMT):
        super().__init__(model, name, id_csv, double_fmt)
        self.table = model.table_by_name(name)
        self._dims = self._dim_codecs(self.table.dims, lambda d: d.is_total)
        self._acc_names = {a.acc_id: a.name for a in self.table.accs}
        self._acc_ids = {a.name: a.acc_id for a in self.table.accs}

    def columns(self) -> List[str]:
        first = "acc_id" if self.id_csv else "acc_name"
        return [first, "sub_id"] + [d.name for d in self.table.dims] + ["acc_value"]

    def fields(self, cell: CellAcc) -> List[str]:
        if cell.acc_id not in self._acc_names:
            raise CellValueError(f"invalid accumulator id {cell.acc_id} of {self.name}")
        acc = str(cell.acc_id) if self.id_csv else self._acc_names[cell.acc_id]
        value = NULL_TOKEN if cell.value is None else format_float(cell.value, self.double_fmt)
        return [acc, str(cell.sub_id)] + self._dims_to_text(cell.dim_ids) + [value]

    def parse(self, row: List[str]) -> CellAcc:
        if self.id_csv:
            acc_id = _parse_int(row[0], f"accumulator id of {self.name}")
            if acc_id not in self._acc_names:
                raise CellValueError(f"invalid accumulator id {acc_id} of {self.name}")
        else:
            if row[0] not in self._acc_ids:
                raise CellValueError(f"invalid accumulator {row[0]!r} of {self.name}")
            acc_id = self._acc_ids[row[0]]
        rank = self.table.rank
        return CellAcc(
            acc_id=acc_id,
            sub_id=_parse_int(row[1], f"sub_id of {self.name}"),
            dim_ids=self._dims_to_ids(row[2:rank + 2]),
            value=_parse_float(row[rank + 2], f"value of {self.name}"),
        )

class AllAccCellConverter(CellConverter):
    """
    All accumulators of output table in one row: sub_id, dims..., acc0, acc1, ...
    """
    suffix = ".acc-all"

    def __init__(self, model: ModelMeta, name: str, id_csv: bool = False,
                 double_fmt: str = DEFAULT_DOUBLE_FMT):
        super().__init__(model, name, id_csv, double_fmt)
        self.table = model.table_by_name(name)
        self._dims = self._dim_codecs(self.table.dims, lambda d: d.is_total)

    def columns(self) -> List[str]:
        return ["sub_id"] + [d.name for d in self.table.dims] + [a.name for a in self.table.accs]

    def fields(self, cell: CellAllAcc) -> List[str]:
        if len(cell.values) != len(self.table.accs):
            raise CellValueError(
                f"{self.name}: expected {len(self.table.accs)} accumulators, found {len(cell.values)}"
            )
        values = [NULL_TOKEN if v is None else format_float(v, self.double_fmt) for v in cell.values]
        return [str(cell.sub_id)] + self._dims_to_text(cell.dim_ids) + values

    def parse(self, row: List[str]) -> CellAllAcc:
        rank = self.table.rank
        return CellAllAcc(
            sub_id=_parse_int(row[0], f"sub_id of {self.name}"),
            dim_ids=self._dims_to_ids(row[1:rank + 1]),
            values=[_parse_float(s, f"value of {self.name}") for s in row[rank + 1:]],
        )

class MicroCellConverter(CellConverter):
    """
    Microdata entity rows: key, attr0, attr1, ...
    """
    def __init__(self, model: ModelMeta, name: str, id_csv: bool = False,
                 double_fmt: str = DEFAULT_DOUBLE_FMT):
        super().__init__(model, name, id_csv, double_fmt)
        self.entity = model.entity_by_name(name)
        self._dims = []
        self._attrs = [
            ValueCodec(a.name, model.type_by_id(a.type_id), id_csv, self.double_fmt)
            for a in self.entity.attrs
        ]

    def columns(self) -> List[str]:
        return ["key"] + [a.name for a in self.entity.attrs]

    def fields(self, cell: CellMicro) -> List[str]:
        if len(cell.values) != len(self._attrs):
            raise CellValueError(
                f"{self.name}: expected {len(self._attrs)} attributes, found {len(cell.values)}"
            )
        return [str(cell.key)] + [c.to_text(v) for c, v in zip(self._attrs, cell.values)]

    def parse(self, row: List[str]) -> CellMicro:
        return CellMicro(
            key=_parse_int(row[0], f"key of {self.name}"),
            values=[c.to_value(s) for c, s in zip(self._attrs, row[1:])],
        )
