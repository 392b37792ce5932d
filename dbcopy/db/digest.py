# import
## batteries
import hashlib
## package
from dbcopy.db.get import read_param_cells, read_expr_cells
from dbcopy.meta.model import ModelMeta
from dbcopy.meta.run import RunMeta
from dbcopy.text.cells import DEFAULT_DOUBLE_FMT, ParamCellConverter, ExprCellConverter


# functions
def _update(h, fields) -> None:
    h.update((",".join(fields) + "\n").encode("utf-8"))

def run_value_digest(conn, model: ModelMeta, run: RunMeta, run_id: int,
                     double_fmt: str = DEFAULT_DOUBLE_FMT) -> str:
    """
    md5 of run parameter and output table values, as numeric csv rows
    formatted with double_fmt, parameters and tables in model order
    """
    h = hashlib.md5()
    for param in model.params:
        rp = run.param(param.name)
        cvt = ParamCellConverter(model, param.name, id_csv=True, double_fmt=double_fmt,
                                 sub_count=rp.sub_count if rp else 1)
        _update(h, [param.name] + cvt.header())
        for cell in read_param_cells(conn, param, run_id=run_id):
            _update(h, cvt.to_row(cell))

    for table in model.tables:
        if table.name not in run.tables:
            continue
        cvt = ExprCellConverter(model, table.name, id_csv=True, double_fmt=double_fmt)
        _update(h, [table.name] + cvt.header())
        for cell in read_expr_cells(conn, table, run_id):
            _update(h, cvt.to_row(cell))
    return h.hexdigest()

def run_digest(model: ModelMeta, run: RunMeta, value_digest: str) -> str:
    """md5 of model digest, run name, sub-value count and value digest"""
    h = hashlib.md5()
    _update(h, [model.model.digest, run.name, str(run.sub_count), value_digest])
    return h.hexdigest()
