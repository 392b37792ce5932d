# import
## batteries
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional
## package
from dbcopy.copy.archive import pack_zip
from dbcopy.copy.orchestrator import CopyDriver, MODEL, model_out_dir
from dbcopy.copy.to_text import write_workset_values
from dbcopy.db.get import (
    get_model_dic, list_entities, get_model, get_langs, get_profiles, get_run_list,
    get_workset_list, get_task_list, read_param_cells, read_expr_cells, read_acc_cells,
    read_all_acc_cells, read_micro_cells,
)
from dbcopy.errors import EntityNotFoundError, MissingValuesError, ValidationError
from dbcopy.meta.model import ModelMeta
from dbcopy.meta.run import STATUS_SUCCESS, LangMeta, ProfileMeta, RunMeta, WorksetMeta, TaskMeta
from dbcopy.text.cells import (
    ParamCellConverter, ExprCellConverter, AccCellConverter, AllAccCellConverter, MicroCellConverter,
)
from dbcopy.text.csv_io import write_csv
from dbcopy.text.names import EntityLocator, RUN, SET, scope_slugs, entity_dir_name
from dbcopy.text.sequencer import (
    RowSequence, TwoLevelSequence, ThreeLevelSequence, null_if_none, ordered_pairs,
)

logger = logging.getLogger(__name__)

ALL_RUNS_DIR = "all_model_runs"

# functions
def _row(*values) -> List[str]:
    return [null_if_none(v) for v in values]

# classes
class CsvExport(CopyDriver):
    """
    Database to flat csv: one csv file per metadata table plus values of all runs
    in all-in-one csv files, where the first column is run id or run name.
    Workset parameters are written into set.name directories, one csv file per parameter.
    """
    is_export = True

    def __init__(self, scope, options, conn):
        super().__init__(scope, options, conn)
        self.model: Optional[ModelMeta] = None
        self.out_dir: Optional[Path] = None
        self.model_digest: Optional[str] = None
        self.run_ids: List[int] = []
        self.langs: List[LangMeta] = []
        self.profiles: List[ProfileMeta] = []
        self.runs: List[RunMeta] = []
        self.worksets: List[WorksetMeta] = []
        self.tasks: List[TaskMeta] = []
        self.zip_path: Optional[Path] = None

    def resolve(self) -> None:
        if self.scope.kind not in (MODEL, RUN):
            raise ValidationError(f"csv copy of {self.scope.kind} is not supported, use model or run")

        model_dic = get_model_dic(self.conn, self.scope.model_name, self.scope.model_digest)
        if self.scope.kind == RUN:
            found = list_entities(self.conn, model_dic.model_id, RUN, self.scope.entity_id, self.scope.entity_name)
            if not found:
                raise EntityNotFoundError(RUN, self.scope.entity_id, self.scope.entity_name,
                                          where=f"model {model_dic.name}")
            if len(found) > 1:
                logger.warning(
                    f"Found multiple run named {self.scope.entity_name}: ids {[x.entity_id for x in found]}, "
                    f"using: {found[0].entity_id}"
                )
            self.run_ids = [found[0].entity_id]
        else:
            self.run_ids = [x.entity_id for x in list_entities(self.conn, model_dic.model_id, RUN, status=STATUS_SUCCESS)]

        self.out_dir = model_out_dir(self.options, model_dic.name)
        self.model_digest = model_dic.digest
        logger.info(f"Model {model_dic.name} to csv: {self.out_dir}")

    def read_metadata(self) -> None:
        self.model = get_model(self.conn, model_digest=self.model_digest)
        for run_id in self.run_ids:
            self.runs += get_run_list(self.conn, self.model, run_id=run_id)
        if self.scope.kind == MODEL:
            self.langs = get_langs(self.conn)
            self.profiles = get_profiles(self.conn)
            self.worksets = get_workset_list(self.conn, self.model)
            self.tasks = get_task_list(self.conn, self.model)

    def sequences(self) -> None:
        self.out_dir.mkdir(parents=True, exist_ok=True)
        self._write_model()
        self._write_langs()
        self._write_runs()
        self._write_worksets()
        self._write_tasks()
        self._write_values()

    def persist(self) -> None:
        if self.options.zip:
            self.zip_path = pack_zip(self.out_dir)

    def summary(self):
        result = super().summary()
        result["output_path"] = str(self.zip_path or self.out_dir)
        return result

    def _write(self, name: str, columns: List[str], rows: Iterable[List[str]]) -> int:
        n = write_csv(self.out_dir / f"{name}.csv", columns, rows, self.registry, self.options.utf8_bom)
        logger.debug(f"{name}.csv: {n} rows")
        self.count("files")
        return n

    def _write_model(self) -> None:
        model = self.model
        m = model.model
        mid = m.model_id

        self._write("model_dic",
                    ["model_id", "model_name", "model_digest", "model_type", "model_ver", "create_dt", "default_lang_code"],
                    RowSequence([m], lambda x: _row(x.model_id, x.name, x.digest, x.model_type, x.version,
                                                    x.create_dt, x.default_lang_code)))
        self._write("type_dic",
                    ["model_id", "model_type_id", "type_name", "type_digest", "dic_id", "total_enum_id"],
                    RowSequence(model.types, lambda t: _row(mid, t.type_id, t.name, t.digest, t.dic_id, t.total_enum_id)))
        self._write("type_enum_lst",
                    ["model_id", "model_type_id", "enum_id", "enum_name"],
                    TwoLevelSequence(model.types, lambda t: t.enums,
                                     lambda t, e: _row(mid, t.type_id, e.enum_id, e.name)))

        self._write("parameter_dic",
                    ["model_id", "model_parameter_id", "parameter_name", "parameter_digest", "db_run_table",
                     "db_set_table", "parameter_rank", "model_type_id", "is_hidden", "num_cumulated"],
                    RowSequence(model.params, lambda p: _row(mid, p.param_id, p.name, p.digest, p.db_run_table,
                                                             p.db_set_table, p.rank, p.type_id, p.is_hidden,
                                                             p.num_cumulated)))
        self._write("parameter_dims",
                    ["model_id", "model_parameter_id", "dim_id", "dim_name", "model_type_id"],
                    TwoLevelSequence(model.params, lambda p: p.dims,
                                     lambda p, d: _row(mid, p.param_id, d.dim_id, d.name, d.type_id)))

        self._write("table_dic",
                    ["model_id", "model_table_id", "table_name", "table_digest", "is_user", "table_rank",
                     "is_sparse", "db_expr_table", "db_acc_table", "expr_dim_pos"],
                    RowSequence(model.tables, lambda t: _row(mid, t.table_id, t.name, t.digest, t.is_user, t.rank,
                                                             t.is_sparse, t.db_expr_table, t.db_acc_table,
                                                             t.expr_pos)))
        self._write("table_dims",
                    ["model_id", "model_table_id", "dim_id", "dim_name", "model_type_id", "is_total", "dim_size"],
                    TwoLevelSequence(model.tables, lambda t: t.dims,
                                     lambda t, d: _row(mid, t.table_id, d.dim_id, d.name, d.type_id,
                                                       d.is_total, d.dim_size)))
        self._write("table_acc",
                    ["model_id", "model_table_id", "acc_id", "acc_name", "is_derived", "acc_src"],
                    TwoLevelSequence(model.tables, lambda t: t.accs,
                                     lambda t, a: _row(mid, t.table_id, a.acc_id, a.name, a.is_derived, a.acc_src)))
        self._write("table_expr",
                    ["model_id", "model_table_id", "expr_id", "expr_name", "expr_decimals", "expr_src"],
                    TwoLevelSequence(model.tables, lambda t: t.exprs,
                                     lambda t, e: _row(mid, t.table_id, e.expr_id, e.name, e.decimals, e.expr_src)))

        self._write("entity_dic",
                    ["model_id", "model_entity_id", "entity_name", "entity_digest", "db_entity_table"],
                    RowSequence(model.entities, lambda e: _row(mid, e.entity_id, e.name, e.digest, e.db_entity_table)))
        self._write("entity_attr",
                    ["model_id", "model_entity_id", "attr_id", "attr_name", "model_type_id", "is_internal"],
                    TwoLevelSequence(model.entities, lambda e: e.attrs,
                                     lambda e, a: _row(mid, e.entity_id, a.attr_id, a.name, a.type_id, a.is_internal)))

    def _write_langs(self) -> None:
        if self.scope.kind != MODEL:
            return
        self._write("lang_lst", ["lang_id", "lang_code", "lang_name"],
                    RowSequence(self.langs, lambda x: _row(x.lang_id, x.code, x.name)))
        self._write("lang_word", ["lang_id", "word_code", "word_value"],
                    TwoLevelSequence(self.langs, lambda x: ordered_pairs(x.words),
                                     lambda x, kv: _row(x.lang_id, kv[0], kv[1])))
        self._write("profile_lst", ["profile_name"],
                    RowSequence(self.profiles, lambda p: _row(p.name)))
        self._write("profile_option", ["profile_name", "option_key", "option_value"],
                    TwoLevelSequence(self.profiles, lambda p: ordered_pairs(p.options),
                                     lambda p, kv: _row(p.name, kv[0], kv[1])))

    def _write_runs(self) -> None:
        model = self.model
        mid = model.model.model_id
        runs = self.runs

        self._write("run_lst",
                    ["run_id", "model_id", "run_name", "sub_count", "sub_started", "sub_completed", "create_dt",
                     "status", "update_dt", "run_digest", "value_digest", "run_stamp"],
                    RowSequence(runs, lambda r: _row(r.run_id, mid, r.name, r.sub_count, r.sub_started,
                                                     r.sub_completed, r.create_dt, r.status, r.update_dt,
                                                     r.run_digest or None, r.value_digest or None, r.run_stamp)))
        self._write("run_txt", ["run_id", "lang_code", "descr", "note"],
                    TwoLevelSequence(runs, lambda r: r.txt,
                                     lambda r, t: _row(r.run_id, t.lang_code, t.descr, t.note)))
        self._write("run_option", ["run_id", "option_key", "option_value"],
                    TwoLevelSequence(runs, lambda r: ordered_pairs(r.options),
                                     lambda r, kv: _row(r.run_id, kv[0], kv[1])))
        self._write("run_parameter", ["run_id", "model_parameter_id", "sub_count"],
                    TwoLevelSequence(runs, lambda r: r.params,
                                     lambda r, p: _row(r.run_id, model.param_by_name(p.name).param_id, p.sub_count)))
        self._write("run_parameter_txt", ["run_id", "model_parameter_id", "lang_code", "note"],
                    ThreeLevelSequence(runs, lambda r: r.params, lambda p: p.txt,
                                       lambda r, p, t: _row(r.run_id, model.param_by_name(p.name).param_id,
                                                            t.lang_code, t.note)))
        self._write("run_table", ["run_id", "model_table_id"],
                    TwoLevelSequence(runs, lambda r: r.tables,
                                     lambda r, t: _row(r.run_id, model.table_by_name(t).table_id)))
        self._write("run_entity", ["run_id", "model_entity_id", "gen_digest", "row_count"],
                    TwoLevelSequence(runs, lambda r: r.entities,
                                     lambda r, e: _row(r.run_id, model.entity_by_name(e.name).entity_id,
                                                       e.gen_digest, e.row_count)))
        self.count("runs", len(runs))

    def _run_id_of(self, digest: Optional[str]) -> Optional[int]:
        for r in self.runs:
            if digest and r.run_digest == digest:
                return r.run_id
        return None

    def _set_id_of(self, name: Optional[str]) -> Optional[int]:
        for ws in self.worksets:
            if name and ws.name == name:
                return ws.set_id
        return None

    def _write_worksets(self) -> None:
        if self.scope.kind != MODEL:
            return
        model = self.model
        mid = model.model.model_id
        sets = self.worksets

        self._write("workset_lst", ["set_id", "model_id", "set_name", "base_run_id", "is_readonly", "update_dt"],
                    RowSequence(sets, lambda s: _row(s.set_id, mid, s.name, self._run_id_of(s.base_run_digest),
                                                     s.is_readonly, s.update_dt)))
        self._write("workset_txt", ["set_id", "lang_code", "descr", "note"],
                    TwoLevelSequence(sets, lambda s: s.txt,
                                     lambda s, t: _row(s.set_id, t.lang_code, t.descr, t.note)))
        self._write("workset_parameter", ["set_id", "model_parameter_id", "sub_count", "default_sub_id"],
                    TwoLevelSequence(sets, lambda s: s.params,
                                     lambda s, p: _row(s.set_id, model.param_by_name(p.name).param_id,
                                                       p.sub_count, p.default_sub_id)))
        self._write("workset_parameter_txt", ["set_id", "model_parameter_id", "lang_code", "note"],
                    ThreeLevelSequence(sets, lambda s: s.params, lambda p: p.txt,
                                       lambda s, p, t: _row(s.set_id, model.param_by_name(p.name).param_id,
                                                            t.lang_code, t.note)))

        opts = self.options
        slugs = scope_slugs([EntityLocator(SET, s.set_id, s.name) for s in sets], opts.id_names)
        for ws in sets:
            logger.info(f"Workset {ws.set_id} {ws.name}")
            write_workset_values(
                self.conn, model, ws, self.out_dir / entity_dir_name(SET, slugs[ws.set_id]), self.registry,
                opts.double_format, opts.id_csv, opts.utf8_bom,
            )
        self.count("worksets", len(sets))

    def _write_tasks(self) -> None:
        if self.scope.kind != MODEL:
            return
        mid = self.model.model.model_id
        tasks = self.tasks

        self._write("task_lst", ["task_id", "model_id", "task_name"],
                    RowSequence(tasks, lambda t: _row(t.task_id, mid, t.name)))
        self._write("task_txt", ["task_id", "lang_code", "descr", "note"],
                    TwoLevelSequence(tasks, lambda t: t.txt,
                                     lambda t, x: _row(t.task_id, x.lang_code, x.descr, x.note)))
        self._write("task_set", ["task_id", "set_id"],
                    TwoLevelSequence(tasks, lambda t: t.sets,
                                     lambda t, name: _row(t.task_id, self._set_id_of(name))))
        self._write("task_run_lst",
                    ["task_run_id", "task_id", "run_name", "sub_count", "create_dt", "status", "update_dt", "run_stamp"],
                    TwoLevelSequence(tasks, lambda t: t.task_runs,
                                     lambda t, tr: _row(tr.task_run_id, t.task_id, tr.name, tr.sub_count,
                                                        tr.create_dt, tr.status, tr.update_dt, tr.run_stamp)))
        self._write("task_run_set", ["task_run_id", "item_id", "run_id", "set_id", "task_id"],
                    ThreeLevelSequence(tasks, lambda t: t.task_runs, lambda tr: list(enumerate(tr.items)),
                                       lambda t, tr, it: _row(tr.task_run_id, it[0], self._run_id_of(it[1].run_digest),
                                                              self._set_id_of(it[1].set_name), t.task_id)))
        self.count("tasks", len(tasks))

    def _write_values(self) -> None:
        """
        Values of all runs, one file per parameter, output table and entity.
        Each run appends its rows to the same file, header is written once.
        """
        if not self.runs:
            return
        model = self.model
        opts = self.options
        out_dir = self.out_dir / ALL_RUNS_DIR
        lead_col = "run_id" if opts.id_csv else "run_name"

        def _lead(run: RunMeta):
            return run.run_id if opts.id_csv else run.name

        sub_counts: Dict[str, int] = {}
        for run in self.runs:
            for rp in run.params:
                sub_counts[rp.name] = max(sub_counts.get(rp.name, 1), rp.sub_count)

        logger.info(f"All runs values: {len(self.runs)} runs into {out_dir}")
        for param in model.params:
            base = ParamCellConverter(model, param.name, opts.id_csv, opts.double_format, sub_counts.get(param.name, 1))
            for run in self.runs:
                if run.param(param.name) is None:
                    raise MissingValuesError(f"missing run parameter values: {param.name}, run: {run.name}")
                cvt = base.with_leading(lead_col, _lead(run))
                n = write_csv(out_dir / base.file_name(), cvt.header(),
                              (cvt.to_row(c) for c in read_param_cells(self.conn, param, run_id=run.run_id)),
                              self.registry, opts.utf8_bom)
                if n <= 0:
                    raise MissingValuesError(f"missing run parameter values: {param.name}, run: {run.name}")

        for table in model.tables:
            converters = [(ExprCellConverter(model, table.name, opts.id_csv, opts.double_format), read_expr_cells)]
            if not opts.no_acc:
                converters += [
                    (AccCellConverter(model, table.name, opts.id_csv, opts.double_format), read_acc_cells),
                    (AllAccCellConverter(model, table.name, opts.id_csv, opts.double_format), read_all_acc_cells),
                ]
            for base, read_cells in converters:
                for run in self.runs:
                    if table.name not in run.tables:
                        continue
                    cvt = base.with_leading(lead_col, _lead(run))
                    write_csv(out_dir / base.file_name(), cvt.header(),
                              (cvt.to_row(c) for c in read_cells(self.conn, table, run.run_id)),
                              self.registry, opts.utf8_bom)

        if opts.no_microdata:
            return
        for entity in model.entities:
            base = MicroCellConverter(model, entity.name, opts.id_csv, opts.double_format)
            for run in self.runs:
                if entity.name not in [x.name for x in run.entities]:
                    continue
                cvt = base.with_leading(lead_col, _lead(run))
                write_csv(out_dir / base.file_name(), cvt.header(),
                          (cvt.to_row(c) for c in read_micro_cells(self.conn, entity, run.run_id)),
                          self.registry, opts.utf8_bom)
