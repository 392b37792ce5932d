# import
## batteries
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple
## package
from dbcopy.copy.archive import unpack_zip
from dbcopy.copy.orchestrator import CopyDriver, MODEL
from dbcopy.copy.to_text import PARAM_DIR, TABLE_DIR, MICRO_DIR
from dbcopy.db.digest import run_value_digest, run_digest
from dbcopy.db.upsert import (
    insert_model, insert_langs, insert_run, insert_workset, insert_task, find_run_by_digest,
    update_run_digest, write_param_cells, write_expr_cells, write_acc_cells, write_micro_cells,
)
from dbcopy.errors import EntityNotFoundError, MissingValuesError, ValidationError
from dbcopy.meta.json_io import from_json_file, list_from_json_file
from dbcopy.meta.model import ModelMeta
from dbcopy.meta.run import LangMeta, LangNote, RunMeta, WorksetMeta, TaskMeta
from dbcopy.text.cells import (
    CellConverter, ParamCellConverter, ExprCellConverter, AccCellConverter, MicroCellConverter,
)
from dbcopy.text.csv_io import read_csv
from dbcopy.text.names import (
    ResolvedEntity, RUN, SET, TASK, resolve_entity, list_metadata_files, sibling_dir,
)

logger = logging.getLogger(__name__)

# functions
def read_notes(in_dir: Path, name: str) -> List[LangNote]:
    """
    Read value notes from name.LANG.md files, sorted by language code
    """
    notes = []
    for p in sorted(in_dir.glob(f"{name}.*.md"), key=lambda x: x.name):
        lang_code = p.name[len(name) + 1:-len(".md")]
        if not lang_code or "." in lang_code:
            continue
        with open(p, 'r', encoding='utf-8-sig') as f:
            notes.append(LangNote(lang_code=lang_code, note=f.read()))
    return notes

def find_csv(in_dir: Path, cvt: CellConverter) -> Tuple[Path, CellConverter]:
    """
    Csv file of the converter, if absent then try the file of the other mode:
    name.csv <-> name.id.csv
    """
    path = in_dir / cvt.file_name()
    if path.is_file():
        return path, cvt
    other = type(cvt)(**_converter_args(cvt, not cvt.id_csv))
    other_path = in_dir / other.file_name()
    if other_path.is_file():
        return other_path, other
    raise EntityNotFoundError("csv file", name=cvt.file_name(), where=str(in_dir))

def _converter_args(cvt: CellConverter, id_csv: bool) -> dict:
    args = {"model": cvt.model, "name": cvt.name, "id_csv": id_csv, "double_fmt": cvt.double_fmt}
    if isinstance(cvt, ParamCellConverter):
        args["sub_count"] = cvt.sub_count
    return args

def read_cells(path: Path, cvt: CellConverter, encoding: Optional[str] = None):
    """Parse csv rows into cells"""
    for row in read_csv(path, cvt.header(), encoding):
        yield cvt.to_cell(row)

def check_model(src: ModelMeta, dst: ModelMeta, source: str) -> None:
    """
    Existing destination model must have the same parameters and output tables as the source
    """
    if [p.name for p in src.params] != [p.name for p in dst.params] or \
            [t.name for t in src.tables] != [t.name for t in dst.tables]:
        raise ValidationError(f"model {dst.name} {dst.model.digest} in database does not match {source}")

# classes
class TextImport(CopyDriver):
    """
    Text to database: model json, runs, worksets and tasks from json and csv files.
    Ids are remapped to new destination ids, names and values are kept.
    """
    is_export = False

    def __init__(self, scope, options, conn):
        super().__init__(scope, options, conn)
        self.in_dir: Optional[Path] = None
        self.model_json: Optional[Path] = None
        self.lang_json: Optional[Path] = None
        self.entities: Dict[str, List[ResolvedEntity]] = {RUN: [], SET: [], TASK: []}
        self.src_model: Optional[ModelMeta] = None
        self.model: Optional[ModelMeta] = None
        self.langs: List[LangMeta] = []
        self.runs: List[Tuple[RunMeta, ResolvedEntity]] = []
        self.worksets: List[Tuple[WorksetMeta, ResolvedEntity]] = []
        self.tasks: List[TaskMeta] = []

    def resolve(self) -> None:
        model_name = self.scope.model_name
        if not model_name:
            raise ValidationError("model name required to copy from text")

        in_dir = Path(self.options.input_dir)
        if self.options.zip:
            unpack_zip(in_dir / f"{model_name}.zip", self.options.output_dir)
            in_dir = Path(self.options.output_dir)
        self.in_dir = in_dir / model_name
        if not self.in_dir.is_dir():
            raise EntityNotFoundError(MODEL, name=model_name, where=str(in_dir))

        self.model_json = self.in_dir / f"{model_name}.model.json"
        if not self.model_json.is_file():
            raise EntityNotFoundError(MODEL, name=model_name, where=str(self.in_dir))
        lang_json = self.in_dir / f"{model_name}.lang.json"
        self.lang_json = lang_json if lang_json.is_file() else None

        if self.scope.kind == MODEL:
            for kind in (RUN, SET, TASK):
                for p in list_metadata_files(self.in_dir, model_name, kind):
                    csv_dir = sibling_dir(p, model_name, kind)
                    self.entities[kind].append(ResolvedEntity(
                        kind=kind, entity_id=None, name=None, json_path=p,
                        csv_dir=csv_dir if csv_dir.is_dir() else None,
                    ))
        else:
            kind = self.scope.kind
            found = resolve_entity(self.in_dir, model_name, kind, self.scope.entity_id, self.scope.entity_name)
            if found.json_path is None:
                raise EntityNotFoundError(f"{kind} metadata", found.entity_id, found.name, where=str(self.in_dir))
            self.entities[kind].append(found)

        logger.info(f"Model {model_name} from text: {self.in_dir}")

    def read_metadata(self) -> None:
        self.src_model = from_json_file(self.model_json, ModelMeta)
        if self.lang_json is not None:
            self.langs = list_from_json_file(self.lang_json, LangMeta)
        for e in self.entities[RUN]:
            self.runs.append((from_json_file(e.json_path, RunMeta), e))
        for e in self.entities[SET]:
            self.worksets.append((from_json_file(e.json_path, WorksetMeta), e))
        for e in self.entities[TASK]:
            self.tasks.append(from_json_file(e.json_path, TaskMeta))
        if self.scope.kind == TASK:
            self._read_task_members(self.tasks[0])

    def _read_task_members(self, task: TaskMeta) -> None:
        """
        Worksets and runs of the task found in the input directory.
        Missing ones are expected to exist in the destination database.
        """
        model_name = self.scope.model_name
        for name in task.set_names():
            try:
                e = resolve_entity(self.in_dir, model_name, SET, name=name)
            except EntityNotFoundError:
                logger.warning(f"Task {task.name}: workset not found: {name}")
                continue
            if e.json_path is not None:
                self.worksets.append((from_json_file(e.json_path, WorksetMeta), e))

        digests = set(task.run_digests())
        if not digests:
            return
        for p in list_metadata_files(self.in_dir, model_name, RUN):
            run = from_json_file(p, RunMeta)
            if run.run_digest not in digests:
                continue
            csv_dir = sibling_dir(p, model_name, RUN)
            self.runs.append((run, ResolvedEntity(
                kind=RUN, entity_id=run.run_id, name=run.name, json_path=p,
                csv_dir=csv_dir if csv_dir.is_dir() else None,
            )))

    def sequences(self) -> None:
        self.model = insert_model(self.conn, self.src_model)
        check_model(self.src_model, self.model, "model json")
        if self.langs:
            insert_langs(self.conn, self.langs)

        for run, e in self.runs:
            self._import_run(run, e)

        set_ids: Dict[str, int] = {}
        for ws, e in self.worksets:
            set_ids[ws.name] = self._import_workset(ws, e)

        for task in self.tasks:
            insert_task(self.conn, self.model, task, set_ids)
            self.count("tasks")

    def persist(self) -> None:
        self.conn.commit()

    def abort(self) -> None:
        self.conn.rollback()

    def _import_run(self, run: RunMeta, e: ResolvedEntity) -> None:
        model = self.model
        opts = self.options
        logger.info(f"Run {run.run_id} {run.name}")

        if run.run_digest and find_run_by_digest(self.conn, model, run.run_digest) is not None:
            logger.warning(f"Run {run.name} already exists, digest: {run.run_digest}, skip it")
            self.count("runs_skipped")
            return
        if e.csv_dir is None:
            raise MissingValuesError(f"missing run parameter values: run {run.name}, directory not found")

        param_dir = e.csv_dir / PARAM_DIR
        run = run.model_copy(deep=True)
        for param in model.params:
            rp = run.param(param.name)
            if rp is None:
                raise MissingValuesError(f"missing run parameter values: {param.name}, run: {run.name}")
            if not rp.txt:
                rp.txt = read_notes(param_dir, param.name)

        micro_dir = e.csv_dir / MICRO_DIR
        micro = []
        for run_entity in run.entities:
            cvt = MicroCellConverter(model, run_entity.name, opts.id_csv, opts.double_format)
            try:
                micro.append(find_csv(micro_dir, cvt))
            except EntityNotFoundError:
                logger.warning(f"Run {run.name}: microdata not found: {run_entity.name}")
                micro.append(None)
        run.entities = [x for x, m in zip(run.entities, micro) if m is not None]
        micro = [m for m in micro if m is not None]

        run_id = insert_run(self.conn, model, run)

        for param in model.params:
            cvt = ParamCellConverter(model, param.name, opts.id_csv, opts.double_format, run.param(param.name).sub_count)
            try:
                path, cvt = find_csv(param_dir, cvt)
            except EntityNotFoundError:
                raise MissingValuesError(f"missing run parameter values: {param.name}, run: {run.name}")
            write_param_cells(self.conn, param, read_cells(path, cvt, opts.encoding), run_id=run_id)

        table_dir = e.csv_dir / TABLE_DIR
        for table_name in run.tables:
            table = model.table_by_name(table_name)
            path, cvt = find_csv(table_dir, ExprCellConverter(model, table.name, opts.id_csv, opts.double_format))
            write_expr_cells(self.conn, table, run_id, read_cells(path, cvt, opts.encoding))
            try:
                path, cvt = find_csv(table_dir, AccCellConverter(model, table.name, opts.id_csv, opts.double_format))
            except EntityNotFoundError:
                logger.debug(f"Accumulators not found: {table.name}")
                continue
            write_acc_cells(self.conn, table, run_id, read_cells(path, cvt, opts.encoding))

        for (path, cvt), run_entity in zip(micro, run.entities):
            write_micro_cells(self.conn, model.entity_by_name(run_entity.name), run_id,
                              read_cells(path, cvt, opts.encoding))

        value_digest = run_value_digest(self.conn, model, run, run_id, opts.double_format)
        if run.value_digest and run.value_digest != value_digest:
            logger.debug(f"Run {run.name}: value digest recalculated: {value_digest}")
        update_run_digest(self.conn, run_id, run.run_digest or run_digest(model, run, value_digest), value_digest)
        self.count("runs")

    def _import_workset(self, ws: WorksetMeta, e: ResolvedEntity) -> int:
        model = self.model
        opts = self.options
        logger.info(f"Workset {ws.set_id} {ws.name}")

        set_dir = Path(opts.param_dir) if opts.param_dir else e.csv_dir
        if set_dir is None and ws.params:
            raise MissingValuesError(f"missing workset parameter values: workset {ws.name}, directory not found")

        ws = ws.model_copy(deep=True)
        for wp in ws.params:
            if not wp.txt:
                wp.txt = read_notes(set_dir, wp.name)

        set_id = insert_workset(self.conn, model, ws)
        for wp in ws.params:
            param = model.param_by_name(wp.name)
            cvt = ParamCellConverter(model, param.name, opts.id_csv, opts.double_format, wp.sub_count)
            try:
                path, cvt = find_csv(set_dir, cvt)
            except EntityNotFoundError:
                raise MissingValuesError(f"missing workset parameter values: {param.name}, workset: {ws.name}")
            write_param_cells(self.conn, param, read_cells(path, cvt, opts.encoding), set_id=set_id)
        self.count("worksets")
        return set_id
