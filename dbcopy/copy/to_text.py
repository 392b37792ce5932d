# import
## batteries
import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple
## package
from dbcopy.copy.archive import pack_zip
from dbcopy.copy.orchestrator import CopyDriver, MODEL, model_out_dir
from dbcopy.db.get import (
    get_model_dic, list_entities, get_model, get_langs, get_run_list, get_workset_list,
    get_task_list, get_task_members, read_param_cells, read_expr_cells, read_acc_cells, read_micro_cells,
)
from dbcopy.errors import EntityNotFoundError, MissingValuesError
from dbcopy.meta.json_io import to_json_file
from dbcopy.meta.model import ModelDic, ModelMeta
from dbcopy.meta.run import STATUS_SUCCESS, LangMeta, LangNote, RunMeta, WorksetMeta, TaskMeta
from dbcopy.text.cells import ParamCellConverter, ExprCellConverter, AccCellConverter, MicroCellConverter
from dbcopy.text.csv_io import FileRegistry, write_csv
from dbcopy.text.names import (
    EntityLocator, RUN, SET, TASK, scope_slugs, entity_dir_name, metadata_file_name,
)

logger = logging.getLogger(__name__)

PARAM_DIR = "parameters"
TABLE_DIR = "output-tables"
MICRO_DIR = "microdata"

# functions
def write_notes(out_dir: Path, name: str, txt: List[LangNote]) -> int:
    """
    Write value notes into name.LANG.md files, absent notes are not written
    """
    n = 0
    for t in txt:
        if t.note is None:
            continue
        out_dir.mkdir(parents=True, exist_ok=True)
        with open(out_dir / f"{name}.{t.lang_code}.md", 'w', encoding='utf-8') as f:
            f.write(t.note)
        n += 1
    return n

def write_run_values(conn, model: ModelMeta, run: RunMeta, run_dir: Path, registry: FileRegistry,
                     double_fmt: str, id_csv: bool = False, utf8_bom: bool = False,
                     no_acc: bool = False, no_microdata: bool = False) -> None:
    """
    Write run parameters, output tables and microdata into csv files under run_dir.

    Raises:
        MissingValuesError: model parameter not in the run or has no values
    """
    param_dir = run_dir / PARAM_DIR
    logger.info(f"  Parameters: {len(model.params)}")
    for param in model.params:
        rp = run.param(param.name)
        if rp is None:
            raise MissingValuesError(f"missing run parameter values: {param.name}, run: {run.name}")
        cvt = ParamCellConverter(model, param.name, id_csv, double_fmt, rp.sub_count)
        n = write_csv(
            param_dir / cvt.file_name(),
            cvt.header(),
            (cvt.to_row(c) for c in read_param_cells(conn, param, run_id=run.run_id)),
            registry, utf8_bom,
        )
        if n <= 0:
            raise MissingValuesError(f"missing run parameter values: {param.name}, run: {run.name}")
        write_notes(param_dir, param.name, rp.txt)

    table_dir = run_dir / TABLE_DIR
    logger.info(f"  Output tables: {len(run.tables)}")
    for table_name in run.tables:
        table = model.table_by_name(table_name)
        cvt = ExprCellConverter(model, table.name, id_csv, double_fmt)
        write_csv(
            table_dir / cvt.file_name(),
            cvt.header(),
            (cvt.to_row(c) for c in read_expr_cells(conn, table, run.run_id)),
            registry, utf8_bom,
        )
        if not no_acc:
            acc = AccCellConverter(model, table.name, id_csv, double_fmt)
            write_csv(
                table_dir / acc.file_name(),
                acc.header(),
                (acc.to_row(c) for c in read_acc_cells(conn, table, run.run_id)),
                registry, utf8_bom,
            )

    if not no_microdata and run.entities:
        micro_dir = run_dir / MICRO_DIR
        logger.info(f"  Microdata: {len(run.entities)}")
        for run_entity in run.entities:
            entity = model.entity_by_name(run_entity.name)
            cvt = MicroCellConverter(model, entity.name, id_csv, double_fmt)
            write_csv(
                micro_dir / cvt.file_name(),
                cvt.header(),
                (cvt.to_row(c) for c in read_micro_cells(conn, entity, run.run_id)),
                registry, utf8_bom,
            )

def write_workset_values(conn, model: ModelMeta, ws: WorksetMeta, set_dir: Path, registry: FileRegistry,
                         double_fmt: str, id_csv: bool = False, utf8_bom: bool = False) -> None:
    """
    Write workset parameters into csv files, workset may contain only some of model parameters
    """
    logger.info(f"  Parameters: {len(ws.params)}")
    for wp in ws.params:
        param = model.param_by_name(wp.name)
        cvt = ParamCellConverter(model, param.name, id_csv, double_fmt, wp.sub_count)
        n = write_csv(
            set_dir / cvt.file_name(),
            cvt.header(),
            (cvt.to_row(c) for c in read_param_cells(conn, param, set_id=ws.set_id)),
            registry, utf8_bom,
        )
        if n <= 0:
            raise MissingValuesError(f"missing workset parameter values: {param.name}, workset: {ws.name}")
        write_notes(set_dir, param.name, wp.txt)

def scope_locators(conn, scope) -> Tuple[ModelDic, Dict[str, List[EntityLocator]]]:
    """
    Model and entities to copy out of the database.

    Model scope is all completed runs, all worksets and tasks. Run, workset or task scope
    is the first entity found by id or name, a task goes together with its worksets and runs.

    Args:
        conn: Source database connection
        scope: CopyScope
    Returns:
        Model dictionary row and entity locators by kind: run, set, task
    Raises:
        EntityNotFoundError: model or entity not in database
    """
    model_dic = get_model_dic(conn, scope.model_name, scope.model_digest)
    model_id = model_dic.model_id
    locators: Dict[str, List[EntityLocator]] = {RUN: [], SET: [], TASK: []}

    if scope.kind == MODEL:
        locators[RUN] = list_entities(conn, model_id, RUN, status=STATUS_SUCCESS)
        locators[SET] = list_entities(conn, model_id, SET)
        locators[TASK] = list_entities(conn, model_id, TASK)
        return model_dic, locators

    kind = scope.kind
    found = list_entities(conn, model_id, kind, scope.entity_id, scope.entity_name)
    if not found:
        raise EntityNotFoundError(kind, scope.entity_id, scope.entity_name, where=f"model {model_dic.name}")
    if len(found) > 1:
        logger.warning(
            f"Found multiple {kind} named {scope.entity_name}: ids {[x.entity_id for x in found]}, "
            f"using: {found[0].entity_id}"
        )
    locators[kind] = found[:1]
    if kind != TASK:
        return model_dic, locators

    task = found[0]
    set_ids, run_ids = get_task_members(conn, task.entity_id)
    for set_id in set_ids:
        locators[SET] += list_entities(conn, model_id, SET, entity_id=set_id)
    for run_id in run_ids:
        done = list_entities(conn, model_id, RUN, entity_id=run_id, status=STATUS_SUCCESS)
        if not done:
            logger.warning(f"Task {task.name}: run {run_id} is not completed, skip it")
        locators[RUN] += done
    logger.info(f"Task {task.name}: worksets {len(locators[SET])}, runs {len(locators[RUN])}")
    return model_dic, locators

# classes
class TextExport(CopyDriver):
    """
    Database to text: model json, run and workset json plus csv values, task json.
    Files are written into output_dir/modelName, optionally packed into modelName.zip
    """
    is_export = True

    def __init__(self, scope, options, conn):
        super().__init__(scope, options, conn)
        self.model_dic: Optional[ModelDic] = None
        self.model: Optional[ModelMeta] = None
        self.out_dir: Optional[Path] = None
        self.locators: Dict[str, List[EntityLocator]] = {RUN: [], SET: [], TASK: []}
        self.slugs: Dict[str, Dict[int, str]] = {}
        self.langs: List[LangMeta] = []
        self.runs: List[RunMeta] = []
        self.worksets: List[WorksetMeta] = []
        self.tasks: List[TaskMeta] = []
        self.zip_path: Optional[Path] = None

    def resolve(self) -> None:
        self.model_dic, self.locators = scope_locators(self.conn, self.scope)
        for kind, locs in self.locators.items():
            self.slugs[kind] = scope_slugs(locs, self.options.id_names)
        self.out_dir = model_out_dir(self.options, self.model_dic.name)
        logger.info(f"Model {self.model_dic.name} to text: {self.out_dir}")

    def read_metadata(self) -> None:
        self.model = get_model(self.conn, model_digest=self.model_dic.digest)
        for loc in self.locators[RUN]:
            self.runs += get_run_list(self.conn, self.model, run_id=loc.entity_id)
        for loc in self.locators[SET]:
            self.worksets += get_workset_list(self.conn, self.model, set_id=loc.entity_id)
        for loc in self.locators[TASK]:
            self.tasks += get_task_list(self.conn, self.model, task_id=loc.entity_id)
        if self.scope.kind == MODEL:
            self.langs = get_langs(self.conn)

    def sequences(self) -> None:
        model = self.model
        opts = self.options
        self.out_dir.mkdir(parents=True, exist_ok=True)

        to_json_file(self.out_dir / f"{model.name}.model.json", model)
        if self.scope.kind == MODEL:
            to_json_file(self.out_dir / f"{model.name}.lang.json", self.langs)

        for run in self.runs:
            slug = self.slugs[RUN][run.run_id]
            logger.info(f"Run {run.run_id} {run.name}")
            write_run_values(
                self.conn, model, run, self.out_dir / entity_dir_name(RUN, slug), self.registry,
                opts.double_format, opts.id_csv, opts.utf8_bom, opts.no_acc, opts.no_microdata,
            )
            to_json_file(self.out_dir / metadata_file_name(model.name, RUN, slug), run)
            self.count("runs")

        for ws in self.worksets:
            slug = self.slugs[SET][ws.set_id]
            logger.info(f"Workset {ws.set_id} {ws.name}")
            write_workset_values(
                self.conn, model, ws, self.out_dir / entity_dir_name(SET, slug), self.registry,
                opts.double_format, opts.id_csv, opts.utf8_bom,
            )
            to_json_file(self.out_dir / metadata_file_name(model.name, SET, slug), ws)
            self.count("worksets")

        for task in self.tasks:
            slug = self.slugs[TASK][task.task_id]
            logger.info(f"Task {task.task_id} {task.name}")
            to_json_file(self.out_dir / metadata_file_name(model.name, TASK, slug), task)
            self.count("tasks")

    def persist(self) -> None:
        if self.options.zip:
            self.zip_path = pack_zip(self.out_dir)

    def summary(self):
        result = super().summary()
        result["output_path"] = str(self.zip_path or self.out_dir)
        return result
