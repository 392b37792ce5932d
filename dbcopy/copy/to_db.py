# import
## batteries
import logging
from typing import Dict, List, Optional
## package
from dbcopy.copy.orchestrator import CopyDriver, MODEL
from dbcopy.copy.from_text import check_model
from dbcopy.copy.to_text import scope_locators
from dbcopy.db.digest import run_value_digest, run_digest
from dbcopy.db.get import (
    get_model, get_langs, get_profiles, get_run_list, get_workset_list, get_task_list,
    read_param_cells, read_expr_cells, read_acc_cells, read_micro_cells,
)
from dbcopy.db.upsert import (
    insert_model, insert_langs, insert_profiles, insert_run, insert_workset, insert_task,
    find_run_by_digest, update_run_digest, write_param_cells, write_expr_cells, write_acc_cells,
    write_micro_cells,
)
from dbcopy.errors import MissingValuesError
from dbcopy.meta.model import ModelDic, ModelMeta
from dbcopy.meta.run import LangMeta, ProfileMeta, RunMeta, WorksetMeta, TaskMeta
from dbcopy.text.names import EntityLocator, RUN, SET, TASK

logger = logging.getLogger(__name__)

# classes
class DbCopy(CopyDriver):
    """
    Database to database: model, runs, worksets and tasks are inserted into the destination
    database with new ids, names, digests and values are kept.
    Runs already in destination (same run digest) are skipped.
    All destination changes are done in one transaction.

    Args:
        scope: What to copy
        options: Copy options, value formats are not used
        conn: Source database connection
        dst_conn: Destination database connection
    """
    is_export = True

    def __init__(self, scope, options, conn, dst_conn):
        super().__init__(scope, options, conn)
        self.dst_conn = dst_conn
        self.model_dic: Optional[ModelDic] = None
        self.locators: Dict[str, List[EntityLocator]] = {RUN: [], SET: [], TASK: []}
        self.src_model: Optional[ModelMeta] = None
        self.model: Optional[ModelMeta] = None
        self.langs: List[LangMeta] = []
        self.profiles: List[ProfileMeta] = []
        self.runs: List[RunMeta] = []
        self.worksets: List[WorksetMeta] = []
        self.tasks: List[TaskMeta] = []

    def resolve(self) -> None:
        self.model_dic, self.locators = scope_locators(self.conn, self.scope)
        logger.info(
            f"Model {self.model_dic.name} to database: runs {len(self.locators[RUN])}, "
            f"worksets {len(self.locators[SET])}, tasks {len(self.locators[TASK])}"
        )

    def read_metadata(self) -> None:
        self.src_model = get_model(self.conn, model_digest=self.model_dic.digest)
        for loc in self.locators[RUN]:
            self.runs += get_run_list(self.conn, self.src_model, run_id=loc.entity_id)
        for loc in self.locators[SET]:
            self.worksets += get_workset_list(self.conn, self.src_model, set_id=loc.entity_id)
        for loc in self.locators[TASK]:
            self.tasks += get_task_list(self.conn, self.src_model, task_id=loc.entity_id)
        if self.scope.kind == MODEL:
            self.langs = get_langs(self.conn)
            self.profiles = get_profiles(self.conn)

    def sequences(self) -> None:
        dst = self.dst_conn
        self.model = insert_model(dst, self.src_model)
        check_model(self.src_model, self.model, "source database")
        if self.langs:
            insert_langs(dst, self.langs)
        if self.profiles:
            insert_profiles(dst, self.profiles)

        for run in self.runs:
            self._copy_run(run)

        set_ids: Dict[str, int] = {}
        for ws in self.worksets:
            set_ids[ws.name] = self._copy_workset(ws)

        for task in self.tasks:
            logger.info(f"Task {task.task_id} {task.name}")
            insert_task(dst, self.model, task, set_ids)
            self.count("tasks")

    def persist(self) -> None:
        self.dst_conn.commit()

    def abort(self) -> None:
        self.dst_conn.rollback()

    def _copy_run(self, run: RunMeta) -> None:
        src, dst = self.src_model, self.model
        logger.info(f"Run {run.run_id} {run.name}")

        if run.run_digest and find_run_by_digest(self.dst_conn, dst, run.run_digest) is not None:
            logger.warning(f"Run {run.name} already exists, digest: {run.run_digest}, skip it")
            self.count("runs_skipped")
            return

        for param in src.params:
            if run.param(param.name) is None:
                raise MissingValuesError(f"missing run parameter values: {param.name}, run: {run.name}")

        run_id = insert_run(self.dst_conn, dst, run)
        for param in src.params:
            write_param_cells(self.dst_conn, dst.param_by_name(param.name),
                              read_param_cells(self.conn, param, run_id=run.run_id), run_id=run_id)

        for table_name in run.tables:
            table = src.table_by_name(table_name)
            write_expr_cells(self.dst_conn, dst.table_by_name(table_name), run_id,
                             read_expr_cells(self.conn, table, run.run_id))
            write_acc_cells(self.dst_conn, dst.table_by_name(table_name), run_id,
                            read_acc_cells(self.conn, table, run.run_id))

        for run_entity in run.entities:
            entity = src.entity_by_name(run_entity.name)
            write_micro_cells(self.dst_conn, dst.entity_by_name(run_entity.name), run_id,
                              read_micro_cells(self.conn, entity, run.run_id))

        value_digest = run.value_digest or run_value_digest(self.dst_conn, dst, run, run_id, self.options.double_format)
        update_run_digest(self.dst_conn, run_id, run.run_digest or run_digest(dst, run, value_digest), value_digest)
        self.count("runs")

    def _copy_workset(self, ws: WorksetMeta) -> int:
        logger.info(f"Workset {ws.set_id} {ws.name}")
        set_id = insert_workset(self.dst_conn, self.model, ws)
        for wp in ws.params:
            write_param_cells(self.dst_conn, self.model.param_by_name(wp.name),
                              read_param_cells(self.conn, self.src_model.param_by_name(wp.name), set_id=ws.set_id),
                              set_id=set_id)
        self.count("worksets")
        return set_id
