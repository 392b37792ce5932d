# import
## batteries
import logging
from typing import Optional
## package
from dbcopy.copy.orchestrator import CopyDriver, MODEL
from dbcopy.db.get import get_model, find_run, find_workset, find_task
from dbcopy.db.upsert import delete_run, delete_workset, delete_task, delete_model
from dbcopy.meta.model import ModelMeta
from dbcopy.text.names import RUN, SET, TASK

logger = logging.getLogger(__name__)

# classes
class DbDelete(CopyDriver):
    """
    Delete model, run, workset or task from database, in one transaction
    """
    is_export = False

    def __init__(self, scope, options, conn):
        super().__init__(scope, options, conn)
        self.model: Optional[ModelMeta] = None
        self.entity_id: Optional[int] = None
        self.entity_name: Optional[str] = None

    def resolve(self) -> None:
        self.model = get_model(self.conn, self.scope.model_name, self.scope.model_digest)
        kind = self.scope.kind
        if kind == RUN:
            run = find_run(self.conn, self.model, self.scope.entity_id, self.scope.entity_name)
            self.entity_id, self.entity_name = run.run_id, run.name
        elif kind == SET:
            ws = find_workset(self.conn, self.model, self.scope.entity_id, self.scope.entity_name)
            self.entity_id, self.entity_name = ws.set_id, ws.name
        elif kind == TASK:
            task = find_task(self.conn, self.model, self.scope.entity_id, self.scope.entity_name)
            self.entity_id, self.entity_name = task.task_id, task.name
        else:
            self.entity_id, self.entity_name = self.model.model.model_id, self.model.name
        logger.info(f"Delete {kind} {self.entity_id} {self.entity_name}")

    def read_metadata(self) -> None:
        pass

    def sequences(self) -> None:
        kind = self.scope.kind
        if kind == RUN:
            delete_run(self.conn, self.model, self.entity_id)
        elif kind == SET:
            delete_workset(self.conn, self.model, self.entity_id)
        elif kind == TASK:
            delete_task(self.conn, self.entity_id)
        elif kind == MODEL:
            delete_model(self.conn, self.model)
        self.count("deleted")

    def persist(self) -> None:
        self.conn.commit()

    def abort(self) -> None:
        self.conn.rollback()

    def summary(self):
        result = super().summary()
        result["id"] = self.entity_id
        result["name"] = self.entity_name
        return result
