# import
## batteries
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
## package
from dbcopy.errors import ValidationError
from dbcopy.text.cells import DEFAULT_DOUBLE_FMT
from dbcopy.text.csv_io import FileRegistry
from dbcopy.text.names import IdNamePolicy, EntityLocator, RUN, SET, TASK

logger = logging.getLogger(__name__)

MODEL = "model"

# copy directions
TO_TEXT = "text"
TO_DB = "db"
TO_CSV = "csv"
DB_TO_DB = "db2db"
DELETE = "delete"

# classes
class CopyState(Enum):
    RESOLVE = "resolve"
    READ_METADATA = "read-metadata"
    EMIT_SEQUENCES = "emit-sequences"
    PARSE_SEQUENCES = "parse-sequences"
    PERSIST = "persist"
    DONE = "done"
    FAILED = "failed"

@dataclass(frozen=True)
class CopyScope:
    """
    What to copy: whole model, one run, one workset or one task
    """
    kind: str = MODEL
    model_name: Optional[str] = None
    model_digest: Optional[str] = None
    entity_id: Optional[int] = None
    entity_name: Optional[str] = None

    @classmethod
    def from_selectors(
        cls,
        model_name: Optional[str] = None,
        model_digest: Optional[str] = None,
        run_id: Optional[int] = None,
        run_name: Optional[str] = None,
        set_id: Optional[int] = None,
        set_name: Optional[str] = None,
        task_id: Optional[int] = None,
        task_name: Optional[str] = None
    ) -> "CopyScope":
        """
        Build scope from command line selectors.
        If both id and name are given then id is used and name ignored.
        """
        if not model_name and not model_digest:
            raise ValidationError("model name or model digest required")

        selected = [
            (kind, eid, name)
            for kind, eid, name in ((RUN, run_id, run_name), (SET, set_id, set_name), (TASK, task_id, task_name))
            if eid is not None or name
        ]
        if len(selected) > 1:
            raise ValidationError(f"only one of run, set or task can be copied, found: {[s[0] for s in selected]}")
        if not selected:
            return cls(MODEL, model_name, model_digest)

        kind, eid, name = selected[0]
        if eid is not None and eid <= 0:
            raise ValidationError(f"invalid {kind} id: {eid}")
        if eid is not None and name:
            logger.warning(f"dbcopy options conflict. Using {kind} id: {eid}, ignore {kind} name: {name}")
            name = None
        return cls(kind, model_name, model_digest, eid, name)

    @property
    def locator(self) -> Optional[EntityLocator]:
        if self.kind == MODEL:
            return None
        return EntityLocator(kind=self.kind, entity_id=self.entity_id, name=self.entity_name)

@dataclass
class CopyOptions:
    input_dir: str = "."
    output_dir: str = "."
    param_dir: Optional[str] = None
    double_format: str = DEFAULT_DOUBLE_FMT
    id_csv: bool = False
    id_names: IdNamePolicy = IdNamePolicy.ON_CONFLICT
    utf8_bom: bool = False
    encoding: Optional[str] = None
    zip: bool = False
    no_acc: bool = False
    no_microdata: bool = False

class CopyDriver(ABC):
    """
    One copy direction: the steps run by CopyOrchestrator in order.
    """
    is_export = True

    def __init__(self, scope: CopyScope, options: CopyOptions, conn):
        self.scope = scope
        self.options = options
        self.conn = conn
        self.registry = FileRegistry()
        self.counts: Dict[str, int] = {}

    def count(self, key: str, n: int = 1) -> None:
        self.counts[key] = self.counts.get(key, 0) + n

    @abstractmethod
    def resolve(self) -> None:
        """Find the model and entities in scope, compute paths"""
        pass

    @abstractmethod
    def read_metadata(self) -> None:
        pass

    @abstractmethod
    def sequences(self) -> None:
        """Write or read values of all entities in scope"""
        pass

    @abstractmethod
    def persist(self) -> None:
        pass

    def abort(self) -> None:
        pass

    def summary(self) -> Dict[str, Any]:
        return dict(self.counts)

class CopyOrchestrator:
    """
    Run one copy: Resolve -> ReadMetadata -> EmitSequences or ParseSequences -> Persist -> Done.
    The first error stops the copy, state becomes FAILED and the error is raised.

    Args:
        direction: text, db, csv, db2db or delete
        scope: What to copy
        options: Copy options
        conn: Database connection, source or destination depending on direction
        dst_conn: Destination database connection of db2db copy
    """
    def __init__(self, direction: str, scope: CopyScope, options: CopyOptions, conn, dst_conn=None):
        drivers = _drivers()
        if direction not in drivers:
            raise ValidationError(f"invalid copy direction: {direction}, expected one of: {sorted(drivers)}")
        self.direction = direction
        self.scope = scope
        self.options = options
        if direction == DB_TO_DB:
            if dst_conn is None:
                raise ValidationError("destination database required to copy from database to database")
            self.driver: CopyDriver = drivers[direction](scope, options, conn, dst_conn)
        else:
            self.driver = drivers[direction](scope, options, conn)
        self.state: Optional[CopyState] = None
        self.error: Optional[Exception] = None

    def run(self) -> Dict[str, Any]:
        d = self.driver
        steps = [
            (CopyState.RESOLVE, d.resolve),
            (CopyState.READ_METADATA, d.read_metadata),
            (CopyState.EMIT_SEQUENCES if d.is_export else CopyState.PARSE_SEQUENCES, d.sequences),
            (CopyState.PERSIST, d.persist),
        ]
        try:
            for state, step in steps:
                self.state = state
                logger.debug(f"Copy {self.direction} {self.scope.kind}: {state.value}")
                step()
        except Exception as e:
            self.error = e
            logger.error(f"Copy {self.direction} failed at {self.state.value}: {e}")
            self.state = CopyState.FAILED
            d.abort()
            raise

        self.state = CopyState.DONE
        result = {
            "status": "success",
            "direction": self.direction,
            "scope": self.scope.kind,
        }
        result.update(d.summary())
        return result

def _drivers():
    from dbcopy.copy.to_text import TextExport
    from dbcopy.copy.from_text import TextImport
    from dbcopy.copy.to_csv import CsvExport
    from dbcopy.copy.to_db import DbCopy
    from dbcopy.copy.delete import DbDelete
    return {TO_TEXT: TextExport, TO_DB: TextImport, TO_CSV: CsvExport, DB_TO_DB: DbCopy, DELETE: DbDelete}

def model_out_dir(options: CopyOptions, model_name: str) -> Path:
    return Path(options.output_dir) / model_name
