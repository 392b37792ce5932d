# import
## batteries
from typing import List, Dict, Optional
## 3rd party
from pydantic import Field
## package
from dbcopy.meta.model import MetaModel

# run status codes
STATUS_SUCCESS = "s"
STATUS_PROGRESS = "p"
STATUS_ERROR = "e"
STATUS_EXIT = "x"

# classes
class DescrNote(MetaModel):
    """Description and notes in one language, note is None when absent"""
    lang_code: str
    descr: str = ""
    note: Optional[str] = None

class LangNote(MetaModel):
    lang_code: str
    note: Optional[str] = None

class RunParam(MetaModel):
    name: str
    sub_count: int = 1
    txt: List[LangNote] = Field(default_factory=list)

class RunEntity(MetaModel):
    name: str
    gen_digest: str = ""
    row_count: int = 0

class RunMeta(MetaModel):
    """
    Model run: run_lst row plus texts, options, parameters, output tables
    and microdata entities of the run.
    """
    run_id: int
    name: str
    sub_count: int = 1
    sub_started: int = 1
    sub_completed: int = 1
    create_dt: str = ""
    status: str = STATUS_SUCCESS
    update_dt: str = ""
    run_digest: str = ""
    value_digest: str = ""
    run_stamp: str = ""
    txt: List[DescrNote] = Field(default_factory=list)
    options: Dict[str, str] = Field(default_factory=dict)
    params: List[RunParam] = Field(default_factory=list)
    tables: List[str] = Field(default_factory=list)
    entities: List[RunEntity] = Field(default_factory=list)

    def param(self, name: str) -> Optional[RunParam]:
        for p in self.params:
            if p.name == name:
                return p
        return None

class WorksetParam(MetaModel):
    name: str
    sub_count: int = 1
    default_sub_id: int = 0
    txt: List[LangNote] = Field(default_factory=list)

class WorksetMeta(MetaModel):
    """Input scenario: a named set of parameter values, may be based on a run"""
    set_id: int
    name: str
    base_run_digest: Optional[str] = None
    is_readonly: bool = True
    update_dt: str = ""
    txt: List[DescrNote] = Field(default_factory=list)
    params: List[WorksetParam] = Field(default_factory=list)

    def param(self, name: str) -> Optional[WorksetParam]:
        for p in self.params:
            if p.name == name:
                return p
        return None

class TaskRunItem(MetaModel):
    run_digest: Optional[str] = None
    set_name: Optional[str] = None

class TaskRun(MetaModel):
    task_run_id: int
    name: str
    sub_count: int = 1
    create_dt: str = ""
    status: str = STATUS_SUCCESS
    update_dt: str = ""
    run_stamp: str = ""
    items: List[TaskRunItem] = Field(default_factory=list)

class TaskMeta(MetaModel):
    task_id: int
    name: str
    txt: List[DescrNote] = Field(default_factory=list)
    sets: List[str] = Field(default_factory=list)
    task_runs: List[TaskRun] = Field(default_factory=list)

    def set_names(self) -> List[str]:
        """Task worksets and worksets of the task run history, without repeats"""
        names = list(self.sets)
        for tr in self.task_runs:
            for item in tr.items:
                if item.set_name and item.set_name not in names:
                    names.append(item.set_name)
        return names

    def run_digests(self) -> List[str]:
        return [item.run_digest for tr in self.task_runs for item in tr.items if item.run_digest]

class LangMeta(MetaModel):
    lang_id: int
    code: str
    name: str
    words: Dict[str, str] = Field(default_factory=dict)

class ProfileMeta(MetaModel):
    name: str
    options: Dict[str, str] = Field(default_factory=dict)
