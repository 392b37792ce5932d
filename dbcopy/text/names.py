# import
## batteries
import re
import glob
import logging
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union
## package
from dbcopy.errors import EntityNotFoundError, SchemaError

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = "\"'`:*?><|$}{@&^;/\\"
_CLEAN_TABLE = str.maketrans({c: "_" for c in _UNSAFE_CHARS})

RUN = "run"
SET = "set"
TASK = "task"

# classes
class IdNamePolicy(Enum):
    """Include entity id into file and directory names"""
    ALWAYS = "always"
    NEVER = "never"
    ON_CONFLICT = "on-conflict"

    @classmethod
    def from_option(cls, value: Union[str, bool, None]) -> "IdNamePolicy":
        """
        Map yes/no/default style option onto the policy
        """
        if value is None or value == "":
            return cls.ON_CONFLICT
        if isinstance(value, bool):
            return cls.ALWAYS if value else cls.NEVER
        if isinstance(value, cls):
            return value
        v = str(value).strip().lower()
        if v in ("yes", "true", "1", "always"):
            return cls.ALWAYS
        if v in ("no", "false", "0", "never"):
            return cls.NEVER
        if v in ("default", "on-conflict", "on_conflict", "conflict"):
            return cls.ON_CONFLICT
        raise ValueError(f"invalid id names option: {value}")

@dataclass(frozen=True)
class EntityLocator:
    """
    Run, workset or task identity: (id, name), either may be unknown
    """
    kind: str
    entity_id: Optional[int] = None
    name: Optional[str] = None

    @property
    def clean_name(self) -> str:
        return clean_path(self.name or "")

@dataclass(frozen=True)
class ResolvedEntity:
    kind: str
    entity_id: Optional[int]
    name: Optional[str]
    json_path: Optional[Path]
    csv_dir: Optional[Path]

# functions
def clean_path(name: str) -> str:
    """
    Replace characters which are not safe in file names by _
    """
    return name.translate(_CLEAN_TABLE)

def detect_conflicts(locators: Iterable[EntityLocator]) -> Set[int]:
    """
    Find entities whose names would produce the same file name.

    Args:
        locators: All entities of the copy scope, each with id and name
    Returns:
        Ids of entities sharing a clean name with at least one other entity
    """
    by_name: Dict[str, List[int]] = defaultdict(list)
    for loc in locators:
        by_name[loc.clean_name].append(loc.entity_id)
    conflicts = set()
    for name, ids in by_name.items():
        if len(ids) > 1:
            logger.debug(f"Name conflict: {name} ids {ids}")
            conflicts.update(ids)
    return conflicts

def make_slug(locator: EntityLocator, policy: IdNamePolicy, conflicts: Optional[Set[int]] = None) -> str:
    """
    File system safe name of the entity: id.name or name.

    Args:
        locator: Entity id and name
        policy: When to include the id
        conflicts: Ids found by detect_conflicts over the whole scope
    """
    if policy is IdNamePolicy.ALWAYS:
        include_id = True
    elif policy is IdNamePolicy.NEVER:
        include_id = False
    else:
        include_id = locator.entity_id in (conflicts or set())

    if include_id:
        if locator.entity_id is None:
            raise ValueError(f"{locator.kind} id required to make file name of: {locator.name}")
        return f"{locator.entity_id}.{locator.clean_name}"
    return locator.clean_name

def _duplicate_slugs(slugs: Dict[int, str]) -> Dict[str, List[int]]:
    by_slug: Dict[str, List[int]] = defaultdict(list)
    for entity_id, slug in slugs.items():
        by_slug[slug].append(entity_id)
    return {slug: ids for slug, ids in by_slug.items() if len(ids) > 1}

def scope_slugs(locators: List[EntityLocator], policy: IdNamePolicy) -> Dict[int, str]:
    """
    Slugs for all entities of the scope, keyed by entity id.

    With on-conflict policy an entity whose plain name equals another entity id.name slug
    is also given its id, until all slugs are unique.

    Raises:
        SchemaError: two entities have the same slug and the policy is never
    """
    conflicts = detect_conflicts(locators) if policy is IdNamePolicy.ON_CONFLICT else set()
    while True:
        slugs = {loc.entity_id: make_slug(loc, policy, conflicts) for loc in locators}
        dups = _duplicate_slugs(slugs)
        if not dups:
            return slugs
        if policy is not IdNamePolicy.ON_CONFLICT:
            raise SchemaError(f"same file name of different entities: {dups}, include id into names")
        more = {i for ids in dups.values() for i in ids} - conflicts
        if not more:
            raise SchemaError(f"same file name of different entities: {dups}")
        logger.debug(f"Slug conflict: {dups}")
        conflicts |= more

def entity_dir_name(kind: str, slug: str) -> str:
    return f"{kind}.{slug}"

def metadata_file_name(model_name: str, kind: str, slug: str) -> str:
    return f"{model_name}.{kind}.{slug}.json"

def sibling_dir(json_path: Union[str, Path], model_name: str, kind: str) -> Path:
    """
    Data directory next to metadata file: M.run.12.Base.json -> run.12.Base
    """
    json_path = Path(json_path)
    prefix = f"{model_name}."
    stem = json_path.name[:-len(".json")] if json_path.name.endswith(".json") else json_path.name
    if not stem.startswith(prefix + kind + "."):
        raise ValueError(f"not a {kind} metadata file of model {model_name}: {json_path.name}")
    return json_path.parent / stem[len(prefix):]

def _parse_name(file_name: str, pattern: "re.Pattern") -> Optional[Tuple[int, str]]:
    m = pattern.match(file_name)
    if m is None:
        return None
    return int(m.group(1)), m.group(2)

def _pick(matches: List[Path], kind: str, what: str) -> Optional[Path]:
    if not matches:
        return None
    matches = sorted(matches, key=lambda p: p.name)
    if len(matches) > 1:
        logger.warning(
            f"Found multiple {kind} {what}: {[p.name for p in matches]}, using: {matches[0].name}"
        )
    return matches[0]

def resolve_entity(
    root: Union[str, Path],
    model_name: str,
    kind: str,
    entity_id: Optional[int] = None,
    name: Optional[str] = None
) -> ResolvedEntity:
    """
    Find metadata json file and data directory of run, workset or task.

    Search order:
      1. exact names: M.kind.id.name.json, M.kind.name.json, kind.id.name/, kind.name/
      2. wildcard on the unknown part: kind.[0-9]*.name or kind.id.*
      3. of multiple matches the first by name is used and a warning logged

    Args:
        root: Directory with model json and csv files
        model_name: Model name, prefix of json file names
        kind: run, set or task
        entity_id: Entity id if known
        name: Entity name if known
    Returns:
        ResolvedEntity, id or name may stay None if not present in file names
    Raises:
        EntityNotFoundError: nothing matched
    """
    root = Path(root)
    if entity_id is None and not name:
        raise ValueError(f"{kind} id or name required")

    clean = clean_path(name) if name else None
    json_re = re.compile(rf"^{re.escape(model_name)}\.{re.escape(kind)}\.([0-9]+)\.(.+)\.json$")
    dir_re = re.compile(rf"^{re.escape(kind)}\.([0-9]+)\.(.+)$")

    # exact names
    slugs = []
    if entity_id is not None and clean:
        slugs.append(f"{entity_id}.{clean}")
    if clean:
        slugs.append(clean)
    for slug in slugs:
        json_path = root / metadata_file_name(model_name, kind, slug)
        csv_dir = root / entity_dir_name(kind, slug)
        if json_path.is_file() or csv_dir.is_dir():
            return ResolvedEntity(
                kind=kind,
                entity_id=entity_id,
                name=name,
                json_path=json_path if json_path.is_file() else None,
                csv_dir=csv_dir if csv_dir.is_dir() else None,
            )

    # wildcard on unknown part, json files first then directories
    def _accept(parsed: Optional[Tuple[int, str]]) -> bool:
        if parsed is None:
            return False
        if entity_id is not None and parsed[0] != entity_id:
            return False
        if clean and parsed[1] != clean:
            return False
        return True

    if entity_id is not None and not clean:
        json_glob = f"{glob.escape(model_name)}.{kind}.{entity_id}.*.json"
        dir_glob = f"{kind}.{entity_id}.*"
    else:
        json_glob = f"{glob.escape(model_name)}.{kind}.[0-9]*.{glob.escape(clean)}.json"
        dir_glob = f"{kind}.[0-9]*.{glob.escape(clean)}"

    json_found = [p for p in root.glob(json_glob) if p.is_file() and _accept(_parse_name(p.name, json_re))]
    json_path = _pick(json_found, kind, "metadata files")
    if json_path is not None:
        found_id, found_name = _parse_name(json_path.name, json_re)
        csv_dir = root / entity_dir_name(kind, f"{found_id}.{found_name}")
        return ResolvedEntity(
            kind=kind,
            entity_id=found_id,
            name=name if name else found_name,
            json_path=json_path,
            csv_dir=csv_dir if csv_dir.is_dir() else None,
        )

    dir_found = [p for p in root.glob(dir_glob) if p.is_dir() and _accept(_parse_name(p.name, dir_re))]
    csv_dir = _pick(dir_found, kind, "directories")
    if csv_dir is not None:
        found_id, found_name = _parse_name(csv_dir.name, dir_re)
        return ResolvedEntity(
            kind=kind,
            entity_id=found_id,
            name=name if name else found_name,
            json_path=None,
            csv_dir=csv_dir,
        )

    raise EntityNotFoundError(kind, entity_id, name, where=str(root))

def list_metadata_files(root: Union[str, Path], model_name: str, kind: str) -> List[Path]:
    """All M.kind.*.json files in the directory, sorted by name"""
    root = Path(root)
    return sorted(
        (p for p in root.glob(f"{glob.escape(model_name)}.{kind}.*.json") if p.is_file()),
        key=lambda p: p.name,
    )
