# import
## batteries
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Type, TypeVar, Union
## 3rd party
from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
## package
from dbcopy.errors import EntityNotFoundError, SchemaError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

# functions
def from_dict(cls: Type[T], data: Dict[str, Any]) -> T:
    """
    Build a metadata model from a parsed json object.

    Args:
        cls: Target metadata model
        data: Parsed json object
    Returns:
        Instance of cls
    Raises:
        SchemaError: wrong value type, missing required key or unknown key
    """
    try:
        return cls.model_validate(data)
    except PydanticValidationError as e:
        raise SchemaError(f"invalid {cls.__name__} json: {e}")

def to_json_file(path: Union[str, Path], obj: Union[BaseModel, List[BaseModel]]) -> Path:
    """
    Write metadata model (or list of them) into json file
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(obj, list):
        data = [x.model_dump(mode="json") for x in obj]
    else:
        data = obj.model_dump(mode="json")
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
    logger.debug(f"Written {path}")
    return path

def _read_text(path: Path, cls: type) -> str:
    if not path.is_file():
        raise EntityNotFoundError(cls.__name__, name=path.name, where=str(path.parent))
    with open(path, 'r', encoding='utf-8-sig') as f:
        return f.read()

def from_json_file(path: Union[str, Path], cls: Type[T]) -> T:
    """
    Read metadata model from json file.
    Raises EntityNotFoundError if the file does not exist, SchemaError if it is not valid.
    """
    path = Path(path)
    text = _read_text(path, cls)
    try:
        return cls.model_validate_json(text)
    except PydanticValidationError as e:
        raise SchemaError(f"invalid {cls.__name__} json in {path}: {e}")

def list_from_json_file(path: Union[str, Path], cls: Type[T]) -> List[T]:
    path = Path(path)
    text = _read_text(path, cls)
    try:
        return TypeAdapter(List[cls]).validate_json(text)
    except PydanticValidationError as e:
        raise SchemaError(f"invalid list of {cls.__name__} json in {path}: {e}")
