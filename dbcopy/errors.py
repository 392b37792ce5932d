"""
Error types raised by dbcopy.

Resolution errors mean a requested entity could not be located, schema errors
mean a producer/consumer contract was broken, validation errors mean the input
is well formed but required data is absent or wrong. I/O errors are left as
OSError and database driver errors.
"""

class DbCopyError(Exception):
    """Base class for all dbcopy errors"""
    pass

# resolution
class ResolutionError(DbCopyError):
    pass

class EntityNotFoundError(ResolutionError):
    """Requested run, workset, task or model was not found"""
    def __init__(self, kind: str, entity_id=None, name=None, where: str = ""):
        self.kind = kind
        self.entity_id = entity_id
        self.name = name
        msg = f"{kind} not found: id={entity_id} name={name}"
        if where:
            msg += f" in {where}"
        super().__init__(msg)

# schema / invariant
class SchemaError(DbCopyError):
    pass

class SequenceInvariantError(SchemaError):
    pass

class ArityError(SchemaError):
    """Row or header does not match the expected column list"""
    def __init__(self, path, line: int, expected: int, actual: int, detail: str = ""):
        self.path = str(path)
        self.line = line
        self.expected = expected
        self.actual = actual
        msg = f"{self.path}:{line}: expected {expected} columns, found {actual}"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)

# validation
class ValidationError(DbCopyError):
    pass

class CellValueError(ValidationError):
    pass

class MissingValuesError(ValidationError):
    pass
