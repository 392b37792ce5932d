from .sequencer import (
    NULL_TOKEN, null_if_none, none_if_null, ordered_pairs,
    RowSequence, NestedSequence, TwoLevelSequence, ThreeLevelSequence,
)
from .cells import (
    DEFAULT_DOUBLE_FMT, CellParam, CellExpr, CellAcc, CellAllAcc, CellMicro,
    CellConverter, ParamCellConverter, ExprCellConverter, AccCellConverter,
    AllAccCellConverter, MicroCellConverter,
)
from .csv_io import FileRegistry, write_csv, read_csv, read_csv_header
from .names import (
    IdNamePolicy, EntityLocator, ResolvedEntity, clean_path, detect_conflicts,
    make_slug, scope_slugs, entity_dir_name, metadata_file_name, sibling_dir,
    resolve_entity, list_metadata_files,
)

__all__ = [
    "NULL_TOKEN", "null_if_none", "none_if_null", "ordered_pairs",
    "RowSequence", "NestedSequence", "TwoLevelSequence", "ThreeLevelSequence",
    "DEFAULT_DOUBLE_FMT", "CellParam", "CellExpr", "CellAcc", "CellAllAcc", "CellMicro",
    "CellConverter", "ParamCellConverter", "ExprCellConverter", "AccCellConverter",
    "AllAccCellConverter", "MicroCellConverter",
    "FileRegistry", "write_csv", "read_csv", "read_csv_header",
    "IdNamePolicy", "EntityLocator", "ResolvedEntity", "clean_path", "detect_conflicts",
    "make_slug", "scope_slugs", "entity_dir_name", "metadata_file_name", "sibling_dir",
    "resolve_entity", "list_metadata_files",
]
