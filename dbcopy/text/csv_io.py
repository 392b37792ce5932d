# import
## batteries
import os
import csv
import logging
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Union
## package
from dbcopy.errors import ArityError, SchemaError

logger = logging.getLogger(__name__)

UTF8_BOM = "\ufeff"

# classes
class FileRegistry:
    """
    Files created by one copy operation: path -> header written.
    A path present in the registry is appended to, never truncated.
    """
    def __init__(self):
        self._created: Dict[str, bool] = {}

    @staticmethod
    def key(path: Union[str, Path]) -> str:
        return os.path.abspath(str(path))

    def is_created(self, path: Union[str, Path]) -> bool:
        return self._created.get(self.key(path), False)

    def mark_created(self, path: Union[str, Path]) -> None:
        self._created[self.key(path)] = True

    def __contains__(self, path) -> bool:
        return self.is_created(path)


# functions
def write_csv(
    path: Union[str, Path],
    columns: List[str],
    rows: Iterable[List[str]],
    registry: Optional[FileRegistry] = None,
    utf8_bom: bool = False
) -> int:
    """
    Write header and rows into csv file.

    If the registry already holds this path then only rows are appended,
    otherwise the file is created (or truncated) and the header written first.

    Args:
        path: Output csv file path
        columns: Column names, also the expected row arity
        rows: Rows of text fields
        registry: Files already created by the current copy operation
        utf8_bom: Write utf-8 byte order mark at the start of a new file
    Returns:
        Number of data rows written
    """
    path = Path(path)
    is_append = registry is not None and registry.is_created(path)
    if not is_append:
        path.parent.mkdir(parents=True, exist_ok=True)

    n = 0
    with open(path, 'a' if is_append else 'w', newline='', encoding='utf-8') as f:
        writer = csv.writer(f, lineterminator='\n')
        if not is_append:
            if utf8_bom:
                f.write(UTF8_BOM)
            writer.writerow(columns)
            if registry is not None:
                registry.mark_created(path)

        for row in rows:
            n += 1
            if len(row) != len(columns):
                raise ArityError(path, n + 1, len(columns), len(row), "row")
            writer.writerow(row)

    logger.debug(f"{'Appended' if is_append else 'Written'} {n} rows: {path}")
    return n

def read_csv(
    path: Union[str, Path],
    columns: Optional[List[str]] = None,
    encoding: Optional[str] = None
) -> Iterator[List[str]]:
    """
    Read csv file rows, header excluded.

    Leading byte order mark is skipped. If columns are given the header must
    match them, every data row must have the header arity.

    Args:
        path: Input csv file path
        columns: Expected column names
        encoding: Source encoding, default utf-8
    """
    path = Path(path)
    with open(path, 'r', newline='', encoding=encoding or 'utf-8-sig') as f:
        reader = csv.reader(f)
        header = next(reader, None)
        if header is None:
            raise ArityError(path, 1, len(columns or []), 0, "empty file, header expected")
        if header and header[0].startswith(UTF8_BOM):
            header[0] = header[0][len(UTF8_BOM):]
        header = [h.strip() for h in header]

        if columns is not None:
            if len(header) != len(columns):
                raise ArityError(path, 1, len(columns), len(header), "header")
            if header != list(columns):
                raise SchemaError(f"{path}: invalid header {header}, expected {list(columns)}")

        for row in reader:
            if not row:
                continue
            if len(row) != len(header):
                raise ArityError(path, reader.line_num, len(header), len(row))
            yield row

def read_csv_header(path: Union[str, Path], encoding: Optional[str] = None) -> List[str]:
    path = Path(path)
    with open(path, 'r', newline='', encoding=encoding or 'utf-8-sig') as f:
        header = next(csv.reader(f), None)
    if header is None:
        raise ArityError(path, 1, 0, 0, "empty file, header expected")
    if header and header[0].startswith(UTF8_BOM):
        header[0] = header[0][len(UTF8_BOM):]
    return [h.strip() for h in header]
