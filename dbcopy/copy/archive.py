# import
## batteries
import os
import logging
import zipfile
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

# functions
def pack_zip(src_dir: Union[str, Path], zip_path: Optional[Union[str, Path]] = None) -> Path:
    """
    Pack directory into zip file, entries are relative to the parent of src_dir.

    Args:
        src_dir: Directory to pack, e.g. out/modelName
        zip_path: Output zip file, default is src_dir + .zip
    Returns:
        Path to zip file
    """
    src_dir = Path(src_dir)
    zip_path = Path(zip_path) if zip_path else src_dir.with_name(src_dir.name + ".zip")
    base = src_dir.parent

    with zipfile.ZipFile(zip_path, "w", zipfile.ZIP_DEFLATED) as zf:
        for root, dirs, files in os.walk(src_dir):
            dirs.sort()
            for name in sorted(files):
                p = Path(root) / name
                zf.write(p, p.relative_to(base).as_posix())
    logger.info(f"Packed {zip_path}")
    return zip_path

def unpack_zip(zip_path: Union[str, Path], dst_dir: Union[str, Path]) -> Path:
    """
    Unpack zip file into destination directory.
    Entries pointing outside of destination directory are rejected.
    """
    zip_path = Path(zip_path)
    dst_dir = Path(dst_dir)
    if not zip_path.is_file():
        raise FileNotFoundError(f"zip file not found: {zip_path}")
    dst_dir.mkdir(parents=True, exist_ok=True)
    root = dst_dir.resolve()

    with zipfile.ZipFile(zip_path, "r") as zf:
        for info in zf.infolist():
            target = (dst_dir / info.filename).resolve()
            if root != target and root not in target.parents:
                raise ValueError(f"invalid zip entry, outside of destination: {info.filename}")
        zf.extractall(dst_dir)
    logger.info(f"Unpacked {zip_path} into {dst_dir}")
    return dst_dir
