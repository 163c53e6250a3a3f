"""
Path helpers used by the orchestrator.

Both ``/`` and ``\\`` count as separators regardless of the host OS,
so build scripts written on one platform derive the same names on the
other.
"""
import logging
import os
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

PathArg = Union[str, "os.PathLike[str]"]


def filename_no_ext(path: PathArg) -> str:
    """``"src/demo.c"`` → ``"demo"``; only the last extension is removed."""
    text = os.fspath(path)
    cut = max(text.rfind("/"), text.rfind("\\"))
    base = text[cut + 1:]
    dot = base.rfind(".")
    if dot > 0:
        base = base[:dot]
    return base


def mkdir_if_not_exists(path: PathArg) -> bool:
    """Create *path* (and parents).  False when it cannot be created."""
    target = Path(path)
    if target.is_dir():
        return True
    try:
        target.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error("Failed to create directory %s: %s", target, e)
        return False
    logger.debug("Created directory %s/", target)
    return True


def ensure_dir_for_file(filepath: PathArg) -> bool:
    """Make sure the parent directory of *filepath* exists."""
    parent = Path(filepath).parent
    if str(parent) in ("", "."):
        return True
    return mkdir_if_not_exists(parent)


def resolve_in(workdir: Optional[Path], path: PathArg) -> Path:
    """Anchor a relative *path* at *workdir* (absolute paths pass through)."""
    p = Path(path)
    if workdir is None or p.is_absolute():
        return p
    return workdir / p
