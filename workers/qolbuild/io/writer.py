"""
Writer — serialize the build receipt to JSON.
"""
import json
import os
import tempfile
from pathlib import Path

from qolbuild.io.schema import BuildReceipt


def write_receipt(receipt: BuildReceipt, path: Path) -> Path:
    """
    Write *receipt* to *path* as indented, key-sorted JSON.

    Creates the parent directory if it does not exist.  The JSON goes to
    a temporary file beside *path* which then replaces it, so readers see
    either the previous receipt or the new one.
    Returns *path*.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(
        receipt.model_dump(mode="json"),
        indent=2,
        sort_keys=True,
    ) + "\n"

    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=path.name + ".", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise
    return path


def load_receipt(path: Path) -> BuildReceipt:
    return BuildReceipt.model_validate_json(path.read_text())
