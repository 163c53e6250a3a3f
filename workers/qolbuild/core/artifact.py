"""
Artifact inspection — identity of a produced output file.

Records SHA-256 and size for any output; when the output is an ELF
binary, also the ELF type, machine and GNU build-id.  Non-ELF outputs
(PE, Mach-O, objects from other toolchains) simply have no ELF block.
"""
import hashlib
import logging
from pathlib import Path
from typing import Optional

from elftools.common.exceptions import ELFError
from elftools.elf.elffile import ELFFile

from qolbuild.io.schema import ArtifactMeta, ElfMeta

logger = logging.getLogger(__name__)


def hash_file(path: Path) -> str:
    sha256 = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            sha256.update(chunk)
    return sha256.hexdigest()


def read_elf_meta(path: Path) -> Optional[ElfMeta]:
    """ELF header facts, or None when *path* is not an ELF file."""
    try:
        with open(path, "rb") as f:
            elf = ELFFile(f)
            build_id = None
            section = elf.get_section_by_name(".note.gnu.build-id")
            if section is not None:
                for note in section.iter_notes():
                    if note["n_type"] == "NT_GNU_BUILD_ID":
                        build_id = note["n_desc"]
            return ElfMeta(
                elf_type=elf.header["e_type"],
                machine=elf.header["e_machine"],
                elf_class=elf.elfclass,
                build_id=build_id,
            )
    except ELFError:
        return None
    except OSError as e:
        logger.warning("Could not read %s for ELF inspection: %s", path, e)
        return None


def inspect_artifact(path: Path) -> Optional[ArtifactMeta]:
    """Describe the output at *path*; None if it does not exist."""
    if not path.is_file():
        return None
    return ArtifactMeta(
        path=str(path),
        sha256=hash_file(path),
        size_bytes=path.stat().st_size,
        elf=read_elf_meta(path),
    )
