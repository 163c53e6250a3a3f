"""
test_paths_artifact — path helpers and output inspection.
"""
import os

import pytest

from qolbuild.core.artifact import hash_file, inspect_artifact, read_elf_meta
from qolbuild.core.paths import (
    ensure_dir_for_file,
    filename_no_ext,
    mkdir_if_not_exists,
    resolve_in,
)


class TestFilenameNoExt:

    @pytest.mark.parametrize(
        "path, expected",
        [
            ("demo.c", "demo"),
            ("src/demo.c", "demo"),
            ("src\\win\\demo.c", "demo"),
            ("archive.tar.gz", "archive.tar"),
            ("Makefile", "Makefile"),
            (".hidden", ".hidden"),
            ("dir.d/prog", "prog"),
        ],
    )
    def test_cases(self, path, expected):
        assert filename_no_ext(path) == expected


class TestDirectories:

    def test_mkdir_nested(self, tmp_path):
        target = tmp_path / "a" / "b" / "c"
        assert mkdir_if_not_exists(target)
        assert target.is_dir()
        # already there
        assert mkdir_if_not_exists(target)

    def test_mkdir_over_file_fails(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        assert mkdir_if_not_exists(blocker / "sub") is False

    def test_ensure_dir_for_file(self, tmp_path):
        assert ensure_dir_for_file(tmp_path / "out" / "bin" / "demo")
        assert (tmp_path / "out" / "bin").is_dir()
        assert ensure_dir_for_file("demo")

    def test_resolve_in(self, tmp_path):
        assert resolve_in(tmp_path, "a.c") == tmp_path / "a.c"
        absolute = tmp_path / "x.c"
        assert resolve_in(tmp_path / "elsewhere", absolute) == absolute


class TestArtifact:

    def test_missing(self, tmp_path):
        assert inspect_artifact(tmp_path / "nope") is None

    def test_plain_file(self, tmp_path):
        path = tmp_path / "out.txt"
        path.write_bytes(b"abc")
        meta = inspect_artifact(path)
        assert meta.size_bytes == 3
        assert meta.sha256 == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
        assert meta.elf is None
        assert hash_file(path) == meta.sha256

    def test_not_elf(self, tmp_path):
        path = tmp_path / "fake"
        path.write_bytes(b"\x7fELX" + b"\0" * 60)
        assert read_elf_meta(path) is None

    @pytest.mark.skipif(os.name == "nt", reason="ELF toolchain")
    def test_compiled_binary(self, cc_ok, tmp_path, hello_c):
        import subprocess

        out = tmp_path / "hello"
        subprocess.run(["cc", str(hello_c), "-o", str(out)], check=True)
        meta = inspect_artifact(out)
        if meta.elf is None:
            pytest.skip("host cc does not produce ELF")
        assert meta.elf.elf_type in ("ET_EXEC", "ET_DYN")
        assert meta.elf.elf_class in (32, 64)
