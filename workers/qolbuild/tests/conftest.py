"""
Shared pytest fixtures for qolbuild tests.

Most tests drive the engine with a *fake compiler*: a small Python
script invoked as ``<python> fakecc.py <source> -o <output>`` that
writes a marker file to <output>, or fails when the source contains
``#error``.  That keeps them independent of a C toolchain.

Tests that need a real C compiler use the ``cc_ok`` fixture and are
skipped when ``cc`` is not on PATH.
"""
import logging
import os
import shutil
import sys
import textwrap
from pathlib import Path

import pytest

from qolbuild.core.process import PosixBackend, WindowsBackend
from qolbuild.policy.profile import ToolchainProfile

FAKE_CC = textwrap.dedent("""\
    import sys

    args = sys.argv[1:]
    out = args[args.index("-o") + 1]
    src = next(a for a in args if a.endswith(".c"))
    with open(src) as f:
        text = f.read()
    if "#error" in text:
        sys.stderr.write("fakecc: " + src + ": #error\\n")
        sys.exit(1)
    with open(out, "w") as f:
        f.write("built from " + src + "\\n")
""")

HELLO_C = textwrap.dedent("""\
    #include <stdio.h>

    int main(void) {
        printf("hello\\n");
        return 0;
    }
""")


class ImageReplaced(Exception):
    """Raised by RecordingBackend instead of exec'ing."""


_HOST_BACKEND = WindowsBackend if os.name == "nt" else PosixBackend


class RecordingBackend(_HOST_BACKEND):
    """Host backend that counts spawns and records image replacements."""

    def __init__(self, replace_error: Exception = None):
        self.spawned = []
        self.replaced = []
        self.replace_error = replace_error

    def spawn(self, cmd, cwd=None):
        self.spawned.append(cmd.args)
        return super().spawn(cmd, cwd=cwd)

    def replace_image(self, path, argv):
        self.replaced.append((path, list(argv)))
        if self.replace_error is not None:
            raise self.replace_error
        raise ImageReplaced(path)


@pytest.fixture(autouse=True)
def _reset_qolbuild_logger():
    """init_logging() detaches the logger tree from caplog; undo it."""
    yield
    logger = logging.getLogger("qolbuild")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


@pytest.fixture(autouse=True)
def _no_rebuild_guard(monkeypatch):
    # setenv first so monkeypatch also removes a guard set during the test
    monkeypatch.setenv("QOLBUILD_REBUILT", "")
    monkeypatch.delenv("QOLBUILD_REBUILT")


@pytest.fixture
def cc_ok():
    """Skip tests if no C compiler named ``cc`` is available."""
    if shutil.which("cc") is None:
        pytest.skip("cc not available - install a C compiler to run these tests")


@pytest.fixture
def fake_cc(tmp_path) -> Path:
    script = tmp_path / "tools" / "fakecc.py"
    script.parent.mkdir()
    script.write_text(FAKE_CC)
    return script


@pytest.fixture
def fake_profile(fake_cc) -> ToolchainProfile:
    """Profile whose compiler is ``<python> fakecc.py``."""
    return ToolchainProfile(
        profile_id="test-fakecc",
        platform="windows" if os.name == "nt" else "posix",
        compiler=sys.executable,
        default_flags=(str(fake_cc),),
    )


@pytest.fixture
def backend() -> RecordingBackend:
    return RecordingBackend()


@pytest.fixture
def image_replaced():
    return ImageReplaced


@pytest.fixture
def recording_backend_cls():
    return RecordingBackend


@pytest.fixture
def py_exit():
    """argv for a child that exits with *code*."""
    def _argv(code: int):
        return [sys.executable, "-c", f"import sys; sys.exit({code})"]
    return _argv


@pytest.fixture
def set_mtime():
    """Set a file's mtime (seconds since the epoch), creating it if needed."""
    def _set(path: Path, seconds: int) -> Path:
        if not path.exists():
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("")
        os.utime(path, ns=(seconds * 1_000_000_000, seconds * 1_000_000_000))
        return path
    return _set


@pytest.fixture
def hello_c(tmp_path) -> Path:
    src = tmp_path / "hello.c"
    src.write_text(HELLO_C)
    return src
