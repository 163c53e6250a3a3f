"""
test_auto_rebuild — self-rebuild of the build driver.

Tests verify:
  - An up-to-date driver returns without compiling or replacing anything.
  - A stale driver is recompiled, then the process image is replaced
    with the new binary and the original arguments.
  - Compile failure, an unreadable dependency and a failed replacement
    all exit with status 1.
  - The rebuild guard prevents a second rebuild in the same invocation.

RecordingBackend raises ImageReplaced instead of exec'ing.
"""
import logging
import os
import subprocess

import pytest

from qolbuild.config import EngineConfig
from qolbuild.io.writer import load_receipt
from qolbuild.policy.profile import ToolchainProfile
from qolbuild.runner import REBUILD_GUARD_ENV, Orchestrator

T0 = 1_700_000_000


@pytest.fixture
def orch(tmp_path, fake_profile, backend):
    return Orchestrator(EngineConfig(workdir=tmp_path), profile=fake_profile, backend=backend)


@pytest.fixture
def driver_c(tmp_path):
    src = tmp_path / "driver.c"
    src.write_text("int main(void) { return 0; }\n")
    return src


class TestUpToDate:

    def test_fresh_driver_returns(self, orch, backend, driver_c, tmp_path, set_mtime):
        set_mtime(driver_c, T0)
        set_mtime(tmp_path / "driver", T0 + 1)

        assert orch.auto_rebuild("driver.c") is None
        assert backend.spawned == []
        assert backend.replaced == []

    def test_fresh_with_deps(self, orch, backend, driver_c, tmp_path, set_mtime):
        set_mtime(driver_c, T0)
        set_mtime(tmp_path / "common.h", T0)
        set_mtime(tmp_path / "driver", T0 + 1)

        orch.auto_rebuild_plus("driver.c", "common.h")
        assert backend.replaced == []


class TestRebuild:

    def test_stale_driver_rebuilt_and_replaced(
        self, orch, backend, driver_c, tmp_path, image_replaced,
    ):
        with pytest.raises(image_replaced):
            orch.auto_rebuild("driver.c", argv=["--fast", "all"])

        binary = os.path.abspath(tmp_path / "driver")
        assert len(backend.spawned) == 1
        assert backend.spawned[0][-2:] == ("-o", binary)
        assert (tmp_path / "driver").read_text().startswith("built from")
        assert backend.replaced == [(binary, [binary, "--fast", "all"])]
        assert os.environ[REBUILD_GUARD_ENV] == binary

    def test_forwards_process_arguments(
        self, orch, backend, driver_c, tmp_path, image_replaced, monkeypatch,
    ):
        monkeypatch.setattr("sys.argv", ["./driver", "clean"])
        with pytest.raises(image_replaced):
            orch.auto_rebuild("driver.c")
        path, argv = backend.replaced[0]
        assert argv == [path, "clean"]

    def test_newer_dependency_triggers(
        self, orch, backend, driver_c, tmp_path, set_mtime, image_replaced, caplog,
    ):
        set_mtime(driver_c, T0)
        set_mtime(tmp_path / "driver", T0 + 1)
        a = set_mtime(tmp_path / "a.h", T0 + 2)
        set_mtime(tmp_path / "b.h", T0)
        c = set_mtime(tmp_path / "c.h", T0 + 3)

        with caplog.at_level(logging.INFO, logger="qolbuild"):
            with pytest.raises(image_replaced):
                orch.auto_rebuild_plus("driver.c", "a.h", "b.h", "c.h", argv=[])

        messages = " ".join(r.getMessage() for r in caplog.records)
        assert str(a) in messages
        assert str(c) in messages
        assert str(tmp_path / "b.h") not in messages
        assert len(backend.spawned) == 1

    def test_receipt_written_before_replacement(
        self, tmp_path, fake_profile, backend, driver_c, image_replaced,
    ):
        config = EngineConfig(workdir=tmp_path, receipt_path="receipt.json")
        orch = Orchestrator(config, profile=fake_profile, backend=backend)
        with pytest.raises(image_replaced):
            orch.auto_rebuild("driver.c", argv=[])

        receipt = load_receipt(tmp_path / "receipt.json")
        assert receipt.status.value == "SUCCESS"
        assert len(receipt.commands) == 1

    def test_fallback_name_used(self, tmp_path, fake_profile, backend, driver_c, image_replaced):
        from dataclasses import replace

        profile = replace(fake_profile, rebuild_fallback_name="build_new.exe")
        orch = Orchestrator(EngineConfig(workdir=tmp_path), profile=profile, backend=backend)
        with pytest.raises(image_replaced):
            orch.auto_rebuild("driver.c", argv=[])
        assert (tmp_path / "build_new.exe").is_file()
        assert backend.replaced[0][0] == os.path.abspath(tmp_path / "build_new.exe")


class TestGuard:

    def test_guard_prevents_second_rebuild(
        self, orch, backend, driver_c, tmp_path, set_mtime, monkeypatch,
    ):
        binary = set_mtime(tmp_path / "driver", T0)
        set_mtime(driver_c, T0 + 10)
        monkeypatch.setenv(REBUILD_GUARD_ENV, os.path.abspath(binary))

        orch.auto_rebuild("driver.c")
        assert backend.spawned == []
        assert backend.replaced == []
        # consumed: child processes do not inherit it
        assert REBUILD_GUARD_ENV not in os.environ

    def test_guard_for_other_binary_ignored(
        self, orch, backend, driver_c, image_replaced, monkeypatch,
    ):
        monkeypatch.setenv(REBUILD_GUARD_ENV, "/somewhere/else/driver")
        with pytest.raises(image_replaced):
            orch.auto_rebuild("driver.c", argv=[])
        assert len(backend.spawned) == 1


class TestFailures:

    def test_compile_failure_exits(self, orch, backend, tmp_path):
        (tmp_path / "driver.c").write_text("#error broken driver\n")
        with pytest.raises(SystemExit) as exc:
            orch.auto_rebuild("driver.c")
        assert exc.value.code == 1
        assert backend.replaced == []
        assert REBUILD_GUARD_ENV not in os.environ
        assert orch.receipt.fatal == "REBUILD_FAILURE"
        assert orch.receipt.status.value == "FAILED"

    def test_replacement_failure_exits(
        self, tmp_path, fake_profile, recording_backend_cls, driver_c,
    ):
        backend = recording_backend_cls(replace_error=OSError("exec format error"))
        orch = Orchestrator(EngineConfig(workdir=tmp_path), profile=fake_profile, backend=backend)
        with pytest.raises(SystemExit) as exc:
            orch.auto_rebuild("driver.c", argv=[])
        assert exc.value.code == 1
        assert len(backend.replaced) == 1
        assert orch.receipt.fatal == "SELF_REPLACE_FAILURE"

    def test_missing_source_exits(self, orch, backend):
        with pytest.raises(SystemExit) as exc:
            orch.auto_rebuild("nope.c")
        assert exc.value.code == 1
        assert backend.spawned == []

    def test_unreadable_dependency_exits(self, orch, backend, driver_c, tmp_path, set_mtime):
        set_mtime(driver_c, T0)
        set_mtime(tmp_path / "driver", T0 + 1)
        with pytest.raises(SystemExit) as exc:
            orch.auto_rebuild("driver.c", "missing.h")
        assert exc.value.code == 1
        assert backend.spawned == []


@pytest.mark.skipif(os.name == "nt", reason="exec-based replacement is POSIX only")
def test_real_compiler_rebuild(cc_ok, tmp_path, hello_c, backend, image_replaced):
    orch = Orchestrator(
        EngineConfig(workdir=tmp_path),
        profile=ToolchainProfile.posix(),
        backend=backend,
    )
    with pytest.raises(image_replaced):
        orch.auto_rebuild("hello.c", argv=[])

    binary = tmp_path / "hello"
    result = subprocess.run([str(binary)], capture_output=True, text=True, check=True)
    assert result.stdout == "hello\n"

    artifact = orch.receipt.commands[0].artifact
    assert artifact is not None
    if artifact.elf is not None:
        assert artifact.elf.elf_type in ("ET_EXEC", "ET_DYN")

    # now up to date
    orch.auto_rebuild("hello.c", argv=[])
    assert len(backend.spawned) == 1
