"""
Orchestrator runner — top-level build surface.

Ties the command buffer, the freshness oracle and the process executor
together:

    orch = Orchestrator(config).init()
    orch.auto_rebuild("build.c")             # first thing in the program

    cmd = orch.default_c_build("demo.c")     # cc -Wall -Wextra demo.c -o demo
    if not orch.run(cmd):                    # only if demo.c is newer than demo
        ...

Every command handed to ``run`` / ``run_always`` is consumed: it is
released exactly once on every path, success or failure.  Each one is
recorded in the orchestrator's BuildReceipt.
"""
import logging
import os
import sys
from pathlib import Path
from typing import Dict, Iterable, NoReturn, Optional, Sequence, Tuple, Union

from qolbuild.config import EngineConfig
from qolbuild.core.artifact import inspect_artifact
from qolbuild.core.command import Command
from qolbuild.core.errors import FailureKind
from qolbuild.core.freshness import Freshness, check_freshness
from qolbuild.core.paths import ensure_dir_for_file, filename_no_ext, resolve_in
from qolbuild.core.process import ProcessBackend, ProcessGroup, ProcessHandle, default_backend
from qolbuild.io.schema import BuildReceipt, BuildState, CommandRecord, now_iso
from qolbuild.io.writer import write_receipt
from qolbuild.log import init_logging
from qolbuild.policy.profile import ToolchainProfile

logger = logging.getLogger(__name__)

# Set to the rebuilt binary's path right before the image is replaced.
REBUILD_GUARD_ENV = "QOLBUILD_REBUILT"

PathArg = Union[str, "os.PathLike[str]"]


# ── Argument scanning ────────────────────────────────────────────────────────

def derive_source_output(
    args: Sequence[str],
    output_flag: str = "-o",
    source_marker: str = ".c",
) -> Tuple[Optional[str], Optional[str]]:
    """
    Locate (source, output) in a flat compiler argument list.

    output: the argument right after the first *output_flag* (position 0,
            the executable, is never treated as the flag).
    source: the first argument between the executable and the flag that
            contains *source_marker*; failing that, the argument right
            before the flag.  Without a flag, the first argument anywhere
            containing *source_marker*.

    Heuristic: ``cc main.o -lm -o main main.c`` yields source "-lm", and
    ``cc -o prog prog.c`` yields no source at all (nothing precedes the
    flag).  Commands built by ``default_c_build`` carry an explicit
    descriptor instead.
    """
    marker_at = next(
        (i for i in range(1, len(args) - 1) if args[i] == output_flag),
        None,
    )

    if marker_at is None:
        source = next((a for a in args[1:] if source_marker in a), None)
        return source, None

    output = args[marker_at + 1]
    source = next((a for a in args[1:marker_at] if source_marker in a), None)
    if source is None and marker_at > 1:
        source = args[marker_at - 1]
    return source, output


# ── Orchestrator ─────────────────────────────────────────────────────────────

class Orchestrator:
    """Runs build commands conditionally or unconditionally and self-rebuilds."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        profile: Optional[ToolchainProfile] = None,
        backend: Optional[ProcessBackend] = None,
    ):
        self.config = config or EngineConfig()
        self.profile = profile or ToolchainProfile.for_host(self.config.compiler)
        self.backend = backend or default_backend()
        self.workdir = Path(self.config.workdir)
        self.receipt = BuildReceipt(
            profile_id=self.profile.profile_id,
            workdir=str(self.workdir),
        )
        # handles spawned here and not yet waited on
        self._pending: Dict[ProcessHandle, CommandRecord] = {}

    def init(self) -> "Orchestrator":
        """Configure logging from the engine config.  Call once at startup."""
        init_logging(self.config.log_config())
        return self

    # -----------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------

    def _resolve(self, path: PathArg) -> Path:
        return resolve_in(self.workdir, path)

    def _cwd(self) -> Optional[str]:
        return None if self.workdir == Path(".") else str(self.workdir)

    def _open_record(self, cmd: Command, conditional: bool) -> CommandRecord:
        record = CommandRecord(
            argv=list(cmd.args),
            is_async=cmd.is_async,
            conditional=conditional,
        )
        self.receipt.commands.append(record)
        return record

    def _fail(self, record: CommandRecord, kind: FailureKind) -> bool:
        record.failure = kind.value
        record.advance(BuildState.FAILED)
        return False

    def derive_paths(self, cmd: Command) -> Tuple[Optional[str], Optional[str]]:
        """Structured descriptor first, argument scanning for what is missing."""
        source, output = cmd.source, cmd.output
        if source is None or output is None:
            scanned_source, scanned_output = derive_source_output(
                cmd.args, self.profile.output_flag, self.profile.source_marker,
            )
            source = source if source is not None else scanned_source
            output = output if output is not None else scanned_output
        return source, output

    # -----------------------------------------------------------------
    # Command synthesis
    # -----------------------------------------------------------------

    def default_c_build(self, source: PathArg, output: Optional[PathArg] = None) -> Command:
        """``<cc> <default flags> <source> -o <output>``; output defaults to the stem."""
        src = os.fspath(source)
        out = os.fspath(output) if output is not None else filename_no_ext(src)
        cmd = Command(self.profile.compiler, source=src, output=out)
        cmd.extend(self.profile.default_flags)
        cmd.append(src, self.profile.output_flag, out)
        return cmd

    # -----------------------------------------------------------------
    # Running commands
    # -----------------------------------------------------------------

    def run(
        self,
        cmd: Command,
        group: Optional[ProcessGroup] = None,
        deps: Iterable[PathArg] = (),
    ) -> bool:
        """Run *cmd* only if its output is older than its source (or *deps*)."""
        record = self._open_record(cmd, conditional=True)
        try:
            if cmd.is_empty:
                logger.error("Invalid build configuration: empty command")
                return self._fail(record, FailureKind.INVALID_COMMAND)

            source, output = self.derive_paths(cmd)
            record.source, record.output = source, output
            if not source or not output:
                logger.error("Could not extract source or output from command: %s", cmd.render())
                return self._fail(record, FailureKind.ARGUMENT_DERIVATION_FAILURE)

            out_path = self._resolve(output)
            ensure_dir_for_file(out_path)

            inputs = [self._resolve(source), *(self._resolve(d) for d in deps)]
            report = check_freshness(out_path, inputs)
            record.freshness = report.status.value
            record.newer_inputs = report.newer_inputs
            record.advance(BuildState.STALENESS_CHECKED)

            if report.status == Freshness.FRESH:
                logger.debug("Up to date: %s", output)
                record.skipped = True
                record.advance(BuildState.SUCCEEDED)
                return True

            if report.status == Freshness.ERROR:
                logger.error(
                    "Cannot decide whether %s is up to date, unreadable inputs: %s",
                    output, ", ".join(report.unreadable_inputs),
                )
                return self._fail(record, FailureKind.FRESHNESS_ERROR)

            return self._execute(cmd, record, group)
        finally:
            cmd.release()

    def run_always(self, cmd: Command, group: Optional[ProcessGroup] = None) -> bool:
        """Run *cmd* unconditionally.  Async commands with a group return at once."""
        record = self._open_record(cmd, conditional=False)
        try:
            if cmd.is_empty:
                logger.error("Invalid build configuration: empty command")
                return self._fail(record, FailureKind.INVALID_COMMAND)

            source, output = self.derive_paths(cmd)
            record.source, record.output = source, output
            if output:
                ensure_dir_for_file(self._resolve(output))

            return self._execute(cmd, record, group)
        finally:
            cmd.release()

    def _execute(
        self,
        cmd: Command,
        record: CommandRecord,
        group: Optional[ProcessGroup],
    ) -> bool:
        record.advance(BuildState.EXECUTING)
        handle = self.backend.spawn(cmd, cwd=self._cwd())
        if not handle.valid:
            return self._fail(record, FailureKind.SPAWN_FAILURE)

        record.pid = handle.pid
        self._pending[handle] = record

        if cmd.is_async:
            if group is not None:
                group.push(handle)
                record.advance(BuildState.QUEUED)
                return True
            logger.debug("Async command without a process group, waiting now: %s", cmd.executable)

        return self.wait(handle)

    def wait(self, handle: ProcessHandle) -> bool:
        """Wait on one handle and settle its receipt record.

        Handles launched by another orchestrator are waited on but leave
        this receipt untouched.
        """
        record = self._pending.pop(handle, None)
        ok = self.backend.wait(handle)
        if record is None:
            logger.debug("No record for %r in this receipt", handle)
            return ok
        self._settle(record, handle, ok)
        return ok

    def wait_group(self, group: ProcessGroup) -> bool:
        """Wait on every handle of *group*; the group is empty afterwards."""
        ok = True
        error: Optional[Exception] = None
        for handle in group.drain():
            try:
                if not self.wait(handle):
                    ok = False
            except Exception as e:
                # reap the remaining handles first, then report
                logger.error("Could not settle %r: %s", handle, e)
                ok = False
                error = error or e
        if error is not None:
            raise error
        return ok

    def _settle(self, record: CommandRecord, handle: ProcessHandle, ok: bool) -> None:
        record.exit_code = handle.returncode
        if not ok:
            logger.error("Command failed: %s", " ".join(record.argv))
            self._fail(record, FailureKind.EXECUTION_FAILURE)
            return
        if record.output:
            record.artifact = inspect_artifact(self._resolve(record.output))
        record.advance(BuildState.SUCCEEDED)

    # -----------------------------------------------------------------
    # Self-rebuild
    # -----------------------------------------------------------------

    def rebuild_target(self, source: PathArg) -> Path:
        """Path of the driver binary built from *source*."""
        name = self.profile.rebuild_fallback_name or filename_no_ext(source)
        return self._resolve(name)

    def auto_rebuild(
        self,
        source: PathArg,
        *extra_deps: PathArg,
        argv: Optional[Sequence[str]] = None,
    ) -> None:
        """
        Rebuild the driver from *source* if it (or any *extra_deps*) is newer
        than the driver binary, then replace this process with the new binary.

        Returns only when the binary is already up to date.  Compile
        failure, an undecidable freshness check and a failed image
        replacement all terminate the process with status 1.  At most one
        rebuild happens per invocation (see REBUILD_GUARD_ENV).
        """
        guard = os.environ.pop(REBUILD_GUARD_ENV, None)

        src_path = self._resolve(source)
        binary = self.rebuild_target(source)
        binary_abs = os.path.abspath(binary)

        if not src_path.exists():
            self._fatal(FailureKind.REBUILD_FAILURE, "No such file or directory (%s)", source)

        deps = [self._resolve(d) for d in extra_deps]
        report = check_freshness(binary, [src_path, *deps])

        if report.status == Freshness.FRESH:
            logger.debug("Up to date: %s", binary)
            return

        if report.status == Freshness.ERROR:
            self._fatal(
                FailureKind.FRESHNESS_ERROR,
                "Cannot check %s against its dependencies, unreadable: %s",
                binary, ", ".join(report.unreadable_inputs),
            )

        for newer in report.newer_inputs:
            logger.info("%s is newer than %s, rebuild needed", newer, binary)

        if guard is not None and os.path.abspath(guard) == binary_abs:
            logger.warning(
                "%s was already rebuilt in this invocation and still looks stale; "
                "continuing without another rebuild",
                binary,
            )
            return

        logger.info("Rebuilding: %s -> %s", source, binary)
        own_build = self.default_c_build(os.path.abspath(src_path), binary_abs)
        if not self.run_always(own_build):
            self._fatal(FailureKind.REBUILD_FAILURE, "Rebuild of %s failed", source)

        if check_freshness(binary, [src_path, *deps]).status != Freshness.FRESH:
            logger.warning("%s is still older than its sources after rebuilding (clock skew?)", binary)

        self.finish()
        forwarded = list(argv) if argv is not None else sys.argv[1:]
        os.environ[REBUILD_GUARD_ENV] = binary_abs
        logger.debug("Restarting with updated build executable: %s", binary_abs)
        try:
            self.backend.replace_image(binary_abs, [binary_abs, *forwarded])
        except OSError as e:
            self._fatal(FailureKind.SELF_REPLACE_FAILURE, "Failed to restart build process: %s", e)

        self._fatal(
            FailureKind.SELF_REPLACE_FAILURE,
            "Failed to restart build process: replacement returned",
        )

    auto_rebuild_plus = auto_rebuild

    def _fatal(self, kind: FailureKind, msg: str, *args) -> NoReturn:
        """Log a fatal failure, flush the receipt and exit with status 1."""
        logger.error("[%s] " + msg, kind.value, *args)
        self.receipt.fatal = kind.value
        self.finish()
        sys.exit(1)

    # -----------------------------------------------------------------
    # Receipt
    # -----------------------------------------------------------------

    def finish(self) -> BuildReceipt:
        """Stamp the receipt and write it if a receipt path is configured."""
        self.receipt.finished_at = now_iso()
        self.receipt.status = self.receipt.compute_status()
        if self.config.receipt_path is not None:
            self.write_receipt(self._resolve(self.config.receipt_path))
        return self.receipt

    def write_receipt(self, path: Path) -> Path:
        path = write_receipt(self.receipt, path)
        logger.info("Receipt saved: %s", path)
        return path
