"""
Process executor — spawn, wait, and wait on groups of native processes.

Contract (identical for both backends):

  spawn(cmd)        → ProcessHandle; INVALID on failure, never raises.
  wait(handle)      → True only for a normal exit with status 0.  The
                      handle is consumed: the process is reaped and the
                      handle becomes invalid.  INVALID → False at once.
  wait_group(group) → AND of every wait, in enqueue order.  Never stops
                      early and always leaves the group empty.

Children inherit stdin/stdout/stderr and the working directory (unless
one is given) and are resolved through PATH.  There is no timeout: a
hung child hangs the wait.

Backends:
  PosixBackend    argv list → fork + exec
  WindowsBackend  argv list → one quoted command line → CreateProcess
"""
import logging
import os
import signal
import subprocess
import sys
from typing import Iterator, List, Optional, Sequence, Union

from qolbuild.core.command import Command
from qolbuild.core.quoting import build_command_line
from qolbuild.log import CMD

logger = logging.getLogger(__name__)


class ProcessHandle:
    """A launched child process, waitable exactly once."""

    def __init__(self, proc: Optional[subprocess.Popen], argv: Sequence[str] = ()):
        self._proc = proc
        self.argv = tuple(argv)
        self.pid: Optional[int] = proc.pid if proc is not None else None
        self.returncode: Optional[int] = None

    @property
    def valid(self) -> bool:
        return self._proc is not None

    def _take(self) -> Optional[subprocess.Popen]:
        proc, self._proc = self._proc, None
        return proc

    def __repr__(self) -> str:
        if self is INVALID:
            return "ProcessHandle(INVALID)"
        state = "running" if self.valid else f"done rc={self.returncode}"
        return f"ProcessHandle(pid={self.pid}, {state})"


INVALID = ProcessHandle(None)


class ProcessGroup:
    """Handles launched asynchronously and not yet waited on."""

    def __init__(self):
        self._handles: List[ProcessHandle] = []

    def push(self, handle: ProcessHandle) -> None:
        if not handle.valid:
            raise ValueError(f"Only valid handles can join a process group: {handle!r}")
        self._handles.append(handle)

    def drain(self) -> List[ProcessHandle]:
        """Remove and return every handle, in enqueue order."""
        handles, self._handles = self._handles, []
        return handles

    def __len__(self) -> int:
        return len(self._handles)

    def __iter__(self) -> Iterator[ProcessHandle]:
        return iter(list(self._handles))

    def __repr__(self) -> str:
        return f"ProcessGroup({len(self._handles)} pending)"


# =============================================================================
# Backends
# =============================================================================

class ProcessBackend:
    """Shared spawn / wait logic; subclasses decide how argv is passed."""

    name = "base"

    def popen_args(self, args: Sequence[str]) -> Union[str, List[str]]:
        raise NotImplementedError

    def describe_status(self, returncode: int) -> str:
        return f"exit code {returncode}"

    def spawn(
        self,
        cmd: Command,
        cwd: Optional[Union[str, "os.PathLike[str]"]] = None,
    ) -> ProcessHandle:
        if cmd.is_empty:
            logger.error("Invalid command: empty or released")
            return INVALID

        logger.log(CMD, "%s", cmd.render())
        try:
            proc = subprocess.Popen(self.popen_args(cmd.args), cwd=cwd)
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            logger.error("Failed to spawn %s: %s", cmd.executable, e)
            return INVALID

        logger.debug("Spawned %s (pid %d)", cmd.executable, proc.pid)
        return ProcessHandle(proc, cmd.args)

    def wait(self, handle: ProcessHandle) -> bool:
        proc = handle._take()
        if proc is None:
            logger.debug("wait() on an invalid process handle")
            return False

        returncode = proc.wait()
        handle.returncode = returncode
        if returncode == 0:
            return True

        logger.warning(
            "Command %s failed: %s",
            handle.argv[0] if handle.argv else "?",
            self.describe_status(returncode),
        )
        return False

    def wait_group(self, group: ProcessGroup) -> bool:
        ok = True
        for handle in group.drain():
            if not self.wait(handle):
                ok = False
        return ok

    def replace_image(self, path: str, argv: Sequence[str]) -> None:
        raise NotImplementedError


class PosixBackend(ProcessBackend):
    name = "posix"

    def popen_args(self, args: Sequence[str]) -> List[str]:
        return list(args)

    def describe_status(self, returncode: int) -> str:
        if returncode < 0:
            try:
                sig = signal.Signals(-returncode).name
            except ValueError:
                sig = str(-returncode)
            return f"terminated by signal {sig}"
        return f"exit code {returncode}"

    def replace_image(self, path: str, argv: Sequence[str]) -> None:
        """exec *path*; only returns by raising OSError."""
        for handler in logging.getLogger("qolbuild").handlers:
            handler.flush()
        sys.stdout.flush()
        sys.stderr.flush()
        os.execv(path, list(argv))


class WindowsBackend(ProcessBackend):
    name = "windows"

    def popen_args(self, args: Sequence[str]) -> str:
        return build_command_line(args)

    def describe_status(self, returncode: int) -> str:
        # NTSTATUS codes (access violation etc.) have the high bit set
        if returncode & 0xC0000000 == 0xC0000000:
            return f"exception 0x{returncode & 0xFFFFFFFF:08X}"
        return f"exit code {returncode}"

    def replace_image(self, path: str, argv: Sequence[str]) -> None:
        """Start *path* as a detached successor, then end this process."""
        subprocess.Popen(build_command_line([path, *argv[1:]]))
        sys.stdout.flush()
        sys.stderr.flush()
        sys.exit(0)


def default_backend() -> ProcessBackend:
    return WindowsBackend() if os.name == "nt" else PosixBackend()


_BACKEND = default_backend()


def spawn(cmd: Command, cwd=None) -> ProcessHandle:
    return _BACKEND.spawn(cmd, cwd=cwd)


def wait(handle: ProcessHandle) -> bool:
    return _BACKEND.wait(handle)


def wait_group(group: ProcessGroup) -> bool:
    return _BACKEND.wait_group(group)
