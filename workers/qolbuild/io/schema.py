"""
Schema — pydantic models for the build receipt.

One receipt per orchestrator lifetime.  Each command handed to
``run`` / ``run_always`` becomes one CommandRecord listing the states
it went through, the freshness decision, the exit status and the
produced artifact.

Runtime contract fields (present in every receipt):
  package_name, engine_version, schema_version, profile_id.
"""
from datetime import datetime, timezone
from enum import Enum, unique
from typing import List, Optional

from pydantic import BaseModel, Field

from qolbuild import ENGINE_VERSION, PACKAGE_NAME, SCHEMA_VERSION


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ── Enums ────────────────────────────────────────────────────────────────────

@unique
class BuildState(str, Enum):
    IDLE = "IDLE"
    STALENESS_CHECKED = "STALENESS_CHECKED"
    EXECUTING = "EXECUTING"
    QUEUED = "QUEUED"            # async launch, result known after wait_group
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


@unique
class JobStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PENDING = "PENDING"
    EMPTY = "EMPTY"


TERMINAL_STATES = frozenset({BuildState.SUCCEEDED, BuildState.FAILED})


# ── Artifact ─────────────────────────────────────────────────────────────────

class ElfMeta(BaseModel):
    elf_type: str               # ET_EXEC, ET_DYN, ET_REL
    machine: str                # EM_X86_64, EM_AARCH64, ...
    elf_class: int              # 32 | 64
    build_id: Optional[str] = None


class ArtifactMeta(BaseModel):
    path: str
    sha256: str
    size_bytes: int
    elf: Optional[ElfMeta] = None


# ── Per-command record ───────────────────────────────────────────────────────

class CommandRecord(BaseModel):
    argv: List[str]
    is_async: bool = False
    conditional: bool = False

    source: Optional[str] = None
    output: Optional[str] = None

    states: List[BuildState] = Field(default_factory=lambda: [BuildState.IDLE])
    freshness: Optional[str] = None          # STALE | FRESH | ERROR
    newer_inputs: List[str] = Field(default_factory=list)
    skipped: bool = False                    # FRESH, nothing launched

    pid: Optional[int] = None
    exit_code: Optional[int] = None
    failure: Optional[str] = None            # FailureKind value
    artifact: Optional[ArtifactMeta] = None

    started_at: str = Field(default_factory=now_iso)
    finished_at: Optional[str] = None

    @property
    def state(self) -> BuildState:
        return self.states[-1]

    def advance(self, state: BuildState) -> None:
        self.states.append(state)
        if state in TERMINAL_STATES:
            self.finished_at = now_iso()


# ── Receipt ──────────────────────────────────────────────────────────────────

class BuildReceipt(BaseModel):
    package_name: str = PACKAGE_NAME
    engine_version: str = ENGINE_VERSION
    schema_version: str = SCHEMA_VERSION
    profile_id: str

    workdir: str
    created_at: str = Field(default_factory=now_iso)
    finished_at: Optional[str] = None

    commands: List[CommandRecord] = Field(default_factory=list)
    fatal: Optional[str] = None              # FailureKind that terminated the run
    status: JobStatus = JobStatus.EMPTY

    def compute_status(self) -> JobStatus:
        """FAILED if any command failed, PENDING while async ones run."""
        if self.fatal is not None:
            return JobStatus.FAILED
        if not self.commands:
            return JobStatus.EMPTY
        states = [c.state for c in self.commands]
        if BuildState.FAILED in states:
            return JobStatus.FAILED
        if any(s not in TERMINAL_STATES for s in states):
            return JobStatus.PENDING
        return JobStatus.SUCCESS
