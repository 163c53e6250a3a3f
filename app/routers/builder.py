"""
Builder Router

Freshness queries and synchronous compiler runs confined to BUILD_ROOT.
Commands run in the request's worker thread with one orchestrator per
request; there are no async process groups over HTTP.
"""
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator

from app.config import Settings
from qolbuild.core.command import Command
from qolbuild.core.freshness import check_freshness
from qolbuild.core.paths import resolve_in
from qolbuild.io.schema import BuildReceipt
from qolbuild.io.writer import load_receipt
from qolbuild.runner import Orchestrator


# =============================================================================
# Dependencies
# =============================================================================

def get_settings() -> Settings:
    return Settings()


def get_orchestrator(settings: Settings = Depends(get_settings)) -> Orchestrator:
    return Orchestrator(settings.engine_config())


# =============================================================================
# Path confinement
# =============================================================================

def confine(root: Path, path: str) -> Path:
    """Resolve *path* under *root*; 403 if it points outside."""
    resolved = resolve_in(root, path).resolve()
    if not resolved.is_relative_to(root.resolve()):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Path escapes BUILD_ROOT: {path}",
        )
    return resolved


# =============================================================================
# Request / Response Models
# =============================================================================

class FreshnessRequest(BaseModel):
    output: str = Field(..., description="Output path, relative to BUILD_ROOT")
    inputs: List[str] = Field(..., min_length=1, description="Input paths")


class FreshnessResponse(BaseModel):
    output: str
    status: str                     # STALE | FRESH | ERROR
    output_missing: bool
    newer_inputs: List[str]
    unreadable_inputs: List[str]


class RunRequest(BaseModel):
    """
    An explicit argument vector.  ``source`` / ``output`` override the
    ``-o`` scanning used for the freshness check.
    """
    argv: List[str] = Field(..., min_length=1, description="Command, executable first")
    always: bool = Field(False, description="Skip the freshness check")
    source: Optional[str] = None
    output: Optional[str] = None
    deps: List[str] = Field(default_factory=list, description="Extra inputs")

    @field_validator("argv")
    @classmethod
    def validate_argv(cls, v: List[str]) -> List[str]:
        if not v[0].strip():
            raise ValueError("argv[0] must name an executable")
        return v


class CompileRequest(BaseModel):
    """Default C build: <cc> <flags> source -o output [extra_flags]."""
    source: str
    output: Optional[str] = None
    extra_flags: List[str] = Field(default_factory=list)
    always: bool = False


class RunResponse(BaseModel):
    ok: bool
    receipt: BuildReceipt


# =============================================================================
# Router
# =============================================================================

router = APIRouter()


@router.post("/freshness", response_model=FreshnessResponse)
def query_freshness(request: FreshnessRequest, settings: Settings = Depends(get_settings)):
    """Report whether ``output`` is older than any of ``inputs``."""
    root = settings.engine_config().workdir
    report = check_freshness(
        confine(root, request.output),
        [confine(root, p) for p in request.inputs],
    )
    return FreshnessResponse(
        output=request.output,
        status=report.status.value,
        output_missing=report.output_missing,
        newer_inputs=report.newer_inputs,
        unreadable_inputs=report.unreadable_inputs,
    )


@router.post("/run", response_model=RunResponse)
def run_command(request: RunRequest, orch: Orchestrator = Depends(get_orchestrator)):
    """
    Run ``argv`` (conditionally unless ``always``) and return the receipt.

    Only the configured compiler may be run, with one output flag, and
    every source, output and dependency path must stay inside BUILD_ROOT.
    """
    if request.argv[0] != orch.profile.compiler:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Only the configured compiler ({orch.profile.compiler}) may be run",
        )
    if request.argv.count(orch.profile.output_flag) > 1:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"At most one {orch.profile.output_flag} argument is allowed",
        )

    cmd = Command(*request.argv, source=request.source, output=request.output)
    source, output = orch.derive_paths(cmd)
    for path in (source, output, *request.deps):
        if path:
            confine(orch.workdir, path)

    if request.always:
        ok = orch.run_always(cmd)
    else:
        ok = orch.run(cmd, deps=request.deps)
    return RunResponse(ok=ok, receipt=orch.finish())


@router.post("/compile", response_model=RunResponse)
def compile_source(request: CompileRequest, orch: Orchestrator = Depends(get_orchestrator)):
    """Compile one C source with the host profile's default command."""
    confine(orch.workdir, request.source)
    if request.output is not None:
        confine(orch.workdir, request.output)
    for flag in request.extra_flags:
        if not flag.startswith("-") or flag == orch.profile.output_flag:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Extra flags must be options other than {orch.profile.output_flag}: {flag!r}",
            )

    cmd = orch.default_c_build(request.source, request.output)
    cmd.extend(request.extra_flags)
    ok = orch.run_always(cmd) if request.always else orch.run(cmd)
    return RunResponse(ok=ok, receipt=orch.finish())


@router.get("/receipt", response_model=BuildReceipt)
def get_last_receipt(settings: Settings = Depends(get_settings)):
    """The receipt written by the most recent run, if RECEIPT_PATH is set."""
    config = settings.engine_config()
    if config.receipt_path is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="RECEIPT_PATH is not configured",
        )
    path = resolve_in(config.workdir, config.receipt_path)
    if not path.is_file():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No receipt at {config.receipt_path}",
        )
    return load_receipt(path)
