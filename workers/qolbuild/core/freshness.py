"""
Freshness oracle — is an output older than any of its inputs?

    needs_rebuild(output, inputs) -> Freshness.STALE | FRESH | ERROR

Rules:
  - Missing output → STALE.
  - The output mtime is read once; every input is stat'ed, even after
    staleness is known, so that every reason gets logged.
  - An input that cannot be stat'ed → ERROR (takes precedence over STALE).
  - An input strictly newer than the output → STALE.
  - Equal timestamps are FRESH.

Timestamps are compared as integer nanoseconds (``st_mtime_ns``); on
filesystems with one-second resolution a just-built output therefore
compares equal to its inputs and stays FRESH.
"""
import logging
import os
from dataclasses import dataclass, field
from enum import Enum, unique
from typing import Iterable, List, Optional, Union

logger = logging.getLogger(__name__)

PathArg = Union[str, "os.PathLike[str]"]


@unique
class Freshness(str, Enum):
    STALE = "STALE"
    FRESH = "FRESH"
    ERROR = "ERROR"


@dataclass
class FreshnessReport:
    """Decision plus every reason that led to it."""

    output: str
    status: Freshness
    output_missing: bool = False
    newer_inputs: List[str] = field(default_factory=list)
    unreadable_inputs: List[str] = field(default_factory=list)

    @property
    def is_stale(self) -> bool:
        return self.status == Freshness.STALE


def _mtime_ns(path: PathArg) -> Optional[int]:
    try:
        return os.stat(path).st_mtime_ns
    except OSError:
        return None


def check_freshness(output: PathArg, inputs: Iterable[PathArg]) -> FreshnessReport:
    """Compare every input against *output* and collect the reasons."""
    out = os.fspath(output)
    out_mtime = _mtime_ns(out)

    if out_mtime is None:
        logger.debug("Output %s does not exist, rebuild needed", out)
        return FreshnessReport(output=out, status=Freshness.STALE, output_missing=True)

    report = FreshnessReport(output=out, status=Freshness.FRESH)
    for item in inputs:
        path = os.fspath(item)
        in_mtime = _mtime_ns(path)
        if in_mtime is None:
            logger.warning("Cannot stat input %s", path)
            report.unreadable_inputs.append(path)
            continue
        if in_mtime > out_mtime:
            logger.debug("Input %s is newer than %s, rebuild needed", path, out)
            report.newer_inputs.append(path)

    if report.unreadable_inputs:
        report.status = Freshness.ERROR
    elif report.newer_inputs:
        report.status = Freshness.STALE
    return report


def needs_rebuild(output: PathArg, inputs: Iterable[PathArg]) -> Freshness:
    return check_freshness(output, inputs).status


def is_modified_after(path1: PathArg, path2: PathArg) -> bool:
    """True when *path1* is newer than *path2*.

    A missing *path1* is never newer; a missing *path2* is always older.
    """
    m1 = _mtime_ns(path1)
    if m1 is None:
        return False
    m2 = _mtime_ns(path2)
    if m2 is None:
        return True
    return m1 > m2
