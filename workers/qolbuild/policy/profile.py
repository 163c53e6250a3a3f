"""
Profile — toolchain descriptor for the host platform.

Everything platform-specific the orchestrator needs (compiler name,
default warning flags, the output marker, how the self-rebuilt binary is
named) lives here, so the core code contains no platform opinions.
"""
import os
from dataclasses import dataclass, field, replace
from typing import Optional, Tuple


@dataclass(frozen=True)
class ToolchainProfile:
    """How commands are synthesised and scanned on one platform family."""

    # Identity
    profile_id: str
    platform: str                      # "posix" | "windows"

    # Command synthesis
    compiler: str
    default_flags: Tuple[str, ...] = field(default_factory=tuple)
    output_flag: str = "-o"

    # Argument scanning: an argument containing this marker is source-like
    source_marker: str = ".c"

    # Self-rebuild: a running .exe cannot be overwritten on Windows, so the
    # rebuilt driver goes to a fixed side name instead of <stem>.
    rebuild_fallback_name: Optional[str] = None

    @classmethod
    def posix(cls) -> "ToolchainProfile":
        return cls(
            profile_id="posix-cc",
            platform="posix",
            compiler="cc",
            default_flags=("-Wall", "-Wextra"),
        )

    @classmethod
    def windows(cls) -> "ToolchainProfile":
        return cls(
            profile_id="windows-gcc",
            platform="windows",
            compiler="gcc",
            default_flags=(),
            rebuild_fallback_name="build_new.exe",
        )

    @classmethod
    def for_host(cls, compiler: Optional[str] = None) -> "ToolchainProfile":
        """Profile for the running interpreter, optionally with another compiler."""
        profile = cls.windows() if os.name == "nt" else cls.posix()
        if compiler:
            profile = replace(profile, compiler=compiler)
        return profile
