"""
Quoting — marshal an argv list into one Windows command-line string.

CreateProcess takes a single string that the child's C runtime splits
back into argv.  ``subprocess.list2cmdline`` produces the inverse of that
split (Microsoft C runtime, "Parsing C command-line arguments"):

  - An argument is wrapped in double quotes when it is empty or contains
    a space or a tab.
  - An embedded double quote is written as \\".
  - Backslashes are literal, except a run of backslashes followed by a
    double quote (embedded, or the closing quote we add): that run is
    doubled so the quote keeps its meaning.

No shell metacharacter handling: the string is never given to cmd.exe.
"""
import subprocess
from typing import Iterable

_NEEDS_QUOTES = (" ", "\t")


def needs_quoting(arg: str) -> bool:
    return arg == "" or any(ch in arg for ch in _NEEDS_QUOTES)


def quote_arg(arg: str) -> str:
    """Return *arg* escaped so the child sees exactly *arg*."""
    return subprocess.list2cmdline([arg])


def build_command_line(args: Iterable[str]) -> str:
    """Join quoted arguments with single spaces."""
    return subprocess.list2cmdline(list(args))
