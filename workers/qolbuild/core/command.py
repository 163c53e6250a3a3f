"""
Command — growable, ordered argument buffer for one process invocation.

Position 0 is the executable.  Arguments are only ever appended, never
reordered.  The backing storage grows by doubling from INITIAL_CAPACITY;
running a command through the orchestrator consumes it (``release``).

A command may also carry a structured ``source`` / ``output`` descriptor.
When present, the orchestrator uses it instead of scanning the argument
list for the ``-o`` marker.
"""
import logging
import os
from typing import Iterable, Iterator, List, Optional, Tuple, Union

from qolbuild.core.errors import FailureKind
from qolbuild.core.quoting import build_command_line

logger = logging.getLogger(__name__)

INITIAL_CAPACITY = 8

Arg = Union[str, "os.PathLike[str]"]


def _as_arg(value: Arg) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, os.PathLike):
        return os.fspath(value)
    raise TypeError(
        f"Command arguments must be str or PathLike, got {type(value).__name__}"
    )


class Command:
    """Ordered argument sequence plus the async flag."""

    def __init__(
        self,
        *args: Arg,
        is_async: bool = False,
        source: Optional[str] = None,
        output: Optional[str] = None,
    ):
        self._data: List[Optional[str]] = []
        self._len = 0
        self.is_async = is_async
        self.source = source
        self.output = output
        self.released = False
        if args:
            self.append(*args)

    # -----------------------------------------------------------------
    # Storage
    # -----------------------------------------------------------------

    @property
    def capacity(self) -> int:
        return len(self._data)

    def _grow(self, needed: int) -> None:
        """Double capacity until *needed* slots fit."""
        old_cap = self.capacity
        if needed <= old_cap:
            return

        new_cap = old_cap or INITIAL_CAPACITY
        while new_cap < needed:
            new_cap *= 2

        try:
            self._data.extend([None] * (new_cap - old_cap))
        except MemoryError:
            logger.critical(
                "[%s] Command buffer out of memory (need %d arguments)",
                FailureKind.ALLOCATION_FAILURE.value, needed,
            )
            for handler in logging.getLogger("qolbuild").handlers:
                handler.flush()
            os.abort()

        if old_cap == 0:
            logger.debug("Command buffer initialised with capacity %d", new_cap)
        else:
            logger.debug("Command buffer grows (%d -> %d)", old_cap, new_cap)

    def append(self, *args: Arg) -> "Command":
        """Append one or more arguments in call order.  Returns self."""
        values = [_as_arg(a) for a in args]
        if not values:
            return self

        self._grow(self._len + len(values))
        for value in values:
            self._data[self._len] = value
            self._len += 1
        self.released = False
        return self

    def extend(self, args: Iterable[Arg]) -> "Command":
        return self.append(*args)

    def release(self) -> None:
        """Free the backing storage.  Safe to call more than once."""
        self._data = []
        self._len = 0
        self.released = True

    # -----------------------------------------------------------------
    # Views
    # -----------------------------------------------------------------

    @property
    def args(self) -> Tuple[str, ...]:
        return tuple(self._data[: self._len])  # type: ignore[arg-type]

    @property
    def executable(self) -> Optional[str]:
        return self._data[0] if self._len else None

    @property
    def is_empty(self) -> bool:
        return self._len == 0

    def render(self) -> str:
        """Display form used in CMD log lines (space-containing args quoted)."""
        return build_command_line(self.args)

    def __len__(self) -> int:
        return self._len

    def __iter__(self) -> Iterator[str]:
        return iter(self.args)

    def __getitem__(self, index):
        return self.args[index]

    def __repr__(self) -> str:
        flag = ", async" if self.is_async else ""
        return f"Command({list(self.args)!r}{flag})"
