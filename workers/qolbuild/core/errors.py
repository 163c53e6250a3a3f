"""
Failure taxonomy shared by the executor, the orchestrator and the receipt.

Non-fatal kinds are reported through boolean / sentinel results and
recorded in the receipt; fatal kinds terminate the process.
"""
from enum import Enum, unique


@unique
class FailureKind(str, Enum):
    ALLOCATION_FAILURE = "ALLOCATION_FAILURE"                    # fatal, abort
    INVALID_COMMAND = "INVALID_COMMAND"
    SPAWN_FAILURE = "SPAWN_FAILURE"
    EXECUTION_FAILURE = "EXECUTION_FAILURE"
    ARGUMENT_DERIVATION_FAILURE = "ARGUMENT_DERIVATION_FAILURE"
    FRESHNESS_ERROR = "FRESHNESS_ERROR"
    REBUILD_FAILURE = "REBUILD_FAILURE"                          # fatal, exit 1
    SELF_REPLACE_FAILURE = "SELF_REPLACE_FAILURE"                # fatal, exit 1
