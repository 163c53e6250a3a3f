"""
qolbuild — incremental build & process-orchestration engine.

Decides from modification timestamps whether a command must run, spawns
compiler processes synchronously or in async groups, and can rebuild and
re-exec its own driver binary.
"""

__version__ = "0.1.0"
ENGINE_VERSION = "v0"
PACKAGE_NAME = "qolbuild"
SCHEMA_VERSION = "0.1"
