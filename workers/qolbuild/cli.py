"""
Command-line front-end.

    qolbuild check OUTPUT INPUT...          STALE / FRESH / ERROR (exit 1 / 0 / 2)
    qolbuild build SOURCE [-o OUT] [--always] [-- EXTRA_FLAGS...]
    qolbuild run [--always] [--async N] -- ARGV...
    qolbuild bootstrap DRIVER.c [DEP...] [-- DRIVER_ARGS...]

Logging, working directory, compiler and receipt path come from
QOLBUILD_* environment variables and can be overridden by flags.
"""
import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from qolbuild import __version__
from qolbuild.config import EngineSettings
from qolbuild.core.command import Command
from qolbuild.core.freshness import Freshness, check_freshness
from qolbuild.core.paths import resolve_in
from qolbuild.core.process import ProcessGroup
from qolbuild.log import parse_level
from qolbuild.runner import Orchestrator

logger = logging.getLogger(__name__)

EXIT_FOR_FRESHNESS = {
    Freshness.FRESH: 0,
    Freshness.STALE: 1,
    Freshness.ERROR: 2,
}


def _split_passthrough(argv: List[str]):
    """Split at the first ``--``: (own args, passthrough args)."""
    if "--" in argv:
        at = argv.index("--")
        return argv[:at], argv[at + 1:]
    return argv, []


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="qolbuild",
        description="qolbuild — incremental build & process orchestration",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-C", "--workdir", type=Path, default=None,
                        help="Working directory for paths and spawned commands")
    parser.add_argument("--log-level", default=None,
                        help="DEBUG, INFO, CMD, HINT, WARN, ERROR, CRITICAL or NONE")
    parser.add_argument("--color", action="store_true", default=None,
                        help="Colorize log levels")
    parser.add_argument("--exit-on-error", action="store_true", default=None,
                        help="Exit with status 1 on any ERROR diagnostic, abort on CRITICAL")
    parser.add_argument("--receipt", type=Path, default=None,
                        help="Write the build receipt JSON here")
    parser.add_argument("--cc", default=None, help="Compiler to use instead of the profile's")

    sub = parser.add_subparsers(dest="command", required=True)

    p_check = sub.add_parser("check", help="Report whether OUTPUT is older than any INPUT")
    p_check.add_argument("output")
    p_check.add_argument("inputs", nargs="+")

    p_build = sub.add_parser("build", help="Compile one C source with the default command")
    p_build.add_argument("source")
    p_build.add_argument("-o", "--output", default=None)
    p_build.add_argument("--always", action="store_true", help="Skip the freshness check")
    p_build.add_argument("--dep", action="append", default=[],
                         help="Extra input that also triggers a rebuild (repeatable)")

    p_run = sub.add_parser("run", help="Run an arbitrary compiler command line")
    p_run.add_argument("--always", action="store_true", help="Skip the freshness check")
    p_run.add_argument("--async", dest="async_copies", type=int, default=0, metavar="N",
                       help="Launch N copies concurrently and wait for all of them")

    p_boot = sub.add_parser("bootstrap", help="Rebuild DRIVER if stale, then exec it")
    p_boot.add_argument("driver")
    p_boot.add_argument("deps", nargs="*")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    raw = list(sys.argv[1:] if argv is None else argv)
    own, passthrough = _split_passthrough(raw)
    args = build_parser().parse_args(own)

    settings = EngineSettings()
    config = settings.to_engine_config()
    updates = {}
    if args.workdir is not None:
        updates["workdir"] = args.workdir
    if args.log_level is not None:
        updates["log_level"] = parse_level(args.log_level)
    if args.color:
        updates["log_color"] = True
    if args.exit_on_error:
        updates["log_exit_on_error"] = True
    if args.receipt is not None:
        updates["receipt_path"] = args.receipt
    if args.cc is not None:
        updates["compiler"] = args.cc
    config = config.model_copy(update=updates)

    orch = Orchestrator(config).init()

    if args.command == "check":
        report = check_freshness(
            resolve_in(orch.workdir, args.output),
            [resolve_in(orch.workdir, p) for p in args.inputs],
        )
        print(report.status.value)
        for path in report.newer_inputs:
            print(f"  newer: {path}")
        for path in report.unreadable_inputs:
            print(f"  unreadable: {path}")
        return EXIT_FOR_FRESHNESS[report.status]

    if args.command == "build":
        cmd = orch.default_c_build(args.source, args.output)
        cmd.extend(passthrough)
        ok = orch.run_always(cmd) if args.always else orch.run(cmd, deps=args.dep)
        orch.finish()
        return 0 if ok else 1

    if args.command == "run":
        if not passthrough:
            logger.error("Nothing to run: pass the command after --")
            return 2
        if args.async_copies > 0:
            group = ProcessGroup()
            ok = True
            for _ in range(args.async_copies):
                cmd = Command(*passthrough, is_async=True)
                ok = (orch.run_always(cmd, group) if args.always else orch.run(cmd, group)) and ok
            ok = orch.wait_group(group) and ok
        else:
            cmd = Command(*passthrough)
            ok = orch.run_always(cmd) if args.always else orch.run(cmd)
        orch.finish()
        return 0 if ok else 1

    if args.command == "bootstrap":
        orch.auto_rebuild(args.driver, *args.deps, argv=passthrough)
        # Up to date: hand over to the existing binary.
        binary = os.path.abspath(orch.rebuild_target(args.driver))
        orch.finish()
        try:
            orch.backend.replace_image(binary, [binary, *passthrough])
        except OSError as e:
            logger.error("Failed to start %s: %s", binary, e)
            return 1
        return 1

    return 2


if __name__ == "__main__":
    sys.exit(main())
