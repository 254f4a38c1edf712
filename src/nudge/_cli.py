"""Nudge CLI — nudge watch / nudge trigger / nudge plan.

Entry point for the ``nudge`` command-line interface.
"""

from __future__ import annotations

import argparse
import sys


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the nudge CLI."""
    parser = argparse.ArgumentParser(
        prog="nudge",
        description="Dependency-ordered sync requests on source revision changes.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # nudge watch
    watch_parser = subparsers.add_parser(
        "watch",
        help="Watch manifests and request syncs on revision changes",
    )
    watch_parser.add_argument("root", nargs="?", default=".", help="Project root directory")
    watch_parser.add_argument("--timeout", type=float, default=None, help="Per-trigger timeout (s)")
    watch_parser.add_argument("--quiet", action="store_true", help="Only print errors")

    # nudge trigger
    trigger_parser = subparsers.add_parser(
        "trigger",
        help="Request syncs for every consumer of one source",
    )
    trigger_parser.add_argument("source", help="Source as namespace/name")
    trigger_parser.add_argument("root", nargs="?", default=".", help="Project root directory")
    trigger_parser.add_argument("--kind", default=None, help="Source kind")
    trigger_parser.add_argument("--timeout", type=float, default=None, help="Trigger timeout (s)")

    # nudge plan
    plan_parser = subparsers.add_parser(
        "plan",
        help="Print the sync order for a source without changing anything",
    )
    plan_parser.add_argument("source", help="Source as namespace/name")
    plan_parser.add_argument("root", nargs="?", default=".", help="Project root directory")
    plan_parser.add_argument("--kind", default=None, help="Source kind")

    return parser


def _get_version() -> str:
    """Get the package version."""
    from nudge import __version__

    return __version__


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    from nudge._errors import CycleError, NudgeError
    from nudge.app import plan, trigger, watch

    try:
        if args.command == "watch":
            watch(root=args.root, timeout=args.timeout, verbose=False if args.quiet else None)
        elif args.command == "trigger":
            result = trigger(args.root, args.source, kind=args.kind, timeout=args.timeout)
            for outcome in result.outcomes:
                detail = outcome.requested_at if outcome.ok else outcome.error
                print(f"{outcome.key}\t{outcome.status}\t{detail}")
            if result.status not in ("completed", "skipped"):
                print(f"error: {result.error}", file=sys.stderr)
                sys.exit(1)
        elif args.command == "plan":
            for position, consumer in enumerate(
                plan(args.root, args.source, kind=args.kind), start=1,
            ):
                print(f"{position}\t{consumer.key}")
    except CycleError as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(1)
    except NudgeError as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
