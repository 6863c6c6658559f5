#!/usr/bin/env python
"""
Forge Pilot CLI - coordinate autonomous coding workers.

Usage:
    forgepilot [--project-dir DIR] [--verbose] events ...
    forgepilot pr status N
    forgepilot pr ready N
    forgepilot pr wait N [--interval S] [--timeout S]
    forgepilot pr merge N [--method METHOD] [--dry-run]
    forgepilot config show
    forgepilot config validate
    forgepilot admit
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from rich.markup import escape

from forgepilot import __version__
from forgepilot.admission import AdmissionController
from forgepilot.auto_merge import AutoMerger, MergeAction
from forgepilot.ci_gate import (
    DEFAULT_POLL_INTERVAL,
    DEFAULT_WAIT_TIMEOUT,
    CIGateChecker,
    PRStatusResult,
)
from forgepilot.cli.events_cli import add_events_parser, run_events_command
from forgepilot.config import (
    CONFIG_FILES,
    ConfigLoader,
    MergeMethod,
    describe_pr_strategy,
    has_autopilot_config,
)
from forgepilot.event_logger import EventLogger
from forgepilot.github_client import GhClient
from forgepilot.output import (
    print_error,
    print_header,
    print_info,
    print_key_value_table,
    print_muted,
    print_pr_status,
    print_status_line,
    print_success,
    print_warning,
    setup_rich_logging,
    spinner,
)


def _checker(config) -> CIGateChecker:
    return CIGateChecker(GhClient(), config)


def cmd_pr_status(args, config) -> int:
    with spinner(f"Checking PR #{args.pr_number}..."):
        status = asyncio.run(_checker(config).check_pr_status(args.pr_number))
    print_pr_status(status)
    return 0 if status.result == PRStatusResult.PASS else 1


def cmd_pr_ready(args, config) -> int:
    with spinner(f"Checking PR #{args.pr_number}..."):
        readiness = asyncio.run(_checker(config).is_pr_ready_to_merge(args.pr_number))
    if readiness.ready:
        print_success(readiness.reason)
        return 0
    print_warning(escape(readiness.reason))
    return 1


def cmd_pr_wait(args, config) -> int:
    status = asyncio.run(_checker(config).wait_for_pr_checks(
        args.pr_number,
        poll_interval=args.interval,
        timeout=args.timeout,
        on_status_update=print_status_line,
    ))

    if status.timed_out:
        print_warning(status.summary)
        return 1
    print_pr_status(status)
    return 0 if status.result == PRStatusResult.PASS else 1


def cmd_pr_merge(args, config) -> int:
    gh = GhClient()
    merger = AutoMerger(
        CIGateChecker(gh, config),
        gh,
        config,
        event_logger=EventLogger(args.project_dir),
    )
    with spinner(f"Processing PR #{args.pr_number} ({config.pr_strategy.value})..."):
        result = asyncio.run(merger.process(
            args.pr_number,
            merge_method=MergeMethod(args.method),
            dry_run=args.dry_run,
        ))

    message = escape(result.message)
    if not result.success:
        print_error(message)
        return 1
    if result.action in (MergeAction.MERGED, MergeAction.LABELED):
        print_success(message)
    else:
        print_info(message)
    return 0


def cmd_config_show(args, config) -> int:
    print_header("Autopilot Configuration")
    data = {
        "PR strategy": f"{config.pr_strategy.value} ({describe_pr_strategy(config.pr_strategy)})",
        "Max concurrent workers": config.max_concurrent_workers,
        "Auto-label non-blocking": config.auto_label_non_blocking,
        "Worker timeout": config.worker_timeout,
        "Required checks": ", ".join(config.required_checks) or "none",
        "Branch pattern": config.branch_pattern,
        "Worker label": config.worker_label,
        "Review label": config.review_label,
    }
    print_key_value_table({key: escape(str(value)) for key, value in data.items()})
    if not has_autopilot_config(args.project_dir):
        print_muted(f"No autopilot section in {' or '.join(CONFIG_FILES)}; using defaults")
    return 0


def cmd_config_validate(args, loader: ConfigLoader) -> int:
    report = loader.report
    if report.valid:
        print_success("Configuration is valid")
        return 0
    for error in report.errors:
        print_error(escape(error))
    return 1


def cmd_admit(args, config) -> int:
    decision = AdmissionController(EventLogger(args.project_dir), config).can_admit()
    if decision:
        print_success(f"Worker may start ({decision.reason})")
        return 0
    print_warning(decision.reason)
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="forgepilot",
        description="Coordinate autonomous coding workers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--project-dir",
        type=Path,
        default=Path("."),
        help="Project directory holding the event log and config (default: current dir)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging and extra detail")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    add_events_parser(subparsers)

    pr_parser = subparsers.add_parser("pr", help="Pull request CI gate and merge")
    pr_sub = pr_parser.add_subparsers(dest="pr_command", help="PR command")

    status_parser = pr_sub.add_parser("status", help="Show CI status of a PR")
    status_parser.add_argument("pr_number", type=int)

    ready_parser = pr_sub.add_parser("ready", help="Check whether a PR can be merged")
    ready_parser.add_argument("pr_number", type=int)

    wait_parser = pr_sub.add_parser("wait", help="Poll until CI checks finish")
    wait_parser.add_argument("pr_number", type=int)
    wait_parser.add_argument("--interval", type=float, default=DEFAULT_POLL_INTERVAL, help="Seconds between polls")
    wait_parser.add_argument("--timeout", type=float, default=DEFAULT_WAIT_TIMEOUT, help="Seconds before giving up")

    merge_parser = pr_sub.add_parser("merge", help="Apply the configured PR strategy")
    merge_parser.add_argument("pr_number", type=int)
    merge_parser.add_argument(
        "--method",
        choices=[m.value for m in MergeMethod],
        default=MergeMethod.SQUASH.value,
        help="Merge method",
    )
    merge_parser.add_argument("--dry-run", action="store_true", help="Report without merging or labeling")

    config_parser = subparsers.add_parser("config", help="Autopilot configuration")
    config_sub = config_parser.add_subparsers(dest="config_command", help="Config command")
    config_sub.add_parser("show", help="Show the effective configuration")
    config_sub.add_parser("validate", help="Report invalid configuration values")

    subparsers.add_parser("admit", help="Check whether another worker may start")

    return parser


PR_COMMANDS = {
    "status": cmd_pr_status,
    "ready": cmd_pr_ready,
    "wait": cmd_pr_wait,
    "merge": cmd_pr_merge,
}


def main(argv=None) -> int:
    load_dotenv()

    parser = build_parser()
    args = parser.parse_args(argv)

    setup_rich_logging(logging.DEBUG if args.verbose else logging.WARNING)

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "events":
        return run_events_command(args, parser)

    loader = ConfigLoader(args.project_dir)

    if args.command == "config":
        if args.config_command == "show":
            return cmd_config_show(args, loader.config)
        if args.config_command == "validate":
            return cmd_config_validate(args, loader)
    elif args.command == "pr":
        handler = PR_COMMANDS.get(args.pr_command)
        if handler is not None:
            return handler(args, loader.config)
    elif args.command == "admit":
        return cmd_admit(args, loader.config)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
