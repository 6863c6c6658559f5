"""
Events CLI - inspect and maintain the workflow event log.

Usage:
    forgepilot events list [--type TYPE] [--issue N] [--pr N] [--limit N] [--asc]
    forgepilot events stats
    forgepilot events active
    forgepilot events pending
    forgepilot events rotate [--days N]
    forgepilot events clear --yes
"""

import argparse

from rich.markup import escape

from forgepilot.event_logger import EventLogger
from forgepilot.event_types import EventFilter, WorkflowEvent
from forgepilot.output import (
    console,
    create_table,
    event_style,
    print_header,
    print_info,
    print_key_value_table,
    print_subheader,
    print_success,
    print_table,
    print_warning,
    spinner,
)


def format_event_row(event: WorkflowEvent) -> tuple:
    """Format an event as a table row."""
    style = event_style(event.type)
    return (
        f"[fp.timestamp]{event.timestamp[:19]}[/]",
        f"[{style}]{event.type}[/]",
        f"#{event.issue_number}" if event.issue_number is not None else "",
        f"#{event.pr_number}" if event.pr_number is not None else "",
        escape(event.feature_id or ""),
    )


def print_event_table(events, title: str) -> None:
    print_header(f"{title} ({len(events)})")
    table = create_table(columns=["Timestamp", "Type", "Issue", "PR", "Feature"])
    for event in events:
        table.add_row(*format_event_row(event))
    print_table(table)


def _logger(args) -> EventLogger:
    return EventLogger(args.project_dir)


def cmd_list(args) -> int:
    """List events with optional filters."""
    event_logger = _logger(args)

    if not event_logger.store.exists():
        print_warning(f"No events found at {event_logger.log_path}")
        return 1

    event_filter = EventFilter(
        types=[args.type] if args.type else None,
        issue_number=args.issue,
        pr_number=args.pr,
        limit=args.limit,
        order="asc" if args.asc else "desc",
    )

    with spinner("Loading events..."):
        events = event_logger.query(event_filter)

    if not events:
        print_info("No matching events found")
        return 0

    print_event_table(events, "Events")

    if args.verbose:
        print_subheader("Event Details")
        for event in events:
            if not event.data:
                continue
            console.print(f"\n[fp.accent]{event.timestamp[:19]}[/] - [fp.info]{event.type}[/]")
            for key, value in event.data.items():
                console.print(f"  [fp.key]{key}:[/] [fp.muted]{escape(str(value)[:80])}[/]")

    return 0


def cmd_stats(args) -> int:
    event_logger = _logger(args)

    with spinner("Calculating statistics..."):
        stats = event_logger.get_stats()

    print_header("Event Log Summary")
    print_key_value_table({
        "Log file": str(event_logger.log_path),
        "Total events": stats.total_events,
        "Active workers": stats.active_workers,
        "Pending PRs": stats.pending_prs,
        "Oldest event": stats.oldest_event[:19] if stats.oldest_event else "N/A",
        "Newest event": stats.newest_event[:19] if stats.newest_event else "N/A",
    })

    if stats.events_by_type:
        print_subheader("Events by type")
        table = create_table(columns=["Type", "Count"])
        for event_type, count in sorted(stats.events_by_type.items()):
            table.add_row(f"[{event_style(event_type)}]{event_type}[/]", f"[fp.number]{count}[/]")
        print_table(table)

    return 0


def cmd_active(args) -> int:
    """Show workers that have started but not finished."""
    workers = _logger(args).get_active_workers()
    if not workers:
        print_info("No active workers")
        return 0
    print_event_table(workers, "Active workers")
    return 0


def cmd_pending(args) -> int:
    prs = _logger(args).get_pending_prs()
    if not prs:
        print_info("No pending pull requests")
        return 0
    print_event_table(prs, "Pending PRs")
    return 0


def cmd_rotate(args) -> int:
    removed = _logger(args).rotate(args.days)
    if removed:
        period = f"{args.days} days" if args.days else "the retention period"
        print_success(f"Removed {removed} event(s) older than {period}")
    else:
        print_info("No events older than the retention period")
    return 0


def cmd_clear(args) -> int:
    if not args.yes:
        print_warning("Refusing to clear the event log without --yes")
        return 1
    event_logger = _logger(args)
    event_logger.clear()
    print_success(f"Cleared {event_logger.log_path}")
    return 0


EVENT_COMMANDS = {
    "list": cmd_list,
    "stats": cmd_stats,
    "active": cmd_active,
    "pending": cmd_pending,
    "rotate": cmd_rotate,
    "clear": cmd_clear,
}


def add_events_parser(subparsers) -> argparse.ArgumentParser:
    parser = subparsers.add_parser("events", help="Inspect the workflow event log")
    events_sub = parser.add_subparsers(dest="events_command", help="Events command")

    list_parser = events_sub.add_parser("list", help="List events with filters")
    list_parser.add_argument("--type", "-t", help="Filter by event type (e.g. worker.start)")
    list_parser.add_argument("--issue", "-i", type=int, help="Filter by issue number")
    list_parser.add_argument("--pr", type=int, help="Filter by pull request number")
    list_parser.add_argument("--limit", "-n", type=int, default=50, help="Max events to show")
    list_parser.add_argument("--asc", action="store_true", help="Oldest first")

    events_sub.add_parser("stats", help="Show event log statistics")
    events_sub.add_parser("active", help="Show active workers")
    events_sub.add_parser("pending", help="Show pending pull requests")

    rotate_parser = events_sub.add_parser("rotate", help="Drop events past the retention period")
    rotate_parser.add_argument("--days", "-d", type=int, help="Retention period in days")

    clear_parser = events_sub.add_parser("clear", help="Delete every event")
    clear_parser.add_argument("--yes", action="store_true", help="Confirm deletion")

    return parser


def run_events_command(args, parser: argparse.ArgumentParser) -> int:
    handler = EVENT_COMMANDS.get(args.events_command)
    if handler is None:
        parser.print_help()
        return 1
    return handler(args)
