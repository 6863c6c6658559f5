"""
Rich Output Utilities
=====================

Terminal rendering for the Forge Pilot CLIs: a themed console, glyphs for
CI verdicts and lifecycle events, PR status views and logging through Rich.
"""

from __future__ import annotations

import logging
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Sequence

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.rule import Rule
from rich.status import Status
from rich.table import Table
from rich.theme import Theme

from forgepilot.github_client import CheckConclusion, CheckStatus, CICheck


# =============================================================================
# Palette & Theme
# =============================================================================

@dataclass(frozen=True)
class PilotColors:
    """Palette keyed by what a colour means on a CI board."""
    text: str = "#E2E8F0"
    faint: str = "#8B95A5"
    heading: str = "#FB923C"
    link: str = "#38BDF8"
    label: str = "#A5B4C8"
    green: str = "#4ADE80"
    amber: str = "#FACC15"
    red: str = "#F87171"


def pilot_theme(colors: PilotColors = PilotColors()) -> Theme:
    """Semantic ``fp.*`` styles, e.g. ``console.print("...", style="fp.ok")``."""
    return Theme({
        "fp.border": colors.link,
        "fp.accent": f"bold {colors.heading}",
        "fp.muted": colors.faint,
        "fp.text": colors.text,
        "fp.ok": f"bold {colors.green}",
        "fp.warn": f"bold {colors.amber}",
        "fp.err": f"bold {colors.red}",
        "fp.info": colors.link,
        "fp.key": colors.label,
        "fp.value": colors.text,
        "fp.number": f"bold {colors.heading}",
        "fp.timestamp": colors.faint,
        "fp.table.header": f"bold {colors.link}",
        "fp.status.pass": f"bold {colors.green}",
        "fp.status.fail": f"bold {colors.red}",
        "fp.status.pending": colors.amber,
        "fp.status.skip": colors.faint,
    })


# =============================================================================
# Glyphs
# =============================================================================

_GLYPHS = {
    # name: (unicode, ascii)
    "pass": ("✓", "[OK]"),
    "fail": ("✗", "[X]"),
    "pending": ("⏳", "[...]"),
    "skip": ("⏭", "[SKIP]"),
    "warn": ("⚠", "[!]"),
    "info": ("ℹ", "[i]"),
    "arrow": ("→", "->"),
    "review": ("\U0001F440", "[?]"),
}


def _stream_accepts_unicode(stream=None) -> bool:
    """True when every glyph encodes in the output stream's encoding."""
    stream = stream or sys.stdout
    encoding = getattr(stream, "encoding", None) or "utf-8"
    try:
        "".join(pair[0] for pair in _GLYPHS.values()).encode(encoding)
    except (UnicodeEncodeError, LookupError):
        return False
    return True


_USE_UNICODE = _stream_accepts_unicode()


def icon(name: str) -> str:
    """Glyph by name; ASCII on terminals that cannot encode the unicode set."""
    pair = _GLYPHS.get(name)
    if pair is None:
        return ""
    return pair[0] if _USE_UNICODE else pair[1]


def check_icon(check: CICheck) -> str:
    if check.status != CheckStatus.COMPLETED:
        return icon("pending")
    if check.conclusion == CheckConclusion.SUCCESS:
        return icon("pass")
    if check.conclusion == CheckConclusion.FAILURE:
        return icon("fail")
    if check.conclusion == CheckConclusion.SKIPPED:
        return icon("skip")
    return icon("warn")


console = Console(theme=pilot_theme(), emoji=_USE_UNICODE)


# =============================================================================
# Messages
# =============================================================================

_MESSAGE_KINDS = {
    "success": ("fp.ok", "pass"),
    "error": ("fp.err", "fail"),
    "warning": ("fp.warn", "warn"),
    "info": ("fp.info", "info"),
}


def print_message(kind: str, message: str) -> None:
    style, glyph = _MESSAGE_KINDS[kind]
    console.print(f"[{style}]{escape(icon(glyph))} {message}[/]")


def print_success(message: str) -> None:
    print_message("success", message)


def print_error(message: str) -> None:
    print_message("error", message)


def print_warning(message: str) -> None:
    print_message("warning", message)


def print_info(message: str) -> None:
    print_message("info", message)


def print_muted(message: str) -> None:
    console.print(f"[fp.muted]{message}[/]")


def print_header(title: str) -> None:
    console.print()
    console.print(Rule(f"[fp.accent]{title}[/]", style="fp.accent"))
    console.print()


def print_subheader(title: str) -> None:
    console.print(f"\n[fp.info]{escape(icon('arrow'))} {title}[/]")


def status_style(result: str) -> str:
    """Theme style for a pass/fail/pending verdict."""
    return {
        "pass": "fp.status.pass",
        "fail": "fp.status.fail",
        "pending": "fp.status.pending",
    }.get(result, "fp.status.skip")


def verdict_markup(result: str) -> str:
    """``PASS`` / ``FAIL`` / ``PENDING`` coloured by verdict."""
    return f"[{status_style(result)}]{result.upper()}[/]"


def event_style(event_type: str) -> str:
    """Theme style for a lifecycle event type."""
    lowered = event_type.lower()
    if any(word in lowered for word in ("fail", "error", "timeout")):
        return "fp.err"
    if any(word in lowered for word in ("complete", "merged", "pass")):
        return "fp.ok"
    if "closed" in lowered:
        return "fp.warn"
    return "fp.info"


# =============================================================================
# Tables
# =============================================================================

def print_key_value_table(data: Dict[str, Any]) -> None:
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="fp.key")
    table.add_column("Value", style="fp.value")
    for key, value in data.items():
        table.add_row(key, str(value))
    console.print(table)


def create_table(columns: Optional[List[str]] = None) -> Table:
    table = Table(header_style="fp.table.header", border_style="fp.border")
    for column in columns or []:
        table.add_column(column)
    return table


def print_table(table: Table) -> None:
    console.print(table)


def print_check_table(checks: Sequence[CICheck]) -> None:
    """One row per reported check, or a note when the PR has none."""
    if not checks:
        print_muted("No CI checks found")
        return
    table = create_table(columns=["", "Check", "Status", "Conclusion"])
    for check in checks:
        table.add_row(
            escape(check_icon(check)),
            escape(check.name),
            check.status.value,
            check.conclusion.value if check.conclusion else "",
        )
    print_table(table)


def print_pr_status(status) -> None:
    """
    Render a CI gate verdict: PR state, review, required checks and summary,
    followed by the check table.

    ``status`` is a ``forgepilot.ci_gate.PRStatus``.
    """
    print_header(f"PR #{status.pr_number}")
    print_key_value_table({
        "Result": verdict_markup(status.result.value),
        "State": status.state,
        "Draft": "yes" if status.draft else "no",
        "Mergeable": {True: "yes", False: "no", None: "unknown"}[status.mergeable],
        "Review": status.review_decision.value if status.review_decision else "none",
        "Required checks": escape(", ".join(status.required_checks)) or "none",
        "Summary": escape(status.summary),
    })
    print_check_table(status.checks)


def print_status_line(status) -> None:
    """Single progress line used while polling a PR."""
    console.print(
        f"[fp.muted]PR #{status.pr_number}:[/] "
        f"{verdict_markup(status.result.value)} {escape(status.summary)}"
    )


@contextmanager
def spinner(message: str) -> Iterator[Status]:
    """
    Show a spinner while a slow call runs.

    Usage:
        with spinner("Checking CI..."):
            status = asyncio.run(checker.check_pr_status(42))
    """
    with console.status(f"[fp.accent]{message}[/]", spinner="dots") as status:
        yield status


# =============================================================================
# Logging
# =============================================================================

def setup_rich_logging(level: int = logging.INFO) -> None:
    """Send ``logging`` records for every forgepilot module through the console."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, markup=False, rich_tracebacks=True)],
        force=True,
    )
