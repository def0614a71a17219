"""
frm — Command-line front end.

The CLI is the only user interface. Every command builds its collaborators
from the settings and config file, calls ContactService, and renders the
result as text or (with ``--json``) as JSON on stdout.

Domain errors are reported as ``error: <message>`` on stderr with exit
status 1.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TextIO

from frm.adapters.store_factory import create_contact_stores, create_context_providers
from frm.config import Settings, load_config, load_settings
from frm.core.aggregator import ContactAggregator
from frm.core.contact_service import (
    ContactService,
    ContactSummary,
    TriageChoice,
    TriageItem,
)
from frm.core.due_engine import DueState, DueStatus
from frm.core.durations import format_ago
from frm.core.errors import ConfigError, FrmError
from frm.core.spread import SpreadPlan
from frm.data.ledger import InteractionLedger
from frm.data.models import LogEntry

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

TRIAGE_PROMPT = "  [m]onthly  [q]uarterly  [y]early  [s]kip  [i]gnore  [Enter=skip]> "


@dataclass
class CommandOutput:
    """What a command produced: a text rendering and a JSON payload."""

    text: str
    data: Any = None


# ---------------------------------------------------------------------------
# Rendering helpers
# ---------------------------------------------------------------------------


def _day(value: datetime) -> str:
    return value.strftime("%Y-%m-%d")


def _accounts_suffix(count: int) -> str:
    return f" ({count} accounts)" if count > 1 else ""


def _due_phrase(days: int) -> str:
    if days < 0:
        return f"overdue by {-days}d"
    if days == 0:
        return "due now"
    return f"due in {days}d"


def _entry_json(entry: LogEntry) -> dict:
    return json.loads(entry.model_dump_json(exclude_none=True))


def _overdue_line(status: DueStatus, now: datetime) -> str:
    if status.last_contact is None:
        return f"  {status.name} (every {status.frequency}, never contacted)"
    ago = format_ago(now - status.last_contact)
    return f"  {status.name} (every {status.frequency}, last contact {ago} ago)"


def render_context(summary: ContactSummary) -> str:
    lines = [f"Name:      {summary.name}"]
    if summary.ignored:
        lines.append("Status:    ignored")
    if summary.group:
        lines.append(f"Group:     {summary.group}")
    if summary.frequency:
        lines.append(f"Frequency: every {summary.frequency}")
    else:
        lines.append("Frequency: not tracked")

    status = summary.status
    if summary.last_entry is not None:
        lines.append(f"Last seen: {_day(summary.last_entry.time)} ({summary.days_since} days ago)")
        if summary.last_entry.note:
            lines.append(f"Last note: {summary.last_entry.note}")
    else:
        lines.append("Last seen: never")

    if status is not None:
        if status.state is DueState.SNOOZED:
            lines.append(f"Status:    snoozed until {_day(status.snooze_until)}")
        elif status.state is DueState.NEVER_CONTACTED:
            lines.append("Status:    overdue (never contacted)")
        elif status.due_in_days <= 0:
            lines.append(f"Status:    overdue by {-status.due_in_days} days")
        else:
            lines.append(f"Due in:    {status.due_in_days} days")

    if summary.context:
        lines.append("")
        lines.extend(summary.context)
    return "\n".join(lines)


def render_spread(plan: SpreadPlan) -> str:
    if plan.total == 0:
        return "No never-contacted tracked contacts to spread."

    lines: list[str] = []
    for group in plan.groups:
        n = len(group.assignments)
        lines.append(f"{group.frequency} ({n} contacts, every {group.frequency}):")
        for a in group.assignments:
            lines.append(
                f"  {a.name} → due in {a.due_in_days}d "
                f"(snoozed until {a.snooze_until.isoformat()})"
            )
    lines.append("")
    if plan.applied:
        lines.append(f"Spread {plan.total} contacts across their intervals.")
    else:
        lines.append(
            f"Dry run: would snooze {plan.total} contacts. Run with --apply to execute."
        )
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def cmd_contacts(service: ContactService, args: argparse.Namespace) -> CommandOutput:
    names = await service.contact_names()
    return CommandOutput("\n".join(names), names)


async def cmd_add(service: ContactService, args: argparse.Namespace) -> CommandOutput:
    match = await service.add_contact(
        args.name, email=args.email, phone=args.phone, org=args.org, url=args.url,
    )
    return CommandOutput(
        f"Added contact {args.name}",
        {"name": args.name, "path": match.record.path, "account": match.account},
    )


async def cmd_track(service: ContactService, args: argparse.Namespace) -> CommandOutput:
    result = await service.track(args.name, args.every)
    return CommandOutput(
        f"Tracking {result.name} every {args.every}{_accounts_suffix(result.updated)}",
        {"name": result.name, "every": args.every, "accounts": result.updated},
    )


async def cmd_untrack(service: ContactService, args: argparse.Namespace) -> CommandOutput:
    result = await service.untrack(args.name)
    if not result.changed:
        text = f"{result.name} is not tracked"
    else:
        text = f"Stopped tracking {result.name}{_accounts_suffix(result.updated)}"
    return CommandOutput(text, {"name": result.name, "accounts": result.updated})


async def cmd_log(service: ContactService, args: argparse.Namespace) -> CommandOutput:
    entry = await service.log_interaction(args.name, note=args.note, when=args.date)
    return CommandOutput(f"Logged interaction with {entry.contact}", _entry_json(entry))


async def cmd_history(service: ContactService, args: argparse.Namespace) -> CommandOutput:
    entries = service.history(args.name)
    if not entries:
        return CommandOutput(f"No interactions logged for {args.name}", [])
    lines = []
    for e in entries:
        line = _day(e.time)
        if e.note:
            line += "  " + e.note
        lines.append(line)
    return CommandOutput("\n".join(lines), [_entry_json(e) for e in entries])


async def cmd_check(service: ContactService, args: argparse.Namespace) -> CommandOutput:
    now = service.now()
    overdue = await service.check()
    data = [
        {
            "name": s.name,
            "frequency": s.frequency,
            "last_contact": s.last_contact.isoformat() if s.last_contact else None,
            "due_in_days": s.due_in_days,
        }
        for s in overdue
    ]
    if not overdue:
        return CommandOutput("All caught up! No overdue contacts.", data)
    lines = ["Overdue contacts:"] + [_overdue_line(s, now) for s in overdue]
    return CommandOutput("\n".join(lines), data)


async def cmd_list(service: ContactService, args: argparse.Namespace) -> CommandOutput:
    entries = await service.list_contacts(include_all=args.all)
    data = [
        {
            "name": e.name,
            "frequency": e.frequency or None,
            "group": e.group or None,
            "due_in_days": e.due_in_days,
        }
        for e in entries
    ]
    if not entries:
        return CommandOutput(
            "No tracked contacts. Use 'frm track' to start tracking someone.", data,
        )

    lines = []
    for e in entries:
        line = e.name
        if e.frequency:
            line += f" (every {e.frequency})"
        if e.group:
            line += f" [{e.group}]"
        if e.due_in_days is not None:
            line += f" — {_due_phrase(e.due_in_days)}"
        lines.append(line)
    return CommandOutput("\n".join(lines), data)


async def cmd_stats(service: ContactService, args: argparse.Namespace) -> CommandOutput:
    stats = await service.stats()
    lines = [
        f"Total contacts:  {stats.total_contacts}",
        f"Tracked:         {stats.tracked}",
        f"Ignored:         {stats.ignored}",
        f"Untracked:       {stats.untracked}",
        f"Overdue:         {stats.overdue}",
        f"Interactions:    {stats.total_interactions}",
    ]
    data: dict[str, Any] = {
        "total_contacts": stats.total_contacts,
        "tracked": stats.tracked,
        "ignored": stats.ignored,
        "untracked": stats.untracked,
        "overdue": stats.overdue,
        "total_interactions": stats.total_interactions,
    }
    if stats.most_contacted and stats.least_contacted:
        most, least = stats.most_contacted, stats.least_contacted
        lines.append(f"Most contacted:  {most[0]} ({most[1]})")
        lines.append(f"Least contacted: {least[0]} ({least[1]})")
        data["most_contacted"] = {"name": most[0], "count": most[1]}
        data["least_contacted"] = {"name": least[0], "count": least[1]}
    return CommandOutput("\n".join(lines), data)


async def cmd_group_set(service: ContactService, args: argparse.Namespace) -> CommandOutput:
    result = await service.set_group(args.name, args.group)
    return CommandOutput(
        f"Set {result.name} group to {args.group}{_accounts_suffix(result.updated)}",
        {"name": result.name, "group": args.group, "accounts": result.updated},
    )


async def cmd_group_unset(service: ContactService, args: argparse.Namespace) -> CommandOutput:
    result = await service.unset_group(args.name)
    if not result.changed:
        text = f"{result.name} has no group"
    else:
        text = f"Removed group from {result.name}{_accounts_suffix(result.updated)}"
    return CommandOutput(text, {"name": result.name, "accounts": result.updated})


async def cmd_group_list(service: ContactService, args: argparse.Namespace) -> CommandOutput:
    if args.group:
        members = await service.group_members(args.group)
        if not members:
            return CommandOutput(f'No contacts in group "{args.group}"', [])
        return CommandOutput("\n".join(members), members)

    groups = await service.list_groups()
    data = [{"name": g, "count": n} for g, n in groups.items()]
    if not groups:
        return CommandOutput("No groups defined", data)
    return CommandOutput("\n".join(f"  {g} ({n})" for g, n in groups.items()), data)


async def cmd_ignore(service: ContactService, args: argparse.Namespace) -> CommandOutput:
    result = await service.ignore(args.name)
    text = f"Ignored {result.name}" if result.changed else f"{result.name} is already ignored"
    return CommandOutput(text, {"name": result.name, "ignored": True, "changed": result.changed})


async def cmd_unignore(service: ContactService, args: argparse.Namespace) -> CommandOutput:
    result = await service.unignore(args.name)
    if not result.changed:
        text = f"{result.name} is not ignored"
    else:
        text = f"Unignored {result.name}{_accounts_suffix(result.updated)}"
    return CommandOutput(text, {"name": result.name, "accounts": result.updated})


async def cmd_snooze(service: ContactService, args: argparse.Namespace) -> CommandOutput:
    result = await service.snooze(args.name, args.until)
    until = result.until.isoformat()
    return CommandOutput(
        f"Snoozed {result.name} until {until}{_accounts_suffix(result.updated)}",
        {"name": result.name, "until": until, "accounts": result.updated},
    )


async def cmd_unsnooze(service: ContactService, args: argparse.Namespace) -> CommandOutput:
    result = await service.unsnooze(args.name)
    if not result.changed:
        text = f"{result.name} is not snoozed"
    else:
        text = f"Unsnoozed {result.name}{_accounts_suffix(result.updated)}"
    return CommandOutput(text, {"name": result.name, "accounts": result.updated})


async def cmd_spread(service: ContactService, args: argparse.Namespace) -> CommandOutput:
    plan = await service.spread(apply=args.apply)
    data = {
        "applied": plan.applied,
        "total": plan.total,
        "contacts": [
            {
                "name": a.name,
                "frequency": a.frequency,
                "due_in_days": a.due_in_days,
                "snooze_until": a.snooze_until.isoformat(),
            }
            for a in plan.assignments
        ],
    }
    return CommandOutput(render_spread(plan), data)


async def cmd_context(service: ContactService, args: argparse.Namespace) -> CommandOutput:
    summary = await service.context(args.name)
    status = summary.status
    data = {
        "name": summary.name,
        "ignored": summary.ignored,
        "group": summary.group or None,
        "frequency": summary.frequency or None,
        "last_seen": summary.last_entry.time.isoformat() if summary.last_entry else None,
        "last_note": summary.last_entry.note if summary.last_entry else None,
        "days_since": summary.days_since,
        "due_in_days": status.due_in_days if status else None,
        "context": summary.context,
    }
    return CommandOutput(render_context(summary), data)


async def cmd_triage(
    service: ContactService,
    args: argparse.Namespace,
    ask: Callable[[str], str] = input,
    out: TextIO | None = None,
) -> CommandOutput:
    """Walk through untriaged contacts, asking for a frequency for each."""
    out = out or sys.stdout
    items = await service.untriaged(limit=args.limit)

    if args.json:
        return CommandOutput("", [_triage_json(i) for i in items])
    if not items:
        return CommandOutput("No untriaged contacts.", [])

    counts = {choice: 0 for choice in TriageChoice}
    for item in items:
        print(item.name, file=out)
        for detail in (item.email, item.org, item.phone):
            if detail:
                print(f"  {detail}", file=out)
        for line in await service.context_for(item.match.record):
            print(line, file=out)

        try:
            answer = await asyncio.to_thread(ask, TRIAGE_PROMPT)
        except EOFError:
            break
        choice = await service.apply_triage(item, TriageChoice.from_input(answer))
        counts[choice] += 1

    total = sum(counts.values())
    return CommandOutput(
        f"Triaged {total} contacts: {counts[TriageChoice.MONTHLY]} monthly, "
        f"{counts[TriageChoice.QUARTERLY]} quarterly, {counts[TriageChoice.YEARLY]} yearly, "
        f"{counts[TriageChoice.SKIP]} skipped, {counts[TriageChoice.IGNORE]} ignored",
        {choice.name.lower(): n for choice, n in counts.items()},
    )


def _triage_json(item: TriageItem) -> dict:
    return {
        "name": item.name,
        "email": item.email or None,
        "org": item.org or None,
        "phone": item.phone or None,
    }


# Commands that work without config.json (history never touches a server;
# log falls back to the name as typed).
_CONFIG_OPTIONAL = {"history", "log"}


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="frm", description="Friend relationship manager: stay in touch with people.",
    )
    parser.add_argument("--json", action="store_true", help="output as JSON")
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="more logging (-vv for debug)",
    )

    # Also accepted after the command name; SUPPRESS keeps the top-level values
    # when the flags are not repeated there.
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--json", action="store_true", default=argparse.SUPPRESS, help="output as JSON",
    )
    common.add_argument(
        "-v", "--verbose", action="count", default=argparse.SUPPRESS,
        help="more logging (-vv for debug)",
    )

    sub = parser.add_subparsers(dest="command", metavar="COMMAND", required=True)

    p = sub.add_parser("contacts", parents=[common], help="list every contact name")
    p.set_defaults(handler=cmd_contacts)

    p = sub.add_parser("add", parents=[common], help="create a new contact")
    p.add_argument("name")
    p.add_argument("--email", default="", help="email address")
    p.add_argument("--phone", default="", help="phone number")
    p.add_argument("--org", default="", help="organization")
    p.add_argument("--url", default="", help="website or social URL")
    p.set_defaults(handler=cmd_add)

    p = sub.add_parser("track", parents=[common], help="set how often to stay in touch")
    p.add_argument("name")
    p.add_argument("--every", required=True, help="contact frequency (e.g. 2w, 1m, 3d)")
    p.set_defaults(handler=cmd_track)

    p = sub.add_parser("untrack", parents=[common], help="stop tracking a contact")
    p.add_argument("name")
    p.set_defaults(handler=cmd_untrack)

    p = sub.add_parser("log", parents=[common], help="record an interaction")
    p.add_argument("name")
    p.add_argument("--note", default=None, help="note about the interaction")
    p.add_argument("--date", default=None, help="when it happened (2026-03-01 or -3d)")
    p.set_defaults(handler=cmd_log)

    p = sub.add_parser("history", parents=[common], help="show logged interactions")
    p.add_argument("name")
    p.set_defaults(handler=cmd_history)

    p = sub.add_parser("check", parents=[common], help="show overdue contacts")
    p.set_defaults(handler=cmd_check)

    p = sub.add_parser("list", parents=[common], help="list tracked contacts with due dates")
    p.add_argument("--all", action="store_true", help="list all contacts, not just tracked ones")
    p.set_defaults(handler=cmd_list)

    p = sub.add_parser("stats", parents=[common], help="summary statistics")
    p.set_defaults(handler=cmd_stats)

    group = sub.add_parser("group", parents=[common], help="manage contact groups")
    group_sub = group.add_subparsers(dest="group_command", metavar="ACTION", required=True)
    p = group_sub.add_parser("set", parents=[common], help="put a contact in a group")
    p.add_argument("name")
    p.add_argument("group")
    p.set_defaults(handler=cmd_group_set)
    p = group_sub.add_parser("unset", parents=[common], help="remove a contact from its group")
    p.add_argument("name")
    p.set_defaults(handler=cmd_group_unset)
    p = group_sub.add_parser("list", parents=[common], help="list groups, or the members of one group")
    p.add_argument("group", nargs="?", default="")
    p.set_defaults(handler=cmd_group_list)

    p = sub.add_parser("ignore", parents=[common], help="exclude a contact from check and triage")
    p.add_argument("name")
    p.set_defaults(handler=cmd_ignore)

    p = sub.add_parser("unignore", parents=[common], help="include an ignored contact again")
    p.add_argument("name")
    p.set_defaults(handler=cmd_unignore)

    p = sub.add_parser("snooze", parents=[common], help="hide a contact from check until a date")
    p.add_argument("name")
    p.add_argument("--until", required=True, help="date or duration (e.g. 2026-04-01 or 2m)")
    p.set_defaults(handler=cmd_snooze)

    p = sub.add_parser("unsnooze", parents=[common], help="clear a snooze")
    p.add_argument("name")
    p.set_defaults(handler=cmd_unsnooze)

    p = sub.add_parser("spread", parents=[common], help="stagger never-contacted tracked contacts")
    p.add_argument("--apply", action="store_true", help="apply the snoozes (default is dry run)")
    p.set_defaults(handler=cmd_spread)

    p = sub.add_parser(
        "context", parents=[common], aliases=["show", "detail"],
        help="everything worth knowing about a contact",
    )
    p.add_argument("name")
    p.set_defaults(handler=cmd_context)

    p = sub.add_parser("triage", parents=[common], help="assign frequencies to untracked contacts")
    p.add_argument(
        "--limit", type=int, default=5, help="max contacts to show (-1 for unlimited)",
    )
    p.set_defaults(handler=cmd_triage)

    return parser


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def configure_logging(settings: Settings, verbosity: int = 0) -> None:
    level = logging.getLevelName(settings.LOG_LEVEL)
    if verbosity == 1:
        level = min(level, logging.INFO)
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)


def build_service(settings: Settings, command: str) -> ContactService:
    """Construct the service and its collaborators for one invocation."""
    ledger = InteractionLedger.in_config_dir(settings.CONFIG_DIR)
    try:
        config = load_config(settings.CONFIG_DIR)
    except ConfigError as exc:
        if command not in _CONFIG_OPTIONAL:
            raise
        logger.warning("Continuing without contact stores: %s", exc)
        return ContactService(ContactAggregator([]), ledger)

    stores = create_contact_stores(config, timeout=settings.TIMEOUT_SECONDS)
    providers = create_context_providers(config, timeout=settings.TIMEOUT_SECONDS)
    return ContactService(ContactAggregator(stores), ledger, providers)


async def run_command(service: ContactService, args: argparse.Namespace) -> CommandOutput:
    return await args.handler(service, args)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings()
        configure_logging(settings, args.verbose)
        service = build_service(settings, args.command)
        output = asyncio.run(run_command(service, args))
    except FrmError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130

    if args.json:
        print(json.dumps(output.data, indent=2, ensure_ascii=False, default=str))
    elif output.text:
        print(output.text)
    return 0
