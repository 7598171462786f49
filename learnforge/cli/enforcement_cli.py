#!/usr/bin/env python3
"""
Enforcement CLI Tool
====================

Operator commands for inspecting and nudging learner enforcement state.

Usage:
    learnforge init-db [--db URL]
    learnforge state USER
    learnforge debt USER [--all]
    learnforge pay USER MINUTES
    learnforge check-inactivity USER [USER ...]
    learnforge remediation USER
    learnforge weak-spots USER
    learnforge actions USER
"""

import argparse
import asyncio
import logging
import sys
from typing import Awaitable, Callable, Optional

from rich.markup import escape

from learnforge.config import EnforcementConfig, get_database_url
from learnforge.db import init_db
from learnforge.db.models import ensure_utc
from learnforge.engine import EnforcementEngine
from learnforge.errors import ConfigError
from learnforge.messaging import MessageContext, get_authority_message
from learnforge.output import (
    console,
    create_table,
    print_authority,
    print_error,
    print_error_panel,
    print_header,
    print_info,
    print_key_value_table,
    print_muted,
    print_success,
    print_table,
    print_warning,
    setup_rich_logging,
    spinner,
)

EngineCommand = Callable[[EnforcementEngine], Awaitable[int]]


def _fmt_time(value) -> str:
    if value is None:
        return "-"
    return ensure_utc(value).strftime("%Y-%m-%d %H:%M")


async def _with_engine(args: argparse.Namespace, command: EngineCommand) -> int:
    """Open the database, run one command against a fresh engine, close."""
    db = await init_db(args.db or get_database_url())
    try:
        async with db.session() as session:
            engine = EnforcementEngine(session, args.config_obj)
            return await command(engine)
    finally:
        await db.dispose()


# =============================================================================
# Commands
# =============================================================================

def cmd_init_db(args: argparse.Namespace) -> int:
    """Create the enforcement tables."""
    url = args.db or get_database_url()

    async def _init():
        db = await init_db(url)
        await db.dispose()

    with spinner("Creating tables..."):
        asyncio.run(_init())
    print_success(f"Database ready: {url}")
    return 0


def cmd_state(args: argparse.Namespace) -> int:
    """Show a learner's enforcement state."""
    async def _run(engine: EnforcementEngine) -> int:
        state = await engine.get_user_state(args.user)
        identity = state.identity

        print_key_value_table(
            {
                "Completed": identity.total_missions_completed,
                "Failed": identity.total_missions_failed,
                "Skipped": identity.total_missions_skipped,
                "Current streak": identity.current_streak,
                "Longest streak": identity.longest_streak,
                "Last mission": _fmt_time(identity.last_mission_at),
                "Days away": identity.days_since_last_mission,
                "Archetype": identity.archetype,
                "Study debt (min)": state.active_debt_minutes,
                f"Skips ({engine.config.recent_window_days}d)": state.skip_count,
                f"Failures ({engine.config.recent_window_days}d)": state.failure_count,
                "Pending actions": len(state.pending_actions),
            },
            title=f"Learner {escape(args.user)}",
        )

        if state.streak_at_risk:
            print_warning("Streak at risk")
        print_authority(get_authority_message(MessageContext.STREAK, {"streak": identity.current_streak}))
        return 0

    return asyncio.run(_with_engine(args, _run))


def cmd_debt(args: argparse.Namespace) -> int:
    """List a learner's study debt in payment order."""
    async def _run(engine: EnforcementEngine) -> int:
        debts = await engine.list_debts(args.user, include_completed=args.all)
        summary = await engine.get_study_debt(args.user)

        if not debts:
            print_info("No study debt.")
            return 0

        table = create_table(
            title=f"Study debt ({summary.total} min outstanding)",
            columns=["ID", "Source", "Title", "Paid", "Owed", "Status", "Expires"],
        )
        for debt in debts:
            table.add_row(
                str(debt.id),
                debt.source,
                escape(debt.title),
                str(debt.paid_minutes),
                str(debt.debt_minutes),
                debt.status,
                _fmt_time(debt.expires_at),
            )
        print_table(table)
        print_authority(get_authority_message(MessageContext.DEBT, {"debt_minutes": summary.total}))
        return 0

    return asyncio.run(_with_engine(args, _run))


def cmd_pay(args: argparse.Namespace) -> int:
    """Record studied minutes against a learner's debt."""
    if args.minutes <= 0:
        print_error("Minutes must be positive; nothing paid.")
        return 1

    async def _run(engine: EnforcementEngine) -> int:
        cleared = await engine.pay_study_debt(args.user, args.minutes)
        summary = await engine.get_study_debt(args.user)
        print_success(f"Paid {args.minutes} min; {cleared} debt(s) cleared.")
        print_muted(f"{summary.total} min outstanding across {summary.items} debt(s).")
        return 0

    return asyncio.run(_with_engine(args, _run))


def cmd_check_inactivity(args: argparse.Namespace) -> int:
    """Run the inactivity check for one or more learners."""
    async def _run(engine: EnforcementEngine) -> int:
        for user_id in args.users:
            response = await engine.check_inactivity(user_id)
            if response is None:
                print_muted(f"{escape(user_id)}: active")
            else:
                print_authority(response, title=escape(user_id))
        return 0

    return asyncio.run(_with_engine(args, _run))


def cmd_remediation(args: argparse.Namespace) -> int:
    """Show the remediation missions blocking a learner."""
    async def _run(engine: EnforcementEngine) -> int:
        check = await engine.check_remediation_required(args.user)
        if not check.required:
            print_success(check.message)
            return 0

        print_header(check.message)
        table = create_table(columns=["Mission", "Title", "Proof", "Minutes", "Mandatory"])
        for mission in check.missions:
            table.add_row(
                mission.id,
                escape(mission.title),
                mission.proof_required.value,
                str(mission.estimated_minutes),
                "yes" if mission.mandatory else "no",
            )
        print_table(table)
        return 0

    return asyncio.run(_with_engine(args, _run))


def cmd_weak_spots(args: argparse.Namespace) -> int:
    """List weak spots grouped by status."""
    async def _run(engine: EnforcementEngine) -> int:
        summary = await engine.get_weak_spots(args.user)
        spots = summary.active + summary.remediated + summary.resolved
        if not spots:
            print_info("No weak spots recorded.")
            return 0

        table = create_table(
            title="Weak spots",
            columns=["ID", "Subject", "Topic", "Severity", "Failures", "Status"],
        )
        for spot in spots:
            table.add_row(
                str(spot.id),
                escape(spot.subject),
                escape(spot.topic),
                str(spot.severity),
                str(spot.failed_attempts),
                spot.status,
            )
        print_table(table)
        return 0

    return asyncio.run(_with_engine(args, _run))


def cmd_actions(args: argparse.Namespace) -> int:
    """List unresolved enforcement actions, newest first."""
    async def _run(engine: EnforcementEngine) -> int:
        actions = await engine.get_pending_actions(args.user)
        if not actions:
            print_info("No pending actions.")
            return 0

        table = create_table(
            title="Pending actions",
            columns=["ID", "When", "Trigger", "Action", "Seen", "Message"],
        )
        for action in actions:
            table.add_row(
                str(action.id),
                _fmt_time(action.created_at),
                action.trigger_type,
                action.action_type,
                "yes" if action.acknowledged else "no",
                escape(action.authority_message or ""),
            )
        print_table(table)
        return 0

    return asyncio.run(_with_engine(args, _run))


# =============================================================================
# Entry point
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="learnforge",
        description="Learning enforcement operator tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Create tables in the default database
    learnforge init-db

    # Inspect a learner
    learnforge state user-123

    # Record 30 minutes of study against their debt
    learnforge pay user-123 30
        """,
    )
    parser.add_argument("--db", help="Database URL (default: LEARNFORGE_DB_URL or .learnforge/enforcement.db)")
    parser.add_argument("--config", help="Path to a JSON config file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("init-db", help="Create database tables")

    state_parser = subparsers.add_parser("state", help="Show a learner's enforcement state")
    state_parser.add_argument("user", help="User ID")

    debt_parser = subparsers.add_parser("debt", help="List study debt")
    debt_parser.add_argument("user", help="User ID")
    debt_parser.add_argument("--all", action="store_true", help="Include completed debts")

    pay_parser = subparsers.add_parser("pay", help="Pay down study debt")
    pay_parser.add_argument("user", help="User ID")
    pay_parser.add_argument("minutes", type=int, help="Minutes studied")

    inactivity_parser = subparsers.add_parser("check-inactivity", help="Run the inactivity check")
    inactivity_parser.add_argument("users", nargs="+", help="User IDs")

    remediation_parser = subparsers.add_parser("remediation", help="Show required remediation missions")
    remediation_parser.add_argument("user", help="User ID")

    weak_parser = subparsers.add_parser("weak-spots", help="List weak spots")
    weak_parser.add_argument("user", help="User ID")

    actions_parser = subparsers.add_parser("actions", help="List pending enforcement actions")
    actions_parser.add_argument("user", help="User ID")

    return parser


COMMANDS = {
    "init-db": cmd_init_db,
    "state": cmd_state,
    "debt": cmd_debt,
    "pay": cmd_pay,
    "check-inactivity": cmd_check_inactivity,
    "remediation": cmd_remediation,
    "weak-spots": cmd_weak_spots,
    "actions": cmd_actions,
}


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_rich_logging(logging.DEBUG if args.verbose else logging.WARNING)

    try:
        args.config_obj = EnforcementConfig.load(args.config)
    except ConfigError as e:
        print_error_panel(str(e), title="Configuration error")
        return 1

    return COMMANDS[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
