#!/usr/bin/env python3
"""
NeuralAgent - session and subscription tools.

Usage:
    neuralagent signin <email>          Sign in with email and password
    neuralagent signout                 Sign out of the current session
    neuralagent status                  Show session and subscription status
    neuralagent tiers                   Compare subscription tiers
    neuralagent usage                   Show task usage for the current user
    neuralagent upgrade <tier>          Change the subscription tier
"""
from __future__ import annotations

import argparse
import getpass
import logging
import sys

from neuralagent.auth.session import get_session_store
from neuralagent.errors import Result
from neuralagent.logging_setup import setup_logging
from neuralagent.subscription import evaluator
from neuralagent.subscription.limits import describe_limit, is_unlimited
from neuralagent.subscription.manager import get_subscription_service
from neuralagent.subscription.state import parse_timestamp


def _fail_on_error(result: Result) -> None:
    if not result.ok:
        print(f"Error: {result.error.message}")
        sys.exit(1)


def cmd_signin(args: argparse.Namespace) -> None:
    """Sign in with email and password."""
    password = getpass.getpass("Password: ")
    result = get_session_store().sign_in(args.email, password)
    _fail_on_error(result)
    print(f"Signed in as {result.value.identity.email}")


def cmd_signout(args: argparse.Namespace) -> None:
    """Sign out."""
    _fail_on_error(get_session_store().sign_out())
    print("Signed out")


def cmd_status(args: argparse.Namespace) -> None:
    """Show session and subscription status."""
    store = get_session_store()

    print("NeuralAgent Status")
    print("-" * 40)
    print(f"Session: {store.state.value}")

    identity = store.current_identity
    if identity is None:
        print("Not signed in: neuralagent signin <email>")
        return

    print(f"User: {identity.email} ({identity.user_id})")

    result = get_subscription_service().get_current_subscription()
    _fail_on_error(result)
    record = result.value
    limits = get_subscription_service().get_tier_info(record.tier).unwrap()
    now = evaluator.normalize_now()

    print(f"Tier: {record.tier.value}")
    days = evaluator.days_until_expiration(record, now)
    if days is None:
        print("Expires: never")
    elif days < 0:
        print(f"Expired: {-days} days ago")
    else:
        print(f"Expires in: {days} days")

    remaining = evaluator.remaining_tasks_today(record, limits, now)
    print(f"Tasks remaining today: {'unlimited' if is_unlimited(remaining) else remaining}")
    print(f"Can create task: {'yes' if evaluator.can_create_task(record, limits, now) else 'no'}")


def cmd_tiers(args: argparse.Namespace) -> None:
    """Print the tier comparison table."""
    for d in get_subscription_service().get_tier_comparison():
        marker = " (popular)" if d.popular else ""
        print(f"{d.name} - {d.price} {d.period}{marker}")
        for feature in d.features:
            print(f"  + {feature}")
        for limitation in d.limitations:
            print(f"  - {limitation}")
        print()


def cmd_usage(args: argparse.Namespace) -> None:
    """Show task usage statistics."""
    result = get_subscription_service().get_usage_stats()
    _fail_on_error(result)
    snapshot = result.value
    limits = snapshot.tier_limits

    print(f"Tier: {snapshot.subscription.tier.value}")
    print("-" * 40)
    print(f"Tasks today: {snapshot.tasks_today} / {describe_limit(limits.tasks_per_day)}")
    if snapshot.stale:
        print("  (daily counter is past its reset time and counts as 0)")
    print(f"Total tasks: {snapshot.total_tasks}")
    print(f"  Completed: {snapshot.completed_tasks}")
    print(f"  Failed: {snapshot.failed_tasks}")
    print(f"  Running: {snapshot.running_tasks} / {describe_limit(limits.max_concurrent_tasks)}")


def cmd_upgrade(args: argparse.Namespace) -> None:
    """Change the subscription tier."""
    expires_at = parse_timestamp(args.expires_at) if args.expires_at else None
    result = get_subscription_service().upgrade_subscription(args.tier, expires_at)
    _fail_on_error(result)
    record = result.value
    print(f"Subscription is now {record.tier.value}")
    if record.expires_at:
        print(f"Expires at: {record.expires_at.isoformat()}")


def main() -> None:
    parser = argparse.ArgumentParser(
        description="NeuralAgent - session and subscription tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug logs")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    signin_parser = subparsers.add_parser("signin", help="Sign in with email and password")
    signin_parser.add_argument("email", help="Account email")
    signin_parser.set_defaults(func=cmd_signin)

    signout_parser = subparsers.add_parser("signout", help="Sign out")
    signout_parser.set_defaults(func=cmd_signout)

    status_parser = subparsers.add_parser("status", help="Show session and subscription status")
    status_parser.set_defaults(func=cmd_status)

    tiers_parser = subparsers.add_parser("tiers", help="Compare subscription tiers")
    tiers_parser.set_defaults(func=cmd_tiers)

    usage_parser = subparsers.add_parser("usage", help="Show task usage")
    usage_parser.set_defaults(func=cmd_usage)

    upgrade_parser = subparsers.add_parser("upgrade", help="Change the subscription tier")
    upgrade_parser.add_argument("tier", help="free, pro, unlimited, business or enterprise")
    upgrade_parser.add_argument("--expires-at", default=None,
                                help="ISO timestamp the new tier expires at (default: never)")
    upgrade_parser.set_defaults(func=cmd_upgrade)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    setup_logging(console_level=logging.DEBUG if args.verbose else logging.WARNING)
    args.func(args)


if __name__ == "__main__":
    main()
