#!/usr/bin/env python3
"""
Check that client-side entitlement answers agree with the server.

Usage:
    # Run the shared policy vectors through the client evaluator
    python scripts/check_policy_parity.py --vectors

    # Compare advisory checks with the RPC answers for the signed-in user
    python scripts/check_policy_parity.py --remote

    # Check a specific feature as well
    python scripts/check_policy_parity.py --remote --feature task_scheduling
"""

import argparse
import sys
from datetime import datetime, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from neuralagent.auth.session import get_session_store
from neuralagent.subscription.manager import get_subscription_service
from neuralagent.subscription.vectors import evaluate_vector, load_policy_vectors


def run_vectors() -> int:
    """Evaluate every shared vector and print mismatches."""
    now = datetime.now(timezone.utc)
    failures = 0

    print("\n=== Policy Vectors ===")
    for vector in load_policy_vectors():
        actual = evaluate_vector(vector, now)
        if actual == vector.expected:
            print(f"  ok    {vector.name}")
            continue
        failures += 1
        print(f"  FAIL  {vector.name}")
        for key, expected in vector.expected.items():
            if actual.get(key) != expected:
                print(f"        {key}: expected {expected!r}, got {actual.get(key)!r}")

    print(f"\n{failures} mismatches")
    return failures


def compare_remote(feature: str) -> int:
    """Ask both sides the same questions for the current user."""
    store = get_session_store()
    identity = store.current_identity
    if identity is None or not store.is_authenticated():
        print("Not signed in: neuralagent signin <email>")
        return 1

    service = get_subscription_service()
    record = service.get_current_subscription().unwrap()

    print(f"\n=== Subscription ({identity.email}) ===")
    print(f"Tier: {record.tier.value}")
    print(f"Expires at: {record.expires_at.isoformat() if record.expires_at else 'never'}")
    print(f"tasks_used_today: {record.tasks_used_today}")
    print(f"tasks_reset_date: {record.tasks_reset_date.isoformat()}")

    checks = [
        ("can_create_task", service.can_create_task().unwrap(), service.can_create_task_remote()),
        (f"has_feature({feature})", service.has_feature(feature).unwrap(), service.has_feature_remote(feature)),
    ]

    local_limits = service.get_tier_info(record.tier).unwrap()
    remote_limits = service.get_tier_limits_remote()
    if remote_limits.ok:
        checks.append(("get_tier_limits", local_limits, remote_limits.value))
    else:
        print(f"get_tier_limits failed: {remote_limits.error.message}")

    print("\n=== Advisory vs Authoritative ===")
    mismatches = 0
    for name, advisory, authoritative in checks:
        agree = advisory == authoritative
        mismatches += 0 if agree else 1
        print(f"  {'ok  ' if agree else 'DIFF'}  {name}")
        if not agree:
            print(f"        client: {advisory!r}")
            print(f"        server: {authoritative!r}")

    print(f"\n{mismatches} disagreements (server answers take precedence)")
    return mismatches


def main():
    parser = argparse.ArgumentParser(description="Check client/server entitlement parity")
    parser.add_argument("--vectors", action="store_true", help="Run the shared policy vectors")
    parser.add_argument("--remote", action="store_true", help="Compare with the server RPCs")
    parser.add_argument("--feature", type=str, default="advanced_automation",
                        help="Feature to check with --remote")

    args = parser.parse_args()

    failures = 0
    if args.vectors or not args.remote:
        failures += run_vectors()
    if args.remote:
        failures += compare_remote(args.feature)

    sys.exit(1 if failures else 0)


if __name__ == "__main__":
    main()
