#!/usr/bin/env python3
"""
Issue a signed bearer token for the gateway.

Usage:
    python scripts/issue_token.py --user user_42 --plan enterprise
    python scripts/issue_token.py --user user_42 --hours 1 --secret "$JWT_SECRET"

The secret defaults to JWT_SECRET from the environment (or .env).
"""
import argparse
import os
import sys
from datetime import timedelta

# Add repo root to path
repo_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, repo_root)

from gateway.core.config import settings  # noqa: E402
from gateway.features.identity.service import issue_token  # noqa: E402
from gateway.features.plans.catalog import build_catalog  # noqa: E402


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Issue a gateway bearer token")
    parser.add_argument("--user", required=True, help="user id carried in the userId/sub claims")
    parser.add_argument("--plan", default=None, help="plan claim (omit to let the gateway decide)")
    parser.add_argument("--hours", type=float, default=settings.TOKEN_TTL_HOURS, help="lifetime in hours")
    parser.add_argument("--secret", default=None, help="signing secret (defaults to JWT_SECRET)")
    args = parser.parse_args(argv)

    if args.plan and not build_catalog(settings).has_plan(args.plan):
        print(f"ERROR: unknown plan '{args.plan}'", file=sys.stderr)
        return 2

    try:
        token = issue_token(args.user, args.plan, secret=args.secret, expires_in=timedelta(hours=args.hours))
    except RuntimeError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    print(token)
    return 0


if __name__ == "__main__":
    sys.exit(main())
