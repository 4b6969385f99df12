#!/usr/bin/env python3
"""Connect a platform account to a business.

Inbound events are only accepted for accounts registered here: the
WhatsApp phone_number_id, the Instagram business username, or the
Facebook page id.

Usage:
    DATABASE_URL=... python scripts/register_connection.py \\
        --business-id biz_123 --platform instagram --account-id mybrand \\
        --access-token EAAG... [--auto-reply]
"""

import argparse
import os
import sys

from sellio.domain.connections import register_connection
from sellio.infra.store import StoreError, postgres_session
from sellio.messaging.models import WEBHOOK_PLATFORMS


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--business-id", required=True)
    parser.add_argument("--platform", required=True, choices=sorted(WEBHOOK_PLATFORMS))
    parser.add_argument("--account-id", required=True)
    parser.add_argument("--access-token", required=True)
    parser.add_argument("--auto-reply", action="store_true", help="enable keyword auto-replies")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)

    if not os.environ.get("DATABASE_URL"):
        print("ERROR: set DATABASE_URL environment variable", file=sys.stderr)
        sys.exit(1)

    try:
        with postgres_session() as store:
            connection, created = register_connection(
                store,
                business_id=args.business_id,
                platform=args.platform,
                account_id=args.account_id,
                access_token=args.access_token,
                auto_reply_enabled=args.auto_reply,
            )
    except StoreError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    action = "Registered" if created else "Updated"
    print(
        f"{action} {connection.platform} account {connection.account_id} "
        f"for business {connection.business_id} (auto-reply "
        f"{'on' if connection.auto_reply_enabled else 'off'})"
    )


if __name__ == "__main__":
    main()
