#!/usr/bin/env python3
"""Send a business message to the customer of a chat.

The message goes out through the chat's platform (OUTBOUND_MODE=stub records
it without calling the Graph API) and is added to the chat once delivered.

Usage:
    DATABASE_URL=... python scripts/send_message.py --chat-id <uuid> --text "Your order shipped"
"""

import argparse
import os
import sys

from sellio.domain.errors import ChatNotFoundError, InboundProcessingError
from sellio.domain.outbound import send_business_message
from sellio.infra.store import StoreError, postgres_session
from sellio.messaging.graph_client import OutboundSendError, build_platform_client


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--chat-id", required=True)
    parser.add_argument("--text", required=True)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)

    if not os.environ.get("DATABASE_URL"):
        print("ERROR: set DATABASE_URL environment variable", file=sys.stderr)
        sys.exit(1)

    try:
        message = send_business_message(
            postgres_session,
            build_platform_client(),
            args.chat_id,
            args.text,
        )
    except (ValueError, ChatNotFoundError, InboundProcessingError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)
    except OutboundSendError as e:
        print(f"ERROR: not delivered ({e})", file=sys.stderr)
        sys.exit(2)
    except StoreError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Sent message {message.id} in chat {message.chat_id}")


if __name__ == "__main__":
    main()
