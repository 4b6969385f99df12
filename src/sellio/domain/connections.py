"""Platform connections - which business owns which platform account.

Tenant resolution uses exactly one key per platform, stored in
platform_connections.account_id:

- whatsapp: Cloud API phone_number_id (value.metadata.phone_number_id)
- instagram: business account username (recipient.username)
- facebook: page id (recipient.id)

There is no fallback tenant. An event addressed to an unknown account is
rejected with TenantResolutionError.
"""

from __future__ import annotations

import uuid

from sellio.infra.store import Store, StoreError
from sellio.infra.time import utc_now
from sellio.messaging.models import PlatformConnection

from .errors import TenantResolutionError

TABLE = "platform_connections"


def get_connection(store: Store, platform: str, account_id: str) -> PlatformConnection:
    """Resolve the connected business account for an inbound event.

    Raises:
        TenantResolutionError: If no connected account matches, or the lookup fails.
    """
    try:
        row = store.find_one(TABLE, {"platform": platform, "account_id": account_id})
    except StoreError as e:
        raise TenantResolutionError(f"connection lookup failed: {e}") from e

    if row is None or not row.get("connected", True):
        raise TenantResolutionError(f"no connected {platform} account")

    return PlatformConnection.from_row(row)


def register_connection(
    store: Store,
    *,
    business_id: str,
    platform: str,
    account_id: str,
    access_token: str,
    auto_reply_enabled: bool = False,
) -> tuple[PlatformConnection, bool]:
    """Create or refresh the connection for (platform, account_id).

    Reconnecting an account moves it to `business_id`, replaces the token and
    marks it connected again.

    Returns:
        Tuple of (connection, created).
    """
    row, created = store.upsert(
        TABLE,
        {
            "id": str(uuid.uuid4()),
            "business_id": business_id,
            "platform": platform,
            "account_id": account_id,
            "access_token": access_token,
            "auto_reply_enabled": auto_reply_enabled,
            "connected": True,
            "created_at": utc_now(),
        },
        conflict=("platform", "account_id"),
        update=("business_id", "access_token", "auto_reply_enabled", "connected"),
    )
    return PlatformConnection.from_row(row), created


def connection_for_business(store: Store, business_id: str, platform: str) -> PlatformConnection:
    """Connected account a business sends from on `platform`.

    A business with several accounts on one platform sends from the one
    connected first.

    Raises:
        TenantResolutionError: If the business has no connected account there.
    """
    try:
        rows = store.find_all(
            TABLE,
            {"business_id": business_id, "platform": platform, "connected": True},
            order_by=("created_at",),
            limit=1,
        )
    except StoreError as e:
        raise TenantResolutionError(f"connection lookup failed: {e}") from e

    if not rows:
        raise TenantResolutionError(f"business has no connected {platform} account")
    return PlatformConnection.from_row(rows[0])
