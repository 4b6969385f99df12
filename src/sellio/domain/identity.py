"""Identity Resolver - find or create the customer behind an inbound message.

Customers are unique on (business_id, platform, external_id). Creation is an
INSERT ... ON CONFLICT DO NOTHING followed by a re-read, so two concurrent
deliveries from the same new sender converge on one row.
"""

from __future__ import annotations

import uuid

from sellio.infra.store import Store, StoreError
from sellio.infra.time import utc_now
from sellio.messaging.models import Customer

from .errors import IdentityResolutionError

TABLE = "customers"


def fallback_name(platform: str, external_id: str) -> str:
    """Name used when the platform gives no display name."""
    if platform == "instagram":
        return f"@{external_id}"
    return f"Customer {external_id}"


def resolve_customer(
    store: Store,
    business_id: str,
    platform: str,
    external_id: str,
    display_name_hint: str | None = None,
    *,
    phone: str | None = None,
    platform_user_id: str | None = None,
) -> Customer:
    """Find or create the customer for (business_id, platform, external_id).

    An existing customer whose name is still the synthesized fallback gets the
    hint as its name. Contact fields are only filled when empty; the send
    address follows the latest value the platform reported.

    Args:
        store: Store session.
        business_id: Owning business.
        platform: Platform the message came from.
        external_id: wa_id, Instagram username or Facebook PSID.
        display_name_hint: Display name offered by the platform, if any.
        phone: E.164 phone (WhatsApp only).
        platform_user_id: Send API recipient id, when it differs from external_id.

    Raises:
        IdentityResolutionError: On store failure.
    """
    key = {"business_id": business_id, "platform": platform, "external_id": external_id}
    hint = (display_name_hint or "").strip() or None

    try:
        row = store.find_one(TABLE, key)
        if row is None:
            now = utc_now()
            row, created = store.upsert(
                TABLE,
                {
                    "id": str(uuid.uuid4()),
                    **key,
                    "name": hint or fallback_name(platform, external_id),
                    "phone": phone,
                    "platform_user_id": platform_user_id,
                    "status": "active",
                    "created_at": now,
                    "updated_at": now,
                },
                conflict=("business_id", "platform", "external_id"),
            )
            if created:
                return Customer.from_row(row)

        return _backfill(store, row, platform, external_id, hint, phone, platform_user_id)
    except StoreError as e:
        raise IdentityResolutionError(f"customer resolution failed: {e}") from e


def _backfill(
    store: Store,
    row: dict,
    platform: str,
    external_id: str,
    hint: str | None,
    phone: str | None,
    platform_user_id: str | None,
) -> Customer:
    changes: dict = {}
    if hint and row.get("name") in (None, "", fallback_name(platform, external_id)) and hint != row.get("name"):
        changes["name"] = hint
    if phone and not row.get("phone"):
        changes["phone"] = phone
    if platform_user_id and row.get("platform_user_id") != platform_user_id:
        changes["platform_user_id"] = platform_user_id

    if not changes:
        return Customer.from_row(row)

    changes["updated_at"] = utc_now()
    updated = store.update(TABLE, {"id": row["id"]}, changes)
    return Customer.from_row(updated or {**row, **changes})


def get_customer(store: Store, customer_id: str) -> Customer | None:
    row = store.find_one(TABLE, {"id": customer_id})
    return Customer.from_row(row) if row else None
