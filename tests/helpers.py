"""Shared test helpers for the inbox tests.

An in-memory store with the same unique keys and transaction behaviour as the
Postgres schema, plus payload builders and a log recorder. These are NOT
fixtures - fixtures live in conftest.py.
"""

from __future__ import annotations

import copy
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Mapping, Sequence

from sellio.infra.store import Row, StoreError
from sellio.messaging.graph_client import OutboundSendError
from sellio.messaging.models import PlatformConnection, SendResult

# Mirrors the UNIQUE constraints in migrations/sql/001_initial.sql
UNIQUE_KEYS: dict[str, tuple[tuple[str, ...], ...]] = {
    "platform_connections": (("id",), ("platform", "account_id")),
    "customers": (("id",), ("business_id", "platform", "external_id")),
    "chats": (("id",), ("business_id", "platform", "customer_id")),
    "messages": (("id",), ("chat_id", "platform_message_id")),
}


def _matches(row: Mapping[str, Any], where: Mapping[str, Any]) -> bool:
    for column, value in where.items():
        if value is None:
            if row.get(column) is not None:
                return False
        elif row.get(column) != value:
            return False
    return True


def _sort_key(order_by: Sequence[str]) -> Callable[[Row], tuple]:
    def key(row: Row) -> tuple:
        return tuple((row.get(c) is None, row.get(c)) for c in order_by)

    return key


class FakeDatabase:
    """Tables shared by all sessions of one test."""

    def __init__(self) -> None:
        self.tables: dict[str, list[Row]] = {name: [] for name in UNIQUE_KEYS}
        self.commits = 0
        self.rollbacks = 0
        self._failures: list[tuple[str, str, Callable[[Mapping[str, Any]], bool]]] = []

    def fail_on(
        self,
        op: str,
        table: str,
        when: Callable[[Mapping[str, Any]], bool] | None = None,
    ) -> None:
        """Make `op` on `table` raise StoreError (optionally only when `when(values)`)."""
        self._failures.append((op, table, when or (lambda _values: True)))

    def check_failure(self, op: str, table: str, values: Mapping[str, Any]) -> None:
        for f_op, f_table, when in self._failures:
            if f_op == op and f_table == table and when(values):
                raise StoreError(f"injected {op} failure on {table}")

    @contextmanager
    def session(self) -> Iterator[FakeStore]:
        snapshot = copy.deepcopy(self.tables)
        try:
            yield FakeStore(self)
        except Exception:
            self.tables = snapshot
            self.rollbacks += 1
            raise
        self.commits += 1

    def rows(self, table: str, **where: Any) -> list[Row]:
        return [copy.deepcopy(r) for r in self.tables[table] if _matches(r, where)]

    def add_connection(
        self,
        *,
        business_id: str = "biz_1",
        platform: str = "whatsapp",
        account_id: str = "123456789",
        access_token: str = "token-abc",
        auto_reply_enabled: bool = False,
        connected: bool = True,
    ) -> PlatformConnection:
        row = {
            "id": f"conn_{platform}_{account_id}",
            "business_id": business_id,
            "platform": platform,
            "account_id": account_id,
            "access_token": access_token,
            "auto_reply_enabled": auto_reply_enabled,
            "connected": connected,
            "created_at": None,
        }
        self.tables["platform_connections"].append(row)
        return PlatformConnection.from_row(row)


class FakeStore:
    """In-memory Store bound to one FakeDatabase session."""

    def __init__(self, db: FakeDatabase):
        self._db = db

    def _table(self, table: str) -> list[Row]:
        return self._db.tables[table]

    def _conflicting(self, table: str, values: Mapping[str, Any], key: Sequence[str]) -> Row | None:
        if any(values.get(c) is None for c in key):
            # NULLs never conflict, as in Postgres
            return None
        for row in self._table(table):
            if all(row.get(c) == values.get(c) for c in key):
                return row
        return None

    def find_one(self, table: str, where: Mapping[str, Any]) -> Row | None:
        self._db.check_failure("find_one", table, where)
        for row in self._table(table):
            if _matches(row, where):
                return copy.deepcopy(row)
        return None

    def find_all(
        self,
        table: str,
        where: Mapping[str, Any],
        *,
        order_by: Sequence[str] = (),
        limit: int | None = None,
    ) -> list[Row]:
        self._db.check_failure("find_all", table, where)
        rows = [copy.deepcopy(r) for r in self._table(table) if _matches(r, where)]
        if order_by:
            rows.sort(key=_sort_key(order_by))
        return rows[:limit] if limit is not None else rows

    def insert(self, table: str, values: Mapping[str, Any]) -> Row:
        self._db.check_failure("insert", table, values)
        for key in UNIQUE_KEYS.get(table, ()):
            if self._conflicting(table, values, key) is not None:
                raise StoreError(f"UniqueViolation on {table} {key}")
        row = dict(values)
        self._table(table).append(row)
        return copy.deepcopy(row)

    def update(
        self,
        table: str,
        where: Mapping[str, Any],
        values: Mapping[str, Any],
        *,
        increments: Mapping[str, int] | None = None,
    ) -> Row | None:
        self._db.check_failure("update", table, values)
        updated = None
        for row in self._table(table):
            if not _matches(row, where):
                continue
            row.update(values)
            for column, delta in (increments or {}).items():
                row[column] = (row.get(column) or 0) + delta
            if updated is None:
                updated = copy.deepcopy(row)
        return updated

    def upsert(
        self,
        table: str,
        values: Mapping[str, Any],
        *,
        conflict: Sequence[str],
        update: Sequence[str] = (),
    ) -> tuple[Row, bool]:
        self._db.check_failure("upsert", table, values)
        existing = self._conflicting(table, values, conflict)
        if existing is not None:
            for column in update:
                existing[column] = values[column]
            return copy.deepcopy(existing), False
        return self.insert(table, values), True


class RecordingClient:
    """PlatformClient that records sends and returns predictable ids."""

    def __init__(self) -> None:
        self.sent: list[tuple[PlatformConnection, str, str]] = []

    def send_message(self, connection: PlatformConnection, recipient_id: str, text: str) -> SendResult:
        self.sent.append((connection, recipient_id, text))
        return SendResult(message_id=f"out.{len(self.sent)}")


class FailingClient:
    """PlatformClient whose every send fails."""

    def __init__(self, status_code: int | None = 500) -> None:
        self.calls = 0
        self.status_code = status_code

    def send_message(self, connection: PlatformConnection, recipient_id: str, text: str) -> SendResult:
        self.calls += 1
        raise OutboundSendError("send failed", status_code=self.status_code, retryable=True)


class LogRecorder:
    """Simple recorder to capture log calls deterministically."""

    def __init__(self):
        self.calls: list[tuple[str, tuple, dict]] = []

    def _record(self, level: str, *args, **kwargs):
        self.calls.append((level, args, kwargs))

    def info(self, *args, **kwargs):
        self._record("info", *args, **kwargs)

    def warning(self, *args, **kwargs):
        self._record("warning", *args, **kwargs)

    def error(self, *args, **kwargs):
        self._record("error", *args, **kwargs)

    def exception(self, *args, **kwargs):
        self._record("exception", *args, **kwargs)

    def debug(self, *args, **kwargs):
        self._record("debug", *args, **kwargs)

    def messages(self, level: str | None = None) -> list[str]:
        return [args[0] for lvl, args, _ in self.calls if level is None or lvl == level]

    def get_all_logged_content(self) -> str:
        """Concatenate all args and kwargs from all calls into one string."""
        parts = []
        for _level, args, kwargs in self.calls:
            parts.append(str(args))
            parts.append(str(kwargs))
        return " ".join(parts)

    def has_extra_field(self, key: str) -> bool:
        for _, _, kwargs in self.calls:
            extra = kwargs.get("extra", {})
            if key in extra.get("extra_fields", {}):
                return True
        return False


def whatsapp_payload(
    *messages: dict[str, Any],
    phone_number_id: str | None = "123456789",
    contacts: list[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Build a WhatsApp Cloud API delivery with one change."""
    value: dict[str, Any] = {
        "messaging_product": "whatsapp",
        "contacts": contacts if contacts is not None else [],
        "messages": list(messages),
    }
    if phone_number_id is not None:
        value["metadata"] = {"display_phone_number": "15550000000", "phone_number_id": phone_number_id}
    return {
        "object": "whatsapp_business_account",
        "entry": [{"id": "WABA_ID", "changes": [{"field": "messages", "value": value}]}],
    }


def whatsapp_text(sender: str, body: str, message_id: str, timestamp: str = "1704067200") -> dict[str, Any]:
    return {
        "from": sender,
        "id": message_id,
        "timestamp": timestamp,
        "type": "text",
        "text": {"body": body},
    }


def messenger_payload(object_type: str, *events: dict[str, Any]) -> dict[str, Any]:
    """Build an Instagram (object=instagram) or Messenger (object=page) delivery."""
    return {
        "object": object_type,
        "entry": [{"id": "ENTRY_ID", "time": 1704067200000, "messaging": list(events)}],
    }


def instagram_event(sender: str, recipient: str, text: str, mid: str, timestamp: int = 1704067200000) -> dict[str, Any]:
    return {
        "sender": {"id": f"igsid_{sender}", "username": sender},
        "recipient": {"id": f"igid_{recipient}", "username": recipient},
        "timestamp": timestamp,
        "message": {"mid": mid, "text": text},
    }


def facebook_event(psid: str, page_id: str, text: str, mid: str, timestamp: int = 1704067200000) -> dict[str, Any]:
    return {
        "sender": {"id": psid},
        "recipient": {"id": page_id},
        "timestamp": timestamp,
        "message": {"mid": mid, "text": text},
    }
