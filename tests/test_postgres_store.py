"""End-to-end reconciliation against Postgres (requires DATABASE_URL)."""

import os
import uuid
from pathlib import Path

import pytest

from sellio.domain.connections import register_connection
from sellio.domain.inbound import process_delivery
from sellio.infra.db import txn
from sellio.infra.store import postgres_session

from .helpers import RecordingClient, messenger_payload, instagram_event, whatsapp_payload, whatsapp_text

pytestmark = pytest.mark.skipif(
    not os.environ.get("DATABASE_URL"),
    reason="DATABASE_URL not set - skipping Postgres tests",
)

SQL_DIR = Path(__file__).parent.parent / "migrations" / "sql"
SCHEMA_SQL = "\n".join(p.read_text() for p in sorted(SQL_DIR.glob("*.sql")))


@pytest.fixture
def business_id():
    """Apply the schema and remove everything the test created."""
    with txn() as cur:
        cur.execute(SCHEMA_SQL)

    biz = f"biz_{uuid.uuid4().hex[:8]}"
    yield biz

    with txn() as cur:
        cur.execute(
            "DELETE FROM messages WHERE chat_id IN (SELECT id FROM chats WHERE business_id = %s)",
            (biz,),
        )
        cur.execute("DELETE FROM chats WHERE business_id = %s", (biz,))
        cur.execute("DELETE FROM customers WHERE business_id = %s", (biz,))
        cur.execute("DELETE FROM platform_connections WHERE business_id = %s", (biz,))


def _connect(business_id, platform, account_id, **kwargs):
    with postgres_session() as store:
        conn, _ = register_connection(
            store,
            business_id=business_id,
            platform=platform,
            account_id=account_id,
            access_token="tok",
            **kwargs,
        )
    return conn


class TestPostgresReconciliation:
    def test_delivery_and_redelivery(self, business_id):
        account = uuid.uuid4().hex[:10]
        _connect(business_id, "whatsapp", account)
        payload = whatsapp_payload(
            whatsapp_text("15551234567", "Hi, is the blue dress available?", f"wamid.{account}"),
            phone_number_id=account,
            contacts=[{"profile": {"name": "Jane"}, "wa_id": "15551234567"}],
        )

        first = process_delivery("whatsapp", payload, session_factory=postgres_session, client=RecordingClient())
        second = process_delivery("whatsapp", payload, session_factory=postgres_session, client=RecordingClient())

        assert first.processed == 1
        assert second.duplicates == 1
        with txn(dict_rows=True) as cur:
            cur.execute("SELECT * FROM chats WHERE business_id = %s", (business_id,))
            [chat] = cur.fetchall()
            cur.execute("SELECT count(*) AS n FROM messages WHERE chat_id = %s", (chat["id"],))
            count = cur.fetchone()["n"]
        assert chat["unread_count"] == 1
        assert chat["last_message"] == "Hi, is the blue dress available?"
        assert count == 1

    def test_reconnect_reports_not_created(self, business_id):
        account = uuid.uuid4().hex[:10]
        with postgres_session() as store:
            _, created = register_connection(
                store, business_id=business_id, platform="facebook", account_id=account, access_token="a"
            )
        with postgres_session() as store:
            conn, created_again = register_connection(
                store, business_id=business_id, platform="facebook", account_id=account, access_token="b"
            )

        assert created is True
        assert created_again is False
        assert conn.access_token == "b"

    def test_auto_reply_recorded(self, business_id):
        account = f"brand_{uuid.uuid4().hex[:6]}"
        _connect(business_id, "instagram", account, auto_reply_enabled=True)
        client = RecordingClient()
        payload = messenger_payload("instagram", instagram_event("bob_buys", account, "price?", f"mid.{account}"))

        report = process_delivery("instagram", payload, session_factory=postgres_session, client=client)

        assert report.auto_replies == 1
        assert client.sent[0][1] == "igsid_bob_buys"
        with txn(dict_rows=True) as cur:
            cur.execute(
                """
                SELECT m.sender_type FROM messages m JOIN chats c ON c.id = m.chat_id
                WHERE c.business_id = %s ORDER BY m.created_at, m.recorded_at
                """,
                (business_id,),
            )
            assert [r["sender_type"] for r in cur.fetchall()] == ["customer", "auto"]
