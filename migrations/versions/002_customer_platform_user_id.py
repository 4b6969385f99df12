"""Add customers.platform_user_id (SQL-only).

Revision ID: 002_customer_platform_user_id
Revises: 001_initial_schema
Create Date: 2026-10-18
"""

from __future__ import annotations

from pathlib import Path

from alembic import op


# revision identifiers, used by Alembic.
revision = "002_customer_platform_user_id"
down_revision = "001_initial_schema"
branch_labels = None
depends_on = None


def _read_sql() -> str:
    sql_path = Path(__file__).resolve().parents[1] / "sql" / "002_customer_platform_user_id.sql"
    return sql_path.read_text(encoding="utf-8")


def upgrade() -> None:
    conn = op.get_bind()
    conn.exec_driver_sql(_read_sql())


def downgrade() -> None:
    conn = op.get_bind()
    conn.exec_driver_sql("ALTER TABLE customers DROP COLUMN IF EXISTS platform_user_id;")
