"""Persistence store used by the reconciliation core.

The domain layer only needs a handful of table operations plus a uniqueness
constraint it can rely on for conflict-safe inserts:

- find_one / find_all: equality lookups
- insert: plain insert, returns the stored row
- update: assignment and atomic increments, returns the updated row
- upsert: INSERT ... ON CONFLICT, returns (row, created)

`PostgresStore` implements this over a psycopg2 cursor. One store session is
one transaction (see `postgres_session`).
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable, ContextManager, Iterator, Mapping, Protocol, Sequence

import psycopg2
from psycopg2 import sql
from psycopg2.extensions import cursor as PgCursor

from .db import txn

Row = dict[str, Any]


class StoreError(Exception):
    """Raised when the underlying database operation fails."""

    pass


class Store(Protocol):
    def find_one(self, table: str, where: Mapping[str, Any]) -> Row | None: ...

    def find_all(
        self,
        table: str,
        where: Mapping[str, Any],
        *,
        order_by: Sequence[str] = (),
        limit: int | None = None,
    ) -> list[Row]: ...

    def insert(self, table: str, values: Mapping[str, Any]) -> Row: ...

    def update(
        self,
        table: str,
        where: Mapping[str, Any],
        values: Mapping[str, Any],
        *,
        increments: Mapping[str, int] | None = None,
    ) -> Row | None: ...

    def upsert(
        self,
        table: str,
        values: Mapping[str, Any],
        *,
        conflict: Sequence[str],
        update: Sequence[str] = (),
    ) -> tuple[Row, bool]: ...


# A zero-argument callable returning a context manager that yields a Store.
# Everything done inside one `with` block commits or rolls back together.
SessionFactory = Callable[[], ContextManager[Store]]


def _where_clause(where: Mapping[str, Any]) -> tuple[sql.Composable, list[Any]]:
    if not where:
        raise ValueError("where must not be empty")
    parts: list[sql.Composable] = []
    params: list[Any] = []
    for column, value in where.items():
        if value is None:
            parts.append(sql.SQL("{} IS NULL").format(sql.Identifier(column)))
        else:
            parts.append(sql.SQL("{} = %s").format(sql.Identifier(column)))
            params.append(value)
    return sql.SQL(" AND ").join(parts), params


class PostgresStore:
    """Store backed by a psycopg2 cursor created with dict rows."""

    def __init__(self, cur: PgCursor):
        self._cur = cur

    def _execute(self, query: sql.Composable, params: Sequence[Any]) -> None:
        try:
            self._cur.execute(query, params)
        except psycopg2.Error as e:
            raise StoreError(f"{type(e).__name__}: {e.pgcode or 'no pgcode'}") from e

    def _fetchone(self) -> Row | None:
        row = self._cur.fetchone()
        return dict(row) if row is not None else None

    def find_one(self, table: str, where: Mapping[str, Any]) -> Row | None:
        clause, params = _where_clause(where)
        query = sql.SQL("SELECT * FROM {table} WHERE {clause} LIMIT 1").format(
            table=sql.Identifier(table), clause=clause
        )
        self._execute(query, params)
        return self._fetchone()

    def find_all(
        self,
        table: str,
        where: Mapping[str, Any],
        *,
        order_by: Sequence[str] = (),
        limit: int | None = None,
    ) -> list[Row]:
        clause, params = _where_clause(where)
        query = sql.SQL("SELECT * FROM {table} WHERE {clause}").format(
            table=sql.Identifier(table), clause=clause
        )
        if order_by:
            query += sql.SQL(" ORDER BY {}").format(
                sql.SQL(", ").join(sql.Identifier(c) for c in order_by)
            )
        if limit is not None:
            query += sql.SQL(" LIMIT %s")
            params.append(limit)
        self._execute(query, params)
        return [dict(row) for row in self._cur.fetchall()]

    def insert(self, table: str, values: Mapping[str, Any]) -> Row:
        columns = list(values)
        query = sql.SQL("INSERT INTO {table} ({columns}) VALUES ({placeholders}) RETURNING *").format(
            table=sql.Identifier(table),
            columns=sql.SQL(", ").join(sql.Identifier(c) for c in columns),
            placeholders=sql.SQL(", ").join(sql.Placeholder() * len(columns)),
        )
        self._execute(query, [values[c] for c in columns])
        row = self._fetchone()
        if row is None:
            raise StoreError(f"insert into {table} returned no row")
        return row

    def update(
        self,
        table: str,
        where: Mapping[str, Any],
        values: Mapping[str, Any],
        *,
        increments: Mapping[str, int] | None = None,
    ) -> Row | None:
        assignments: list[sql.Composable] = []
        params: list[Any] = []
        for column, value in values.items():
            assignments.append(sql.SQL("{} = %s").format(sql.Identifier(column)))
            params.append(value)
        for column, delta in (increments or {}).items():
            # Atomic in SQL; concurrent deliveries never lose an increment.
            assignments.append(
                sql.SQL("{col} = COALESCE({col}, 0) + %s").format(col=sql.Identifier(column))
            )
            params.append(delta)
        if not assignments:
            raise ValueError("nothing to update")

        clause, where_params = _where_clause(where)
        query = sql.SQL("UPDATE {table} SET {assignments} WHERE {clause} RETURNING *").format(
            table=sql.Identifier(table),
            assignments=sql.SQL(", ").join(assignments),
            clause=clause,
        )
        self._execute(query, params + where_params)
        return self._fetchone()

    def upsert(
        self,
        table: str,
        values: Mapping[str, Any],
        *,
        conflict: Sequence[str],
        update: Sequence[str] = (),
    ) -> tuple[Row, bool]:
        """Insert a row, resolving unique-key conflicts without raising.

        With `update` empty the statement is ON CONFLICT DO NOTHING and the
        existing row is read back (insert-or-fetch). Otherwise the listed
        columns are overwritten from the proposed row.

        Returns:
            Tuple of (row, created).
        """
        columns = list(values)
        query = sql.SQL("INSERT INTO {table} ({columns}) VALUES ({placeholders}) ON CONFLICT ({conflict}) ").format(
            table=sql.Identifier(table),
            columns=sql.SQL(", ").join(sql.Identifier(c) for c in columns),
            placeholders=sql.SQL(", ").join(sql.Placeholder() * len(columns)),
            conflict=sql.SQL(", ").join(sql.Identifier(c) for c in conflict),
        )
        if update:
            query += sql.SQL("DO UPDATE SET {assignments} RETURNING *, (xmax = 0) AS _inserted").format(
                assignments=sql.SQL(", ").join(
                    sql.SQL("{col} = EXCLUDED.{col}").format(col=sql.Identifier(c)) for c in update
                )
            )
        else:
            query += sql.SQL("DO NOTHING RETURNING *")

        self._execute(query, [values[c] for c in columns])
        row = self._fetchone()

        if row is None:
            existing = self.find_one(table, {c: values[c] for c in conflict})
            if existing is None:
                raise StoreError(f"conflict on {table} but no existing row found")
            return existing, False

        if update:
            inserted = bool(row.pop("_inserted", True))
            return row, inserted
        return row, True


@contextmanager
def postgres_session() -> Iterator[Store]:
    """Open one transaction and yield a PostgresStore bound to it.

    Connection and commit failures surface as StoreError.
    """
    try:
        with txn(dict_rows=True) as cur:
            yield PostgresStore(cur)
    except psycopg2.Error as e:
        raise StoreError(f"{type(e).__name__}: {e.pgcode or 'no pgcode'}") from e
