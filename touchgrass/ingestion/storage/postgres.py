"""
touchgrass.ingestion.storage.postgres.

PostgreSQL-backed KeyValueStore.

Layout
------
A single table keyed by (pk, sk). The full item lives in a JSONB payload;
the attributes behind the secondary access paths are copied into their own
columns so each path is a B-tree lookup rather than a scan.

The conditional-write primitive is ``INSERT ... ON CONFLICT DO NOTHING
RETURNING``: a returned row means this call created the item.
"""

from __future__ import annotations

import logging
from typing import Any

import psycopg2
from psycopg2 import sql
from psycopg2.extensions import TransactionRollbackError
from psycopg2.extensions import connection as _connection
from psycopg2.extras import Json, execute_values

from touchgrass.configs.settings import Settings
from touchgrass.ingestion.errors import StoreUnavailableError, TransientStoreError
from touchgrass.ingestion.storage.base import (
    BatchWriteOutcome,
    Item,
    Key,
    KeyValueStore,
    ScanPage,
    SecondaryIndex,
    item_key,
)

logger = logging.getLogger(__name__)

# Item attributes mirrored into indexed columns
INDEXED_COLUMNS = ("created_at", "organizer_id", "event_date", "category", "title")

_COLUMNS = ("pk", "sk", *INDEXED_COLUMNS, "payload")


class PostgresStore(KeyValueStore):
    """
    KeyValueStore over a psycopg2 connection.

    Parameters
    ----------
    conn : psycopg2.extensions.connection
        Open connection. Every public call commits or rolls back its own
        transaction.
    table : str
        Name of the items table.
    """

    def __init__(self, conn: _connection, table: str = "items") -> None:
        self.conn = conn
        self.table = table

    @classmethod
    def from_settings(cls, settings: Settings) -> "PostgresStore":
        """Open a connection from DATABASE_URL."""
        try:
            conn = psycopg2.connect(**settings.get_psycopg2_params())
        except psycopg2.OperationalError as e:
            raise StoreUnavailableError(f"Cannot connect to PostgreSQL: {e}") from e
        return cls(conn, table=settings.STORE_TABLE)

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def ensure_schema(self) -> None:
        """Create the items table and the secondary-path indexes if absent."""
        table = sql.Identifier(self.table)
        statements = [
            sql.SQL(
                """
                CREATE TABLE IF NOT EXISTS {table} (
                    pk TEXT NOT NULL,
                    sk TEXT NOT NULL,
                    created_at BIGINT,
                    organizer_id TEXT,
                    event_date TEXT,
                    category TEXT,
                    title TEXT,
                    payload JSONB NOT NULL,
                    PRIMARY KEY (pk, sk)
                );
                """
            ).format(table=table)
        ]
        for index in SecondaryIndex:
            statements.append(
                sql.SQL("CREATE INDEX IF NOT EXISTS {name} ON {table} ({hash}, {range});").format(
                    name=sql.Identifier(f"{self.table}_{index.value}_idx"),
                    table=table,
                    hash=sql.Identifier(index.hash_attribute),
                    range=sql.Identifier(index.range_attribute),
                )
            )

        def _create(cur):
            for statement in statements:
                cur.execute(statement)

        self._run(_create, commit=True)
        logger.info(f"Ensured table '{self.table}' and its secondary indexes")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def put_if_absent(self, item: Item) -> bool:
        query = sql.SQL(
            "INSERT INTO {table} ({columns}) VALUES ({values}) "
            "ON CONFLICT (pk, sk) DO NOTHING RETURNING pk;"
        ).format(
            table=sql.Identifier(self.table),
            columns=sql.SQL(", ").join(map(sql.Identifier, _COLUMNS)),
            values=sql.SQL(", ").join(sql.Placeholder() * len(_COLUMNS)),
        )

        def _insert(cur):
            cur.execute(query, _row(item))
            return cur.fetchone() is not None

        return self._run(_insert, commit=True)

    def batch_put_if_absent(self, items: list[Item]) -> BatchWriteOutcome:
        self._check_batch_size(items)
        if not items:
            return BatchWriteOutcome()

        query = sql.SQL(
            "INSERT INTO {table} ({columns}) VALUES %s "
            "ON CONFLICT (pk, sk) DO NOTHING RETURNING pk, sk;"
        ).format(
            table=sql.Identifier(self.table),
            columns=sql.SQL(", ").join(map(sql.Identifier, _COLUMNS)),
        )

        def _insert(cur):
            rows = execute_values(
                cur, query, [_row(item) for item in items], fetch=True
            )
            return {(row[0], row[1]) for row in rows}

        created = self._run(_insert, commit=True)

        outcome = BatchWriteOutcome()
        seen: set[Key] = set()
        for item in items:
            key = item_key(item)
            if key in created and key not in seen:
                outcome.written.append(item)
            else:
                outcome.existing.append(item)
            seen.add(key)
        return outcome

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, pk: str, sk: str) -> Item | None:
        query = sql.SQL("SELECT payload FROM {table} WHERE pk = %s AND sk = %s;").format(
            table=sql.Identifier(self.table)
        )

        def _select(cur):
            cur.execute(query, (pk, sk))
            row = cur.fetchone()
            return row[0] if row else None

        return self._run(_select)

    def scan(
        self, prefix: str, limit: int = 100, start_key: Key | None = None
    ) -> ScanPage:
        # Fetch one extra row to learn whether another page exists
        if start_key is None:
            query = sql.SQL(
                "SELECT pk, sk, payload FROM {table} "
                "WHERE left(pk, %s) = %s ORDER BY pk, sk LIMIT %s;"
            ).format(table=sql.Identifier(self.table))
            params: tuple[Any, ...] = (len(prefix), prefix, limit + 1)
        else:
            query = sql.SQL(
                "SELECT pk, sk, payload FROM {table} "
                "WHERE left(pk, %s) = %s AND (pk, sk) > (%s, %s) "
                "ORDER BY pk, sk LIMIT %s;"
            ).format(table=sql.Identifier(self.table))
            params = (len(prefix), prefix, start_key[0], start_key[1], limit + 1)

        def _select(cur):
            cur.execute(query, params)
            return cur.fetchall()

        rows = self._run(_select)
        page = rows[:limit]
        last_key = (page[-1][0], page[-1][1]) if len(rows) > limit else None
        return ScanPage(items=[row[2] for row in page], last_key=last_key)

    def query(
        self, index: SecondaryIndex, hash_value: Any, range_value: Any = None
    ) -> list[Item]:
        hash_col = sql.Identifier(index.hash_attribute)
        range_col = sql.Identifier(index.range_attribute)
        if range_value is None:
            query = sql.SQL(
                "SELECT payload FROM {table} WHERE {hash} = %s ORDER BY {range}, pk, sk;"
            ).format(table=sql.Identifier(self.table), hash=hash_col, range=range_col)
            params: tuple[Any, ...] = (hash_value,)
        else:
            query = sql.SQL(
                "SELECT payload FROM {table} WHERE {hash} = %s AND {range} = %s "
                "ORDER BY pk, sk;"
            ).format(table=sql.Identifier(self.table), hash=hash_col, range=range_col)
            params = (hash_value, range_value)

        def _select(cur):
            cur.execute(query, params)
            return [row[0] for row in cur.fetchall()]

        return self._run(_select)

    def close(self) -> None:
        self.conn.close()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _run(self, work, commit: bool = False):
        """Run work(cursor) in its own transaction, mapping driver errors."""
        try:
            with self.conn.cursor() as cur:
                result = work(cur)
            if commit:
                self.conn.commit()
            else:
                self.conn.rollback()
            return result
        except TransactionRollbackError as e:
            self.conn.rollback()
            raise TransientStoreError(f"Transaction aborted, retry possible: {e}") from e
        except psycopg2.OperationalError as e:
            raise StoreUnavailableError(f"PostgreSQL unavailable: {e}") from e
        except psycopg2.Error as e:
            self.conn.rollback()
            raise StoreUnavailableError(f"PostgreSQL error: {e}") from e


def _row(item: Item) -> tuple[Any, ...]:
    return (
        item["pk"],
        item["sk"],
        *(item.get(column) for column in INDEXED_COLUMNS),
        Json(item),
    )
