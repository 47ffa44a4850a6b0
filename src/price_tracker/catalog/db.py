from __future__ import annotations

import json
import os
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence

from ..logging import get_logger
from ..paths import find_project_root, var_dir
from .constants import QUERY_LIMIT


LOG = get_logger("catalog-db")


DEFAULT_DB_FOLDER = "catalog"
DEFAULT_DB_FILENAME = "products.sqlite3"

_NOW_SQL = "strftime('%Y-%m-%dT%H:%M:%fZ', 'now')"

SCHEMA_SQL = f"""
CREATE TABLE IF NOT EXISTS products (
  id          INTEGER PRIMARY KEY,
  data        TEXT NOT NULL CHECK (json_valid(data)),  -- name, price, currency, ocr_text, image_url, location
  name        TEXT GENERATED ALWAYS AS (json_extract(data, '$.name')) VIRTUAL,
  created_at  TEXT NOT NULL DEFAULT ({_NOW_SQL}),
  updated_at  TEXT NOT NULL DEFAULT ({_NOW_SQL})
);

CREATE INDEX IF NOT EXISTS idx_products_created ON products(created_at);
"""


def _casefold(value: Optional[str]) -> Optional[str]:
    return value.casefold() if isinstance(value, str) else value


class ProductDatabase:
    """SQLite-backed product catalog.

    - Places the DB under `<repo-root>/var/catalog/products.sqlite3` unless
      an explicit `db_path` is given.
    - Ensures schema on first use.
    - Provides a context-managed connection method.
    """

    def __init__(self, root_dir: Optional[str] = None, *, db_path: Optional[str] = None) -> None:
        if db_path is None:
            root = find_project_root(root_dir)
            db_folder = os.path.join(var_dir(root), DEFAULT_DB_FOLDER)
            db_path = os.path.join(db_folder, DEFAULT_DB_FILENAME)
        os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)
        self.db_path = os.path.abspath(db_path)
        LOG.info(f"Product DB path: {self.db_path}")
        self._ensure_schema()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.create_function("casefold", 1, _casefold, deterministic=True)
        try:
            yield conn
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self.connect() as conn:
            cur = conn.cursor()
            try:
                cur.execute("PRAGMA journal_mode=WAL;")
                cur.execute("PRAGMA synchronous=NORMAL;")
            except sqlite3.DatabaseError as e:
                LOG.debug(f"Could not switch journal mode: {e}")
            cur.executescript(SCHEMA_SQL)
            conn.commit()
            LOG.debug("Product DB schema ensured.")

    # --------------- Insert helpers ---------------
    def insert_products(self, payloads: Sequence[Dict[str, Any]]) -> List[int]:
        """Insert one row per payload in a single transaction; return new ids."""
        ids: List[int] = []
        with self.connect() as conn:
            cur = conn.cursor()
            for payload in payloads:
                cur.execute(
                    "INSERT INTO products (data) VALUES (?) RETURNING id;",
                    (json.dumps(payload, ensure_ascii=False, allow_nan=False),),
                )
                ids.append(int(cur.fetchone()[0]))
            conn.commit()
        LOG.debug(f"Inserted product ids {ids}")
        return ids

    # --------------- Query helpers ---------------
    @staticmethod
    def _rows_to_dicts(rows: Sequence[sqlite3.Row]) -> List[Dict[str, Any]]:
        return [dict(row) for row in rows]

    def search_products(self, query: str, *, limit: int = QUERY_LIMIT) -> List[Dict[str, Any]]:
        """Rows whose name contains `query` (case-insensitive), newest first."""
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT id, data, created_at, updated_at
                FROM products
                WHERE instr(casefold(name), ?) > 0
                ORDER BY created_at DESC, id DESC
                LIMIT ?;
                """,
                (query.casefold(), int(limit)),
            )
            return self._rows_to_dicts(cur.fetchall())

    def recent_products(self, *, limit: int = QUERY_LIMIT) -> List[Dict[str, Any]]:
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute(
                """
                SELECT id, data, created_at, updated_at
                FROM products
                ORDER BY created_at DESC, id DESC
                LIMIT ?;
                """,
                (int(limit),),
            )
            return self._rows_to_dicts(cur.fetchall())

    def count_products(self) -> int:
        with self.connect() as conn:
            cur = conn.cursor()
            cur.execute("SELECT COUNT(*) AS count FROM products;")
            return int(cur.fetchone()["count"])
