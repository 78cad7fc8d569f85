# ===== IMPORTS & DEPENDENCIES =====
import asyncio
import os
import sqlite3
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Tuple

from catalog_populator.config import GAME_RELATIONS, TAXONOMY_ENTITY_TYPES
from catalog_populator.core.errors import StoreError
from catalog_populator.core.store import (
    SLUG_POLICY_ALLOW, SLUG_POLICY_ERROR, SLUG_POLICY_MERGE,
    check_entity_type, check_slug_policy,
)

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)

GAME_COLUMNS = ["name", "slug", "price", "release_date", "short_description", "description"]

# ===== CORE BUSINESS LOGIC =====
class SqliteRecordStore:
    """
    Record store and upload sink backed by a local SQLite file.

    Every entity table carries a UNIQUE name, so get_or_create is a single
    INSERT OR IGNORE followed by a read and never produces duplicates even
    when callers race.
    """

    def __init__(self, db_path: str, slug_policy: str = SLUG_POLICY_ALLOW):
        self.db_path = db_path
        self.slug_policy = check_slug_policy(slug_policy)
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._create_tables()
        logger.info(f"[{self.__class__.__name__}] Database initialized at: {self.db_path}")

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Yields a connection that commits on success and is always closed."""
        conn = sqlite3.connect(self.db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(f"SQLite operation failed: {e}") from e
        finally:
            conn.close()

    def _create_tables(self) -> None:
        """Creates required tables if they don't exist."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            for entity_type in TAXONOMY_ENTITY_TYPES:
                cursor.execute(f"""
                    CREATE TABLE IF NOT EXISTS {entity_type} (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT UNIQUE NOT NULL,
                        slug TEXT NOT NULL
                    )
                """)
                cursor.execute(f"CREATE INDEX IF NOT EXISTS idx_{entity_type}_slug ON {entity_type} (slug)")
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS game (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT UNIQUE NOT NULL,
                    slug TEXT NOT NULL,
                    price REAL,
                    release_date TEXT,
                    short_description TEXT,
                    description TEXT
                )
            """)
            for relation, entity_type in GAME_RELATIONS.items():
                cursor.execute(f"""
                    CREATE TABLE IF NOT EXISTS game_{relation} (
                        game_id INTEGER NOT NULL REFERENCES game (id),
                        {entity_type}_id INTEGER NOT NULL REFERENCES {entity_type} (id),
                        UNIQUE(game_id, {entity_type}_id)
                    )
                """)
            # No uniqueness: a game may own several blobs for the same field (gallery)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS uploads (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    ref TEXT NOT NULL,
                    ref_id INTEGER NOT NULL,
                    field TEXT NOT NULL,
                    filename TEXT NOT NULL,
                    data BLOB NOT NULL,
                    uploaded_date TEXT NOT NULL
                )
            """)
            logger.info(f"[{self.__class__.__name__}] Database tables verified/created.")

    # --- Reads ---

    def _load_relations(self, conn: sqlite3.Connection, record: Dict[str, Any]) -> Dict[str, Any]:
        for relation, entity_type in GAME_RELATIONS.items():
            rows = conn.execute(
                f"SELECT {entity_type}_id FROM game_{relation} WHERE game_id = ? ORDER BY rowid",
                (record['id'],)
            ).fetchall()
            record[relation] = [row[0] for row in rows]
        return record

    def _select_by(self, conn: sqlite3.Connection, entity_type: str, column: str, value: Any) -> Optional[Dict[str, Any]]:
        row = conn.execute(f"SELECT * FROM {entity_type} WHERE {column} = ?", (value,)).fetchone()
        if row is None:
            return None
        record = dict(row)
        if entity_type == "game":
            record = self._load_relations(conn, record)
        return record

    def _find_by_name(self, entity_type: str, name: str) -> Optional[Dict[str, Any]]:
        """Returns the record with exactly this name, or None."""
        check_entity_type(entity_type)
        with self._get_connection() as conn:
            return self._select_by(conn, entity_type, "name", name)

    def count(self, entity_type: str) -> int:
        check_entity_type(entity_type)
        with self._get_connection() as conn:
            return conn.execute(f"SELECT COUNT(*) FROM {entity_type}").fetchone()[0]

    def get_uploads(self, ref_id: Any, field: Optional[str] = None, ref: str = "game") -> List[Dict[str, Any]]:
        """Returns the stored blobs for a record, optionally limited to one field."""
        query = "SELECT id, ref, ref_id, field, filename, data FROM uploads WHERE ref = ? AND ref_id = ?"
        params: Tuple[Any, ...] = (ref, ref_id)
        if field:
            query += " AND field = ?"
            params += (field,)
        with self._get_connection() as conn:
            return [dict(row) for row in conn.execute(query + " ORDER BY id", params).fetchall()]

    # --- Writes ---

    def _insert_game(self, conn: sqlite3.Connection, fields: Dict[str, Any], or_ignore: bool = False) -> Optional[int]:
        columns = [c for c in GAME_COLUMNS if c in fields]
        verb = "INSERT OR IGNORE" if or_ignore else "INSERT"
        cursor = conn.execute(
            f"{verb} INTO game ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
            tuple(fields[c] for c in columns)
        )
        if cursor.rowcount == 0:
            return None
        game_id = cursor.lastrowid
        for relation, entity_type in GAME_RELATIONS.items():
            for related_id in fields.get(relation) or []:
                conn.execute(
                    f"INSERT OR IGNORE INTO game_{relation} (game_id, {entity_type}_id) VALUES (?, ?)",
                    (game_id, related_id)
                )
        return game_id

    def _check_slug_collision(self, conn: sqlite3.Connection, entity_type: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Applies the slug policy; returns the record to merge into, if any."""
        if self.slug_policy == SLUG_POLICY_ALLOW or entity_type == "game":
            return None
        row = conn.execute(
            f"SELECT * FROM {entity_type} WHERE slug = ? AND name != ?",
            (fields.get('slug'), fields['name'])
        ).fetchone()
        if row is None:
            return None
        if self.slug_policy == SLUG_POLICY_ERROR:
            raise StoreError(
                f"Slug '{fields.get('slug')}' of {entity_type} '{fields['name']}' already used by '{row['name']}'"
            )
        if self.slug_policy == SLUG_POLICY_MERGE:
            logger.info(f"[{self.__class__.__name__}] Merging {entity_type} '{fields['name']}' into '{row['name']}' (slug '{row['slug']}').")
        return dict(row)

    def _create(self, entity_type: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Inserts a new record. Raises StoreError if the name already exists."""
        check_entity_type(entity_type)
        if not fields.get('name'):
            raise StoreError(f"Cannot create {entity_type} without a name")
        with self._get_connection() as conn:
            if self._check_slug_collision(conn, entity_type, fields):
                raise StoreError(f"Slug '{fields.get('slug')}' is already used by another {entity_type}")
            if entity_type == "game":
                record_id = self._insert_game(conn, fields)
            else:
                record_id = conn.execute(
                    f"INSERT INTO {entity_type} (name, slug) VALUES (?, ?)",
                    (fields['name'], fields.get('slug') or '')
                ).lastrowid
            record = self._select_by(conn, entity_type, "id", record_id)
        logger.info(f"[{self.__class__.__name__}] Created {entity_type}: '{fields['name']}'")
        return record

    def _get_or_create(self, entity_type: str, fields: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
        """Returns (record, created) for the record named fields['name'], inserting it if absent."""
        check_entity_type(entity_type)
        if not fields.get('name'):
            raise StoreError(f"Cannot create {entity_type} without a name")
        with self._get_connection() as conn:
            existing = self._select_by(conn, entity_type, "name", fields['name'])
            if existing:
                return existing, False

            merged = self._check_slug_collision(conn, entity_type, fields)
            if merged:
                return merged, False

            if entity_type == "game":
                created = self._insert_game(conn, fields, or_ignore=True) is not None
            else:
                cursor = conn.execute(
                    f"INSERT OR IGNORE INTO {entity_type} (name, slug) VALUES (?, ?)",
                    (fields['name'], fields.get('slug') or '')
                )
                created = cursor.rowcount == 1
            record = self._select_by(conn, entity_type, "name", fields['name'])

        if created:
            logger.info(f"[{self.__class__.__name__}] Created {entity_type}: '{fields['name']}'")
        return record, created

    def _upload(self, ref_id: Any, ref: str, field: str, filename: str, data: bytes) -> None:
        """Stores a blob for (ref, ref_id, field)."""
        with self._get_connection() as conn:
            conn.execute(
                "INSERT INTO uploads (ref, ref_id, field, filename, data, uploaded_date) VALUES (?, ?, ?, ?, ?, ?)",
                (ref, ref_id, field, filename, sqlite3.Binary(data), datetime.now().isoformat())
            )
        logger.info(f"[{self.__class__.__name__}] Stored {field} image '{filename}' for {ref} {ref_id}.")

    # --- Async interface: sqlite3 blocks, so every call runs in a worker thread ---

    async def find_by_name(self, entity_type: str, name: str) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self._find_by_name, entity_type, name)

    async def create(self, entity_type: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await asyncio.to_thread(self._create, entity_type, fields)

    async def get_or_create(self, entity_type: str, fields: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
        return await asyncio.to_thread(self._get_or_create, entity_type, fields)

    async def upload(self, ref_id: Any, ref: str, field: str, filename: str, data: bytes) -> None:
        await asyncio.to_thread(self._upload, ref_id, ref, field, filename, data)
