import logging
import sqlite3
import threading
from pathlib import Path

import zstandard as zstd

from . import config
from .errors import BackendInitError, BackendUnavailableError, BackendWriteError
from .persist import PersistHandler
from .utils import build_document_key, utc_now_iso

logger = logging.getLogger(__name__)


class SQLiteKeyValueStore(PersistHandler):
    """
    SQLite-backed key-value bucket: wikidata:item:<id> -> raw EntityData JSON.

    One connection serves every worker thread; statements are serialized
    through `self._lock`.
    """

    kind = config.BACKEND_KV
    supports_query = False

    def __init__(self, db_path, compress=True):
        self.db_path = Path(db_path)
        self.compress = compress
        self._lock = threading.Lock()
        self._conn = None
        self._closed = False
        self._init_error = None
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = self._connect()
        except (OSError, sqlite3.Error) as exc:
            self._init_error = BackendInitError(f"Cannot open key-value store {self.db_path}", exc)
            logger.error("[!] Error while opening key-value store %s: %s", self.db_path, exc)

    @classmethod
    def from_config(cls, conf):
        """Bucket file <endpoint>/<database>.sqlite; the first endpoint is the data directory."""
        root = conf.endpoints[0]
        if root.startswith("sqlite://"):
            root = root[len("sqlite://"):]
        return cls(Path(root) / f"{conf.database}{config.SQLITE_SUFFIX}")

    def _connect(self):
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.execute("PRAGMA busy_timeout=5000")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    key TEXT PRIMARY KEY,
                    payload BLOB,
                    compressed INTEGER,
                    updated_at TEXT
                )
                """
            )
            conn.commit()
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    @property
    def is_open(self):
        return self._conn is not None and not self._closed

    def _ensure_available(self):
        if self._init_error is not None:
            raise BackendUnavailableError("Key-value store is not available", self._init_error)
        if self._closed:
            raise BackendUnavailableError("Key-value store has been shut down")

    def _encode(self, body):
        raw = body.encode("utf-8") if isinstance(body, str) else bytes(body)
        if not self.compress:
            return raw
        return zstd.ZstdCompressor().compress(raw)

    def _decode(self, payload, compressed):
        raw = zstd.ZstdDecompressor().decompress(payload) if compressed else payload
        return raw.decode("utf-8")

    def save_raw(self, entity_id, body):
        self._ensure_available()
        key = build_document_key(entity_id)
        payload = self._encode(body)
        with self._lock:
            try:
                self._conn.execute(
                    """
                    INSERT INTO documents (key, payload, compressed, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        payload=excluded.payload,
                        compressed=excluded.compressed,
                        updated_at=excluded.updated_at
                    """,
                    (key, payload, int(self.compress), utc_now_iso()),
                )
                self._conn.commit()
            except sqlite3.Error as exc:
                try:
                    self._conn.rollback()
                except sqlite3.Error:
                    logger.debug("Rollback failed for %s", key, exc_info=True)
                raise BackendWriteError(f"Error while saving {key}", exc) from exc
        logger.debug("Stored %s in %s", key, self.db_path)

    def get_raw(self, entity_id):
        """Return the stored body of an entity verbatim, or None."""
        self._ensure_available()
        with self._lock:
            row = self._conn.execute(
                "SELECT payload, compressed FROM documents WHERE key = ?",
                (build_document_key(entity_id),),
            ).fetchone()
        if row is None:
            return None
        return self._decode(row[0], row[1])

    def size(self):
        """Number of stored keys (diagnostics only; not part of the pipeline interface)."""
        self._ensure_available()
        with self._lock:
            return self._conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]

    def shutdown(self):
        with self._lock:
            if self._closed:
                return
            self._closed = True
            conn, self._conn = self._conn, None
            if conn is not None:
                try:
                    conn.close()
                except sqlite3.Error as exc:
                    logger.warning("[!] Error while closing SQLite connection: %s", exc)
        logger.info("[*] Key-value store %s closed.", self.db_path)
