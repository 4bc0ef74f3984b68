import sqlite3
import os
import threading
from contextlib import contextmanager
from typing import Optional, List

from room_access.shared.logger import app_logger


class DatabaseManager:
    """SQLite database manager for mappings, access logs and health records"""

    def __init__(self, db_path: str = ":memory:"):
        if db_path != ":memory:":
            db_directory = os.path.dirname(os.path.abspath(db_path))
            try:
                os.makedirs(db_directory, exist_ok=True)
            except OSError as exc:
                raise RuntimeError(
                    f"Unable to create database directory '{db_directory}': {exc}"
                ) from exc

        self.db_path = db_path
        # One shared connection; an in-memory database only lives as long as it does
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

        self.init_database()

    def get_connection(self) -> sqlite3.Connection:
        """Get the shared database connection"""
        with self._lock:
            if self._connection is None:
                conn = sqlite3.connect(
                    self.db_path, check_same_thread=False, timeout=30.0
                )
                if self.db_path != ":memory:":
                    conn.execute("PRAGMA journal_mode = WAL")
                    conn.execute("PRAGMA synchronous = NORMAL")
                conn.row_factory = sqlite3.Row
                self._connection = conn
            return self._connection

    @contextmanager
    def get_cursor(self):
        """Context manager for database operations"""
        with self._lock:
            conn = self.get_connection()
            cursor = conn.cursor()
            try:
                yield cursor
            except Exception:
                conn.rollback()
                raise
            else:
                conn.commit()
            finally:
                cursor.close()

    def init_database(self):
        """Initialize database tables"""
        with self.get_cursor() as cursor:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS user_mappings (
                    id TEXT PRIMARY KEY,
                    dahua_user_id TEXT NOT NULL,
                    email TEXT NOT NULL,
                    name TEXT,
                    is_active BOOLEAN DEFAULT TRUE,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS room_mappings (
                    id TEXT PRIMARY KEY,
                    door_channel INTEGER NOT NULL,
                    room_email TEXT NOT NULL,
                    room_name TEXT,
                    is_active BOOLEAN DEFAULT TRUE,
                    created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                )
            """)

            # Append-only: repositories never issue UPDATE or DELETE here
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS access_logs (
                    id TEXT PRIMARY KEY,
                    dahua_user_id TEXT,
                    user_email TEXT,
                    door_channel INTEGER,
                    room_email TEXT,
                    event_type TEXT NOT NULL,
                    access_granted BOOLEAN NOT NULL,
                    reason TEXT,
                    detail TEXT,
                    event_id TEXT,
                    timestamp DATETIME NOT NULL,
                    metadata TEXT -- JSON blob with the raw event and sub-results
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS system_health (
                    service TEXT PRIMARY KEY,
                    id TEXT NOT NULL,
                    status TEXT NOT NULL,
                    last_check DATETIME NOT NULL,
                    details TEXT
                )
            """)

            # At most one active mapping per device-side key
            cursor.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_user_mappings_active_key "
                "ON user_mappings(dahua_user_id) WHERE is_active = 1"
            )
            cursor.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_room_mappings_active_key "
                "ON room_mappings(door_channel) WHERE is_active = 1"
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_access_logs_timestamp ON access_logs(timestamp)"
            )

        app_logger.info(f"Database initialized at: {self.db_path}")

    def execute_query(self, query: str, params: tuple = ()) -> sqlite3.Cursor:
        """Execute a single query"""
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            return cursor

    def fetch_one(self, query: str, params: tuple = ()) -> Optional[sqlite3.Row]:
        """Fetch single row"""
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            return cursor.fetchone()

    def fetch_all(self, query: str, params: tuple = ()) -> List[sqlite3.Row]:
        """Fetch all rows"""
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            return cursor.fetchall()

    def close_connection(self):
        """Close the shared connection"""
        with self._lock:
            if self._connection is not None:
                try:
                    self._connection.close()
                except sqlite3.Error as e:
                    app_logger.error(f"Error closing database connection: {e}")
                finally:
                    self._connection = None
