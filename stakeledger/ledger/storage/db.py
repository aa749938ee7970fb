import sqlite3
import threading
from typing import Optional, Dict

class StorageDB:
    """
    SQLite key/value store for ledger state.

    Values are pydantic JSON documents; keys are namespaced:
    pool:["<id>"], stats:["<id>"], stake:["<pool>","<account>","<stake_id>"],
    admin_wallet, paused.
    """

    def __init__(self, db_path: str):
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.cursor = self.conn.cursor()
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self):
        with self._lock:
            self.cursor.execute('''
                CREATE TABLE IF NOT EXISTS state (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
            ''')
            self.conn.commit()

    def get_state(self, key: str) -> Optional[str]:
        with self._lock:
            self.cursor.execute('SELECT value FROM state WHERE key = ?', (key,))
            row = self.cursor.fetchone()
            return row[0] if row else None

    def set_state(self, key: str, value: str):
        with self._lock:
            self.cursor.execute('INSERT OR REPLACE INTO state (key, value) VALUES (?, ?)', (key, value))
            self.conn.commit()

    def set_many(self, items: Dict[str, str]):
        """Writes several keys in one transaction."""
        with self._lock:
            self.cursor.executemany(
                'INSERT OR REPLACE INTO state (key, value) VALUES (?, ?)', list(items.items())
            )
            self.conn.commit()

    def get_state_by_prefix(self, prefix: str) -> Dict[str, str]:
        with self._lock:
            # substr match so that '_' and '%' in ids are not wildcards
            self.cursor.execute(
                'SELECT key, value FROM state WHERE substr(key, 1, ?) = ?', (len(prefix), prefix)
            )
            return {row[0]: row[1] for row in self.cursor.fetchall()}

    def close(self):
        with self._lock:
            self.conn.close()
