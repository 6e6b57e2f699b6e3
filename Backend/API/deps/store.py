"""
Persistence for accounts, round history, admin logs and login sessions.

``MemoryStore`` keeps everything in the process (the local storage
flavour). ``deps.sql_store.SqlStore`` implements the same methods against
an ODBC database and is only imported when ``STORAGE_BACKEND=sql``.
"""

import threading
from collections import defaultdict
from dataclasses import replace
from typing import Optional

from services.models import Account, AdminLogEntry


class MemoryStore:
    def __init__(self):
        self._lock = threading.RLock()
        self._accounts: dict[str, Account] = {}
        self._games: dict[str, list[dict]] = defaultdict(list)
        self._admin_logs: list[AdminLogEntry] = []
        self._sessions: dict[str, str] = {}

    # accounts

    def create_account(self, account: Account) -> bool:
        with self._lock:
            if account.username in self._accounts:
                return False
            self._accounts[account.username] = replace(account)
            return True

    def get_account(self, username: str) -> Optional[Account]:
        with self._lock:
            account = self._accounts.get(username)
            return replace(account) if account else None

    def count_accounts(self) -> int:
        with self._lock:
            return len(self._accounts)

    def update_account(self, username: str, **fields) -> Optional[Account]:
        with self._lock:
            account = self._accounts.get(username)
            if account is None:
                return None
            self._accounts[username] = replace(account, **fields)
            return replace(self._accounts[username])

    def adjust_balance(self, username: str, delta: float) -> Optional[float]:
        """Add ``delta`` to a balance, flooring at zero. Returns the new balance."""
        with self._lock:
            account = self._accounts.get(username)
            if account is None:
                return None
            account.balance = max(0.0, account.balance + delta)
            return account.balance

    def record_stats(self, username: str, wagered: float, won: float, lost: float) -> None:
        with self._lock:
            account = self._accounts.get(username)
            if account is None:
                return
            account.games_played += 1
            account.total_wagered += wagered
            account.total_won += won
            account.total_lost += lost

    def top_accounts(self, limit: int) -> list[Account]:
        with self._lock:
            ranked = sorted(self._accounts.values(), key=lambda a: a.balance, reverse=True)
            return [replace(a) for a in ranked[:limit]]

    # round history

    def add_game(self, username: str, record: dict, keep: int) -> None:
        with self._lock:
            games = self._games[username]
            games.insert(0, dict(record))
            del games[keep:]

    def recent_games(self, username: str, limit: int) -> list[dict]:
        with self._lock:
            return [dict(g) for g in self._games.get(username, [])[:limit]]

    # admin log

    def add_admin_log(self, entry: AdminLogEntry) -> None:
        with self._lock:
            self._admin_logs.insert(0, entry)

    def admin_logs(self, limit: int) -> list[AdminLogEntry]:
        with self._lock:
            return list(self._admin_logs[:limit])

    # sessions

    def create_session(self, token: str, username: str) -> None:
        with self._lock:
            self._sessions[token] = username

    def session_user(self, token: str) -> Optional[str]:
        with self._lock:
            return self._sessions.get(token)

    def drop_session(self, token: str) -> None:
        with self._lock:
            self._sessions.pop(token, None)

    def drop_user_sessions(self, username: str) -> None:
        with self._lock:
            for token in [t for t, u in self._sessions.items() if u == username]:
                del self._sessions[token]


def build_store(backend: str, dsn: Optional[str] = None):
    if backend == "memory":
        return MemoryStore()
    if backend == "sql":
        from deps.sql_store import SqlStore
        store = SqlStore(dsn)
        store.init_schema()
        return store
    raise ValueError(f"STORAGE_BACKEND must be 'memory' or 'sql', got {backend!r}")
