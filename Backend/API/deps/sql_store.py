import json
from typing import Optional

import pyodbc

from deps.db import get_conn, exec_tsql
from services.models import Account, AdminLogEntry


SCHEMA = """
IF OBJECT_ID(N'dbo.Users', N'U') IS NULL
CREATE TABLE dbo.Users (
    Username NVARCHAR(32) NOT NULL PRIMARY KEY,
    PasswordHash NVARCHAR(255) NOT NULL,
    Balance FLOAT NOT NULL,
    Rank NVARCHAR(16) NOT NULL DEFAULT N'user',
    GamesPlayed INT NOT NULL DEFAULT 0,
    TotalWagered FLOAT NOT NULL DEFAULT 0,
    TotalWon FLOAT NOT NULL DEFAULT 0,
    TotalLost FLOAT NOT NULL DEFAULT 0,
    IsActive BIT NOT NULL DEFAULT 1,
    AdminPermissions NVARCHAR(200) NOT NULL DEFAULT N'',
    CreatedAt DATETIMEOFFSET NOT NULL,
    LastLogin DATETIMEOFFSET NULL
);
IF OBJECT_ID(N'dbo.Games', N'U') IS NULL
CREATE TABLE dbo.Games (
    IdGame BIGINT IDENTITY PRIMARY KEY,
    Username NVARCHAR(32) NOT NULL,
    Payload NVARCHAR(MAX) NOT NULL
);
IF OBJECT_ID(N'dbo.AdminLogs', N'U') IS NULL
CREATE TABLE dbo.AdminLogs (
    IdLog BIGINT IDENTITY PRIMARY KEY,
    AdminUser NVARCHAR(32) NOT NULL,
    Action NVARCHAR(32) NOT NULL,
    Details NVARCHAR(MAX) NOT NULL,
    CreatedAt DATETIMEOFFSET NOT NULL
);
IF OBJECT_ID(N'dbo.Sessions', N'U') IS NULL
CREATE TABLE dbo.Sessions (
    Token NVARCHAR(64) NOT NULL PRIMARY KEY,
    Username NVARCHAR(32) NOT NULL
);
"""

USER_COLUMNS = (
    "Username, PasswordHash, Balance, Rank, GamesPlayed, TotalWagered, TotalWon, "
    "TotalLost, IsActive, AdminPermissions, CreatedAt, LastLogin"
)

# Account field -> Users column, for update_account.
COLUMN_FOR = {
    "password_hash": "PasswordHash",
    "balance": "Balance",
    "rank": "Rank",
    "is_active": "IsActive",
    "admin_permissions": "AdminPermissions",
    "last_login": "LastLogin",
}


def _account(row) -> Account:
    return Account(
        username=row[0],
        password_hash=row[1],
        balance=float(row[2]),
        rank=row[3],
        games_played=int(row[4]),
        total_wagered=float(row[5]),
        total_won=float(row[6]),
        total_lost=float(row[7]),
        is_active=bool(row[8]),
        admin_permissions=[p for p in (row[9] or "").split(",") if p],
        created_at=row[10],
        last_login=row[11],
    )


class SqlStore:
    """Same surface as MemoryStore, backed by SQL Server through pyodbc."""

    def __init__(self, dsn: Optional[str] = None):
        self.dsn = dsn

    def init_schema(self) -> None:
        with get_conn(self.dsn) as conn:
            exec_tsql(conn, SCHEMA)

    def create_account(self, account: Account) -> bool:
        sql = f"INSERT INTO dbo.Users ({USER_COLUMNS}) VALUES (?,?,?,?,?,?,?,?,?,?,?,?)"
        params = (
            account.username, account.password_hash, account.balance, account.rank,
            account.games_played, account.total_wagered, account.total_won,
            account.total_lost, account.is_active, ",".join(account.admin_permissions),
            account.created_at, account.last_login,
        )
        try:
            with get_conn(self.dsn) as conn:
                exec_tsql(conn, sql, params)
        except pyodbc.IntegrityError:
            return False
        return True

    def get_account(self, username: str) -> Optional[Account]:
        with get_conn(self.dsn) as conn:
            rows = exec_tsql(conn, f"SELECT {USER_COLUMNS} FROM dbo.Users WHERE Username=?", (username,))
        return _account(rows[0]) if rows else None

    def count_accounts(self) -> int:
        with get_conn(self.dsn) as conn:
            rows = exec_tsql(conn, "SELECT COUNT(*) FROM dbo.Users")
        return int(rows[0][0])

    def update_account(self, username: str, **fields) -> Optional[Account]:
        sets, params = [], []
        for name, value in fields.items():
            if name == "admin_permissions":
                value = ",".join(value)
            sets.append(f"{COLUMN_FOR[name]}=?")
            params.append(value)
        if sets:
            with get_conn(self.dsn) as conn:
                exec_tsql(conn, f"UPDATE dbo.Users SET {', '.join(sets)} WHERE Username=?",
                          (*params, username))
        return self.get_account(username)

    def adjust_balance(self, username: str, delta: float) -> Optional[float]:
        sql = """
UPDATE dbo.Users
SET Balance = CASE WHEN Balance + ? < 0 THEN 0 ELSE Balance + ? END
OUTPUT inserted.Balance
WHERE Username = ?;
"""
        with get_conn(self.dsn) as conn:
            rows = exec_tsql(conn, sql, (delta, delta, username))
        return float(rows[0][0]) if rows else None

    def record_stats(self, username: str, wagered: float, won: float, lost: float) -> None:
        sql = """
UPDATE dbo.Users
SET GamesPlayed = GamesPlayed + 1,
    TotalWagered = TotalWagered + ?,
    TotalWon = TotalWon + ?,
    TotalLost = TotalLost + ?
WHERE Username = ?;
"""
        with get_conn(self.dsn) as conn:
            exec_tsql(conn, sql, (wagered, won, lost, username))

    def top_accounts(self, limit: int) -> list[Account]:
        sql = f"SELECT TOP (?) {USER_COLUMNS} FROM dbo.Users ORDER BY Balance DESC"
        with get_conn(self.dsn) as conn:
            rows = exec_tsql(conn, sql, (limit,))
        return [_account(r) for r in rows]

    def add_game(self, username: str, record: dict, keep: int) -> None:
        sql = """
INSERT INTO dbo.Games (Username, Payload) VALUES (?, ?);
DELETE FROM dbo.Games
WHERE Username = ?
  AND IdGame NOT IN (SELECT TOP (?) IdGame FROM dbo.Games WHERE Username = ? ORDER BY IdGame DESC);
"""
        with get_conn(self.dsn) as conn:
            exec_tsql(conn, sql, (username, json.dumps(record), username, keep, username))

    def recent_games(self, username: str, limit: int) -> list[dict]:
        sql = "SELECT TOP (?) Payload FROM dbo.Games WHERE Username=? ORDER BY IdGame DESC"
        with get_conn(self.dsn) as conn:
            rows = exec_tsql(conn, sql, (limit, username))
        return [json.loads(r[0]) for r in rows]

    def add_admin_log(self, entry: AdminLogEntry) -> None:
        sql = "INSERT INTO dbo.AdminLogs (AdminUser, Action, Details, CreatedAt) VALUES (?,?,?,?)"
        with get_conn(self.dsn) as conn:
            exec_tsql(conn, sql, (entry.admin, entry.action, json.dumps(entry.details), entry.timestamp))

    def admin_logs(self, limit: int) -> list[AdminLogEntry]:
        sql = "SELECT TOP (?) AdminUser, Action, Details, CreatedAt FROM dbo.AdminLogs ORDER BY IdLog DESC"
        with get_conn(self.dsn) as conn:
            rows = exec_tsql(conn, sql, (limit,))
        return [AdminLogEntry(admin=r[0], action=r[1], details=json.loads(r[2]), timestamp=r[3])
                for r in rows]

    def create_session(self, token: str, username: str) -> None:
        with get_conn(self.dsn) as conn:
            exec_tsql(conn, "INSERT INTO dbo.Sessions (Token, Username) VALUES (?, ?)", (token, username))

    def session_user(self, token: str) -> Optional[str]:
        with get_conn(self.dsn) as conn:
            rows = exec_tsql(conn, "SELECT Username FROM dbo.Sessions WHERE Token=?", (token,))
        return rows[0][0] if rows else None

    def drop_session(self, token: str) -> None:
        with get_conn(self.dsn) as conn:
            exec_tsql(conn, "DELETE FROM dbo.Sessions WHERE Token=?", (token,))

    def drop_user_sessions(self, username: str) -> None:
        with get_conn(self.dsn) as conn:
            exec_tsql(conn, "DELETE FROM dbo.Sessions WHERE Username=?", (username,))
