import pyodbc
from contextlib import contextmanager

from deps.config import DB_DSN


@contextmanager
def get_conn(dsn: str | None = None):
    conn = pyodbc.connect(dsn or DB_DSN, autocommit=False)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def exec_tsql(conn, sql: str, params: tuple = ()):
    cur = conn.cursor()
    cur.execute(sql, params)
    try:
        rows = cur.fetchall()
    except pyodbc.ProgrammingError:
        rows = []
    return rows
