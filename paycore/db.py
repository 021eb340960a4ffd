from contextlib import contextmanager
from typing import Optional

import psycopg
from psycopg.rows import dict_row

from .settings import DATABASE_URL


@contextmanager
def get_conn(database_url: str = DATABASE_URL, read_only: bool = False):
    conn = psycopg.connect(database_url, row_factory=dict_row)
    conn.read_only = read_only
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def fetch_one(query: str, params: tuple, database_url: str = DATABASE_URL) -> Optional[dict]:
    with get_conn(database_url, read_only=True) as conn:
        return conn.execute(query, params).fetchone()
