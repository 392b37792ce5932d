# import
## batteries
import re
import sqlite3
import hashlib
import logging
from contextlib import closing
from itertools import islice
from typing import Any, Dict, Iterable, List, Optional, Sequence
## 3rd party
import pandas as pd
from pypika import Query, Table, functions as fn
from psycopg2.extras import execute_values

logger = logging.getLogger(__name__)

BATCH_SIZE = 1000

# functions
def is_sqlite(conn) -> bool:
    return isinstance(conn, sqlite3.Connection)

def execute_query(stmt, conn) -> Optional[List[tuple]]:
    """
    Execute pypika statement (or sql text), return rows if it is a select
    """
    with closing(conn.cursor()) as cur:
        cur.execute(str(stmt))
        if cur.description is None:
            return None
        return cur.fetchall()

def read_records(stmt, conn) -> List[Dict[str, Any]]:
    """
    Run select statement, return rows as list of dicts
    """
    df = pd.read_sql(str(stmt), conn)
    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict(orient='records')

def iter_rows(stmt, conn) -> Iterable[tuple]:
    """
    Run select statement, yield rows from the cursor
    """
    with closing(conn.cursor()) as cur:
        cur.execute(str(stmt))
        for row in cur:
            yield row

def insert_rows(conn, table_name: str, columns: Sequence[str], rows: Iterable[Sequence[Any]]) -> int:
    """
    Insert rows in batches.

    Args:
        conn: sqlite3 or psycopg2 connection
        table_name: Target table
        columns: Column names
        rows: Row values in column order
    Returns:
        Number of rows inserted
    """
    cols = ', '.join(f'"{c}"' for c in columns)
    if is_sqlite(conn):
        insert_stmt = f'INSERT INTO "{table_name}" ({cols}) VALUES ({", ".join(["?"] * len(columns))})'
    else:
        insert_stmt = f'INSERT INTO "{table_name}" ({cols}) VALUES %s'

    n = 0
    it = iter(rows)
    with closing(conn.cursor()) as cur:
        while True:
            batch = [tuple(r) for r in islice(it, BATCH_SIZE)]
            if not batch:
                break
            if is_sqlite(conn):
                cur.executemany(insert_stmt, batch)
            else:
                execute_values(cur, insert_stmt, batch)
            n += len(batch)
    logger.debug(f"Inserted {n} rows into {table_name}")
    return n

def next_id(conn, table_name: str, column: str) -> int:
    """max(column) + 1, or 1 for empty table"""
    tbl = Table(table_name)
    stmt = Query.from_(tbl).select(fn.Max(tbl.field(column)))
    rows = execute_query(stmt, conn)
    if not rows or rows[0][0] is None:
        return 1
    return int(rows[0][0]) + 1

def sql_name(name: str, model_digest: str, suffix: str) -> str:
    """
    Value table name: name prefix, safe for sql, unique by model digest
    """
    prefix = re.sub(r'\W', '_', name)[:32]
    h = hashlib.md5(f"{model_digest}:{name}:{suffix}".encode('utf-8')).hexdigest()[:8]
    return f"{prefix}_{suffix}_{h}"
