# import
## batteries
import sqlite3
import warnings
from typing import Optional, Union
## 3rd party
import psycopg2
from psycopg2.extensions import connection
## package
from dbcopy.config import settings

# Suppress the specific warning
warnings.filterwarnings("ignore", message="pandas only supports SQLAlchemy connectable")

SQLITE = "sqlite"
POSTGRES = "postgres"

# functions
def db_connect(driver: Optional[str] = None, path: Optional[str] = None) -> Union[connection, sqlite3.Connection]:
    """
    Connect to the model database

    Args:
        driver: sqlite or postgres, default from DB_DRIVER
        path: sqlite database file, default from DB_PATH
    """
    driver = (driver or settings.DB_DRIVER or SQLITE).lower()
    if driver in (SQLITE, "sqlite3"):
        db_path = path or settings.DB_PATH
        if not db_path:
            raise ValueError("sqlite database path required, use --database or DB_PATH")
        return sqlite3.connect(db_path)

    if driver in (POSTGRES, "postgresql", "psycopg2"):
        db_params = {
            'host': settings.DB_HOST,
            'database': settings.DB_NAME,
            'user': settings.DB_USER,
            'password': settings.DB_PASSWORD,
            'port': settings.DB_PORT,
            'sslmode': 'disable',
            'connect_timeout': settings.DB_TIMEOUT
        }
        return psycopg2.connect(**db_params)

    raise ValueError(f"invalid database driver: {driver}")

# main
if __name__ == '__main__':
    from dotenv import load_dotenv
    load_dotenv(override=True)

    conn = db_connect()
    print(conn)
    print("Connection established successfully.")
    conn.close()
