# Overview: Flask extension instances for database and migrations.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()


def enable_sqlite_wal(dbapi_connection, connection_record):
    """
    Engine "connect" hook: put file-backed SQLite databases in WAL mode.

    WAL lets a reader hold one snapshot open while writers commit.
    In-memory databases ignore the pragma.
    """
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA journal_mode=WAL")
    finally:
        cursor.close()
