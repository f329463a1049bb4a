import sqlite3

import pymysql
import pytest

from app import create_app
from config import TestConfig
from gateway import RecordStore

DDL = """
CREATE TABLE Movies (
    movie_id INTEGER PRIMARY KEY,
    movie_name TEXT NOT NULL,
    genre TEXT,
    duration INTEGER
);
CREATE TABLE Theaters (
    theater_id INTEGER PRIMARY KEY,
    theater_name TEXT NOT NULL,
    location TEXT
);
CREATE TABLE Showtimes (
    showtime_id INTEGER PRIMARY KEY,
    movie_id INTEGER NOT NULL REFERENCES Movies(movie_id),
    theater_id INTEGER NOT NULL REFERENCES Theaters(theater_id),
    show_date TEXT,
    show_time TEXT
);
CREATE TABLE Bookings (
    booking_id INTEGER PRIMARY KEY,
    user_id INTEGER NOT NULL,
    showtime_id INTEGER NOT NULL REFERENCES Showtimes(showtime_id),
    seats_booked INTEGER NOT NULL
);
"""

SEED = """
INSERT INTO Movies VALUES (1, 'Inception', 'Sci-Fi', 148), (2, 'Up', 'Animation', 96);
INSERT INTO Theaters VALUES (1, 'Grand', 'Downtown'), (2, 'Plaza', 'Uptown');
INSERT INTO Showtimes VALUES
    (1, 1, 1, '2024-05-01', '18:00'),
    (2, 1, 2, '2024-05-01', '21:00'),
    (3, 2, 1, '2024-05-02', '15:00'),
    (4, 2, 2, '2024-05-02', '19:30');
INSERT INTO Bookings VALUES
    (1, 10, 1, 2),
    (2, 11, 1, 1),
    (3, 12, 2, 4),
    (4, 13, 3, 2),
    (5, 14, 4, 3);
"""

CHAIN_SEED = """
INSERT INTO Movies VALUES (1, 'Inception', 'Sci-Fi', 148);
INSERT INTO Theaters VALUES (1, 'Grand', 'Downtown');
INSERT INTO Showtimes VALUES (1, 1, 1, '2024-05-01', '18:00');
INSERT INTO Bookings VALUES (1, 10, 1, 2);
"""

PRIMARY_KEYS = {
    "Movies": "movie_id",
    "Theaters": "theater_id",
    "Showtimes": "showtime_id",
    "Bookings": "booking_id",
}


def _dict_row(cursor, row):
    return {d[0]: row[i] for i, d in enumerate(cursor.description)}


def _translate(exc):
    if isinstance(exc, sqlite3.IntegrityError):
        return pymysql.err.IntegrityError(1452, str(exc))
    return pymysql.err.OperationalError(1146, str(exc))


class SQLiteCursor:
    def __init__(self, conn):
        self._conn = conn
        self._cur = conn.raw.cursor()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self._cur.close()

    def execute(self, sql, params=()):
        db = self._conn.db
        db.statements.append(sql)
        if db.fail_on and db.fail_on in sql:
            raise pymysql.err.OperationalError(1205, "Lock wait timeout exceeded")
        try:
            self._cur.execute(sql.replace("%s", "?"), tuple(params))
        except sqlite3.Error as exc:
            raise _translate(exc) from exc
        return self._cur.rowcount

    def fetchall(self):
        return self._cur.fetchall()

    @property
    def lastrowid(self):
        return self._cur.lastrowid


class SQLiteConnection:
    """Just enough of a PyMySQL connection, backed by a SQLite file."""

    def __init__(self, db):
        self.db = db
        self.raw = sqlite3.connect(db.path, isolation_level=None)
        self.raw.row_factory = _dict_row
        self.raw.execute("PRAGMA foreign_keys = ON")

    def cursor(self):
        return SQLiteCursor(self)

    def begin(self):
        self.raw.execute("BEGIN")

    def commit(self):
        if self.raw.in_transaction:
            self.raw.execute("COMMIT")

    def rollback(self):
        if self.raw.in_transaction:
            self.raw.execute("ROLLBACK")

    def close(self):
        self.raw.close()
        self.db.open_connections -= 1


class SQLiteDatabase:
    def __init__(self, path, seed=SEED):
        self.path = str(path)
        self.fail_on = None
        self.refuse_connections = False
        self.statements = []
        self.open_connections = 0
        raw = sqlite3.connect(self.path)
        raw.executescript(DDL + seed)
        raw.close()

    def connect(self):
        if self.refuse_connections:
            raise pymysql.err.OperationalError(2003, "Can't connect to MySQL server")
        self.open_connections += 1
        return SQLiteConnection(self)

    def rows(self, table):
        raw = sqlite3.connect(self.path)
        raw.row_factory = _dict_row
        try:
            return raw.execute(f"SELECT * FROM {table} ORDER BY {PRIMARY_KEYS[table]}").fetchall()
        finally:
            raw.close()

    def ids(self, table):
        return [row[PRIMARY_KEYS[table]] for row in self.rows(table)]

    def snapshot(self):
        return {table: self.rows(table) for table in PRIMARY_KEYS}


@pytest.fixture
def database(tmp_path):
    return SQLiteDatabase(tmp_path / "cinema.db")


@pytest.fixture
def chain_database(tmp_path):
    return SQLiteDatabase(tmp_path / "chain.db", seed=CHAIN_SEED)


@pytest.fixture
def store(database):
    return RecordStore(database.connect)


@pytest.fixture
def app(store):
    return create_app(TestConfig, store=store)


@pytest.fixture
def client(app):
    return app.test_client()
