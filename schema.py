from enum import Enum
from typing import NamedTuple, Tuple


class Table(Enum):
    MOVIES = "Movies"
    THEATERS = "Theaters"
    SHOWTIMES = "Showtimes"
    BOOKINGS = "Bookings"
    UNKNOWN = None

    @classmethod
    def lookup(cls, name):
        """Map a caller-supplied table name onto the closed set of tables."""
        if isinstance(name, cls):
            return name
        for table in cls:
            if table.value is not None and table.value == name:
                return table
        return cls.UNKNOWN


class Column(NamedTuple):
    name: str
    type: type = str


class TableSchema(NamedTuple):
    primary_key: str
    columns: Tuple[Column, ...]


# =====================================================
# REGISTRY
# =====================================================
SCHEMAS = {
    Table.MOVIES: TableSchema("movie_id", (
        Column("movie_name"),
        Column("genre"),
        Column("duration", int),
    )),
    Table.THEATERS: TableSchema("theater_id", (
        Column("theater_name"),
        Column("location"),
    )),
    Table.SHOWTIMES: TableSchema("showtime_id", (
        Column("movie_id", int),
        Column("theater_id", int),
        Column("show_date"),
        Column("show_time"),
    )),
    Table.BOOKINGS: TableSchema("booking_id", (
        Column("user_id", int),
        Column("showtime_id", int),
        Column("seats_booked", int),
    )),
}

TABLE_NAMES = [t.value for t in SCHEMAS]

FALLBACK_PRIMARY_KEY = "id"


def primary_key_of(table):
    schema = SCHEMAS.get(Table.lookup(table))
    return schema.primary_key if schema else FALLBACK_PRIMARY_KEY


def columns_of(table):
    schema = SCHEMAS.get(Table.lookup(table))
    return schema.columns if schema else ()


def writable_columns_of(table):
    return tuple(c.name for c in columns_of(table))
