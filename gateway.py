import logging
from typing import Any, Dict, List, NamedTuple, Optional

import pymysql

from schema import SCHEMAS, Table, columns_of, primary_key_of

log = logging.getLogger(__name__)


# =====================================================
# ERRORS
# =====================================================
class GatewayError(Exception):
    message = "Database operation failed."

    def __str__(self):
        return self.message


class QueryError(GatewayError):
    message = "Error fetching data."


class WriteError(GatewayError):
    message = "Error saving record."


class DeleteError(GatewayError):
    message = "Failed to delete record."


class NotFound(GatewayError):
    message = "Record not found."


# =====================================================
# RESULTS
# =====================================================
class ViewResult(NamedTuple):
    rows: List[Dict[str, Any]]
    primary_key: str


class WriteResult(NamedTuple):
    success: bool = True
    row_id: Optional[int] = None


# =====================================================
# CASCADE PLANS
# =====================================================
# Child rows go first so no step leaves a dangling foreign key behind.
def _movies_plan(movie_id):
    return [
        ("DELETE FROM Bookings WHERE showtime_id IN "
         "(SELECT showtime_id FROM Showtimes WHERE movie_id = %s)", (movie_id,)),
        ("DELETE FROM Showtimes WHERE movie_id = %s", (movie_id,)),
        ("DELETE FROM Movies WHERE movie_id = %s", (movie_id,)),
    ]


def _theaters_plan(theater_id):
    return [
        ("DELETE FROM Bookings WHERE showtime_id IN "
         "(SELECT showtime_id FROM Showtimes WHERE theater_id = %s)", (theater_id,)),
        ("DELETE FROM Showtimes WHERE theater_id = %s", (theater_id,)),
        ("DELETE FROM Theaters WHERE theater_id = %s", (theater_id,)),
    ]


def _showtimes_plan(showtime_id):
    return [
        ("DELETE FROM Bookings WHERE showtime_id = %s", (showtime_id,)),
        ("DELETE FROM Showtimes WHERE showtime_id = %s", (showtime_id,)),
    ]


def _bookings_plan(booking_id):
    return [
        ("DELETE FROM Bookings WHERE booking_id = %s", (booking_id,)),
    ]


CASCADE_PLANS = {
    Table.MOVIES: _movies_plan,
    Table.THEATERS: _theaters_plan,
    Table.SHOWTIMES: _showtimes_plan,
    Table.BOOKINGS: _bookings_plan,
}


def cascade_plan(table, record_id):
    """Return the ordered ``(sql, params)`` steps that delete one record."""
    plan = CASCADE_PLANS.get(Table.lookup(table))
    if plan is None:
        raise DeleteError()
    return plan(record_id)


# =====================================================
# COERCION
# =====================================================
def _coerce(value, kind, error):
    if value is None or value == "":
        return None
    try:
        return kind(value)
    except (TypeError, ValueError) as exc:
        log.warning("Could not convert %r to %s", value, kind.__name__)
        raise error() from exc


def _key(record_id, error):
    try:
        return int(record_id)
    except (TypeError, ValueError) as exc:
        log.warning("Invalid record id %r", record_id)
        raise error() from exc


# =====================================================
# GATEWAY
# =====================================================
class RecordStore:
    """CRUD over the cinema tables; ``connect`` returns a fresh connection."""

    def __init__(self, connect):
        self._connect = connect

    def _resolve(self, table, error):
        tag = Table.lookup(table)
        if tag not in SCHEMAS:
            log.warning("Rejected unknown table %r", table)
            raise error()
        return tag

    def _run(self, sql, params=(), fetch=False):
        conn = self._connect()
        try:
            with conn.cursor() as cur:
                log.debug("Executing %s %r", sql, params)
                cur.execute(sql, params)
                result = list(cur.fetchall()) if fetch else cur.lastrowid
            conn.commit()
            return result
        except pymysql.MySQLError:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _bind(self, tag, fields, error):
        return [_coerce(fields.get(c.name), c.type, error) for c in columns_of(tag)]

    def view(self, table):
        tag = self._resolve(table, QueryError)
        try:
            rows = self._run(f"SELECT * FROM {tag.value}", fetch=True)
        except pymysql.MySQLError as exc:
            log.exception("Fetching %s failed", tag.value)
            raise QueryError() from exc
        return ViewResult(rows, primary_key_of(tag))

    def add(self, table, fields):
        tag = self._resolve(table, WriteError)
        names = [c.name for c in columns_of(tag)]
        values = self._bind(tag, fields, WriteError)
        placeholders = ", ".join(["%s"] * len(names))
        sql = f"INSERT INTO {tag.value} ({', '.join(names)}) VALUES ({placeholders})"
        try:
            row_id = self._run(sql, values)
        except pymysql.MySQLError as exc:
            log.exception("Inserting into %s failed", tag.value)
            raise WriteError() from exc
        log.info("Inserted %s row %s", tag.value, row_id)
        return WriteResult(True, row_id)

    def load(self, table, record_id):
        """Fetch one row for editing; raises :class:`NotFound` if it is gone."""
        tag = self._resolve(table, QueryError)
        key = _key(record_id, NotFound)
        pk = primary_key_of(tag)
        try:
            rows = self._run(f"SELECT * FROM {tag.value} WHERE {pk} = %s", (key,), fetch=True)
        except pymysql.MySQLError as exc:
            log.exception("Fetching %s %s = %s failed", tag.value, pk, key)
            raise QueryError() from exc
        if not rows:
            raise NotFound()
        return rows[0]

    def edit(self, table, record_id, fields):
        tag = self._resolve(table, WriteError)
        key = _key(record_id, WriteError)
        pk = primary_key_of(tag)
        values = self._bind(tag, fields, WriteError)
        assignments = ", ".join(f"{c.name} = %s" for c in columns_of(tag))
        sql = f"UPDATE {tag.value} SET {assignments} WHERE {pk} = %s"
        try:
            self._run(sql, values + [key])
        except pymysql.MySQLError as exc:
            log.exception("Updating %s %s = %s failed", tag.value, pk, key)
            raise WriteError() from exc
        log.info("Updated %s row %s", tag.value, key)
        return WriteResult(True, key)

    def delete(self, table, record_id):
        """Cascade-delete in one transaction; returns the refreshed table."""
        tag = self._resolve(table, DeleteError)
        key = _key(record_id, DeleteError)
        plan = cascade_plan(tag, key)
        try:
            conn = self._connect()
        except pymysql.MySQLError as exc:
            log.exception("Could not open a connection to delete from %s", tag.value)
            raise DeleteError() from exc
        try:
            conn.begin()
            with conn.cursor() as cur:
                for sql, params in plan:
                    log.debug("Cascade step %s %r", sql, params)
                    cur.execute(sql, params)
            conn.commit()
        except pymysql.MySQLError as exc:
            log.exception("Deleting %s %s failed, rolling back", tag.value, key)
            try:
                conn.rollback()
            except pymysql.MySQLError:
                log.exception("Rollback of %s %s failed", tag.value, key)
            raise DeleteError() from exc
        finally:
            conn.close()
        log.info("Deleted %s %s with %d cascade steps", tag.value, key, len(plan))
        return self.view(tag)
