import logging
from datetime import datetime

import pymysql
from flask import Blueprint, Flask, abort, current_app, render_template, request

from config import Config
from gateway import DeleteError, NotFound, QueryError, RecordStore, WriteError
from schema import TABLE_NAMES, Table, primary_key_of, writable_columns_of

console = Blueprint("console", __name__)


# =====================================================
# DATABASE CONNECTION
# =====================================================
def connect_db(config):
    conn = pymysql.connect(
        host=config['DB_HOST'],
        user=config['DB_USER'],
        password=config['DB_PASS'],
        database=config['DB_NAME'],
        port=config['DB_PORT'],
        cursorclass=pymysql.cursors.DictCursor,
        autocommit=False,
        init_command="SET SESSION TRANSACTION ISOLATION LEVEL READ COMMITTED",
    )
    conn.ping(reconnect=True)
    return conn


def get_store():
    return current_app.extensions["record_store"]


def require_table(table):
    if Table.lookup(table) is Table.UNKNOWN:
        abort(404)


def render_index(table=None, rows=None, pk=None, error=None):
    return render_template("index.html", tables=TABLE_NAMES, table=table, data=rows, pk=pk, error=error)


def render_form(template, table, record, message=None, error=None, status=200):
    return render_template(
        template,
        table=table,
        columns=writable_columns_of(table),
        pk=primary_key_of(table),
        record=record,
        message=message,
        error=error,
    ), status


# =====================================================
# TABLE VIEW
# =====================================================
@console.route("/")
def index():
    return render_index()


@console.post("/view")
def view_table():
    table = request.form.get("table", "")
    try:
        result = get_store().view(table)
    except QueryError:
        return render_index(error="Error fetching data.")
    return render_index(table=table, rows=result.rows, pk=result.primary_key)


# =====================================================
# ADD
# =====================================================
@console.get("/add/<table>")
def add_form(table):
    require_table(table)
    return render_form("add.html", table, record={})


@console.post("/add/<table>")
def add_record(table):
    fields = request.form.to_dict()
    try:
        get_store().add(table, fields)
    except WriteError:
        return render_form("add.html", table, record=fields, error="Error adding record.")
    return render_form("add.html", table, record={}, message="Record added successfully!")


# =====================================================
# EDIT
# =====================================================
@console.get("/edit/<table>/<record_id>")
def edit_form(table, record_id):
    require_table(table)
    try:
        record = get_store().load(table, record_id)
    except NotFound:
        return render_form("edit.html", table, record=None, error="Record not found.", status=404)
    except QueryError:
        return render_form("edit.html", table, record=None, error="Error fetching record.")
    return render_form("edit.html", table, record=record)


@console.post("/edit/<table>/<record_id>")
def edit_record(table, record_id):
    fields = request.form.to_dict()
    try:
        get_store().edit(table, record_id, fields)
    except WriteError:
        return render_form("edit.html", table, record=fields, error="Error updating record.")
    return render_form("edit.html", table, record=fields, message="Record updated successfully!")


# =====================================================
# DELETE (cascading)
# =====================================================
@console.post("/delete/<table>/<record_id>")
def delete_record(table, record_id):
    try:
        result = get_store().delete(table, record_id)
    except (DeleteError, QueryError):
        return render_index(error="Failed to delete record.")
    return render_index(table=table, rows=result.rows, pk=result.primary_key)


@console.get("/health")
def health():
    return {"ok": True}


# =====================================================
# GLOBAL CONTEXT & ERRORS
# =====================================================
@console.app_context_processor
def inject_globals():
    return {"current_year": datetime.now().year}


@console.app_errorhandler(404)
def not_found_error(error):
    return render_template("errors.html", error_code=404, error_message=str(error)), 404


@console.app_errorhandler(500)
def internal_error(error):
    current_app.logger.error("Unhandled error: %s", error)
    return render_template("errors.html", error_code=500, error_message="Internal server error."), 500


# =====================================================
# APP INITIALIZATION
# =====================================================
def create_app(config_object=Config, store=None):
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.secret_key = app.config['SECRET_KEY']
    logging.basicConfig(level=app.config['LOG_LEVEL'])
    app.logger.setLevel(app.config['LOG_LEVEL'])

    if store is None:
        store = RecordStore(lambda: connect_db(app.config))
    app.extensions["record_store"] = store

    app.register_blueprint(console)
    return app


# =====================================================
# MAIN
# =====================================================
if __name__ == "__main__":
    create_app().run(debug=True)
