# securescan/extensions.py
from __future__ import annotations
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine

db = SQLAlchemy()


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record):
    # Child rows reference scan.id; SQLite only enforces that with the pragma on
    if "sqlite" not in type(dbapi_connection).__module__.lower():
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_extensions(app, create_tables: bool = True):
    """Bind the SQLAlchemy handle to the app and make sure the scan tables exist."""
    db.init_app(app)
    if create_tables:
        # models must be imported before create_all so the tables are registered
        from . import models  # noqa: F401

        with app.app_context():
            db.create_all()
