# db.py
# Role: Database bootstrap for the Budgetly backend.
#       Defines the SQLAlchemy engine, session factory, and declarative Base.
#       For SQLite it also ensures the on-disk directory exists and turns on
#       foreign key enforcement so cascades behave like PostgreSQL.

"""
Database setup for Budgetly.

- Uses DATABASE_URL from config (PostgreSQL in production, SQLite by default).
- "sqlite://" gives a single shared in-memory database (used by the tests).
"""

import os

from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

import config

DATABASE_URL = config.DATABASE_URL

_url = make_url(DATABASE_URL)
_is_sqlite = _url.get_backend_name() == "sqlite"

engine_kwargs = {"pool_pre_ping": True}

if _is_sqlite:
    # FastAPI handles requests in a threadpool
    engine_kwargs["connect_args"] = {"check_same_thread": False}

    if _url.database in (None, "", ":memory:"):
        # One connection, otherwise every checkout sees an empty database
        engine_kwargs["poolclass"] = StaticPool
    else:
        db_dir = os.path.dirname(os.path.abspath(_url.database))
        os.makedirs(db_dir, exist_ok=True)

engine = create_engine(DATABASE_URL, **engine_kwargs)


if _is_sqlite:

    @event.listens_for(engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Standard session factory used via dependency injection (see budgetly/deps.py:get_db)
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

# Declarative base class for ORM models
Base = declarative_base()
