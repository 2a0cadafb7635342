"""Database utilities for the loan XIRR service.

``init_db`` builds the engine for the configured ``DATABASE_URI``, creates
the ``loans`` and ``loan_transactions`` tables if they are missing and
returns a scoped session factory. For SQLite file databases the parent
directory is created first.

Session lifecycle: the Flask app calls ``Session()`` inside each request
and removes the thread-local session in its ``teardown_appcontext`` hook,
so every request starts from an empty identity map. The factory is built
with ``expire_on_commit=False`` because a request commits a transaction
change, then keeps using the same objects to build its JSON response and
to fire the recalculation trigger. ``SqlRateSink`` refreshes the loan
itself after its versioned UPDATE, so stale loan attributes never leak
into a response.
"""

from __future__ import annotations

import os
from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker

from .models import Base


def init_db(database_uri: str):
    """Initialise the database engine and session factory.

    Parameters
    ----------
    database_uri: str
        The SQLAlchemy database URI, e.g. ``sqlite:///data/app.db``.

    Returns
    -------
    engine: sqlalchemy.engine.Engine
        The configured database engine. Callers that create throwaway
        databases (tests, scripts) should ``dispose()`` it when done.
    Session: sqlalchemy.orm.scoped_session
        A thread-local session factory bound to the engine.
    """
    if database_uri.startswith("sqlite:///"):
        db_dir = os.path.dirname(database_uri[len("sqlite:///"):])
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

    engine = create_engine(database_uri)
    Base.metadata.create_all(bind=engine)
    Session = scoped_session(sessionmaker(bind=engine, expire_on_commit=False))
    return engine, Session
