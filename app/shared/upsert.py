"""Dialect-aware INSERT ... ON CONFLICT helpers.

Postgres and SQLite share the ``on_conflict_do_update`` / ``on_conflict_do_nothing``
API, so services build statements through :func:`insert_for` and stay
portable between production and the test database.
"""

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def insert_for(db: AsyncSession, model):
    """Return an ``INSERT`` construct for ``model`` that supports ON CONFLICT."""
    dialect = db.get_bind().dialect.name
    try:
        return _INSERTS[dialect](model)
    except KeyError:
        raise NotImplementedError(f"Upserts are not supported on {dialect}") from None
