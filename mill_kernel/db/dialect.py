"""
Module: mill_kernel.db.dialect
Responsibility: Dialect-specific statement constructors.  Upserts
    (INSERT ... ON CONFLICT) are spelled the same on PostgreSQL and SQLite but
    live in different SQLAlchemy dialect modules; services ask this module
    for the right one.
Architecture position: Kernel > DB.
"""

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def dialect_name(session: Session) -> str:
    return session.get_bind().dialect.name


def upsert_insert(session: Session, table):
    """
    Return an ``Insert`` supporting ``on_conflict_do_*`` for the session's dialect.

    Raises:
        NotImplementedError: For dialects without ON CONFLICT support.
    """
    name = dialect_name(session)
    try:
        factory = _INSERTS[name]
    except KeyError:
        raise NotImplementedError(f"Upserts are not supported on dialect '{name}'") from None
    return factory(table)
