"""Session helpers that need to know which database backend is in use."""

from sqlalchemy.exc import UnboundExecutionError
from sqlalchemy.orm import Session


def get_dialect_name(session: Session, default: str = "sqlite") -> str:
    """
    Name of the dialect the session is bound to ("postgresql", "sqlite").

    Repositories branch on this for upserts and ``SKIP LOCKED``.
    """
    try:
        bind = session.get_bind()
    except UnboundExecutionError:
        return default
    return getattr(getattr(bind, "dialect", None), "name", None) or default
