from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import PersistenceError
from app.db import SessionLocal


@contextmanager
def session_scope(session_factory: Callable[[], Session] | None = None) -> Iterator[Session]:
    """Yield a session committed on success and rolled back on any failure.

    Database failures, including those raised on commit, surface as
    :class:`PersistenceError`.
    """

    session = (session_factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        raise PersistenceError(str(exc)) from exc
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
