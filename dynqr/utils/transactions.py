from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..errors import InternalError
from ..extensions import db


@contextmanager
def atomic(action: str):
    """Run a block as one all-or-nothing unit of work.

    Blocks nest: only the outermost one commits or rolls back, so a service
    composed of other services (create URL = increment usage + insert row)
    still commits exactly once. Database faults roll back and surface as
    InternalError; anything else rolls back and propagates unchanged.
    """
    session = db.session()
    depth = session.info.get("atomic_depth", 0)
    session.info["atomic_depth"] = depth + 1
    try:
        yield session
        if depth == 0:
            session.commit()
    except SQLAlchemyError as exc:
        if depth == 0:
            session.rollback()
        current_app.logger.error(f"{action} failed: {exc}")
        raise InternalError(f"{action} failed") from exc
    except Exception:
        if depth == 0:
            session.rollback()
        raise
    finally:
        session.info["atomic_depth"] = depth
