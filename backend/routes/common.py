import logging
from contextlib import contextmanager

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.database import ensure_schema
from backend.models.enums import UserRole
from backend.models.user import User
from backend.scheduling.errors import SchedulingError

logger = logging.getLogger(__name__)

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'


def ensure_database_ready() -> None:
    try:
        ensure_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


def require_lecturer(user: User) -> None:
    if user.role != UserRole.LECTURER:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only lecturers can manage availability.',
        )


@contextmanager
def scheduling_errors(db: Session):
    """Translate engine and database failures raised in the block into HTTP errors."""
    try:
        yield
    except SchedulingError as exc:
        db.rollback()
        logger.log(exc.log_level, '%s: %s', exc.code, exc.message)
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Database error while handling scheduling request')
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc
