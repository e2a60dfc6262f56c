"""Error taxonomy of the scheduling engine.

Every error carries the HTTP status the routes answer with, a stable ``code``
for clients, a human readable ``message`` and optional ``details``.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException


class SchedulingError(Exception):
    status_code = 400
    code = 'SCHEDULING_ERROR'
    log_level = logging.WARNING

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_http_exception(self) -> HTTPException:
        detail = {'code': self.code, 'message': self.message}
        detail.update(self.details)
        return HTTPException(status_code=self.status_code, detail=detail)


class ValidationError(SchedulingError):
    """Malformed input: bad time ordering, missing fields, out-of-range values."""
    status_code = 400
    code = 'VALIDATION_ERROR'


class NotFoundError(SchedulingError):
    status_code = 404
    code = 'NOT_FOUND'
    log_level = logging.INFO


class PermissionDeniedError(SchedulingError):
    """The actor is not a participant or lacks the role a transition needs."""
    status_code = 403
    code = 'PERMISSION_DENIED'


class ConflictError(SchedulingError):
    """The candidate interval overlaps a blocking appointment of ``party``."""
    status_code = 409
    code = 'SCHEDULING_CONFLICT'

    def __init__(self, party: str, conflicting_ids: list[int] | None = None) -> None:
        self.party = party
        self.conflicting_ids = list(conflicting_ids or [])
        super().__init__(
            f'{party.capitalize()} has a conflicting appointment at this time',
            details={'party': party, 'conflicting_appointment_ids': self.conflicting_ids},
        )


class StateError(SchedulingError):
    """The requested change is illegal for the appointment's current status."""
    status_code = 409
    code = 'INVALID_STATE'
