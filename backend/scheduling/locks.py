"""Participant-scoped serialization for check-then-act booking sequences.

Booking, rescheduling and recurrence expansion read a participant's blocking
appointments, decide there is no overlap and then write. Two such sequences
for the same student or lecturer must not interleave, so they run inside
``participant_lock``:

* one in-process ``Lock`` per participant id, always taken in ascending id
  order, and
* ``SELECT ... FOR UPDATE`` on the participants' user rows so separate worker
  processes serialize as well on databases that honour row locks.

Callers commit before leaving the block; an exception escaping it rolls the
session back while the locks are still held. The in-process locks are not
re-entrant; code running inside the block must not take them again.

The registry keeps one lock per participant id that ever booked, so it is
bounded by the number of users.
"""

import logging
from contextlib import contextmanager
from threading import Lock

from sqlalchemy.orm import Session

from backend.models.user import User

logger = logging.getLogger(__name__)

_registry_lock = Lock()
_participant_locks: dict[int, Lock] = {}


def _lock_for(participant_id: int) -> Lock:
    with _registry_lock:
        lock = _participant_locks.get(participant_id)
        if lock is None:
            lock = Lock()
            _participant_locks[participant_id] = lock
        return lock


@contextmanager
def participant_lock(db: Session, *participant_ids: int):
    ordered_ids = sorted({participant_id for participant_id in participant_ids if participant_id is not None})
    held: list[Lock] = []
    try:
        for participant_id in ordered_ids:
            lock = _lock_for(participant_id)
            lock.acquire()
            held.append(lock)

        db.query(User).filter(User.id.in_(ordered_ids)).order_by(User.id).with_for_update().all()
        logger.debug('Acquired participant lock for %s', ordered_ids)
        yield
    except Exception:
        db.rollback()
        raise
    finally:
        for lock in reversed(held):
            lock.release()
