from datetime import date, datetime


class Clock:
    """Source of "now" for every scheduling decision.

    Times are naive local datetimes, matching the values stored in the
    appointment and availability tables.
    """

    def now(self) -> datetime:
        return datetime.now().replace(microsecond=0)

    def today(self) -> date:
        return self.now().date()


class FixedClock(Clock):
    def __init__(self, frozen: datetime):
        self._frozen = frozen

    def now(self) -> datetime:
        return self._frozen

    def advance_to(self, moment: datetime) -> None:
        self._frozen = moment


default_clock = Clock()


def get_clock() -> Clock:
    return default_clock
