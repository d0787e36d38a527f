"""
Injectable time source for the advance lifecycle.

Every timestamp the service writes -- ``created_at``, ``updated_at``,
``ApprovalStep.acted_at``, ``RetirementSummary.submitted_at`` and audit
``at`` -- comes from a ``Clock`` passed to the service, never from the
wall clock directly.  The exposure calculator takes its ``as_of`` date from
the same source when the caller supplies none.
"""

from abc import ABC, abstractmethod
from datetime import UTC, date, datetime, timedelta

# Start of the deterministic timeline when no instant is given
DEFAULT_TEST_INSTANT = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


class Clock(ABC):
    """Source of timezone-aware instants."""

    @abstractmethod
    def now(self) -> datetime: ...

    def today(self) -> date:
        """Calendar date of ``now()`` in the clock's own timezone."""
        return self.now().date()


class SystemClock(Clock):
    """Wall-clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """
    Manually driven clock for tests and replays.

    Time stands still until ``advance()`` moves it, so two
    operations run back to back share one timestamp unless the test says
    otherwise.
    """

    def __init__(self, start: datetime | None = None):
        if start is not None and start.tzinfo is None:
            raise ValueError("DeterministicClock requires a timezone-aware start")
        self._current = start or DEFAULT_TEST_INSTANT

    def now(self) -> datetime:
        return self._current

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)
