import asyncio
import datetime as dt
import itertools

from vetclinic.adapters.memory import InMemoryAppointmentStore
from vetclinic.domain.models import Appointment, Communication


class FakeNotificationSender:
    """In-memory test double for the NotificationSender protocol.

    Queue exceptions in ``failures`` to make the next sends raise them in
    order; set ``send_error`` to make every send raise. ``delay`` makes each
    send sleep first, which is useful for exercising timeouts.

    After calls, inspect ``sent`` to verify what was delivered.
    """

    def __init__(self) -> None:
        self.sent: list[Communication] = []
        self.failures: list[Exception] = []
        self.send_error: Exception | None = None
        self.delay: float = 0.0
        self.calls: int = 0
        self.closed: bool = False
        self._ids = itertools.count(1)

    async def send(self, communication: Communication) -> str:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures:
            raise self.failures.pop(0)
        if self.send_error:
            raise self.send_error
        self.sent.append(communication)
        return f"ext-{next(self._ids)}"

    async def close(self) -> None:
        self.closed = True


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, now: dt.datetime) -> None:
        if now.tzinfo is None:
            raise ValueError("FakeClock needs a timezone-aware datetime")
        self._now = now

    def now(self) -> dt.datetime:
        return self._now

    def set(self, now: dt.datetime) -> None:
        self._now = now

    def advance(self, **delta: float) -> dt.datetime:
        self._now += dt.timedelta(**delta)
        return self._now


class FlakyAppointmentStore(InMemoryAppointmentStore):
    """InMemoryAppointmentStore with injectable failures.

    - ``insert_error`` / ``find_error`` are raised by the matching call.
    - ``cas_conflicts`` makes that many compare-and-swaps report a conflict.
    - ``read_delay`` sleeps after ``find_by_veterinarian_and_date`` has read,
      so concurrent bookings interleave between the availability check and insert.
    """

    def __init__(self) -> None:
        super().__init__()
        self.insert_error: Exception | None = None
        self.find_error: Exception | None = None
        self.cas_conflicts: int = 0
        self.read_delay: float = 0.0
        self.cas_calls: int = 0

    async def insert(self, appointment: Appointment) -> Appointment:
        if self.insert_error:
            raise self.insert_error
        return await super().insert(appointment)

    async def find_by_id(self, appointment_id: str) -> Appointment | None:
        if self.find_error:
            raise self.find_error
        return await super().find_by_id(appointment_id)

    async def find_by_veterinarian_and_date(
        self, veterinarian_id: str, date: dt.date
    ) -> list[Appointment]:
        booked = await super().find_by_veterinarian_and_date(veterinarian_id, date)
        if self.read_delay:
            await asyncio.sleep(self.read_delay)
        return booked

    async def compare_and_swap_state(self, appointment: Appointment, expected_version: int) -> bool:
        self.cas_calls += 1
        if self.cas_conflicts > 0:
            self.cas_conflicts -= 1
            return False
        return await super().compare_and_swap_state(appointment, expected_version)
