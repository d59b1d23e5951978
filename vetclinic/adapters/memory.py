import asyncio
import datetime as dt
from collections.abc import Iterable

from vetclinic.adapters.datetime_helpers import to_minutes
from vetclinic.domain.exceptions import DuplicateSlotError, StoreError
from vetclinic.domain.models import Appointment, Communication, Contact, ServiceInfo, WorkWindow


class InMemoryAppointmentStore:
    """Dict-backed AppointmentStore.

    ``insert`` enforces the slot key the way a unique index would, and also
    refuses any interval that overlaps a non-cancelled appointment of the same
    veterinarian and day.
    """

    def __init__(self, appointments: Iterable[Appointment] = ()) -> None:
        self._items: dict[str, Appointment] = {a.appointment_id: a for a in appointments}
        self._lock = asyncio.Lock()

    async def insert(self, appointment: Appointment) -> Appointment:
        async with self._lock:
            if appointment.appointment_id in self._items:
                raise StoreError(f"Appointment id already exists: {appointment.appointment_id}")
            start = to_minutes(appointment.start_time)
            end = start + appointment.duration_minutes
            for other in self._same_day(appointment.veterinarian_id, appointment.date):
                if other.overlaps(start, end):
                    raise DuplicateSlotError(
                        f"Slot {appointment.date} {appointment.start_time} taken by {other.appointment_id}"
                    )
            self._items[appointment.appointment_id] = appointment
            return appointment

    async def find_by_id(self, appointment_id: str) -> Appointment | None:
        return self._items.get(appointment_id)

    async def find_by_veterinarian_and_date(
        self, veterinarian_id: str, date: dt.date
    ) -> list[Appointment]:
        return sorted(
            (a for a in self._items.values() if a.veterinarian_id == veterinarian_id and a.date == date),
            key=lambda a: a.start_time,
        )

    async def compare_and_swap_state(self, appointment: Appointment, expected_version: int) -> bool:
        async with self._lock:
            current = self._items.get(appointment.appointment_id)
            if current is None or current.version != expected_version:
                return False
            self._items[appointment.appointment_id] = appointment
            return True

    def all(self) -> list[Appointment]:
        return list(self._items.values())

    def _same_day(self, veterinarian_id: str, date: dt.date) -> list[Appointment]:
        return [
            a
            for a in self._items.values()
            if a.veterinarian_id == veterinarian_id and a.date == date and a.is_active
        ]


class InMemoryWorkWindowStore:
    def __init__(self, windows: Iterable[WorkWindow] = ()) -> None:
        self._windows: list[WorkWindow] = list(windows)

    def add(self, window: WorkWindow) -> None:
        self._windows.append(window)

    async def find_active_by_veterinarian_and_weekday(
        self, veterinarian_id: str, weekday: int
    ) -> list[WorkWindow]:
        return [
            w
            for w in self._windows
            if w.veterinarian_id == veterinarian_id and w.weekday == weekday and w.active
        ]


class InMemoryCommunicationStore:
    def __init__(self) -> None:
        self._items: dict[str, Communication] = {}

    async def insert(self, communication: Communication) -> Communication:
        if communication.communication_id in self._items:
            raise StoreError(f"Communication id already exists: {communication.communication_id}")
        self._items[communication.communication_id] = communication
        return communication

    async def update(self, communication: Communication) -> Communication:
        if communication.communication_id not in self._items:
            raise StoreError(f"Unknown communication: {communication.communication_id}")
        self._items[communication.communication_id] = communication
        return communication

    async def find_by_id(self, communication_id: str) -> Communication | None:
        return self._items.get(communication_id)

    async def find_due(self, now: dt.datetime) -> list[Communication]:
        due = [c for c in self._items.values() if c.can_retry and c.is_due(now)]
        return sorted(due, key=lambda c: c.scheduled_send_time or c.created_at)

    async def find_by_appointment(self, appointment_id: str) -> list[Communication]:
        return [c for c in self._items.values() if c.appointment_id == appointment_id]

    async def find_exhausted(self) -> list[Communication]:
        return [c for c in self._items.values() if c.is_exhausted]

    def all(self) -> list[Communication]:
        return list(self._items.values())


class InMemoryVeterinarianDirectory:
    def __init__(self, active: dict[str, bool] | None = None) -> None:
        self.active: dict[str, bool] = dict(active or {})

    async def is_active(self, veterinarian_id: str) -> bool:
        return self.active.get(veterinarian_id, False)


class InMemoryServiceCatalog:
    def __init__(self, services: Iterable[ServiceInfo] = ()) -> None:
        self.services: dict[str, ServiceInfo] = {s.service_id: s for s in services}

    async def get(self, service_id: str) -> ServiceInfo | None:
        return self.services.get(service_id)


class InMemoryPetDirectory:
    def __init__(self, contacts: dict[str, Contact] | None = None) -> None:
        self.contacts: dict[str, Contact] = dict(contacts or {})

    async def get_contact(self, pet_id: str) -> Contact | None:
        return self.contacts.get(pet_id)
