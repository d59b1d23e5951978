import datetime as dt
from collections import defaultdict, deque

from loguru import logger
from pydantic import BaseModel, ConfigDict

from vetclinic.domain.models import Communication
from vetclinic.scheduling.events import AppointmentCreated, AppointmentEvent, AppointmentStateChanged

DEFAULT_CAPACITY = 50


class AuditEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    entity_id: str
    kind: str
    detail: str
    recorded_at: dt.datetime


class AuditSink:
    """Bounded audit trail per entity id.

    Each entity keeps at most ``capacity`` entries; the oldest are dropped
    first. Durable audit storage belongs to an external collaborator.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._trails: defaultdict[str, deque[AuditEntry]] = defaultdict(
            lambda: deque(maxlen=self._capacity)
        )

    def record(self, entity_id: str, kind: str, detail: str, at: dt.datetime) -> AuditEntry:
        entry = AuditEntry(entity_id=entity_id, kind=kind, detail=detail, recorded_at=at)
        self._trails[entity_id].append(entry)
        logger.debug("Audit {}: {} ({})", entity_id, kind, detail)
        return entry

    async def handle_event(self, event: AppointmentEvent) -> None:
        appointment = event.appointment
        if isinstance(event, AppointmentCreated):
            self.record(
                appointment.appointment_id,
                "appointment_created",
                f"vet={appointment.veterinarian_id} {appointment.date} {appointment.start_time}",
                event.occurred_at,
            )
        elif isinstance(event, AppointmentStateChanged):
            self.record(
                appointment.appointment_id,
                "appointment_state_changed",
                f"{event.from_state.value} -> {event.to_state.value}",
                event.occurred_at,
            )

    def record_delivery_exhausted(self, communication: Communication, at: dt.datetime) -> AuditEntry:
        return self.record(
            communication.communication_id,
            "delivery_exhausted",
            f"{communication.attempt_count} attempt(s), last error: {communication.last_error}",
            at,
        )

    def trail(self, entity_id: str) -> list[AuditEntry]:
        return list(self._trails.get(entity_id, ()))
