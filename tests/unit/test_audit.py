import datetime as dt

import pytest

from vetclinic.audit import AuditSink
from vetclinic.domain.models import Appointment, AppointmentState, Channel, Communication, CommunicationType
from vetclinic.scheduling.events import AppointmentCreated, AppointmentStateChanged

AT = dt.datetime(2026, 3, 16, 8, 0, tzinfo=dt.timezone.utc)


def _appointment(state: AppointmentState = AppointmentState.SCHEDULED) -> Appointment:
    return Appointment(
        appointment_id="a-1",
        pet_id="pet-1",
        veterinarian_id="vet-1",
        service_id="consult",
        date=dt.date(2026, 3, 23),
        start_time=dt.time(9, 0),
        duration_minutes=30,
        state=state,
        created_at=AT,
    )


class TestAuditSink:
    @pytest.mark.asyncio
    async def test_records_lifecycle_events(self) -> None:
        sink = AuditSink()

        await sink.handle_event(AppointmentCreated(appointment=_appointment(), occurred_at=AT))
        await sink.handle_event(
            AppointmentStateChanged(
                appointment=_appointment(AppointmentState.CONFIRMED),
                from_state=AppointmentState.SCHEDULED,
                to_state=AppointmentState.CONFIRMED,
                occurred_at=AT,
            )
        )

        trail = sink.trail("a-1")
        assert [e.kind for e in trail] == ["appointment_created", "appointment_state_changed"]
        assert trail[0].detail == "vet=vet-1 2026-03-23 09:00:00"
        assert trail[1].detail == "scheduled -> confirmed"

    def test_keeps_only_latest_entries(self) -> None:
        sink = AuditSink(capacity=2)

        for n in range(3):
            sink.record("a-1", "note", f"entry {n}", AT)

        assert [e.detail for e in sink.trail("a-1")] == ["entry 1", "entry 2"]

    def test_records_exhausted_delivery(self) -> None:
        sink = AuditSink()
        communication = Communication(
            communication_id="c-1",
            type=CommunicationType.REMINDER,
            channel=Channel.EMAIL,
            recipient="ana@example.com",
            subject="Reminder",
            body="...",
            attempt_count=3,
            last_error="gateway down",
            created_at=AT,
        )

        entry = sink.record_delivery_exhausted(communication, AT)

        assert entry.detail == "3 attempt(s), last error: gateway down"
        assert sink.trail("c-1") == [entry]

    def test_unknown_entity_has_empty_trail(self) -> None:
        assert AuditSink().trail("nobody") == []

    def test_rejects_zero_capacity(self) -> None:
        with pytest.raises(ValueError):
            AuditSink(capacity=0)
