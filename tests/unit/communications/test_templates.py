import datetime as dt
from decimal import Decimal

import pytest

from vetclinic.communications.templates import (
    CLINIC_SIGNATURE,
    cancelled_message,
    confirmed_message,
    created_message,
    reminder_message,
)
from vetclinic.domain.models import Appointment, Contact

ANA = Contact(name="Ana Rojas", email="ana@example.com")


def _appointment(**fields) -> Appointment:
    values = {
        "appointment_id": "a-1",
        "pet_id": "pet-1",
        "veterinarian_id": "vet-1",
        "service_id": "consult",
        "date": dt.date(2026, 3, 23),
        "start_time": dt.time(14, 30),
        "duration_minutes": 30,
        "created_at": dt.datetime(2026, 3, 16, 8, 0, tzinfo=dt.timezone.utc),
    }
    values.update(fields)
    return Appointment(**values)


class TestReminderMessage:
    @pytest.mark.parametrize(
        ("hours", "subject"),
        [(24, "Reminder: appointment in 24 hours"), (1, "Reminder: appointment in 1 hour")],
        ids=["plural", "singular"],
    )
    def test_subject(self, hours: int, subject: str) -> None:
        assert reminder_message(_appointment(), ANA, hours)[0] == subject

    def test_body_names_owner_and_time(self) -> None:
        _, body = reminder_message(_appointment(), ANA, 24)

        assert body.startswith("Hello Ana Rojas,")
        assert "Monday, March 23, 2026 at 2:30 PM" in body
        assert "Reference: a-1" in body
        assert body.rstrip().endswith(CLINIC_SIGNATURE)

    def test_greeting_without_name(self) -> None:
        _, body = reminder_message(_appointment(), Contact(name="", email="x@example.com"), 2)

        assert body.startswith("Hello,")


class TestCreatedMessage:
    def test_includes_price_and_emergency_flag(self) -> None:
        subject, body = created_message(_appointment(is_emergency=True, price=Decimal("60.00")), ANA)

        assert subject == "Appointment scheduled"
        assert "(30 minutes)" in body
        assert "marked as an emergency" in body
        assert "Estimated price: 60.00" in body

    def test_omits_missing_details(self) -> None:
        _, body = created_message(_appointment(), ANA)

        assert "emergency" not in body
        assert "Estimated price" not in body


class TestLifecycleMessages:
    def test_confirmed(self) -> None:
        subject, body = confirmed_message(_appointment(), ANA)

        assert subject == "Appointment confirmed"
        assert "Monday, March 23, 2026 at 2:30 PM" in body

    def test_cancelled_with_reason(self) -> None:
        subject, body = cancelled_message(_appointment(cancellation_reason="vet on leave"), ANA)

        assert subject == "Appointment cancelled"
        assert "Reason: vet on leave" in body

    def test_cancelled_without_reason(self) -> None:
        _, body = cancelled_message(_appointment(), ANA)

        assert "Reason:" not in body
