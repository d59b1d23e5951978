import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from vetclinic.adapters.datetime_helpers import add_minutes, to_minutes
from vetclinic.domain.exceptions import DeliveryExhaustedError, ValidationError


class AppointmentState(str, Enum):
    """Lifecycle states of an appointment."""

    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    ATTENDED = "attended"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (AppointmentState.ATTENDED, AppointmentState.CANCELLED)


class CommunicationType(str, Enum):
    NOTIFICATION = "notification"
    REMINDER = "reminder"
    EMAIL = "email"


class Channel(str, Enum):
    EMAIL = "email"
    SMS = "sms"
    WHATSAPP = "whatsapp"
    PUSH = "push"


class CommunicationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    SUPPRESSED = "suppressed"
    EXHAUSTED = "exhausted"


class WorkWindow(BaseModel):
    """A recurring weekly interval during which a veterinarian takes appointments.

    ``weekday`` follows ``dt.date.weekday()``: Monday is 0, Sunday is 6.
    """

    model_config = ConfigDict(frozen=True)

    veterinarian_id: str
    weekday: int = Field(ge=0, le=6)
    start_time: dt.time
    end_time: dt.time
    active: bool = True

    @model_validator(mode="after")
    def _check_bounds(self) -> "WorkWindow":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class ServiceInfo(BaseModel):
    """The part of a clinic service record that scheduling needs."""

    model_config = ConfigDict(frozen=True)

    service_id: str
    name: str
    active: bool = True
    duration_minutes: int = Field(gt=0)
    price: Decimal = Decimal("0")


class Contact(BaseModel):
    """Owner contact details for a pet."""

    model_config = ConfigDict(frozen=True)

    name: str
    email: str | None = None
    phone: str | None = None


class AppointmentRequest(BaseModel):
    """A request to book an appointment."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    pet_id: str = Field(min_length=1)
    veterinarian_id: str = Field(min_length=1)
    service_id: str = Field(min_length=1)
    date: dt.date
    start_time: dt.time
    is_emergency: bool = False

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "AppointmentRequest":
        """Build a request from raw input, reporting problems as ``ValidationError``."""
        try:
            return cls.model_validate(payload)
        except PydanticValidationError as exc:
            first = exc.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ()))
            raise ValidationError(
                f"Invalid appointment request: {field}: {first.get('msg', 'invalid value')}",
                field=field or None,
            ) from exc


class Appointment(BaseModel):
    """An appointment owned by the coordinator.

    ``version`` increments on every persisted change and backs the optimistic
    compare-and-swap in the appointment store.
    """

    model_config = ConfigDict(frozen=True)

    appointment_id: str
    pet_id: str
    veterinarian_id: str
    service_id: str
    date: dt.date
    start_time: dt.time
    duration_minutes: int = Field(gt=0)
    state: AppointmentState = AppointmentState.SCHEDULED
    created_at: dt.datetime
    confirmed_at: dt.datetime | None = None
    cancelled_at: dt.datetime | None = None
    cancellation_reason: str | None = None
    attendance_started_at: dt.datetime | None = None
    attendance_ended_at: dt.datetime | None = None
    is_emergency: bool = False
    price: Decimal | None = None
    version: int = 1

    @property
    def end_time(self) -> dt.time:
        return add_minutes(self.start_time, self.duration_minutes)

    @property
    def is_active(self) -> bool:
        """True while the appointment still occupies its slot."""
        return self.state != AppointmentState.CANCELLED

    def overlaps(self, start_minute: int, end_minute: int) -> bool:
        """Whether ``[start_minute, end_minute)`` intersects this appointment's interval."""
        own_start = to_minutes(self.start_time)
        own_end = own_start + self.duration_minutes
        return start_minute < own_end and own_start < end_minute


class Slot(BaseModel):
    """A candidate start time within a veterinarian's merged work windows."""

    model_config = ConfigDict(frozen=True)

    time: dt.time
    duration_minutes: int
    free: bool
    reason: str | None = None

    @property
    def end_time(self) -> dt.time:
        return add_minutes(self.time, self.duration_minutes)


class Availability(BaseModel):
    """Result of an availability query for one veterinarian and date."""

    model_config = ConfigDict(frozen=True)

    veterinarian_id: str
    date: dt.date
    duration_minutes: int
    has_schedule: bool
    slots: tuple[Slot, ...] = ()

    @property
    def free_slots(self) -> list[Slot]:
        return [s for s in self.slots if s.free]

    def slot_at(self, time: dt.time) -> Slot | None:
        for slot in self.slots:
            if slot.time == time:
                return slot
        return None


class Communication(BaseModel):
    """An outbound reminder, notification or email and its delivery state."""

    model_config = ConfigDict(frozen=True)

    communication_id: str
    type: CommunicationType
    channel: Channel
    recipient: str
    recipient_name: str = ""
    subject: str
    body: str
    appointment_id: str | None = None
    scheduled_send_time: dt.datetime | None = None
    sent: bool = False
    sent_at: dt.datetime | None = None
    attempt_count: int = Field(default=0, ge=0)
    max_attempts: int = Field(default=3, ge=1)
    last_error: str | None = None
    external_id: str | None = None
    suppressed: bool = False
    created_at: dt.datetime

    @model_validator(mode="after")
    def _check_attempts(self) -> "Communication":
        if self.attempt_count > self.max_attempts:
            raise ValueError("attempt_count cannot exceed max_attempts")
        return self

    @property
    def can_retry(self) -> bool:
        return not self.sent and not self.suppressed and self.attempt_count < self.max_attempts

    @property
    def is_exhausted(self) -> bool:
        return not self.sent and self.attempt_count >= self.max_attempts

    @property
    def status(self) -> CommunicationStatus:
        if self.sent:
            return CommunicationStatus.SENT
        if self.suppressed:
            return CommunicationStatus.SUPPRESSED
        if self.is_exhausted:
            return CommunicationStatus.EXHAUSTED
        return CommunicationStatus.PENDING

    def is_due(self, now: dt.datetime) -> bool:
        return self.scheduled_send_time is None or self.scheduled_send_time <= now

    def mark_sent(self, external_id: str | None, now: dt.datetime) -> "Communication":
        if self.sent:
            return self
        if self.is_exhausted:
            raise DeliveryExhaustedError(self.communication_id, self.attempt_count)
        return self.model_copy(
            update={
                "sent": True,
                "sent_at": now,
                "external_id": external_id,
                "last_error": None,
            }
        )

    def record_failure(self, error: str) -> "Communication":
        if self.sent:
            return self
        if self.is_exhausted:
            raise DeliveryExhaustedError(self.communication_id, self.attempt_count)
        return self.model_copy(
            update={"attempt_count": self.attempt_count + 1, "last_error": error[:500]}
        )

    def suppress(self) -> "Communication":
        if self.sent or self.suppressed:
            return self
        return self.model_copy(update={"suppressed": True})
