import datetime as dt
from abc import ABC, abstractmethod
from typing import Protocol

from vetclinic.domain.models import (
    Appointment,
    AppointmentRequest,
    Availability,
    Communication,
    Contact,
    ServiceInfo,
    WorkWindow,
)


class AbstractAppointmentService(ABC):
    """Operations the outer layers (HTTP controllers, jobs) call to manage appointments."""

    @abstractmethod
    async def create_appointment(self, request: AppointmentRequest) -> Appointment:
        """Book a slot and persist the appointment as SCHEDULED.

        Args:
            request: Who, with whom, which service and when.

        Returns:
            The persisted appointment.

        Raises:
            ValidationError: If the request is malformed or in the past.
            NotFoundError: If the service does not exist.
            ResourceInactiveError: If the veterinarian or service is disabled.
            SlotUnavailableError: If the slot is outside the schedule or taken,
                including when a concurrent booking won the slot.
            StoreUnavailableError: If persistence failed or timed out.
        """

    @abstractmethod
    async def confirm_appointment(self, appointment_id: str) -> Appointment:
        """Move a SCHEDULED appointment to CONFIRMED (idempotent when already confirmed).

        Raises:
            NotFoundError: If the appointment does not exist.
            InvalidTransitionError: If the appointment is attended or cancelled.
            ConcurrencyConflictError: If concurrent writers kept winning.
        """

    @abstractmethod
    async def cancel_appointment(self, appointment_id: str, reason: str) -> Appointment:
        """Cancel an appointment (idempotent when already cancelled).

        Raises:
            ValidationError: If ``reason`` is blank.
            NotFoundError: If the appointment does not exist.
            InvalidTransitionError: If the appointment was already attended.
            ConcurrencyConflictError: If concurrent writers kept winning.
        """

    @abstractmethod
    async def attend_appointment(self, appointment_id: str) -> Appointment:
        """Start attending a CONFIRMED appointment; a second call records the end.

        Raises:
            NotFoundError: If the appointment does not exist.
            InvalidTransitionError: If the appointment is unconfirmed or cancelled.
            ConcurrencyConflictError: If concurrent writers kept winning.
        """

    @abstractmethod
    async def get_availability(
        self, veterinarian_id: str, date: dt.date, service_id: str
    ) -> Availability:
        """Compute the slot grid for a veterinarian, date and service.

        Raises:
            NotFoundError: If the service does not exist.
            ResourceInactiveError: If the veterinarian or service is disabled.
        """

    @abstractmethod
    async def get_appointment(self, appointment_id: str) -> Appointment:
        """Fetch an appointment.

        Raises:
            NotFoundError: If the appointment does not exist.
        """


class VeterinarianLookup(Protocol):
    async def is_active(self, veterinarian_id: str) -> bool:
        """Return False for unknown or disabled veterinarians."""
        ...


class ServiceLookup(Protocol):
    async def get(self, service_id: str) -> ServiceInfo | None:
        """Return the service, or None if it does not exist."""
        ...


class PetLookup(Protocol):
    async def get_contact(self, pet_id: str) -> Contact | None:
        """Return the pet owner's contact details, or None if unknown."""
        ...


class AppointmentStore(Protocol):
    """Persistence for appointments.

    ``insert`` must reject a second non-cancelled appointment for the same
    ``(veterinarian_id, date, start_time)`` by raising ``DuplicateSlotError``.
    """

    async def insert(self, appointment: Appointment) -> Appointment:
        ...

    async def find_by_id(self, appointment_id: str) -> Appointment | None:
        ...

    async def find_by_veterinarian_and_date(
        self, veterinarian_id: str, date: dt.date
    ) -> list[Appointment]:
        ...

    async def compare_and_swap_state(self, appointment: Appointment, expected_version: int) -> bool:
        """Replace the stored appointment only if its version is still ``expected_version``."""
        ...


class WorkWindowStore(Protocol):
    async def find_active_by_veterinarian_and_weekday(
        self, veterinarian_id: str, weekday: int
    ) -> list[WorkWindow]:
        ...


class CommunicationStore(Protocol):
    async def insert(self, communication: Communication) -> Communication:
        ...

    async def update(self, communication: Communication) -> Communication:
        ...

    async def find_by_id(self, communication_id: str) -> Communication | None:
        ...

    async def find_due(self, now: dt.datetime) -> list[Communication]:
        """Unsent, unsuppressed communications with attempts left and a send time at or before ``now``."""
        ...

    async def find_by_appointment(self, appointment_id: str) -> list[Communication]:
        ...

    async def find_exhausted(self) -> list[Communication]:
        ...


class NotificationSender(Protocol):
    async def send(self, communication: Communication) -> str:
        """Deliver a communication and return the provider's message id.

        Raises:
            DeliveryError: If the provider rejected or could not receive the message.
        """
        ...

    async def close(self) -> None:
        ...


class Clock(Protocol):
    def now(self) -> dt.datetime:
        """Current time as a timezone-aware datetime in the clinic's timezone."""
        ...
