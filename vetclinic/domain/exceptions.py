import datetime as dt


class ClinicError(Exception):
    """Base exception for all scheduling and communication errors."""


class ValidationError(ClinicError):
    """Raised when a request is malformed. Not retried."""

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class NotFoundError(ClinicError):
    """Raised when an appointment, service or other record does not exist."""

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class ResourceInactiveError(ClinicError):
    """Raised when a veterinarian or service is disabled."""

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} is not active: {entity_id}")


class SlotUnavailableError(ClinicError):
    """Raised when the requested slot is outside the schedule or already booked.

    The caller may retry with a different slot; the same slot is never retried
    automatically.
    """

    def __init__(
        self,
        veterinarian_id: str,
        date: dt.date,
        start_time: dt.time,
        reason: str,
    ) -> None:
        self.veterinarian_id = veterinarian_id
        self.date = date
        self.start_time = start_time
        self.reason = reason
        super().__init__(
            f"Slot {date.isoformat()} {start_time.strftime('%H:%M')} "
            f"is unavailable for veterinarian {veterinarian_id}: {reason}"
        )


class InvalidTransitionError(ClinicError):
    """Raised when a lifecycle action is not allowed from the current state."""

    def __init__(self, state: str, action: str, reason: str) -> None:
        self.state = state
        self.action = action
        self.reason = reason
        super().__init__(f"Cannot {action} appointment in state {state}: {reason}")


class ConcurrencyConflictError(ClinicError):
    """Raised when an appointment kept changing underneath a transition.

    Safe for the caller to retry.
    """

    def __init__(self, appointment_id: str, attempts: int) -> None:
        self.appointment_id = appointment_id
        self.attempts = attempts
        super().__init__(
            f"Appointment {appointment_id} was modified concurrently "
            f"({attempts} attempt(s)); retry the operation"
        )


class StoreError(ClinicError):
    """Base exception for persistence collaborators."""


class StoreUnavailableError(StoreError):
    """Raised when a store is unreachable or timed out. Safe to retry."""


class DuplicateSlotError(StoreError):
    """Raised by a store when a (veterinarian, date, start time) key is already taken."""


class DeliveryError(ClinicError):
    """Raised by a notification sender when a message could not be delivered."""


class DeliveryExhaustedError(ClinicError):
    """Raised when a communication has used up its delivery attempts."""

    def __init__(self, communication_id: str, attempts: int) -> None:
        self.communication_id = communication_id
        self.attempts = attempts
        super().__init__(
            f"Communication {communication_id} permanently failed after {attempts} attempt(s)"
        )
