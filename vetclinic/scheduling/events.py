import datetime as dt
from collections.abc import Awaitable, Callable

from loguru import logger
from pydantic import BaseModel, ConfigDict

from vetclinic.domain.models import Appointment, AppointmentState


class AppointmentCreated(BaseModel):
    model_config = ConfigDict(frozen=True)

    appointment: Appointment
    occurred_at: dt.datetime

    @property
    def appointment_id(self) -> str:
        return self.appointment.appointment_id


class AppointmentStateChanged(BaseModel):
    model_config = ConfigDict(frozen=True)

    appointment: Appointment
    from_state: AppointmentState
    to_state: AppointmentState
    occurred_at: dt.datetime

    @property
    def appointment_id(self) -> str:
        return self.appointment.appointment_id


AppointmentEvent = AppointmentCreated | AppointmentStateChanged
EventHandler = Callable[[AppointmentEvent], Awaitable[None]]


class EventBus:
    """Delivers appointment events to subscribers in subscription order.

    ``publish`` awaits each handler in turn, so a caller that publishes the
    events of one appointment sequentially gets them observed in that order.
    No ordering is promised across appointments published from different tasks.
    A failing handler is logged and skipped; it never affects the publisher
    or the remaining handlers.
    """

    def __init__(self) -> None:
        self._handlers: list[tuple[str, EventHandler]] = []

    def subscribe(self, handler: EventHandler, name: str | None = None) -> None:
        label = name or getattr(handler, "__qualname__", repr(handler))
        self._handlers.append((label, handler))
        logger.debug("Subscribed {} to appointment events", label)

    @property
    def subscribers(self) -> list[str]:
        return [name for name, _ in self._handlers]

    async def publish(self, event: AppointmentEvent) -> None:
        for name, handler in self._handlers:
            try:
                await handler(event)
            except Exception:
                logger.exception(
                    "Subscriber {} failed on {} for appointment {}",
                    name,
                    type(event).__name__,
                    event.appointment_id,
                )
