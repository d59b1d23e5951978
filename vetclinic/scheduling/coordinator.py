import asyncio
import datetime as dt
import uuid
from collections.abc import Awaitable, Callable
from typing import TypeVar

from loguru import logger

from vetclinic.config import SchedulingConfig
from vetclinic.domain.exceptions import (
    ConcurrencyConflictError,
    DuplicateSlotError,
    NotFoundError,
    ResourceInactiveError,
    SlotUnavailableError,
    StoreError,
    StoreUnavailableError,
    ValidationError,
)
from vetclinic.domain.models import (
    Appointment,
    AppointmentRequest,
    AppointmentState,
    Availability,
    ServiceInfo,
)
from vetclinic.scheduling.availability import compute_availability
from vetclinic.scheduling.events import AppointmentCreated, AppointmentStateChanged, EventBus
from vetclinic.scheduling.locks import KeyedLocks
from vetclinic.scheduling.ports import (
    AbstractAppointmentService,
    AppointmentStore,
    Clock,
    ServiceLookup,
    VeterinarianLookup,
    WorkWindowStore,
)
from vetclinic.scheduling.pricing import PricingContext, default_adjustments, quote_price
from vetclinic.scheduling.state_machine import AppointmentAction, apply_transition, plan_transition

T = TypeVar("T")


class AppointmentCoordinator(AbstractAppointmentService):
    """Books slots and drives appointment transitions, then publishes events.

    Two locks make the check-then-write sequences atomic within a process:

    - one per ``(veterinarian_id, date)`` around availability check and insert;
    - one per appointment around read, transition, compare-and-swap and publish.

    Across processes the store's unique slot key and versioned
    compare-and-swap provide the same guarantees; the coordinator maps their
    failures to ``SlotUnavailableError`` and to retries.
    """

    def __init__(
        self,
        *,
        appointments: AppointmentStore,
        work_windows: WorkWindowStore,
        veterinarians: VeterinarianLookup,
        services: ServiceLookup,
        clock: Clock,
        events: EventBus,
        config: SchedulingConfig,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._appointments = appointments
        self._work_windows = work_windows
        self._veterinarians = veterinarians
        self._services = services
        self._clock = clock
        self._events = events
        self._config = config
        self._new_id = id_factory or (lambda: uuid.uuid4().hex)
        self._adjustments = default_adjustments(config.emergency_surcharge_rate)
        self._day_locks: KeyedLocks[tuple[str, dt.date]] = KeyedLocks()
        self._appointment_locks: KeyedLocks[str] = KeyedLocks()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_appointment(self, appointment_id: str) -> Appointment:
        return await self._require(appointment_id)

    async def get_availability(
        self, veterinarian_id: str, date: dt.date, service_id: str
    ) -> Availability:
        logger.info("Computing availability: vet={}, date={}, service={}", veterinarian_id, date, service_id)
        await self._ensure_veterinarian_active(veterinarian_id)
        service = await self._active_service(service_id)
        availability = await self._availability(veterinarian_id, date, service.duration_minutes)
        return self._close_past_slots(availability)

    def _close_past_slots(self, availability: Availability) -> Availability:
        """Mark slots that already started as not bookable, matching ``_validate_request``."""
        if self._config.allow_past_dates:
            return availability
        now = self._clock.now()
        if availability.date > now.date():
            return availability
        slots = tuple(
            slot.model_copy(update={"free": False, "reason": "start time has passed"})
            if slot.free and (availability.date < now.date() or slot.time <= now.time())
            else slot
            for slot in availability.slots
        )
        return availability.model_copy(update={"slots": slots})

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------

    async def create_appointment(self, request: AppointmentRequest) -> Appointment:
        logger.info(
            "Booking request: vet={}, date={}, time={}, emergency={}",
            request.veterinarian_id,
            request.date,
            request.start_time,
            request.is_emergency,
        )
        self._validate_request(request)
        await self._ensure_veterinarian_active(request.veterinarian_id)
        service = await self._active_service(request.service_id)

        appointment_id = self._new_id()
        async with self._appointment_locks.hold(appointment_id):
            async with self._day_locks.hold((request.veterinarian_id, request.date)):
                appointment = await self._reserve(appointment_id, request, service)

            logger.info(
                "Appointment created: id={}, vet={}, {} {}",
                appointment.appointment_id,
                appointment.veterinarian_id,
                appointment.date,
                appointment.start_time,
            )
            await self._events.publish(
                AppointmentCreated(appointment=appointment, occurred_at=appointment.created_at)
            )
        return appointment

    async def _reserve(
        self, appointment_id: str, request: AppointmentRequest, service: ServiceInfo
    ) -> Appointment:
        """Check the slot against current bookings and insert. Caller holds the day lock."""
        availability = await self._availability(
            request.veterinarian_id, request.date, service.duration_minutes
        )
        if not availability.has_schedule:
            raise self._unavailable(request, "veterinarian does not work on this day")

        slot = availability.slot_at(request.start_time)
        if slot is None:
            raise self._unavailable(request, "time is not a slot start within working hours")
        if not slot.free:
            raise self._unavailable(request, slot.reason or "slot is occupied")

        price = quote_price(
            service.price,
            PricingContext(service_id=service.service_id, is_emergency=request.is_emergency),
            self._adjustments,
        )
        appointment = Appointment(
            appointment_id=appointment_id,
            pet_id=request.pet_id,
            veterinarian_id=request.veterinarian_id,
            service_id=service.service_id,
            date=request.date,
            start_time=request.start_time,
            duration_minutes=service.duration_minutes,
            state=AppointmentState.SCHEDULED,
            created_at=self._clock.now(),
            is_emergency=request.is_emergency,
            price=price,
        )

        try:
            return await self._call_store(self._appointments.insert(appointment), "insert appointment")
        except DuplicateSlotError as exc:
            raise self._unavailable(request, "slot was booked by a concurrent request") from exc

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def confirm_appointment(self, appointment_id: str) -> Appointment:
        return await self._transition(appointment_id, AppointmentAction.CONFIRM)

    async def cancel_appointment(self, appointment_id: str, reason: str) -> Appointment:
        if not reason or not reason.strip():
            raise ValidationError("A cancellation reason is required", field="reason")
        return await self._transition(appointment_id, AppointmentAction.CANCEL, reason.strip())

    async def attend_appointment(self, appointment_id: str) -> Appointment:
        return await self._transition(appointment_id, AppointmentAction.ATTEND)

    async def _transition(
        self, appointment_id: str, action: AppointmentAction, reason: str | None = None
    ) -> Appointment:
        retries = self._config.transition_retries
        async with self._appointment_locks.hold(appointment_id):
            for attempt in range(1, retries + 1):
                current = await self._require(appointment_id)
                transition = plan_transition(current, action, self._clock.now(), reason)

                if transition.is_noop:
                    logger.warning(
                        "Ignoring {} on appointment {}: {}", action.value, appointment_id, transition.note
                    )
                    return current

                updated = apply_transition(current, transition)
                swapped = await self._call_store(
                    self._appointments.compare_and_swap_state(updated, current.version),
                    "update appointment",
                )
                if not swapped:
                    logger.warning(
                        "Appointment {} changed during {} (attempt {}/{}); re-reading",
                        appointment_id,
                        action.value,
                        attempt,
                        retries,
                    )
                    continue

                logger.info(
                    "Appointment {}: {} {} -> {}",
                    appointment_id,
                    action.value,
                    transition.from_state.value,
                    transition.to_state.value,
                )
                if transition.state_changed:
                    await self._events.publish(
                        AppointmentStateChanged(
                            appointment=updated,
                            from_state=transition.from_state,
                            to_state=transition.to_state,
                            occurred_at=self._clock.now(),
                        )
                    )
                return updated

        raise ConcurrencyConflictError(appointment_id, retries)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _availability(
        self, veterinarian_id: str, date: dt.date, duration_minutes: int
    ) -> Availability:
        windows = await self._call_store(
            self._work_windows.find_active_by_veterinarian_and_weekday(veterinarian_id, date.weekday()),
            "load work windows",
        )
        booked = await self._call_store(
            self._appointments.find_by_veterinarian_and_date(veterinarian_id, date),
            "load appointments",
        )
        return compute_availability(
            veterinarian_id,
            date,
            duration_minutes,
            windows,
            booked,
            step_minutes=self._config.slot_step_minutes,
        )

    async def _require(self, appointment_id: str) -> Appointment:
        appointment = await self._call_store(
            self._appointments.find_by_id(appointment_id), "load appointment"
        )
        if appointment is None:
            raise NotFoundError("Appointment", appointment_id)
        return appointment

    async def _ensure_veterinarian_active(self, veterinarian_id: str) -> None:
        if not await self._call_store(self._veterinarians.is_active(veterinarian_id), "veterinarian lookup"):
            raise ResourceInactiveError("Veterinarian", veterinarian_id)

    async def _active_service(self, service_id: str) -> ServiceInfo:
        service = await self._call_store(self._services.get(service_id), "service lookup")
        if service is None:
            raise NotFoundError("Service", service_id)
        if not service.active:
            raise ResourceInactiveError("Service", service_id)
        return service

    def _validate_request(self, request: AppointmentRequest) -> None:
        if self._config.allow_past_dates:
            return
        now = self._clock.now()
        if request.date < now.date():
            raise ValidationError("Appointment date cannot be in the past", field="date")
        if request.date == now.date() and request.start_time <= now.time():
            raise ValidationError("Appointment time has already passed", field="start_time")

    def _unavailable(self, request: AppointmentRequest, reason: str) -> SlotUnavailableError:
        return SlotUnavailableError(request.veterinarian_id, request.date, request.start_time, reason)

    async def _call_store(self, call: Awaitable[T], what: str) -> T:
        """Await a collaborator call with the configured timeout.

        Known store errors pass through; timeouts and unexpected failures
        become ``StoreUnavailableError`` so callers can retry.
        """
        timeout = self._config.store_timeout_seconds
        try:
            return await asyncio.wait_for(call, timeout=timeout)
        except StoreError:
            raise
        except TimeoutError as exc:
            raise StoreUnavailableError(f"{what} timed out after {timeout}s") from exc
        except Exception as exc:
            raise StoreUnavailableError(f"{what} failed: {exc}") from exc
