import asyncio
import datetime as dt
import uuid
from collections.abc import Callable, Collection

from loguru import logger
from pydantic import BaseModel, ConfigDict

from vetclinic.adapters.datetime_helpers import combine_local
from vetclinic.audit import AuditSink
from vetclinic.communications import templates
from vetclinic.config import CommunicationConfig
from vetclinic.domain.exceptions import DeliveryExhaustedError
from vetclinic.domain.models import (
    Appointment,
    AppointmentState,
    Channel,
    Communication,
    CommunicationType,
    Contact,
)
from vetclinic.scheduling.events import AppointmentCreated, AppointmentEvent, AppointmentStateChanged
from vetclinic.scheduling.locks import KeyedLocks
from vetclinic.scheduling.ports import Clock, CommunicationStore, NotificationSender, PetLookup

_ADDRESS_FIELD: dict[Channel, str] = {
    Channel.EMAIL: "email",
    Channel.SMS: "phone",
    Channel.WHATSAPP: "phone",
    Channel.PUSH: "email",
}


class DeliveryReport(BaseModel):
    """Outcome of one retry pass."""

    model_config = ConfigDict(frozen=True)

    attempted: int = 0
    sent_count: int = 0
    failed_count: int = 0
    exhausted_ids: tuple[str, ...] = ()


class CommunicationDeliveryLedger:
    """Schedules appointment communications and tracks their delivery attempts.

    Subscribe ``handle_event`` to the coordinator's event bus. Transport is
    delegated to a ``NotificationSender``; the ledger has no timer of its own,
    so due and failed communications go out when an external scheduler calls
    ``retry_pending_communications``.
    """

    def __init__(
        self,
        *,
        store: CommunicationStore,
        sender: NotificationSender,
        pets: PetLookup,
        clock: Clock,
        config: CommunicationConfig,
        clinic_tz: dt.tzinfo,
        audit: AuditSink | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._store = store
        self._sender = sender
        self._pets = pets
        self._clock = clock
        self._config = config
        self._clinic_tz = clinic_tz
        self._audit = audit
        self._new_id = id_factory or (lambda: uuid.uuid4().hex)
        self._locks: KeyedLocks[str] = KeyedLocks()

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    async def handle_event(self, event: AppointmentEvent) -> None:
        if isinstance(event, AppointmentCreated):
            await self._on_created(event.appointment)
        elif isinstance(event, AppointmentStateChanged):
            await self._on_state_changed(event)

    async def _on_created(self, appointment: Appointment) -> None:
        contact = await self._pets.get_contact(appointment.pet_id)
        recipient = self._address(contact)
        if contact is None or recipient is None:
            logger.warning(
                "No {} address for owner of pet {}; skipping communications for appointment {}",
                self._config.default_channel.value,
                appointment.pet_id,
                appointment.appointment_id,
            )
            return

        starts_at = combine_local(appointment.date, appointment.start_time, self._clinic_tz)
        now = self._clock.now()
        for lead_hours in sorted(set(self._config.reminder_lead_hours), reverse=True):
            send_at = starts_at - dt.timedelta(hours=lead_hours)
            if send_at <= now:
                logger.debug(
                    "Skipping {}h reminder for appointment {}: send time already passed",
                    lead_hours,
                    appointment.appointment_id,
                )
                continue
            subject, body = templates.reminder_message(appointment, contact, lead_hours)
            await self.schedule_communication(
                CommunicationType.REMINDER,
                recipient=recipient,
                recipient_name=contact.name,
                subject=subject,
                body=body,
                appointment_id=appointment.appointment_id,
                send_at=send_at,
            )

        if self._config.notify_on_create:
            subject, body = templates.created_message(appointment, contact)
            await self._notify(appointment, contact, recipient, subject, body)

    async def _on_state_changed(self, event: AppointmentStateChanged) -> None:
        appointment = event.appointment
        if event.to_state == AppointmentState.CONFIRMED:
            if self._config.notify_on_confirm:
                await self._notify_with(appointment, templates.confirmed_message)
        elif event.to_state == AppointmentState.CANCELLED:
            # Nothing queued for this appointment may go out after the cancellation notice.
            await self.suppress_pending(appointment.appointment_id)
            if self._config.notify_on_cancel:
                await self._notify_with(appointment, templates.cancelled_message)
        elif event.to_state == AppointmentState.ATTENDED:
            await self.suppress_reminders(appointment.appointment_id)

    async def _notify_with(
        self,
        appointment: Appointment,
        render: Callable[[Appointment, Contact], tuple[str, str]],
    ) -> None:
        contact = await self._pets.get_contact(appointment.pet_id)
        recipient = self._address(contact)
        if contact is None or recipient is None:
            logger.warning(
                "No {} address for owner of pet {}; notification for appointment {} not created",
                self._config.default_channel.value,
                appointment.pet_id,
                appointment.appointment_id,
            )
            return
        subject, body = render(appointment, contact)
        await self._notify(appointment, contact, recipient, subject, body)

    async def _notify(
        self, appointment: Appointment, contact: Contact, recipient: str, subject: str, body: str
    ) -> None:
        communication = await self.schedule_communication(
            CommunicationType.NOTIFICATION,
            recipient=recipient,
            recipient_name=contact.name,
            subject=subject,
            body=body,
            appointment_id=appointment.appointment_id,
        )
        if self._config.deliver_immediately:
            await self.attempt_delivery(communication)

    def _address(self, contact: Contact | None) -> str | None:
        if contact is None:
            return None
        return getattr(contact, _ADDRESS_FIELD[self._config.default_channel]) or None

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    async def schedule_communication(
        self,
        type_: CommunicationType,
        *,
        recipient: str,
        subject: str,
        body: str,
        recipient_name: str = "",
        channel: Channel | None = None,
        appointment_id: str | None = None,
        send_at: dt.datetime | None = None,
    ) -> Communication:
        """Record a communication to be sent at ``send_at`` (as soon as possible when None)."""
        communication = Communication(
            communication_id=self._new_id(),
            type=type_,
            channel=channel or self._config.default_channel,
            recipient=recipient,
            recipient_name=recipient_name,
            subject=subject,
            body=body,
            appointment_id=appointment_id,
            scheduled_send_time=send_at,
            max_attempts=self._config.max_attempts,
            created_at=self._clock.now(),
        )
        stored = await self._store.insert(communication)
        logger.info(
            "Scheduled {} {} for appointment {} at {}",
            stored.type.value,
            stored.communication_id,
            appointment_id,
            send_at.isoformat() if send_at else "now",
        )
        return stored

    async def suppress_pending(
        self, appointment_id: str, types: Collection[CommunicationType] | None = None
    ) -> int:
        """Suppress unsent communications of an appointment, optionally only of ``types``.

        Exhausted communications are left as they are so they stay visible to
        operators. Returns how many were suppressed.
        """
        suppressed = 0
        for communication in await self._store.find_by_appointment(appointment_id):
            if types is not None and communication.type not in types:
                continue
            async with self._locks.hold(communication.communication_id):
                current = await self._fresh(communication)
                if current.sent or current.suppressed or current.is_exhausted:
                    continue
                await self._store.update(current.suppress())
                suppressed += 1
        if suppressed:
            logger.info("Suppressed {} pending communication(s) for appointment {}", suppressed, appointment_id)
        return suppressed

    async def suppress_reminders(self, appointment_id: str) -> int:
        return await self.suppress_pending(appointment_id, (CommunicationType.REMINDER,))

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def can_retry(self, communication: Communication) -> bool:
        return communication.can_retry

    async def mark_sent(self, communication: Communication, external_id: str | None) -> Communication:
        updated = communication.mark_sent(external_id, self._clock.now())
        await self._store.update(updated)
        logger.info(
            "Sent {} {} (external id {})", updated.type.value, updated.communication_id, external_id
        )
        return updated

    async def record_failure(self, communication: Communication, error: str) -> Communication:
        updated = communication.record_failure(error)
        await self._store.update(updated)
        if updated.is_exhausted:
            logger.warning(
                "Communication {} exhausted after {} attempt(s): {}",
                updated.communication_id,
                updated.attempt_count,
                error,
            )
            if self._audit is not None:
                self._audit.record_delivery_exhausted(updated, self._clock.now())
        else:
            logger.warning(
                "Delivery attempt {}/{} failed for {}: {}",
                updated.attempt_count,
                updated.max_attempts,
                updated.communication_id,
                error,
            )
        return updated

    async def attempt_delivery(self, communication: Communication) -> Communication:
        """Try to send a communication once and record the outcome.

        Sent and suppressed communications are returned unchanged. A send that
        raises or exceeds ``send_timeout_seconds`` counts as a failed attempt.

        Raises:
            DeliveryExhaustedError: If no attempts are left.
        """
        async with self._locks.hold(communication.communication_id):
            current = await self._fresh(communication)
            if current.sent or current.suppressed:
                logger.debug("Not sending {}: status {}", current.communication_id, current.status.value)
                return current
            if current.is_exhausted:
                raise DeliveryExhaustedError(current.communication_id, current.attempt_count)

            timeout = self._config.send_timeout_seconds
            try:
                external_id = await asyncio.wait_for(self._sender.send(current), timeout=timeout)
            except TimeoutError:
                return await self.record_failure(current, f"send timed out after {timeout}s")
            except Exception as exc:
                return await self.record_failure(current, str(exc) or type(exc).__name__)
            return await self.mark_sent(current, external_id)

    async def retry_pending_communications(self) -> DeliveryReport:
        """Attempt every due communication that still has attempts left."""
        due = [c for c in await self._store.find_due(self._clock.now()) if c.can_retry]
        if not due:
            return DeliveryReport()

        semaphore = asyncio.Semaphore(self._config.max_concurrent_sends)

        async def attempt(communication: Communication) -> Communication | None:
            async with semaphore:
                try:
                    return await self.attempt_delivery(communication)
                except DeliveryExhaustedError:
                    return None
                except Exception:
                    logger.exception("Could not process communication {}", communication.communication_id)
                    return None

        results = await asyncio.gather(*(attempt(c) for c in due))
        sent = [r for r in results if r is not None and r.sent]
        failed = [r for r in results if r is None or not (r.sent or r.suppressed)]
        exhausted = tuple(r.communication_id for r in results if r is not None and r.is_exhausted)
        report = DeliveryReport(
            attempted=len(due),
            sent_count=len(sent),
            failed_count=len(failed),
            exhausted_ids=exhausted,
        )
        logger.info(
            "Retry pass: {} attempted, {} sent, {} failed, {} exhausted",
            report.attempted,
            report.sent_count,
            report.failed_count,
            len(report.exhausted_ids),
        )
        return report

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def list_exhausted(self) -> list[Communication]:
        return await self._store.find_exhausted()

    async def list_for_appointment(self, appointment_id: str) -> list[Communication]:
        return await self._store.find_by_appointment(appointment_id)

    async def _fresh(self, communication: Communication) -> Communication:
        return await self._store.find_by_id(communication.communication_id) or communication
