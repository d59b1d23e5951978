from collections.abc import Callable

from loguru import logger

from vetclinic.adapters.datetime_helpers import SystemClock, resolve_timezone
from vetclinic.adapters.http_sender import HttpNotificationSender
from vetclinic.adapters.logging_sender import LoggingNotificationSender
from vetclinic.audit import AuditSink
from vetclinic.communications.ledger import CommunicationDeliveryLedger
from vetclinic.config import AppConfig, SenderAdapter
from vetclinic.scheduling.coordinator import AppointmentCoordinator
from vetclinic.scheduling.events import EventBus
from vetclinic.scheduling.ports import (
    AppointmentStore,
    Clock,
    CommunicationStore,
    NotificationSender,
    PetLookup,
    ServiceLookup,
    VeterinarianLookup,
    WorkWindowStore,
)


def _build_http(config: AppConfig) -> NotificationSender:
    return HttpNotificationSender(
        config.gateway.url,
        api_key=config.gateway.api_key,
        timeout=config.communications.send_timeout_seconds,
    )


def _build_log(config: AppConfig) -> NotificationSender:
    return LoggingNotificationSender()


_SENDERS: dict[SenderAdapter, Callable[[AppConfig], NotificationSender]] = {
    SenderAdapter.HTTP: _build_http,
    SenderAdapter.LOG: _build_log,
}


def build_notification_sender(config: AppConfig) -> NotificationSender:
    """Build the notification sender selected in config."""
    adapter = config.gateway.adapter
    logger.info("Building notification sender with adapter: {}", adapter.value)
    return _SENDERS[adapter](config)


class Clinic:
    """The wired scheduling core: coordinator, ledger, event bus and audit sink."""

    def __init__(
        self,
        coordinator: AppointmentCoordinator,
        ledger: CommunicationDeliveryLedger,
        events: EventBus,
        audit: AuditSink,
        sender: NotificationSender,
    ) -> None:
        self.coordinator = coordinator
        self.ledger = ledger
        self.events = events
        self.audit = audit
        self.sender = sender

    async def close(self) -> None:
        await self.sender.close()


def build_clinic(
    config: AppConfig,
    *,
    appointments: AppointmentStore,
    work_windows: WorkWindowStore,
    communications: CommunicationStore,
    veterinarians: VeterinarianLookup,
    services: ServiceLookup,
    pets: PetLookup,
    clock: Clock | None = None,
    sender: NotificationSender | None = None,
) -> Clinic:
    """Wire the coordinator and ledger around the given collaborators.

    The audit sink subscribes before the ledger so the audit trail records an
    event even when communication scheduling for it fails.
    """
    clinic_tz = resolve_timezone(config.clinic_timezone)
    clock = clock or SystemClock(clinic_tz)
    sender = sender or build_notification_sender(config)

    events = EventBus()
    audit = AuditSink()
    coordinator = AppointmentCoordinator(
        appointments=appointments,
        work_windows=work_windows,
        veterinarians=veterinarians,
        services=services,
        clock=clock,
        events=events,
        config=config.scheduling,
    )
    ledger = CommunicationDeliveryLedger(
        store=communications,
        sender=sender,
        pets=pets,
        clock=clock,
        config=config.communications,
        clinic_tz=clinic_tz,
        audit=audit,
    )
    events.subscribe(audit.handle_event, name="audit")
    events.subscribe(ledger.handle_event, name="communications")
    return Clinic(coordinator, ledger, events, audit, sender)
