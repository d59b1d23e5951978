import datetime as dt
from decimal import Decimal

import pytest

from vetclinic.adapters.fake import FakeClock, FakeNotificationSender, FlakyAppointmentStore
from vetclinic.adapters.memory import (
    InMemoryCommunicationStore,
    InMemoryPetDirectory,
    InMemoryServiceCatalog,
    InMemoryVeterinarianDirectory,
    InMemoryWorkWindowStore,
)
from vetclinic.audit import AuditSink
from vetclinic.communications.ledger import CommunicationDeliveryLedger
from vetclinic.config import CommunicationConfig, SchedulingConfig
from vetclinic.domain.models import Contact, ServiceInfo, WorkWindow
from vetclinic.scheduling.coordinator import AppointmentCoordinator
from vetclinic.scheduling.events import AppointmentEvent, EventBus

CLINIC_TZ = dt.timezone(dt.timedelta(hours=-5), "COT")

# Monday 2026-03-16 08:00; bookings in tests target the following Monday.
NOW = dt.datetime(2026, 3, 16, 8, 0, tzinfo=CLINIC_TZ)
MONDAY = dt.date(2026, 3, 23)
TUESDAY = dt.date(2026, 3, 24)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(NOW)


@pytest.fixture
def appointment_store() -> FlakyAppointmentStore:
    return FlakyAppointmentStore()


@pytest.fixture
def work_windows() -> InMemoryWorkWindowStore:
    return InMemoryWorkWindowStore(
        [WorkWindow(veterinarian_id="vet-1", weekday=0, start_time=dt.time(9), end_time=dt.time(12))]
    )


@pytest.fixture
def veterinarians() -> InMemoryVeterinarianDirectory:
    return InMemoryVeterinarianDirectory({"vet-1": True, "vet-off": False})


@pytest.fixture
def services() -> InMemoryServiceCatalog:
    return InMemoryServiceCatalog(
        [
            ServiceInfo(service_id="consult", name="General consultation", duration_minutes=30, price=Decimal("40.00")),
            ServiceInfo(service_id="surgery", name="Minor surgery", duration_minutes=90, price=Decimal("250.00")),
            ServiceInfo(service_id="retired", name="Old service", duration_minutes=30, active=False),
        ]
    )


@pytest.fixture
def pets() -> InMemoryPetDirectory:
    return InMemoryPetDirectory(
        {
            "pet-1": Contact(name="Ana Rojas", email="ana@example.com", phone="+573001112233"),
            "pet-nomail": Contact(name="Luis Pardo"),
        }
    )


@pytest.fixture
def scheduling_config() -> SchedulingConfig:
    return SchedulingConfig(slot_step_minutes=None, allow_past_dates=False, transition_retries=3)


@pytest.fixture
def communication_config() -> CommunicationConfig:
    return CommunicationConfig(reminder_lead_hours=[24, 2], max_attempts=3, send_timeout_seconds=0.5)


@pytest.fixture
def events() -> EventBus:
    return EventBus()


@pytest.fixture
def published(events: EventBus) -> list[AppointmentEvent]:
    """Every event the bus delivers, in order."""
    seen: list[AppointmentEvent] = []

    async def record(event: AppointmentEvent) -> None:
        seen.append(event)

    events.subscribe(record, name="recorder")
    return seen


@pytest.fixture
def coordinator(
    appointment_store: FlakyAppointmentStore,
    work_windows: InMemoryWorkWindowStore,
    veterinarians: InMemoryVeterinarianDirectory,
    services: InMemoryServiceCatalog,
    clock: FakeClock,
    events: EventBus,
    scheduling_config: SchedulingConfig,
) -> AppointmentCoordinator:
    return AppointmentCoordinator(
        appointments=appointment_store,
        work_windows=work_windows,
        veterinarians=veterinarians,
        services=services,
        clock=clock,
        events=events,
        config=scheduling_config,
    )


@pytest.fixture
def communication_store() -> InMemoryCommunicationStore:
    return InMemoryCommunicationStore()


@pytest.fixture
def sender() -> FakeNotificationSender:
    return FakeNotificationSender()


@pytest.fixture
def audit() -> AuditSink:
    return AuditSink(capacity=20)


@pytest.fixture
def ledger(
    communication_store: InMemoryCommunicationStore,
    sender: FakeNotificationSender,
    pets: InMemoryPetDirectory,
    clock: FakeClock,
    communication_config: CommunicationConfig,
    audit: AuditSink,
) -> CommunicationDeliveryLedger:
    return CommunicationDeliveryLedger(
        store=communication_store,
        sender=sender,
        pets=pets,
        clock=clock,
        config=communication_config,
        clinic_tz=CLINIC_TZ,
        audit=audit,
    )


@pytest.fixture
def monday() -> dt.date:
    return MONDAY


@pytest.fixture
def tuesday() -> dt.date:
    return TUESDAY
