import asyncio

import pytest

from vetclinic.adapters.fake import FakeNotificationSender
from vetclinic.communications.ledger import CommunicationDeliveryLedger, DeliveryReport
from vetclinic.communications.worker import run_retry_loop
from vetclinic.domain.models import CommunicationType


class _CountingLedger:
    """Stands in for the ledger; only ``retry_pending_communications`` is used."""

    def __init__(self, errors: list[Exception] | None = None) -> None:
        self.calls = 0
        self._errors = list(errors or [])

    async def retry_pending_communications(self) -> DeliveryReport:
        self.calls += 1
        if self._errors:
            raise self._errors.pop(0)
        return DeliveryReport()


class TestRunRetryLoop:
    @pytest.mark.asyncio
    async def test_runs_requested_number_of_passes(self) -> None:
        ledger = _CountingLedger()

        passes = await run_retry_loop(ledger, interval_seconds=0.01, max_passes=3)

        assert passes == 3
        assert ledger.calls == 3

    @pytest.mark.asyncio
    async def test_failed_pass_does_not_stop_loop(self) -> None:
        ledger = _CountingLedger(errors=[RuntimeError("store offline")])

        passes = await run_retry_loop(ledger, interval_seconds=0.01, max_passes=2)

        assert passes == 2
        assert ledger.calls == 2

    @pytest.mark.asyncio
    async def test_stops_when_event_is_set(self) -> None:
        ledger = _CountingLedger()
        stop = asyncio.Event()

        task = asyncio.create_task(run_retry_loop(ledger, interval_seconds=60, stop_event=stop))
        await asyncio.sleep(0.01)
        stop.set()
        passes = await asyncio.wait_for(task, timeout=1)

        assert passes == 1

    @pytest.mark.asyncio
    async def test_pre_set_event_runs_nothing(self) -> None:
        ledger = _CountingLedger()
        stop = asyncio.Event()
        stop.set()

        assert await run_retry_loop(ledger, interval_seconds=0.01, stop_event=stop) == 0
        assert ledger.calls == 0

    @pytest.mark.asyncio
    async def test_delivers_due_messages(
        self, ledger: CommunicationDeliveryLedger, sender: FakeNotificationSender
    ) -> None:
        await ledger.schedule_communication(
            CommunicationType.EMAIL, recipient="ana@example.com", subject="News", body="..."
        )

        await run_retry_loop(ledger, interval_seconds=0.01, max_passes=1)

        assert len(sender.sent) == 1
