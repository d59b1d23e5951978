import asyncio

from loguru import logger

from vetclinic.communications.ledger import CommunicationDeliveryLedger


async def run_retry_loop(
    ledger: CommunicationDeliveryLedger,
    interval_seconds: float,
    stop_event: asyncio.Event | None = None,
    *,
    max_passes: int | None = None,
) -> int:
    """Call ``retry_pending_communications`` every ``interval_seconds`` until stopped.

    A failing pass is logged and the loop carries on with the next one.
    Returns the number of passes run.
    """
    stop = stop_event or asyncio.Event()
    passes = 0
    logger.info("Starting communication retry loop (every {}s)", interval_seconds)

    while not stop.is_set():
        try:
            await ledger.retry_pending_communications()
        except Exception:
            logger.exception("Communication retry pass failed")
        passes += 1

        if max_passes is not None and passes >= max_passes:
            break
        try:
            await asyncio.wait_for(stop.wait(), timeout=interval_seconds)
        except TimeoutError:
            pass  # Interval elapsed without a stop request

    logger.info("Communication retry loop stopped after {} pass(es)", passes)
    return passes
