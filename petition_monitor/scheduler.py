"""Periodic trigger for the run coordinator."""

import asyncio
import logging

from .coordinator import RunCoordinator

logger = logging.getLogger(__name__)


async def run_periodically(
    coordinator: RunCoordinator, interval: float, initial_delay: float = 0
):
    """
    Call coordinator.run() every `interval` seconds until cancelled.

    Each run gets its own task, so a slow cycle does not delay the next
    tick; that tick finds the coordinator running and skips.
    """
    logger.info(f"⏰ Scheduler started (every {interval}s, first run in {initial_delay}s)")
    in_flight: set[asyncio.Task] = set()

    try:
        await asyncio.sleep(initial_delay)
        while True:
            logger.info("⏰ Scheduled run triggered")
            task = asyncio.create_task(coordinator.run())
            in_flight.add(task)
            task.add_done_callback(in_flight.discard)

            await asyncio.sleep(interval)
    finally:
        # A run still in flight must not outlive the clients it uses
        for task in list(in_flight):
            task.cancel()
        await asyncio.gather(*in_flight, return_exceptions=True)
        logger.info("⏰ Scheduler stopped")
