"""MetricsReporter - Background task logging metrics snapshots.

Every interval the serialized tree of each root registry is written to
the ``metrics_reporter`` logger as one JSON line.
"""

import asyncio
import json
from typing import Optional

from multimeter.core.config import settings
from multimeter.core.logging_config import get_logger
from .snapshot import take_snapshot

logger = get_logger("metrics_reporter")

# Module-level task and stop event
_report_task: Optional[asyncio.Task] = None
_stop_event: Optional[asyncio.Event] = None


def report_once() -> int:
    """Log one snapshot per root registry.

    Returns:
        Number of non-empty registries reported
    """
    snapshot = take_snapshot()
    reported = 0
    for entry in snapshot.registries:
        if not entry.metrics:
            continue
        payload = json.dumps(entry.model_dump(), default=str, sort_keys=True)
        logger.info(f"{entry.group}/{entry.scope} {payload}")
        reported += 1
    return reported


async def _metrics_report_loop(stop_event: asyncio.Event, interval: float) -> None:
    """Background loop that reports metrics every ``interval`` seconds.

    Args:
        stop_event: Event to signal shutdown
        interval: Seconds between reports
    """
    logger.info(f"Metrics reporter started, interval {interval}s")

    while not stop_event.is_set():
        try:
            # Gauge functions may block, keep them off the event loop
            count = await asyncio.to_thread(report_once)
            logger.debug(f"Reported {count} registries")
        except Exception as e:
            logger.error(f"Error in metrics report loop: {e}")

        try:
            # Wait for interval or until stop event is set
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
            break
        except asyncio.TimeoutError:
            continue

    logger.info("Metrics reporter stopped")


def is_reporter_running() -> bool:
    return _report_task is not None and not _report_task.done()


def start_metrics_reporter(interval: Optional[float] = None) -> None:
    """Start the background metrics reporter task."""
    global _report_task, _stop_event

    interval = settings.REPORT_INTERVAL if interval is None else interval
    if interval <= 0:
        logger.info("Metrics reporter disabled")
        return

    if is_reporter_running():
        logger.warning("Metrics reporter already running")
        return

    _stop_event = asyncio.Event()
    _report_task = asyncio.create_task(_metrics_report_loop(_stop_event, interval))
    logger.info("Metrics reporter task created")


def stop_metrics_reporter() -> None:
    """Stop the background metrics reporter task."""
    global _report_task, _stop_event

    if _stop_event:
        _stop_event.set()

    if _report_task and not _report_task.done():
        _report_task.cancel()

    _report_task = None
    _stop_event = None
    logger.info("Metrics reporter stop requested")
