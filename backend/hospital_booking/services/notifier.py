# hospital_booking/services/notifier.py
import asyncio
import logging
from typing import Protocol, Set

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def appointment_booked(self, appointment, payment) -> None: ...


class LoggingNotifier:
    """Stand-in delivery channel: records what would be sent."""

    async def appointment_booked(self, appointment, payment) -> None:
        logger.info(
            f"[SIMULATED NOTIFICATION] appointment {appointment.id} booked for patient "
            f"{appointment.patient_id} at {appointment.starts_at}, payment {payment.transaction_id} ({payment.status})"
        )


_pending: Set[asyncio.Task] = set()


def _log_failure(task: asyncio.Task) -> None:
    _pending.discard(task)
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.warning(f"Booking notification failed: {exc!r}")


def notify_booked(notifier: Notifier, appointment, payment) -> asyncio.Task:
    """Fire-and-forget: delivery errors are logged and never reach the caller."""
    task = asyncio.create_task(notifier.appointment_booked(appointment, payment))
    _pending.add(task)
    task.add_done_callback(_log_failure)
    return task
