"""Notification fan-out.

:class:`NotificationDispatcher` delivers one :class:`TripEvent` to every
affected student concurrently.  A failure for one student never delays or
fails delivery to the others, and nothing is retried here: retry policy,
if any, belongs to the transport.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence

from pybustrack._redact import mask_target
from pybustrack._transport import DeliveryOutcome, DeliveryTransport
from pybustrack.config import BusTrackConfig
from pybustrack.directory import StudentDirectory
from pybustrack.exceptions import DeliveryError, DeliveryPermanentError
from pybustrack.models.directory import StudentAssignment
from pybustrack.models.trip import TripEvent
from pybustrack.notify.catalog import WELCOME, NotificationMessage, render

_logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Fans trip events out to students through a delivery transport."""

    def __init__(
        self,
        transport: DeliveryTransport,
        students: StudentDirectory,
        *,
        concurrency: int = 16,
    ) -> None:
        self._transport = transport
        self._students = students
        self._semaphore = asyncio.Semaphore(concurrency)

    @classmethod
    def from_config(
        cls,
        config: BusTrackConfig,
        transport: DeliveryTransport,
        students: StudentDirectory,
    ) -> NotificationDispatcher:
        """Build a dispatcher bounded by ``config.dispatch_concurrency``."""
        return cls(transport, students, concurrency=config.dispatch_concurrency)

    async def dispatch(self, event: TripEvent, affected_students: Sequence[StudentAssignment]) -> int:
        """Deliver *event* to *affected_students*; returns how many deliveries succeeded."""
        recipients = [s for s in affected_students if s.notification_target]
        if not recipients:
            _logger.debug("No reachable students for %s on bus %s", event.kind, event.bus_id)
            return 0

        message = render(event)
        results = await asyncio.gather(*(self._deliver_one(student, message) for student in recipients))
        delivered = sum(1 for ok in results if ok)
        _logger.info(
            "%s for bus %s delivered to %d/%d students",
            event.kind,
            event.bus_id,
            delivered,
            len(recipients),
        )
        return delivered

    async def send_welcome(self, student: StudentAssignment) -> bool:
        """Confirm to a student that their new notification target works."""
        if not student.notification_target:
            return False
        return await self._deliver_one(student, WELCOME)

    async def _deliver_one(self, student: StudentAssignment, message: NotificationMessage) -> bool:
        target = student.notification_target
        if not target:
            return False

        async with self._semaphore:
            try:
                outcome = await self._transport.deliver(target, message.title, message.body, message.data)
            except DeliveryPermanentError:
                outcome = DeliveryOutcome.PERMANENT_FAILURE
            except DeliveryError as exc:
                _logger.debug("Delivery error for student %s: %s", student.student_id, exc)
                outcome = DeliveryOutcome.TRANSIENT_FAILURE
            except Exception:
                _logger.warning("Delivery transport raised for student %s", student.student_id, exc_info=True)
                outcome = DeliveryOutcome.TRANSIENT_FAILURE

        if outcome == DeliveryOutcome.OK:
            _logger.debug("Notification sent to student %s", student.student_id)
            return True

        if outcome == DeliveryOutcome.PERMANENT_FAILURE:
            _logger.warning(
                "Removing invalid notification target %s for student %s",
                mask_target(target),
                student.student_id,
            )
            self._students.remove_target(student.student_id, target)
            return False

        _logger.warning("Transient delivery failure for student %s", student.student_id)
        return False
