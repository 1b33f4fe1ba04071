"""
Notifier: fire-and-forget mail dispatch.

``dispatch()`` schedules delivery as its own asyncio task and returns
immediately.  Delivery failures are logged and dropped: the flow that
triggered the mail has already decided its outcome and is never affected.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Set

from mail.base import MailGateway, MailMessage

logger = logging.getLogger(__name__)


class Notifier:
    def __init__(self, gateway: MailGateway) -> None:
        self._gateway = gateway
        # Strong references; the loop only keeps weak ones to running tasks
        self._pending: Set[asyncio.Task] = set()

    @property
    def gateway(self) -> MailGateway:
        return self._gateway

    @property
    def pending(self) -> int:
        return len(self._pending)

    def dispatch(self, message: MailMessage) -> asyncio.Task:
        """Schedule ``message`` for delivery without awaiting it."""
        task = asyncio.create_task(self._deliver(message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _deliver(self, message: MailMessage) -> None:
        recipients = ", ".join(message.to)
        try:
            await self._gateway.send(message)
        except Exception:
            logger.exception(
                "Failed to send '%s' to %s via %s. Continuing without blocking.",
                message.subject,
                recipients,
                self._gateway.name,
            )

    async def drain(self) -> None:
        """Wait for every mail dispatched so far (shutdown, tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
