"""
Abstract interface for outbound mail transports.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from pydantic import BaseModel, Field


class MailMessage(BaseModel):
    to: List[str] = Field(..., min_length=1)
    subject: str
    html: str


class MailGateway(ABC):
    """Abstract base for all mail transports."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short slug used in log lines: 'smtp', 'log'."""
        ...

    @abstractmethod
    async def send(self, message: MailMessage) -> None:
        """
        Deliver ``message``.

        Raises on delivery failure; callers that must not fail go through
        ``mail.notifier.Notifier`` instead of calling this directly.
        """
        ...
