"""Outbound mail message.

A ``MailMessage`` starts life as a template built by a composer and is
copied per recipient (or per recipient group) by a reply handler.  Each
copy carries a reference to the delivery collaborator that persists and
transmits it.
"""
from __future__ import annotations

import copy as copy_mod
from dataclasses import dataclass, field
from typing import Protocol

from app.core.errors import ConfigurationError


class MailDelivery(Protocol):
    def deliver(self, message: MailMessage) -> None: ...


@dataclass
class MailMessage:
    """A single outbound mail, addressed by PHID."""

    subject: str = ""
    vary_subject: str = ""
    from_phid: str | None = None
    to_phids: list[str] = field(default_factory=list)
    thread_id: str | None = None
    is_new_thread: bool = False
    headers: dict[str, str] = field(default_factory=dict)
    related_phid: str | None = None
    is_bulk: bool = False
    body: str = ""
    reply_to: str | None = None
    delivery: MailDelivery | None = field(default=None, repr=False, compare=False)

    def copy(self) -> MailMessage:
        """Return an independent copy sharing only the delivery collaborator."""
        clone = copy_mod.copy(self)
        clone.to_phids = list(self.to_phids)
        clone.headers = dict(self.headers)
        return clone

    def effective_subject(self, vary: bool) -> str:
        if vary and self.vary_subject:
            return self.vary_subject
        return self.subject

    def save_and_send(self) -> None:
        if self.delivery is None:
            raise ConfigurationError("No mail delivery bound to message")
        self.delivery.deliver(self)
