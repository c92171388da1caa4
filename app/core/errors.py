"""Error taxonomy for package mail composition and delivery.

Nothing here is recovered locally: every error aborts the current
composition and is surfaced to the caller unchanged.
"""
from __future__ import annotations

from collections.abc import Iterable


class OwnersMailError(Exception):
    """Base class for all package mail errors."""


class MissingDataError(OwnersMailError):
    """A referenced identifier has no resolvable handle."""

    def __init__(self, missing: Iterable[str], message: str | None = None) -> None:
        self.missing = sorted(set(missing))
        super().__init__(message or f"Unable to resolve handles for: {', '.join(self.missing)}")


class ConfigurationError(OwnersMailError):
    """Mail configuration is absent or invalid."""


class DeliveryError(OwnersMailError):
    """The delivery collaborator failed to transmit a message."""

    def __init__(self, message: str, outbound_mail_id: int | None = None) -> None:
        self.outbound_mail_id = outbound_mail_id
        super().__init__(message)
