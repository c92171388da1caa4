"""SMTP mail delivery.

Persists every outbound message as an ``OutboundMail`` row, then delivers
it through an SMTP relay.  Retries up to 3 times with exponential backoff
before marking the row ``FAILED`` and raising ``DeliveryError``.  The row
is committed once its outcome is known, so the record of a sent or failed
message survives a rollback of the surrounding request.

Recipient addresses are never logged, only the outbound mail id.
"""
from __future__ import annotations

import logging
import smtplib
import time
from datetime import datetime, timezone
from email.mime.text import MIMEText
from email.utils import formataddr

from sqlalchemy.orm import Session

from app.core.errors import DeliveryError
from app.db.models import OutboundMail, User
from app.db.repositories import OutboundMailRepository, UserRepository
from app.mail.message import MailMessage

logger = logging.getLogger(__name__)

_MAX_RETRIES = 3
_BACKOFF_BASE = 1  # seconds: 1, 2


def _thread_reference(thread_id: str, domain: str) -> str:
    return f"<{thread_id}@{domain}>"


class SMTPMailDelivery:
    """Deliver ``MailMessage`` objects via SMTP, recording each attempt."""

    def __init__(
        self,
        db: Session,
        smtp_host: str,
        smtp_port: int = 25,
        default_address: str = "noreply@owners.local",
        vary_subjects: bool = True,
    ) -> None:
        self.db = db
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.default_address = default_address
        self.vary_subjects = vary_subjects
        self.sent_ids: list[int] = []

    # -- persistence --------------------------------------------------------

    def _save(self, message: MailMessage) -> OutboundMail:
        return OutboundMailRepository(self.db).create(
            related_phid=message.related_phid,
            from_phid=message.from_phid,
            to_phids=list(message.to_phids),
            subject=message.effective_subject(self.vary_subjects),
            thread_id=message.thread_id,
            body=message.body,
            status="QUEUED",
        )

    # -- MIME ---------------------------------------------------------------

    def _users_by_phid(self, message: MailMessage) -> dict[str, User]:
        phids = list(message.to_phids)
        if message.from_phid:
            phids.append(message.from_phid)
        return {u.phid: u for u in UserRepository(self.db).get_many_by_phid(phids)}

    def recipient_addresses(self, message: MailMessage) -> list[str]:
        by_phid = self._users_by_phid(message)
        return [by_phid[p].email for p in message.to_phids if p in by_phid and by_phid[p].email]

    def build_mime(self, message: MailMessage) -> MIMEText:
        by_phid = self._users_by_phid(message)
        to_addresses = [
            formataddr((by_phid[p].real_name or by_phid[p].username, by_phid[p].email))
            for p in message.to_phids
            if p in by_phid and by_phid[p].email
        ]
        if not to_addresses:
            raise DeliveryError("Message has no deliverable recipients")

        sender = by_phid.get(message.from_phid) if message.from_phid else None
        sender_name = (sender.real_name or sender.username) if sender else None

        msg = MIMEText(message.body, "plain", "utf-8")
        msg["Subject"] = message.effective_subject(self.vary_subjects)
        msg["From"] = formataddr((sender_name, self.default_address)) if sender_name else self.default_address
        msg["To"] = ", ".join(to_addresses)
        if message.reply_to:
            msg["Reply-To"] = message.reply_to

        if message.thread_id:
            domain = self.default_address.rpartition("@")[2] or "localhost"
            reference = _thread_reference(message.thread_id, domain)
            if message.is_new_thread:
                msg["Message-ID"] = reference
            else:
                msg["In-Reply-To"] = reference
                msg["References"] = reference

        for name, value in message.headers.items():
            msg[name] = value
        if message.is_bulk:
            msg["Precedence"] = "bulk"
        return msg

    # -- send ---------------------------------------------------------------

    def deliver(self, message: MailMessage) -> None:
        """Persist *message* and transmit it; raise ``DeliveryError`` on failure."""
        row = self._save(message)

        try:
            mime = self.build_mime(message)
        except DeliveryError as exc:
            row.status = "FAILED"
            row.smtp_response = str(exc)
            self.db.commit()
            logger.error("Outbound mail %s not deliverable: %s", row.id, exc)
            raise DeliveryError(str(exc), outbound_mail_id=row.id) from exc

        recipients = self.recipient_addresses(message)
        last_error: str | None = None
        for attempt in range(1, _MAX_RETRIES + 1):
            row.attempt_count = attempt
            try:
                with smtplib.SMTP(self.smtp_host, self.smtp_port) as server:
                    server.sendmail(self.default_address, recipients, mime.as_string())
            except (smtplib.SMTPException, OSError) as exc:
                # OSError covers refused / reset connections to the relay.
                last_error = str(exc)
                logger.warning(
                    "SMTP error for outbound mail %s attempt %d: %s", row.id, attempt, last_error
                )
                if attempt < _MAX_RETRIES:
                    time.sleep(_BACKOFF_BASE * (2 ** (attempt - 1)))
                continue

            row.status = "SENT"
            row.smtp_response = "250 OK"
            row.sent_at = datetime.now(timezone.utc)
            self.db.commit()
            self.sent_ids.append(row.id)
            logger.info("Delivered outbound mail %s (attempt %d)", row.id, attempt)
            return

        row.status = "FAILED"
        row.smtp_response = last_error
        self.db.commit()
        logger.error("Delivery failed for outbound mail %s after %d attempts", row.id, _MAX_RETRIES)
        raise DeliveryError(
            f"SMTP delivery failed after {_MAX_RETRIES} attempts: {last_error}",
            outbound_mail_id=row.id,
        )
