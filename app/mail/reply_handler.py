"""Reply handlers: recipient fan-out and reply-to addressing.

A reply handler is bound to the object that receives inbound replies
(``set_mail_receiver``) and splits a template into the messages that are
actually sent.  Parsing inbound replies is not handled here.
"""
from __future__ import annotations

import hashlib
import hmac
import importlib
import logging
from collections.abc import Callable, Iterable, Mapping
from functools import partial

from app.core.errors import ConfigurationError
from app.db.models import Package
from app.mail.message import MailMessage
from app.owners.handles import DisplayHandle

logger = logging.getLogger(__name__)

_HASH_LENGTH = 16

# Keys that ship as defaults; reply addresses signed with them are forgeable.
INSECURE_MAIL_KEYS = frozenset({"", "change-me"})


def check_mail_key(domain: str | None, mail_key: str) -> None:
    """Raise ``ConfigurationError`` if replies are enabled with a default key."""
    if domain and (mail_key or "").strip() in INSECURE_MAIL_KEYS:
        raise ConfigurationError(
            f"MAIL_KEY must be set to a secret value when reply domain {domain!r} is configured"
        )


class ReplyHandler:
    """Base reply handler: per-recipient or single-mail fan-out."""

    def __init__(
        self,
        domain: str | None = None,
        mail_key: str = "",
        one_mail_per_recipient: bool = True,
    ) -> None:
        check_mail_key(domain, mail_key)
        self.domain = domain
        self.mail_key = mail_key
        self.one_mail_per_recipient = one_mail_per_recipient
        self._receiver = None

    # -- receiver ----------------------------------------------------------

    def validate_mail_receiver(self, receiver: object) -> None:
        """Raise ``TypeError`` if *receiver* cannot take replies. Override."""

    def set_mail_receiver(self, receiver: object) -> ReplyHandler:
        self.validate_mail_receiver(receiver)
        self._receiver = receiver
        return self

    def get_mail_receiver(self):
        if self._receiver is None:
            raise ConfigurationError(
                f"{type(self).__name__} has no mail receiver; call set_mail_receiver() first"
            )
        return self._receiver

    # -- addresses ---------------------------------------------------------

    def get_private_reply_handler_email_address(self, handle: DisplayHandle) -> str | None:
        return None

    def get_public_reply_handler_email_address(self) -> str | None:
        return None

    def compute_mail_hash(self, seed: str) -> str:
        digest = hmac.new(self.mail_key.encode("utf-8"), seed.encode("utf-8"), hashlib.sha256)
        return digest.hexdigest()[:_HASH_LENGTH]

    # -- fan-out -----------------------------------------------------------

    def multiplex_mail(
        self,
        template: MailMessage,
        handles: Mapping[str, DisplayHandle] | Iterable[DisplayHandle],
        exclude: Iterable[str] = (),
    ) -> list[MailMessage]:
        """Split *template* into deliverable messages for *handles*."""
        self.get_mail_receiver()

        if isinstance(handles, Mapping):
            handles = handles.values()
        excluded = set(exclude)
        recipients = [h for h in handles if h.phid not in excluded]
        if not recipients:
            return []

        if self.one_mail_per_recipient:
            mails = []
            for handle in recipients:
                mail = template.copy()
                mail.to_phids = [handle.phid]
                mail.reply_to = self.get_private_reply_handler_email_address(handle)
                mails.append(mail)
            return mails

        mail = template.copy()
        mail.to_phids = [h.phid for h in recipients]
        mail.reply_to = self.get_public_reply_handler_email_address()
        return [mail]


class PackageReplyHandler(ReplyHandler):
    """Reply handler bound to an owners package."""

    def validate_mail_receiver(self, receiver: object) -> None:
        if not isinstance(receiver, Package):
            raise TypeError(f"Receiver must be a Package, got {type(receiver).__name__}")

    def _address(self, scope: str) -> str | None:
        if not self.domain:
            return None
        package = self.get_mail_receiver()
        mail_hash = self.compute_mail_hash(f"{package.phid}:{scope}")
        return f"package+{package.id}+{mail_hash}@{self.domain}"

    def get_private_reply_handler_email_address(self, handle: DisplayHandle) -> str | None:
        return self._address(handle.phid)

    def get_public_reply_handler_email_address(self) -> str | None:
        return self._address("public")


def load_reply_handler_factory(
    path: str,
    *,
    domain: str | None = None,
    mail_key: str = "",
    one_mail_per_recipient: bool = True,
) -> Callable[[], ReplyHandler]:
    """Import the ``ReplyHandler`` subclass named by *path*.

    *path* is either ``"package.module:ClassName"`` or
    ``"package.module.ClassName"``.
    """
    if not path or not path.strip():
        raise ConfigurationError("Reply handler class is not configured")

    path = path.strip()
    if ":" in path:
        module_name, _, class_name = path.partition(":")
    else:
        module_name, _, class_name = path.rpartition(".")
    if not module_name or not class_name:
        raise ConfigurationError(f"Invalid reply handler path: {path!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigurationError(f"Cannot import reply handler module {module_name!r}: {exc}") from exc

    cls = getattr(module, class_name, None)
    if not isinstance(cls, type) or not issubclass(cls, ReplyHandler):
        raise ConfigurationError(f"{path!r} is not a ReplyHandler subclass")

    check_mail_key(domain, mail_key)
    logger.debug("Loaded reply handler %s", path)
    return partial(
        cls,
        domain=domain,
        mail_key=mail_key,
        one_mail_per_recipient=one_mail_per_recipient,
    )
