"""Owners package notification mail.

Composes the mail sent to package owners when a package is created,
changed or deleted.  Composition runs in two steps:

1. ``load_draft`` reads owners and path rules from the record store and
   resolves every referenced PHID into a display handle in one batch.
   The result is an immutable ``NotificationDraft``.
2. ``render_body`` turns a draft into the plain-text mail body.  Sections
   are rendered in a fixed order; a section with no content is dropped.

``PackageMail`` wires both steps together, builds one message template and
hands it to the configured reply handler for recipient fan-out.
"""
from __future__ import annotations

import enum
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Protocol

from app.core.errors import MissingDataError
from app.core.settings import Settings
from app.core.uri import production_uri
from app.db.models import Package, PackageOwner, PackagePath
from app.mail.message import MailDelivery, MailMessage
from app.mail.reply_handler import ReplyHandler, load_reply_handler_factory
from app.owners.handles import DisplayHandle

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

class PackageRecordStore(Protocol):
    def load_owners(self, package: Package) -> list[PackageOwner]: ...

    def load_paths(self, package: Package) -> list[PackagePath]: ...


class HandleLoader(Protocol):
    def load_handles(self, phids: Iterable[str]) -> Mapping[str, DisplayHandle]: ...


@dataclass(frozen=True)
class MailConfig:
    """Mail settings a composer needs, read once at construction."""

    subject_prefix: str
    reply_handler_factory: Callable[[], ReplyHandler]

    @classmethod
    def from_settings(cls, settings: Settings) -> MailConfig:
        factory = load_reply_handler_factory(
            settings.package_reply_handler,
            domain=settings.reply_handler_domain,
            mail_key=settings.mail_key,
            one_mail_per_recipient=settings.one_mail_per_recipient,
        )
        return cls(subject_prefix=settings.package_subject_prefix or "", reply_handler_factory=factory)


# ---------------------------------------------------------------------------
# Notification kinds
# ---------------------------------------------------------------------------

class NotificationKind(enum.Enum):
    """What happened to the package.  Value is ``(verb, is_new_thread)``."""

    CREATED = ("Created", True)
    CHANGED = ("Changed", False)
    DELETED = ("Deleted", False)

    @property
    def verb(self) -> str:
        return self.value[0]

    @property
    def is_new_thread(self) -> bool:
        return self.value[1]

    @classmethod
    def parse(cls, name: str) -> NotificationKind:
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown notification kind: {name!r}") from None


# ---------------------------------------------------------------------------
# Load
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NotificationDraft:
    """Everything needed to render one package notification."""

    package: Package
    actor_phid: str
    owners: tuple[PackageOwner, ...]
    mail_to: tuple[str, ...]
    paths: Mapping[str, tuple[str, ...]]
    handles: Mapping[str, DisplayHandle]

    def handle(self, phid: str) -> DisplayHandle:
        try:
            return self.handles[phid]
        except KeyError:
            raise MissingDataError([phid]) from None


def compute_mail_to(owner_phids: Iterable[str], primary_owner_phid: str) -> tuple[str, ...]:
    """Owner PHIDs plus the primary owner, first occurrence order, no repeats."""
    mail_to = dict.fromkeys(owner_phids)
    mail_to.setdefault(primary_owner_phid)
    return tuple(mail_to)


def group_paths(rules: Iterable[PackagePath]) -> dict[str, tuple[str, ...]]:
    """Group path rules by repository PHID, keeping first-seen order."""
    grouped: dict[str, dict[str, None]] = {}
    for rule in rules:
        grouped.setdefault(rule.repository_phid, {})[rule.path] = None
    return {repo: tuple(paths) for repo, paths in grouped.items()}


def load_draft(
    package: Package,
    actor_phid: str,
    store: PackageRecordStore,
    resolver: HandleLoader,
) -> NotificationDraft:
    owners = tuple(store.load_owners(package))
    mail_to = compute_mail_to((o.user_phid for o in owners), package.primary_owner_phid)
    paths = group_paths(store.load_paths(package))

    phids = set(mail_to)
    phids.add(actor_phid)
    phids.update(paths)
    handles = dict(resolver.load_handles(phids))

    missing = phids - handles.keys()
    if missing:
        raise MissingDataError(missing)

    return NotificationDraft(
        package=package,
        actor_phid=actor_phid,
        owners=owners,
        mail_to=mail_to,
        paths=MappingProxyType(paths),
        handles=MappingProxyType(handles),
    )


# ---------------------------------------------------------------------------
# Render
# ---------------------------------------------------------------------------

def render_package_title(package: Package) -> str:
    return package.name


def render_summary_section(
    draft: NotificationDraft,
    kind: NotificationKind,
    uri_builder: Callable[[str], str] = production_uri,
) -> str:
    package = draft.package
    actor = draft.handle(draft.actor_phid).name
    return "\n".join([
        f"{actor} {kind.verb.lower()} {render_package_title(package)}.",
        "",
        "PACKAGE DETAIL",
        "  " + uri_builder(f"/owners/package/{package.id}/"),
    ])


def render_description_section(draft: NotificationDraft) -> str:
    return "PACKAGE DESCRIPTION\n  " + (draft.package.description or "")


def render_primary_owner_section(draft: NotificationDraft) -> str:
    return "PRIMARY OWNER\n  " + draft.handle(draft.package.primary_owner_phid).name


def render_owners_section(draft: NotificationDraft) -> str | None:
    if not draft.owners:
        return None
    owner_phids = dict.fromkeys(o.user_phid for o in draft.owners)
    names = [draft.handle(phid).name for phid in owner_phids]
    return "OWNERS\n  " + ", ".join(names)


def render_auditing_enabled_section(draft: NotificationDraft) -> str:
    status = "Enabled" if draft.package.auditing_enabled else "Disabled"
    return "AUDITING ENABLED STATUS\n  " + status


def render_repo_sub_section(
    draft: NotificationDraft,
    repository_phid: str,
    paths: Iterable[str],
    uri_builder: Callable[[str], str] = production_uri,
) -> str:
    repo = draft.handle(repository_phid)
    lines = [f"  In repository {repo.name} - {uri_builder(repo.uri)}"]
    lines.extend(f"    {path}" for path in paths)
    return "\n".join(lines)


def render_paths_section(
    draft: NotificationDraft,
    uri_builder: Callable[[str], str] = production_uri,
) -> str:
    lines = ["PATHS"]
    for repository_phid, paths in draft.paths.items():
        lines.append(render_repo_sub_section(draft, repository_phid, paths, uri_builder))
    return "\n".join(lines)


def render_body(
    draft: NotificationDraft,
    kind: NotificationKind,
    uri_builder: Callable[[str], str] = production_uri,
) -> str:
    sections = [
        render_summary_section(draft, kind, uri_builder),
        render_description_section(draft),
        render_primary_owner_section(draft),
        render_owners_section(draft),
        render_auditing_enabled_section(draft),
        render_paths_section(draft, uri_builder),
    ]
    return "\n\n".join(s for s in sections if s)


# ---------------------------------------------------------------------------
# Subject & threading
# ---------------------------------------------------------------------------

def render_subjects(prefix: str, verb: str, title: str) -> tuple[str, str]:
    """Return ``(subject, vary_subject)``."""
    prefix = prefix or ""
    return f"{prefix} {title}".strip(), f"{prefix} [{verb}] {title}".strip()


def mail_threading(package: Package) -> tuple[str, str]:
    """Return ``(thread_id, thread_topic)`` shared by all mail about *package*."""
    return f"package-{package.phid}", f"package {package.phid}"


# ---------------------------------------------------------------------------
# Composer
# ---------------------------------------------------------------------------

class PackageMail:
    """Compose and send one notification about *package*."""

    def __init__(
        self,
        kind: NotificationKind,
        package: Package,
        actor_phid: str,
        *,
        store: PackageRecordStore,
        resolver: HandleLoader,
        config: MailConfig,
        delivery: MailDelivery | None = None,
        uri_builder: Callable[[str], str] = production_uri,
    ) -> None:
        self.kind = kind
        self.package = package
        self.actor_phid = actor_phid
        self.store = store
        self.resolver = resolver
        self.config = config
        self.delivery = delivery
        self.uri_builder = uri_builder

    def need_send(self) -> bool:
        return True

    def new_reply_handler(self) -> ReplyHandler:
        reply_handler = self.config.reply_handler_factory()
        reply_handler.set_mail_receiver(self.package)
        return reply_handler

    def build_template(self, draft: NotificationDraft) -> MailMessage:
        title = render_package_title(self.package)
        subject, vary_subject = render_subjects(self.config.subject_prefix, self.kind.verb, title)
        thread_id, thread_topic = mail_threading(self.package)
        return MailMessage(
            subject=subject,
            vary_subject=vary_subject,
            from_phid=draft.actor_phid,
            thread_id=thread_id,
            is_new_thread=self.kind.is_new_thread,
            headers={"Thread-Topic": thread_topic},
            related_phid=self.package.phid,
            is_bulk=True,
            body=render_body(draft, self.kind, self.uri_builder),
            delivery=self.delivery,
        )

    def prepare_mails(self) -> list[MailMessage]:
        if not self.need_send():
            logger.info("Package %s: %s mail not needed", self.package.id, self.kind.name.lower())
            return []

        draft = load_draft(self.package, self.actor_phid, self.store, self.resolver)
        template = self.build_template(draft)

        reply_handler = self.new_reply_handler()
        recipients = [draft.handles[phid] for phid in draft.mail_to]
        mails = reply_handler.multiplex_mail(template, recipients, [])
        logger.info(
            "Package %s: prepared %d %s mail(s)", self.package.id, len(mails), self.kind.name.lower()
        )
        return mails

    def send(self) -> None:
        for mail in self.prepare_mails():
            mail.save_and_send()


class CreatedPackageMail(PackageMail):
    def __init__(self, package: Package, actor_phid: str, **kwargs) -> None:
        super().__init__(NotificationKind.CREATED, package, actor_phid, **kwargs)


class ChangedPackageMail(PackageMail):
    """Change notification.

    When *changed_fields* is given and empty, the edit changed nothing and
    no mail is sent.
    """

    def __init__(
        self,
        package: Package,
        actor_phid: str,
        changed_fields: Iterable[str] | None = None,
        **kwargs,
    ) -> None:
        super().__init__(NotificationKind.CHANGED, package, actor_phid, **kwargs)
        self.changed_fields = None if changed_fields is None else frozenset(changed_fields)

    def need_send(self) -> bool:
        return self.changed_fields is None or bool(self.changed_fields)


class DeletedPackageMail(PackageMail):
    def __init__(self, package: Package, actor_phid: str, **kwargs) -> None:
        super().__init__(NotificationKind.DELETED, package, actor_phid, **kwargs)


_MAIL_CLASSES: dict[NotificationKind, type[PackageMail]] = {
    NotificationKind.CREATED: CreatedPackageMail,
    NotificationKind.CHANGED: ChangedPackageMail,
    NotificationKind.DELETED: DeletedPackageMail,
}


def new_package_mail(kind: NotificationKind, package: Package, actor_phid: str, **kwargs) -> PackageMail:
    """Return the ``PackageMail`` variant for *kind*."""
    return _MAIL_CLASSES[kind](package, actor_phid, **kwargs)
