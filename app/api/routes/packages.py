"""Package notification mail routes.

POST /packages/{id}/mail/preview  compose notification mails without sending
POST /packages/{id}/mail/send     compose and deliver notification mails

Responses carry recipient PHIDs only, never email addresses.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_mail_config, get_mail_delivery
from app.core.errors import ConfigurationError, DeliveryError, MissingDataError
from app.db.models import Package
from app.db.repositories import PackageRepository, PackageStore
from app.mail.delivery import SMTPMailDelivery
from app.mail.message import MailMessage
from app.owners.handles import HandleResolver
from app.owners.mail import MailConfig, NotificationKind, PackageMail, new_package_mail

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/packages/{package_id}/mail", tags=["packages"])


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class PackageMailBody(BaseModel):
    kind: str = "changed"
    actor_phid: str

    @field_validator("kind")
    @classmethod
    def known_kind(cls, value: str) -> str:
        NotificationKind.parse(value)
        return value.strip().lower()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _load_package(db: Session, package_id: int) -> Package:
    package = PackageRepository(db).get(package_id)
    if package is None:
        raise HTTPException(status_code=404, detail=f"Package {package_id} not found")
    return package


def _composer(
    db: Session,
    package: Package,
    body: PackageMailBody,
    config: MailConfig,
    delivery: SMTPMailDelivery | None = None,
) -> PackageMail:
    return new_package_mail(
        NotificationKind.parse(body.kind),
        package,
        body.actor_phid,
        store=PackageStore(db),
        resolver=HandleResolver(db),
        config=config,
        delivery=delivery,
    )


def _mail_dict(mail: MailMessage) -> dict:
    return {
        "subject": mail.subject,
        "vary_subject": mail.vary_subject,
        "from_phid": mail.from_phid,
        "to_phids": list(mail.to_phids),
        "thread_id": mail.thread_id,
        "is_new_thread": mail.is_new_thread,
        "headers": dict(mail.headers),
        "related_phid": mail.related_phid,
        "reply_to": mail.reply_to,
        "body": mail.body,
    }


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@router.post("/preview", summary="Compose package notification mails without sending")
def preview_package_mail(
    package_id: int,
    body: PackageMailBody,
    db: Session = Depends(get_db),
):
    package = _load_package(db, package_id)
    try:
        config = get_mail_config()
        mails = _composer(db, package, body, config).prepare_mails()
    except MissingDataError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except ConfigurationError as exc:
        logger.error("Mail configuration error: %s", exc)
        raise HTTPException(status_code=500, detail="Mail configuration error")
    return {"package_id": package.id, "mails": [_mail_dict(m) for m in mails]}


@router.post("/send", summary="Compose and deliver package notification mails")
def send_package_mail(
    package_id: int,
    body: PackageMailBody,
    db: Session = Depends(get_db),
    delivery: SMTPMailDelivery = Depends(get_mail_delivery),
):
    package = _load_package(db, package_id)
    try:
        config = get_mail_config()
        _composer(db, package, body, config, delivery).send()
    except MissingDataError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except ConfigurationError as exc:
        logger.error("Mail configuration error: %s", exc)
        raise HTTPException(status_code=500, detail="Mail configuration error")
    except DeliveryError as exc:
        logger.error("Package %s mail delivery failed (outbound mail %s)", package.id, exc.outbound_mail_id)
        raise HTTPException(status_code=502, detail="Mail delivery failed")
    return {"package_id": package.id, "sent": len(delivery.sent_ids)}
