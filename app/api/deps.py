"""FastAPI dependency injection: database sessions and mail collaborators."""
from __future__ import annotations

from collections.abc import Generator

from fastapi import Depends
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.core.settings import get_settings
from app.mail.delivery import SMTPMailDelivery
from app.owners.mail import MailConfig

_engine = None
_SessionLocal = None


def _get_session_factory() -> sessionmaker:
    global _engine, _SessionLocal
    if _SessionLocal is None:
        _engine = create_engine(get_settings().database_url, pool_pre_ping=True)
        _SessionLocal = sessionmaker(bind=_engine, autocommit=False, autoflush=False)
    return _SessionLocal


def get_db() -> Generator[Session, None, None]:
    """Yield a SQLAlchemy session; commit on success, rollback on error."""
    factory = _get_session_factory()
    db = factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_mail_config() -> MailConfig:
    """Return the package mail configuration built from settings."""
    return MailConfig.from_settings(get_settings())


def get_mail_delivery(db: Session = Depends(get_db)) -> SMTPMailDelivery:
    """Return an SMTP delivery bound to the current DB session."""
    settings = get_settings()
    return SMTPMailDelivery(
        db,
        smtp_host=settings.smtp_host,
        smtp_port=settings.smtp_port,
        default_address=settings.mail_default_address,
        vary_subjects=settings.vary_subjects,
    )
