"""Tests for the package mail API routes.

Uses the in-memory SQLite session from conftest and mocks SMTP.
"""
from __future__ import annotations

import smtplib
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from app.db.base import Base
from app.db.models import OutboundMail


def _post(client: TestClient, package_id: int, action: str, **body):
    payload = {"kind": "changed", "actor_phid": "PHID-USER-carol"}
    payload.update(body)
    return client.post(f"/packages/{package_id}/mail/{action}", json=payload)


class TestPreview:
    def test_returns_one_mail_per_recipient(self, client: TestClient, package) -> None:
        resp = _post(client, package.id, "preview")

        assert resp.status_code == 200
        mails = resp.json()["mails"]
        assert [m["to_phids"] for m in mails] == [["PHID-USER-alice"], ["PHID-USER-bob"]]
        assert mails[0]["subject"] == "[Package] Payments"
        assert mails[0]["vary_subject"] == "[Package] [Changed] Payments"
        assert mails[0]["reply_to"].endswith("@owners.example.com")

    def test_body_lists_paths_by_repository(self, client: TestClient, package) -> None:
        body = _post(client, package.id, "preview").json()["mails"][0]["body"]

        assert body.startswith("carol changed Payments.\n")
        assert f"https://owners.example.com/owners/package/{package.id}/" in body
        assert body.endswith("\n".join([
            "PATHS",
            "  In repository rWEB - https://owners.example.com/diffusion/WEB/",
            "    /src/checkout/",
            "    /src/cart/",
            "  In repository rAPI - https://owners.example.com/diffusion/API/",
            "    /src/billing/",
        ]))

    def test_created_kind_starts_thread(self, client: TestClient, package) -> None:
        mails = _post(client, package.id, "preview", kind="Created").json()["mails"]
        assert all(m["is_new_thread"] for m in mails)

    def test_response_has_no_email_addresses(self, client: TestClient, package) -> None:
        text = _post(client, package.id, "preview").text
        assert "alice@example.com" not in text

    def test_unknown_package_404(self, client: TestClient, package) -> None:
        assert _post(client, 9999, "preview").status_code == 404

    def test_unknown_kind_422(self, client: TestClient, package) -> None:
        assert _post(client, package.id, "preview", kind="renamed").status_code == 422

    def test_unknown_actor_422(self, client: TestClient, package) -> None:
        resp = _post(client, package.id, "preview", actor_phid="PHID-USER-ghost")
        assert resp.status_code == 422
        assert "PHID-USER-ghost" in resp.json()["detail"]


class TestSend:
    @patch("app.mail.delivery.smtplib.SMTP")
    def test_sends_and_records(self, mock_smtp_cls, client: TestClient, package, db_session) -> None:
        mock_server = MagicMock()
        mock_smtp_cls.return_value.__enter__ = MagicMock(return_value=mock_server)
        mock_smtp_cls.return_value.__exit__ = MagicMock(return_value=False)

        resp = _post(client, package.id, "send")

        assert resp.status_code == 200
        assert resp.json()["sent"] == 2
        assert mock_server.sendmail.call_count == 2
        rows = db_session.execute(select(OutboundMail)).scalars().all()
        assert {r.status for r in rows} == {"SENT"}

    @patch("app.mail.delivery.time.sleep")
    @patch("app.mail.delivery.smtplib.SMTP")
    def test_delivery_failure_502(self, mock_smtp_cls, mock_sleep, client: TestClient, package) -> None:
        mock_server = MagicMock()
        mock_server.sendmail.side_effect = smtplib.SMTPException("relay down")
        mock_smtp_cls.return_value.__enter__ = MagicMock(return_value=mock_server)
        mock_smtp_cls.return_value.__exit__ = MagicMock(return_value=False)

        resp = _post(client, package.id, "send")

        assert resp.status_code == 502
        # Failure on the first recipient aborts the rest.
        assert mock_server.sendmail.call_count == 3


# ---------------------------------------------------------------------------
# Real get_db against a file-backed database
# ---------------------------------------------------------------------------

@pytest.fixture()
def file_db(tmp_path, monkeypatch: pytest.MonkeyPatch, seed_package):
    """Point the real session factory at a SQLite file seeded with the demo package."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite+pysqlite:///{tmp_path / 'owners.db'}")
    monkeypatch.setenv("PRODUCTION_URI", "https://owners.example.com/")
    monkeypatch.setenv("REPLY_HANDLER_DOMAIN", "owners.example.com")
    monkeypatch.setenv("MAIL_KEY", "test-mail-key")

    from app.api import deps
    from app.core.settings import get_settings

    get_settings.cache_clear()
    monkeypatch.setattr(deps, "_engine", None)
    monkeypatch.setattr(deps, "_SessionLocal", None)
    factory = deps._get_session_factory()
    Base.metadata.create_all(bind=deps._engine)

    with factory() as db:
        package_id = seed_package(db).id
        db.commit()

    yield factory, package_id

    deps._engine.dispose()
    get_settings.cache_clear()


@pytest.fixture()
def file_client(file_db) -> TestClient:
    from app.main import app

    app.dependency_overrides.clear()
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


def _statuses(factory) -> list[str]:
    with factory() as db:
        return [r.status for r in db.execute(select(OutboundMail).order_by(OutboundMail.id)).scalars()]


class TestSendPersistence:
    @patch("app.mail.delivery.smtplib.SMTP")
    def test_sent_rows_committed(self, mock_smtp_cls, file_db, file_client: TestClient) -> None:
        factory, package_id = file_db
        mock_server = MagicMock()
        mock_smtp_cls.return_value.__enter__ = MagicMock(return_value=mock_server)
        mock_smtp_cls.return_value.__exit__ = MagicMock(return_value=False)

        resp = _post(file_client, package_id, "send")

        assert resp.status_code == 200
        assert resp.json()["sent"] == 2
        assert _statuses(factory) == ["SENT", "SENT"]

    @patch("app.mail.delivery.time.sleep")
    @patch("app.mail.delivery.smtplib.SMTP")
    def test_failed_send_keeps_delivered_and_failed_rows(
        self, mock_smtp_cls, mock_sleep, file_db, file_client: TestClient
    ) -> None:
        factory, package_id = file_db
        mock_server = MagicMock()
        mock_server.sendmail.side_effect = [None] + [smtplib.SMTPException("relay down")] * 3
        mock_smtp_cls.return_value.__enter__ = MagicMock(return_value=mock_server)
        mock_smtp_cls.return_value.__exit__ = MagicMock(return_value=False)

        resp = _post(file_client, package_id, "send")

        assert resp.status_code == 502
        assert mock_server.sendmail.call_count == 4
        # The request rolls back, but the first recipient really got the mail.
        assert _statuses(factory) == ["SENT", "FAILED"]

    @patch("app.mail.delivery.time.sleep")
    @patch("app.mail.delivery.smtplib.SMTP")
    def test_refused_connection_is_502(self, mock_smtp_cls, mock_sleep, file_db, file_client: TestClient) -> None:
        factory, package_id = file_db
        mock_smtp_cls.side_effect = ConnectionRefusedError(111, "Connection refused")

        resp = _post(file_client, package_id, "send")

        assert resp.status_code == 502
        assert _statuses(factory) == ["FAILED"]
