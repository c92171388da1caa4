import os

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.base import Base
from app.db.models import Package, PackageOwner, PackagePath, Repository, User


@pytest.fixture()
def db_session():
    """In-memory SQLite session with all tables created."""
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = SessionLocal()
    yield session
    session.close()


def _seed_package(db_session: Session) -> Package:
    """Package "Payments": owners alice + bob, primary owner alice, paths in two repos."""
    db_session.add_all([
        User(phid="PHID-USER-alice", username="alice", real_name="Alice Johnson", email="alice@example.com"),
        User(phid="PHID-USER-bob", username="bob", real_name="Bob Smith", email="bob@example.com"),
        User(phid="PHID-USER-carol", username="carol", real_name=None, email="carol@example.com"),
        Repository(phid="PHID-REPO-api", callsign="API", name="API Server"),
        Repository(phid="PHID-REPO-web", callsign="WEB", name="Web Frontend"),
    ])
    pkg = Package(
        phid="PHID-OPKG-payments",
        name="Payments",
        description="Checkout and billing.",
        primary_owner_phid="PHID-USER-alice",
        auditing_enabled=True,
    )
    pkg.owners = [
        PackageOwner(user_phid="PHID-USER-alice"),
        PackageOwner(user_phid="PHID-USER-bob"),
    ]
    pkg.paths = [
        PackagePath(repository_phid="PHID-REPO-web", path="/src/checkout/"),
        PackagePath(repository_phid="PHID-REPO-api", path="/src/billing/"),
        PackagePath(repository_phid="PHID-REPO-web", path="/src/cart/"),
    ]
    db_session.add(pkg)
    db_session.flush()
    return pkg


@pytest.fixture()
def package(db_session: Session) -> Package:
    return _seed_package(db_session)


@pytest.fixture()
def seed_package():
    """Callable that seeds the demo package into any session."""
    return _seed_package


@pytest.fixture
def client(db_session: Session, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    """TestClient with get_db overridden to use the in-memory session."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+pysqlite:///:memory:")
    monkeypatch.setenv("PRODUCTION_URI", "https://owners.example.com/")
    monkeypatch.setenv("REPLY_HANDLER_DOMAIN", "owners.example.com")
    monkeypatch.setenv("MAIL_KEY", "test-mail-key")

    from app.core.settings import get_settings

    get_settings.cache_clear()

    from app.api.deps import get_db
    from app.main import app

    def _override_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_db
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()

    get_settings.cache_clear()
    os.environ.pop("DATABASE_URL", None)
