#!/usr/bin/env python3
"""Seed demo data: 4 users, 2 repositories, 1 owners package; print its mail.

Usage:
    python scripts/seed_demo.py          # uses DATABASE_URL from env / .env
    DATABASE_URL=... python scripts/seed_demo.py
"""
from __future__ import annotations

import sys

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

# Ensure project root is on sys.path
sys.path.insert(0, ".")

from app.core.settings import get_settings
from app.db.base import Base
from app.db.models import Package, PackageOwner, PackagePath, Repository, User
from app.db.repositories import PackageStore
from app.owners.handles import HandleResolver
from app.owners.mail import CreatedPackageMail, MailConfig


def seed(session: Session) -> Package:
    """Insert demo users, repositories and a package with owners and paths."""

    demo_users = [
        # (phid, username, real name, email)
        ("PHID-USER-alice", "alice", "Alice Johnson", "alice.johnson@example.com"),
        ("PHID-USER-bob", "bob", "Bob Smith", "bob.smith@example.com"),
        ("PHID-USER-priya", "priya", "Priya Patel", "priya.patel@example.com"),
        ("PHID-USER-carlos", "carlos", "Carlos Rivera", "carlos.r@example.com"),
    ]
    for phid, username, real_name, email in demo_users:
        session.add(User(phid=phid, username=username, real_name=real_name, email=email))

    session.add(Repository(phid="PHID-REPO-web", callsign="WEB", name="Web Frontend"))
    session.add(Repository(phid="PHID-REPO-api", callsign="API", name="API Server"))

    package = Package(
        phid="PHID-OPKG-payments",
        name="Payments",
        description="Checkout, billing and invoicing code.",
        primary_owner_phid="PHID-USER-alice",
        auditing_enabled=True,
    )
    package.owners = [
        PackageOwner(user_phid="PHID-USER-alice"),
        PackageOwner(user_phid="PHID-USER-bob"),
    ]
    package.paths = [
        PackagePath(repository_phid="PHID-REPO-api", path="/src/billing/"),
        PackagePath(repository_phid="PHID-REPO-web", path="/src/checkout/"),
        PackagePath(repository_phid="PHID-REPO-api", path="/src/invoices/"),
    ]
    session.add(package)
    session.commit()
    print(f"Seeded {len(demo_users)} users, 2 repositories, package {package.id}.")
    return package


def main() -> None:
    settings = get_settings()
    engine = create_engine(settings.database_url)
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        package = seed(session)
        mail = CreatedPackageMail(
            package,
            "PHID-USER-carlos",
            store=PackageStore(session),
            resolver=HandleResolver(session),
            config=MailConfig.from_settings(settings),
        )
        for message in mail.prepare_mails():
            print(f"--- to {', '.join(message.to_phids)}: {message.subject}")
            print(message.body)


if __name__ == "__main__":
    main()
