from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, JSON, String, Text, UniqueConstraint, func, text as sql_text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    phid: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    username: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    real_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    email: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Repository(Base):
    __tablename__ = "repositories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    phid: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    callsign: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Package(Base):
    __tablename__ = "owners_packages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    phid: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default=sql_text("''"))
    primary_owner_phid: Mapped[str] = mapped_column(String(64), nullable=False)
    auditing_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=sql_text("false")
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    owners: Mapped[list[PackageOwner]] = relationship(
        back_populates="package", order_by="PackageOwner.id", cascade="all, delete-orphan"
    )
    paths: Mapped[list[PackagePath]] = relationship(
        back_populates="package", order_by="PackagePath.id", cascade="all, delete-orphan"
    )


class PackageOwner(Base):
    __tablename__ = "owners_owners"
    __table_args__ = (UniqueConstraint("package_id", "user_phid", name="uq_owners_owners_package_user"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    package_id: Mapped[int] = mapped_column(ForeignKey("owners_packages.id", ondelete="CASCADE"), nullable=False)
    user_phid: Mapped[str] = mapped_column(String(64), nullable=False)

    package: Mapped[Package] = relationship(back_populates="owners")


class PackagePath(Base):
    __tablename__ = "owners_paths"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    package_id: Mapped[int] = mapped_column(ForeignKey("owners_packages.id", ondelete="CASCADE"), nullable=False)
    repository_phid: Mapped[str] = mapped_column(String(64), nullable=False)
    path: Mapped[str] = mapped_column(String(1024), nullable=False)

    package: Mapped[Package] = relationship(back_populates="paths")


class OutboundMail(Base):
    __tablename__ = "outbound_mail"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    related_phid: Mapped[str | None] = mapped_column(String(64), nullable=True)
    from_phid: Mapped[str | None] = mapped_column(String(64), nullable=True)
    to_phids: Mapped[list | None] = mapped_column(JSON, nullable=True)
    subject: Mapped[str] = mapped_column(String(512), nullable=False)
    thread_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    body: Mapped[str] = mapped_column(Text, nullable=False, default="", server_default=sql_text("''"))
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="QUEUED", server_default=sql_text("'QUEUED'")
    )
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=sql_text("0"))
    smtp_response: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
