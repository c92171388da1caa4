from __future__ import annotations

from typing import Generic, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.db import models

ModelT = TypeVar("ModelT")


class BaseRepository(Generic[ModelT]):
    model: type[ModelT]

    def __init__(self, db: Session):
        self.db = db

    def create(self, **kwargs) -> ModelT:
        entity = self.model(**kwargs)
        self.db.add(entity)
        self.db.flush()
        return entity

    def get(self, entity_id: int) -> ModelT | None:
        return self.db.get(self.model, entity_id)

    def list(self, limit: int = 100, offset: int = 0) -> list[ModelT]:
        stmt = select(self.model).offset(offset).limit(limit)
        return self.db.execute(stmt).scalars().all()

    def update(self, entity: ModelT, **kwargs) -> ModelT:
        for key, value in kwargs.items():
            setattr(entity, key, value)
        self.db.flush()
        return entity

    def delete(self, entity: ModelT) -> None:
        self.db.delete(entity)
        self.db.flush()


class UserRepository(BaseRepository[models.User]):
    model = models.User

    def get_many_by_phid(self, phids: list[str]) -> list[models.User]:
        if not phids:
            return []
        stmt = select(models.User).where(models.User.phid.in_(phids))
        return self.db.execute(stmt).scalars().all()


class RepositoryRepository(BaseRepository[models.Repository]):
    model = models.Repository

    def get_many_by_phid(self, phids: list[str]) -> list[models.Repository]:
        if not phids:
            return []
        stmt = select(models.Repository).where(models.Repository.phid.in_(phids))
        return self.db.execute(stmt).scalars().all()


class PackageRepository(BaseRepository[models.Package]):
    model = models.Package


class PackageOwnerRepository(BaseRepository[models.PackageOwner]):
    model = models.PackageOwner


class PackagePathRepository(BaseRepository[models.PackagePath]):
    model = models.PackagePath


class OutboundMailRepository(BaseRepository[models.OutboundMail]):
    model = models.OutboundMail


class PackageStore:
    """Read-only record store for package owners and path rules."""

    def __init__(self, db: Session):
        self.db = db

    def load_owners(self, package: models.Package) -> list[models.PackageOwner]:
        stmt = (
            select(models.PackageOwner)
            .where(models.PackageOwner.package_id == package.id)
            .order_by(models.PackageOwner.id)
        )
        return self.db.execute(stmt).scalars().all()

    def load_paths(self, package: models.Package) -> list[models.PackagePath]:
        stmt = (
            select(models.PackagePath)
            .where(models.PackagePath.package_id == package.id)
            .order_by(models.PackagePath.id)
        )
        return self.db.execute(stmt).scalars().all()
