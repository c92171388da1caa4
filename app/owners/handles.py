"""Display handles for users and repositories.

A handle is the resolved display name and canonical URI for a PHID.  The
resolver loads every requested PHID in one batch and fails loudly when any
of them cannot be resolved, so a mail is never rendered with a hole in it.
"""
from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy.orm import Session

from app.core.errors import MissingDataError
from app.db.repositories import RepositoryRepository, UserRepository

logger = logging.getLogger(__name__)

USER_PHID_PREFIX = "PHID-USER-"
REPOSITORY_PHID_PREFIX = "PHID-REPO-"


@dataclass(frozen=True)
class DisplayHandle:
    """Resolved name + canonical link for a PHID."""

    phid: str
    name: str
    uri: str
    email: str | None = None


class HandleResolver:
    """Resolve user and repository PHIDs from the database."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def load_handles(self, phids: Iterable[str]) -> dict[str, DisplayHandle]:
        wanted = set(phids)
        user_phids = sorted(p for p in wanted if p.startswith(USER_PHID_PREFIX))
        repo_phids = sorted(p for p in wanted if p.startswith(REPOSITORY_PHID_PREFIX))

        handles: dict[str, DisplayHandle] = {}
        for user in UserRepository(self.db).get_many_by_phid(user_phids):
            handles[user.phid] = DisplayHandle(
                phid=user.phid,
                name=user.username,
                uri=f"/p/{user.username}/",
                email=user.email,
            )
        for repo in RepositoryRepository(self.db).get_many_by_phid(repo_phids):
            handles[repo.phid] = DisplayHandle(
                phid=repo.phid,
                name=f"r{repo.callsign}",
                uri=f"/diffusion/{repo.callsign}/",
            )

        missing = wanted - handles.keys()
        if missing:
            logger.error("Unresolved handles: %s", ", ".join(sorted(missing)))
            raise MissingDataError(missing)
        return handles
