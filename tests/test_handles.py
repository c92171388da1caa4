"""Tests for app/owners/handles.py: handle resolution from the database."""
from __future__ import annotations

import pytest

from app.core.errors import MissingDataError
from app.owners.handles import DisplayHandle, HandleResolver


def test_resolves_users_and_repositories(db_session, package):
    handles = HandleResolver(db_session).load_handles(
        ["PHID-USER-alice", "PHID-REPO-api"]
    )

    assert handles == {
        "PHID-USER-alice": DisplayHandle(
            phid="PHID-USER-alice", name="alice", uri="/p/alice/", email="alice@example.com"
        ),
        "PHID-REPO-api": DisplayHandle(phid="PHID-REPO-api", name="rAPI", uri="/diffusion/API/"),
    }


def test_duplicate_phids_resolve_once(db_session, package):
    handles = HandleResolver(db_session).load_handles(["PHID-USER-bob", "PHID-USER-bob"])
    assert list(handles) == ["PHID-USER-bob"]


def test_empty_request(db_session):
    assert HandleResolver(db_session).load_handles([]) == {}


def test_unknown_phids_raise_with_all_missing(db_session, package):
    with pytest.raises(MissingDataError) as excinfo:
        HandleResolver(db_session).load_handles(
            ["PHID-USER-alice", "PHID-USER-nobody", "PHID-REPO-gone", "PHID-TASK-1"]
        )
    assert excinfo.value.missing == ["PHID-REPO-gone", "PHID-TASK-1", "PHID-USER-nobody"]
    assert "PHID-USER-nobody" in str(excinfo.value)
