import pytest
from datetime import datetime

from contest_platform.competitions.lifecycle import check_transition
from contest_platform.database.models import Entry, Vote
from contest_platform import db
from contest_platform.errors import (
    CompetitionNotFound,
    Forbidden,
    InvalidTransition,
    ValidationError,
)


@pytest.fixture
def lifecycle(services):
    return services.lifecycle


@pytest.fixture
def users(services):
    def make(name, role="member"):
        user, _ = services.credentials.register(name, f"{name}@example.com", "secret1")
        if role != "member":
            user = services.credentials.promote(user, role)
        return user
    return {"owner": make("owner"), "other": make("other"), "admin": make("admin", "admin")}


@pytest.fixture
def competition(lifecycle, users, competition_payload):
    return lifecycle.create(users["owner"], competition_payload)


# -- status machine ---------------------------------------------------------- #

@pytest.mark.parametrize("current,requested", [
    ("upcoming", "active"),
    ("active", "completed"),
    ("upcoming", "cancelled"),
    ("active", "cancelled"),
    ("active", "active"),
])
def test_allowed_transitions(current, requested):
    check_transition(current, requested)


@pytest.mark.parametrize("current,requested", [
    ("completed", "active"),
    ("completed", "upcoming"),
    ("cancelled", "active"),
    ("cancelled", "upcoming"),
    ("cancelled", "completed"),
    ("upcoming", "completed"),
    ("active", "upcoming"),
])
def test_rejected_transitions(current, requested):
    with pytest.raises(InvalidTransition):
        check_transition(current, requested)


# -- create / read ---------------------------------------------------------- #

def test_create_sets_creator_and_defaults(competition, users):
    assert competition.creator_id == users["owner"].id
    assert competition.status == "upcoming"
    assert competition.max_entries == 100
    assert competition.entry_fee == 0
    assert competition.start_date == datetime(2025, 1, 5)
    data = competition.to_dict()
    assert data["creator"] == {"id": users["owner"].id, "username": "owner"}


def test_create_rejects_inverted_dates(lifecycle, users, competition_payload):
    competition_payload.update(startDate="2025-01-10", endDate="2025-01-05")
    with pytest.raises(ValidationError):
        lifecycle.create(users["owner"], competition_payload)
    assert lifecycle.list() == []


def test_get_missing(lifecycle):
    with pytest.raises(CompetitionNotFound):
        lifecycle.get(999)


def test_list_newest_first_ties_by_insertion(lifecycle, users, competition_payload):
    fixed = datetime(2025, 1, 1, 12, 0)
    lifecycle.clock = lambda: fixed
    first = lifecycle.create(users["owner"], dict(competition_payload, title="First"))
    second = lifecycle.create(users["owner"], dict(competition_payload, title="Second"))
    lifecycle.clock = lambda: datetime(2025, 1, 2)
    newest = lifecycle.create(users["owner"], dict(competition_payload, title="Newest"))

    assert [c.id for c in lifecycle.list()] == [newest.id, first.id, second.id]


# -- update ----------------------------------------------------------------- #

def test_owner_can_update(lifecycle, competition, users):
    updated = lifecycle.update(users["owner"], competition.id, {"title": "Renamed", "prizePool": 250})
    assert updated.title == "Renamed"
    assert updated.prize_pool == 250.0


def test_admin_can_update_any(lifecycle, competition, users):
    updated = lifecycle.update(users["admin"], competition.id, {"status": "active"})
    assert updated.status == "active"


@pytest.mark.parametrize("patch", [
    {"title": "Hijacked"},
    {"title": ""},
    {"creatorId": 2},
    {"status": "completed"},
    "not even an object",
])
def test_stranger_is_forbidden_whatever_the_payload(lifecycle, competition, users, patch):
    with pytest.raises(Forbidden):
        lifecycle.update(users["other"], competition.id, patch)
    assert lifecycle.get(competition.id).title == "Summer Photo Contest"


def test_update_missing_is_not_found_before_forbidden(lifecycle, users):
    with pytest.raises(CompetitionNotFound):
        lifecycle.update(users["other"], 404, {"title": "x"})


def test_update_rejects_read_only_fields(lifecycle, competition, users):
    with pytest.raises(ValidationError):
        lifecycle.update(users["owner"], competition.id, {"creatorId": users["other"].id})


def test_update_checks_dates_against_stored_record(lifecycle, competition, users):
    # Stored range is 2025-01-05 .. 2025-01-10
    with pytest.raises(ValidationError):
        lifecycle.update(users["owner"], competition.id, {"endDate": "2025-01-01"})
    with pytest.raises(ValidationError):
        lifecycle.update(users["owner"], competition.id, {"startDate": "2025-02-01"})
    updated = lifecycle.update(users["owner"], competition.id, {"endDate": "2025-01-20"})
    assert updated.end_date == datetime(2025, 1, 20)


def test_status_walk(lifecycle, competition, users):
    owner = users["owner"]
    assert lifecycle.update(owner, competition.id, {"status": "active"}).status == "active"
    assert lifecycle.update(owner, competition.id, {"status": "completed"}).status == "completed"
    with pytest.raises(InvalidTransition):
        lifecycle.update(owner, competition.id, {"status": "active"})
    assert lifecycle.get(competition.id).status == "completed"


def test_cancelled_is_terminal(lifecycle, competition, users):
    lifecycle.update(users["owner"], competition.id, {"status": "cancelled"})
    for status in ("upcoming", "active", "completed"):
        with pytest.raises(InvalidTransition):
            lifecycle.update(users["owner"], competition.id, {"status": status})


def test_same_status_patch_is_accepted(lifecycle, competition, users):
    assert lifecycle.update(users["owner"], competition.id, {"status": "upcoming"}).status == "upcoming"


# -- delete ----------------------------------------------------------------- #

def test_stranger_cannot_delete(lifecycle, competition, users):
    with pytest.raises(Forbidden):
        lifecycle.delete(users["other"], competition.id)
    assert lifecycle.get(competition.id)


def test_delete_cascades_to_entries_and_votes(services, lifecycle, competition, users):
    ledger = services.ledger
    entry = ledger.submit_entry(users["other"], competition.id, {
        "title": "Sunset", "description": "Golden hour", "mediaUrl": "https://img.example.com/1.jpg",
    })
    ledger.cast_vote(users["admin"], entry.id)

    lifecycle.delete(users["owner"], competition.id)

    with pytest.raises(CompetitionNotFound):
        lifecycle.get(competition.id)
    assert db.session.query(Entry).count() == 0
    assert db.session.query(Vote).count() == 0


def test_admin_can_delete_any(lifecycle, competition, users):
    lifecycle.delete(users["admin"], competition.id)
    assert lifecycle.list() == []
