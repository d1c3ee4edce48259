import threading
import pytest
from types import SimpleNamespace
from sqlalchemy import text

from contest_platform import db
from contest_platform.database.models import Entry, Vote
from contest_platform.errors import (
    CompetitionClosed,
    CompetitionNotFound,
    EntryLimitReached,
    EntryNotFound,
    ValidationError,
)

ENTRY = {"title": "Sunset", "description": "Golden hour", "mediaUrl": "https://img.example.com/1.jpg"}


@pytest.fixture
def ledger(services):
    return services.ledger


@pytest.fixture
def users(services):
    made = {}
    for name in ("owner", "voter1", "voter2", "voter3"):
        made[name], _ = services.credentials.register(name, f"{name}@example.com", "secret1")
    return made


@pytest.fixture
def competition(services, users, competition_payload):
    return services.lifecycle.create(users["owner"], dict(competition_payload, maxEntries=2))


@pytest.fixture
def entry(ledger, users, competition):
    return ledger.submit_entry(users["voter1"], competition.id, ENTRY)


def stored_votes(entry_id):
    return db.session.query(Vote).filter_by(entry_id=entry_id).count()


def cached_total(entry_id):
    db.session.expire_all()
    return db.session.get(Entry, entry_id).total_votes


# -- entries ---------------------------------------------------------------- #

def test_submit_entry_defaults(entry, users, competition):
    assert entry.contestant_id == users["voter1"].id
    assert entry.competition_id == competition.id
    assert entry.is_approved is False
    assert entry.total_votes == 0
    assert entry.to_dict()["mediaUrl"] == ENTRY["mediaUrl"]


def test_submit_entry_validation(ledger, users, competition):
    with pytest.raises(ValidationError):
        ledger.submit_entry(users["voter1"], competition.id, dict(ENTRY, mediaUrl="ftp://x"))


def test_submit_entry_unknown_competition(ledger, users):
    with pytest.raises(CompetitionNotFound):
        ledger.submit_entry(users["voter1"], 999, ENTRY)


@pytest.mark.parametrize("status", ["completed", "cancelled"])
def test_submit_entry_to_closed_competition(services, ledger, users, competition, status):
    if status == "completed":
        services.lifecycle.update(users["owner"], competition.id, {"status": "active"})
    services.lifecycle.update(users["owner"], competition.id, {"status": status})
    with pytest.raises(CompetitionClosed):
        ledger.submit_entry(users["voter1"], competition.id, ENTRY)


def test_submit_entry_to_active_competition(services, ledger, users, competition):
    services.lifecycle.update(users["owner"], competition.id, {"status": "active"})
    assert ledger.submit_entry(users["voter1"], competition.id, ENTRY).id


def test_entry_limit(ledger, users, competition):
    ledger.submit_entry(users["voter1"], competition.id, ENTRY)
    ledger.submit_entry(users["voter2"], competition.id, ENTRY)
    with pytest.raises(EntryLimitReached):
        ledger.submit_entry(users["voter3"], competition.id, ENTRY)
    assert len(ledger.entries_for(competition.id)) == 2


def test_entries_for_lists_oldest_first(ledger, users, competition):
    first = ledger.submit_entry(users["voter1"], competition.id, ENTRY)
    second = ledger.submit_entry(users["voter2"], competition.id, dict(ENTRY, title="Sunrise"))
    assert [e.id for e in ledger.entries_for(competition.id)] == [first.id, second.id]


def test_entries_for_unknown_competition(ledger):
    with pytest.raises(CompetitionNotFound):
        ledger.entries_for(999)


# -- votes ------------------------------------------------------------------ #

def test_cast_vote_counts_once_per_voter(ledger, users, entry):
    first = ledger.cast_vote(users["voter2"], entry.id)
    assert first.accepted is True
    assert first.total_votes == 1

    again = ledger.cast_vote(users["voter2"], entry.id)
    assert again.accepted is False
    assert again.already_voted is True
    assert again.total_votes == 1

    assert stored_votes(entry.id) == 1
    assert cached_total(entry.id) == 1


def test_votes_from_different_voters(ledger, users, entry):
    for name in ("voter2", "voter3", "owner"):
        ledger.cast_vote(users[name], entry.id)
    assert ledger.tally(entry.id) == 3
    assert cached_total(entry.id) == stored_votes(entry.id) == 3


def test_contestant_may_vote_for_own_entry(ledger, users, entry):
    assert ledger.cast_vote(users["voter1"], entry.id).accepted is True


def test_cast_vote_unknown_entry(ledger, users):
    with pytest.raises(EntryNotFound):
        ledger.cast_vote(users["voter1"], 999)


def test_tally_of_fresh_entry(ledger, entry):
    assert ledger.tally(entry.id) == 0


def test_vote_events_are_audited(services, ledger, users, entry):
    ledger.cast_vote(users["voter2"], entry.id)
    ledger.cast_vote(users["voter2"], entry.id)
    events = [record["event_type"] for record in services.audit.records()]
    assert events[-2:] == ["vote_cast", "vote_duplicate"]
    assert services.audit.verify_log_integrity() is True


def test_concurrent_votes_from_one_voter_count_once(app, ledger, users, entry):
    """Two simultaneous votes by one voter on the same entry raise the tally by exactly one."""
    entry_id = entry.id
    voter = SimpleNamespace(id=users["voter2"].id, role="member")
    barrier = threading.Barrier(2)
    results, errors = [], []

    def vote():
        with app.app_context():
            try:
                barrier.wait(timeout=5)
                results.append(ledger.cast_vote(voter, entry_id))
            except Exception as e:  # surfaced by the assertions below
                errors.append(e)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=vote) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert errors == []
    assert sorted(r.accepted for r in results) == [False, True]
    assert all(r.total_votes == 1 for r in results)
    assert stored_votes(entry_id) == 1
    assert cached_total(entry_id) == 1


def test_concurrent_votes_from_many_voters(app, services, ledger, entry):
    voters = []
    for i in range(4):
        user, _ = services.credentials.register(f"crowd{i}", f"crowd{i}@example.com", "secret1")
        voters.append(SimpleNamespace(id=user.id, role="member"))
    entry_id = entry.id
    barrier = threading.Barrier(len(voters))
    errors = []

    def vote(voter):
        with app.app_context():
            try:
                barrier.wait(timeout=5)
                ledger.cast_vote(voter, entry_id)
            except Exception as e:
                errors.append(e)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=vote, args=(v,)) for v in voters]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert errors == []
    assert ledger.tally(entry_id) == 4
    assert cached_total(entry_id) == 4


def test_foreign_keys_enforced_on_sqlite(app):
    with app.app_context():
        assert db.session.execute(text("PRAGMA foreign_keys")).scalar() == 1


def test_vote_on_entry_deleted_mid_request(ledger, users, entry, monkeypatch):
    """A vote whose entry vanished after the lookup is refused, not stored as an orphan."""
    stale_id = entry.id
    monkeypatch.setattr(ledger.entries, "find_by_id", lambda record_id: SimpleNamespace(id=record_id))
    ledger.entries.delete(entry)

    with pytest.raises(EntryNotFound):
        ledger.cast_vote(users["voter2"], stale_id)
    assert stored_votes(stale_id) == 0
