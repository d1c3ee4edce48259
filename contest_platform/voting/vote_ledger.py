# contest_platform/voting/vote_ledger.py
"""Entry & vote ledger.

Entries belong to exactly one competition and carry a set of voter ids. The
set lives in the ``votes`` table under a unique (entry_id, voter_id)
constraint; ``Entry.total_votes`` is a read cache of its size that is only
touched inside the transaction that inserts a vote. Voting is idempotent: a
repeat vote by the same identity is reported as not accepted and changes
nothing.
"""

import logging
from dataclasses import dataclass

from contest_platform.database.models import Entry, utcnow
from contest_platform.errors import CompetitionClosed, EntryLimitReached, EntryNotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VoteResult:
    entry_id: int
    accepted: bool
    total_votes: int

    @property
    def already_voted(self) -> bool:
        return not self.accepted


class VoteLedger:
    def __init__(self, entries, lifecycle, validator, audit_logger, clock=utcnow):
        self.entries = entries
        self.lifecycle = lifecycle
        self.validator = validator
        self.audit = audit_logger
        self.clock = clock

    def submit_entry(self, identity, competition_id, payload):
        fields = self.validator.validate_entry(payload)
        competition = self.lifecycle.get(competition_id)
        if not self.lifecycle.is_open(competition):
            raise CompetitionClosed(f"Competition is {competition.status} and not accepting entries")
        # Checked at submission time only; lowering maxEntries later removes nothing.
        if self.entries.count(Entry.competition_id == competition.id) >= competition.max_entries:
            raise EntryLimitReached()

        entry = self.entries.create(
            competition_id=competition.id,
            contestant_id=identity.id,
            is_approved=False,
            total_votes=0,
            submitted_at=self.clock(),
            **fields,
        )
        self.audit.log_security_event(
            'entry_submitted', {'entry_id': entry.id, 'competition_id': competition.id},
            user_id=identity.id)
        return entry

    def entries_for(self, competition_id):
        competition = self.lifecycle.get(competition_id)
        return self.entries.find(Entry.competition_id == competition.id,
                                 order_by=(Entry.submitted_at.asc(), Entry.id.asc()))

    def get_entry(self, entry_id):
        entry = self.entries.find_by_id(entry_id)
        if entry is None:
            raise EntryNotFound()
        return entry

    def cast_vote(self, identity, entry_id):
        entry_id = self.get_entry(entry_id).id
        voter_id = identity.id
        accepted = self.entries.add_voter_if_absent(entry_id, voter_id, self.clock())
        total = self.tally(entry_id)
        if accepted:
            self.audit.log_security_event('vote_cast', {'entry_id': entry_id}, user_id=voter_id)
        else:
            logger.info("Duplicate vote by user %s on entry %s ignored", voter_id, entry_id)
            self.audit.log_security_event('vote_duplicate', {'entry_id': entry_id}, user_id=voter_id)
        return VoteResult(entry_id=entry_id, accepted=accepted, total_votes=total)

    def tally(self, entry_id):
        return self.entries.count_voters(entry_id)
