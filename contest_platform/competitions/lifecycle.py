# contest_platform/competitions/lifecycle.py

import logging

from contest_platform.authentication.rbac import authorize_owner
from contest_platform.database.models import Competition, utcnow
from contest_platform.errors import CompetitionNotFound, InvalidTransition, ValidationError

# Competition records and their status state machine.
#
#   upcoming -> active -> completed
#   upcoming -> cancelled
#   active   -> cancelled
#
# completed and cancelled are terminal.

logger = logging.getLogger(__name__)

TRANSITIONS = {
    'upcoming': {'active', 'cancelled'},
    'active': {'completed', 'cancelled'},
    'completed': set(),
    'cancelled': set(),
}
OPEN_STATUSES = ('upcoming', 'active')


def check_transition(current, requested):
    if requested == current:
        return
    if requested not in TRANSITIONS.get(current, set()):
        raise InvalidTransition(current, requested)


class CompetitionLifecycleManager:
    def __init__(self, competitions, validator, audit_logger, clock=utcnow):
        self.competitions = competitions
        self.validator = validator
        self.audit = audit_logger
        self.clock = clock

    def create(self, identity, payload):
        fields = self.validator.validate_competition(payload)
        competition = self.competitions.create(
            creator_id=identity.id,
            status='upcoming',
            created_at=self.clock(),
            **fields,
        )
        self.audit.log_security_event('competition_created', {'competition_id': competition.id},
                                      user_id=identity.id)
        logger.info("Competition %s created by user %s", competition.id, identity.id)
        return competition

    def list(self):
        return self.competitions.find(order_by=(Competition.created_at.desc(), Competition.id.asc()))

    def get(self, competition_id):
        competition = self.competitions.find_by_id(competition_id)
        if competition is None:
            raise CompetitionNotFound()
        return competition

    def update(self, identity, competition_id, patch):
        competition = self.get(competition_id)
        # Ownership is decided before the patch is even looked at.
        authorize_owner(identity, competition.creator_id)

        changes = self.validator.validate_competition(patch, partial=True)
        start = changes.get('start_date', competition.start_date)
        end = changes.get('end_date', competition.end_date)
        if ('start_date' in changes or 'end_date' in changes) and start >= end:
            raise ValidationError([{'field': 'endDate', 'message': 'endDate must be after startDate'}])
        if 'status' in changes:
            check_transition(competition.status, changes['status'])

        previous_status = competition.status
        competition = self.competitions.update(competition, **changes)
        self.audit.log_security_event(
            'competition_updated',
            {'competition_id': competition.id, 'fields': sorted(changes),
             'status': [previous_status, competition.status]},
            user_id=identity.id)
        return competition

    def delete(self, identity, competition_id):
        competition = self.get(competition_id)
        authorize_owner(identity, competition.creator_id)
        entry_count = len(competition.entries)
        # Entries and their votes go with the competition (cascade).
        self.competitions.delete(competition)
        self.audit.log_security_event(
            'competition_deleted', {'competition_id': competition_id, 'entries_removed': entry_count},
            user_id=identity.id)
        logger.info("Competition %s deleted by user %s (%d entries removed)",
                    competition_id, identity.id, entry_count)

    def is_open(self, competition):
        return competition.status in OPEN_STATUSES
