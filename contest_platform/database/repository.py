# contest_platform/database/repository.py

import logging
from abc import ABC, abstractmethod

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from contest_platform import db
from contest_platform.database.models import Competition, Entry, User, Vote
from contest_platform.errors import EntryNotFound, ServerError

# Narrow storage interface used by the domain services. The store is the only
# source of truth; nothing here caches records between calls.

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (OperationalError, PoolTimeoutError)

# PostgreSQL names the violated constraint; SQLite lists the columns instead.
DUPLICATE_VOTE_MARKERS = ('uq_vote_entry_voter', 'votes.entry_id, votes.voter_id')


def is_duplicate_vote(exc):
    message = str(exc.orig)
    return any(marker in message for marker in DUPLICATE_VOTE_MARKERS)


class Repository(ABC):
    @abstractmethod
    def find(self, *criteria, order_by=()): pass
    @abstractmethod
    def find_one(self, *criteria): pass
    @abstractmethod
    def find_by_id(self, record_id): pass
    @abstractmethod
    def count(self, *criteria): pass
    @abstractmethod
    def create(self, **fields): pass
    @abstractmethod
    def update(self, record, **fields): pass
    @abstractmethod
    def delete(self, record): pass


class SQLAlchemyRepository(Repository):
    model = None

    def __init__(self, session_factory=None, read_retries=1):
        self._session_factory = session_factory or (lambda: db.session)
        self.read_retries = read_retries

    @property
    def session(self):
        return self._session_factory()

    def _read(self, operation, description):
        """Run an idempotent read, retrying transient failures."""
        attempts = self.read_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return operation()
            except TRANSIENT_ERRORS as exc:
                self.session.rollback()
                logger.warning("Read %s failed (attempt %d/%d): %s",
                               description, attempt, attempts, exc)
                if attempt == attempts:
                    raise ServerError("Persistence layer unavailable") from exc

    def _write(self, operation, description):
        """Run a write and commit it. IntegrityError is left to the caller to map."""
        session = self.session
        try:
            result = operation(session)
            session.commit()
            return result
        except IntegrityError:
            session.rollback()
            raise
        except TRANSIENT_ERRORS as exc:
            session.rollback()
            logger.error("Write %s failed: %s", description, exc)
            raise ServerError("Persistence layer unavailable") from exc

    def find(self, *criteria, order_by=()):
        stmt = select(self.model).where(*criteria).order_by(*order_by)
        return self._read(lambda: list(self.session.execute(stmt).unique().scalars()),
                          f"{self.model.__name__}.find")

    def find_one(self, *criteria):
        stmt = select(self.model).where(*criteria).limit(1)
        return self._read(lambda: self.session.execute(stmt).unique().scalars().first(),
                          f"{self.model.__name__}.find_one")

    def find_by_id(self, record_id):
        return self._read(lambda: self.session.get(self.model, record_id),
                          f"{self.model.__name__}.find_by_id")

    def count(self, *criteria):
        stmt = select(func.count()).select_from(self.model).where(*criteria)
        return self._read(lambda: self.session.execute(stmt).scalar_one(),
                          f"{self.model.__name__}.count")

    def create(self, **fields):
        def operation(session):
            record = self.model(**fields)
            session.add(record)
            session.flush()
            return record
        return self._write(operation, f"{self.model.__name__}.create")

    def update(self, record, **fields):
        def operation(session):
            for name, value in fields.items():
                setattr(record, name, value)
            session.flush()
            return record
        return self._write(operation, f"{self.model.__name__}.update")

    def delete(self, record):
        return self._write(lambda session: session.delete(record),
                           f"{self.model.__name__}.delete")


class IdentityRepository(SQLAlchemyRepository):
    model = User


class CompetitionRepository(SQLAlchemyRepository):
    model = Competition


class EntryRepository(SQLAlchemyRepository):
    model = Entry

    def add_voter_if_absent(self, entry_id, voter_id, voted_at) -> bool:
        """Insert (entry_id, voter_id) into the vote set if it is not there yet.

        The vote row and the counter increment commit together or not at all.
        Concurrent duplicates are resolved by the unique constraint on
        (entry_id, voter_id): exactly one insert wins, the others roll back
        and get False.
        """
        session = self.session
        try:
            session.add(Vote(entry_id=entry_id, voter_id=voter_id, voted_at=voted_at))
            session.flush()
            session.execute(
                update(Entry)
                .where(Entry.id == entry_id)
                .values(total_votes=Entry.total_votes + 1)
                .execution_options(synchronize_session=False)
            )
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            if is_duplicate_vote(exc):
                return False
            # Foreign key violation: the entry went away under us
            logger.warning("Vote insert for entry %s rejected: %s", entry_id, exc.orig)
            raise EntryNotFound() from exc
        except TRANSIENT_ERRORS as exc:
            session.rollback()
            logger.error("Vote insert for entry %s failed: %s", entry_id, exc)
            raise ServerError("Persistence layer unavailable") from exc
        return True

    def count_voters(self, entry_id) -> int:
        stmt = select(func.count(Vote.id)).where(Vote.entry_id == entry_id)
        return self._read(lambda: self.session.execute(stmt).scalar_one(),
                          "Vote.count_voters")
