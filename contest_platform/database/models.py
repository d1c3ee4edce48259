# contest_platform/database/models.py

from datetime import datetime, timezone

from contest_platform import db

# Schema for identities, competitions, entries and their vote records.
# Timestamps are naive UTC.

ROLES = ('member', 'admin')
CATEGORIES = ('music', 'art', 'writing', 'photography', 'technology', 'other')
STATUSES = ('upcoming', 'active', 'completed', 'cancelled')


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value else None


class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(50), unique=True, nullable=False)
    email = db.Column(db.String(254), unique=True, nullable=False)
    password_hash = db.Column(db.String(200), nullable=False)  # argon2id, never the clear password
    role = db.Column(db.String(20), nullable=False, default='member')
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'role': self.role,
        }

    def __repr__(self):
        return f'<User {self.id} {self.username}>'


class Competition(db.Model):
    __tablename__ = 'competitions'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500), nullable=False)
    category = db.Column(db.String(20), nullable=False)
    creator_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)
    max_entries = db.Column(db.Integer, nullable=False, default=100)
    entry_fee = db.Column(db.Float, nullable=False, default=0)
    prize_pool = db.Column(db.Float, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default='upcoming')
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    creator = db.relationship('User', lazy='joined')
    entries = db.relationship(
        'Entry', backref='competition', lazy=True,
        cascade='all, delete-orphan', order_by='Entry.id',
    )

    __table_args__ = (
        db.CheckConstraint('start_date < end_date', name='ck_competition_dates'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'category': self.category,
            'creatorId': self.creator_id,
            'creator': {
                'id': self.creator_id,
                'username': self.creator.username if self.creator else None,
            },
            'startDate': _iso(self.start_date),
            'endDate': _iso(self.end_date),
            'maxEntries': self.max_entries,
            'entryFee': self.entry_fee,
            'prizePool': self.prize_pool,
            'status': self.status,
            'createdAt': _iso(self.created_at),
        }

    def __repr__(self):
        return f'<Competition {self.id} {self.status}>'


class Entry(db.Model):
    __tablename__ = 'entries'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500), nullable=False)
    media_url = db.Column(db.String(2048), nullable=False)
    competition_id = db.Column(
        db.Integer, db.ForeignKey('competitions.id', ondelete='CASCADE'),
        nullable=False, index=True,
    )
    contestant_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    # Cached |votes|; only ever changed in the same transaction as a vote insert.
    total_votes = db.Column(db.Integer, nullable=False, default=0)
    is_approved = db.Column(db.Boolean, nullable=False, default=False)
    submitted_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    votes = db.relationship(
        'Vote', backref='entry', lazy=True, cascade='all, delete-orphan',
    )

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'mediaUrl': self.media_url,
            'competitionId': self.competition_id,
            'contestantId': self.contestant_id,
            'totalVotes': self.total_votes,
            'isApproved': self.is_approved,
            'submittedAt': _iso(self.submitted_at),
        }

    def __repr__(self):
        return f'<Entry {self.id} in Competition {self.competition_id}>'


class Vote(db.Model):
    __tablename__ = 'votes'
    id = db.Column(db.Integer, primary_key=True)
    entry_id = db.Column(
        db.Integer, db.ForeignKey('entries.id', ondelete='CASCADE'),
        nullable=False, index=True,
    )
    voter_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    voted_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        db.UniqueConstraint('entry_id', 'voter_id', name='uq_vote_entry_voter'),
    )

    def __repr__(self):
        return f'<Vote {self.id} by User {self.voter_id} on Entry {self.entry_id}>'
