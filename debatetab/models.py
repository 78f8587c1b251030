from debatetab.app import db
from debatetab.time_utils import utcnow_naive, iso_or_none

POSITIONS = ('OG', 'OO', 'CG', 'CO')
POSITION_NAMES = {
    'OG': 'Opening Government',
    'OO': 'Opening Opposition',
    'CG': 'Closing Government',
    'CO': 'Closing Opposition',
}
SCORE_TYPES = ('TEAM', 'INDIVIDUAL')


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    name = db.Column(db.String(120), default='')
    is_admin = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    def to_dict(self):
        return {
            'id': self.id, 'username': self.username, 'email': self.email,
            'name': self.name, 'is_admin': self.is_admin,
            'judge_id': self.judge.id if self.judge else None,
            'created_at': iso_or_none(self.created_at),
        }


# ── Registry ──────────────────────────────────────────────────────────

class Team(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), unique=True, nullable=False)
    institution = db.Column(db.String(200), default='')
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    participants = db.relationship(
        'Participant',
        backref='team',
        order_by='Participant.id',
        cascade='all, delete-orphan',
    )

    def to_dict(self, include_participants=True):
        data = {
            'id': self.id,
            'name': self.name,
            'institution': self.institution or '',
            'created_at': iso_or_none(self.created_at),
        }
        if include_participants:
            data['participants'] = [p.to_dict() for p in self.participants]
        return data


class Participant(db.Model):
    """A speaker; belongs to exactly one team."""
    id = db.Column(db.Integer, primary_key=True)
    team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), default='')

    def to_dict(self):
        return {
            'id': self.id,
            'team_id': self.team_id,
            'name': self.name,
            'email': self.email or '',
        }


class Room(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), unique=True, nullable=False)

    def to_dict(self):
        return {'id': self.id, 'name': self.name}


class Judge(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), default='')
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True, unique=True)

    user = db.relationship('User', backref=db.backref('judge', uselist=False))

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email or '',
            'user_id': self.user_id,
        }


# ── Rounds and draws ──────────────────────────────────────────────────

round_assignment_judge = db.Table(
    'round_assignment_judge',
    db.Column('round_assignment_id', db.Integer, db.ForeignKey('round_assignment.id'), primary_key=True),
    db.Column('judge_id', db.Integer, db.ForeignKey('judge.id'), primary_key=True),
)


class Round(db.Model):
    """One tournament stage. `number` is the stage ordinal and is unique."""
    id = db.Column(db.Integer, primary_key=True)
    number = db.Column(db.Integer, nullable=False)
    name = db.Column(db.String(120), nullable=False)
    motion = db.Column(db.Text, default='')
    description = db.Column(db.Text, default='')
    completed = db.Column(db.Boolean, default=False, nullable=False)
    completed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    __table_args__ = (
        db.UniqueConstraint('number', name='uq_round_number'),
    )

    assignments = db.relationship(
        'RoundAssignment',
        backref='round',
        order_by='RoundAssignment.id',
        cascade='all, delete-orphan',
    )

    def to_dict(self, include_assignments=False):
        data = {
            'id': self.id,
            'number': self.number,
            'name': self.name,
            'motion': self.motion or '',
            'description': self.description or '',
            'completed': self.completed,
            'completed_at': iso_or_none(self.completed_at),
            'created_at': iso_or_none(self.created_at),
        }
        if include_assignments:
            data['assignments'] = [a.to_dict() for a in self.assignments]
        return data


class RoundAssignment(db.Model):
    """One debate: a room within a round, with its judge (or panel)."""
    id = db.Column(db.Integer, primary_key=True)
    round_id = db.Column(db.Integer, db.ForeignKey('round.id'), nullable=False)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False)
    judge_id = db.Column(db.Integer, db.ForeignKey('judge.id'), nullable=True)

    __table_args__ = (
        db.UniqueConstraint('round_id', 'room_id', name='uq_round_assignment_room'),
    )

    room = db.relationship('Room')
    judge = db.relationship('Judge', foreign_keys=[judge_id])
    panel = db.relationship('Judge', secondary=round_assignment_judge)
    team_assignments = db.relationship(
        'TeamAssignment',
        backref='round_assignment',
        cascade='all, delete-orphan',
    )
    match_results = db.relationship(
        'MatchResult',
        backref='round_assignment',
        cascade='all, delete-orphan',
    )

    def ordered_team_assignments(self):
        return sorted(self.team_assignments, key=lambda ta: POSITIONS.index(ta.position))

    def judge_ids(self):
        ids = [judge.id for judge in self.panel]
        if self.judge_id and self.judge_id not in ids:
            ids.insert(0, self.judge_id)
        return ids

    def to_dict(self):
        return {
            'id': self.id,
            'round_id': self.round_id,
            'room': self.room.to_dict() if self.room else None,
            'judge': self.judge.to_dict() if self.judge else None,
            'judge_ids': self.judge_ids(),
            'teams': [ta.to_dict() for ta in self.ordered_team_assignments()],
            'results': [
                result.to_dict()
                for result in sorted(self.match_results, key=lambda r: r.rank)
            ],
        }


class TeamAssignment(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    round_assignment_id = db.Column(db.Integer, db.ForeignKey('round_assignment.id'), nullable=False)
    round_id = db.Column(db.Integer, db.ForeignKey('round.id'), nullable=False)
    team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=False)
    position = db.Column(db.String(2), nullable=False)  # OG, OO, CG, CO

    __table_args__ = (
        db.UniqueConstraint('round_assignment_id', 'position', name='uq_team_assignment_position'),
        db.UniqueConstraint('round_id', 'team_id', name='uq_team_assignment_round_team'),
    )

    team = db.relationship('Team', backref='team_assignments')

    def to_dict(self):
        return {
            'id': self.id,
            'team_id': self.team_id,
            'team_name': self.team.name if self.team else None,
            'position': self.position,
            'position_name': POSITION_NAMES.get(self.position, self.position),
        }


# ── Ballots ───────────────────────────────────────────────────────────

class ScoreSubmission(db.Model):
    """One accepted ballot. `lock_key` rejects a second ballot for the same slot."""
    id = db.Column(db.Integer, primary_key=True)
    round_id = db.Column(db.Integer, db.ForeignKey('round.id'), nullable=False)
    judge_id = db.Column(db.Integer, db.ForeignKey('judge.id'), nullable=False)
    round_assignment_id = db.Column(db.Integer, db.ForeignKey('round_assignment.id'), nullable=False)
    lock_key = db.Column(db.String(80), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    round = db.relationship('Round')
    judge = db.relationship('Judge')
    scores = db.relationship('Score', backref='submission', cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'round_id': self.round_id,
            'judge_id': self.judge_id,
            'judge_name': self.judge.name if self.judge else None,
            'round_assignment_id': self.round_assignment_id,
            'created_at': iso_or_none(self.created_at),
            'scores': [score.to_dict() for score in self.scores],
        }


class Score(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    submission_id = db.Column(db.Integer, db.ForeignKey('score_submission.id'), nullable=False)
    round_id = db.Column(db.Integer, db.ForeignKey('round.id'), nullable=False)
    judge_id = db.Column(db.Integer, db.ForeignKey('judge.id'), nullable=False)
    team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=True)
    participant_id = db.Column(db.Integer, db.ForeignKey('participant.id'), nullable=True)
    score_type = db.Column(db.String(12), nullable=False)  # TEAM, INDIVIDUAL
    value = db.Column(db.Float, nullable=False)

    __table_args__ = (
        db.Index('ix_score_round_type', 'round_id', 'score_type'),
    )

    round = db.relationship('Round')
    team = db.relationship('Team')
    participant = db.relationship('Participant')

    def to_dict(self):
        return {
            'id': self.id,
            'submission_id': self.submission_id,
            'round_id': self.round_id,
            'judge_id': self.judge_id,
            'team_id': self.team_id,
            'participant_id': self.participant_id,
            'score_type': self.score_type,
            'value': self.value,
        }


class MatchResult(db.Model):
    """Cached rank/points of one team in one room; rebuilt from scores."""
    id = db.Column(db.Integer, primary_key=True)
    round_assignment_id = db.Column(db.Integer, db.ForeignKey('round_assignment.id'), nullable=False)
    team_id = db.Column(db.Integer, db.ForeignKey('team.id'), nullable=False)
    rank = db.Column(db.Integer, nullable=False)
    points = db.Column(db.Integer, nullable=False)
    total_score = db.Column(db.Float, default=0.0, nullable=False)

    __table_args__ = (
        db.UniqueConstraint('round_assignment_id', 'team_id', name='uq_match_result_team'),
    )

    team = db.relationship('Team')

    def to_dict(self):
        return {
            'team_id': self.team_id,
            'team_name': self.team.name if self.team else None,
            'rank': self.rank,
            'points': self.points,
            'total_score': self.total_score,
        }


class ActivityLog(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    message = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    def to_dict(self):
        return {
            'id': self.id,
            'message': self.message,
            'created_at': iso_or_none(self.created_at),
        }


def log_activity(message):
    db.session.add(ActivityLog(message=message))
