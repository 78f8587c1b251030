import pytest
from debatetab.app import create_app, db
from debatetab.models import (
    Judge, Participant, Room, Round, RoundAssignment, Score, ScoreSubmission, Team,
    TeamAssignment, POSITIONS,
)

ADMIN_EMAIL = 'admin@example.com'


@pytest.fixture
def app():
    app = create_app('testing')
    app.config['ADMIN_EMAILS'] = ADMIN_EMAIL
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(client):
    """Register a plain user and return auth headers."""
    res = client.post('/api/auth/register', json={
        'username': 'testuser', 'email': 'test@example.com',
        'password': 'password123', 'name': 'Test User',
    })
    token = res.get_json()['token']
    return {'Authorization': f'Bearer {token}', 'Content-Type': 'application/json'}


@pytest.fixture
def admin_headers(client):
    """Register the configured admin and return auth headers."""
    res = client.post('/api/auth/register', json={
        'username': 'tabdirector', 'email': ADMIN_EMAIL,
        'password': 'password123', 'name': 'Tab Director',
    })
    token = res.get_json()['token']
    return {'Authorization': f'Bearer {token}', 'Content-Type': 'application/json'}


@pytest.fixture
def make_judge(client):
    """Factory: judge record plus a linked login. Returns (headers, judge_id)."""
    def _make(name):
        slug = name.lower().replace(' ', '_')
        email = f'{slug}@example.com'
        judge = Judge(name=name, email=email)
        db.session.add(judge)
        db.session.commit()
        judge_id = judge.id
        res = client.post('/api/auth/register', json={
            'username': slug, 'email': email, 'password': 'password123',
        })
        token = res.get_json()['token']
        return {'Authorization': f'Bearer {token}', 'Content-Type': 'application/json'}, judge_id
    return _make


@pytest.fixture
def make_field(app):
    """Factory: `team_count` teams of two speakers and `room_count` rooms.

    Returns (teams, rooms) as lists of ids, teams in creation order.
    """
    def _make(team_count=16, room_count=4):
        rooms = []
        for index in range(1, room_count + 1):
            room = Room(name=f'Room {index}')
            db.session.add(room)
            rooms.append(room)
        teams = []
        for index in range(1, team_count + 1):
            team = Team(name=f'Team {index:02d}', institution='Test University')
            team.participants.append(Participant(name=f'Speaker {index:02d}-A'))
            team.participants.append(Participant(name=f'Speaker {index:02d}-B'))
            db.session.add(team)
            teams.append(team)
        db.session.commit()
        return [team.id for team in teams], [room.id for room in rooms]
    return _make


@pytest.fixture
def make_round(app):
    """Factory: a round whose rooms take consecutive groups of four teams."""
    def _make(number, team_ids, room_ids, name=None, judge_ids=None):
        round_row = Round(number=number, name=name or f'Preliminary {number}')
        db.session.add(round_row)
        db.session.flush()
        for index, room_id in enumerate(room_ids):
            group = team_ids[index * 4:(index + 1) * 4]
            if len(group) < 4:
                break
            assignment = RoundAssignment(
                round_id=round_row.id,
                room_id=room_id,
                judge_id=judge_ids[index] if judge_ids else None,
            )
            db.session.add(assignment)
            db.session.flush()
            for team_id, position in zip(group, POSITIONS):
                db.session.add(TeamAssignment(
                    round_assignment_id=assignment.id,
                    round_id=round_row.id,
                    team_id=team_id,
                    position=position,
                ))
        db.session.commit()
        return round_row.id
    return _make


@pytest.fixture
def record_scores(app):
    """Factory: store one speaker score per team, bypassing the ballot API.

    `totals` maps team_id -> value, credited to the team's first speaker.
    """
    def _record(round_id, totals, score_type='INDIVIDUAL'):
        judge = Judge(name=f'Seed Judge {round_id}')
        db.session.add(judge)
        db.session.flush()
        round_row = db.session.get(Round, round_id)
        submission = ScoreSubmission(
            round_id=round_id,
            judge_id=judge.id,
            round_assignment_id=round_row.assignments[0].id,
            lock_key=f'round:{round_id}:judge:{judge.id}',
        )
        db.session.add(submission)
        db.session.flush()
        for team_id, value in totals.items():
            team = db.session.get(Team, team_id)
            participant_id = team.participants[0].id if score_type == 'INDIVIDUAL' else None
            db.session.add(Score(
                submission_id=submission.id,
                round_id=round_id,
                judge_id=judge.id,
                team_id=team_id,
                participant_id=participant_id,
                score_type=score_type,
                value=value,
            ))
        db.session.commit()
    return _record
