"""Setup CRUD: teams, participants, rooms and judges."""
from flask import Blueprint, request, jsonify
from sqlalchemy.exc import IntegrityError
from debatetab.app import db
from debatetab.models import (
    Team, Participant, Room, Judge, User, RoundAssignment, TeamAssignment, log_activity,
)
from debatetab.auth_utils import admin_required

registry_bp = Blueprint('registry', __name__)

_MAX_PARTICIPANTS_PER_TEAM = 3


def _clean_text(raw_value, max_length):
    return str(raw_value or '').strip()[:max_length]


def _parse_participants(raw_participants):
    if raw_participants is None:
        return [], None
    if not isinstance(raw_participants, list):
        return None, 'participants must be a list'
    if len(raw_participants) > _MAX_PARTICIPANTS_PER_TEAM:
        return None, f'A team has at most {_MAX_PARTICIPANTS_PER_TEAM} participants'
    parsed = []
    for entry in raw_participants:
        if not isinstance(entry, dict):
            return None, 'Each participant must be an object'
        name = _clean_text(entry.get('name'), 120)
        if not name:
            return None, 'Participant name required'
        parsed.append({'name': name, 'email': _clean_text(entry.get('email'), 120).lower()})
    return parsed, None


# ── Teams ─────────────────────────────────────────────────────────────

@registry_bp.route('/teams', methods=['GET'])
def get_teams():
    teams = Team.query.order_by(Team.name.asc()).all()
    return jsonify({'teams': [team.to_dict() for team in teams]})


@registry_bp.route('/teams/<int:team_id>', methods=['GET'])
def get_team(team_id):
    team = db.session.get(Team, team_id)
    if not team:
        return jsonify({'error': 'Team not found'}), 404
    return jsonify({'team': team.to_dict()})


@registry_bp.route('/teams', methods=['POST'])
@admin_required
def create_team():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400

    name = _clean_text(data.get('name'), 200)
    if not name:
        return jsonify({'error': 'Team name required'}), 400
    participants, error = _parse_participants(data.get('participants'))
    if error:
        return jsonify({'error': error}), 400
    if Team.query.filter_by(name=name).first():
        return jsonify({'error': 'Team name already taken'}), 409

    team = Team(name=name, institution=_clean_text(data.get('institution'), 200))
    for entry in participants:
        team.participants.append(Participant(name=entry['name'], email=entry['email']))
    db.session.add(team)
    log_activity(f'Team {name} registered')
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({'error': 'Team name already taken'}), 409
    return jsonify({'team': team.to_dict()}), 201


@registry_bp.route('/teams/<int:team_id>', methods=['PUT'])
@admin_required
def update_team(team_id):
    team = db.session.get(Team, team_id)
    if not team:
        return jsonify({'error': 'Team not found'}), 404
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400

    if 'name' in data:
        name = _clean_text(data.get('name'), 200)
        if not name:
            return jsonify({'error': 'Team name required'}), 400
        clash = Team.query.filter(Team.name == name, Team.id != team.id).first()
        if clash:
            return jsonify({'error': 'Team name already taken'}), 409
        team.name = name
    if 'institution' in data:
        team.institution = _clean_text(data.get('institution'), 200)
    db.session.commit()
    return jsonify({'team': team.to_dict()})


@registry_bp.route('/teams/<int:team_id>', methods=['DELETE'])
@admin_required
def delete_team(team_id):
    team = db.session.get(Team, team_id)
    if not team:
        return jsonify({'error': 'Team not found'}), 404
    if TeamAssignment.query.filter_by(team_id=team.id).first():
        return jsonify({'error': 'Team already appears in a draw and cannot be deleted'}), 400
    db.session.delete(team)
    log_activity(f'Team {team.name} removed')
    db.session.commit()
    return jsonify({'message': 'Team deleted'})


@registry_bp.route('/teams/<int:team_id>/participants', methods=['POST'])
@admin_required
def add_participant(team_id):
    team = db.session.get(Team, team_id)
    if not team:
        return jsonify({'error': 'Team not found'}), 404
    if len(team.participants) >= _MAX_PARTICIPANTS_PER_TEAM:
        return jsonify({'error': f'A team has at most {_MAX_PARTICIPANTS_PER_TEAM} participants'}), 400
    parsed, error = _parse_participants([request.get_json(silent=True) or {}])
    if error:
        return jsonify({'error': error}), 400
    participant = Participant(team_id=team.id, **parsed[0])
    db.session.add(participant)
    db.session.commit()
    return jsonify({'participant': participant.to_dict()}), 201


@registry_bp.route('/participants', methods=['GET'])
def get_participants():
    participants = Participant.query.order_by(Participant.team_id.asc(), Participant.id.asc()).all()
    payload = []
    for participant in participants:
        data = participant.to_dict()
        data['team_name'] = participant.team.name if participant.team else None
        payload.append(data)
    return jsonify({'participants': payload})


@registry_bp.route('/participants/<int:participant_id>', methods=['PUT'])
@admin_required
def update_participant(participant_id):
    participant = db.session.get(Participant, participant_id)
    if not participant:
        return jsonify({'error': 'Participant not found'}), 404
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400
    if 'name' in data:
        name = _clean_text(data.get('name'), 120)
        if not name:
            return jsonify({'error': 'Participant name required'}), 400
        participant.name = name
    if 'email' in data:
        participant.email = _clean_text(data.get('email'), 120).lower()
    db.session.commit()
    return jsonify({'participant': participant.to_dict()})


# ── Rooms ─────────────────────────────────────────────────────────────

@registry_bp.route('/rooms', methods=['GET'])
def get_rooms():
    rooms = Room.query.order_by(Room.id.asc()).all()
    return jsonify({'rooms': [room.to_dict() for room in rooms]})


@registry_bp.route('/rooms', methods=['POST'])
@admin_required
def create_room():
    data = request.get_json(silent=True) or {}
    name = _clean_text(data.get('name') if isinstance(data, dict) else None, 120)
    if not name:
        return jsonify({'error': 'Room name required'}), 400
    if Room.query.filter_by(name=name).first():
        return jsonify({'error': 'Room name already taken'}), 409
    room = Room(name=name)
    db.session.add(room)
    db.session.commit()
    return jsonify({'room': room.to_dict()}), 201


@registry_bp.route('/rooms/<int:room_id>', methods=['DELETE'])
@admin_required
def delete_room(room_id):
    room = db.session.get(Room, room_id)
    if not room:
        return jsonify({'error': 'Room not found'}), 404
    if RoundAssignment.query.filter_by(room_id=room.id).first():
        return jsonify({'error': 'Room is used by a round and cannot be deleted'}), 400
    db.session.delete(room)
    db.session.commit()
    return jsonify({'message': 'Room deleted'})


# ── Judges ────────────────────────────────────────────────────────────

@registry_bp.route('/judges', methods=['GET'])
def get_judges():
    judges = Judge.query.order_by(Judge.id.asc()).all()
    return jsonify({'judges': [judge.to_dict() for judge in judges]})


@registry_bp.route('/judges', methods=['POST'])
@admin_required
def create_judge():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400
    name = _clean_text(data.get('name'), 120)
    if not name:
        return jsonify({'error': 'Judge name required'}), 400
    email = _clean_text(data.get('email'), 120).lower()

    user = None
    if data.get('user_id') is not None:
        try:
            user = db.session.get(User, int(data.get('user_id')))
        except (TypeError, ValueError):
            user = None
        if not user:
            return jsonify({'error': 'User not found'}), 404
    elif email:
        user = User.query.filter_by(email=email).first()
    if user and user.judge:
        return jsonify({'error': 'User is already linked to a judge'}), 409

    judge = Judge(name=name, email=email, user_id=user.id if user else None)
    db.session.add(judge)
    log_activity(f'Judge {name} registered')
    db.session.commit()
    return jsonify({'judge': judge.to_dict()}), 201
