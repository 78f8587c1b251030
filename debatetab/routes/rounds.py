"""Rounds, draws, judge allocation and the round lifecycle."""
import logging

from flask import Blueprint, request, jsonify
from sqlalchemy.exc import IntegrityError
from debatetab.app import db
from debatetab.models import Round, RoundAssignment, Room, Judge, TeamAssignment, log_activity
from debatetab.auth_utils import admin_required, judge_required
from debatetab.services.bracket import BracketError, generate_preliminary_rounds, reseat_team
from debatetab.services.results import (
    ResultsError, assignment_has_ballot, bracket_status, complete_round, judge_has_submitted,
    record_match_results, round_state, stage_for_round,
)
from debatetab.services.tabulation import round_recap

rounds_bp = Blueprint('rounds', __name__)
logger = logging.getLogger(__name__)


def _round_payload(round_row):
    data = round_row.to_dict(include_assignments=True)
    data['stage'] = stage_for_round(round_row)['key']
    data['state'] = round_state(round_row)
    return data


@rounds_bp.route('', methods=['GET'])
def get_rounds():
    rounds = Round.query.order_by(Round.number.asc()).all()
    return jsonify({'rounds': [_round_payload(rnd) for rnd in rounds]})


@rounds_bp.route('/<int:round_id>', methods=['GET'])
def get_round(round_id):
    round_row = db.session.get(Round, round_id)
    if not round_row:
        return jsonify({'error': 'Round not found'}), 404
    return jsonify({'round': _round_payload(round_row)})


@rounds_bp.route('/generate-prelims', methods=['POST'])
@admin_required
def generate_prelims():
    try:
        created = generate_preliminary_rounds()
    except BracketError as exc:
        return jsonify(exc.to_dict()), 400
    return jsonify({
        'message': f'Created {len(created)} preliminary round(s)',
        'rounds': [rnd.to_dict(include_assignments=True) for rnd in created],
    }), 201


@rounds_bp.route('/<int:round_id>/motion', methods=['PUT'])
@admin_required
def update_motion(round_id):
    round_row = db.session.get(Round, round_id)
    if not round_row:
        return jsonify({'error': 'Round not found'}), 404
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400
    motion = str(data.get('motion') or '').strip()
    if not motion:
        return jsonify({'error': 'Motion required'}), 400
    round_row.motion = motion[:2000]
    if 'description' in data:
        round_row.description = str(data.get('description') or '').strip()[:4000]
    db.session.commit()
    return jsonify({'round': round_row.to_dict()})


@rounds_bp.route('/<int:round_id>/complete', methods=['POST'])
@admin_required
def mark_round_complete(round_id):
    round_row = db.session.get(Round, round_id)
    if not round_row:
        return jsonify({'error': 'Round not found'}), 404
    try:
        complete_round(round_row)
    except ResultsError as exc:
        db.session.rollback()
        return jsonify(exc.to_dict()), exc.status_code
    return jsonify({'message': 'Round marked as completed', 'round': _round_payload(round_row)})


@rounds_bp.route('/<int:round_id>/results', methods=['POST'])
@admin_required
def rebuild_results(round_id):
    round_row = db.session.get(Round, round_id)
    if not round_row:
        return jsonify({'error': 'Round not found'}), 404
    results = record_match_results(round_row)
    db.session.commit()
    return jsonify({
        'results': [result.to_dict() for result in results],
        'status': bracket_status(round_row),
    })


@rounds_bp.route('/<int:round_id>/recap', methods=['GET'])
@admin_required
def get_round_recap(round_id):
    round_row = db.session.get(Round, round_id)
    if not round_row:
        return jsonify({'error': 'Round not found'}), 404
    return jsonify(round_recap(round_row))


# ── Judge allocation ──────────────────────────────────────────────────

def _parse_allocation(entry):
    if not isinstance(entry, dict):
        return None, 'Each allocation must be an object'
    try:
        assignment_id = int(entry.get('assignment_id'))
    except (TypeError, ValueError):
        return None, 'assignment_id is required'
    raw_judge_ids = entry.get('judge_ids') or []
    if not isinstance(raw_judge_ids, list):
        return None, 'judge_ids must be a list'
    try:
        judge_ids = [int(jid) for jid in raw_judge_ids]
    except (TypeError, ValueError):
        return None, 'judge_ids must be integers'
    if len(set(judge_ids)) != len(judge_ids):
        return None, 'judge_ids contains duplicates'
    room_id = entry.get('room_id')
    if room_id is not None:
        try:
            room_id = int(room_id)
        except (TypeError, ValueError):
            return None, 'room_id must be an integer'
    return {'assignment_id': assignment_id, 'judge_ids': judge_ids, 'room_id': room_id}, None


def _order_room_moves(moves, holders):
    """Order room changes so each one lands in a room nobody holds at that point.

    `moves` maps assignment -> target room id and `holders` maps
    (round_id, room_id) -> assignment id. Returns None when the remaining
    moves only trade rooms among themselves.
    """
    holders = dict(holders)
    pending = dict(moves)
    ordered = []
    while pending:
        ready = sorted(
            (
                assignment for assignment, room_id in pending.items()
                if holders.get((assignment.round_id, room_id)) in (None, assignment.id)
            ),
            key=lambda a: a.id,
        )
        if not ready:
            return None
        for assignment in ready:
            room_id = pending.pop(assignment)
            holders.pop((assignment.round_id, assignment.room_id), None)
            holders[(assignment.round_id, room_id)] = assignment.id
            ordered.append((assignment, room_id))
    return ordered


@rounds_bp.route('/assign-judges', methods=['POST'])
@admin_required
def assign_judges():
    """Set judges (and optionally rooms) for several assignments at once.

    Body: [{"assignment_id": 1, "judge_ids": [3], "room_id": 2}, ...]
    Nothing is written unless every entry is valid.
    """
    body = request.get_json(silent=True)
    if not isinstance(body, list) or not body:
        return jsonify({'error': 'Body must be a non-empty array'}), 400

    plans = {}
    for entry in body:
        plan, error = _parse_allocation(entry)
        if error:
            return jsonify({'error': error}), 400
        plans[plan['assignment_id']] = plan

    assignments = {
        a.id: a for a in RoundAssignment.query.filter(RoundAssignment.id.in_(list(plans))).all()
    }
    missing = sorted(set(plans) - set(assignments))
    if missing:
        return jsonify({'error': 'Assignment not found', 'assignment_ids': missing}), 404

    judge_ids = {jid for plan in plans.values() for jid in plan['judge_ids']}
    judges = {j.id: j for j in Judge.query.filter(Judge.id.in_(judge_ids)).all()} if judge_ids else {}
    if len(judges) != len(judge_ids):
        return jsonify({'error': 'Judge not found', 'judge_ids': sorted(judge_ids - set(judges))}), 404
    room_ids = {plan['room_id'] for plan in plans.values() if plan['room_id'] is not None}
    rooms = {r.id: r for r in Room.query.filter(Room.id.in_(room_ids)).all()} if room_ids else {}
    if len(rooms) != len(room_ids):
        return jsonify({'error': 'Room not found', 'room_ids': sorted(room_ids - set(rooms))}), 404

    for plan in plans.values():
        assignment = assignments[plan['assignment_id']]
        stage = stage_for_round(assignment.round)
        if assignment.round.completed:
            return jsonify({'error': f'{assignment.round.name} is already completed'}), 400
        if len(plan['judge_ids']) > 1 and not stage['multi_judge']:
            return jsonify({'error': f'{stage["name"]} rooms take a single judge'}), 400
        # A ballot is tied to the judges who cast it; withdraw it before reallocating.
        judges_changed = set(plan['judge_ids']) != set(assignment.judge_ids())
        if judges_changed and assignment_has_ballot(assignment.id):
            return jsonify({
                'error': 'Judges cannot change once a ballot is in for this room',
                'assignment_id': assignment.id,
            }), 400

    # A judge sits in at most one room per round, and rooms stay unique per round.
    holders = {}
    for round_id in {assignments[aid].round_id for aid in plans}:
        seen_judges = {}
        seen_rooms = {}
        for assignment in RoundAssignment.query.filter_by(round_id=round_id).all():
            holders[(round_id, assignment.room_id)] = assignment.id
            plan = plans.get(assignment.id)
            planned_judges = plan['judge_ids'] if plan else assignment.judge_ids()
            planned_room = plan['room_id'] if plan and plan['room_id'] is not None else assignment.room_id
            for jid in planned_judges:
                if jid in seen_judges:
                    return jsonify({
                        'error': 'A judge can only sit in one room per round',
                        'judge_id': jid,
                        'assignment_ids': [seen_judges[jid], assignment.id],
                    }), 400
                seen_judges[jid] = assignment.id
            if planned_room in seen_rooms:
                return jsonify({
                    'error': 'A room can only host one debate per round',
                    'room_id': planned_room,
                }), 400
            seen_rooms[planned_room] = assignment.id

    moves = {
        assignments[aid]: plan['room_id']
        for aid, plan in plans.items()
        if plan['room_id'] is not None and plan['room_id'] != assignments[aid].room_id
    }
    ordered_moves = _order_room_moves(moves, holders)
    if ordered_moves is None:
        return jsonify({
            'error': 'Rooms cannot be swapped directly; move one debate to a free room first',
            'assignment_ids': sorted(a.id for a in moves),
        }), 400

    try:
        # One flush per move keeps the per-round room constraint satisfied at every step.
        for assignment, room_id in ordered_moves:
            assignment.room_id = room_id
            db.session.flush()
        for plan in plans.values():
            assignment = assignments[plan['assignment_id']]
            chosen = [judges[jid] for jid in plan['judge_ids']]
            assignment.judge_id = chosen[0].id if chosen else None
            assignment.panel = chosen if stage_for_round(assignment.round)['multi_judge'] else []
        log_activity(f'Judge allocation updated for {len(plans)} room(s)')
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.warning('Judge allocation for assignments %s hit a constraint', sorted(plans))
        return jsonify({'error': 'Allocation conflicts with another room in the round'}), 400
    logger.info('Judge allocation updated for assignments %s', sorted(plans))
    return jsonify({
        'message': 'Judges & rooms updated successfully',
        'assignments': [assignments[aid].to_dict() for aid in sorted(plans)],
    })


@rounds_bp.route('/team-assignments/<int:team_assignment_id>', methods=['PUT'])
@admin_required
def update_team_assignment(team_assignment_id):
    """Move a team to another seat, or put a different team in this seat.

    Body: {"team_id": 7} and/or {"position": "CG"}. Seats it collides with
    trade places, so the reply lists every seat that changed.
    """
    team_assignment = db.session.get(TeamAssignment, team_assignment_id)
    if not team_assignment:
        return jsonify({'error': 'Team assignment not found'}), 404
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400
    if data.get('team_id') is None and data.get('position') is None:
        return jsonify({'error': 'team_id or position required'}), 400

    round_assignment_id = team_assignment.round_assignment_id
    try:
        changed = reseat_team(
            team_assignment,
            team_id=data.get('team_id'),
            position=data.get('position'),
        )
    except BracketError as exc:
        db.session.rollback()
        return jsonify(exc.to_dict()), 400
    assignment = db.session.get(RoundAssignment, round_assignment_id)
    return jsonify({
        'message': 'Draw updated',
        'team_assignments': [ta.to_dict() for ta in changed],
        'assignment': assignment.to_dict(),
    })


# ── Judge views ───────────────────────────────────────────────────────

@rounds_bp.route('/my-assignments', methods=['GET'])
@judge_required
def get_my_assignments():
    judge = request.current_judge
    assignments = [
        assignment
        for assignment in RoundAssignment.query.order_by(RoundAssignment.id.asc()).all()
        if judge.id in assignment.judge_ids()
    ]
    payload = []
    for assignment in assignments:
        data = assignment.to_dict()
        data['round'] = assignment.round.to_dict()
        data['is_scored'] = judge_has_submitted(judge, assignment.round)
        payload.append(data)
    return jsonify({'assignments': payload})


@rounds_bp.route('/assignments/<int:assignment_id>', methods=['GET'])
@judge_required
def get_assignment_ballot(assignment_id):
    judge = request.current_judge
    assignment = db.session.get(RoundAssignment, assignment_id)
    if not assignment:
        return jsonify({'error': 'Assignment not found'}), 404
    if judge.id not in assignment.judge_ids():
        return jsonify({'error': 'Forbidden'}), 403

    teams = []
    for ta in assignment.ordered_team_assignments():
        data = ta.to_dict()
        data['participants'] = [p.to_dict() for p in ta.team.participants]
        teams.append(data)
    return jsonify({
        'round_assignment': {
            'id': assignment.id,
            'round': assignment.round.to_dict(),
            'room': assignment.room.to_dict() if assignment.room else None,
            'teams': teams,
        },
        'scoring_mode': stage_for_round(assignment.round)['scoring_mode'],
        'is_scored': judge_has_submitted(judge, assignment.round),
    })
