"""Break generation, bracket view, rankings and tabulation."""
import logging

from flask import Blueprint, request, jsonify
from debatetab.app import db
from debatetab.models import Round
from debatetab.auth_utils import admin_required
from debatetab.services.bracket import (
    BracketError, compute_standings, generate_stage, preliminary_rounds,
)
from debatetab.services.results import bracket_status
from debatetab.services.stages import (
    SCORING_INDIVIDUAL, configured_stages, stage_by_key, stage_by_number,
)
from debatetab.services.tabulation import speaker_tabulation, team_tabulation

bracket_bp = Blueprint('bracket', __name__)
logger = logging.getLogger(__name__)


def _resolve_stage(data):
    if data.get('stage'):
        stage = stage_by_key(data.get('stage'))
    elif data.get('number') is not None:
        stage = stage_by_number(data.get('number'))
    else:
        return None, 'stage or number is required'
    if not stage or not stage.get('is_break'):
        return None, 'Unknown break stage'
    return stage, None


@bracket_bp.route('/bracket/generate', methods=['POST'])
@admin_required
def generate_bracket():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400
    stage, error = _resolve_stage(data)
    if error:
        return jsonify({'error': error, 'stages': [s['key'] for s in configured_stages()]}), 400

    try:
        result = generate_stage(stage)
    except BracketError as exc:
        logger.info('Generation of %s refused: %s', stage['key'], exc)
        return jsonify(exc.to_dict()), 400
    result['message'] = f'{stage["name"]} bracket created successfully'
    return jsonify(result), 201


@bracket_bp.route('/bracket', methods=['GET'])
def get_bracket():
    stages = []
    for stage in configured_stages():
        round_row = Round.query.filter_by(number=stage['number']).first()
        stages.append({
            'stage': stage['key'],
            'name': stage['name'],
            'number': stage['number'],
            'generated': round_row is not None,
            'round': round_row.to_dict(include_assignments=True) if round_row else None,
        })
    return jsonify({'stages': stages})


@bracket_bp.route('/bracket/status', methods=['GET'])
def get_bracket_status():
    raw_round_id = request.args.get('round_id')
    if raw_round_id is None:
        return jsonify({'error': 'round_id parameter is required'}), 400
    try:
        round_id = int(raw_round_id)
    except (TypeError, ValueError):
        round_id = 0
    if round_id <= 0:
        return jsonify({'error': 'Invalid round_id - must be a positive integer'}), 400
    round_row = db.session.get(Round, round_id)
    if not round_row:
        return jsonify({'error': f'Round with ID {round_id} not found'}), 404
    return jsonify(bracket_status(round_row))


@bracket_bp.route('/rankings', methods=['GET'])
def get_rankings():
    """Preliminary standings, or one break stage with ?stage=."""
    stage_key = request.args.get('stage')
    if stage_key:
        stage = stage_by_key(stage_key)
        if not stage:
            return jsonify({'error': 'Unknown stage'}), 400
        round_row = Round.query.filter_by(number=stage['number']).first()
        if not round_row:
            return jsonify({'error': f'{stage["name"]} has not been generated'}), 404
        return jsonify({
            'stage': stage['key'],
            'rankings': compute_standings([round_row], stage['scoring_mode']),
        })
    return jsonify({
        'stage': 'preliminary',
        'rankings': compute_standings(preliminary_rounds(), SCORING_INDIVIDUAL),
    })


@bracket_bp.route('/tabulation', methods=['GET'])
def get_tabulation():
    round_id = request.args.get('round_id', type=int)
    return jsonify({
        'team_tabulation': team_tabulation(),
        'individual_tabulation': speaker_tabulation([round_id] if round_id else None),
    })
