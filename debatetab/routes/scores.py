from flask import Blueprint, request, jsonify
from debatetab.app import db
from debatetab.models import Score, ScoreSubmission
from debatetab.auth_utils import judge_required, admin_required
from debatetab.services.results import (
    ResultsError, delete_score, delete_submission, submit_scores, update_score,
)

scores_bp = Blueprint('scores', __name__)


@scores_bp.route('', methods=['POST'])
@judge_required
def post_scores():
    """Submit one judge's ballot for a room.

    Body: {"round_assignment_id": 1,
           "team_scores": [{"team_id": 1, "value": 3}],
           "individual_scores": [{"team_id": 1, "participant_id": 4, "value": 75}]}
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'error': 'Missing or invalid data'}), 400
    try:
        submission = submit_scores(
            request.current_judge,
            data.get('round_assignment_id'),
            data.get('team_scores', []),
            data.get('individual_scores', []),
        )
    except ResultsError as exc:
        db.session.rollback()
        return jsonify(exc.to_dict()), exc.status_code
    return jsonify({
        'message': 'Scores submitted successfully',
        'submission_id': submission.id,
        'scores': [score.to_dict() for score in submission.scores],
    }), 201


@scores_bp.route('', methods=['GET'])
@admin_required
def get_scores():
    query = Score.query
    round_id = request.args.get('round_id', type=int)
    judge_id = request.args.get('judge_id', type=int)
    if round_id:
        query = query.filter(Score.round_id == round_id)
    if judge_id:
        query = query.filter(Score.judge_id == judge_id)
    scores = query.order_by(Score.id.asc()).all()
    return jsonify({'scores': [score.to_dict() for score in scores]})


# ── Corrections ───────────────────────────────────────────────────────

@scores_bp.route('/<int:score_id>', methods=['PUT'])
@admin_required
def update_score_value(score_id):
    score = db.session.get(Score, score_id)
    if not score:
        return jsonify({'error': 'Score not found'}), 404
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or 'value' not in data:
        return jsonify({'error': 'value required'}), 400
    try:
        update_score(score, data.get('value'))
    except ResultsError as exc:
        db.session.rollback()
        return jsonify(exc.to_dict()), exc.status_code
    return jsonify({'score': score.to_dict()})


@scores_bp.route('/<int:score_id>', methods=['DELETE'])
@admin_required
def remove_score(score_id):
    score = db.session.get(Score, score_id)
    if not score:
        return jsonify({'error': 'Score not found'}), 404
    ballot_removed = delete_score(score)
    return jsonify({'message': 'Score deleted', 'ballot_removed': ballot_removed})


@scores_bp.route('/submissions', methods=['GET'])
@admin_required
def get_submissions():
    query = ScoreSubmission.query
    round_id = request.args.get('round_id', type=int)
    if round_id:
        query = query.filter(ScoreSubmission.round_id == round_id)
    submissions = query.order_by(ScoreSubmission.id.asc()).all()
    return jsonify({'submissions': [submission.to_dict() for submission in submissions]})


@scores_bp.route('/submissions/<int:submission_id>', methods=['DELETE'])
@admin_required
def remove_submission(submission_id):
    """Withdraw a ballot; its judge (or the panel) may then submit again."""
    submission = db.session.get(ScoreSubmission, submission_id)
    if not submission:
        return jsonify({'error': 'Submission not found'}), 404
    delete_submission(submission)
    return jsonify({'message': 'Ballot withdrawn'})
