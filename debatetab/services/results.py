"""Ballot intake, match results and the round lifecycle.

A round moves NOT_CREATED -> CREATED -> SCORED -> COMPLETED and never back.
"""
import logging

from flask import current_app
from sqlalchemy.exc import IntegrityError

from debatetab.app import db
from debatetab.models import (
    MatchResult, Participant, RoundAssignment, Score, ScoreSubmission, log_activity,
)
from debatetab.services.bracket import room_inputs
from debatetab.services.scoring import aggregate_room, rank_room
from debatetab.services.stages import SCORING_INDIVIDUAL, stage_by_number
from debatetab.time_utils import utcnow_naive

logger = logging.getLogger(__name__)

STATE_NOT_CREATED = 'NOT_CREATED'
STATE_CREATED = 'CREATED'
STATE_SCORED = 'SCORED'
STATE_COMPLETED = 'COMPLETED'


class ResultsError(Exception):
    status_code = 400

    def __init__(self, message, status_code=None, **details):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code
        self.details = details

    def to_dict(self):
        payload = {'error': str(self)}
        payload.update(self.details)
        return payload


def stage_for_round(round_row):
    stage = stage_by_number(round_row.number)
    if stage is None:
        return {
            'key': f'round_{round_row.number}',
            'name': round_row.name,
            'number': round_row.number,
            'is_break': False,
            'scoring_mode': SCORING_INDIVIDUAL,
            'multi_judge': False,
            'single_submission': False,
        }
    return stage


# ── Ballots ───────────────────────────────────────────────────────────

def _coerce_value(raw_value, lower, upper, label):
    try:
        value = float(raw_value)
    except (TypeError, ValueError):
        raise ResultsError(f'{label} must be a number')
    if value != value or value < lower or value > upper:
        raise ResultsError(f'{label} must be between {lower} and {upper}')
    return value


def _coerce_id(raw_value, label):
    try:
        value = int(raw_value)
    except (TypeError, ValueError):
        raise ResultsError(f'{label} is required')
    if value <= 0:
        raise ResultsError(f'{label} is required')
    return value


def _submission_lock_key(stage, round_id, judge_id):
    if stage.get('single_submission'):
        return f'round:{round_id}'
    return f'round:{round_id}:judge:{judge_id}'


def _duplicate_message(stage):
    if stage.get('single_submission'):
        return f'{stage["name"]} scores already submitted by another judge'
    return 'Scores already submitted for this round by this judge'


def _first_duplicate(ids):
    seen = set()
    for value in ids:
        if value in seen:
            return value
        seen.add(value)
    return None


def _build_score_rows(assignment, team_scores, individual_scores, scoring_mode):
    cfg = current_app.config
    room_team_ids = {ta.team_id for ta in assignment.team_assignments}
    rows = []

    seen_team_ids = set()
    for entry in team_scores:
        if not isinstance(entry, dict):
            raise ResultsError('Each team score must be an object')
        team_id = _coerce_id(entry.get('team_id'), 'team_id')
        if team_id not in room_team_ids:
            raise ResultsError(f'Team {team_id} is not in this room')
        if team_id in seen_team_ids:
            raise ResultsError(f'Team {team_id} is scored more than once', team_id=team_id)
        seen_team_ids.add(team_id)
        rows.append({
            'team_id': team_id,
            'participant_id': None,
            'score_type': 'TEAM',
            'value': _coerce_value(
                entry.get('value'), cfg['TEAM_SCORE_MIN'], cfg['TEAM_SCORE_MAX'], 'Team score',
            ),
        })

    participant_ids = []
    for entry in individual_scores:
        if not isinstance(entry, dict):
            raise ResultsError('Each individual score must be an object')
        participant_ids.append(_coerce_id(entry.get('participant_id'), 'participant_id'))
    repeated = _first_duplicate(participant_ids)
    if repeated is not None:
        raise ResultsError(
            f'Participant {repeated} is scored more than once', participant_id=repeated,
        )
    participants = {
        p.id: p for p in Participant.query.filter(Participant.id.in_(participant_ids)).all()
    } if participant_ids else {}

    for entry, participant_id in zip(individual_scores, participant_ids):
        participant = participants.get(participant_id)
        if not participant:
            raise ResultsError(f'Participant {participant_id} not found', status_code=404)
        if participant.team_id not in room_team_ids:
            raise ResultsError(f'Participant {participant_id} is not in this room')
        claimed_team_id = entry.get('team_id')
        if claimed_team_id is not None and str(claimed_team_id) != str(participant.team_id):
            logger.warning(
                'Ballot team %s disagrees with participant %s team %s; using participant team',
                claimed_team_id, participant_id, participant.team_id,
            )
        rows.append({
            'team_id': participant.team_id,
            'participant_id': participant_id,
            'score_type': 'INDIVIDUAL',
            'value': _coerce_value(
                entry.get('value'),
                cfg['INDIVIDUAL_SCORE_MIN'], cfg['INDIVIDUAL_SCORE_MAX'],
                'Individual score',
            ),
        })

    if not rows:
        raise ResultsError('At least one score is required')
    # A ballot must rank the whole room in the stage's scoring mode.
    scored = {row['team_id'] for row in rows if row['score_type'] == scoring_mode}
    missing = sorted(room_team_ids - scored)
    if missing:
        raise ResultsError(
            f'Every team in the room needs a {scoring_mode} score',
            scoring_mode=scoring_mode,
            missing_team_ids=missing,
        )
    return rows


def submit_scores(judge, assignment_id, team_scores, individual_scores, commit=True):
    """Record one judge's ballot for a room; all rows or none."""
    if not isinstance(team_scores, list) or not isinstance(individual_scores, list):
        raise ResultsError('team_scores and individual_scores must be lists')
    assignment_id = _coerce_id(assignment_id, 'round_assignment_id')
    assignment = db.session.get(RoundAssignment, assignment_id)
    if not assignment:
        raise ResultsError('Assignment not found', status_code=404)
    if judge.id not in assignment.judge_ids():
        raise ResultsError('You are not assigned to this round', status_code=403)

    round_row = assignment.round
    if round_row.completed:
        raise ResultsError('Round already completed')
    stage = stage_for_round(round_row)

    lock_key = _submission_lock_key(stage, round_row.id, judge.id)
    if ScoreSubmission.query.filter_by(lock_key=lock_key).first():
        logger.info('Rejected duplicate ballot from judge %s for round %s', judge.id, round_row.id)
        raise ResultsError(_duplicate_message(stage), status_code=409)

    rows = _build_score_rows(assignment, team_scores, individual_scores, stage['scoring_mode'])

    submission = ScoreSubmission(
        round_id=round_row.id,
        judge_id=judge.id,
        round_assignment_id=assignment.id,
        lock_key=lock_key,
    )
    try:
        db.session.add(submission)
        db.session.flush()
        for row in rows:
            db.session.add(Score(
                submission_id=submission.id,
                round_id=round_row.id,
                judge_id=judge.id,
                **row,
            ))
        log_activity(
            f'Judge {judge.name} submitted scores for {round_row.name} '
            f'in {assignment.room.name if assignment.room else f"room {assignment.room_id}"}'
        )
        db.session.flush()
        if commit:
            db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.info('Concurrent duplicate ballot from judge %s for round %s', judge.id, round_row.id)
        raise ResultsError(_duplicate_message(stage), status_code=409)

    logger.info(
        'Judge %s submitted %s score(s) for round %s', judge.id, len(rows), round_row.id,
    )
    return submission


def judge_has_submitted(judge, round_row):
    stage = stage_for_round(round_row)
    lock_key = _submission_lock_key(stage, round_row.id, judge.id)
    return ScoreSubmission.query.filter_by(lock_key=lock_key).first() is not None


def assignment_has_ballot(assignment_id):
    return ScoreSubmission.query.filter_by(round_assignment_id=assignment_id).first() is not None


# ── Corrections ───────────────────────────────────────────────────────

def _score_bounds(score_type):
    cfg = current_app.config
    if score_type == 'TEAM':
        return cfg['TEAM_SCORE_MIN'], cfg['TEAM_SCORE_MAX'], 'Team score'
    return cfg['INDIVIDUAL_SCORE_MIN'], cfg['INDIVIDUAL_SCORE_MAX'], 'Individual score'


def _refresh_results(round_row):
    # Completed rounds keep their cached results in step with the corrected scores.
    if round_row.completed:
        record_match_results(round_row)


def update_score(score, raw_value, commit=True):
    lower, upper, label = _score_bounds(score.score_type)
    previous = score.value
    score.value = _coerce_value(raw_value, lower, upper, label)
    log_activity(f'Score {score.id} in {score.round.name} changed from {previous} to {score.value}')
    db.session.flush()
    _refresh_results(score.round)
    if commit:
        db.session.commit()
    logger.info('Score %s corrected: %s -> %s', score.id, previous, score.value)
    return score


def delete_score(score, commit=True):
    """Remove one score row. A ballot left empty goes too, which frees its slot."""
    round_row = score.round
    submission = score.submission
    submission.scores.remove(score)
    db.session.flush()
    ballot_removed = False
    if not submission.scores:
        db.session.delete(submission)
        db.session.flush()
        ballot_removed = True
    log_activity(f'Score removed from {round_row.name}')
    _refresh_results(round_row)
    if commit:
        db.session.commit()
    logger.info('Score deleted from round %s (ballot removed: %s)', round_row.id, ballot_removed)
    return ballot_removed


def delete_submission(submission, commit=True):
    """Withdraw a whole ballot so its judge (or panel) can submit again."""
    round_row = submission.round
    submission_id = submission.id
    judge_name = submission.judge.name if submission.judge else submission.judge_id
    db.session.delete(submission)
    db.session.flush()
    log_activity(f'Ballot from {judge_name} for {round_row.name} withdrawn')
    _refresh_results(round_row)
    if commit:
        db.session.commit()
    logger.info('Ballot %s withdrawn from round %s', submission_id, round_row.id)


# ── Results ───────────────────────────────────────────────────────────

def unscored_teams(round_row):
    stage = stage_for_round(round_row)
    missing = []
    for room in room_inputs([round_row]):
        for aggregate in aggregate_room(room['teams'], room['scores'], stage['scoring_mode']):
            if aggregate['score_count'] == 0:
                missing.append({'team_id': aggregate['team_id'], 'team_name': aggregate['team_name']})
    return missing


def round_state(round_row):
    if round_row is None:
        return STATE_NOT_CREATED
    if round_row.completed:
        return STATE_COMPLETED
    if round_row.assignments and not unscored_teams(round_row):
        return STATE_SCORED
    return STATE_CREATED


def record_match_results(round_row):
    """Rebuild the cached MatchResult rows of every room in the round."""
    stage = stage_for_round(round_row)
    assignments = {assignment.id: assignment for assignment in round_row.assignments}
    recorded = []
    for room in room_inputs([round_row]):
        assignment = assignments[room['assignment_id']]
        assignment.match_results.clear()
        db.session.flush()
        ranked = rank_room(aggregate_room(room['teams'], room['scores'], stage['scoring_mode']))
        for entry in ranked:
            result = MatchResult(
                team_id=entry['team_id'],
                rank=entry['rank'],
                points=entry['points'],
                total_score=entry['total'],
            )
            assignment.match_results.append(result)
            recorded.append(result)
    db.session.flush()
    return recorded


def complete_round(round_row, commit=True):
    if round_row.completed:
        raise ResultsError('Round already completed')
    if not round_row.assignments:
        raise ResultsError('Round has no assignments')
    missing = unscored_teams(round_row)
    if missing:
        raise ResultsError(
            f'{len(missing)} team(s) have no scores yet',
            unscored_teams=missing,
        )
    record_match_results(round_row)
    round_row.completed = True
    round_row.completed_at = utcnow_naive()
    log_activity(f'{round_row.name} marked as completed')
    if commit:
        db.session.commit()
    logger.info('Round %s completed', round_row.id)
    return round_row


def bracket_status(round_row):
    stage = stage_for_round(round_row)
    total_teams = sum(len(a.team_assignments) for a in round_row.assignments)
    total_results = sum(len(a.match_results) for a in round_row.assignments)
    complete = total_teams > 0 and total_teams == total_results
    has_scores = Score.query.filter_by(
        round_id=round_row.id,
        score_type=stage['scoring_mode'],
    ).first() is not None
    return {
        'round_id': round_row.id,
        'round': round_row.to_dict(),
        'stage': stage['key'],
        'state': round_state(round_row),
        'complete': complete,
        'can_generate': (not complete) and has_scores,
        'statistics': {
            'assignments_count': len(round_row.assignments),
            'total_teams': total_teams,
            'total_results': total_results,
            'missing_results': total_teams - total_results,
            'completion_percentage': (
                round((total_results / total_teams) * 100) if total_teams else 0
            ),
        },
    }
