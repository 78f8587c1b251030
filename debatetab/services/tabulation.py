"""Read-only tabulation views built on the same standings as the bracket."""
from debatetab.models import Judge, Round, Score, ScoreSubmission
from debatetab.services.bracket import (
    compute_standings, eligible_standings, preliminary_rounds, room_inputs,
)
from debatetab.services.scoring import aggregate_room
from debatetab.services.stages import SCORING_INDIVIDUAL, configured_stages, final_stage
from debatetab.services.results import stage_for_round

_PODIUM_SIZE = 3


def team_tabulation():
    """Standings for the preliminaries combined and for each break stage."""
    tabs = {'preliminary': compute_standings(preliminary_rounds(), SCORING_INDIVIDUAL)}
    for stage in configured_stages():
        round_row = Round.query.filter_by(number=stage['number']).first()
        tabs[stage['key']] = (
            compute_standings([round_row], stage['scoring_mode']) if round_row else []
        )
    return tabs


def speaker_tabulation(round_ids=None):
    query = Score.query.filter(
        Score.score_type == 'INDIVIDUAL',
        Score.participant_id.isnot(None),
    )
    if round_ids is not None:
        if not round_ids:
            return []
        query = query.filter(Score.round_id.in_(round_ids))

    speakers = {}
    for score in query.order_by(Score.id.asc()).all():
        participant = score.participant
        row = speakers.get(participant.id)
        if row is None:
            row = {
                'speaker_id': participant.id,
                'speaker_name': participant.name,
                'team_id': participant.team_id,
                'team_name': participant.team.name if participant.team else 'Unknown',
                'total_score': 0.0,
                'scores': [],
            }
            speakers[participant.id] = row
        row['total_score'] += score.value
        row['scores'].append({
            'round_id': score.round_id,
            'round_name': score.round.name if score.round else None,
            'value': score.value,
        })

    tab = []
    for row in speakers.values():
        count = len(row['scores'])
        row['average_score'] = round(row['total_score'] / count, 2) if count else 0
        tab.append(row)
    tab.sort(key=lambda item: item['total_score'], reverse=True)
    for rank, row in enumerate(tab, start=1):
        row['rank'] = rank
    return tab


def _podium(standings):
    return [
        {
            'place': place,
            'team_id': row['team_id'],
            'team_name': row['team_name'],
            'total_points': row['total_points'],
            'total_score': row['total_score'],
        }
        for place, row in enumerate(eligible_standings(standings)[:_PODIUM_SIZE], start=1)
    ]


def winners():
    """Podium from the grand final once it has scores, otherwise from the preliminaries."""
    final = final_stage()
    final_round = Round.query.filter_by(number=final['number']).first()
    podium = []
    source = 'preliminary'
    if final_round:
        podium = _podium(compute_standings([final_round], final['scoring_mode']))
        if podium:
            source = final['key']
    prelims = preliminary_rounds()
    if not podium:
        podium = _podium(compute_standings(prelims, SCORING_INDIVIDUAL))

    speakers = speaker_tabulation([rnd.id for rnd in prelims])
    return {
        'source': source,
        'top_teams': podium,
        'best_speaker': speakers[0] if speakers else None,
    }


def round_recap(round_row):
    stage = stage_for_round(round_row)
    submitted = {
        (row.round_assignment_id, row.judge_id)
        for row in ScoreSubmission.query.filter_by(round_id=round_row.id).all()
    }
    assignments = {assignment.id: assignment for assignment in round_row.assignments}
    judge_ids = {jid for assignment in round_row.assignments for jid in assignment.judge_ids()}
    judges_by_id = {
        judge.id: judge for judge in Judge.query.filter(Judge.id.in_(judge_ids)).all()
    } if judge_ids else {}

    rooms = []
    for room in room_inputs([round_row]):
        assignment = assignments[room['assignment_id']]
        aggregates = aggregate_room(room['teams'], room['scores'], stage['scoring_mode'])
        rooms.append({
            'assignment_id': assignment.id,
            'room_name': assignment.room.name if assignment.room else None,
            'judges': [
                {
                    'judge_id': jid,
                    'judge_name': judges_by_id[jid].name if jid in judges_by_id else None,
                    'is_submitted': (assignment.id, jid) in submitted,
                }
                for jid in assignment.judge_ids()
            ],
            'team_scores': [
                {
                    'team_id': item['team_id'],
                    'team_name': item['team_name'],
                    'total_score': item['total'],
                }
                for item in aggregates
            ],
        })
    return {'round': round_row.to_dict(), 'stage': stage['key'], 'rooms': rooms}
