"""Stage generation: standings -> qualifiers -> rooms and positions.

Every break stage goes through `generate_stage`; the stage table in
`services.stages` supplies the qualifier count, room count and scoring mode.
Generation either creates the whole stage or nothing: all checks run before
the first insert, and the inserts share one transaction.
"""
import logging
import random
import threading

from flask import current_app
from sqlalchemy.exc import IntegrityError

from debatetab.app import db
from debatetab.models import (
    POSITIONS, Judge, Room, Round, RoundAssignment, Score, ScoreSubmission, Team,
    TeamAssignment, log_activity,
)
from debatetab.services.scoring import build_standings
from debatetab.services.stages import (
    SCORING_INDIVIDUAL, TEAMS_PER_ROOM, ALLOWED_PAIRING_POLICIES,
    prelim_round_count, previous_stage, preliminary_stage,
)

logger = logging.getLogger(__name__)

_stage_locks = {}
_stage_locks_guard = threading.Lock()


class BracketError(ValueError):
    """Precondition failure; nothing has been written when this is raised."""
    kind = 'invalid'

    def __init__(self, message, **details):
        super().__init__(message)
        self.details = details

    def to_dict(self):
        payload = {'error': str(self), 'kind': self.kind}
        payload.update(self.details)
        return payload


class StageExistsError(BracketError):
    kind = 'stage_exists'

    def __init__(self, number, name):
        super().__init__(f'{name} already exists', stage_number=number)


class InsufficientQualifiersError(BracketError):
    kind = 'insufficient_qualifiers'

    def __init__(self, required, available):
        super().__init__(
            f'Only {available} of {required} required teams qualified',
            required=required,
            available=available,
        )


class InsufficientRoomsError(BracketError):
    kind = 'insufficient_rooms'

    def __init__(self, required, available):
        super().__init__(
            f'Not enough rooms: needed {required}, available {available}',
            required=required,
            available=available,
        )


class StageSourceMissingError(BracketError):
    kind = 'source_missing'


class TeamCountError(BracketError):
    kind = 'team_count'


class UnassignedTeamsError(BracketError):
    kind = 'unassigned_teams'


class DrawLockedError(BracketError):
    kind = 'draw_locked'


def _stage_lock(number):
    with _stage_locks_guard:
        lock = _stage_locks.get(number)
        if lock is None:
            lock = threading.Lock()
            _stage_locks[number] = lock
        return lock


# ── Reading standings ─────────────────────────────────────────────────

def score_payload(score):
    participant = score.participant
    return {
        'score_type': score.score_type,
        'value': score.value,
        'team_id': score.team_id,
        'participant_team_id': participant.team_id if participant else None,
    }


def room_inputs(round_rows):
    """Rooms of the given rounds in the shape `services.scoring` expects."""
    round_ids = [rnd.id for rnd in round_rows]
    if not round_ids:
        return []
    scores_by_round = {}
    for score in Score.query.filter(Score.round_id.in_(round_ids)).all():
        scores_by_round.setdefault(score.round_id, []).append(score_payload(score))

    rooms = []
    for rnd in round_rows:
        for assignment in rnd.assignments:
            rooms.append({
                'round_id': rnd.id,
                'assignment_id': assignment.id,
                'teams': [
                    {'team_id': ta.team_id, 'team_name': ta.team.name}
                    for ta in assignment.ordered_team_assignments()
                ],
                'scores': scores_by_round.get(rnd.id, []),
            })
    return rooms


def compute_standings(round_rows, scoring_mode=SCORING_INDIVIDUAL):
    return build_standings(room_inputs(round_rows), scoring_mode)


def preliminary_rounds():
    return Round.query.filter(
        Round.number >= 1,
        Round.number <= prelim_round_count(),
    ).order_by(Round.number.asc()).all()


def eligible_standings(standings):
    """Standings of teams with at least one recorded score."""
    return [row for row in standings if row.get('score_count', 0) > 0]


def select_qualifiers(ranking, required):
    """First `required` entries of a sorted ranking, in rank order."""
    team_ids = [row['team_id'] for row in ranking]
    if len(set(team_ids)) != len(team_ids):
        raise BracketError('Ranking contains duplicate teams')
    if len(ranking) < required:
        raise InsufficientQualifiersError(required, len(ranking))
    return [dict(row, seed=seed) for seed, row in enumerate(ranking[:required], start=1)]


def chunk_into_rooms(qualifiers, rooms):
    """Consecutive groups of four go to consecutive rooms; positions follow rank order.

    With 16 qualifiers this is the seeded pool draw (1-4, 5-8, 9-12, 13-16);
    with 8 it is the sequential halves draw. Both are the same rule.
    """
    if len(qualifiers) != TEAMS_PER_ROOM * len(rooms):
        raise BracketError(
            f'{len(qualifiers)} teams cannot fill {len(rooms)} rooms of {TEAMS_PER_ROOM}',
            teams=len(qualifiers),
            rooms=len(rooms),
        )
    draw = []
    for room_index, room in enumerate(rooms):
        group = qualifiers[room_index * TEAMS_PER_ROOM:(room_index + 1) * TEAMS_PER_ROOM]
        draw.append({
            'room': room,
            'teams': [
                dict(team, position=position)
                for team, position in zip(group, POSITIONS)
            ],
        })
    return draw


# ── Writing stages ────────────────────────────────────────────────────

def ensure_stage_absent(number, name):
    if Round.query.filter_by(number=number).first():
        raise StageExistsError(number, name)


def _source_rounds(stage):
    previous = previous_stage(stage)
    if previous is None:
        rounds = preliminary_rounds()
        if not rounds:
            raise StageSourceMissingError('Preliminary rounds have not been generated')
        return rounds, SCORING_INDIVIDUAL
    source = Round.query.filter_by(number=previous['number']).first()
    if not source:
        raise StageSourceMissingError(
            f'{previous["name"]} has not been generated',
            source_stage=previous['key'],
        )
    return [source], previous['scoring_mode']


def _pairing_policy():
    policy = str(current_app.config.get('PAIRING_POLICY') or 'seeded').strip().lower()
    if policy not in ALLOWED_PAIRING_POLICIES:
        raise BracketError(f'Unknown pairing policy: {policy}')
    return policy


def _persist_draw(round_row, draw):
    created = []
    for room_draw in draw:
        assignment = RoundAssignment(round_id=round_row.id, room_id=room_draw['room'].id)
        db.session.add(assignment)
        db.session.flush()
        for team in room_draw['teams']:
            db.session.add(TeamAssignment(
                round_assignment_id=assignment.id,
                round_id=round_row.id,
                team_id=team['team_id'],
                position=team['position'],
            ))
        created.append(assignment)
    db.session.flush()
    return created


def _build_stage(stage):
    ensure_stage_absent(stage['number'], stage['name'])
    source_rounds, source_mode = _source_rounds(stage)
    _pairing_policy()

    standings = compute_standings(source_rounds, source_mode)
    qualifiers = select_qualifiers(eligible_standings(standings), stage['qualifiers'])

    rooms = Room.query.order_by(Room.id.asc()).limit(stage['rooms']).all()
    if len(rooms) < stage['rooms']:
        raise InsufficientRoomsError(stage['rooms'], len(rooms))
    draw = chunk_into_rooms(qualifiers, rooms)

    round_row = Round(number=stage['number'], name=stage['name'])
    db.session.add(round_row)
    db.session.flush()
    _persist_draw(round_row, draw)
    log_activity(f'{stage["name"]} generated with {len(qualifiers)} teams in {len(rooms)} room(s)')
    return round_row, qualifiers, draw


def generate_stage(stage, commit=True):
    """Create the round, rooms and positions for a break stage.

    Raises a BracketError subclass on any precondition failure. With
    commit=False the caller owns the transaction.
    """
    with _stage_lock(stage['number']):
        try:
            round_row, qualifiers, draw = _build_stage(stage)
            if commit:
                db.session.commit()
        except IntegrityError:
            db.session.rollback()
            if Round.query.filter_by(number=stage['number']).first():
                logger.warning('Concurrent generation of %s rejected', stage['key'])
                raise StageExistsError(stage['number'], stage['name'])
            raise
        except Exception:
            db.session.rollback()
            raise

    logger.info(
        'Generated %s (round %s): %s',
        stage['key'], round_row.id, [row['team_id'] for row in qualifiers],
    )
    return {
        'stage': stage,
        'round': round_row.to_dict(include_assignments=True),
        'qualifiers': [
            {
                'seed': row['seed'],
                'team_id': row['team_id'],
                'team_name': row['team_name'],
                'total_points': row['total_points'],
                'total_score': row['total_score'],
            }
            for row in qualifiers
        ],
        'assignments': [
            {
                'room_id': room_draw['room'].id,
                'room_name': room_draw['room'].name,
                'teams': [
                    {
                        'team_id': team['team_id'],
                        'team_name': team['team_name'],
                        'seed': team['seed'],
                        'position': team['position'],
                    }
                    for team in room_draw['teams']
                ],
            }
            for room_draw in draw
        ],
    }


# ── Preliminary draw ──────────────────────────────────────────────────

def rotate_positions(group, history):
    """Give each position to the team in `group` that has held it least.

    `history` maps team_id -> {position: count} and is updated in place.
    Ties go to the earlier team in `group`.
    """
    remaining = list(group)
    seated = []
    for position in POSITIONS:
        team = min(
            remaining,
            key=lambda candidate: history.get(candidate.id, {}).get(position, 0),
        )
        remaining.remove(team)
        counts = history.setdefault(team.id, {})
        counts[position] = counts.get(position, 0) + 1
        seated.append((team, position))
    return seated


def _position_history():
    history = {}
    for ta in TeamAssignment.query.all():
        counts = history.setdefault(ta.team_id, {})
        counts[ta.position] = counts.get(ta.position, 0) + 1
    return history


def generate_preliminary_rounds(rng=None, commit=True):
    """Draw every preliminary round that does not exist yet."""
    total = prelim_round_count()
    existing = preliminary_rounds()
    existing_numbers = {rnd.number for rnd in existing}
    pending = [number for number in range(1, total + 1) if number not in existing_numbers]
    if not pending:
        raise StageExistsError(total, f'All {total} preliminary rounds')

    teams = Team.query.order_by(Team.id.asc()).all()
    if not teams or len(teams) % TEAMS_PER_ROOM:
        raise TeamCountError(
            f'Team count must be a positive multiple of {TEAMS_PER_ROOM}',
            team_count=len(teams),
        )

    if existing:
        assigned_counts = {}
        for ta in TeamAssignment.query.filter(
            TeamAssignment.round_id.in_([rnd.id for rnd in existing])
        ).all():
            assigned_counts[ta.team_id] = assigned_counts.get(ta.team_id, 0) + 1
        unassigned = [team for team in teams if assigned_counts.get(team.id, 0) < len(existing)]
        if unassigned:
            raise UnassignedTeamsError(
                f'Some teams have not been assigned a room in {len(existing)} previous round(s)',
                unassigned_team_names=[team.name for team in unassigned],
            )

    room_count = len(teams) // TEAMS_PER_ROOM
    rooms = Room.query.order_by(Room.id.asc()).limit(room_count).all()
    if len(rooms) < room_count:
        raise InsufficientRoomsError(room_count, len(rooms))

    judges = Judge.query.order_by(Judge.id.asc()).all()
    if rng is None:
        rng = random.Random(current_app.config.get('DRAW_SEED'))
    history = _position_history()

    created = []
    try:
        for number in pending:
            stage = preliminary_stage(number)
            shuffled_teams = list(teams)
            rng.shuffle(shuffled_teams)
            shuffled_judges = list(judges)
            rng.shuffle(shuffled_judges)

            round_row = Round(number=number, name=stage['name'])
            db.session.add(round_row)
            db.session.flush()
            for room_index, room in enumerate(rooms):
                judge = shuffled_judges[room_index] if room_index < len(shuffled_judges) else None
                assignment = RoundAssignment(
                    round_id=round_row.id,
                    room_id=room.id,
                    judge_id=judge.id if judge else None,
                )
                db.session.add(assignment)
                db.session.flush()
                group = shuffled_teams[room_index * TEAMS_PER_ROOM:(room_index + 1) * TEAMS_PER_ROOM]
                for team, position in rotate_positions(group, history):
                    db.session.add(TeamAssignment(
                        round_assignment_id=assignment.id,
                        round_id=round_row.id,
                        team_id=team.id,
                        position=position,
                    ))
            created.append(round_row)
        db.session.flush()
        log_activity(f'Generated {len(created)} preliminary round(s)')
        if commit:
            db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise StageExistsError(pending[0], 'A preliminary round')
    except Exception:
        db.session.rollback()
        raise

    logger.info('Generated preliminary rounds %s', [rnd.number for rnd in created])
    return created


# ── Draw corrections ──────────────────────────────────────────────────

def _reseat_plan(team_assignment, team_id, position):
    """Map each affected TeamAssignment to its new (team_id, position)."""
    plan = {team_assignment: (team_id, position)}
    if team_id != team_assignment.team_id:
        holder = TeamAssignment.query.filter(
            TeamAssignment.round_id == team_assignment.round_id,
            TeamAssignment.team_id == team_id,
            TeamAssignment.id != team_assignment.id,
        ).first()
        if holder is not None:
            plan[holder] = (team_assignment.team_id, holder.position)
    if position != team_assignment.position:
        holder = TeamAssignment.query.filter(
            TeamAssignment.round_assignment_id == team_assignment.round_assignment_id,
            TeamAssignment.position == position,
            TeamAssignment.id != team_assignment.id,
        ).first()
        if holder is not None:
            held_team, _ = plan.get(holder, (holder.team_id, holder.position))
            plan[holder] = (held_team, team_assignment.position)
    return plan


def reseat_team(team_assignment, team_id=None, position=None, commit=True):
    """Change the team or position of one seat in a draw.

    A team already drawn elsewhere in the round trades places with the old
    team, and a position already held in the room trades with the old
    position, so every room keeps one team per position and every team
    debates once per round. Rooms with a ballot are left alone.
    """
    round_row = team_assignment.round_assignment.round
    if round_row.completed:
        raise DrawLockedError(f'{round_row.name} is already completed', round_id=round_row.id)

    if team_id is None:
        team_id = team_assignment.team_id
    else:
        try:
            team_id = int(team_id)
        except (TypeError, ValueError):
            raise BracketError('team_id must be an integer')
        if db.session.get(Team, team_id) is None:
            raise BracketError('Team not found', team_id=team_id)
    if position is None:
        position = team_assignment.position
    position = str(position).strip().upper()
    if position not in POSITIONS:
        raise BracketError(f'Position must be one of {", ".join(POSITIONS)}', position=position)

    plan = _reseat_plan(team_assignment, team_id, position)
    plan = {
        ta: seat for ta, seat in plan.items() if seat != (ta.team_id, ta.position)
    }
    if not plan:
        return [team_assignment]

    room_ids = {ta.round_assignment_id for ta in plan}
    balloted = ScoreSubmission.query.filter(
        ScoreSubmission.round_assignment_id.in_(room_ids)
    ).first()
    if balloted is not None:
        raise DrawLockedError(
            'Teams cannot move once a ballot is in for the room',
            assignment_id=balloted.round_assignment_id,
        )

    try:
        # Swapped seats clash mid-update, so the rows are replaced wholesale.
        replacements = [
            TeamAssignment(
                round_assignment_id=ta.round_assignment_id,
                round_id=ta.round_id,
                team_id=seat[0],
                position=seat[1],
            )
            for ta, seat in sorted(plan.items(), key=lambda item: item[0].id)
        ]
        for ta in plan:
            ta.round_assignment.match_results.clear()
            ta.round_assignment.team_assignments.remove(ta)
        db.session.flush()
        for row in replacements:
            db.session.add(row)
        db.session.flush()
        log_activity(
            f'Draw for {round_row.name} changed: team {team_id} seated as {position}'
        )
        if commit:
            db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise BracketError('Seat change conflicts with the rest of the draw')

    logger.info(
        'Round %s reseated %s seat(s) around team assignment %s',
        round_row.id, len(replacements), team_assignment.id,
    )
    return replacements
