"""Seed an empty database with a demo tournament."""
import logging

from debatetab.app import db
from debatetab.models import Judge, Participant, Room, Team, log_activity

logger = logging.getLogger(__name__)

DEMO_ROOM_COUNT = 8
DEMO_JUDGE_COUNT = 8
DEMO_TEAM_COUNT = 32
DEMO_SPEAKERS_PER_TEAM = 2

_INSTITUTIONS = (
    'Northfield College', 'Harbour University', 'Westbrook Institute', 'Eastgate University',
)


def seed_demo_tournament(commit=True):
    """Insert rooms, judges and teams only when no team exists yet.

    Returns the number of teams created.
    """
    if Team.query.first():
        return 0

    try:
        for index in range(1, DEMO_ROOM_COUNT + 1):
            if not Room.query.filter_by(name=f'Room {index}').first():
                db.session.add(Room(name=f'Room {index}'))
        for index in range(1, DEMO_JUDGE_COUNT + 1):
            db.session.add(Judge(name=f'Judge {index}', email=f'judge{index}@demo.debatetab'))
        for index in range(1, DEMO_TEAM_COUNT + 1):
            team = Team(
                name=f'Team {index:02d}',
                institution=_INSTITUTIONS[(index - 1) % len(_INSTITUTIONS)],
            )
            for speaker in range(1, DEMO_SPEAKERS_PER_TEAM + 1):
                team.participants.append(Participant(
                    name=f'Speaker {index:02d}-{speaker}',
                    email=f'team{index:02d}.speaker{speaker}@demo.debatetab',
                ))
            db.session.add(team)
        log_activity(f'Demo tournament seeded with {DEMO_TEAM_COUNT} teams')
        if commit:
            db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        'Seeded demo tournament: %s rooms, %s judges, %s teams',
        DEMO_ROOM_COUNT, DEMO_JUDGE_COUNT, DEMO_TEAM_COUNT,
    )
    return DEMO_TEAM_COUNT
