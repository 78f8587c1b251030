"""Tournament stage table.

Preliminary rounds take ordinals 1..PRELIM_ROUNDS. Break stages follow and are
sized by BREAK_SIZE:

    BREAK_SIZE=16   quarterfinal (16 teams, 4 rooms) -> semifinal (8, 2) -> grand final (4, 1)
    BREAK_SIZE=8    semifinal (8 teams, 2 rooms) -> grand final (4, 1)

Every stage names its scoring mode explicitly instead of inferring it from the
round number.
"""
from flask import current_app

SCORING_INDIVIDUAL = 'INDIVIDUAL'
SCORING_TEAM = 'TEAM'
ALLOWED_SCORING_MODES = {SCORING_INDIVIDUAL, SCORING_TEAM}
ALLOWED_PAIRING_POLICIES = {'seeded'}
ALLOWED_BREAK_SIZES = {8, 16}

TEAMS_PER_ROOM = 4

_BREAK_LADDER = (
    ('quarterfinal', 'Quarterfinal', 16),
    ('semifinal', 'Semifinal', 8),
    ('grand_final', 'Grand Final', 4),
)


def _normalize_scoring_mode(raw_value):
    mode = str(raw_value or SCORING_INDIVIDUAL).strip().upper()
    if mode not in ALLOWED_SCORING_MODES:
        raise ValueError(f'Unknown scoring mode: {raw_value}')
    return mode


def preliminary_stage(number):
    return {
        'key': f'preliminary_{number}',
        'name': f'Preliminary {number}',
        'number': number,
        'is_break': False,
        'qualifiers': None,
        'rooms': None,
        'scoring_mode': SCORING_INDIVIDUAL,
        'multi_judge': False,
        'single_submission': False,
    }


def build_stages(prelim_rounds=3, break_size=16, break_scoring_mode=SCORING_INDIVIDUAL):
    """Return the break stages in tournament order."""
    if break_size not in ALLOWED_BREAK_SIZES:
        raise ValueError('break_size must be 8 or 16')
    mode = _normalize_scoring_mode(break_scoring_mode)
    ladder = [step for step in _BREAK_LADDER if step[2] <= break_size]
    stages = []
    for offset, (key, name, qualifiers) in enumerate(ladder, start=1):
        is_final = qualifiers == TEAMS_PER_ROOM
        stages.append({
            'key': key,
            'name': name,
            'number': prelim_rounds + offset,
            'is_break': True,
            'qualifiers': qualifiers,
            'rooms': qualifiers // TEAMS_PER_ROOM,
            'scoring_mode': mode,
            'multi_judge': is_final,
            'single_submission': is_final,
        })
    return stages


def configured_stages():
    cfg = current_app.config
    return build_stages(
        prelim_rounds=int(cfg.get('PRELIM_ROUNDS', 3)),
        break_size=int(cfg.get('BREAK_SIZE', 16)),
        break_scoring_mode=cfg.get('BREAK_SCORING_MODE', SCORING_INDIVIDUAL),
    )


def prelim_round_count():
    return int(current_app.config.get('PRELIM_ROUNDS', 3))


def is_preliminary(number):
    return 1 <= int(number) <= prelim_round_count()


def stage_by_key(key):
    normalized = str(key or '').strip().lower().replace('-', '_').replace(' ', '_')
    if normalized == 'grandfinal':
        normalized = 'grand_final'
    return next((stage for stage in configured_stages() if stage['key'] == normalized), None)


def stage_by_number(number):
    """Stage record for any ordinal, preliminary or break; None if out of range."""
    try:
        number = int(number)
    except (TypeError, ValueError):
        return None
    if is_preliminary(number):
        return preliminary_stage(number)
    return next((stage for stage in configured_stages() if stage['number'] == number), None)


def previous_stage(stage):
    """The break stage before `stage`, or None when it follows the preliminaries."""
    stages = configured_stages()
    for index, candidate in enumerate(stages):
        if candidate['key'] == stage['key']:
            return stages[index - 1] if index > 0 else None
    return None


def final_stage():
    return configured_stages()[-1]
