"""
Score aggregation and ranking for British Parliamentary rooms.

A room holds four teams. Each judge's ballot contributes speaker scores
(INDIVIDUAL) and/or team scores (TEAM); which type counts is decided by the
stage's scoring mode.

- Room ranking: descending team total, stable on ties (the earlier team in
  position order keeps the better rank). Rank maps to points 3/2/1/0.
- Standings: points accumulate across every counted room, and teams are
  ordered by (total points, total score), both descending, stable on ties.

Everything here works on plain dicts and performs no I/O.
"""

POINTS_BY_RANK = {1: 3, 2: 2, 3: 1, 4: 0}


def points_for_rank(rank):
    return POINTS_BY_RANK.get(rank, 0)


def score_team_key(score):
    """Team a score counts toward; the speaker's own team wins over the ballot's team field."""
    participant_team_id = score.get('participant_team_id')
    if participant_team_id is not None:
        return participant_team_id
    return score.get('team_id')


def aggregate_room(teams, scores, scoring_mode):
    """Sum matching score values per team.

    Args:
        teams: List of dicts with 'team_id' and 'team_name', in room order.
        scores: Iterable of dicts with 'score_type', 'value', 'team_id' and
            optionally 'participant_team_id'.
        scoring_mode: 'INDIVIDUAL' or 'TEAM'.

    Returns:
        List of {'team_id', 'team_name', 'total', 'score_count'} in the order
        of `teams`. Teams without a matching score total 0.
    """
    totals = {team['team_id']: 0.0 for team in teams}
    counts = {team['team_id']: 0 for team in teams}
    for score in scores:
        if score.get('score_type') != scoring_mode:
            continue
        key = score_team_key(score)
        if key not in totals:
            continue
        totals[key] += float(score.get('value') or 0)
        counts[key] += 1
    return [
        {
            'team_id': team['team_id'],
            'team_name': team['team_name'],
            'total': totals[team['team_id']],
            'score_count': counts[team['team_id']],
        }
        for team in teams
    ]


def rank_room(aggregates):
    """Rank one room's aggregates; returns new dicts with 'rank' and 'points'."""
    ordered = sorted(aggregates, key=lambda item: item['total'], reverse=True)
    ranked = []
    for rank, item in enumerate(ordered, start=1):
        entry = dict(item)
        entry['rank'] = rank
        entry['points'] = points_for_rank(rank)
        ranked.append(entry)
    return ranked


def accumulate_standings(ranked_rooms):
    """Fold ranked rooms into per-team totals.

    `ranked_rooms` is an iterable of (round_id, ranked_room) pairs. Team order
    of first appearance is kept so the later stable sort is deterministic.
    """
    standings = {}
    for round_id, ranked_room in ranked_rooms:
        for entry in ranked_room:
            team_id = entry['team_id']
            row = standings.get(team_id)
            if row is None:
                row = {
                    'team_id': team_id,
                    'team_name': entry['team_name'],
                    'total_points': 0,
                    'total_score': 0.0,
                    'score_count': 0,
                    'rounds': [],
                }
                standings[team_id] = row
            row['total_points'] += entry['points']
            row['total_score'] += entry['total']
            row['score_count'] += entry.get('score_count', 0)
            row['rounds'].append({
                'round_id': round_id,
                'rank': entry['rank'],
                'points': entry['points'],
                'team_score': entry['total'],
            })
    return list(standings.values())


def sort_standings(standings):
    ordered = sorted(
        standings,
        key=lambda row: (row['total_points'], row['total_score']),
        reverse=True,
    )
    result = []
    for rank, row in enumerate(ordered, start=1):
        entry = dict(row)
        entry['rank'] = rank
        result.append(entry)
    return result


def rank_rooms(rooms, scoring_mode):
    """Aggregate and rank many rooms.

    `rooms` is an iterable of dicts with 'round_id', 'teams' and 'scores'.
    Returns the list of (round_id, ranked_room) pairs.
    """
    ranked = []
    for room in rooms:
        aggregates = aggregate_room(room['teams'], room['scores'], scoring_mode)
        ranked.append((room['round_id'], rank_room(aggregates)))
    return ranked


def build_standings(rooms, scoring_mode):
    return sort_standings(accumulate_standings(rank_rooms(rooms, scoring_mode)))
