"""Tests for preliminary draws and the round lifecycle."""
import json

from debatetab.app import db
from debatetab.models import Judge, MatchResult, Round


def _add_judges(count):
    for index in range(1, count + 1):
        db.session.add(Judge(name=f'Adjudicator {index}'))
    db.session.commit()


def _round(client, round_id):
    return json.loads(client.get(f'/api/rounds/{round_id}').data)['round']


def test_generate_prelims_draws_every_round(client, admin_headers, make_field):
    team_ids, _ = make_field(16, 4)
    _add_judges(4)

    res = client.post('/api/rounds/generate-prelims', headers=admin_headers)
    assert res.status_code == 201
    rounds = json.loads(res.data)['rounds']
    assert [rnd['number'] for rnd in rounds] == [1, 2, 3]

    for rnd in rounds:
        assert len(rnd['assignments']) == 4
        seen = []
        judges = set()
        for assignment in rnd['assignments']:
            assert [t['position'] for t in assignment['teams']] == ['OG', 'OO', 'CG', 'CO']
            seen.extend(t['team_id'] for t in assignment['teams'])
            judges.add(assignment['judge']['id'])
        assert sorted(seen) == sorted(team_ids)
        assert len(judges) == 4


def test_generate_prelims_is_not_repeated(client, admin_headers, make_field):
    make_field(16, 4)
    assert client.post('/api/rounds/generate-prelims', headers=admin_headers).status_code == 201

    res = client.post('/api/rounds/generate-prelims', headers=admin_headers)
    assert res.status_code == 400
    assert json.loads(res.data)['kind'] == 'stage_exists'
    assert Round.query.count() == 3


def test_generate_prelims_needs_full_rooms(client, admin_headers, make_field):
    make_field(15, 4)
    res = client.post('/api/rounds/generate-prelims', headers=admin_headers)
    assert res.status_code == 400
    data = json.loads(res.data)
    assert data['kind'] == 'team_count'
    assert data['team_count'] == 15
    assert Round.query.count() == 0


def test_generate_prelims_needs_rooms(client, admin_headers, make_field):
    make_field(16, 3)
    res = client.post('/api/rounds/generate-prelims', headers=admin_headers)
    assert res.status_code == 400
    data = json.loads(res.data)
    assert data['kind'] == 'insufficient_rooms'
    assert data['required'] == 4
    assert Round.query.count() == 0


def test_round_moves_from_created_to_completed(client, admin_headers, make_field, make_round, record_scores):
    team_ids, room_ids = make_field(8, 2)
    round_id = make_round(1, team_ids, room_ids)
    assert _round(client, round_id)['state'] == 'CREATED'

    record_scores(round_id, {team_id: 80 for team_id in team_ids[:6]})
    res = client.post(f'/api/rounds/{round_id}/complete', headers=admin_headers)
    assert res.status_code == 400
    assert len(json.loads(res.data)['unscored_teams']) == 2
    assert _round(client, round_id)['state'] == 'CREATED'

    record_scores(round_id, {team_id: 70 for team_id in team_ids[6:]})
    assert _round(client, round_id)['state'] == 'SCORED'

    res = client.post(f'/api/rounds/{round_id}/complete', headers=admin_headers)
    assert res.status_code == 200
    completed = json.loads(res.data)['round']
    assert completed['state'] == 'COMPLETED'
    assert completed['completed'] is True
    assert MatchResult.query.count() == 8

    res = client.post(f'/api/rounds/{round_id}/complete', headers=admin_headers)
    assert res.status_code == 400


def test_bracket_status_tracks_recorded_results(client, admin_headers, make_field, make_round, record_scores):
    team_ids, room_ids = make_field(8, 2)
    round_id = make_round(1, team_ids, room_ids)

    status = json.loads(client.get(f'/api/bracket/status?round_id={round_id}').data)
    assert status['state'] == 'CREATED'
    assert status['complete'] is False
    assert status['can_generate'] is False
    assert status['statistics'] == {
        'assignments_count': 2,
        'total_teams': 8,
        'total_results': 0,
        'missing_results': 8,
        'completion_percentage': 0,
    }

    record_scores(round_id, {team_id: 60 + index for index, team_id in enumerate(team_ids)})
    status = json.loads(client.get(f'/api/bracket/status?round_id={round_id}').data)
    assert status['can_generate'] is True

    res = client.post(f'/api/rounds/{round_id}/results', headers=admin_headers)
    assert res.status_code == 200
    results = json.loads(res.data)['results']
    assert sorted(r['points'] for r in results) == [0, 0, 1, 1, 2, 2, 3, 3]

    status = json.loads(client.get(f'/api/bracket/status?round_id={round_id}').data)
    assert status['complete'] is True
    assert status['statistics']['completion_percentage'] == 100

    # Rebuilding replaces the cached rows instead of adding to them.
    client.post(f'/api/rounds/{round_id}/results', headers=admin_headers)
    assert MatchResult.query.count() == 8


def test_bracket_status_errors(client):
    assert client.get('/api/bracket/status').status_code == 400
    assert client.get('/api/bracket/status?round_id=abc').status_code == 400
    assert client.get('/api/bracket/status?round_id=0').status_code == 400
    res = client.get('/api/bracket/status?round_id=999')
    assert res.status_code == 404
    assert '999' in json.loads(res.data)['error']


def test_completed_round_refuses_ballots(
    client, admin_headers, make_field, make_round, record_scores, make_judge,
):
    team_ids, room_ids = make_field(8, 2)
    headers, judge_id = make_judge('Judge One')
    round_id = make_round(1, team_ids, room_ids, judge_ids=[judge_id, None])
    record_scores(round_id, {team_id: 75 for team_id in team_ids})
    assert client.post(f'/api/rounds/{round_id}/complete', headers=admin_headers).status_code == 200

    assignment = _round(client, round_id)['assignments'][0]
    res = client.post('/api/scores', json={
        'round_assignment_id': assignment['id'],
        'team_scores': [{'team_id': assignment['teams'][0]['team_id'], 'value': 3}],
        'individual_scores': [],
    }, headers=headers)
    assert res.status_code == 400
    assert 'completed' in json.loads(res.data)['error']


def test_recap_shows_who_has_submitted(
    client, admin_headers, make_field, make_round, make_judge,
):
    team_ids, room_ids = make_field(8, 2)
    first_headers, first_id = make_judge('Judge One')
    _, second_id = make_judge('Judge Two')
    round_id = make_round(1, team_ids, room_ids, judge_ids=[first_id, second_id])
    assignment = _round(client, round_id)['assignments'][0]
    room_team_ids = {team['team_id'] for team in assignment['teams']}
    speakers = [
        p for p in json.loads(client.get('/api/participants').data)['participants']
        if p['team_id'] in room_team_ids
    ]

    res = client.post('/api/scores', json={
        'round_assignment_id': assignment['id'],
        'team_scores': [],
        'individual_scores': [
            {'participant_id': speaker['id'], 'value': 70 + index}
            for index, speaker in enumerate(speakers)
        ],
    }, headers=first_headers)
    assert res.status_code == 201

    recap = json.loads(client.get(f'/api/rounds/{round_id}/recap', headers=admin_headers).data)
    assert recap['stage'] == 'preliminary_1'
    submitted = {
        judge['judge_id']: judge['is_submitted']
        for room in recap['rooms'] for judge in room['judges']
    }
    assert submitted == {first_id: True, second_id: False}


def test_motion_update(client, admin_headers, make_field, make_round):
    team_ids, room_ids = make_field(4, 1)
    round_id = make_round(1, team_ids, room_ids)

    res = client.put(f'/api/rounds/{round_id}/motion', json={
        'motion': 'This House would abolish homework',
    }, headers=admin_headers)
    assert res.status_code == 200
    assert json.loads(res.data)['round']['motion'] == 'This House would abolish homework'
    res = client.put(f'/api/rounds/{round_id}/motion', json={'motion': ' '}, headers=admin_headers)
    assert res.status_code == 400
