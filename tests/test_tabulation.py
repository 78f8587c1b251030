"""Tests for rankings, tabulation and the dashboard."""
import json


def test_rankings_follow_points_then_score(client, make_field, make_round, record_scores):
    team_ids, room_ids = make_field(8, 2)
    round_id = make_round(1, team_ids, room_ids)
    record_scores(round_id, {team_id: 100 - index for index, team_id in enumerate(team_ids)})

    res = client.get('/api/rankings')
    assert res.status_code == 200
    data = json.loads(res.data)
    assert data['stage'] == 'preliminary'
    rankings = data['rankings']
    assert [row['team_id'] for row in rankings] == [team_ids[i] for i in (0, 4, 1, 5, 2, 6, 3, 7)]
    assert [row['total_points'] for row in rankings] == [3, 3, 2, 2, 1, 1, 0, 0]
    assert [row['rank'] for row in rankings] == list(range(1, 9))


def test_rankings_for_missing_stage(client):
    assert client.get('/api/rankings?stage=quarterfinal').status_code == 404
    assert client.get('/api/rankings?stage=octofinal').status_code == 400


def test_tabulation_has_team_and_speaker_tabs(client, make_field, make_round, record_scores):
    team_ids, room_ids = make_field(4, 1)
    round_id = make_round(1, team_ids, room_ids)
    record_scores(round_id, {team_ids[0]: 70, team_ids[1]: 80, team_ids[2]: 60, team_ids[3]: 75})

    data = json.loads(client.get('/api/tabulation').data)
    teams = data['team_tabulation']
    assert set(teams) == {'preliminary', 'quarterfinal', 'semifinal', 'grand_final'}
    assert teams['quarterfinal'] == []
    assert teams['preliminary'][0]['team_id'] == team_ids[1]

    speakers = data['individual_tabulation']
    assert [row['total_score'] for row in speakers] == [80, 75, 70, 60]
    assert speakers[0]['team_id'] == team_ids[1]
    assert speakers[0]['average_score'] == 80
    assert speakers[0]['rank'] == 1

    filtered = json.loads(client.get('/api/tabulation?round_id=999').data)
    assert filtered['individual_tabulation'] == []


def test_winners_fall_back_to_preliminaries(client, make_field, make_round, record_scores):
    team_ids, room_ids = make_field(4, 1)
    round_id = make_round(1, team_ids, room_ids)
    record_scores(round_id, {team_ids[0]: 70, team_ids[1]: 80, team_ids[2]: 60, team_ids[3]: 75})

    data = json.loads(client.get('/api/dashboard/winners').data)
    assert data['source'] == 'preliminary'
    assert [row['team_id'] for row in data['top_teams']] == [team_ids[1], team_ids[3], team_ids[0]]
    assert [row['place'] for row in data['top_teams']] == [1, 2, 3]
    assert data['best_speaker']['team_id'] == team_ids[1]


def test_winners_without_scores(client):
    data = json.loads(client.get('/api/dashboard/winners').data)
    assert data == {'source': 'preliminary', 'top_teams': [], 'best_speaker': None}


def test_activity_log_is_admin_only(client, admin_headers, auth_headers):
    client.post('/api/rooms', json={'name': 'Room A'}, headers=admin_headers)
    client.post('/api/teams', json={'name': 'Logged Team'}, headers=admin_headers)

    assert client.get('/api/dashboard/logs', headers=auth_headers).status_code == 403
    res = client.get('/api/dashboard/logs?limit=1', headers=admin_headers)
    assert res.status_code == 200
    logs = json.loads(res.data)['logs']
    assert len(logs) == 1
    assert logs[0]['message'] == 'Team Logged Team registered'
