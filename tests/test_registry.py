"""Tests for team, participant, room and judge setup."""
import json


def _create_team(client, headers, name='Northfield A', participants=None):
    return client.post('/api/teams', json={
        'name': name,
        'institution': 'Northfield College',
        'participants': participants if participants is not None else [
            {'name': 'Ada'}, {'name': 'Grace'},
        ],
    }, headers=headers)


def test_create_and_list_teams(client, admin_headers):
    res = _create_team(client, admin_headers)
    assert res.status_code == 201
    team = json.loads(res.data)['team']
    assert [p['name'] for p in team['participants']] == ['Ada', 'Grace']

    res = client.get('/api/teams')
    assert [t['name'] for t in json.loads(res.data)['teams']] == ['Northfield A']


def test_create_team_validation(client, admin_headers, auth_headers):
    assert _create_team(client, auth_headers).status_code == 403
    assert _create_team(client, admin_headers, name='').status_code == 400
    too_many = [{'name': f'Speaker {i}'} for i in range(4)]
    assert _create_team(client, admin_headers, participants=too_many).status_code == 400
    assert _create_team(client, admin_headers).status_code == 201
    assert _create_team(client, admin_headers).status_code == 409


def test_update_team_and_add_participant(client, admin_headers):
    team = json.loads(_create_team(client, admin_headers, participants=[{'name': 'Ada'}]).data)['team']

    res = client.put(f'/api/teams/{team["id"]}', json={'name': 'Northfield B'}, headers=admin_headers)
    assert res.status_code == 200
    assert json.loads(res.data)['team']['name'] == 'Northfield B'

    res = client.post(f'/api/teams/{team["id"]}/participants', json={'name': 'Grace'}, headers=admin_headers)
    assert res.status_code == 201
    participant = json.loads(res.data)['participant']
    assert participant['team_id'] == team['id']

    res = client.put(f'/api/participants/{participant["id"]}', json={'name': 'Grace H.'}, headers=admin_headers)
    assert json.loads(res.data)['participant']['name'] == 'Grace H.'


def test_participant_update_needs_an_object(client, admin_headers):
    team = json.loads(_create_team(client, admin_headers).data)['team']
    participant_id = team['participants'][0]['id']

    for body in ('"Grace"', '["name"]'):
        res = client.put(
            f'/api/participants/{participant_id}', data=body, headers=admin_headers,
        )
        assert res.status_code == 400
        assert json.loads(res.data)['error'] == 'Invalid JSON payload'
    res = client.get('/api/participants')
    names = [p['name'] for p in json.loads(res.data)['participants']]
    assert names == ['Ada', 'Grace']


def test_team_in_a_draw_cannot_be_deleted(client, admin_headers, make_field, make_round):
    team_ids, room_ids = make_field(4, 1)
    make_round(1, team_ids, room_ids)
    res = client.delete(f'/api/teams/{team_ids[0]}', headers=admin_headers)
    assert res.status_code == 400

    spare = json.loads(_create_team(client, admin_headers, name='Spare').data)['team']
    res = client.delete(f'/api/teams/{spare["id"]}', headers=admin_headers)
    assert res.status_code == 200
    assert client.get(f'/api/teams/{spare["id"]}').status_code == 404


def test_rooms(client, admin_headers):
    res = client.post('/api/rooms', json={'name': 'Lecture Hall 1'}, headers=admin_headers)
    assert res.status_code == 201
    room_id = json.loads(res.data)['room']['id']
    assert client.post('/api/rooms', json={'name': 'Lecture Hall 1'}, headers=admin_headers).status_code == 409
    assert client.post('/api/rooms', json={}, headers=admin_headers).status_code == 400

    res = client.delete(f'/api/rooms/{room_id}', headers=admin_headers)
    assert res.status_code == 200
    assert json.loads(client.get('/api/rooms').data)['rooms'] == []


def test_judge_links_existing_user_by_email(client, admin_headers, auth_headers):
    res = client.post('/api/judges', json={'name': 'Test Judge', 'email': 'test@example.com'}, headers=admin_headers)
    assert res.status_code == 201
    judge = json.loads(res.data)['judge']
    assert judge['user_id'] is not None

    res = client.post('/api/judges', json={'name': 'Again', 'email': 'test@example.com'}, headers=admin_headers)
    assert res.status_code == 409

    me = json.loads(client.get('/api/auth/me', headers=auth_headers).data)['user']
    assert me['judge_id'] == judge['id']


def test_judge_with_unknown_user_id(client, admin_headers):
    res = client.post('/api/judges', json={'name': 'Ghost', 'user_id': 999}, headers=admin_headers)
    assert res.status_code == 404
