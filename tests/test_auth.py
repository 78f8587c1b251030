"""Tests for authentication routes."""
import json

from debatetab.app import db
from debatetab.models import Judge


def test_register(client):
    res = client.post('/api/auth/register', json={
        'username': 'newuser', 'email': 'new@example.com', 'password': 'password123',
    })
    assert res.status_code == 201
    data = json.loads(res.data)
    assert 'token' in data
    assert data['user']['username'] == 'newuser'
    assert data['user']['is_admin'] is False
    assert data['user']['judge_id'] is None


def test_register_duplicate(client):
    client.post('/api/auth/register', json={
        'username': 'dup', 'email': 'dup@example.com', 'password': 'password123',
    })
    res = client.post('/api/auth/register', json={
        'username': 'dup', 'email': 'dup2@example.com', 'password': 'password123',
    })
    assert res.status_code == 409
    res = client.post('/api/auth/register', json={
        'username': 'dup2', 'email': 'DUP@example.com', 'password': 'password123',
    })
    assert res.status_code == 409


def test_register_validation(client):
    res = client.post('/api/auth/register', json={'username': 'x'})
    assert res.status_code == 400
    res = client.post('/api/auth/register', json={
        'username': 'short', 'email': 'short@example.com', 'password': 'abc',
    })
    assert res.status_code == 400


def test_configured_admin_email_becomes_admin(client, admin_headers):
    res = client.get('/api/auth/me', headers=admin_headers)
    assert res.status_code == 200
    assert json.loads(res.data)['user']['is_admin'] is True


def test_login(client):
    client.post('/api/auth/register', json={
        'username': 'loginuser', 'email': 'login@example.com', 'password': 'password123',
    })
    res = client.post('/api/auth/login', json={
        'email': 'login@example.com', 'password': 'password123',
    })
    assert res.status_code == 200
    assert 'token' in json.loads(res.data)


def test_login_invalid(client):
    res = client.post('/api/auth/login', json={
        'email': 'nobody@example.com', 'password': 'wrong',
    })
    assert res.status_code == 401


def test_me_requires_token(client):
    assert client.get('/api/auth/me').status_code == 401
    res = client.get('/api/auth/me', headers={'Authorization': 'Bearer not-a-token'})
    assert res.status_code == 401
    assert json.loads(res.data)['error'] == 'Invalid token'


def test_register_links_judge_with_matching_email(client):
    judge = Judge(name='Pat Adjudicator', email='pat@example.com')
    db.session.add(judge)
    db.session.commit()
    judge_id = judge.id

    res = client.post('/api/auth/register', json={
        'username': 'pat', 'email': 'Pat@Example.com', 'password': 'password123',
    })
    assert res.status_code == 201
    assert json.loads(res.data)['user']['judge_id'] == judge_id


def test_login_links_judge_created_after_registration(client):
    client.post('/api/auth/register', json={
        'username': 'late', 'email': 'late@example.com', 'password': 'password123',
    })
    db.session.add(Judge(name='Late Judge', email='late@example.com'))
    db.session.commit()

    res = client.post('/api/auth/login', json={
        'email': 'late@example.com', 'password': 'password123',
    })
    assert json.loads(res.data)['user']['judge_id'] is not None
