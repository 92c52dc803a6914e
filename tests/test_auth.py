from flask_jwt_extended import create_access_token

from tiffinhub.extensions import db
from tiffinhub.models import Customer, Notification, User


def _register(client, email='new@example.com', password='pw123456', **extra):
    return client.post('/api/auth/register', json={'email': email, 'password': password, **extra})


def test_register_starts_trial(client):
    resp = _register(client, full_name='New Kitchen')
    assert resp.status_code == 201
    body = resp.get_json()
    assert body['token']
    assert body['user']['subscription_status'] == 'trial'
    assert body['user']['plan_type'] == 'trial'
    assert body['user']['trial_ends_at'].endswith('Z')
    assert 'password_hash' not in body['user']


def test_register_validation(client):
    assert _register(client, email='').status_code == 400
    assert _register(client).status_code == 201
    resp = _register(client)
    assert resp.status_code == 409
    assert resp.get_json() == {'error': 'Email already registered'}


def test_login(client):
    _register(client)
    resp = client.post('/api/auth/login', json={'email': 'new@example.com', 'password': 'pw123456'})
    assert resp.status_code == 200
    token = resp.get_json()['token']

    me = client.get('/api/auth/me', headers={'Authorization': f'Bearer {token}'})
    assert me.status_code == 200
    assert me.get_json()['email'] == 'new@example.com'
    assert me.get_json()['created_date'] == me.get_json()['created_at']

    assert client.post('/api/auth/login', json={'email': 'new@example.com', 'password': 'nope'}).status_code == 401
    assert client.post('/api/auth/login', json={'email': 'new@example.com'}).status_code == 400


def test_update_profile_only_touches_whitelisted_fields(client, merchant):
    resp = client.put(
        '/api/auth/me',
        json={'business_name': 'Spice Box', 'is_super_admin': True, 'plan_type': 'premium'},
        headers=merchant['headers'],
    )
    body = resp.get_json()
    assert body['business_name'] == 'Spice Box'
    assert body['is_super_admin'] is False
    assert body['plan_type'] != 'premium'


def test_impersonate_requires_super_admin(client, merchant, other_merchant, admin):
    denied = client.post('/api/auth/impersonate', json={'email': other_merchant['email']}, headers=merchant['headers'])
    assert denied.status_code == 403

    resp = client.post('/api/auth/impersonate', json={'email': other_merchant['email']}, headers=admin['headers'])
    assert resp.status_code == 200
    token = resp.get_json()['token']
    me = client.get('/api/auth/me', headers={'Authorization': f'Bearer {token}'})
    assert me.get_json()['id'] == other_merchant['id']

    missing = client.post('/api/auth/impersonate', json={'email': 'ghost@example.com'}, headers=admin['headers'])
    assert missing.status_code == 404


def test_delete_account_purges_data_and_blocks_new_trial(app, client, merchant, other_merchant):
    client.post('/api/customers', json={'full_name': 'Mine'}, headers=merchant['headers'])
    client.post('/api/notifications', json={'title': 'Hi'}, headers=merchant['headers'])
    client.post('/api/customers', json={'full_name': 'Theirs'}, headers=other_merchant['headers'])

    resp = client.delete('/api/auth/delete-account', headers=merchant['headers'])
    assert resp.get_json() == {'success': True}

    with app.app_context():
        assert Customer.query.filter_by(created_by=merchant['id']).count() == 0
        assert Notification.query.filter_by(user_email=merchant['email']).count() == 0
        assert Customer.query.filter_by(created_by=other_merchant['id']).count() == 1
        tombstone = db.session.get(User, merchant['id'])
        assert tombstone.subscription_status == 'deleted'

    assert client.post('/api/auth/login', json={'email': merchant['email'], 'password': 'secret123'}).status_code == 401

    again = _register(client, email=merchant['email'])
    assert again.status_code == 201
    assert again.get_json()['user']['subscription_status'] == 'expired'
    assert again.get_json()['user']['trial_ends_at'] is None


def test_error_bodies_are_json(app, client):
    resp = client.post('/api/auth/login', json={'email': 'ghost@example.com', 'password': 'nope'})
    assert resp.get_json() == {'error': 'Invalid credentials'}

    with app.app_context():
        token = create_access_token(identity='no-such-user')
    resp = client.get('/api/auth/me', headers={'Authorization': f'Bearer {token}'})
    assert resp.status_code == 401
    assert resp.get_json() == {'error': 'User not found'}
