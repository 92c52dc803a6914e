import json
from datetime import datetime

from tiffinhub.extensions import db
from tiffinhub.models import Customer, MenuItem, SystemLog


def _create_customer(client, owner, **fields):
    payload = {'full_name': 'Ravi', 'phone_number': '971500000000', 'payment_amount': '350'}
    payload.update(fields)
    resp = client.post('/api/customers', json=payload, headers=owner['headers'])
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()


def test_create_forces_server_fields(client, merchant, other_merchant):
    body = _create_customer(
        client, merchant,
        id='my-id', created_date='2020-01-01', created_by=other_merchant['id'], start_date='2026-01-01',
    )
    assert body['id'] != 'my-id'
    assert body['created_by'] == merchant['id']
    assert body['payment_amount'] == 350
    assert body['start_date'] == '2026-01-01T00:00:00.000Z'
    assert body['created_date'] == body['created_at']
    assert body['created_date'].endswith('Z')
    assert not body['created_date'].startswith('2020')


def test_list_only_returns_own_records(client, merchant, other_merchant):
    _create_customer(client, merchant, full_name='Mine')
    _create_customer(client, other_merchant, full_name='Theirs')

    resp = client.get('/api/customers', headers=merchant['headers'])
    assert resp.status_code == 200
    assert [c['full_name'] for c in resp.get_json()] == ['Mine']

    where = json.dumps({'created_by': other_merchant['id']})
    resp = client.get('/api/customers', query_string={'where': where}, headers=merchant['headers'])
    assert [c['full_name'] for c in resp.get_json()] == ['Mine']


def test_other_tenant_is_denied_but_super_admin_is_not(client, merchant, other_merchant, admin):
    record = _create_customer(client, merchant)
    url = f"/api/customers/{record['id']}"

    assert client.get(url, headers=other_merchant['headers']).status_code == 403
    assert client.put(url, json={'area': 'x'}, headers=other_merchant['headers']).status_code == 403
    assert client.delete(url, headers=other_merchant['headers']).status_code == 403

    resp = client.get(url, headers=admin['headers'])
    assert resp.status_code == 200
    assert resp.get_json()['id'] == record['id']


def test_missing_record_and_unknown_entity(client, merchant):
    assert client.get('/api/customers/nope', headers=merchant['headers']).status_code == 404
    resp = client.get('/api/widgets', headers=merchant['headers'])
    assert resp.status_code == 404
    assert 'error' in resp.get_json()


def test_soft_delete_keeps_row(app, client, merchant):
    record = _create_customer(client, merchant)
    resp = client.delete(f"/api/customers/{record['id']}", headers=merchant['headers'])
    assert resp.get_json() == {'success': True}

    assert client.get('/api/customers', headers=merchant['headers']).get_json() == []

    where = json.dumps({'is_deleted': True})
    trash = client.get('/api/customers', query_string={'where': where}, headers=merchant['headers']).get_json()
    assert [c['id'] for c in trash] == [record['id']]
    assert trash[0]['deleted_at'] is not None

    with app.app_context():
        row = db.session.get(Customer, record['id'])
        assert row is not None
        assert row.is_deleted is True


def test_boolean_filters_accept_strings(client, merchant):
    live = _create_customer(client, merchant, full_name='Live')
    gone = _create_customer(client, merchant, full_name='Gone')
    client.delete(f"/api/customers/{gone['id']}", headers=merchant['headers'])

    def ids(where):
        resp = client.get('/api/customers', query_string={'where': json.dumps(where)}, headers=merchant['headers'])
        assert resp.status_code == 200
        return [c['id'] for c in resp.get_json()]

    assert ids({'is_deleted': 'false'}) == [live['id']]
    assert ids({'is_deleted': 'true'}) == [gone['id']]
    assert ids({'active': '1'}) == [live['id']]


def test_coerced_values_survive_reread(client, merchant):
    created = client.post(
        '/api/recipes',
        json={'name': 'Dal', 'is_active': '1'},
        headers=merchant['headers'],
    ).get_json()
    customer = _create_customer(client, merchant, start_date='2026-01-01', skip_weekends='1')

    recipe = client.get(f"/api/recipes/{created['id']}", headers=merchant['headers']).get_json()
    assert recipe['is_active'] is True

    fetched = client.get(f"/api/customers/{customer['id']}", headers=merchant['headers']).get_json()
    assert fetched['start_date'] == '2026-01-01T00:00:00.000Z'
    assert fetched['skip_weekends'] is True


def test_hard_delete_removes_row(app, client, merchant):
    resp = client.post('/api/orders', json={'customer_id': 'c1', 'status': 'pending'}, headers=merchant['headers'])
    order_id = resp.get_json()['id']
    assert client.delete(f'/api/orders/{order_id}', headers=merchant['headers']).status_code == 200
    assert client.get(f'/api/orders/{order_id}', headers=merchant['headers']).status_code == 404


def test_update_drops_unknown_and_read_only_fields(client, merchant, other_merchant):
    record = _create_customer(client, merchant)
    resp = client.put(
        f"/api/customers/{record['id']}",
        json={
            'foo_bar': 1,
            'area': 'Downtown',
            'created_by': other_merchant['id'],
            'created_date': '2020-01-01',
            'customer': {'id': 'x'},
            'is_active': '1',
            'active': 'false',
        },
        headers=merchant['headers'],
    )
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert body['area'] == 'Downtown'
    assert body['active'] is False
    assert body['created_by'] == merchant['id']
    assert 'foo_bar' not in body


def test_create_drops_unknown_fields(client, merchant):
    resp = client.post(
        '/api/ingredients',
        json={'name': 'Rice', 'current_stock': '10', 'colour': 'white'},
        headers=merchant['headers'],
    )
    assert resp.status_code == 201
    body = resp.get_json()
    assert body['current_stock'] == 10
    assert 'colour' not in body


def test_menu_item_name_falls_back_to_item_name(client, merchant):
    resp = client.post('/api/menu_items', json={'item_name': 'Dal Tadka', 'price': '12'}, headers=merchant['headers'])
    assert resp.status_code == 201
    assert resp.get_json()['name'] == 'Dal Tadka'


def test_email_owned_entities_use_email(client, merchant):
    resp = client.post(
        '/api/notifications',
        json={'title': 'Hi', 'user_email': 'someone@else.com', 'read': 'true'},
        headers=merchant['headers'],
    )
    body = resp.get_json()
    assert body['user_email'] == merchant['email']
    assert body['read'] is True


def test_sort_by_created_date_descending(app, client, merchant):
    ids = [
        client.post('/api/menu_items', json={'name': name}, headers=merchant['headers']).get_json()['id']
        for name in ('first', 'second', 'third')
    ]
    with app.app_context():
        for day, record_id in enumerate(ids, start=1):
            db.session.get(MenuItem, record_id).created_at = datetime(2026, 1, day)
        db.session.commit()

    resp = client.get('/api/menu_items', query_string={'sortBy': '-created_date'}, headers=merchant['headers'])
    assert [m['name'] for m in resp.get_json()] == ['third', 'second', 'first']

    resp = client.get('/api/menu_items', query_string={'sortBy': 'created_date', 'limit': '2'},
                      headers=merchant['headers'])
    assert [m['name'] for m in resp.get_json()] == ['first', 'second']

    resp = client.get('/api/menu_items', query_string={'sortBy': 'created_date', 'limit': 'x', 'offset': '1'},
                      headers=merchant['headers'])
    assert [m['name'] for m in resp.get_json()] == ['second', 'third']


def test_operator_filters(client, merchant):
    for name, price in (('cheap', 5), ('mid', 10), ('dear', 20)):
        client.post('/api/menu_items', json={'name': name, 'price': price}, headers=merchant['headers'])

    def names(where):
        resp = client.get('/api/menu_items', query_string={'where': json.dumps(where), 'sortBy': 'price'},
                          headers=merchant['headers'])
        return [m['name'] for m in resp.get_json()]

    assert names({'price': {'$gte': 10}}) == ['mid', 'dear']
    assert names({'price': {'$lt': 10}}) == ['cheap']
    assert names({'name': {'$ne': 'mid'}}) == ['cheap', 'dear']
    assert names({'name': {'$in': ['cheap', 'dear']}}) == ['cheap', 'dear']
    assert names({'price': {'gt': 5, 'lte': 20}}) == ['mid', 'dear']
    assert names({'name': {'startsWith': 'ch'}}) == ['cheap']
    assert names({'price': {'$gt': 5, '$regex': 'x'}}) == ['mid', 'dear']
    assert names({'no_such_column': 1}) == ['cheap', 'mid', 'dear']


def test_super_admin_all_flag_spans_tenants(client, merchant, other_merchant, admin):
    _create_customer(client, merchant, full_name='A')
    _create_customer(client, other_merchant, full_name='B')

    resp = client.get('/api/customers', query_string={'all': 'true', 'sortBy': 'full_name'}, headers=admin['headers'])
    assert [c['full_name'] for c in resp.get_json()] == ['A', 'B']

    resp = client.get('/api/customers', query_string={'all': 'true'}, headers=merchant['headers'])
    assert [c['full_name'] for c in resp.get_json()] == ['A']


def test_system_logs_are_super_admin_only(app, client, merchant, admin):
    with app.app_context():
        db.session.add(SystemLog(log_type='error', message='boom'))
        db.session.commit()

    assert client.get('/api/system_logs', headers=merchant['headers']).status_code == 403
    resp = client.get('/api/system_logs', headers=admin['headers'])
    assert resp.status_code == 200
    assert [log['message'] for log in resp.get_json()] == ['boom']


def test_expired_subscription_blocks_writes(client, make_user):
    expired = make_user('late@example.com', subscription_status='expired')
    resp = client.post('/api/customers', json={'full_name': 'X'}, headers=expired['headers'])
    assert resp.status_code == 403
    assert resp.get_json()['renewal_required'] is True
    assert client.get('/api/customers', headers=expired['headers']).status_code == 200


def test_special_access_bypasses_subscription_block(client, make_user):
    user = make_user('vip@example.com', subscription_status='cancelled', special_access_type='lifetime')
    resp = client.post('/api/customers', json={'full_name': 'X'}, headers=user['headers'])
    assert resp.status_code == 201


def test_requests_without_token_are_rejected(client):
    resp = client.get('/api/customers')
    assert resp.status_code == 401
    assert 'error' in resp.get_json()
    resp = client.get('/api/customers', headers={'Authorization': 'Bearer garbage'})
    assert resp.status_code == 401
