from bson.objectid import ObjectId

from extensions import socketio
from notifications import NotificationPublisher, live_payload


def _notify(client, admin, **body):
    payload = {'title': 'Heads up', 'message': 'Maintenance tonight', 'type': 'info', **body}
    return client.post('/api/notifications', headers=admin.headers, json=payload)


def _listed_ids(client, account):
    return [n['id'] for n in client.get('/api/notifications', headers=account.headers).get_json()['notifications']]


def test_broadcast_reaches_everyone(client, publisher, admin, alice, bob):
    resp = _notify(client, admin)
    assert resp.status_code == 201
    created = resp.get_json()
    assert created['isBroadcast'] is True
    assert created['userId'] is None
    assert created['createdBy']['username'] == 'root'

    for account in (alice, bob, admin):
        assert _listed_ids(client, account) == [created['id']]
    assert publisher.events == [(None, {'message': 'Maintenance tonight', 'type': 'info', 'title': 'Heads up',
                                        'notificationId': created['id']})]


def test_targeted_notification_is_private(client, publisher, admin, alice, bob):
    created = _notify(client, admin, userId=alice.id, type='discount', discountCode='SAVE10').get_json()
    assert created['userId']['username'] == 'alice'
    assert created['discountCode'] == 'SAVE10'
    assert _listed_ids(client, alice) == [created['id']]
    assert _listed_ids(client, bob) == []
    assert publisher.events[0][0] == alice.oid


def test_create_notification_validation(client, admin, alice):
    assert _notify(client, alice).status_code == 403
    resp = _notify(client, admin, type='spam')
    assert resp.status_code == 400
    assert resp.get_json()['message'] == 'Invalid notification type'
    assert _notify(client, admin, title='').status_code == 400
    assert _notify(client, admin, userId=str(ObjectId())).status_code == 404


def test_mark_read_is_idempotent(client, admin, alice):
    created = _notify(client, admin, userId=alice.id).get_json()
    for _ in range(2):
        resp = client.patch(f"/api/notifications/{created['id']}/read", headers=alice.headers)
        assert resp.status_code == 200
        assert resp.get_json()['isRead'] is True


def test_cannot_mark_someone_elses_notification(client, admin, alice, bob):
    created = _notify(client, admin, userId=alice.id).get_json()
    resp = client.patch(f"/api/notifications/{created['id']}/read", headers=bob.headers)
    assert resp.status_code == 403


def test_unread_count_and_read_all(client, admin, alice, bob):
    _notify(client, admin, userId=alice.id)
    _notify(client, admin, userId=bob.id)
    _notify(client, admin)

    assert client.get('/api/notifications/unread-count', headers=alice.headers).get_json() == {'unreadCount': 2}
    body = client.get('/api/notifications', headers=alice.headers).get_json()
    assert body['unreadCount'] == 2
    assert body['pagination']['current'] == 1

    resp = client.put('/api/notifications/read-all', headers=alice.headers)
    assert resp.get_json()['updated'] == 2
    assert client.get('/api/notifications/unread-count', headers=alice.headers).get_json() == {'unreadCount': 0}
    # broadcast read state is shared
    assert client.get('/api/notifications/unread-count', headers=bob.headers).get_json() == {'unreadCount': 1}


def test_list_filters_by_type(client, admin, alice):
    _notify(client, admin, userId=alice.id, type='info')
    _notify(client, admin, userId=alice.id, type='discount')
    body = client.get('/api/notifications?type=discount', headers=alice.headers).get_json()
    assert [n['type'] for n in body['notifications']] == ['discount']


def test_list_requires_login(client):
    assert client.get('/api/notifications').status_code == 401


def test_admin_unread_update_delete(client, db, admin, alice):
    created = _notify(client, admin, userId=alice.id).get_json()
    nid = created['id']
    client.patch(f'/api/notifications/{nid}/read', headers=alice.headers)

    assert client.patch(f'/api/notifications/{nid}/unread', headers=alice.headers).status_code == 403
    resp = client.patch(f'/api/notifications/{nid}/unread', headers=admin.headers)
    assert resp.get_json()['isRead'] is False

    resp = client.patch(f'/api/notifications/{nid}', headers=admin.headers, json={'title': 'Updated', 'type': 'other'})
    assert resp.status_code == 200
    assert resp.get_json()['title'] == 'Updated'
    assert resp.get_json()['type'] == 'other'

    assert client.delete(f'/api/notifications/{nid}', headers=admin.headers).status_code == 200
    assert db.notifications.count_documents({}) == 0
    assert client.delete(f'/api/notifications/{nid}', headers=admin.headers).status_code == 404


def test_admin_listing_filters(client, admin, alice, bob):
    _notify(client, admin, userId=alice.id, type='discount')
    _notify(client, admin, userId=bob.id, type='info')
    _notify(client, admin, type='info')

    def listed(query):
        resp = client.get(f'/api/notifications/admin/all?{query}', headers=admin.headers)
        return resp.get_json()['notifications']

    assert len(listed('')) == 3
    assert [n['type'] for n in listed('type=discount')] == ['discount']
    assert [n['userId']['username'] for n in listed(f'userId={bob.id}')] == ['bob']
    assert listed('isRead=true') == []
    resp = client.get('/api/notifications/admin/all?type=bogus', headers=admin.headers)
    assert resp.status_code == 400


def test_admin_user_search(client, admin, alice, bob):
    resp = client.get('/api/notifications/users/all?search=ALI', headers=admin.headers)
    users = resp.get_json()['users']
    assert [u['username'] for u in users] == ['alice']
    assert 'password_hash' not in users[0]


def test_live_payload_and_publisher():
    doc = {'_id': ObjectId(), 'type': 'answer', 'title': 'New answer', 'message': 'long text',
           'question_id': ObjectId()}
    payload = live_payload(doc, 'short text')
    assert payload['message'] == 'short text'
    assert payload['questionId'] == str(doc['question_id'])
    assert 'answerId' not in payload

    class FakeSocketIO:
        def __init__(self):
            self.calls = []

        def emit(self, event, data, **kwargs):
            self.calls.append((event, data, kwargs))

    fake_socketio = FakeSocketIO()
    user_id = ObjectId()
    NotificationPublisher(fake_socketio).publish(user_id, payload)
    NotificationPublisher(fake_socketio).publish(None, payload)
    assert fake_socketio.calls == [('notification', payload, {'to': str(user_id)}), ('notification', payload, {})]


def test_socket_join_uses_token(app, alice):
    sio_client = socketio.test_client(app, auth={'token': alice.token})
    assert sio_client.is_connected()
    sio_client.emit('join', {'token': alice.token})
    received = sio_client.get_received()
    assert any(r['name'] == 'joined' and r['args'][0] == {'room': alice.id} for r in received)

    sio_client.emit('join', {'token': 'forged'})
    received = sio_client.get_received()
    assert any(r['name'] == 'error' for r in received)

    NotificationPublisher(socketio).publish(alice.id, {'message': 'hello'})
    received = sio_client.get_received()
    assert [r['args'][0] for r in received if r['name'] == 'notification'] == [{'message': 'hello'}]
    sio_client.disconnect()


def test_missing_or_malformed_notification_is_404(client, admin, alice):
    missing = ObjectId()
    assert client.patch(f'/api/notifications/{missing}/read', headers=alice.headers).status_code == 404
    assert client.patch(f'/api/notifications/{missing}/unread', headers=admin.headers).status_code == 404
    assert client.patch(f'/api/notifications/{missing}', headers=admin.headers,
                        json={'title': 'x'}).status_code == 404
    resp = client.patch('/api/notifications/12345/read', headers=alice.headers)
    assert resp.status_code == 404
    assert 'message' in resp.get_json()
