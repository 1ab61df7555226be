from .extensions import db
from .models import Notification, User


def test_register_creates_user_session_and_notifications(app, client, make_user):
    admin_id = make_user('root', role='admin')

    response = client.post('/api/auth/register', json={
        'username': 'linh',
        'email': 'Linh@Example.com',
        'password': 'hunter22',
        'fullName': 'Linh Tran',
    })

    assert response.status_code == 201
    body = response.get_json()
    assert body['user']['email'] == 'linh@example.com'
    assert body['user']['role'] == 'user'
    assert client.get('/api/auth/me').get_json()['user']['username'] == 'linh'

    with app.app_context():
        user = User.query.filter_by(username='linh').one()
        welcome = Notification.query.filter_by(user_id=user.id).one()
        assert welcome.type == 'system'
        admin_notice = Notification.query.filter_by(user_id=admin_id).one()
        assert admin_notice.type == 'user'
        assert admin_notice.meta_data['userId'] == user.id


def test_register_validation(client, make_user):
    make_user('taken')
    cases = [
        {'username': '', 'email': 'a@b.co', 'password': 'hunter22'},
        {'username': 'new', 'email': 'not-an-email', 'password': 'hunter22'},
        {'username': 'new', 'email': 'a@b.co', 'password': '123'},
        {'username': 'taken', 'email': 'a@b.co', 'password': 'hunter22'},
        {'username': 'new', 'email': 'taken@example.com', 'password': 'hunter22'},
    ]
    for payload in cases:
        response = client.post('/api/auth/register', json=payload)
        assert response.status_code == 400, payload
        assert response.get_json()['success'] is False


def test_login_with_username_or_email(client, make_user, login):
    make_user('alice')
    assert login(client, 'alice').status_code == 200
    client.post('/api/auth/logout')
    assert login(client, 'alice@example.com').status_code == 200


def test_login_rejects_bad_password(client, make_user, login):
    make_user('alice')
    response = login(client, 'alice', 'wrong-password')
    assert response.status_code == 401
    assert client.get('/api/auth/me').status_code == 401


def test_locked_account_cannot_login(app, client, make_user, login):
    user_id = make_user('alice')
    with app.app_context():
        user = db.session.get(User, user_id)
        user.lock('Chargeback')
        db.session.commit()

    response = login(client, 'alice')

    assert response.status_code == 403
    assert 'Chargeback' in response.get_json()['error']


def test_session_ends_when_account_gets_locked(app, user_client):
    assert user_client.get('/api/auth/me').status_code == 200
    with app.app_context():
        user = User.query.filter_by(username='alice').one()
        user.lock('Abuse')
        db.session.commit()

    locked = user_client.get('/api/auth/me')
    assert locked.status_code == 403
    assert 'Abuse' in locked.get_json()['error']
    assert user_client.get('/api/auth/me').status_code == 401


def test_logout(user_client):
    assert user_client.post('/api/auth/logout').get_json() == {'success': True}
    assert user_client.get('/api/auth/me').status_code == 401


def test_locked_user_stays_authenticated_until_a_guard_runs():
    user = User(username='alice', email='alice@example.com', is_active=True)
    user.lock('Abuse')

    assert user.is_locked
    assert user.is_authenticated


def test_register_rejects_non_string_fields(client):
    cases = [
        {'username': ['x'], 'email': 'a@b.co', 'password': 'hunter22'},
        {'username': 'new', 'email': 12, 'password': 'hunter22'},
        {'username': 'new', 'email': 'a@b.co', 'password': 12345678},
        {'username': 'new', 'email': 'a@b.co', 'password': 'hunter22', 'fullName': {'first': 'A'}},
    ]
    for payload in cases:
        response = client.post('/api/auth/register', json=payload)
        assert response.status_code == 400, payload
        assert response.get_json()['success'] is False


def test_login_rejects_non_string_fields(client, make_user):
    make_user('alice')

    assert client.post('/api/auth/login', json={'username': 'alice', 'password': 12345678}).status_code == 400
    assert client.post('/api/auth/login', json={'username': 7, 'password': 'x'}).status_code == 400
    assert client.get('/api/auth/me').status_code == 401
