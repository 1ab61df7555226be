import pytest

from .app import create_app
from .extensions import db
from .models import User

TEST_PASSWORD = 'secret123'


@pytest.fixture
def app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret-key-12345',
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'WTF_CSRF_ENABLED': False,
        'RATELIMIT_ENABLED': False,
        'OPENAI_API_KEY': 'sk-test',
        'FPT_API_KEY': 'fpt-test',
        'STRIPE_SECRET_KEY': '',
        'STRIPE_WEBHOOK_SECRET': '',
        'AUDIO_OUTPUT_DIR': str(tmp_path / 'output'),
        'VOICE_SAMPLES_DIR': str(tmp_path / 'audio-samples'),
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    """App context for tests that talk to the store directly (no HTTP requests)."""
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make_user(username='alice', role='user', subscription_type='free', password=TEST_PASSWORD, **fields):
        with app.app_context():
            user = User(
                username=username,
                email=fields.pop('email', f'{username}@example.com'),
                role=role,
                subscription_type=subscription_type,
                **fields
            )
            user.set_password(password)
            db.session.add(user)
            db.session.commit()
            return user.id
    return _make_user


@pytest.fixture
def login():
    def _login(client, username, password=TEST_PASSWORD):
        return client.post('/api/auth/login', json={'username': username, 'password': password})
    return _login


@pytest.fixture
def user_client(app, make_user, login):
    make_user('alice')
    client = app.test_client()
    assert login(client, 'alice').status_code == 200
    return client


@pytest.fixture
def admin_client(app, make_user, login):
    make_user('admin', role='admin')
    client = app.test_client()
    assert login(client, 'admin').status_code == 200
    return client
