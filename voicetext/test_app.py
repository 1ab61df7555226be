import logging
import sqlite3

from sqlalchemy import inspect

from .app import create_app
from .config import database_uri
from .extensions import db


def test_upgrade_adds_missing_user_columns(tmp_path):
    db_path = tmp_path / 'legacy.db'
    conn = sqlite3.connect(db_path)
    conn.execute(
        "CREATE TABLE users (id INTEGER PRIMARY KEY, username VARCHAR(255) NOT NULL, "
        "email VARCHAR(255) NOT NULL, password VARCHAR(255) NOT NULL, is_active BOOLEAN NOT NULL DEFAULT 1, "
        "role VARCHAR(32) NOT NULL DEFAULT 'user', subscription_type VARCHAR(32) NOT NULL DEFAULT 'free', "
        "total_audio_files INTEGER, created_at DATETIME, updated_at DATETIME)"
    )
    conn.commit()
    conn.close()

    app = create_app({'TESTING': True, 'SQLALCHEMY_DATABASE_URI': f'sqlite:///{db_path}'})

    with app.app_context():
        columns = {col['name'] for col in inspect(db.engine).get_columns('users')}
        assert {'full_name', 'lock_reason', 'subscription_expiry', 'preferences'} <= columns
        assert 'notifications' in inspect(db.engine).get_table_names()
        db.session.remove()
        db.engine.dispose()


def test_database_uri(monkeypatch):
    monkeypatch.setenv('DATABASE_URL', 'postgres://u:p@db:5432/voicetext')
    assert database_uri() == 'postgresql://u:p@db:5432/voicetext'

    monkeypatch.delenv('DATABASE_URL')
    assert database_uri().startswith('sqlite:///')


def test_api_errors_are_json(client):
    response = client.get('/api/does-not-exist')
    assert response.status_code == 404
    assert response.get_json()['success'] is False


def test_missing_webhook_secret_is_logged(caplog):
    config = {'TESTING': True, 'SQLALCHEMY_DATABASE_URI': 'sqlite://', 'STRIPE_WEBHOOK_SECRET': ''}
    with caplog.at_level(logging.WARNING):
        app = create_app(config)

    assert any('STRIPE_WEBHOOK_SECRET is not set' in r.getMessage() for r in caplog.records)

    caplog.clear()
    with caplog.at_level(logging.WARNING):
        create_app({**config, 'STRIPE_WEBHOOK_SECRET': 'whsec_test'})

    assert not any('STRIPE_WEBHOOK_SECRET' in r.getMessage() for r in caplog.records)
    with app.app_context():
        db.engine.dispose()
