"""
VoiceText Pro web app: session auth, TTS, notifications, payments, admin API
"""
import logging
import os

import stripe
from flask import Flask
from sqlalchemy import inspect, text

from . import admin, audio, auth, notification_routes, pages, payments
from .commands import register_commands
from .config import Config
from .errors import register_error_handlers
from .extensions import cors, csrf, db, limiter, login_manager
from .models import Notification

API_BLUEPRINTS = (
    auth.bp,
    admin.bp,
    audio.bp,
    notification_routes.bp,
    payments.bp,
)

# Columns added to the users table after the first release
USER_COLUMN_UPGRADES = {
    'full_name': 'VARCHAR(255)',
    'lock_reason': 'TEXT',
    'locked_at': 'TIMESTAMP',
    'locked_by': 'INTEGER',
    'subscription_expiry': 'TIMESTAMP',
    'total_characters_used': 'INTEGER DEFAULT 0',
    'total_usage_minutes': 'INTEGER DEFAULT 0',
    'preferences': 'JSON',
}


def upgrade_schema():
    """Bring databases created by older releases up to the current schema."""
    inspector = inspect(db.engine)
    existing_columns = [col['name'] for col in inspector.get_columns('users')]

    with db.engine.connect() as conn:
        for column, ddl in USER_COLUMN_UPGRADES.items():
            if column not in existing_columns:
                conn.execute(text(f"ALTER TABLE users ADD COLUMN {column} {ddl}"))
                print(f"[MIGRATION] Added {column} column to users table")
        conn.commit()

    existing_indexes = {idx['name'] for idx in inspector.get_indexes('notifications')}
    for index in Notification.__table__.indexes:
        if index.name not in existing_indexes:
            index.create(db.engine)
            print(f"[MIGRATION] Created index {index.name}")


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)
    app.logger.setLevel(logging.INFO)

    db.init_app(app)
    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)
    # Session cookies have to cross origins for the SPA dev server
    cors.init_app(app, resources={
        r"/api/*": {
            "origins": os.environ.get('CORS_ORIGINS', '*').split(','),
            "methods": ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"],
            "supports_credentials": True,
        }
    })

    stripe.api_key = app.config.get('STRIPE_SECRET_KEY', '')
    if not app.config.get('STRIPE_WEBHOOK_SECRET'):
        app.logger.warning("[STRIPE] STRIPE_WEBHOOK_SECRET is not set; webhook events are accepted without signature verification")

    for blueprint in API_BLUEPRINTS:
        csrf.exempt(blueprint)  # JSON API uses session cookies + CORS, not form tokens
        app.register_blueprint(blueprint)
    app.register_blueprint(pages.bp)

    register_error_handlers(app)
    register_commands(app)

    with app.app_context():
        db.create_all()
        upgrade_schema()

    return app


def main():
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    app = create_app()
    port = app.config['PORT']
    print("Starting VoiceText Pro...")
    print(f"Open your browser and go to: http://localhost:{port}")
    app.run(debug=app.config['DEBUG'], host='0.0.0.0', port=port)


if __name__ == '__main__':
    main()
