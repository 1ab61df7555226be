"""
Configuration for VoiceText Pro, read from the environment (.env supported)
"""
import os

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _env_int(name, default):
    """Read an integer env var, falling back to the default when unset or malformed."""
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        print(f"[CONFIG] Invalid integer for {name}, using {default}")
        return default


def _env_bool(name, default='False'):
    return os.environ.get(name, default).lower() in ('true', '1', 'yes')


def database_uri():
    """Use PostgreSQL when DATABASE_URL is set, SQLite locally."""
    database_url = os.environ.get('DATABASE_URL')
    if database_url:
        # SQLAlchemy 1.4+ needs postgresql:// instead of postgres://
        if database_url.startswith('postgres://'):
            database_url = database_url.replace('postgres://', 'postgresql://', 1)
        return database_url
    db_path = os.path.join(BASE_DIR, 'voicetext.db')
    return f'sqlite:///{db_path}'


class Config:
    SECRET_KEY = os.environ.get('FLASK_SECRET_KEY', 'dev-secret-change-me')
    DEBUG = _env_bool('FLASK_DEBUG')

    SQLALCHEMY_DATABASE_URI = database_uri()
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    WTF_CSRF_ENABLED = True
    WTF_CSRF_TIME_LIMIT = None  # No timeout for CSRF tokens

    RATELIMIT_ENABLED = True
    RATELIMIT_STORAGE_URI = 'memory://'

    # TTS providers
    OPENAI_API_KEY = os.environ.get('OPENAI_API_KEY', '')
    OPENAI_TTS_URL = os.environ.get('OPENAI_TTS_URL', 'https://api.openai.com/v1/audio/speech')
    FPT_API_KEY = os.environ.get('FPT_API_KEY', '')
    FPT_TTS_URL = os.environ.get('FPT_TTS_URL', 'https://api.fpt.ai/hmi/tts/v5')
    TTS_TIMEOUT = _env_int('TTS_TIMEOUT', 120)  # seconds per provider request

    # Stripe (card payments); bank transfer works without it
    STRIPE_SECRET_KEY = os.environ.get('STRIPE_SECRET_KEY', '')
    STRIPE_WEBHOOK_SECRET = os.environ.get('STRIPE_WEBHOOK_SECRET', '')

    # File locations
    AUDIO_OUTPUT_DIR = os.environ.get('AUDIO_OUTPUT_DIR', os.path.join(BASE_DIR, 'output'))
    VOICE_SAMPLES_DIR = os.environ.get('VOICE_SAMPLES_DIR', os.path.join('public', 'audio-samples'))
    STATIC_DIST_DIR = os.environ.get('STATIC_DIST_DIR', 'dist')

    # Public port (production proxy) and internal app port
    PORT = _env_int('PORT', 5000)
    INTERNAL_PORT = _env_int('INTERNAL_PORT', 5001)
