"""
Voices, text to speech, and audio file management
"""
import io
import math
import os
import uuid

from flask import Blueprint, current_app, jsonify, request, send_file, send_from_directory
from flask_login import current_user
from werkzeug.utils import secure_filename

from . import notifications
from .auth import api_login_required, locked_message, session_user
from .errors import AuthorizationError, ExternalServiceError, NotFoundError, ValidationError
from .extensions import db, limiter
from .models import AppSettings, AudioFile
from .params import float_param, int_param, str_param
from .tts_client import synthesize
from .voices import check_voice_permission, voices_for

bp = Blueprint('audio', __name__)

AUDIO_FORMATS = ('mp3', 'wav', 'opus', 'aac', 'flac')
MIMETYPES = {
    'mp3': 'audio/mpeg',
    'wav': 'audio/wav',
    'opus': 'audio/ogg',
    'aac': 'audio/aac',
    'flac': 'audio/flac',
}
CHARS_PER_SECOND = 15  # rough speaking rate used to estimate duration


def output_dir():
    path = os.path.abspath(current_app.config['AUDIO_OUTPUT_DIR'])
    os.makedirs(path, exist_ok=True)
    return path


def estimate_duration(text):
    return max(1, round(len(text) / CHARS_PER_SECOND))


def _check_text_limit(text, user, settings):
    limit = settings.max_characters(user.subscription_type if user else None)
    if len(text) > limit:
        if user is None:
            raise ValidationError(f'Guests can convert up to {limit} characters. Sign in to use the full service.')
        raise ValidationError(f'Text is too long ({len(text)}/{limit} characters). Upgrade your plan for a higher limit.')


def check_file_quota(user, settings=None):
    """Raise once the user's saved file count has reached their plan's limit."""
    if user.is_admin:
        return
    settings = settings or AppSettings.current()
    max_files = settings.max_files(user.subscription_type)
    saved = user.audio_files.filter_by(is_temporary=False).count()
    if saved >= max_files:
        notifications.notify_storage_limit(user.id, max_files)
        raise ValidationError(f'You have reached the limit of {max_files} saved audio files for your plan.')


def _record_usage(user, text, duration):
    user.total_characters_used = (user.total_characters_used or 0) + len(text)
    user.total_usage_minutes = (user.total_usage_minutes or 0) + math.ceil(duration / 60)


def _owned_file(file_id):
    audio_file = db.session.get(AudioFile, file_id)
    if audio_file is None or audio_file.user_id != current_user.id:
        raise NotFoundError('Audio file not found')
    return audio_file


def remove_audio_files(file_paths):
    """Delete generated audio from the output folder; missing files are skipped."""
    folder = output_dir()
    for file_path in file_paths:
        if not file_path:
            continue
        path = os.path.join(folder, secure_filename(file_path))
        if os.path.exists(path):
            os.remove(path)


@bp.route('/api/voices', methods=['GET'])
def api_voices():
    return jsonify({'success': True, 'voices': voices_for(session_user())})


@bp.route('/api/tts', methods=['POST'])
@limiter.limit("10 per minute")
def api_tts():
    """Convert text to speech, store the file and return its metadata."""
    data = request.get_json(silent=True) or {}
    text = str_param(data, 'text')
    voice = str_param(data, 'voice') or 'alloy'
    speed = float_param(data, 'speed')
    audio_format = str_param(data, 'format') or 'mp3'
    title = str_param(data, 'title') or text[:50]

    if not text:
        raise ValidationError('Text is required')
    if audio_format not in AUDIO_FORMATS:
        raise ValidationError(f"Unsupported format '{audio_format}'")

    user = session_user()
    if user is not None and user.is_locked:
        raise AuthorizationError(locked_message(user))
    settings = AppSettings.current()
    check_voice_permission(voice, user)
    _check_text_limit(text, user, settings)
    if user is not None:
        check_file_quota(user, settings)

    try:
        audio = synthesize(text, voice, current_app.config, speed=speed, audio_format=audio_format)
    except ExternalServiceError as e:
        current_app.logger.error(f"[TTS] Conversion failed for voice {voice}: {e.message}")
        if user is not None:
            notifications.notify_conversion_failed(user.id, title, e.message)
        raise

    filename = f'speech_{uuid.uuid4().hex}.{audio_format}'
    with open(os.path.join(output_dir(), filename), 'wb') as f:
        f.write(audio)

    duration = estimate_duration(text)
    audio_file = AudioFile(
        user_id=user.id if user else None,
        title=title,
        content=text,
        voice=voice,
        speed=speed,
        pitch=float_param(data, 'pitch'),
        volume=float_param(data, 'volume'),
        format=audio_format,
        duration=duration,
        file_size=len(audio),
        file_path=filename,
        is_temporary=user is None,
    )
    db.session.add(audio_file)
    if user is not None:
        user.total_audio_files = (user.total_audio_files or 0) + 1
        _record_usage(user, text, duration)
    db.session.commit()

    if user is not None:
        notifications.notify_conversion_complete(user.id, title, audio_file.id)
    current_app.logger.info(f"[TTS] Created {filename} ({len(audio)} bytes, voice={voice}, user={user.id if user else 'guest'})")

    return jsonify({'success': True, 'audioFile': audio_file.to_dict(), 'audioUrl': f'/api/audio/{filename}'})


@bp.route('/api/tts/preview', methods=['POST'])
@limiter.limit("10 per minute")
def api_tts_preview():
    """Synthesize without storing anything; returns the audio bytes."""
    data = request.get_json(silent=True) or {}
    content = str_param(data, 'content') or str_param(data, 'text')
    voice = str_param(data, 'voice') or 'alloy'
    audio_format = str_param(data, 'format') or 'mp3'
    if not content:
        raise ValidationError('Content is required')
    if audio_format not in AUDIO_FORMATS:
        raise ValidationError(f"Unsupported format '{audio_format}'")

    user = session_user()
    check_voice_permission(voice, user)
    _check_text_limit(content, user, AppSettings.current())

    audio = synthesize(content, voice, current_app.config,
                       speed=float_param(data, 'speed'), audio_format=audio_format)
    return send_file(io.BytesIO(audio), mimetype=MIMETYPES[audio_format])


@bp.route('/api/audio-files', methods=['GET'])
@api_login_required
def list_audio_files():
    files = (
        current_user.audio_files
        .order_by(AudioFile.created_at.desc(), AudioFile.id.desc())
        .all()
    )
    return jsonify({'success': True, 'audioFiles': [f.to_dict() for f in files]})


@bp.route('/api/audio-files', methods=['POST'])
@api_login_required
def create_audio_file():
    data = request.get_json(silent=True) or {}
    title = str_param(data, 'title')
    content = str_param(data, 'content')
    voice = str_param(data, 'voice') or 'alloy'
    file_path = str_param(data, 'filePath')
    if not title or not content:
        raise ValidationError('Title and content are required')

    user = current_user._get_current_object()
    check_voice_permission(voice, user)
    check_file_quota(user)

    duration = int_param(data, 'duration') or estimate_duration(content)
    audio_file = AudioFile(
        user_id=user.id,
        title=title,
        content=content,
        voice=voice,
        speed=float_param(data, 'speed'),
        pitch=float_param(data, 'pitch'),
        volume=float_param(data, 'volume'),
        format=str_param(data, 'format') or 'mp3',
        duration=duration,
        file_size=int_param(data, 'fileSize'),
        file_path=secure_filename(file_path) if file_path else None,
        is_public=bool(data.get('isPublic')),
    )
    db.session.add(audio_file)
    user.total_audio_files = (user.total_audio_files or 0) + 1
    _record_usage(user, content, duration)
    db.session.commit()

    notifications.notify_conversion_complete(user.id, title, audio_file.id)
    return jsonify({'success': True, 'audioFile': audio_file.to_dict()}), 201


@bp.route('/api/audio-files/<int:file_id>', methods=['GET'])
@api_login_required
def get_audio_file(file_id):
    return jsonify({'success': True, 'audioFile': _owned_file(file_id).to_dict()})


@bp.route('/api/audio-files/<int:file_id>', methods=['PATCH'])
@api_login_required
def update_audio_file(file_id):
    audio_file = _owned_file(file_id)
    data = request.get_json(silent=True) or {}
    if 'title' in data:
        title = str_param(data, 'title')
        if not title:
            raise ValidationError('Title cannot be empty')
        audio_file.title = title
    if 'isPublic' in data:
        audio_file.is_public = bool(data['isPublic'])
        if audio_file.is_public:
            audio_file.ensure_share_id()
    db.session.commit()
    return jsonify({'success': True, 'audioFile': audio_file.to_dict()})


@bp.route('/api/audio-files/<int:file_id>', methods=['DELETE'])
@api_login_required
def delete_audio_file(file_id):
    audio_file = _owned_file(file_id)
    remove_audio_files([audio_file.file_path])
    db.session.delete(audio_file)
    db.session.commit()
    return jsonify({'success': True})


@bp.route('/api/audio-files/<int:file_id>/share', methods=['POST'])
@api_login_required
def share_audio_file(file_id):
    """Toggle public sharing; a share id is generated on first share."""
    audio_file = _owned_file(file_id)
    audio_file.is_public = not audio_file.is_public
    audio_file.ensure_share_id()
    db.session.commit()
    return jsonify({
        'success': True,
        'isPublic': audio_file.is_public,
        'shareId': audio_file.share_id,
        'shareUrl': f'/api/shared/{audio_file.share_id}',
    })


@bp.route('/api/shared/<share_id>', methods=['GET'])
def shared_audio_file(share_id):
    audio_file = AudioFile.query.filter_by(share_id=share_id, is_public=True).first()
    if audio_file is None:
        raise NotFoundError('Shared audio not found')
    return jsonify({'success': True, 'audioFile': audio_file.to_dict()})


@bp.route('/api/audio/<filename>')
def api_audio(filename):
    """Download a generated audio file."""
    return send_from_directory(output_dir(), secure_filename(filename))


@bp.route('/audio-samples/<filename>')
def audio_sample(filename):
    samples_dir = os.path.abspath(current_app.config['VOICE_SAMPLES_DIR'])
    return send_from_directory(samples_dir, secure_filename(filename), mimetype='audio/mpeg')
