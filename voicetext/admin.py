"""
Admin API: user management, payments, app settings, notifications, voice samples.

Every route requires a signed-in admin (401 without a session, 403 otherwise).
"""
import os
from datetime import datetime

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user
from sqlalchemy import func

from . import notifications
from .audio import remove_audio_files
from .auth import EMAIL_RE, MIN_PASSWORD_LENGTH, admin_required
from .errors import AuthorizationError, NotFoundError, ValidationError
from .extensions import db
from .models import ROLES, SUBSCRIPTION_TYPES, AppSettings, AudioFile, Notification, Payment, User
from .params import str_param
from .payments import confirm_payment, reject_payment
from .samples import generate_sample
from .tts_client import synthesize
from .voices import get_voice

bp = Blueprint('admin', __name__, url_prefix='/api/admin')


def _get_user(user_id):
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError('User not found')
    return user


def _get_payment(payment_id):
    payment = db.session.get(Payment, payment_id)
    if payment is None:
        raise NotFoundError('Payment not found')
    return payment


def _parse_datetime(value, field):
    if value in (None, ''):
        return None
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00')).replace(tzinfo=None)
    except ValueError:
        raise ValidationError(f'{field} must be an ISO 8601 date') from None


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

@bp.route('/users', methods=['GET'])
@admin_required
def list_users():
    users = User.query.order_by(User.created_at.desc(), User.id.desc()).all()
    return jsonify({'success': True, 'users': [u.to_dict() for u in users]})


@bp.route('/users', methods=['POST'])
@admin_required
def create_user():
    data = request.get_json(silent=True) or {}
    username = str_param(data, 'username')
    email = str_param(data, 'email').lower()
    password = str_param(data, 'password')
    role = str_param(data, 'role') or 'user'
    subscription_type = str_param(data, 'subscriptionType') or 'free'

    if not username or not email or not password:
        raise ValidationError('Username, email and password are required')
    if not EMAIL_RE.match(email):
        raise ValidationError('Invalid email address')
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')
    if role not in ROLES:
        raise ValidationError(f"Invalid role '{role}'")
    if subscription_type not in SUBSCRIPTION_TYPES:
        raise ValidationError(f"Invalid subscription type '{subscription_type}'")
    if User.query.filter((User.username == username) | (User.email == email)).first():
        raise ValidationError('Username or email already exists')

    user = User(username=username, email=email, full_name=str_param(data, 'fullName') or None,
                role=role, subscription_type=subscription_type)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    current_app.logger.info(f"[ADMIN] {current_user.username} created user {username} ({role})")
    notifications.notify_welcome(user.id, username)
    return jsonify({'success': True, 'user': user.to_dict()}), 201


@bp.route('/users/<int:user_id>', methods=['PUT', 'PATCH'])
@admin_required
def update_user(user_id):
    user = _get_user(user_id)
    data = request.get_json(silent=True) or {}

    if 'username' in data:
        username = str_param(data, 'username')
        if not username:
            raise ValidationError('Username cannot be empty')
        if User.query.filter(User.username == username, User.id != user.id).first():
            raise ValidationError('Username is already taken')
        user.username = username
    if 'email' in data:
        email = str_param(data, 'email').lower()
        if not EMAIL_RE.match(email):
            raise ValidationError('Invalid email address')
        if User.query.filter(User.email == email, User.id != user.id).first():
            raise ValidationError('Email is already in use')
        user.email = email
    if 'fullName' in data:
        user.full_name = str_param(data, 'fullName') or None
    password = str_param(data, 'password')
    if password:
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')
        user.set_password(password)

    db.session.commit()
    return jsonify({'success': True, 'user': user.to_dict()})


@bp.route('/users/<int:user_id>/role', methods=['PUT'])
@admin_required
def set_role(user_id):
    user = _get_user(user_id)
    role = str_param(request.get_json(silent=True) or {}, 'role')
    if role not in ROLES:
        raise ValidationError(f"Invalid role '{role}'. Must be admin or user")
    if user.id == current_user.id and role != 'admin':
        raise ValidationError('You cannot remove your own admin role')

    user.role = role
    db.session.commit()
    current_app.logger.info(f"[ADMIN] {current_user.username} set role of {user.username} to {role}")
    notifications.notify_role_changed(user.id, role)
    return jsonify({'success': True, 'user': user.to_dict()})


@bp.route('/users/<int:user_id>/subscription', methods=['PUT'])
@admin_required
def set_subscription(user_id):
    user = _get_user(user_id)
    data = request.get_json(silent=True) or {}
    subscription_type = str_param(data, 'subscriptionType')
    if subscription_type not in SUBSCRIPTION_TYPES:
        raise ValidationError(f"Invalid subscription type '{subscription_type}'. Must be one of: {', '.join(SUBSCRIPTION_TYPES)}")

    expiry = _parse_datetime(data.get('subscriptionExpiry'), 'subscriptionExpiry')
    user.subscription_type = subscription_type
    user.subscription_expiry = None if subscription_type == 'free' else expiry
    db.session.commit()
    current_app.logger.info(f"[ADMIN] {current_user.username} set plan of {user.username} to {subscription_type}")
    notifications.notify_subscription_changed(user.id, subscription_type, user.subscription_expiry)
    return jsonify({'success': True, 'user': user.to_dict()})


@bp.route('/users/<int:user_id>/status', methods=['PUT'])
@admin_required
def set_status(user_id):
    """Lock (``{"action": "lock", "reason": ...}``) or unlock an account."""
    user = _get_user(user_id)
    data = request.get_json(silent=True) or {}
    action = str_param(data, 'action')

    if action == 'lock':
        reason = str_param(data, 'reason')
        if not reason:
            raise ValidationError('A reason is required to lock an account')
        if user.id == current_user.id:
            raise ValidationError('You cannot lock your own account')
        if user.is_admin:
            raise AuthorizationError('Admin accounts cannot be locked')
        user.lock(reason, current_user.id)
        db.session.commit()
        notifications.notify_account_locked(user.id, reason)
    elif action == 'unlock':
        user.unlock()
        db.session.commit()
        notifications.notify_account_unlocked(user.id)
    else:
        raise ValidationError("Action must be 'lock' or 'unlock'")

    current_app.logger.info(f"[ADMIN] {current_user.username} {action}ed {user.username}")
    return jsonify({'success': True, 'user': user.to_dict()})


@bp.route('/users/<int:user_id>', methods=['DELETE'])
@admin_required
def delete_user(user_id):
    """Delete a user; their notifications, audio rows and generated audio go with them."""
    user = _get_user(user_id)
    if user.id == current_user.id:
        raise AuthorizationError('You cannot delete your own account')
    if user.is_admin:
        raise AuthorizationError('Admin accounts cannot be deleted')

    username = user.username
    file_paths = [
        path for (path,) in
        db.session.query(AudioFile.file_path).filter(AudioFile.user_id == user.id, AudioFile.file_path.isnot(None))
    ]
    db.session.delete(user)
    db.session.commit()
    remove_audio_files(file_paths)
    current_app.logger.info(f"[ADMIN] {current_user.username} deleted user {username}")
    return jsonify({'success': True})


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------

@bp.route('/stats', methods=['GET'])
@admin_required
def stats():
    subscriptions = dict(
        db.session.query(User.subscription_type, func.count(User.id)).group_by(User.subscription_type).all()
    )
    revenue = db.session.query(func.coalesce(func.sum(Payment.amount), 0)).filter(
        Payment.status == 'completed'
    ).scalar()
    return jsonify({
        'success': True,
        'stats': {
            'totalUsers': User.query.count(),
            'activeUsers': User.query.filter_by(is_active=True).count(),
            'lockedUsers': User.query.filter_by(is_active=False).count(),
            'subscriptions': {plan: subscriptions.get(plan, 0) for plan in SUBSCRIPTION_TYPES},
            'totalAudioFiles': AudioFile.query.count(),
            'totalPayments': Payment.query.count(),
            'pendingPayments': Payment.query.filter_by(status='pending').count(),
            'totalRevenue': int(revenue or 0),
            'unreadNotifications': Notification.query.filter_by(is_read=False).count(),
        },
    })


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------

@bp.route('/payments', methods=['GET'])
@admin_required
def list_payments():
    query = Payment.query
    status = request.args.get('status')
    if status:
        query = query.filter_by(status=status)
    payments = query.order_by(Payment.created_at.desc(), Payment.id.desc()).all()
    return jsonify({'success': True, 'payments': [p.to_dict() for p in payments]})


@bp.route('/payments/<int:payment_id>/confirm', methods=['PUT'])
@admin_required
def confirm(payment_id):
    payment = confirm_payment(_get_payment(payment_id), admin_id=current_user.id)
    return jsonify({'success': True, 'payment': payment.to_dict()})


@bp.route('/payments/<int:payment_id>/reject', methods=['PUT'])
@admin_required
def reject(payment_id):
    reason = str_param(request.get_json(silent=True) or {}, 'reason') or None
    payment = reject_payment(_get_payment(payment_id), admin_id=current_user.id, reason=reason)
    return jsonify({'success': True, 'payment': payment.to_dict()})


# ---------------------------------------------------------------------------
# App settings
# ---------------------------------------------------------------------------

@bp.route('/app-settings', methods=['GET'])
@admin_required
def get_app_settings():
    return jsonify({'success': True, 'settings': AppSettings.current().to_dict()})


@bp.route('/app-settings', methods=['PUT'])
@admin_required
def update_app_settings():
    settings = AppSettings.current()
    data = request.get_json(silent=True) or {}
    for key, value in data.items():
        column = AppSettings.FIELDS.get(key)
        if column is None:
            raise ValidationError(f"Unknown setting '{key}'")
        if column.endswith(('_files', '_characters')):
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ValidationError(f'{key} must be a non-negative integer')
        if column == 'guest_voice':
            get_voice(value)
        setattr(settings, column, value)
    db.session.commit()
    current_app.logger.info(f"[ADMIN] {current_user.username} updated app settings: {', '.join(data)}")
    return jsonify({'success': True, 'settings': settings.to_dict()})


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

@bp.route('/notifications', methods=['POST'])
@admin_required
def create_notification():
    """Send a notification to one user."""
    data = request.get_json(silent=True) or {}
    notification = notifications.create_notification(
        data.get('userId'),
        data.get('type'),
        data.get('title'),
        data.get('message'),
        data.get('metadata'),
    )
    return jsonify({'success': True, 'notification': notification.to_dict()}), 201


@bp.route('/notifications/broadcast', methods=['POST'])
@admin_required
def broadcast_notification():
    data = request.get_json(silent=True) or {}
    count = notifications.broadcast(
        data.get('type') or 'system',
        data.get('title'),
        data.get('message'),
        data.get('metadata'),
    )
    return jsonify({'success': True, 'sent': count})


# ---------------------------------------------------------------------------
# Voice samples
# ---------------------------------------------------------------------------

@bp.route('/generate-voice-sample', methods=['POST'])
@admin_required
def generate_voice_sample():
    data = request.get_json(silent=True) or {}
    voice = str_param(data, 'voice')
    get_voice(voice)
    text = str_param(data, 'text') or None

    def provider(sample_text, provider_voice):
        return synthesize(sample_text, provider_voice, current_app.config)

    kwargs = {'text': text} if text else {}
    path = generate_sample(voice, voice, current_app.config['VOICE_SAMPLES_DIR'], provider, **kwargs)
    current_app.logger.info(f"[ADMIN] Generated voice sample {path}")
    return jsonify({'success': True, 'voice': voice, 'sampleUrl': f'/audio-samples/{os.path.basename(path)}'})
