"""
Session authentication: register, login, logout, me, and route guards
"""
import re
from functools import wraps

from flask import Blueprint, current_app, jsonify, redirect, request, url_for
from flask_login import current_user, login_user, logout_user

from .admin_gate import SessionContext, is_admin
from .errors import AuthorizationError, ValidationError
from .extensions import db, limiter, login_manager
from .models import User
from .notifications import NotificationType, notify_admins, notify_welcome
from .params import str_param

bp = Blueprint('auth', __name__, url_prefix='/api/auth')

EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
MIN_PASSWORD_LENGTH = 6


@login_manager.user_loader
def load_user(user_id):
    return db.session.get(User, int(user_id))


@login_manager.unauthorized_handler
def unauthorized():
    # API callers get JSON, browser pages go to the admin login view
    if request.path.startswith('/api/'):
        return jsonify({'success': False, 'error': 'Authentication required'}), 401
    return redirect(url_for('pages.admin_login'))


def locked_message(user):
    message = 'Your account has been locked'
    if user.lock_reason:
        message += f': {user.lock_reason}'
    return message


def _require_active_session():
    if not current_user.is_authenticated:
        raise AuthorizationError('Authentication required', 401)
    if current_user.is_locked:
        message = locked_message(current_user)
        logout_user()
        raise AuthorizationError(message)


def api_login_required(func):
    """Require a signed-in, unlocked user. JSON 401/403 instead of redirects."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        _require_active_session()
        return func(*args, **kwargs)
    return wrapper


def admin_required(func):
    """Require a signed-in, unlocked user with the admin role."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        _require_active_session()
        if not is_admin(SessionContext(user=current_user._get_current_object())):
            raise AuthorizationError('Admin access required')
        return func(*args, **kwargs)
    return wrapper


def session_user():
    """The signed-in user, or None for guests."""
    if current_user.is_authenticated:
        return current_user._get_current_object()
    return None


@bp.route('/register', methods=['POST'])
@limiter.limit("10 per minute")
def register():
    data = request.get_json(silent=True) or {}
    username = str_param(data, 'username')
    email = str_param(data, 'email').lower()
    password = str_param(data, 'password')
    full_name = str_param(data, 'fullName') or str_param(data, 'full_name') or None

    if not username or not email or not password:
        raise ValidationError('Username, email and password are required')
    if not EMAIL_RE.match(email):
        raise ValidationError('Invalid email address')
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')
    if User.query.filter_by(username=username).first():
        raise ValidationError('Username is already taken')
    if User.query.filter_by(email=email).first():
        raise ValidationError('An account with that email already exists')

    user = User(username=username, email=email, full_name=full_name)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    login_user(user)
    current_app.logger.info(f"[AUTH] New user registered: {username} ({email})")

    notify_welcome(user.id, username)
    notify_admins(
        NotificationType.USER, 'New user registered',
        f"{username} ({email}) just created an account.",
        {'action': 'user_registered', 'userId': user.id},
    )
    return jsonify({'success': True, 'user': user.to_dict()}), 201


@bp.route('/login', methods=['POST'])
@limiter.limit("10 per minute")
def login():
    data = request.get_json(silent=True) or {}
    identifier = str_param(data, 'username') or str_param(data, 'email')
    password = str_param(data, 'password')
    if not identifier or not password:
        raise ValidationError('Username and password are required')

    user = User.query.filter(
        (User.username == identifier) | (User.email == identifier.lower())
    ).first()
    if not user or not user.check_password(password):
        raise AuthorizationError('Invalid username or password', 401)
    if user.is_locked:
        current_app.logger.info(f"[AUTH] Refused login for locked account {user.username}")
        raise AuthorizationError(locked_message(user))

    login_user(user, remember=bool(data.get('remember')))
    return jsonify({'success': True, 'user': user.to_dict()})


@bp.route('/logout', methods=['POST'])
def logout():
    logout_user()
    return jsonify({'success': True})


@bp.route('/me', methods=['GET'])
@api_login_required
def me():
    return jsonify({'success': True, 'user': current_user.to_dict()})
