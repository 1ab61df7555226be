"""Notification endpoints for the signed-in user."""
from flask import Blueprint, jsonify, request
from flask_login import current_user

from . import notifications
from .auth import api_login_required

bp = Blueprint('notifications', __name__, url_prefix='/api/notifications')


@bp.route('', methods=['GET'])
@bp.route('/', methods=['GET'])
@api_login_required
def list_notifications():
    unread_only = request.args.get('unread', '').lower() in ('true', '1', 'yes')
    items = notifications.list_for_user(current_user.id, unread_only=unread_only)
    return jsonify({'success': True, 'notifications': [n.to_dict() for n in items]})


@bp.route('/unread', methods=['GET'])
@api_login_required
def list_unread():
    items = notifications.list_for_user(current_user.id, unread_only=True)
    return jsonify({'success': True, 'notifications': [n.to_dict() for n in items]})


@bp.route('/unread-count', methods=['GET'])
@api_login_required
def count_unread():
    return jsonify({'success': True, 'count': notifications.unread_count(current_user.id)})


@bp.route('/<int:notification_id>/read', methods=['PATCH'])
@api_login_required
def mark_read(notification_id):
    notification = notifications.mark_read(notification_id, user_id=current_user.id)
    return jsonify({'success': True, 'notification': notification.to_dict()})


@bp.route('/read-all', methods=['PATCH'])
@api_login_required
def mark_all_read():
    updated = notifications.mark_all_read(current_user.id)
    return jsonify({'success': True, 'updated': updated})
