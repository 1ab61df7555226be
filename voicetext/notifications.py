"""
Notification store and event helpers.

Notifications belong to exactly one user and are only ever mutated to flip
``is_read``. There is no delete operation: rows disappear only
when the owning user is deleted (ON DELETE CASCADE).
"""
import logging
from datetime import datetime
from enum import Enum

from .errors import NotFoundError, ValidationError
from .extensions import db
from .models import Notification, User

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    PAYMENT = 'payment'
    USER = 'user'
    SYSTEM = 'system'
    AUDIO = 'audio'

    @classmethod
    def parse(cls, value):
        """Coerce a raw value to a NotificationType or raise ValidationError."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            allowed = ', '.join(t.value for t in cls)
            raise ValidationError(f"Invalid notification type '{value}'. Must be one of: {allowed}") from None


def create_notification(user_id, notification_type, title, message, metadata=None, commit=True):
    """Insert an unread notification for an existing user."""
    kind = NotificationType.parse(notification_type)
    if not isinstance(title, str) or not isinstance(message, str) or not title or not message:
        raise ValidationError('Notification title and message are required')
    if not isinstance(user_id, int) or isinstance(user_id, bool) or db.session.get(User, user_id) is None:
        raise ValidationError(f'User {user_id} does not exist')

    notification = Notification(
        user_id=user_id,
        type=kind.value,
        title=title,
        message=message,
        is_read=False,
        meta_data=metadata,
    )
    db.session.add(notification)
    if commit:
        db.session.commit()
    logger.info(f"[NOTIFY] {kind.value} notification for user {user_id}: {title}")
    return notification


def get_notification(notification_id, user_id=None):
    """Fetch a notification, optionally scoped to its owner."""
    notification = db.session.get(Notification, notification_id)
    if notification is None or (user_id is not None and notification.user_id != user_id):
        raise NotFoundError('Notification not found')
    return notification


def mark_read(notification_id, user_id=None):
    """Mark one notification read. Marking an already-read row is a no-op."""
    notification = get_notification(notification_id, user_id)
    if not notification.is_read:
        notification.is_read = True
        notification.updated_at = datetime.utcnow()
        db.session.commit()
    return notification


def mark_all_read(user_id):
    """Mark every unread notification of a user read; returns the number changed."""
    count = (
        Notification.query
        .filter(Notification.is_read.is_(False), Notification.user_id == user_id)
        .update({'is_read': True, 'updated_at': datetime.utcnow()}, synchronize_session=False)
    )
    db.session.commit()
    return count


def _user_query(user_id, unread_only=False):
    query = Notification.query
    if unread_only:
        # (is_read, user_id) matches notifications_is_read_user_id_idx
        query = query.filter(Notification.is_read.is_(False), Notification.user_id == user_id)
    else:
        query = query.filter(Notification.user_id == user_id)
    return query


def list_for_user(user_id, unread_only=False, limit=None):
    """Newest first. Ties on created_at fall back to insertion order."""
    query = _user_query(user_id, unread_only).order_by(
        Notification.created_at.desc(), Notification.id.desc()
    )
    if limit:
        query = query.limit(limit)
    return query.all()


def unread_count(user_id):
    return _user_query(user_id, unread_only=True).count()


# ---------------------------------------------------------------------------
# Event helpers
# ---------------------------------------------------------------------------

def _format_vnd(amount):
    return f"{amount:,} VND" if isinstance(amount, int) else f"{amount} VND"


def notify_payment(user_id, status, amount, order_id=None, plan_type=None, reason=None):
    """Payment lifecycle: pending, completed, rejected."""
    metadata = {'amount': amount, 'status': status}
    if order_id:
        metadata['orderId'] = order_id
    if plan_type:
        metadata['planType'] = plan_type

    if status == 'pending':
        title = 'Payment received'
        message = f"Your payment of {_format_vnd(amount)} is waiting for confirmation."
    elif status == 'completed':
        title = 'Payment confirmed'
        plan = f" Your {plan_type.upper()} plan is now active." if plan_type else ''
        message = f"Your payment of {_format_vnd(amount)} has been confirmed.{plan}"
    elif status == 'rejected':
        title = 'Payment rejected'
        message = f"Your payment of {_format_vnd(amount)} was rejected."
        if reason:
            message += f" Reason: {reason}"
            metadata['reason'] = reason
    else:
        raise ValidationError(f"Unknown payment notification status '{status}'")

    return create_notification(user_id, NotificationType.PAYMENT, title, message, metadata)


def notify_account_locked(user_id, reason):
    return create_notification(
        user_id, NotificationType.USER, 'Account locked',
        f"Your account has been locked. Reason: {reason}",
        {'action': 'account_locked', 'reason': reason},
    )


def notify_account_unlocked(user_id):
    return create_notification(
        user_id, NotificationType.USER, 'Account unlocked',
        'Your account has been unlocked. You can sign in again.',
        {'action': 'account_unlocked'},
    )


def notify_subscription_expiring(user_id, plan_type, days_left):
    return create_notification(
        user_id, NotificationType.USER, 'Subscription expiring soon',
        f"Your {plan_type.upper()} plan expires in {days_left} day{'s' if days_left != 1 else ''}. Renew to keep your benefits.",
        {'action': 'subscription_expiring', 'planType': plan_type, 'daysLeft': days_left},
    )


def notify_subscription_expired(user_id, plan_type):
    return create_notification(
        user_id, NotificationType.USER, 'Subscription expired',
        f"Your {plan_type.upper()} plan has expired and your account was moved to the free plan.",
        {'action': 'subscription_expired', 'planType': plan_type},
    )


def notify_subscription_changed(user_id, plan_type, expiry=None):
    message = f"Your plan was changed to {plan_type.upper()}."
    if expiry:
        message += f" It is valid until {expiry:%Y-%m-%d}."
    return create_notification(
        user_id, NotificationType.USER, 'Subscription updated', message,
        {'action': 'subscription_changed', 'planType': plan_type,
         'expiry': expiry.isoformat() if expiry else None},
    )


def notify_role_changed(user_id, role):
    return create_notification(
        user_id, NotificationType.USER, 'Role updated',
        f"Your account role is now '{role}'.",
        {'action': 'role_changed', 'role': role},
    )


def notify_conversion_complete(user_id, file_name, audio_file_id=None):
    return create_notification(
        user_id, NotificationType.AUDIO, 'Audio ready',
        f"Your audio '{file_name}' has been created.",
        {'action': 'conversion_complete', 'fileName': file_name, 'audioFileId': audio_file_id},
    )


def notify_conversion_failed(user_id, file_name, error):
    return create_notification(
        user_id, NotificationType.AUDIO, 'Audio conversion failed',
        f"Could not create audio '{file_name}': {error}",
        {'action': 'conversion_failed', 'fileName': file_name, 'error': str(error)},
    )


def notify_storage_limit(user_id, max_files):
    return create_notification(
        user_id, NotificationType.AUDIO, 'Storage limit reached',
        f"You have reached the limit of {max_files} saved audio files. Delete files or upgrade your plan.",
        {'action': 'storage_limit', 'maxFiles': max_files},
    )


def notify_welcome(user_id, username):
    return create_notification(
        user_id, NotificationType.SYSTEM, 'Welcome to VoiceText Pro',
        f"Hi {username}, your account is ready. Start converting text to speech!",
        {'action': 'welcome'},
    )


def notify_maintenance(user_id, start_time, duration):
    return create_notification(
        user_id, NotificationType.SYSTEM, 'Scheduled maintenance',
        f"The system will be under maintenance from {start_time} for {duration}.",
        {'action': 'maintenance', 'startTime': start_time, 'duration': duration},
    )


def notify_new_feature(user_id, feature_name):
    return create_notification(
        user_id, NotificationType.SYSTEM, 'New feature',
        f"{feature_name} is now available.",
        {'action': 'new_feature', 'featureName': feature_name},
    )


def notify_security(user_id, message):
    return create_notification(
        user_id, NotificationType.SYSTEM, 'Security alert', message,
        {'action': 'security'},
    )


def notify_admins(notification_type, title, message, metadata=None, exclude_user_id=None):
    """Fan a notification out to every admin account in one transaction."""
    kind = NotificationType.parse(notification_type)
    admins = User.query.filter_by(role='admin').all()
    created = []
    for admin in admins:
        if admin.id == exclude_user_id:
            continue
        created.append(create_notification(admin.id, kind, title, message, metadata, commit=False))
    db.session.commit()
    return created


def broadcast(notification_type, title, message, metadata=None):
    """Send the same notification to every user; returns how many were created."""
    kind = NotificationType.parse(notification_type)
    if not title or not message:
        raise ValidationError('Notification title and message are required')
    user_ids = [row.id for row in User.query.with_entities(User.id).all()]
    for user_id in user_ids:
        db.session.add(Notification(user_id=user_id, type=kind.value, title=title,
                                    message=message, is_read=False, meta_data=metadata))
    db.session.commit()
    logger.info(f"[NOTIFY] Broadcast {kind.value} notification to {len(user_ids)} users: {title}")
    return len(user_ids)
