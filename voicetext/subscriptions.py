"""Daily subscription expiry check: reminders before expiry, downgrade after."""
import logging
from datetime import datetime

from . import notifications
from .extensions import db
from .models import User

logger = logging.getLogger(__name__)

REMINDER_DAYS = (7, 1)


def days_until(expiry, now):
    """Whole days left, rounding partial days up (so 'expires tomorrow' is 1)."""
    seconds = (expiry - now).total_seconds()
    if seconds <= 0:
        return 0
    return int(-(-seconds // 86400))


def check_subscription_expiry(now=None):
    """
    Notify paid users 7 and 1 days before their plan expires, and move
    expired users back to the free plan. Returns a summary dict.
    """
    now = now or datetime.utcnow()
    summary = {'reminded': [], 'expired': []}

    users = User.query.filter(
        User.subscription_type != 'free',
        User.subscription_expiry.isnot(None),
    ).all()

    for user in users:
        days_left = days_until(user.subscription_expiry, now)
        if days_left == 0:
            plan = user.subscription_type
            user.subscription_type = 'free'
            user.subscription_expiry = None
            db.session.commit()
            notifications.notify_subscription_expired(user.id, plan)
            logger.info(f"[SUBSCRIPTION] {user.username}: {plan} expired, downgraded to free")
            summary['expired'].append(user.id)
        elif days_left in REMINDER_DAYS:
            notifications.notify_subscription_expiring(user.id, user.subscription_type, days_left)
            logger.info(f"[SUBSCRIPTION] {user.username}: {user.subscription_type} expires in {days_left} day(s)")
            summary['reminded'].append(user.id)

    return summary
