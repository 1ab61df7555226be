"""
Database models: users, notifications, audio files, payments, app settings
"""
import secrets
from datetime import datetime

from flask_login import UserMixin
from sqlalchemy import CheckConstraint, Index, false, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import validates
from werkzeug.security import check_password_hash, generate_password_hash

from .errors import ValidationError
from .extensions import db

NOTIFICATION_TYPES = ('payment', 'user', 'system', 'audio')
ROLES = ('admin', 'user')
SUBSCRIPTION_TYPES = ('free', 'pro', 'premium')
PAYMENT_STATUSES = ('pending', 'completed', 'rejected', 'cancelled')

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in development and tests)
JSONType = db.JSON().with_variant(JSONB(), 'postgresql')

DEFAULT_PREFERENCES = {
    'voice': 'alloy',
    'speed': 1.0,
    'pitch': 1.0,
    'volume': 1.0,
    'format': 'mp3',
}


class User(db.Model, UserMixin):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(255), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password = db.Column(db.String(255), nullable=False)  # werkzeug hash
    full_name = db.Column(db.String(255))

    # Account status: is_active False means locked by an admin
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    lock_reason = db.Column(db.Text)
    locked_at = db.Column(db.DateTime)
    locked_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))

    role = db.Column(db.String(32), nullable=False, default='user')  # user | admin
    subscription_type = db.Column(db.String(32), nullable=False, default='free')  # free | pro | premium
    subscription_expiry = db.Column(db.DateTime)

    total_audio_files = db.Column(db.Integer, default=0)
    total_usage_minutes = db.Column(db.Integer, default=0)
    total_characters_used = db.Column(db.Integer, default=0)
    preferences = db.Column(JSONType, default=lambda: dict(DEFAULT_PREFERENCES))

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, server_default=func.now())
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, server_default=func.now(),
                           onupdate=datetime.utcnow)

    # Children are removed by the database (ON DELETE CASCADE), not loaded and deleted row by row
    notifications = db.relationship('Notification', backref='user', lazy='dynamic',
                                    cascade='all', passive_deletes=True)
    audio_files = db.relationship('AudioFile', backref='user', lazy='dynamic',
                                  cascade='all', passive_deletes=True)
    payments = db.relationship('Payment', backref='user', lazy='dynamic',
                               foreign_keys='Payment.user_id', passive_deletes=True)

    def set_password(self, password: str) -> None:
        self.password = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password, password)

    @property
    def is_authenticated(self) -> bool:
        # UserMixin derives this from is_active; a locked account is still signed in
        # until a guard sees the lock and ends the session with a 403
        return True

    @property
    def is_admin(self) -> bool:
        return self.role == 'admin'

    @property
    def is_locked(self) -> bool:
        return not self.is_active

    def lock(self, reason, admin_id=None):
        self.is_active = False
        self.lock_reason = reason
        self.locked_at = datetime.utcnow()
        self.locked_by = admin_id

    def unlock(self):
        self.is_active = True
        self.lock_reason = None
        self.locked_at = None
        self.locked_by = None

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'email': self.email,
            'fullName': self.full_name,
            'role': self.role,
            'isActive': self.is_active,
            'lockReason': self.lock_reason,
            'lockedAt': self.locked_at.isoformat() if self.locked_at else None,
            'subscriptionType': self.subscription_type,
            'subscriptionExpiry': self.subscription_expiry.isoformat() if self.subscription_expiry else None,
            'totalAudioFiles': self.total_audio_files or 0,
            'totalUsageMinutes': self.total_usage_minutes or 0,
            'totalCharactersUsed': self.total_characters_used or 0,
            'preferences': self.preferences or dict(DEFAULT_PREFERENCES),
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f'<User {self.username} ({self.role})>'


class Notification(db.Model):
    __tablename__ = 'notifications'
    __table_args__ = (
        CheckConstraint(
            "type IN ('payment', 'user', 'system', 'audio')",
            name='notifications_type_check'
        ),
        Index('notifications_user_id_idx', 'user_id'),
        Index('notifications_is_read_user_id_idx', 'is_read', 'user_id'),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    type = db.Column(db.Text, nullable=False)
    title = db.Column(db.Text, nullable=False)
    message = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, nullable=False, default=False, server_default=false())
    # "metadata" is reserved on declarative classes, so the attribute is renamed
    meta_data = db.Column('metadata', JSONType, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, server_default=func.now())
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, server_default=func.now(),
                           onupdate=datetime.utcnow)

    @validates('type')
    def validate_type(self, key, value):
        if value not in NOTIFICATION_TYPES:
            raise ValidationError(f"Invalid notification type '{value}'. Must be one of: {', '.join(NOTIFICATION_TYPES)}")
        return value

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'type': self.type,
            'title': self.title,
            'message': self.message,
            'isRead': self.is_read,
            'metadata': self.meta_data,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }


class AudioFile(db.Model):
    __tablename__ = 'audio_files'

    id = db.Column(db.Integer, primary_key=True)
    # Nullable: guest conversions are stored without an owner
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), index=True)
    title = db.Column(db.String(255), nullable=False)
    content = db.Column(db.Text, nullable=False)
    voice = db.Column(db.String(64), nullable=False)
    speed = db.Column(db.Float, default=1.0)
    pitch = db.Column(db.Float, default=1.0)
    volume = db.Column(db.Float, default=1.0)
    format = db.Column(db.String(16), default='mp3')
    duration = db.Column(db.Integer)  # seconds, estimated
    file_size = db.Column(db.Integer)  # bytes
    file_path = db.Column(db.String(512))
    share_id = db.Column(db.String(64), unique=True)
    is_public = db.Column(db.Boolean, nullable=False, default=False)
    is_temporary = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, server_default=func.now())

    def ensure_share_id(self):
        if not self.share_id:
            self.share_id = secrets.token_urlsafe(12)
        return self.share_id

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'title': self.title,
            'content': self.content,
            'voice': self.voice,
            'speed': self.speed,
            'pitch': self.pitch,
            'volume': self.volume,
            'format': self.format,
            'duration': self.duration,
            'fileSize': self.file_size,
            'audioUrl': f'/api/audio/{self.file_path}' if self.file_path else None,
            'shareId': self.share_id,
            'isPublic': self.is_public,
            'isTemporary': self.is_temporary,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }


class Payment(db.Model):
    __tablename__ = 'payments'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), index=True)
    order_id = db.Column(db.String(64), unique=True, nullable=False)
    plan_type = db.Column(db.String(32), nullable=False)  # pro | premium
    billing_cycle = db.Column(db.String(32), nullable=False, default='monthly')  # monthly | yearly
    amount = db.Column(db.Integer, nullable=False)  # VND
    status = db.Column(db.String(32), nullable=False, default='pending')
    payment_method = db.Column(db.String(32), nullable=False, default='bank_transfer')
    stripe_payment_intent_id = db.Column(db.String(255), index=True)
    customer_email = db.Column(db.String(255))
    customer_name = db.Column(db.String(255))
    notes = db.Column(db.Text)
    receipt_image_url = db.Column(db.String(512))
    confirmed_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'))
    confirmed_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, server_default=func.now())

    @property
    def is_pending(self) -> bool:
        return self.status == 'pending'

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'orderId': self.order_id,
            'planType': self.plan_type,
            'billingCycle': self.billing_cycle,
            'amount': self.amount,
            'status': self.status,
            'paymentMethod': self.payment_method,
            'customerEmail': self.customer_email,
            'customerName': self.customer_name,
            'notes': self.notes,
            'receiptImageUrl': self.receipt_image_url,
            'confirmedBy': self.confirmed_by,
            'confirmedAt': self.confirmed_at.isoformat() if self.confirmed_at else None,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }


class AppSettings(db.Model):
    """Single-row table holding tier quotas and the upgrade banner."""

    __tablename__ = 'app_settings'

    id = db.Column(db.Integer, primary_key=True)
    free_max_files = db.Column(db.Integer, nullable=False, default=5)
    free_max_characters = db.Column(db.Integer, nullable=False, default=500)
    pro_max_files = db.Column(db.Integer, nullable=False, default=100)
    pro_max_characters = db.Column(db.Integer, nullable=False, default=10000)
    premium_max_files = db.Column(db.Integer, nullable=False, default=1000)
    premium_max_characters = db.Column(db.Integer, nullable=False, default=50000)
    guest_max_characters = db.Column(db.Integer, nullable=False, default=100)
    guest_voice = db.Column(db.String(64), nullable=False, default='alloy')
    upgrade_banner_enabled = db.Column(db.Boolean, nullable=False, default=True)
    upgrade_banner_text = db.Column(db.Text, default='Upgrade to Pro for more voices and longer texts')
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # JSON key -> column, for the admin settings API
    FIELDS = {
        'freeMaxFiles': 'free_max_files',
        'freeMaxCharacters': 'free_max_characters',
        'proMaxFiles': 'pro_max_files',
        'proMaxCharacters': 'pro_max_characters',
        'premiumMaxFiles': 'premium_max_files',
        'premiumMaxCharacters': 'premium_max_characters',
        'guestMaxCharacters': 'guest_max_characters',
        'guestVoice': 'guest_voice',
        'upgradeBannerEnabled': 'upgrade_banner_enabled',
        'upgradeBannerText': 'upgrade_banner_text',
    }

    @classmethod
    def current(cls):
        """Return the settings row, creating it with defaults on first use."""
        settings = cls.query.order_by(cls.id).first()
        if settings is None:
            settings = cls()
            db.session.add(settings)
            db.session.commit()
        return settings

    def max_characters(self, subscription_type=None):
        """Character limit per conversion; None subscription means guest."""
        if subscription_type is None:
            return self.guest_max_characters
        return {
            'premium': self.premium_max_characters,
            'pro': self.pro_max_characters,
        }.get(subscription_type, self.free_max_characters)

    def max_files(self, subscription_type):
        return {
            'premium': self.premium_max_files,
            'pro': self.pro_max_files,
        }.get(subscription_type, self.free_max_files)

    def to_dict(self):
        return {key: getattr(self, column) for key, column in self.FIELDS.items()}
