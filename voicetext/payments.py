"""
Plan pricing, bank-transfer and Stripe card payments, and the confirm/reject
workflow shared with the admin API
"""
import calendar
import secrets
import time
from datetime import datetime

import stripe
from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user

from . import notifications
from .auth import api_login_required
from .errors import ExternalServiceError, NotFoundError, ValidationError
from .extensions import db
from .models import Payment, User
from .params import str_param

bp = Blueprint('payments', __name__)

# Prices in VND
PLAN_PRICES = {
    'pro': {'monthly': 99000, 'yearly': 990000},
    'premium': {'monthly': 199000, 'yearly': 1990000},
}
BILLING_CYCLES = ('monthly', 'yearly')

BANK_TRANSFER_INFO = {
    'bankName': 'Vietcombank',
    'accountName': 'VOICETEXT PRO',
    'transferPrefix': 'VTP',
}


def plan_price(plan_type, billing_cycle):
    if plan_type not in PLAN_PRICES:
        raise ValidationError(f"Invalid plan '{plan_type}'. Must be one of: {', '.join(PLAN_PRICES)}")
    if billing_cycle not in BILLING_CYCLES:
        raise ValidationError(f"Invalid billing cycle '{billing_cycle}'. Must be monthly or yearly")
    return PLAN_PRICES[plan_type][billing_cycle]


def generate_order_id():
    return f"VTP{int(time.time())}{secrets.token_hex(3).upper()}"


def add_months(start, months):
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def subscription_end(start, billing_cycle):
    return add_months(start, 12 if billing_cycle == 'yearly' else 1)


def create_payment(user, plan_type, billing_cycle, payment_method='bank_transfer', notes=None,
                   stripe_payment_intent_id=None, order_id=None):
    """Create a pending payment and tell the user and the admins about it."""
    amount = plan_price(plan_type, billing_cycle)
    payment = Payment(
        user_id=user.id,
        order_id=order_id or generate_order_id(),
        plan_type=plan_type,
        billing_cycle=billing_cycle,
        amount=amount,
        status='pending',
        payment_method=payment_method,
        stripe_payment_intent_id=stripe_payment_intent_id,
        customer_email=user.email,
        customer_name=user.full_name or user.username,
        notes=notes,
    )
    db.session.add(payment)
    db.session.commit()
    current_app.logger.info(f"[PAYMENT] Created {payment.order_id}: {plan_type}/{billing_cycle} {amount} VND for user {user.id}")

    notifications.notify_payment(user.id, 'pending', amount, payment.order_id, plan_type)
    notifications.notify_admins(
        notifications.NotificationType.PAYMENT, 'New payment pending',
        f"{user.username} submitted a {plan_type.upper()} ({billing_cycle}) payment of {amount:,} VND.",
        {'paymentId': payment.id, 'orderId': payment.order_id, 'amount': amount, 'status': 'pending'},
    )
    return payment


def confirm_payment(payment, admin_id=None):
    """Complete a pending payment and upgrade the payer's plan."""
    if not payment.is_pending:
        raise ValidationError(f'Only pending payments can be confirmed (this one is {payment.status})')

    now = datetime.utcnow()
    payment.status = 'completed'
    payment.confirmed_by = admin_id
    payment.confirmed_at = now

    user = db.session.get(User, payment.user_id) if payment.user_id else None
    if user is not None:
        user.subscription_type = payment.plan_type
        user.subscription_expiry = subscription_end(now, payment.billing_cycle)
    db.session.commit()
    current_app.logger.info(f"[PAYMENT] Confirmed {payment.order_id} (admin={admin_id})")

    if user is not None:
        notifications.notify_payment(user.id, 'completed', payment.amount, payment.order_id, payment.plan_type)
    return payment


def reject_payment(payment, admin_id=None, reason=None):
    if not payment.is_pending:
        raise ValidationError(f'Only pending payments can be rejected (this one is {payment.status})')

    payment.status = 'rejected'
    payment.confirmed_by = admin_id
    payment.confirmed_at = datetime.utcnow()
    if reason:
        payment.notes = reason
    db.session.commit()
    current_app.logger.info(f"[PAYMENT] Rejected {payment.order_id} (admin={admin_id}): {reason}")

    if payment.user_id:
        notifications.notify_payment(payment.user_id, 'rejected', payment.amount, payment.order_id,
                                     payment.plan_type, reason=reason)
    return payment


@bp.route('/api/payment-settings', methods=['GET'])
def payment_settings():
    return jsonify({'success': True, 'prices': PLAN_PRICES, 'currency': 'VND', 'bankTransfer': BANK_TRANSFER_INFO})


@bp.route('/api/payments', methods=['GET'])
@api_login_required
def list_payments():
    payments = current_user.payments.order_by(Payment.created_at.desc(), Payment.id.desc()).all()
    return jsonify({'success': True, 'payments': [p.to_dict() for p in payments]})


@bp.route('/api/payments', methods=['POST'])
@api_login_required
def create_bank_transfer():
    data = request.get_json(silent=True) or {}
    payment = create_payment(
        current_user._get_current_object(),
        str_param(data, 'planType'),
        str_param(data, 'billingCycle') or 'monthly',
        notes=str_param(data, 'notes') or None,
    )
    return jsonify({'success': True, 'payment': payment.to_dict(), 'bankTransfer': BANK_TRANSFER_INFO}), 201


@bp.route('/api/order-status/<order_id>', methods=['GET'])
@api_login_required
def order_status(order_id):
    payment = Payment.query.filter_by(order_id=order_id, user_id=current_user.id).first()
    if payment is None:
        raise NotFoundError('Order not found')
    return jsonify({'success': True, 'orderId': order_id, 'status': payment.status})


@bp.route('/api/create-payment-intent', methods=['POST'])
@api_login_required
def create_payment_intent():
    data = request.get_json(silent=True) or {}
    plan_type = str_param(data, 'planType')
    billing_cycle = str_param(data, 'billingCycle') or 'monthly'
    amount = plan_price(plan_type, billing_cycle)

    if not stripe.api_key:
        raise ExternalServiceError('Card payments are not configured')

    order_id = generate_order_id()
    try:
        intent = stripe.PaymentIntent.create(
            amount=amount,  # VND is a zero-decimal currency
            currency='vnd',
            metadata={'order_id': order_id, 'user_id': str(current_user.id), 'plan_type': plan_type},
        )
    except stripe.StripeError as e:
        current_app.logger.error(f"[PAYMENT] Stripe PaymentIntent failed: {e}")
        raise ExternalServiceError(f'Payment provider error: {e}') from e

    payment = create_payment(
        current_user._get_current_object(), plan_type, billing_cycle,
        payment_method='card', stripe_payment_intent_id=intent['id'], order_id=order_id,
    )
    return jsonify({'success': True, 'clientSecret': intent['client_secret'], 'payment': payment.to_dict()})


def _intent_order_id(intent):
    # StripeObject has no .get; missing keys raise KeyError
    try:
        return intent['metadata']['order_id']
    except (KeyError, TypeError):
        return None


@bp.route('/stripe/webhook', methods=['POST'])
def stripe_webhook():
    payload = request.data
    sig_header = request.headers.get('Stripe-Signature', '')
    webhook_secret = current_app.config.get('STRIPE_WEBHOOK_SECRET')

    try:
        if webhook_secret:
            event = stripe.Webhook.construct_event(payload, sig_header, webhook_secret)
        else:
            event = stripe.Event.construct_from(request.get_json(force=True), stripe.api_key)
    except (ValueError, stripe.SignatureVerificationError) as e:
        return jsonify(success=False, error=str(e)), 400

    et = event['type']
    if et in ('payment_intent.succeeded', 'payment_intent.payment_failed'):
        intent = event['data']['object']
        payment = Payment.query.filter_by(stripe_payment_intent_id=intent['id']).first()
        if payment is None:
            order_id = _intent_order_id(intent)
            payment = Payment.query.filter_by(order_id=order_id).first() if order_id else None
        if payment is None:
            current_app.logger.warning(f"[PAYMENT] Webhook {et} for unknown intent {intent['id']}")
        elif payment.is_pending and et == 'payment_intent.succeeded':
            confirm_payment(payment)
        elif payment.is_pending:
            payment.status = 'cancelled'
            db.session.commit()
            current_app.logger.info(f"[PAYMENT] Card payment {payment.order_id} failed, marked cancelled")

    return jsonify(success=True)
