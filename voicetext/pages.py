"""Server-rendered admin shell pages, guarded by the admin gate."""
from flask import Blueprint, flash, redirect, render_template
from flask_login import current_user

from .admin_gate import AdminGate, SessionContext
from .auth import session_user

bp = Blueprint('pages', __name__)


def admin_gate():
    return AdminGate(
        on_redirect=redirect,
        on_deny=lambda message: flash(message, 'error'),
    )


@bp.route('/admin')
def admin_dashboard():
    session = SessionContext(user=session_user())
    return admin_gate().render(session, lambda: render_template('admin.html', user=current_user))


@bp.route('/admin-login')
def admin_login():
    return render_template('admin_login.html')
