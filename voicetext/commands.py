"""
Flask CLI commands for operating the app.

    flask --app voicetext.app init-db
    flask --app voicetext.app create-admin EMAIL USERNAME PASSWORD
    flask --app voicetext.app grant-admin EMAIL
    flask --app voicetext.app list-subscribers
    flask --app voicetext.app check-expiry
    flask --app voicetext.app generate-samples
"""
import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .samples import SAMPLE_VOICES, generate_samples, openai_synthesizer
from .subscriptions import check_subscription_expiry


def _find_user(email):
    return User.query.filter(db.func.lower(User.email) == email.lower()).first()


@click.command('init-db')
@with_appcontext
def init_db_command():
    """Create any missing tables."""
    db.create_all()
    click.echo("✓ Database ready")


@click.command('create-admin')
@with_appcontext
@click.argument('email')
@click.argument('username')
@click.argument('password')
def create_admin_command(email, username, password):
    """Create an admin account."""
    if User.query.filter((User.username == username) | (User.email == email.lower())).first():
        raise click.ClickException(f"User {username} / {email} already exists")
    user = User(username=username, email=email.lower(), role='admin')
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    click.echo(f"✓ Admin {username} created")


@click.command('grant-admin')
@with_appcontext
@click.argument('email')
def grant_admin_command(email):
    """Give an existing user the admin role."""
    user = _find_user(email)
    if not user:
        raise click.ClickException(f"User not found: {email}")
    user.role = 'admin'
    db.session.commit()
    click.echo(f"✓ {user.email} is now an admin")


@click.command('list-subscribers')
@with_appcontext
def list_subscribers_command():
    """Show users on a paid plan."""
    users = (
        User.query
        .filter(User.subscription_type != 'free')
        .order_by(User.subscription_expiry)
        .all()
    )
    click.echo(f"Paid subscribers: {len(users)}")
    for user in users:
        expiry = user.subscription_expiry.strftime('%Y-%m-%d') if user.subscription_expiry else 'never'
        click.echo(f"  {user.email:40} {user.subscription_type:8} expires {expiry}")


@click.command('check-expiry')
@with_appcontext
def check_expiry_command():
    """Send expiry reminders and downgrade expired plans."""
    summary = check_subscription_expiry()
    click.echo(f"Reminded {len(summary['reminded'])} user(s), downgraded {len(summary['expired'])} user(s)")


@click.command('generate-samples')
@with_appcontext
@click.option('--output-dir', default=None, help='Defaults to VOICE_SAMPLES_DIR')
def generate_samples_command(output_dir):
    """Regenerate the voice preview samples."""
    output_dir = output_dir or current_app.config['VOICE_SAMPLES_DIR']
    synthesize = openai_synthesizer(current_app.config['OPENAI_API_KEY'], current_app.config['TTS_TIMEOUT'])
    summary = generate_samples(output_dir=output_dir, synthesize=synthesize)
    click.echo(f"Generated {len(summary['written'])}/{len(SAMPLE_VOICES)} samples in {output_dir}")
    for failure in summary['failed']:
        click.echo(f"  ✗ {failure['voice']}: {failure['error']}")


def register_commands(app):
    for command in (
        init_db_command,
        create_admin_command,
        grant_admin_command,
        list_subscribers_command,
        check_expiry_command,
        generate_samples_command,
    ):
        app.cli.add_command(command)
