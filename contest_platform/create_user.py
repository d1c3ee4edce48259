# contest_platform/create_user.py

import click
from flask import current_app
from flask.cli import with_appcontext

from contest_platform.database.models import ROLES
from contest_platform.errors import PlatformError

# Operator command for seeding accounts, e.g. the first administrator:
#   flask --app contest_platform.wsgi create-user --username admin \
#         --email admin@example.com --password 'S3cret!' --role admin


@click.command('create-user')
@click.option('--username', required=True)
@click.option('--email', required=True)
@click.option('--password', required=True, prompt=True, hide_input=True)
@click.option('--role', type=click.Choice(ROLES), default='member', show_default=True)
@with_appcontext
def create_user_command(username, email, password, role):
    """Register a user through the normal credential checks."""
    credentials = current_app.extensions['contest_platform'].credentials
    try:
        user, _token = credentials.register(username, email, password)
    except PlatformError as e:
        for error in e.details or []:
            click.echo(f"  {error['field']}: {error['message']}", err=True)
        raise click.ClickException(e.message)

    if role != user.role:
        user = credentials.promote(user, role)
    click.echo(f"User email: {user.email}")
    click.echo(f"Role: {user.role}")
    click.echo("User created successfully.")
