"""Operator commands: ``flask crm ...``."""

import logging

import click
from flask.cli import AppGroup
from sqlalchemy.exc import IntegrityError

from poolcrm import db
from poolcrm.auth import create_admin
from poolcrm.estimates.service import EstimateService
from poolcrm.money import format_currency

logger = logging.getLogger(__name__)

crm_cli = AppGroup('crm', help='Pool CRM administration commands.')


@crm_cli.command('create-admin')
@click.argument('email')
@click.option('--name', 'full_name', required=True, help='Display name')
@click.password_option('--password', help='Sign-in password')
def create_admin_command(email: str, full_name: str, password: str) -> None:
    """Create an admin account that can sign in to the back office."""
    try:
        admin = create_admin(email, full_name, password)
    except IntegrityError:
        db.session.rollback()
        raise click.ClickException(f'An admin with email {email} already exists')
    logger.info('Created admin %s', admin.email)
    click.echo(f'Created admin {admin.email} ({admin.id})')


@crm_cli.command('expired-estimates')
def expired_estimates_command() -> None:
    """List sent estimates whose valid-until date has passed."""
    rows = EstimateService().expired()
    if not rows:
        click.echo('No expired estimates')
        return
    for est in rows:
        customer = (est.get('customer') or {}).get('name') or est['customer_id']
        click.echo(
            f"{est['estimate_number']}  {customer}  "
            f"{format_currency(est['total_cents'])}  valid until {est['valid_until']}"
        )
