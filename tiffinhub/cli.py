import json

import click

from .extensions import db
from .jobs import JOBS
from .models import User


def register_cli(app):
    @app.cli.command('seed-admin')
    @click.option('--email', default=None, help='Defaults to SUPER_ADMIN_EMAIL.')
    @click.option('--password', required=True)
    @click.option('--name', default='Super Admin')
    def seed_admin(email, password, name):
        email = (email or app.config['SUPER_ADMIN_EMAIL']).strip().lower()
        user = User.query.filter_by(email=email).first()
        if not user:
            user = User(email=email, full_name=name, subscription_status='active', plan_type='premium')
            db.session.add(user)
        user.set_password(password)
        user.is_super_admin = True
        user.role = 'admin'
        db.session.commit()
        click.echo(f'Super admin {email} seeded.')

    @app.cli.command('run-job')
    @click.argument('name', type=click.Choice(sorted(JOBS)))
    def run_job(name):
        """Run one scheduled job immediately and print its summary."""
        result = JOBS[name]()
        click.echo(json.dumps(result, default=str))
