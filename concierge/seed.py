import secrets

from flask import current_app

from .defaults import DEFAULT_DESTINATIONS, DEFAULT_SERVICES
from .models import Account, Destination, Profile, Service, db
from .rbac import ROLE_ADMIN


def _seed_admin():
    email = (current_app.config.get('ADMIN_EMAIL') or '').strip().lower()
    password = current_app.config.get('ADMIN_PASSWORD') or ''
    if not email:
        return None

    account = Account.query.filter_by(email=email).first()
    if account is not None:
        # Keep the bootstrap admin's password in sync with the environment.
        if password and not account.check_password(password):
            account.set_password(password)
        if db.session.get(Profile, account.id) is None:
            db.session.add(Profile(id=account.id, email=email, full_name='Administrator', role=ROLE_ADMIN))
        return account

    if Account.query.first() is not None:
        return None

    if not password:
        password = secrets.token_urlsafe(16)
        current_app.logger.warning(
            'ADMIN_PASSWORD not set. Seeded admin with a random password. '
            'Set ADMIN_PASSWORD and restart to rotate it to a known value.'
        )
    account = Account(email=email)
    account.set_password(password)
    db.session.add(account)
    db.session.flush()
    db.session.add(Profile(id=account.id, email=email, full_name='Administrator', role=ROLE_ADMIN))
    return account


def _seed_services():
    if Service.query.first() is not None:
        return
    for position, item in enumerate(DEFAULT_SERVICES):
        service = Service(
            slug=item['slug'],
            title=item['title'],
            description=item['description'],
            position=position,
        )
        service.items = item['items']
        db.session.add(service)


def _seed_destinations():
    if Destination.query.first() is not None:
        return
    for position, item in enumerate(DEFAULT_DESTINATIONS):
        destination = Destination(
            slug=item['slug'],
            name=item['name'],
            headline=item['headline'],
            description=item['description'],
            position=position,
        )
        destination.services = item['services']
        destination.highlights = item['highlights']
        db.session.add(destination)


def seed_database(include_content=True):
    _seed_admin()
    if include_content:
        _seed_services()
        _seed_destinations()
    db.session.commit()
