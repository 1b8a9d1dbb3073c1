from flask_login import UserMixin
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash, generate_password_hash

from .errors import ValidationFailure
from .rbac import ROLE_DEFAULT, normalize_role
from .utils import isoformat, json_dumps, safe_json_loads, utc_now_naive

db = SQLAlchemy()

PAGE_STATUS_DRAFT = 'draft'
PAGE_STATUS_PUBLISHED = 'published'
PAGE_STATUSES = (PAGE_STATUS_DRAFT, PAGE_STATUS_PUBLISHED)

BANNER_VARIANTS = ('primary', 'secondary', 'neutral')

REQUEST_STATUS_NEW = 'new'
REQUEST_STATUS_CONTACTED = 'contacted'
REQUEST_STATUSES = (REQUEST_STATUS_NEW, REQUEST_STATUS_CONTACTED, 'in_progress', 'completed', 'spam')

CHAT_STATUS_ACTIVE = 'active'
CHAT_STATUS_WAITING = 'waiting'
CHAT_STATUS_CLOSED = 'closed'
CHAT_STATUSES = (CHAT_STATUS_ACTIVE, CHAT_STATUS_WAITING, CHAT_STATUS_CLOSED)

SENDER_VISITOR = 'visitor'
SENDER_ADMIN = 'admin'
SENDER_SYSTEM = 'system'
SENDER_TYPES = (SENDER_VISITOR, SENDER_ADMIN, SENDER_SYSTEM)


def _json_property(column_name, fallback_factory):
    def getter(self):
        return safe_json_loads(getattr(self, column_name), fallback_factory())

    def setter(self, value):
        setattr(self, column_name, json_dumps(value if value is not None else fallback_factory()))

    return property(getter, setter)


class Account(UserMixin, db.Model):
    """Authentication identity. Roles live on :class:`Profile`."""

    __tablename__ = 'accounts'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(254), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    last_login_at = db.Column(db.DateTime)

    @property
    def is_active(self):
        return bool(self.active)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)


class Profile(db.Model):
    __tablename__ = 'profiles'

    id = db.Column(db.Integer, db.ForeignKey('accounts.id', ondelete='CASCADE'), primary_key=True)
    email = db.Column(db.String(254), nullable=False)
    full_name = db.Column(db.String(200))
    role = db.Column(db.String(20), nullable=False, default=ROLE_DEFAULT, index=True)
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)

    account = db.relationship('Account', backref=db.backref('profile', uselist=False, lazy=True))

    @property
    def role_key(self):
        return normalize_role(self.role)


class AdminSession(db.Model):
    __tablename__ = 'admin_sessions'

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(db.Integer, db.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False, index=True)
    token_hash = db.Column(db.String(64), unique=True, nullable=False, index=True)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)
    ip_address = db.Column(db.String(64))
    user_agent = db.Column(db.String(320))
    created_at = db.Column(db.DateTime, default=utc_now_naive)

    account = db.relationship('Account', backref=db.backref('sessions', lazy=True, cascade='all, delete-orphan'))


class AuditLog(db.Model):
    """Append-only record of administrative actions."""

    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    actor_id = db.Column(db.Integer, index=True)
    actor_email = db.Column(db.String(254))
    action = db.Column(db.String(50), nullable=False, index=True)
    resource = db.Column(db.String(60), nullable=False, index=True)
    metadata_json = db.Column('metadata', db.Text, nullable=False, default='{}')
    ip_address = db.Column(db.String(64))
    user_agent = db.Column(db.String(320))
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)

    details = _json_property('metadata_json', dict)

    __table_args__ = (
        db.Index('ix_audit_logs_resource_created', 'resource', 'created_at'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'actor_id': self.actor_id,
            'actor_email': self.actor_email,
            'action': self.action,
            'resource': self.resource,
            'metadata': self.details,
            'ip_address': self.ip_address,
            'user_agent': self.user_agent,
            'created_at': isoformat(self.created_at),
        }


@event.listens_for(AuditLog, 'before_update')
def _reject_audit_update(mapper, connection, target):
    raise ValueError('Audit log entries are immutable.')


@event.listens_for(AuditLog, 'before_delete')
def _reject_audit_delete(mapper, connection, target):
    raise ValueError('Audit log entries cannot be deleted.')


class Service(db.Model):
    __tablename__ = 'content_services'

    id = db.Column(db.Integer, primary_key=True)
    slug = db.Column(db.String(120), unique=True, nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    items_json = db.Column(db.Text, nullable=False, default='[]')
    position = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)

    items = _json_property('items_json', list)


class Destination(db.Model):
    __tablename__ = 'content_destinations'

    id = db.Column(db.Integer, primary_key=True)
    slug = db.Column(db.String(120), unique=True, nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    headline = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    services_json = db.Column(db.Text, nullable=False, default='[]')
    highlights_json = db.Column(db.Text, nullable=False, default='[]')
    image_url = db.Column(db.String(500))
    position = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)

    services = _json_property('services_json', list)
    highlights = _json_property('highlights_json', list)


class Banner(db.Model):
    __tablename__ = 'content_banners'

    id = db.Column(db.Integer, primary_key=True)
    slug = db.Column(db.String(120), unique=True, nullable=False, index=True)
    message = db.Column(db.String(200), nullable=False)
    cta_label = db.Column(db.String(80))
    cta_url = db.Column(db.String(200))
    variant = db.Column(db.String(20), nullable=False, default='primary')
    active = db.Column(db.Boolean, nullable=False, default=True)
    position = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)


class Section(db.Model):
    __tablename__ = 'content_sections'

    id = db.Column(db.Integer, primary_key=True)
    slug = db.Column(db.String(120), unique=True, nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    body = db.Column(db.Text, nullable=False)
    image_url = db.Column(db.String(500))
    cta_label = db.Column(db.String(80))
    cta_url = db.Column(db.String(200))
    active = db.Column(db.Boolean, nullable=False, default=True)
    position = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)


class Page(db.Model):
    __tablename__ = 'pages'

    id = db.Column(db.Integer, primary_key=True)
    slug = db.Column(db.String(120), unique=True, nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    status = db.Column(db.String(20), nullable=False, default=PAGE_STATUS_DRAFT, index=True)
    blocks_json = db.Column(db.Text, nullable=False, default='[]')
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive, index=True)

    blocks = _json_property('blocks_json', list)


class PageVersion(db.Model):
    __tablename__ = 'page_versions'

    id = db.Column(db.Integer, primary_key=True)
    page_id = db.Column(db.Integer, db.ForeignKey('pages.id', ondelete='CASCADE'), nullable=False, index=True)
    version_number = db.Column(db.Integer, nullable=False)
    snapshot_json = db.Column(db.Text, nullable=False, default='{}')
    created_by_id = db.Column(db.Integer, db.ForeignKey('accounts.id'), index=True)
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)

    page = db.relationship(
        'Page',
        backref=db.backref('versions', lazy=True, cascade='all, delete-orphan', order_by='PageVersion.version_number.desc()'),
    )
    snapshot = _json_property('snapshot_json', dict)

    __table_args__ = (
        db.UniqueConstraint('page_id', 'version_number', name='uq_page_version_page_number'),
    )


class Partner(db.Model):
    __tablename__ = 'partners'

    id = db.Column(db.Integer, primary_key=True)
    slug = db.Column(db.String(120), unique=True, nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    category = db.Column(db.String(100))
    description = db.Column(db.Text)
    logo_url = db.Column(db.String(500))
    website_url = db.Column(db.String(500))
    active = db.Column(db.Boolean, nullable=False, default=True)
    position = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)


class Testimonial(db.Model):
    __tablename__ = 'testimonials'

    id = db.Column(db.Integer, primary_key=True)
    slug = db.Column(db.String(120), unique=True, nullable=False, index=True)
    client_name = db.Column(db.String(200), nullable=False)
    client_title = db.Column(db.String(200))
    client_location = db.Column(db.String(200))
    content = db.Column(db.Text, nullable=False)
    rating = db.Column(db.Integer, nullable=False, default=5)
    active = db.Column(db.Boolean, nullable=False, default=True)
    position = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)


class TeamMember(db.Model):
    __tablename__ = 'team_members'

    id = db.Column(db.Integer, primary_key=True)
    slug = db.Column(db.String(120), unique=True, nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    bio = db.Column(db.Text)
    image_url = db.Column(db.String(500))
    linkedin_url = db.Column(db.String(500))
    active = db.Column(db.Boolean, nullable=False, default=True)
    position = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)


class ThemeConfig(db.Model):
    __tablename__ = 'theme_configs'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(80), unique=True, nullable=False, index=True)
    tokens_json = db.Column(db.Text, nullable=False, default='{}')
    updated_by_id = db.Column(db.Integer, db.ForeignKey('accounts.id'))
    created_at = db.Column(db.DateTime, default=utc_now_naive)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)

    tokens = _json_property('tokens_json', dict)


class LicenseRecord(db.Model):
    __tablename__ = 'licenses'

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.String(80), unique=True, nullable=False, index=True)
    license_key = db.Column(db.Text, nullable=False)
    issued_by_id = db.Column(db.Integer, db.ForeignKey('accounts.id'))
    issued_at = db.Column(db.DateTime, default=utc_now_naive)


class ConciergeRequest(db.Model):
    __tablename__ = 'concierge_requests'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(254), nullable=False, index=True)
    phone = db.Column(db.String(50))
    nationality = db.Column(db.String(100))
    service_interest = db.Column(db.String(200))
    preferred_language = db.Column(db.String(50))
    message = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=REQUEST_STATUS_NEW, index=True)
    ip_address = db.Column(db.String(64))
    user_agent = db.Column(db.String(320))
    referrer = db.Column(db.String(500))
    utm_source = db.Column(db.String(120))
    utm_medium = db.Column(db.String(120))
    utm_campaign = db.Column(db.String(120))
    admin_notes = db.Column(db.Text)
    replied_at = db.Column(db.DateTime)
    submitted_at = db.Column(db.DateTime, default=utc_now_naive, index=True)


class ChatSession(db.Model):
    __tablename__ = 'chat_sessions'

    id = db.Column(db.Integer, primary_key=True)
    visitor_id = db.Column(db.String(120), nullable=False, index=True)
    visitor_name = db.Column(db.String(200))
    visitor_email = db.Column(db.String(254))
    visitor_phone = db.Column(db.String(50))
    page_url = db.Column(db.String(500))
    ip_address = db.Column(db.String(64))
    user_agent = db.Column(db.String(320))
    status = db.Column(db.String(20), nullable=False, default=CHAT_STATUS_ACTIVE, index=True)
    started_at = db.Column(db.DateTime, default=utc_now_naive, index=True)
    ended_at = db.Column(db.DateTime)
    last_message_at = db.Column(db.DateTime, default=utc_now_naive, index=True)

    messages = db.relationship(
        'ChatMessage',
        backref='session',
        lazy=True,
        cascade='all, delete-orphan',
        order_by='ChatMessage.id',
    )

    __table_args__ = (
        db.Index('ix_chat_sessions_visitor_status', 'visitor_id', 'status'),
    )


class ChatMessage(db.Model):
    __tablename__ = 'chat_messages'

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('chat_sessions.id', ondelete='CASCADE'), nullable=False, index=True)
    sender_type = db.Column(db.String(20), nullable=False)
    sender_name = db.Column(db.String(200))
    message = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, nullable=False, default=False, index=True)
    created_at = db.Column(db.DateTime, default=utc_now_naive, index=True)


class Media(db.Model):
    __tablename__ = 'media'

    id = db.Column(db.Integer, primary_key=True)
    filename = db.Column(db.String(300), nullable=False)
    file_path = db.Column(db.String(500), nullable=False)
    file_size = db.Column(db.Integer)
    mime_type = db.Column(db.String(100))
    alt_text = db.Column(db.String(300))
    created_at = db.Column(db.DateTime, default=utc_now_naive)


class AuthRateLimitBucket(db.Model):
    __tablename__ = 'rate_limit_buckets'

    id = db.Column(db.Integer, primary_key=True)
    scope = db.Column(db.String(80), nullable=False, index=True)
    ip = db.Column(db.String(64), nullable=False, index=True)
    count = db.Column(db.Integer, nullable=False, default=0)
    reset_at = db.Column(db.DateTime, nullable=False)
    updated_at = db.Column(db.DateTime, default=utc_now_naive, onupdate=utc_now_naive)

    __table_args__ = (
        db.UniqueConstraint('scope', 'ip', name='uq_rate_limit_scope_ip'),
    )


def commit_changes():
    """Commit the session, mapping unique-constraint violations to a validation error."""
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationFailure('Unable to save due to duplicate data.')
