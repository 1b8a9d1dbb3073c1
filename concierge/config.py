import os
import tempfile
from urllib.parse import urlparse

basedir = os.path.abspath(os.path.dirname(__file__))


def _is_managed_runtime():
    return bool(
        os.environ.get('RAILWAY_ENVIRONMENT')
        or os.environ.get('RENDER')
        or os.environ.get('VERCEL')
        or os.environ.get('FLY_APP_NAME')
    )


def _is_production_runtime():
    flask_env = (os.environ.get('FLASK_ENV') or '').strip().lower()
    app_env = (os.environ.get('APP_ENV') or '').strip().lower()
    return flask_env == 'production' or app_env == 'production'


def _as_bool(value, default=False):
    if value is None:
        return default
    return str(value).strip().lower() in {'1', 'true', 'yes', 'on'}


def _as_int(value, default):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_float(value, default):
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _pem_from_env(name):
    # Keys are usually injected as single-line env values with escaped newlines.
    raw = os.environ.get(name) or ''
    return raw.replace('\\n', '\n').strip()


def _database_url():
    raw = (os.environ.get('DATABASE_URL') or '').strip()
    if raw.startswith('postgres://'):
        raw = raw.replace('postgres://', 'postgresql://', 1)
    if raw:
        return raw
    return 'sqlite:///' + os.path.join(basedir, 'concierge.db')


def _database_engine_options(database_url):
    if database_url.startswith('sqlite'):
        return {}
    options = {
        'pool_pre_ping': True,
        'pool_recycle': 300,
    }
    parsed = urlparse(database_url)
    if parsed.scheme.startswith('postgresql'):
        connect_timeout_seconds = max(1, _as_int(os.environ.get('DB_CONNECT_TIMEOUT_SECONDS'), 5))
        statement_timeout_ms = max(1000, _as_int(os.environ.get('DB_STATEMENT_TIMEOUT_MS'), 8000))
        options['connect_args'] = {
            'connect_timeout': connect_timeout_seconds,
            'options': f'-c statement_timeout={statement_timeout_ms}',
        }
    return options


class Config:
    SITE_NAME = (os.environ.get('SITE_NAME') or 'SEWA Hospitality').strip()
    SECRET_KEY = os.environ.get('SECRET_KEY') or ''
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_ENGINE_OPTIONS = _database_engine_options(SQLALCHEMY_DATABASE_URI)
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    UPLOAD_FOLDER = (os.environ.get('UPLOAD_FOLDER') or '').strip() or os.path.join(tempfile.gettempdir(), 'concierge-uploads')
    MEDIA_BUCKET = (os.environ.get('MEDIA_BUCKET') or 'media').strip()
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024
    MAX_UPLOAD_IMAGE_PIXELS = _as_int(os.environ.get('MAX_UPLOAD_IMAGE_PIXELS'), 40_000_000)
    ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp', 'pdf'}
    ALLOWED_UPLOAD_MIME_TYPES = {
        'image/png',
        'image/jpeg',
        'image/gif',
        'image/webp',
        'application/pdf',
    }

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    SESSION_COOKIE_SECURE = _as_bool(os.environ.get('SESSION_COOKIE_SECURE'), _is_production_runtime())
    TRUST_PROXY_HEADERS = _as_bool(os.environ.get('TRUST_PROXY_HEADERS'), _is_managed_runtime())
    APP_BASE_URL = (os.environ.get('APP_BASE_URL') or '').rstrip('/')
    HSTS_ENABLED = _as_bool(os.environ.get('HSTS_ENABLED'), True)
    HSTS_MAX_AGE = _as_int(os.environ.get('HSTS_MAX_AGE'), 31536000)
    HSTS_INCLUDE_SUBDOMAINS = _as_bool(os.environ.get('HSTS_INCLUDE_SUBDOMAINS'), True)
    HSTS_PRELOAD = _as_bool(os.environ.get('HSTS_PRELOAD'), False)

    ADMIN_EMAIL = (os.environ.get('ADMIN_EMAIL') or 'admin@sewa-hospitality.com').strip().lower()
    ADMIN_PASSWORD = os.environ.get('ADMIN_PASSWORD') or ''
    ADMIN_SESSION_TTL_SECONDS = max(60, _as_int(os.environ.get('ADMIN_SESSION_TTL_SECONDS'), 8 * 3600))
    ADMIN_LOGIN_LIMIT = _as_int(os.environ.get('ADMIN_LOGIN_LIMIT'), 5)
    ADMIN_LOGIN_WINDOW_SECONDS = _as_int(os.environ.get('ADMIN_LOGIN_WINDOW_SECONDS'), 300)

    CONTACT_FORM_LIMIT = _as_int(os.environ.get('CONTACT_FORM_LIMIT'), 12)
    CONTACT_FORM_WINDOW_SECONDS = _as_int(os.environ.get('CONTACT_FORM_WINDOW_SECONDS'), 3600)
    CHAT_SESSION_LIMIT = _as_int(os.environ.get('CHAT_SESSION_LIMIT'), 20)
    CHAT_SESSION_WINDOW_SECONDS = _as_int(os.environ.get('CHAT_SESSION_WINDOW_SECONDS'), 3600)
    CHAT_MESSAGE_LIMIT = _as_int(os.environ.get('CHAT_MESSAGE_LIMIT'), 120)
    CHAT_MESSAGE_WINDOW_SECONDS = _as_int(os.environ.get('CHAT_MESSAGE_WINDOW_SECONDS'), 3600)
    CHAT_STREAM_POLL_SECONDS = max(0.1, _as_float(os.environ.get('CHAT_STREAM_POLL_SECONDS'), 1.5))
    CHAT_STREAM_MAX_SECONDS = max(1, _as_int(os.environ.get('CHAT_STREAM_MAX_SECONDS'), 55))
    CHAT_STREAM_HEARTBEAT_SECONDS = max(1, _as_int(os.environ.get('CHAT_STREAM_HEARTBEAT_SECONDS'), 15))

    AUDIT_LOG_LIMIT = max(1, _as_int(os.environ.get('AUDIT_LOG_LIMIT'), 200))
    REQUESTS_DEFAULT_LIMIT = 50
    REQUESTS_MAX_LIMIT = 200
    BACKUP_FILENAME_PREFIX = 'sewa-backup'
    SEED_DEFAULT_CONTENT = _as_bool(os.environ.get('SEED_DEFAULT_CONTENT'), True)

    DEFAULT_TENANT_ID = (os.environ.get('DEFAULT_TENANT_ID') or 'default').strip()
    LICENSE_PUBLIC_KEY = _pem_from_env('LICENSE_PUBLIC_KEY')
    LICENSE_PRIVATE_KEY = _pem_from_env('LICENSE_PRIVATE_KEY')
    LICENSE_KEY = (os.environ.get('LICENSE_KEY') or '').strip()

    EXTENSION_FLAGS = os.environ.get('EXTENSION_FLAGS') or ''
    STRIPE_SECRET_KEY = (os.environ.get('STRIPE_SECRET_KEY') or '').strip()
    STRIPE_MODE = (os.environ.get('STRIPE_MODE') or 'test').strip().lower()
    RAZORPAY_KEY_ID = (os.environ.get('RAZORPAY_KEY_ID') or '').strip()
    RAZORPAY_MODE = (os.environ.get('RAZORPAY_MODE') or 'test').strip().lower()

    SMTP_HOST = (os.environ.get('SMTP_HOST') or '').strip()
    SMTP_PORT = _as_int(os.environ.get('SMTP_PORT'), 587)
    SMTP_USERNAME = (os.environ.get('SMTP_USERNAME') or '').strip()
    SMTP_PASSWORD = os.environ.get('SMTP_PASSWORD') or ''
    SMTP_USE_TLS = _as_bool(os.environ.get('SMTP_USE_TLS'), True)
    SMTP_USE_SSL = _as_bool(os.environ.get('SMTP_USE_SSL'), False)
    MAIL_FROM = (os.environ.get('MAIL_FROM') or 'concierge@sewa-hospitality.com').strip()
    CONCIERGE_NOTIFICATION_EMAILS = os.environ.get('CONCIERGE_NOTIFICATION_EMAILS') or ''
    SEND_CONTACT_CONFIRMATION = _as_bool(os.environ.get('SEND_CONTACT_CONFIRMATION'), True)
    MAILGUN_API_KEY = (os.environ.get('MAILGUN_API_KEY') or '').strip()
    MAILGUN_DOMAIN = (os.environ.get('MAILGUN_DOMAIN') or '').strip()

    SENTRY_DSN = (os.environ.get('SENTRY_DSN') or '').strip()
    SENTRY_ENVIRONMENT = (os.environ.get('SENTRY_ENVIRONMENT') or '').strip()
    SENTRY_TRACES_SAMPLE_RATE = _as_float(os.environ.get('SENTRY_TRACES_SAMPLE_RATE'), 0.0)
    LOG_JSON = _as_bool(os.environ.get('LOG_JSON'), True)
    LOG_LEVEL = (os.environ.get('LOG_LEVEL') or 'INFO').strip().upper()
