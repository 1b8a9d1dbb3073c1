import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta
from functools import wraps
from typing import Optional

from flask import current_app, g, jsonify, request, session
from flask_login import LoginManager, current_user
from werkzeug.security import check_password_hash, generate_password_hash

from .models import Account, AdminSession, Profile, db
from .rbac import has_permission
from .utils import get_request_ip, get_user_agent, utc_now_naive

SESSION_TOKEN_KEY = '_admin_token'
CSRF_TOKEN_KEY = '_csrf_token'
CSRF_HEADER = 'X-CSRF-Token'
UNSAFE_METHODS = ('POST', 'PUT', 'PATCH', 'DELETE')
AUTH_DUMMY_HASH = generate_password_hash('sewa-concierge::dummy-auth-check')

login_manager = LoginManager()
login_manager.session_protection = None


@dataclass(frozen=True)
class ActorContext:
    user_id: int
    email: Optional[str]
    role: str


@dataclass(frozen=True)
class GuardResult:
    ok: bool
    context: Optional[ActorContext] = None
    error: Optional[str] = None

    @property
    def status(self):
        if self.ok:
            return 200
        return 403 if self.error == 'Forbidden' else 401


def hash_token(token):
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def _credential_from_request():
    header = (request.headers.get('Authorization') or '').strip()
    if header[:7].lower() == 'bearer ':
        return header[7:].strip(), 'bearer'
    token = session.get(SESSION_TOKEN_KEY)
    if token:
        return token, 'cookie'
    return None, None


def _csrf_ok():
    expected = session.get(CSRF_TOKEN_KEY)
    provided = request.headers.get(CSRF_HEADER)
    return bool(expected and provided and secrets.compare_digest(expected, provided))


@login_manager.request_loader
def load_account_from_request(req):
    token, source = _credential_from_request()
    if not token:
        return None
    # Cookie credentials are ambient; writes must echo the CSRF token issued at login.
    if source == 'cookie' and req.method in UNSAFE_METHODS and not _csrf_ok():
        return None
    admin_session = AdminSession.query.filter_by(token_hash=hash_token(token)).first()
    if admin_session is None or admin_session.expires_at <= utc_now_naive():
        return None
    account = admin_session.account
    if account is None or not account.is_active:
        return None
    g.admin_session_id = admin_session.id
    return account


def get_actor_context():
    """Resolve the caller to an :class:`ActorContext`, or ``None`` when unauthenticated."""
    if not current_user or not current_user.is_authenticated:
        return None
    profile = db.session.get(Profile, current_user.id)
    if profile is None:
        return None
    return ActorContext(user_id=current_user.id, email=profile.email or current_user.email, role=profile.role_key)


def require_permission(permission):
    context = get_actor_context()
    if context is None:
        return GuardResult(ok=False, error='Unauthorized')
    if not has_permission(context.role, permission):
        return GuardResult(ok=False, context=context, error='Forbidden')
    return GuardResult(ok=True, context=context)


def permission_required(permission):
    """Guard a view; the resolved context is passed as the ``actor`` keyword argument."""

    def decorator(view):
        @wraps(view)
        def wrapped(*args, **kwargs):
            guard = require_permission(permission)
            if not guard.ok:
                return jsonify({'error': guard.error}), guard.status
            return view(*args, actor=guard.context, **kwargs)

        return wrapped

    return decorator


def authenticate(email, password):
    account = Account.query.filter_by(email=(email or '').strip().lower()).first()
    if account is None:
        # Keep response timing closer for unknown emails.
        check_password_hash(AUTH_DUMMY_HASH, password or '')
        return None
    if not account.check_password(password or '') or not account.is_active:
        return None
    return account


def start_admin_session(account):
    now = utc_now_naive()
    ttl = int(current_app.config.get('ADMIN_SESSION_TTL_SECONDS', 8 * 3600))
    AdminSession.query.filter(
        AdminSession.account_id == account.id,
        AdminSession.expires_at <= now,
    ).delete(synchronize_session=False)

    token = secrets.token_urlsafe(32)
    csrf_token = secrets.token_urlsafe(32)
    db.session.add(AdminSession(
        account_id=account.id,
        token_hash=hash_token(token),
        expires_at=now + timedelta(seconds=ttl),
        ip_address=get_request_ip(),
        user_agent=get_user_agent(),
    ))
    account.last_login_at = now
    db.session.commit()

    session.clear()
    session[SESSION_TOKEN_KEY] = token
    session[CSRF_TOKEN_KEY] = csrf_token
    return token, csrf_token


def end_admin_session():
    admin_session_id = getattr(g, 'admin_session_id', None)
    if admin_session_id is not None:
        admin_session = db.session.get(AdminSession, admin_session_id)
        if admin_session is not None:
            db.session.delete(admin_session)
            db.session.commit()
    session.clear()
