from flask import current_app, has_request_context

from .models import AuditLog, db
from .utils import clean_text, get_request_ip, get_user_agent

AUDIT_ACTIONS = frozenset({
    'content.create',
    'content.update',
    'content.delete',
    'user.create',
    'user.role.update',
    'theme.update',
    'license.issue',
    'auth.login',
    'auth.logout',
})


def _request_origin():
    if not has_request_context():
        return None, None
    ip = get_request_ip()
    return (None if ip == 'unknown' else ip), get_user_agent()


def _persist_entry(actor, action, resource, metadata):
    ip_address, user_agent = _request_origin()
    entry = AuditLog(
        actor_id=getattr(actor, 'user_id', None),
        actor_email=getattr(actor, 'email', None),
        action=action,
        resource=clean_text(resource, 60),
        ip_address=ip_address,
        user_agent=user_agent,
    )
    entry.details = metadata or {}
    db.session.add(entry)
    db.session.commit()
    return entry


def log_audit(actor, action, resource, metadata=None):
    if action not in AUDIT_ACTIONS:
        raise ValueError(f'Unknown audit action: {action}')
    try:
        return _persist_entry(actor, action, resource, metadata)
    except Exception:
        db.session.rollback()
        current_app.logger.exception('Failed to write audit entry (action=%s resource=%s).', action, resource)
        return None


def list_audit_logs(limit=None):
    limit = limit or current_app.config.get('AUDIT_LOG_LIMIT', 200)
    return (
        AuditLog.query
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(limit)
        .all()
    )
