import json

from flask import Blueprint, Response, current_app, jsonify, request
from sqlalchemy import func

from ..audit import list_audit_logs, log_audit
from ..auth import (
    ActorContext,
    authenticate,
    end_admin_session,
    get_actor_context,
    permission_required,
    start_admin_session,
)
from ..backups import backup_filename, build_backup
from ..chat import (
    close_session,
    event_stream_response,
    get_session,
    list_messages,
    list_sessions,
    mark_messages_read,
    post_message,
    serialize_message,
    serialize_session,
)
from ..content import (
    RESOURCES,
    create_entry,
    delete_entry,
    get_resource,
    list_collection,
    list_page_versions,
    update_entry,
)
from ..errors import AuthenticationFailure, NotFound, RateLimited, ValidationFailure
from ..extensions import get_extension_registry, get_payment_gateway_configs, parse_extension_flags
from ..licensing import evaluate_license, license_key_for_tenant, sign_license, store_license
from ..models import (
    CHAT_STATUS_CLOSED,
    CHAT_STATUSES,
    REQUEST_STATUS_CONTACTED,
    REQUEST_STATUS_NEW,
    SENDER_ADMIN,
    SENDER_VISITOR,
    Account,
    AdminSession,
    ChatMessage,
    ChatSession,
    ConciergeRequest,
    Profile,
    commit_changes,
    db,
)
from ..ratelimit import ADMIN_LOGIN_SCOPE, clear_attempts, is_rate_limited, register_attempt
from ..rbac import ROLE_ADMIN, normalize_role, permissions_for
from ..schemas import (
    ChatReplyPayload,
    LicenseIssuePayload,
    LoginPayload,
    RequestUpdatePayload,
    RoleUpdatePayload,
    ThemeUpdatePayload,
    UserCreatePayload,
    validate_payload,
)
from ..themes import get_theme_tokens, resolve_tenant_id, save_theme_tokens
from ..uploads import delete_media, list_media, save_upload
from ..utils import isoformat, is_strong_password, parse_int, utc_now_naive

admin_bp = Blueprint('admin', __name__)


def _json_body():
    return request.get_json(silent=True)


def serialize_profile(profile):
    account = profile.account
    return {
        'id': profile.id,
        'email': profile.email,
        'fullName': profile.full_name,
        'role': profile.role_key,
        'active': bool(account.is_active) if account is not None else False,
        'lastLoginAt': isoformat(account.last_login_at) if account is not None else None,
        'createdAt': isoformat(profile.created_at),
    }


def _list_users():
    profiles = Profile.query.order_by(Profile.created_at.asc(), Profile.id.asc()).all()
    return [serialize_profile(profile) for profile in profiles]


def serialize_request(item):
    return {
        'id': item.id,
        'name': item.name,
        'email': item.email,
        'phone': item.phone,
        'nationality': item.nationality,
        'serviceInterest': item.service_interest,
        'preferredLanguage': item.preferred_language,
        'message': item.message,
        'status': item.status,
        'referrer': item.referrer,
        'utmSource': item.utm_source,
        'utmMedium': item.utm_medium,
        'utmCampaign': item.utm_campaign,
        'adminNotes': item.admin_notes,
        'repliedAt': isoformat(item.replied_at),
        'submittedAt': isoformat(item.submitted_at),
    }


# Session
@admin_bp.post('/login')
def login():
    limit = int(current_app.config.get('ADMIN_LOGIN_LIMIT', 5))
    window = int(current_app.config.get('ADMIN_LOGIN_WINDOW_SECONDS', 300))
    limited, seconds = is_rate_limited(ADMIN_LOGIN_SCOPE, limit, window)
    if limited:
        raise RateLimited(f'Too many login attempts. Please wait {seconds} seconds and try again.', retry_after=seconds)

    payload = validate_payload(LoginPayload, _json_body())
    account = authenticate(payload.email, payload.password)
    if account is None:
        register_attempt(ADMIN_LOGIN_SCOPE, window)
        current_app.logger.warning('Failed admin login attempt.')
        raise AuthenticationFailure('Invalid email or password.')

    clear_attempts(ADMIN_LOGIN_SCOPE)
    token, csrf_token = start_admin_session(account)
    profile = db.session.get(Profile, account.id)
    actor = ActorContext(
        user_id=account.id,
        email=account.email,
        role=profile.role_key if profile is not None else normalize_role(None),
    )
    log_audit(actor, 'auth.login', AdminSession.__tablename__, {'email': account.email})
    return jsonify({
        'token': token,
        'csrfToken': csrf_token,
        'expiresIn': int(current_app.config.get('ADMIN_SESSION_TTL_SECONDS', 8 * 3600)),
        'user': serialize_profile(profile) if profile is not None else {'id': account.id, 'email': account.email},
        'permissions': sorted(permissions_for(actor.role)),
    })


@admin_bp.post('/logout')
def logout():
    actor = get_actor_context()
    if actor is None:
        raise AuthenticationFailure()
    end_admin_session()
    log_audit(actor, 'auth.logout', AdminSession.__tablename__, {'email': actor.email})
    return jsonify({'success': True})


@admin_bp.get('/me')
def me():
    actor = get_actor_context()
    if actor is None:
        raise AuthenticationFailure()
    profile = db.session.get(Profile, actor.user_id)
    return jsonify({
        'user': serialize_profile(profile),
        'permissions': sorted(permissions_for(actor.role)),
    })


@admin_bp.get('/dashboard')
@permission_required('content:read')
def dashboard(actor):
    counts = {key: resource.model.query.count() for key, resource in RESOURCES.items()}
    unread = (
        db.session.query(func.count(ChatMessage.id))
        .filter(ChatMessage.sender_type == SENDER_VISITOR, ChatMessage.is_read.is_(False))
        .scalar()
    )
    return jsonify({
        'content': counts,
        'newRequests': ConciergeRequest.query.filter_by(status=REQUEST_STATUS_NEW).count(),
        'activeChats': ChatSession.query.filter(ChatSession.status != CHAT_STATUS_CLOSED).count(),
        'unreadMessages': unread or 0,
    })


# Audit, backups, license
@admin_bp.get('/audit-logs')
@permission_required('audit:read')
def audit_logs(actor):
    limit = parse_int(request.args.get('limit'), default=None, min_value=1, max_value=current_app.config.get('AUDIT_LOG_LIMIT', 200))
    return jsonify({'logs': [entry.to_dict() for entry in list_audit_logs(limit)]})


@admin_bp.get('/backups')
@permission_required('backups:read')
def backups(actor):
    backup = build_backup()
    filename = backup_filename()
    current_app.logger.info('Backup exported by %s.', actor.email)
    return Response(
        json.dumps(backup, ensure_ascii=False, indent=2),
        mimetype='application/json',
        headers={'Content-Disposition': f'attachment; filename="{filename}"'},
    )


@admin_bp.get('/license')
@permission_required('license:read')
def license_status(actor):
    tenant_id = resolve_tenant_id(request.args.get('tenantId'))
    license_key = license_key_for_tenant(tenant_id, current_app.config.get('LICENSE_KEY') or '')
    status = evaluate_license(license_key, current_app.config.get('LICENSE_PUBLIC_KEY'))
    return jsonify({'tenantId': tenant_id, **status.to_dict()})


@admin_bp.post('/license')
@permission_required('license:write')
def license_issue(actor):
    payload = validate_payload(LicenseIssuePayload, _json_body())
    private_key = current_app.config.get('LICENSE_PRIVATE_KEY')
    if not private_key:
        raise ValidationFailure('License signing key is not configured.')
    tenant_id = resolve_tenant_id(payload.tenant_id)
    try:
        license_key = sign_license(
            private_key,
            tenant_id,
            payload.plan,
            features=payload.features,
            expires_at=payload.expires_at,
        )
    except ValueError:
        current_app.logger.exception('License signing failed.')
        raise ValidationFailure('License signing key is invalid.')
    store_license(tenant_id, license_key, actor, plan=payload.plan)
    status = evaluate_license(license_key, current_app.config.get('LICENSE_PUBLIC_KEY'))
    return jsonify({'tenantId': tenant_id, 'licenseKey': license_key, **status.to_dict()})


# Themes
@admin_bp.get('/themes')
@permission_required('theme:read')
def themes(actor):
    tenant_id = resolve_tenant_id(request.args.get('tenantId'))
    return jsonify({'tenantId': tenant_id, 'tokens': get_theme_tokens(tenant_id)})


@admin_bp.put('/themes')
@permission_required('theme:write')
def themes_update(actor):
    payload = validate_payload(ThemeUpdatePayload, _json_body())
    document = save_theme_tokens(resolve_tenant_id(payload.tenant_id), payload.tokens.to_document(), actor)
    return jsonify(document)


# Users
@admin_bp.get('/users')
@permission_required('users:read')
def users(actor):
    return jsonify({'users': _list_users()})


@admin_bp.post('/users')
@permission_required('users:write')
def user_create(actor):
    payload = validate_payload(UserCreatePayload, _json_body())
    if not is_strong_password(payload.password):
        raise ValidationFailure(
            'password: Password must be at least 10 characters and include upper, lower, number, and symbol.'
        )
    if Account.query.filter_by(email=payload.email).first() is not None:
        raise ValidationFailure('email: Email is already registered.')

    account = Account(email=payload.email)
    account.set_password(payload.password)
    db.session.add(account)
    db.session.flush()
    db.session.add(Profile(id=account.id, email=payload.email, full_name=payload.full_name, role=payload.role))
    commit_changes()
    log_audit(actor, 'user.create', Profile.__tablename__, {'id': account.id, 'role': payload.role})
    return jsonify({'users': _list_users()})


@admin_bp.put('/users/<int:user_id>/role')
@permission_required('users:write')
def user_role_update(user_id, actor):
    payload = validate_payload(RoleUpdatePayload, _json_body())
    profile = db.session.get(Profile, user_id)
    if profile is None:
        raise NotFound()
    if profile.role_key == ROLE_ADMIN and payload.role != ROLE_ADMIN:
        admin_count = Profile.query.filter(Profile.role == ROLE_ADMIN).count()
        if admin_count <= 1:
            raise ValidationFailure('Cannot remove the last admin.')
    profile.role = payload.role
    commit_changes()
    log_audit(actor, 'user.role.update', Profile.__tablename__, {'id': user_id, 'role': payload.role})
    return jsonify({'users': _list_users()})


# Media
@admin_bp.get('/media')
@permission_required('content:read')
def media(actor):
    return jsonify({'media': list_media()})


@admin_bp.post('/media')
@permission_required('content:write')
def media_upload(actor):
    save_upload(request.files.get('file'), actor, alt_text=request.form.get('altText'))
    return jsonify({'media': list_media()})


@admin_bp.delete('/media/<int:media_id>')
@permission_required('content:write')
def media_delete(media_id, actor):
    return jsonify({'media': delete_media(media_id, actor)})


# Extensions and payments
@admin_bp.get('/extensions')
@permission_required('extensions:read')
def extensions(actor):
    flags = parse_extension_flags(current_app.config.get('EXTENSION_FLAGS'))
    registry = get_extension_registry()
    for item in registry:
        item['enabled'] = True if item['id'] == 'core' else flags.get(item['id'], True)
    return jsonify({'extensions': registry, 'flags': flags})


@admin_bp.get('/payments')
@permission_required('payments:read')
def payments(actor):
    return jsonify({'gateways': get_payment_gateway_configs(current_app.config)})


# Leads
def _requests_page():
    config = current_app.config
    limit = parse_int(
        request.args.get('limit'),
        default=config.get('REQUESTS_DEFAULT_LIMIT', 50),
        min_value=1,
        max_value=config.get('REQUESTS_MAX_LIMIT', 200),
    )
    offset = parse_int(request.args.get('offset'), default=0, min_value=0)
    query = ConciergeRequest.query
    status = (request.args.get('status') or '').strip()
    if status:
        query = query.filter(ConciergeRequest.status == status)
    total = query.count()
    items = (
        query.order_by(ConciergeRequest.submitted_at.desc(), ConciergeRequest.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return {
        'requests': [serialize_request(item) for item in items],
        'total': total,
        'limit': limit,
        'offset': offset,
    }


@admin_bp.get('/concierge-requests')
@permission_required('requests:read')
def concierge_requests(actor):
    return jsonify(_requests_page())


@admin_bp.put('/concierge-requests/<int:request_id>')
@permission_required('content:write')
def concierge_request_update(request_id, actor):
    payload = validate_payload(RequestUpdatePayload, _json_body())
    item = db.session.get(ConciergeRequest, request_id)
    if item is None:
        raise NotFound()
    if payload.status is not None:
        item.status = payload.status
        if payload.status == REQUEST_STATUS_CONTACTED and item.replied_at is None:
            item.replied_at = utc_now_naive()
    if 'admin_notes' in payload.model_fields_set:
        item.admin_notes = payload.admin_notes
    commit_changes()
    log_audit(actor, 'content.update', ConciergeRequest.__tablename__, {'id': request_id, 'status': item.status})
    return jsonify(_requests_page())


@admin_bp.delete('/concierge-requests/<int:request_id>')
@permission_required('content:write')
def concierge_request_delete(request_id, actor):
    item = db.session.get(ConciergeRequest, request_id)
    if item is None:
        raise NotFound()
    db.session.delete(item)
    commit_changes()
    log_audit(actor, 'content.delete', ConciergeRequest.__tablename__, {'id': request_id})
    return jsonify(_requests_page())


# Chat
@admin_bp.get('/chat/sessions')
@permission_required('requests:read')
def chat_sessions(actor):
    status = (request.args.get('status') or '').strip() or None
    if status is not None and status not in CHAT_STATUSES:
        raise ValidationFailure('status: Unknown chat status')
    return jsonify({'sessions': list_sessions(status=status)})


@admin_bp.get('/chat/sessions/<int:session_id>/messages')
@permission_required('requests:read')
def chat_session_messages(session_id, actor):
    session = get_session(session_id)
    if (request.args.get('markRead') or '').strip().lower() in {'1', 'true', 'yes'}:
        mark_messages_read(session.id)
    since = parse_int(request.args.get('since'), default=0, min_value=0)
    messages = list_messages(session.id, since=since)
    return jsonify({
        'session': serialize_session(session),
        'messages': [serialize_message(message) for message in messages],
    })


@admin_bp.post('/chat/sessions/<int:session_id>/messages')
@permission_required('requests:read')
def chat_reply(session_id, actor):
    payload = validate_payload(ChatReplyPayload, _json_body())
    session = get_session(session_id)
    message = post_message(session, payload.message, SENDER_ADMIN, payload.sender_name or actor.email)
    return jsonify({'message': serialize_message(message)})


@admin_bp.post('/chat/sessions/<int:session_id>/close')
@permission_required('requests:read')
def chat_close(session_id, actor):
    session = close_session(get_session(session_id))
    return jsonify({'session': serialize_session(session)})


@admin_bp.get('/chat/sessions/<int:session_id>/stream')
@permission_required('requests:read')
def chat_stream(session_id, actor):
    get_session(session_id)
    return event_stream_response(session_id)


# Content collections
@admin_bp.get('/pages/<int:page_id>/versions')
@permission_required('content:read')
def page_versions(page_id, actor):
    return jsonify({'versions': list_page_versions(page_id)})


@admin_bp.get('/<resource_key>')
@permission_required('content:read')
def collection(resource_key, actor):
    resource = get_resource(resource_key)
    return jsonify({resource.key: list_collection(resource)})


@admin_bp.post('/<resource_key>')
@permission_required('content:write')
def collection_create(resource_key, actor):
    resource = get_resource(resource_key)
    return jsonify({resource.key: create_entry(resource, _json_body(), actor)})


@admin_bp.put('/<resource_key>/<int:entry_id>')
@permission_required('content:write')
def collection_update(resource_key, entry_id, actor):
    resource = get_resource(resource_key)
    return jsonify({resource.key: update_entry(resource, entry_id, _json_body(), actor)})


@admin_bp.delete('/<resource_key>/<int:entry_id>')
@permission_required('content:write')
def collection_delete(resource_key, entry_id, actor):
    resource = get_resource(resource_key)
    return jsonify({resource.key: delete_entry(resource, entry_id, actor)})
