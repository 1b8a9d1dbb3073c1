import os

from flask import Blueprint, abort, current_app, jsonify, request, send_from_directory

from ..chat import (
    event_stream_response,
    find_open_session,
    close_session,
    get_visitor_session,
    list_messages,
    post_message,
    serialize_message,
    serialize_session,
    start_or_resume_session,
)
from ..content import public_content
from ..errors import ValidationFailure
from ..models import SENDER_VISITOR, ConciergeRequest, db
from ..notifications import send_concierge_request_confirmation, send_concierge_request_notification
from ..ratelimit import CHAT_MESSAGE_SCOPE, CHAT_SESSION_SCOPE, CONTACT_FORM_SCOPE, enforce
from ..schemas import ChatMessagePayload, ChatSessionPayload, ContactPayload, validate_payload
from ..themes import get_theme_tokens, resolve_tenant_id
from ..uploads import IMAGE_EXTENSIONS, safe_upload_path
from ..utils import clean_text, get_request_ip, get_user_agent, parse_int, strip_html

main_bp = Blueprint('main', __name__)

VISITOR_ID_MIN_LENGTH = 8
VISITOR_ID_MAX_LENGTH = 120


def _visitor_id(value):
    visitor_id = (value or '').strip()
    if not VISITOR_ID_MIN_LENGTH <= len(visitor_id) <= VISITOR_ID_MAX_LENGTH:
        raise ValidationFailure('visitorId: Visitor id is required')
    return visitor_id


def _visitor_id_from_request():
    body = request.get_json(silent=True) if request.is_json else None
    value = request.args.get('visitorId')
    if not value and isinstance(body, dict):
        value = body.get('visitorId')
    return _visitor_id(value)


@main_bp.get('/api/content')
def content():
    return jsonify(public_content())


@main_bp.get('/api/theme')
def theme():
    tenant_id = resolve_tenant_id(request.args.get('tenantId'))
    return jsonify({'tenantId': tenant_id, 'tokens': get_theme_tokens(tenant_id)})


@main_bp.post('/api/contact')
def contact():
    enforce(CONTACT_FORM_SCOPE, 'CONTACT_FORM_LIMIT', 'CONTACT_FORM_WINDOW_SECONDS')
    payload = validate_payload(ContactPayload, request.get_json(silent=True))

    message = strip_html(payload.message, 5000)
    if len(message) < 2:
        raise ValidationFailure('message: Message is required')

    concierge_request = ConciergeRequest(
        name=strip_html(payload.name, 200),
        email=payload.email,
        phone=payload.phone,
        nationality=payload.nationality,
        service_interest=payload.service_interest,
        preferred_language=payload.preferred_language,
        message=message,
        ip_address=get_request_ip(),
        user_agent=get_user_agent(),
        referrer=payload.referrer or clean_text(request.referrer, 500) or None,
        utm_source=payload.utm_source,
        utm_medium=payload.utm_medium,
        utm_campaign=payload.utm_campaign,
    )
    db.session.add(concierge_request)
    db.session.commit()
    current_app.logger.info('Concierge request %s received.', concierge_request.id)

    send_concierge_request_notification(concierge_request)
    send_concierge_request_confirmation(concierge_request)
    return jsonify({'success': True, 'requestId': concierge_request.id}), 201


# Live chat
@main_bp.post('/api/chat/sessions')
def chat_session_start():
    enforce(CHAT_SESSION_SCOPE, 'CHAT_SESSION_LIMIT', 'CHAT_SESSION_WINDOW_SECONDS')
    payload = validate_payload(ChatSessionPayload, request.get_json(silent=True))
    session, created = start_or_resume_session(payload, ip_address=get_request_ip(), user_agent=get_user_agent())
    body = {
        'session': serialize_session(session),
        'messages': [serialize_message(message) for message in list_messages(session.id)],
    }
    return jsonify(body), (201 if created else 200)


@main_bp.get('/api/chat/sessions/active')
def chat_session_active():
    session = find_open_session(_visitor_id(request.args.get('visitorId')))
    if session is None:
        return jsonify({'session': None, 'messages': []})
    return jsonify({
        'session': serialize_session(session),
        'messages': [serialize_message(message) for message in list_messages(session.id)],
    })


@main_bp.get('/api/chat/messages')
def chat_messages():
    session_id = parse_int(request.args.get('sessionId'), default=0)
    if session_id < 1:
        raise ValidationFailure('sessionId: Session id is required')
    session = get_visitor_session(session_id, _visitor_id(request.args.get('visitorId')))
    since = parse_int(request.args.get('since'), default=0, min_value=0)
    return jsonify({
        'session': serialize_session(session),
        'messages': [serialize_message(message) for message in list_messages(session.id, since=since)],
    })


@main_bp.post('/api/chat/messages')
def chat_message_create():
    enforce(CHAT_MESSAGE_SCOPE, 'CHAT_MESSAGE_LIMIT', 'CHAT_MESSAGE_WINDOW_SECONDS')
    payload = validate_payload(ChatMessagePayload, request.get_json(silent=True))
    session = get_visitor_session(payload.session_id, payload.visitor_id)
    message = post_message(
        session,
        payload.message,
        SENDER_VISITOR,
        payload.sender_name or session.visitor_name or 'Visitor',
    )
    return jsonify({'message': serialize_message(message)}), 201


@main_bp.post('/api/chat/sessions/<int:session_id>/close')
def chat_session_close(session_id):
    session = get_visitor_session(session_id, _visitor_id_from_request())
    return jsonify({'session': serialize_session(close_session(session))})


@main_bp.get('/api/chat/sessions/<int:session_id>/stream')
def chat_session_stream(session_id):
    get_visitor_session(session_id, _visitor_id(request.args.get('visitorId')))
    return event_stream_response(session_id)


@main_bp.route('/uploads/<filename>')
def uploaded_file(filename):
    safe_filename, full_path = safe_upload_path(filename)
    if not safe_filename or not full_path or not os.path.exists(full_path):
        abort(404)
    response = send_from_directory(current_app.config['UPLOAD_FOLDER'], safe_filename, conditional=True, etag=True)
    extension = safe_filename.rsplit('.', 1)[1].lower() if '.' in safe_filename else ''
    if extension not in IMAGE_EXTENSIONS:
        response.headers['Content-Disposition'] = f'attachment; filename="{safe_filename}"'
    return response
