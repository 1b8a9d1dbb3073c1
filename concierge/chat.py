"""Live chat between anonymous visitors and staff, delivered over Server-Sent Events."""
import json
import time

from flask import Response, current_app, request, stream_with_context
from sqlalchemy import func

from .errors import NotFound, ValidationFailure
from .models import (
    CHAT_STATUS_ACTIVE,
    CHAT_STATUS_CLOSED,
    SENDER_SYSTEM,
    SENDER_TYPES,
    SENDER_VISITOR,
    ChatMessage,
    ChatSession,
    db,
)
from .utils import clean_text, isoformat, parse_int, strip_html, utc_now_naive

MESSAGE_MAX_LENGTH = 2000
WELCOME_TEMPLATE = 'Hello {name}! Welcome to {site}. How can we assist you today?'


def serialize_session(session, unread_count=None):
    data = {
        'id': session.id,
        'visitorId': session.visitor_id,
        'visitorName': session.visitor_name,
        'visitorEmail': session.visitor_email,
        'visitorPhone': session.visitor_phone,
        'pageUrl': session.page_url,
        'status': session.status,
        'startedAt': isoformat(session.started_at),
        'endedAt': isoformat(session.ended_at),
        'lastMessageAt': isoformat(session.last_message_at),
    }
    if unread_count is not None:
        data['unreadCount'] = unread_count
    return data


def serialize_message(message):
    return {
        'id': message.id,
        'sessionId': message.session_id,
        'senderType': message.sender_type,
        'senderName': message.sender_name,
        'message': message.message,
        'isRead': bool(message.is_read),
        'createdAt': isoformat(message.created_at),
    }


def find_open_session(visitor_id):
    return (
        ChatSession.query.filter(
            ChatSession.visitor_id == visitor_id,
            ChatSession.status != CHAT_STATUS_CLOSED,
        )
        .order_by(ChatSession.started_at.desc(), ChatSession.id.desc())
        .first()
    )


def welcome_message(visitor_name=None):
    site = current_app.config.get('SITE_NAME') or 'SEWA Hospitality'
    return WELCOME_TEMPLATE.format(name=visitor_name or 'there', site=site)


def start_or_resume_session(payload, ip_address=None, user_agent=None):
    """Return ``(session, created)`` for the visitor in ``payload``.

    An open session for the same visitor id is resumed as-is. Otherwise a new
    session is opened with a system welcome message addressed to the visitor.
    """
    existing = find_open_session(payload.visitor_id)
    if existing is not None:
        return existing, False

    now = utc_now_naive()
    session = ChatSession(
        visitor_id=payload.visitor_id,
        visitor_name=payload.visitor_name,
        visitor_email=payload.visitor_email,
        visitor_phone=payload.visitor_phone,
        page_url=payload.page_url,
        ip_address=None if ip_address == 'unknown' else ip_address,
        user_agent=user_agent,
        status=CHAT_STATUS_ACTIVE,
        started_at=now,
        last_message_at=now,
    )
    db.session.add(session)
    db.session.flush()
    db.session.add(
        ChatMessage(
            session_id=session.id,
            sender_type=SENDER_SYSTEM,
            sender_name=current_app.config.get('SITE_NAME'),
            message=welcome_message(payload.visitor_name),
            is_read=True,
            created_at=now,
        )
    )
    db.session.commit()
    current_app.logger.info('Chat session %s started.', session.id)
    return session, True


def get_session(session_id):
    session = db.session.get(ChatSession, session_id)
    if session is None:
        raise NotFound('Chat session not found')
    return session


def get_visitor_session(session_id, visitor_id):
    """Look up a session on behalf of a visitor; other visitors' sessions read as missing."""
    session = db.session.get(ChatSession, session_id)
    if session is None or session.visitor_id != visitor_id:
        raise NotFound('Chat session not found')
    return session


def post_message(session, message, sender_type, sender_name=None):
    if sender_type not in SENDER_TYPES:
        raise ValueError(f'Unknown sender type: {sender_type}')
    if session.status == CHAT_STATUS_CLOSED:
        raise ValidationFailure('Chat session is closed.')
    if sender_type == SENDER_VISITOR:
        text = strip_html(message, MESSAGE_MAX_LENGTH)
    else:
        text = clean_text(message, MESSAGE_MAX_LENGTH)
    if not text:
        raise ValidationFailure('message: Message is required')

    now = utc_now_naive()
    entry = ChatMessage(
        session_id=session.id,
        sender_type=sender_type,
        sender_name=clean_text(sender_name, 200) or None,
        message=text,
        is_read=sender_type != SENDER_VISITOR,
        created_at=now,
    )
    db.session.add(entry)
    session.last_message_at = now
    db.session.commit()
    return entry


def list_messages(session_id, since=None):
    query = ChatMessage.query.filter(ChatMessage.session_id == session_id)
    if since:
        query = query.filter(ChatMessage.id > since)
    return query.order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc()).all()


def merge_messages(existing, incoming):
    """Merge two lists of serialized messages, keeping one copy per id, oldest first."""
    merged = {}
    for message in list(existing or []) + list(incoming or []):
        merged[message['id']] = message
    return sorted(merged.values(), key=lambda item: (item.get('createdAt') or '', item['id']))


def mark_messages_read(session_id):
    updated = (
        ChatMessage.query.filter(
            ChatMessage.session_id == session_id,
            ChatMessage.sender_type == SENDER_VISITOR,
            ChatMessage.is_read.is_(False),
        )
        .update({ChatMessage.is_read: True}, synchronize_session=False)
    )
    db.session.commit()
    return updated


def unread_counts(session_ids=None):
    query = db.session.query(ChatMessage.session_id, func.count(ChatMessage.id)).filter(
        ChatMessage.sender_type == SENDER_VISITOR,
        ChatMessage.is_read.is_(False),
    )
    if session_ids is not None:
        if not session_ids:
            return {}
        query = query.filter(ChatMessage.session_id.in_(session_ids))
    return {session_id: count for session_id, count in query.group_by(ChatMessage.session_id).all()}


def list_sessions(status=None, limit=100):
    query = ChatSession.query
    if status:
        query = query.filter(ChatSession.status == status)
    sessions = query.order_by(ChatSession.last_message_at.desc(), ChatSession.id.desc()).limit(limit).all()
    counts = unread_counts([session.id for session in sessions])
    return [serialize_session(session, counts.get(session.id, 0)) for session in sessions]


def close_session(session):
    if session.status != CHAT_STATUS_CLOSED:
        session.status = CHAT_STATUS_CLOSED
        session.ended_at = utc_now_naive()
        db.session.commit()
    return session


def format_sse(data=None, event=None, event_id=None, comment=None):
    lines = []
    if comment is not None:
        lines.append(f': {comment}')
    if event_id is not None:
        lines.append(f'id: {event_id}')
    if event:
        lines.append(f'event: {event}')
    if data is not None:
        lines.append(f'data: {json.dumps(data, separators=(",", ":"))}')
    return '\n'.join(lines) + '\n\n'


def stream_session_messages(
    session_id,
    last_event_id=None,
    poll_seconds=1.5,
    max_seconds=55,
    heartbeat_seconds=15,
    sleep=time.sleep,
    clock=time.monotonic,
):
    """Yield SSE frames for new messages in ``session_id`` until it closes or time runs out.

    Must run inside an application context (wrap with ``stream_with_context``).
    """
    seen = set()
    cursor = last_event_id or 0
    started = last_beat = clock()
    yield 'retry: 3000\n\n'

    while True:
        for message in list_messages(session_id, since=cursor):
            if message.id in seen:
                continue
            seen.add(message.id)
            cursor = max(cursor, message.id)
            yield format_sse(serialize_message(message), event='message', event_id=message.id)

        session = db.session.get(ChatSession, session_id)
        if session is None or session.status == CHAT_STATUS_CLOSED:
            yield format_sse({'sessionId': session_id, 'status': CHAT_STATUS_CLOSED}, event='closed')
            return

        # End the read transaction so the next poll sees rows committed by other workers.
        db.session.rollback()

        now = clock()
        if now - started >= max_seconds:
            return
        if now - last_beat >= heartbeat_seconds:
            last_beat = now
            yield format_sse(comment='heartbeat')
        sleep(poll_seconds)


def event_stream_response(session_id):
    """Wrap :func:`stream_session_messages` in a streaming ``text/event-stream`` response."""
    config = current_app.config
    last_event_id = parse_int(
        request.headers.get('Last-Event-ID') or request.args.get('lastEventId'),
        default=0,
        min_value=0,
    )
    stream = stream_session_messages(
        session_id,
        last_event_id=last_event_id,
        poll_seconds=float(config.get('CHAT_STREAM_POLL_SECONDS', 1.5)),
        max_seconds=float(config.get('CHAT_STREAM_MAX_SECONDS', 55)),
        heartbeat_seconds=float(config.get('CHAT_STREAM_HEARTBEAT_SECONDS', 15)),
    )
    response = Response(stream_with_context(stream), mimetype='text/event-stream')
    response.headers['Cache-Control'] = 'no-cache'
    response.headers['X-Accel-Buffering'] = 'no'
    return response
