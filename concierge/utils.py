"""Shared helpers used across route modules."""
import ipaddress
import json
import re
from datetime import datetime, timezone

import bleach
from flask import request

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
PASSWORD_MIN_LENGTH = 10


def utc_now_naive():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat(value):
    if value is None:
        return None
    return value.replace(tzinfo=timezone.utc).isoformat().replace('+00:00', 'Z')


def clean_text(value, max_length=255):
    return (value or '').strip()[:max_length]


def strip_html(value, max_length=5000):
    # Plain-text fields (chat, contact) never carry markup.
    cleaned = bleach.clean(value or '', tags=[], attributes={}, strip=True)
    return cleaned.strip()[:max_length]


def is_valid_email(value):
    return bool(EMAIL_RE.match(value or ''))


def is_strong_password(value):
    password = value or ''
    return (
        len(password) >= PASSWORD_MIN_LENGTH
        and any(c.isupper() for c in password)
        and any(c.islower() for c in password)
        and any(c.isdigit() for c in password)
        and any(not c.isalnum() for c in password)
    )


def parse_int(value, default=0, min_value=None, max_value=None):
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    if min_value is not None and parsed < min_value:
        return min_value
    if max_value is not None and parsed > max_value:
        return max_value
    return parsed


def safe_json_loads(raw_value, fallback):
    if raw_value is None:
        return fallback
    if isinstance(raw_value, (dict, list)):
        return raw_value
    value = str(raw_value).strip()
    if not value:
        return fallback
    try:
        return json.loads(value)
    except (TypeError, json.JSONDecodeError):
        return fallback


def json_dumps(value):
    return json.dumps(value, ensure_ascii=False, separators=(',', ':'))


def normalized_ip(value):
    candidate = (value or '').split(',', 1)[0].strip()
    if not candidate:
        return ''
    try:
        return str(ipaddress.ip_address(candidate))
    except ValueError:
        return ''


def get_request_ip():
    # request.remote_addr is proxy-aware when ProxyFix is enabled by app config.
    remote_ip = normalized_ip(request.remote_addr)
    return remote_ip or 'unknown'


def get_user_agent(max_length=320):
    return clean_text(request.headers.get('User-Agent', ''), max_length) or None
