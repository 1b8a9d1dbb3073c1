import base64
import smtplib
import urllib.error
import urllib.parse
import urllib.request
from email.message import EmailMessage

from flask import current_app, has_request_context, request


def _safe_header_value(value, max_length=240):
    # CR/LF never reach a header.
    cleaned = ' '.join((value or '').replace('\r', ' ').replace('\n', ' ').split())
    return cleaned[:max_length]


def _split_recipients(raw):
    recipients = []
    seen = set()
    for item in (raw or '').split(','):
        cleaned = _safe_header_value(item, max_length=320)
        normalized = cleaned.lower()
        if cleaned and normalized not in seen:
            recipients.append(cleaned)
            seen.add(normalized)
    return recipients


def _resolve_base_url():
    configured = (current_app.config.get('APP_BASE_URL') or '').rstrip('/')
    if configured:
        return configured
    if has_request_context():
        return (request.host_url or '').rstrip('/')
    return ''


def _send_via_mailgun(subject, body, recipients, mail_from):
    """Mailgun HTTP API. Returns ``None`` when Mailgun is not configured."""
    api_key = (current_app.config.get('MAILGUN_API_KEY') or '').strip()
    domain = (current_app.config.get('MAILGUN_DOMAIN') or '').strip()
    if not api_key or not domain:
        return None

    url = f'https://api.mailgun.net/v3/{domain}/messages'
    data = urllib.parse.urlencode({
        'from': mail_from,
        'to': ', '.join(recipients),
        'subject': subject,
        'text': body,
    }).encode('utf-8')
    auth = base64.b64encode(f'api:{api_key}'.encode()).decode()

    req = urllib.request.Request(url, data=data, method='POST')
    req.add_header('Authorization', f'Basic {auth}')
    try:
        with urllib.request.urlopen(req, timeout=15):  # nosec B310
            current_app.logger.info('Mailgun email sent to %d recipient(s).', len(recipients))
            return True
    except urllib.error.HTTPError as exc:
        error_body = exc.read().decode('utf-8', errors='replace')
        current_app.logger.error('Mailgun API error %s: %s', exc.code, error_body[:500])
        return False
    except (urllib.error.URLError, OSError):
        current_app.logger.exception('Mailgun email delivery failed.')
        return False


def _send_via_smtp(subject, body, recipients, mail_from):
    """SMTP delivery. Returns ``None`` when no SMTP host is configured."""
    host = (current_app.config.get('SMTP_HOST') or '').strip()
    if not host:
        return None

    port = int(current_app.config.get('SMTP_PORT') or 587)
    username = current_app.config.get('SMTP_USERNAME') or ''
    password = current_app.config.get('SMTP_PASSWORD') or ''
    use_ssl = bool(current_app.config.get('SMTP_USE_SSL'))
    use_tls = bool(current_app.config.get('SMTP_USE_TLS'))

    message = EmailMessage()
    message['Subject'] = subject
    message['From'] = mail_from
    message['To'] = ', '.join(recipients)
    message.set_content(body)

    try:
        if use_ssl:
            smtp = smtplib.SMTP_SSL(host=host, port=port, timeout=12)
        else:
            smtp = smtplib.SMTP(host=host, port=port, timeout=12)
        with smtp:
            if use_tls and not use_ssl:
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(message)
        return True
    except (smtplib.SMTPException, OSError):
        current_app.logger.exception('SMTP email delivery failed.')
        return False


def send_email(subject, body, recipients):
    if not recipients:
        return False

    mail_from = _safe_header_value(current_app.config.get('MAIL_FROM') or 'no-reply@localhost', max_length=254)
    safe_subject = _safe_header_value(subject, max_length=240)

    result = _send_via_mailgun(safe_subject, body, recipients, mail_from)
    if result is not None:
        return result
    result = _send_via_smtp(safe_subject, body, recipients, mail_from)
    if result is not None:
        return result

    current_app.logger.info('No email provider configured (set MAILGUN_API_KEY+MAILGUN_DOMAIN or SMTP_HOST).')
    return False


def send_concierge_request_notification(concierge_request):
    recipients = _split_recipients(current_app.config.get('CONCIERGE_NOTIFICATION_EMAILS'))
    if not recipients:
        return False

    interest = _safe_header_value(concierge_request.service_interest or 'General enquiry', max_length=120)
    subject = f'[{current_app.config.get("SITE_NAME")}] New concierge request: {interest}'
    base = _resolve_base_url()
    body = '\n'.join([
        'A new concierge request has been received.',
        '',
        f'Name: {concierge_request.name}',
        f'Email: {concierge_request.email}',
        f'Phone: {concierge_request.phone or "Not provided"}',
        f'Nationality: {concierge_request.nationality or "Not provided"}',
        f'Service interest: {interest}',
        f'Preferred language: {concierge_request.preferred_language or "Not provided"}',
        '',
        'Message:',
        concierge_request.message or '',
        '',
        f'Admin: {base}/admin/concierge-requests' if base else 'Admin: /admin/concierge-requests',
    ])
    return send_email(subject, body, recipients)


def send_concierge_request_confirmation(concierge_request):
    if not current_app.config.get('SEND_CONTACT_CONFIRMATION'):
        return False
    recipient = _safe_header_value(concierge_request.email, max_length=320)
    if not recipient:
        return False

    site_name = current_app.config.get('SITE_NAME')
    subject = f'{site_name}: we received your request'
    body = '\n'.join([
        f'Dear {concierge_request.name},',
        '',
        f'Thank you for contacting {site_name}. A member of our concierge team',
        'will be in touch with you shortly.',
        '',
        'Your message:',
        concierge_request.message or '',
    ])
    return send_email(subject, body, [recipient])
