"""Point-in-time JSON export of the content, lead, chat and audit tables."""
from flask import current_app
from sqlalchemy import inspect
from sqlalchemy.exc import SQLAlchemyError

from .models import (
    AuditLog,
    Banner,
    ChatMessage,
    ChatSession,
    ConciergeRequest,
    Destination,
    LicenseRecord,
    Page,
    PageVersion,
    Partner,
    Profile,
    Section,
    Service,
    TeamMember,
    Testimonial,
    ThemeConfig,
    db,
)
from .uploads import list_stored_files
from .utils import isoformat, safe_json_loads, utc_now_naive

BACKUP_TABLES = (
    Service,
    Destination,
    Banner,
    Section,
    Page,
    PageVersion,
    Partner,
    Testimonial,
    TeamMember,
    ThemeConfig,
    LicenseRecord,
    Profile,
    ConciergeRequest,
    ChatSession,
    ChatMessage,
    AuditLog,
)
SKIPPED_COLUMNS = {'license_key'}


def _row_to_dict(row):
    data = {}
    for column_attr in inspect(row).mapper.column_attrs:
        if column_attr.columns[0].name in SKIPPED_COLUMNS:
            continue
        attribute = column_attr.key
        value = getattr(row, attribute)
        if attribute.endswith('_json'):
            # Store JSON payloads decoded, under the attribute's plain name.
            attribute = attribute[:-len('_json')]
            value = safe_json_loads(value, None)
        elif hasattr(value, 'isoformat'):
            value = isoformat(value)
        data[attribute] = value
    return data


def _export_table(model):
    return [_row_to_dict(row) for row in model.query.order_by(model.__mapper__.primary_key[0]).all()]


def build_backup():
    """Read every table in turn. A table that fails to read is reported instead of aborting the export."""
    tables = {}
    errors = {}
    for model in BACKUP_TABLES:
        name = model.__tablename__
        try:
            tables[name] = _export_table(model)
            errors[name] = None
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.exception('Backup export failed for table %s.', name)
            tables[name] = []
            errors[name] = str(exc.__class__.__name__)

    try:
        media = list_stored_files()
        errors['media'] = None
    except OSError as exc:
        current_app.logger.exception('Backup media listing failed.')
        media = []
        errors['media'] = str(exc)

    return {
        'generatedAt': isoformat(utc_now_naive()),
        'bucket': current_app.config.get('MEDIA_BUCKET'),
        'tables': tables,
        'media': media,
        'errors': errors,
    }


def backup_filename(generated_at=None):
    stamp = (generated_at or utc_now_naive()).strftime('%Y%m%dT%H%M%SZ')
    prefix = current_app.config.get('BACKUP_FILENAME_PREFIX') or 'sewa-backup'
    return f'{prefix}-{stamp}.json'
