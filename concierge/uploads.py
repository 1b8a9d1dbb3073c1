"""Media library: validated uploads stored under ``UPLOAD_FOLDER``."""
import os
import uuid

from flask import current_app
from PIL import Image, UnidentifiedImageError
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.utils import secure_filename

from .audit import log_audit
from .errors import NotFound, ValidationFailure
from .models import Media, db
from .utils import clean_text, isoformat

IMAGE_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp'}
EXTENSION_MIME_TYPES = {
    'png': {'image/png'},
    'jpg': {'image/jpeg'},
    'jpeg': {'image/jpeg'},
    'gif': {'image/gif'},
    'webp': {'image/webp'},
    'pdf': {'application/pdf'},
}
MAX_FILENAME_LENGTH = 180


def allowed_file(filename):
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in current_app.config['ALLOWED_EXTENSIONS']


def safe_upload_path(stored_name):
    upload_root = os.path.abspath(current_app.config['UPLOAD_FOLDER'])
    raw_name = (stored_name or '').strip()
    safe_name = secure_filename(raw_name)
    if not safe_name or safe_name != raw_name:
        return None, None
    full_path = os.path.abspath(os.path.join(upload_root, safe_name))
    try:
        if os.path.commonpath([upload_root, full_path]) != upload_root:
            return None, None
    except ValueError:
        return None, None
    return safe_name, full_path


def _image_is_valid(stream):
    max_pixels = max(1, int(current_app.config.get('MAX_UPLOAD_IMAGE_PIXELS', 40_000_000)))
    try:
        with Image.open(stream) as image:
            width, height = image.size
            if width < 1 or height < 1 or (width * height) > max_pixels:
                return False
            image.verify()
        return True
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError):
        return False
    finally:
        stream.seek(0)


def validate_uploaded_file(file):
    """Check name, declared type and actual content. Returns an error message or ``None``."""
    if not file or not file.filename:
        return 'Please choose a file to upload.'

    filename = secure_filename(file.filename)
    if not filename or len(filename) > MAX_FILENAME_LENGTH or not allowed_file(filename):
        return 'Unsupported file type.'

    extension = filename.rsplit('.', 1)[1].lower()
    mime_type = (file.mimetype or '').split(';', 1)[0].lower()
    allowed_mimes = current_app.config.get('ALLOWED_UPLOAD_MIME_TYPES', set())
    if mime_type not in allowed_mimes or mime_type not in EXTENSION_MIME_TYPES.get(extension, ()):
        return 'File type does not match its content type.'

    file.stream.seek(0)
    if extension == 'pdf':
        signature = file.stream.read(5)
        file.stream.seek(0)
        return None if signature == b'%PDF-' else 'File content is not a valid PDF.'

    if extension in IMAGE_EXTENSIONS and _image_is_valid(file.stream):
        return None
    return 'File content is not a valid image.'


def media_url(stored_name):
    return f'/uploads/{stored_name}'


def serialize_media(item):
    return {
        'id': item.id,
        'filename': item.filename,
        'path': item.file_path,
        'url': media_url(item.file_path),
        'size': item.file_size,
        'mimeType': item.mime_type,
        'altText': item.alt_text,
        'createdAt': isoformat(item.created_at),
    }


def list_media():
    items = Media.query.order_by(Media.created_at.desc(), Media.id.desc()).all()
    return [serialize_media(item) for item in items]


def save_upload(file, actor, alt_text=None):
    error = validate_uploaded_file(file)
    if error:
        raise ValidationFailure(error)

    filename = secure_filename(file.filename)
    upload_root = current_app.config['UPLOAD_FOLDER']
    os.makedirs(upload_root, exist_ok=True)
    unique_name = f'{uuid.uuid4().hex[:16]}_{filename}'
    full_path = os.path.join(upload_root, unique_name)
    file.save(full_path)

    media = Media(
        filename=filename,
        file_path=unique_name,
        file_size=os.path.getsize(full_path),
        mime_type=(file.mimetype or '').split(';', 1)[0].lower(),
        alt_text=clean_text(alt_text, 300) or None,
    )
    db.session.add(media)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        if os.path.exists(full_path):
            os.remove(full_path)
        raise
    log_audit(actor, 'content.create', Media.__tablename__, {'filename': unique_name})
    return media


def delete_media(media_id, actor):
    item = db.session.get(Media, media_id)
    if item is None:
        raise NotFound()
    _, full_path = safe_upload_path(item.file_path)
    db.session.delete(item)
    db.session.commit()
    if full_path and os.path.exists(full_path):
        os.remove(full_path)
    log_audit(actor, 'content.delete', Media.__tablename__, {'id': media_id})
    return list_media()


def list_stored_files():
    """Files actually present in the upload folder, for backups."""
    upload_root = current_app.config['UPLOAD_FOLDER']
    if not os.path.isdir(upload_root):
        return []
    files = []
    for name in sorted(os.listdir(upload_root)):
        full_path = os.path.join(upload_root, name)
        if os.path.isfile(full_path):
            files.append({'name': name, 'size': os.path.getsize(full_path), 'url': media_url(name)})
    return files
