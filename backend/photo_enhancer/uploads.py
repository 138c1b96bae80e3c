# Upload validation and storage naming

import os
import time
import uuid
import logging

from flask import current_app
from werkzeug.utils import secure_filename

from .errors import INVALID_UPLOAD_MESSAGE, ValidationError


def file_size(file) -> int:
    stream = file.stream
    pos = stream.tell()
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(pos)
    return size


def validate_upload(file, allowed_types=None, max_size=None):
    """Check declared MIME type and size. Content is not inspected."""
    if allowed_types is None:
        allowed_types = current_app.config['ALLOWED_MIME_TYPES']
    if max_size is None:
        max_size = current_app.config['MAX_UPLOAD_SIZE']

    if file is None or not file.filename:
        raise ValidationError(INVALID_UPLOAD_MESSAGE)
    mimetype = (file.mimetype or '').lower()
    size = file_size(file)
    if mimetype not in allowed_types or size > max_size:
        logging.debug(f'Upload rejected: mimetype={mimetype}, size={size}')
        raise ValidationError(INVALID_UPLOAD_MESSAGE)
    return size


def generate_filename(original_name: str) -> str:
    """Time + random qualified name so equal original names never collide."""
    base = secure_filename(original_name or '') or 'upload'
    return f'{int(time.time() * 1000)}-{uuid.uuid4().hex[:12]}-{base}'


def save_upload(file, upload_folder=None):
    """Save a validated upload; returns (filename, absolute path)."""
    upload_folder = upload_folder or current_app.config['UPLOAD_FOLDER']
    filename = generate_filename(file.filename)
    path = os.path.join(upload_folder, filename)
    file.stream.seek(0)
    file.save(path)
    return filename, path
