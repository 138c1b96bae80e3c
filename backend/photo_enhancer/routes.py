# All API routes are in this one file
import os
import re
import time
from urllib.parse import quote

import requests
from flask import request, jsonify, Blueprint, current_app, send_from_directory
from flask_jwt_extended import jwt_required, get_jwt_identity, verify_jwt_in_request
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError
from werkzeug.security import safe_join

from . import limiter
from .enhancement import EnhancementError, enhance_file
from .errors import AuthError, NotFoundError, PipelineError, ForbiddenError, ValidationError
from .models import db
from .security import admin_required, issue_access_token, verify_password
from .store import Store, get_store, requires_store
from .uploads import save_upload, validate_upload

# This line creates the 'api' object that __init__.py is looking for
api = Blueprint('api', __name__)

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
MIN_PASSWORD_LENGTH = 8


def _auth_limit():
    return current_app.config['AUTH_RATE_LIMIT']


def _current_user_id():
    identity = get_jwt_identity()
    return int(identity) if identity is not None else None


def _optional_user_id():
    # Uploads are open to anyone; an absent, malformed or expired token means anonymous
    try:
        verify_jwt_in_request(optional=True)
    except (JWTExtendedException, PyJWTError) as e:
        current_app.logger.debug(f'Ignoring unusable bearer token on upload: {e}')
        return None
    return _current_user_id()


def _download_url(image):
    return f"/api/images/download/{quote(image.file_path, safe='')}?token={image.download_token}"


def _credentials():
    body = request.get_json(silent=True) or {}
    email = (body.get('email') or '').strip()
    password = body.get('password') or ''
    if not email or not password:
        raise ValidationError('Email and password required')
    if not EMAIL_RE.match(email):
        raise ValidationError('Invalid email format')
    return email, password


def _auth_response(user, status=200):
    return jsonify({'token': issue_access_token(user), 'user': {
        'id': user.id,
        'email': user.email,
        'username': user.username,
        'is_admin': user.is_admin,
    }}), status


# Basic index and operational endpoints
@api.route('/', methods=['GET'])
def api_index():
    current_app.logger.debug('GET /api invoked for index')
    return jsonify({
        'name': 'AI Photo Enhancer API',
        'version': 1,
        'endpoints': [
            'POST /api/auth/register',
            'POST /api/auth/login',
            'POST /api/images/enhance',
            'POST /api/images/thumbnail',
            'GET  /api/images/my',
            'DELETE /api/images/<id>',
            'GET  /api/images/download/<file_path>?token=...',
            'GET  /api/admin/users',
            'GET  /api/admin/images',
            'GET  /api/health'
        ]
    }), 200


def _database_status():
    return 'connected' if Store(db.session).is_available() else 'disconnected'


@api.route('/health', methods=['GET'])
def api_health():
    current_app.logger.debug('GET /api/health invoked')
    return jsonify({
        'status': 'healthy',
        'database': _database_status(),
        'uptime': round(time.time() - current_app.config['STARTED_AT'], 3),
    }), 200


@api.route('/test', methods=['GET'])
def api_test():
    return jsonify({
        'message': 'API is working!',
        'cors': 'enabled',
        'database': _database_status(),
    }), 200


@api.route('/db-status', methods=['GET'])
def db_status():
    return jsonify({'connected': _database_status() == 'connected'}), 200


# Auth endpoints
@api.route('/auth/register', methods=['POST'])
@limiter.limit(_auth_limit, override_defaults=False)
@requires_store
def register():
    current_app.logger.debug('POST /api/auth/register invoked')
    email, password = _credentials()
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters long')

    user = get_store().create_user(email, password)
    current_app.logger.info(f'Registered user id={user.id}')
    return _auth_response(user)


@api.route('/auth/login', methods=['POST'])
@limiter.limit(_auth_limit, override_defaults=False)
@requires_store
def login():
    current_app.logger.debug('POST /api/auth/login invoked')
    email, password = _credentials()

    user = get_store().find_user_by_email(email)
    # Unknown email and wrong password are indistinguishable to the client
    if user is None or not verify_password(password, user.password_hash):
        current_app.logger.debug('Login rejected')
        raise AuthError('Invalid credentials')
    return _auth_response(user)


# Image endpoints
@api.route('/images/enhance', methods=['POST'])
@requires_store
def enhance():
    current_app.logger.debug('POST /api/images/enhance invoked')
    file = request.files.get('photo')
    validate_upload(file)

    user_id = _optional_user_id()
    filename, upload_path = save_upload(file)
    current_app.logger.debug(f'Uploaded file saved to {upload_path}')

    enhanced_filename = f'enhanced-{filename}'
    enhanced_path = os.path.join(current_app.config['UPLOAD_FOLDER'], enhanced_filename)
    provider = current_app.extensions['enhancement_provider']
    try:
        enhance_file(
            provider,
            upload_path,
            enhanced_path,
            scale=current_app.config['ENHANCE_SCALE'],
            max_pixels=current_app.config['MAX_INPUT_PIXELS'],
        )
    except (EnhancementError, OSError, requests.RequestException) as e:
        current_app.logger.exception('Enhance failed')
        raise PipelineError('Enhance failed', details=str(e))

    image = get_store().add_image(
        file_path=enhanced_filename,
        original_name=file.filename,
        type='enhanced',
        user_id=user_id,
    )
    current_app.logger.debug(f'Image record {image.id} stored for {enhanced_filename}')
    return jsonify({'downloadUrl': _download_url(image)}), 200


@api.route('/images/thumbnail', methods=['POST'])
@requires_store
def thumbnail():
    current_app.logger.debug('POST /api/images/thumbnail invoked')
    file = request.files.get('sketch')
    validate_upload(file)
    context = (request.form.get('context') or '').strip() or None

    user_id = _optional_user_id()
    filename, upload_path = save_upload(file)
    current_app.logger.debug(f'Thumbnail sketch saved to {upload_path}')
    image = get_store().add_image(
        file_path=filename,
        original_name=file.filename,
        type='thumbnail',
        user_id=user_id,
        context=context,
    )
    return jsonify({'downloadUrl': _download_url(image), 'image': image.to_dict()}), 201


@api.route('/images/my', methods=['GET'])
@jwt_required()
@requires_store
def my_images():
    images = get_store().list_user_images(_current_user_id())
    return jsonify({'images': [
        dict(image.to_dict(), downloadUrl=_download_url(image)) for image in images
    ]}), 200


@api.route('/images/<int:image_id>', methods=['DELETE'])
@jwt_required()
@requires_store
def delete_image(image_id):
    image = get_store().soft_delete_image(image_id, _current_user_id())
    if image is None:
        raise NotFoundError('Image not found.')
    current_app.logger.info(f'Image {image_id} soft-deleted')
    return jsonify({'success': True}), 200


@api.route('/images/download/<file_path>', methods=['GET'])
@requires_store
def download(file_path):
    current_app.logger.debug(f'GET /api/images/download/{file_path} invoked')
    token = request.args.get('token')
    image = get_store().find_image_by_file_and_token(file_path, token)
    if image is None:
        current_app.logger.warning(f'Rejected download for {file_path}')
        raise ForbiddenError('Invalid or expired download link.')

    upload_folder = current_app.config['UPLOAD_FOLDER']
    abs_path = safe_join(upload_folder, file_path)
    if abs_path is None or not os.path.isfile(abs_path):
        raise NotFoundError('File not found.')
    return send_from_directory(
        upload_folder, file_path, as_attachment=True, download_name=image.original_name or file_path
    )


# Admin endpoints
@api.route('/admin/users', methods=['GET'])
@admin_required
@requires_store
def admin_users():
    users = get_store().list_users()
    return jsonify({'users': [user.to_dict() for user in users]}), 200


@api.route('/admin/images', methods=['GET'])
@admin_required
@requires_store
def admin_images():
    images = get_store().list_images()
    return jsonify({'images': [image.to_dict() for image in images]}), 200
