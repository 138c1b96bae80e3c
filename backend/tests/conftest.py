"""
Pytest configuration and fixtures for the photo enhancer API tests.
"""
import io

import pytest
from PIL import Image

from photo_enhancer import create_app
from photo_enhancer.config import TestingConfig
from photo_enhancer.enhancement import EnhancementError, EnhancementProvider
from photo_enhancer.models import db
from photo_enhancer.security import issue_access_token
from photo_enhancer.store import Store

ENHANCED_BYTES = b'\x89PNG enhanced result'


class FakeProvider(EnhancementProvider):
    """Records submitted payloads and writes a canned result."""

    def __init__(self, output='https://provider.test/result.png'):
        super().__init__(timeout=1)
        self.output = output
        self.submissions = []
        self.fetched = []

    def submit(self, image_bytes, params):
        self.submissions.append((image_bytes, dict(params)))
        return self.output

    def fetch(self, url, dest_path):
        self.fetched.append(url)
        with open(dest_path, 'wb') as f:
            f.write(ENHANCED_BYTES)
        return dest_path


class FailingProvider(FakeProvider):
    def submit(self, image_bytes, params):
        raise EnhancementError('provider exploded')


def make_image_bytes(size=(16, 16), fmt='JPEG', color=(200, 120, 40)):
    buf = io.BytesIO()
    Image.new('RGB', size, color).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def app(tmp_path, provider):
    """Create Flask test application."""
    class Config(TestingConfig):
        UPLOAD_FOLDER = str(tmp_path / 'uploads')

    flask_app = create_app(Config, provider=provider)
    yield flask_app
    with flask_app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create Flask test client."""
    return app.test_client()


@pytest.fixture
def store(app):
    with app.app_context():
        yield Store(db.session)


@pytest.fixture
def jpeg_bytes():
    return make_image_bytes()


@pytest.fixture
def upload(client, jpeg_bytes):
    """POST a photo to /api/images/enhance and return the response."""
    def _upload(data=None, filename='holiday.jpg', mimetype='image/jpeg', headers=None):
        payload = jpeg_bytes if data is None else data
        return client.post(
            '/api/images/enhance',
            data={'photo': (io.BytesIO(payload), filename, mimetype)},
            content_type='multipart/form-data',
            headers=headers or {},
        )
    return _upload


@pytest.fixture
def register(client):
    def _register(email='alice@example.com', password='correct-horse'):
        return client.post('/api/auth/register', json={'email': email, 'password': password})
    return _register


@pytest.fixture
def admin_headers(app):
    with app.app_context():
        admin = Store(db.session).create_user('root@example.com', 'admin-password', is_admin=True)
        token = issue_access_token(admin)
    return {'Authorization': f'Bearer {token}'}
