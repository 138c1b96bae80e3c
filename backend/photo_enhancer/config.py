# Configuration settings
import os
from datetime import timedelta
from dotenv import load_dotenv

# This line loads the variables from your .env file
load_dotenv()

APP_ENV = os.environ.get('APP_ENV', 'development')


# This class holds all the configuration variables for your app
class Config:
    APP_ENV = APP_ENV
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-change-me')
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY', SECRET_KEY)
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(days=int(os.environ.get('JWT_EXPIRES_DAYS', 7)))

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        'DATABASE_URL', 'sqlite:///' + os.path.join(os.getcwd(), 'photo_enhancer.db')
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER', os.path.join(os.getcwd(), 'uploads'))

    # Uploads above MAX_UPLOAD_SIZE are rejected with a 400; MAX_CONTENT_LENGTH is the hard body cap
    MAX_UPLOAD_SIZE = int(os.environ.get('MAX_UPLOAD_SIZE', 10 * 1024 * 1024))
    MAX_CONTENT_LENGTH = int(os.environ.get('MAX_CONTENT_LENGTH', 12 * 1024 * 1024))
    ALLOWED_MIME_TYPES = {
        t.strip().lower()
        for t in os.environ.get('ALLOWED_MIME_TYPES', 'image/jpeg,image/png,image/webp').split(',')
    }

    # Enhancement provider (Replicate Real-ESRGAN)
    REPLICATE_API_TOKEN = os.environ.get('REPLICATE_API_TOKEN')
    # Unset means the client's default endpoint
    REPLICATE_API_URL = os.environ.get('REPLICATE_API_URL')
    REPLICATE_MODEL_VERSION = os.environ.get(
        'REPLICATE_MODEL_VERSION',
        'f121d640bd286e1fdc67f9799164c1d5be36ff74576ee11c803ae5b665dd46aa',
    )
    ENHANCE_SCALE = int(os.environ.get('ENHANCE_SCALE', 2))
    # Safe input size for scale=2
    MAX_INPUT_PIXELS = int(os.environ.get('MAX_INPUT_PIXELS', 524176))
    PROVIDER_TIMEOUT = float(os.environ.get('PROVIDER_TIMEOUT', 60))
    PROVIDER_DEADLINE = float(os.environ.get('PROVIDER_DEADLINE', 300))
    PROVIDER_POLL_INTERVAL = float(os.environ.get('PROVIDER_POLL_INTERVAL', 1.0))

    PASSWORD_HASH_ITERATIONS = int(os.environ.get('PASSWORD_HASH_ITERATIONS', 200_000))

    CORS_ORIGINS = [
        o.strip()
        for o in os.environ.get(
            'CORS_ORIGINS',
            ','.join([
                os.environ.get('FRONTEND_URL', 'http://localhost:5000'),
                'http://localhost:3000',
                'http://localhost:8080',
                'http://127.0.0.1:5000',
                'http://127.0.0.1:3000',
                'http://127.0.0.1:8080',
            ]),
        ).split(',')
        if o.strip()
    ]

    # Flask-Limiter, keyed by remote address
    RATELIMIT_ENABLED = os.environ.get('RATELIMIT_ENABLED', '1') == '1'
    RATELIMIT_DEFAULT = os.environ.get('RATELIMIT_DEFAULT', '100 per 15 minutes')
    RATELIMIT_STORAGE_URI = os.environ.get('RATELIMIT_STORAGE_URI', 'memory://')
    RATELIMIT_HEADERS_ENABLED = True
    AUTH_RATE_LIMIT = os.environ.get('AUTH_RATE_LIMIT', '5 per 15 minutes')

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'DEBUG')


class TestingConfig(Config):
    TESTING = True
    APP_ENV = 'testing'
    SECRET_KEY = 'testing-secret'
    JWT_SECRET_KEY = 'testing-jwt-secret-key-with-enough-length'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    REPLICATE_API_TOKEN = 'test-token'
    PASSWORD_HASH_ITERATIONS = 1000
    RATELIMIT_ENABLED = False
    PROVIDER_POLL_INTERVAL = 0
    LOG_LEVEL = 'WARNING'
