# Creates the Flask app (App Factory)
from flask import Flask, jsonify
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
import os
import time
import logging
from .config import Config
from .errors import register_error_handlers
from .models import db

# Initialize extensions
jwt = JWTManager()
limiter = Limiter(key_func=get_remote_address)


def _register_jwt_callbacks():
    @jwt.unauthorized_loader
    def missing_token(reason):
        return jsonify({'error': 'No token'}), 401

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return jsonify({'error': 'Invalid token'}), 401

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return jsonify({'error': 'Token expired'}), 401


_register_jwt_callbacks()


# Application Factory Function
def create_app(config_object=Config, provider=None):
    app = Flask(__name__, static_folder=None)
    app.config.from_object(config_object)
    app.config['STARTED_AT'] = time.time()

    # Logging configuration (DEBUG level by default)
    if not app.logger.handlers:
        logging.basicConfig(level=logging.DEBUG,
                            format='%(asctime)s %(levelname)s %(name)s - %(message)s')
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'DEBUG'))

    # Ensure folders exist
    app.config['UPLOAD_FOLDER'] = os.path.abspath(app.config['UPLOAD_FOLDER'])
    os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)

    # Extensions
    db.init_app(app)
    jwt.init_app(app)
    limiter.init_app(app)
    CORS(app, resources={r"/api/*": {"origins": app.config['CORS_ORIGINS']}}, supports_credentials=True)

    if provider is None:
        from .enhancement import ReplicateProvider
        provider = ReplicateProvider.from_config(app.config)
    app.extensions['enhancement_provider'] = provider

    register_error_handlers(app)

    # Import and register the blueprint from routes.py
    from .routes import api as api_blueprint
    app.register_blueprint(api_blueprint, url_prefix='/api')

    @app.after_request
    def security_headers(response):
        response.headers.setdefault('X-Content-Type-Options', 'nosniff')
        response.headers.setdefault('X-Frame-Options', 'DENY')
        return response

    @app.route('/')
    def index():
        return jsonify({
            'message': 'AI Photo Enhancer API',
            'status': 'running',
            'api_base': '/api',
        }), 200

    with app.app_context():
        db.create_all()

    app.logger.debug(f"Application created and configured (env={app.config.get('APP_ENV')})")
    return app
